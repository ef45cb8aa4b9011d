from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from blockbias.canonical import get_canonical


class ConfigError(RuntimeError):
    pass


_CANONICAL_REF_RE = re.compile(r"^(CANONICAL\.)?[A-Z][A-Z0-9_]*(\.[A-Z][A-Z0-9_]*)+$")
_CANONICAL_TEMPLATE_RE = re.compile(r"\$\{CANONICAL\.([A-Za-z0-9_.]+)\}")

_ALLOWED_KEYS = {"schema_version_key", "degeneracy_tolerance", "output_root"}


@dataclass(frozen=True)
class RunConfig:
    block_size: int
    degeneracy_tolerance: float
    output_root: Path
    max_block_size_bits: int


def _resolve_value(value: Any, canonical: dict[str, Any]) -> Any:
    if isinstance(value, str):
        # Template replacement: "${CANONICAL.PATHS.PATH_OUTPUT_ROOT}"
        def repl(match: re.Match[str]) -> str:
            dotted = match.group(1)
            resolved = get_canonical(canonical, dotted)
            return str(resolved)

        value = _CANONICAL_TEMPLATE_RE.sub(repl, value)

        if _CANONICAL_REF_RE.match(value):
            return get_canonical(canonical, value)
        return value
    if isinstance(value, list):
        return [_resolve_value(v, canonical) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_value(v, canonical) for k, v in value.items()}
    return value


def load_config(config_path: str, canonical: dict[str, Any]) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    obj = yaml.safe_load(path.read_text(encoding="utf-8"))
    if obj is None:
        obj = {}
    if not isinstance(obj, dict):
        raise ConfigError(f"Config {config_path} did not parse as a mapping")

    unknown = sorted(set(obj) - _ALLOWED_KEYS)
    if unknown:
        raise ConfigError(f"Config {config_path} has unknown keys: {unknown}")

    resolved = _resolve_value(obj, canonical)

    schema_key = resolved.get("schema_version_key")
    if schema_key is not None:
        expected = int(get_canonical(canonical, "SCHEMAS.CONFIG_SCHEMA_VERSION"))
        if int(schema_key) != expected:
            raise ConfigError(f"Config schema_version_key mismatch: got {schema_key}, expected {expected}")
    return resolved


def _as_tolerance(value: Any, source: str) -> float:
    try:
        tol = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"degeneracy_tolerance from {source} is not a number: {value!r}") from e
    if not math.isfinite(tol) or tol < 0.0:
        raise ConfigError(f"degeneracy_tolerance from {source} must be finite and non-negative, got {value!r}")
    return tol


def resolve_run_config(args: Any, canonical: dict[str, Any]) -> RunConfig:
    """
    Merge CLI arguments, the optional --config file and canonical defaults,
    in that order of precedence.
    """
    file_cfg: dict[str, Any] = {}
    config_path = getattr(args, "config_path", None)
    if config_path:
        file_cfg = load_config(str(config_path), canonical)

    cli_tol = getattr(args, "tolerance", None)
    if cli_tol is not None:
        tolerance = _as_tolerance(cli_tol, "command line")
    elif "degeneracy_tolerance" in file_cfg:
        tolerance = _as_tolerance(file_cfg["degeneracy_tolerance"], str(config_path))
    else:
        tolerance = _as_tolerance(get_canonical(canonical, "DEFAULTS.DEGENERACY_TOLERANCE"), "canonical defaults")

    cli_out = getattr(args, "output_root", None)
    if cli_out:
        output_root = Path(cli_out)
    elif file_cfg.get("output_root"):
        output_root = Path(str(file_cfg["output_root"]))
    else:
        output_root = Path(str(get_canonical(canonical, "PATHS.PATH_OUTPUT_ROOT")))

    return RunConfig(
        block_size=int(args.block_size),
        degeneracy_tolerance=tolerance,
        output_root=output_root,
        max_block_size_bits=int(get_canonical(canonical, "LIMITS.MAX_BLOCK_SIZE_BITS")),
    )
