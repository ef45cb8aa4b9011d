from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


class CanonicalError(RuntimeError):
    pass


@dataclass(frozen=True)
class CanonicalLoadResult:
    canonical: dict[str, Any]
    canonical_path: Path


_DEFAULT_CANONICAL_PATH = Path(__file__).with_name("canonical.yaml")


def load_canonical_with_path(path: str | None = None) -> CanonicalLoadResult:
    canonical_path = Path(path) if path is not None else _DEFAULT_CANONICAL_PATH
    if not canonical_path.exists():
        raise CanonicalError(f"Missing canonical constants file: {canonical_path}")
    canonical = yaml.safe_load(canonical_path.read_text(encoding="utf-8"))
    if not isinstance(canonical, dict):
        raise CanonicalError(f"{canonical_path} did not parse as a mapping")

    required_top = ["PROJECT_ID", "PROJECT_VERSION", "LIMITS", "DEFAULTS", "PATHS", "FILES", "ENUMS", "HASHING", "CLI"]
    missing = [k for k in required_top if k not in canonical]
    if missing:
        raise CanonicalError(f"Canonical block missing required keys: {missing}")
    return CanonicalLoadResult(canonical=canonical, canonical_path=canonical_path)


def load_canonical(path: str | None = None) -> dict[str, Any]:
    """
    Load the canonical constants (limits, defaults, file names, event types,
    CLI literals). Defaults to the copy shipped inside the package.
    """
    return load_canonical_with_path(path).canonical


def get_canonical(canonical: dict[str, Any], dotted_path: str) -> Any:
    """
    Resolve dotted canonical paths like:
      - LIMITS.MAX_BLOCK_SIZE_BITS
      - CANONICAL.PATHS.PATH_OUTPUT_ROOT
    """
    if dotted_path.startswith("CANONICAL."):
        dotted_path = dotted_path.removeprefix("CANONICAL.")
    cur: Any = canonical
    for part in dotted_path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            raise CanonicalError(f"Undefined canonical path: {dotted_path}")
        cur = cur[part]
    return cur
