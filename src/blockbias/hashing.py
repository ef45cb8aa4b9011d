from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

from blockbias.canonical import get_canonical


class HashingError(RuntimeError):
    pass


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: str | Path, *, chunk_size: int = 1 << 20) -> str:
    h = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def _assert_no_floats(obj: Any, *, path: str = "$") -> None:
    if isinstance(obj, float):
        raise HashingError(f"Floating point value found in hashed object at {path}")
    if isinstance(obj, dict):
        for k, v in obj.items():
            _assert_no_floats(v, path=f"{path}.{k}")
    elif isinstance(obj, list):
        for i, v in enumerate(obj):
            _assert_no_floats(v, path=f"{path}[{i}]")


def decimal_str(x: float | int | Decimal) -> str:
    # Non-exponent decimal string, stable across runs.
    if isinstance(x, Decimal):
        return format(x, "f")
    if isinstance(x, int):
        return str(x)
    return format(Decimal(repr(float(x))), "f")


def canonical_json_bytes(obj: Any, canonical: dict[str, Any]) -> bytes:
    """
    Deterministic JSON byte representation per CANONICAL.HASHING.CANONICAL_JSON.
    """
    _assert_no_floats(obj)
    sort_keys = bool(get_canonical(canonical, "HASHING.CANONICAL_JSON.SORT_KEYS"))
    ensure_ascii = bool(get_canonical(canonical, "HASHING.CANONICAL_JSON.ENSURE_ASCII"))
    separators = tuple(get_canonical(canonical, "HASHING.CANONICAL_JSON.SEPARATORS"))
    allow_nan = bool(get_canonical(canonical, "HASHING.CANONICAL_JSON.ALLOW_NAN"))
    s = json.dumps(
        obj,
        sort_keys=sort_keys,
        ensure_ascii=ensure_ascii,
        separators=separators,
        allow_nan=allow_nan,
    )
    return s.encode("utf-8")


def fingerprint(obj: dict[str, Any], canonical: dict[str, Any]) -> str:
    """SHA-256 of a mapping whose floats are first rendered with decimal_str."""
    flat = {k: decimal_str(v) if isinstance(v, float) else v for k, v in obj.items()}
    return sha256_hex(canonical_json_bytes(flat, canonical))
