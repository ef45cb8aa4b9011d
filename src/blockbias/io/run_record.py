from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from blockbias.canonical import get_canonical
from blockbias.hashing import fingerprint


# Fields allowed to differ between re-executions on the same input.
_VOLATILE_FIELDS = {"run_id", "timestamp_utc", "python_version", "platform", "paths", "input_path"}


def compute_run_record_hash(record: dict[str, Any], canonical: dict[str, Any]) -> str:
    hash_field = str(get_canonical(canonical, "OUTPUT_NAMING.RUN_RECORD_HASH_FIELD"))
    subset = {k: v for k, v in record.items() if k not in _VOLATILE_FIELDS and k != hash_field}
    return fingerprint(subset, canonical)


def write_run_record(path: str, record: dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(record, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def read_run_record(path: str) -> dict[str, Any]:
    obj = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(obj, dict):
        raise ValueError(f"{path} did not parse as a JSON mapping")
    return obj
