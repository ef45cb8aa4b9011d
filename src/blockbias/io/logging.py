from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from blockbias.canonical import get_canonical


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class JsonlLogger:
    path: Path
    run_id: str
    schema_version: int
    event_types: dict[str, str]

    def log(self, event_key: str, payload: dict[str, Any]) -> None:
        # event_key is a canonical ENUMS.LOG_EVENT_TYPES key, e.g. EVENT_RUN_START.
        if event_key not in self.event_types:
            raise KeyError(f"Unknown log event type: {event_key}")
        obj = {
            "event_type": self.event_types[event_key],
            "timestamp_utc": now_utc_iso(),
            "run_id": self.run_id,
            "schema_version": self.schema_version,
            **payload,
        }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False) + "\n")


def read_events(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def make_logger(*, run_dir: Path, canonical: dict[str, Any], run_id: str) -> JsonlLogger:
    logs_name = str(get_canonical(canonical, "FILES.LOG_JSONL_FILENAME"))
    schema_version = int(get_canonical(canonical, "SCHEMAS.LOG_SCHEMA_VERSION"))
    event_types = {str(k): str(v) for k, v in get_canonical(canonical, "ENUMS.LOG_EVENT_TYPES").items()}
    return JsonlLogger(path=run_dir / logs_name, run_id=run_id, schema_version=schema_version, event_types=event_types)
