from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from epistudy.canonical import get_canonical


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_compact() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


@dataclass
class JsonlLogger:
    path: Path
    run_id: str
    schema_version: int

    def log(self, event_type: str, payload: dict[str, Any]) -> None:
        obj = {
            "event_type": event_type,
            "timestamp_utc": now_utc_iso(),
            "run_id": self.run_id,
            "schema_version": self.schema_version,
            **payload,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")


def make_logger(*, log_dir: Path, canonical: dict[str, Any], run_id: str | None = None) -> JsonlLogger:
    logs_name = str(get_canonical(canonical, "FILES.LOG_JSONL_FILENAME"))
    schema_version = int(get_canonical(canonical, "SCHEMAS.LOG_SCHEMA_VERSION"))
    if run_id is None:
        run_id = f"{get_canonical(canonical, 'OUTPUT_NAMING.RUN_ID_PREFIX')}{utc_compact()}"
    return JsonlLogger(path=Path(log_dir) / logs_name, run_id=run_id, schema_version=schema_version)


def event_type(canonical: dict[str, Any], key: str) -> str:
    return str(canonical["ENUMS"]["LOG_EVENT_TYPES"][key])
