"""Per-issue event log (opt-out).

Each record is one JSON line in ``<log_dir>/telemetry.jsonl`` describing
something NotNow did to an issue: a command batch ran, a results comment was
posted (or failed to post), or the state snapshot was rewritten. Set
``NOTNOW_TELEMETRY=0`` to turn it off.
"""

from __future__ import annotations

import json
import os
import time
from functools import lru_cache
from typing import Any, Mapping

import jsonschema
from jsonschema.exceptions import best_match

from notnow.resources import load_schema
from notnow.settings import RuntimeSettings

TELEMETRY_FILENAME = "telemetry.jsonl"

COMMANDS_BATCH = "commands.batch"
COMMENT_POSTED = "comment.posted"
COMMENT_FAILED = "comment.failed"
SNAPSHOT_WRITTEN = "snapshot.written"
SNAPSHOT_CURRENT = "snapshot.current"

_DISABLE_VALUES = {"0", "false", "no", "off"}


def telemetry_enabled() -> bool:
    value = os.getenv("NOTNOW_TELEMETRY", "1").lower()
    return value not in _DISABLE_VALUES


def record_event(
    settings: RuntimeSettings,
    event: str,
    *,
    issue: int,
    payload: Mapping[str, Any] | None = None,
    level: str = "info",
    status: str | None = None,
    component: str | None = None,
    duration_ms: float | None = None,
) -> None:
    """Append one event about issue ``issue``; raises ``ValueError`` for malformed records."""

    if not telemetry_enabled():
        return
    record: dict[str, Any] = {
        "ts": time.time(),
        "event": event,
        "issue": issue,
        "level": level,
        "payload": dict(payload or {}),
    }
    if status:
        record["status"] = status
    if component:
        record["component"] = component
    if duration_ms is not None:
        record["durationMs"] = duration_ms
    error = best_match(_telemetry_validator().iter_errors(record))
    if error is not None:
        field = ".".join(str(part) for part in error.absolute_path) or "record"
        raise ValueError(f"invalid telemetry event '{event}' ({field}): {error.message}")

    log_path = settings.log_dir / TELEMETRY_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")


@lru_cache(maxsize=1)
def _telemetry_validator() -> jsonschema.Draft202012Validator:
    return jsonschema.Draft202012Validator(load_schema("telemetry.schema.json"))


__all__ = [
    "COMMANDS_BATCH",
    "COMMENT_FAILED",
    "COMMENT_POSTED",
    "SNAPSHOT_CURRENT",
    "SNAPSHOT_WRITTEN",
    "TELEMETRY_FILENAME",
    "record_event",
    "telemetry_enabled",
]
