"""Versioned state snapshot embedded in an issue body."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Dict, Optional

import jsonschema

from notnow.domain.commands.values import ensure_utc, isoformat, parse_date, utc_now
from notnow.resources import load_schema

from .state import IssueState

SCHEMA_VERSION = "2.0"
BEGIN_MARKER = "<!-- NOTNOW-STATE-BEGIN -->"
END_MARKER = "<!-- NOTNOW-STATE-END -->"

_BLOCK_PATTERN = re.compile(
    rf"{re.escape(BEGIN_MARKER)}\s*<!--\s*(.*?)\s*-->\s*{re.escape(END_MARKER)}",
    re.DOTALL,
)
_ANY_BLOCK_PATTERN = re.compile(rf"\n*{re.escape(BEGIN_MARKER)}.*?{re.escape(END_MARKER)}\n*", re.DOTALL)

logger = logging.getLogger(__name__)


class MalformedSnapshotError(ValueError):
    """Raised when an embedded snapshot cannot be decoded."""


@dataclass(frozen=True)
class StateEnvelope:
    state_version: int
    last_updated: datetime
    last_updated_by: str
    data: IssueState
    last_command: Optional[str] = None
    schema_version: str = SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "stateVersion": self.state_version,
            "lastUpdated": isoformat(self.last_updated),
            "lastUpdatedBy": self.last_updated_by,
            "lastCommand": self.last_command,
            "data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StateEnvelope":
        last_updated = parse_date(str(payload["lastUpdated"]))
        if last_updated is None:
            raise MalformedSnapshotError(f"lastUpdated is not a timestamp: {payload['lastUpdated']!r}")
        try:
            data = IssueState.from_dict(payload["data"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedSnapshotError(f"snapshot data invalid: {exc}") from exc
        return cls(
            schema_version=str(payload["schemaVersion"]),
            state_version=int(payload["stateVersion"]),
            last_updated=last_updated,
            last_updated_by=str(payload["lastUpdatedBy"]),
            last_command=payload.get("lastCommand"),
            data=data,
        )


@lru_cache(maxsize=1)
def _envelope_validator() -> jsonschema.Draft202012Validator:
    return jsonschema.Draft202012Validator(load_schema("snapshot.schema.json"))


def strip_snapshot(text: str) -> str:
    """Remove every embedded snapshot block from ``text``."""

    if not text or BEGIN_MARKER not in text:
        return text or ""
    stripped = _ANY_BLOCK_PATTERN.sub("\n\n", text)
    return stripped.strip("\n") if stripped.strip() else ""


class SnapshotCodec:
    """Reads and writes the hidden state block of an issue body."""

    def decode(self, payload: str) -> StateEnvelope:
        try:
            document = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedSnapshotError(f"snapshot is not valid JSON: {exc.msg}") from exc
        errors = sorted(_envelope_validator().iter_errors(document), key=lambda err: list(err.path))
        if errors:
            first = errors[0]
            location = "/".join(str(part) for part in first.path) or "<root>"
            raise MalformedSnapshotError(f"snapshot failed validation at {location}: {first.message}")
        return StateEnvelope.from_dict(document)

    def encode(self, envelope: StateEnvelope) -> str:
        payload = json.dumps(envelope.to_dict(), indent=2, ensure_ascii=False)
        return f"{BEGIN_MARKER}\n<!--\n{payload}\n-->\n{END_MARKER}"

    def extract(self, host_text: str) -> Optional[StateEnvelope]:
        if not host_text:
            return None
        match = _BLOCK_PATTERN.search(host_text)
        if match is None:
            return None
        try:
            return self.decode(match.group(1))
        except MalformedSnapshotError as exc:
            logger.warning("ignoring malformed state snapshot: %s", exc)
            return None

    def embed(self, original_text: str, envelope: StateEnvelope) -> str:
        body = strip_snapshot(original_text or "")
        block = self.encode(envelope)
        if not body:
            return block
        return f"{body}\n\n{block}"

    def strip(self, text: str) -> str:
        return strip_snapshot(text)

    def is_stale(
        self,
        envelope: Optional[StateEnvelope],
        max_age: timedelta,
        now: datetime | None = None,
    ) -> bool:
        if envelope is None:
            return True
        current = ensure_utc(now) if now is not None else utc_now()
        return current - ensure_utc(envelope.last_updated) > max_age

    def create_version(
        self,
        state: IssueState,
        command: Optional[str],
        client_id: str,
        now: datetime | None = None,
    ) -> StateEnvelope:
        return StateEnvelope(
            state_version=1,
            last_updated=ensure_utc(now) if now is not None else utc_now(),
            last_updated_by=client_id,
            last_command=command,
            data=state.clone(),
        )

    def increment_version(
        self,
        current: StateEnvelope,
        state: IssueState,
        command: Optional[str],
        client_id: str,
        now: datetime | None = None,
    ) -> StateEnvelope:
        return StateEnvelope(
            state_version=current.state_version + 1,
            last_updated=ensure_utc(now) if now is not None else utc_now(),
            last_updated_by=client_id,
            last_command=command,
            data=state.clone(),
            schema_version=current.schema_version,
        )


CODEC = SnapshotCodec()

__all__ = [
    "BEGIN_MARKER",
    "CODEC",
    "END_MARKER",
    "MalformedSnapshotError",
    "SCHEMA_VERSION",
    "SnapshotCodec",
    "StateEnvelope",
    "strip_snapshot",
]
