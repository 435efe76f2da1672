from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from notnow.domain.issues.snapshot import (
    BEGIN_MARKER,
    CODEC,
    END_MARKER,
    MalformedSnapshotError,
    StateEnvelope,
    strip_snapshot,
)
from notnow.domain.issues.state import IssueState, Subtask, WorkSession

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _state() -> IssueState:
    return IssueState(
        issue_number=7,
        title="Snapshot",
        status="in_progress",
        tags=["api", "backend"],
        subtasks=[Subtask(id="st1", title="Docs", estimate="1h")],
        sessions=[
            WorkSession(
                id="ws1",
                started_at=T0 - timedelta(hours=2),
                ended_at=T0,
                duration=timedelta(hours=2),
                user="alice",
            )
        ],
        total_time_spent=timedelta(hours=2),
        last_updated=T0,
        is_initialized=True,
    )


def test_embed_then_extract_preserves_body_and_state() -> None:
    envelope = CODEC.create_version(_state(), "/notnow status in_progress", "bot-1", now=T0)
    body = CODEC.embed("Describe the work.\n/notnow init", envelope)

    assert body.startswith("Describe the work.\n/notnow init\n\n" + BEGIN_MARKER)
    assert body.endswith(END_MARKER)

    restored = CODEC.extract(body)
    assert restored == envelope
    assert restored.state_version == 1
    assert restored.last_updated_by == "bot-1"
    assert CODEC.strip(body) == "Describe the work.\n/notnow init"


def test_embed_replaces_existing_block() -> None:
    first = CODEC.create_version(IssueState(issue_number=7), None, "bot", now=T0)
    second = CODEC.increment_version(first, _state(), "/notnow init", "bot", now=T0 + timedelta(minutes=5))

    body = CODEC.embed(CODEC.embed("text", first), second)

    assert body.count(BEGIN_MARKER) == 1
    assert CODEC.extract(body).state_version == 2
    assert second.schema_version == first.schema_version


def test_embed_into_empty_body_is_block_only() -> None:
    envelope = CODEC.create_version(IssueState(), None, "bot", now=T0)
    assert CODEC.embed("", envelope) == CODEC.encode(envelope)
    assert strip_snapshot(CODEC.encode(envelope)) == ""


def test_extract_without_block_returns_none() -> None:
    assert CODEC.extract("plain body") is None
    assert CODEC.extract("") is None


def test_malformed_json_is_ignored_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    body = f"text\n\n{BEGIN_MARKER}\n<!--\n{{not json\n-->\n{END_MARKER}"

    with caplog.at_level(logging.WARNING, logger="notnow.domain.issues.snapshot"):
        assert CODEC.extract(body) is None

    assert "malformed state snapshot" in caplog.text


def test_schema_violation_is_ignored() -> None:
    payload = CODEC.create_version(_state(), None, "bot", now=T0).to_dict()
    payload["stateVersion"] = 0
    body = f"{BEGIN_MARKER}\n<!--\n{json.dumps(payload)}\n-->\n{END_MARKER}"

    assert CODEC.extract(body) is None
    with pytest.raises(MalformedSnapshotError, match="stateVersion"):
        CODEC.decode(json.dumps(payload))


def test_duplicate_tags_fail_validation() -> None:
    payload = CODEC.create_version(_state(), None, "bot", now=T0).to_dict()
    payload["data"]["tags"] = ["api", "api"]

    with pytest.raises(MalformedSnapshotError):
        CODEC.decode(json.dumps(payload))


def test_is_stale() -> None:
    envelope = CODEC.create_version(_state(), None, "bot", now=T0)

    assert not CODEC.is_stale(envelope, timedelta(hours=1), now=T0 + timedelta(minutes=59))
    assert CODEC.is_stale(envelope, timedelta(hours=1), now=T0 + timedelta(minutes=61))
    assert CODEC.is_stale(None, timedelta(hours=1), now=T0)


def test_envelope_owns_a_copy_of_the_state() -> None:
    state = _state()
    envelope = CODEC.create_version(state, None, "bot", now=T0)
    state.tags.append("mutated")

    assert "mutated" not in envelope.data.tags


def test_envelope_dict_uses_wire_names() -> None:
    payload = StateEnvelope(
        state_version=3,
        last_updated=T0,
        last_updated_by="bot",
        data=_state(),
        last_command="/notnow stop",
    ).to_dict()

    assert payload["schemaVersion"] == "2.0"
    assert payload["lastUpdated"] == "2025-03-01T12:00:00Z"
    assert payload["data"]["totalTimeSpent"] == "02:00:00"
    assert payload["data"]["sessions"][0]["duration"] == "02:00:00"
    assert IssueState.from_dict(payload["data"]) == _state()
