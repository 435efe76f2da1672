from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from notnow.adapters.issues.file_backend import FileIssueBackend
from notnow.app.commands import CommandParser
from notnow.app.issues import CommandPoster, IssueServiceError, IssueStateService, split_applied
from notnow.app.issues.posting import METADATA_OPEN
from notnow.domain.commands import CommandResult, ExecutionResult
from notnow.domain.issues.snapshot import BEGIN_MARKER, CODEC
from notnow.ports.issues.backend import IssueBackendError

T0 = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class _OfflineBackend(FileIssueBackend):
    def add_comment(self, number, body):
        raise IssueBackendError("network unreachable")


def _metadata(comment: str) -> dict:
    start = comment.index(METADATA_OPEN) + len(METADATA_OPEN)
    end = comment.index("-->", start)
    return yaml.safe_load(comment[start:end])


@pytest.fixture
def backend(tmp_path: Path) -> FileIssueBackend:
    store = FileIssueBackend(tmp_path, {"path": "issues.json", "author": "notnow-bot"}, clock=lambda: T0)
    store.create_issue("Tracker", "Body text\n/notnow init")
    return store


@pytest.fixture
def clock() -> _Clock:
    return _Clock(datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def service(backend, settings, clock) -> IssueStateService:
    return IssueStateService(backend, settings=settings, clock=clock)


def test_format_comment_success(clock) -> None:
    poster = CommandPoster(backend=None, clock=clock)  # type: ignore[arg-type]
    result = ExecutionResult(
        results=[CommandResult.ok("Status changed to 'done'", {"newStatus": "done", "note": "a --> b"})]
    )

    comment = poster.format_comment("/notnow status done", result)

    assert comment.startswith("/notnow status done\n\n<!-- notnow-metadata\n")
    assert "a -- > b" in comment
    metadata = _metadata(comment)
    assert metadata["executed"] == "2025-03-10 09:30:00 UTC"
    assert metadata["success"] is True
    assert metadata["summary"] == "all 1 succeeded"
    assert metadata["results"] == [
        {"status": "success", "message": "Status changed to 'done'", "data": {"newStatus": "done", "note": "a -- > b"}}
    ]
    assert "rejected" not in metadata
    assert comment.rstrip().endswith("> ✅ **Command executed successfully**\n> - Status changed to **done**")


def test_format_comment_lists_errors_and_rejected(clock) -> None:
    poster = CommandPoster(backend=None, clock=clock)  # type: ignore[arg-type]
    result = ExecutionResult(
        results=[CommandResult.ok("Priority set to high", {"priority": "high"}), CommandResult.failure("Status is required")]
    )

    comment = poster.format_comment("/notnow priority high", result, rejected=["/notnow status"])

    metadata = _metadata(comment)
    assert metadata["success"] is False
    assert metadata["rejected"] == ["/notnow status"]
    assert metadata["results"][1] == {"status": "failed", "error": "Status is required"}
    assert "> ⚠️ **Command execution had errors:**\n> - Status is required" in comment


def test_split_applied_drops_failed_occurrences(registry, now) -> None:
    text = "Working on it.\n/notnow status in_progress\n/notnow priority urgent\n/notnow start"
    parsed = CommandParser(registry).parse(text, now=now)
    result = ExecutionResult(
        results=[CommandResult.ok("ok"), CommandResult.failure("Invalid priority"), CommandResult.ok("ok")]
    )

    applied, rejected = split_applied(text, parsed, result)

    assert applied == "Working on it.\n/notnow status in_progress\n\n/notnow start"
    assert rejected == ["/notnow priority urgent"]


def test_run_commands_posts_only_applied_commands(service, backend) -> None:
    text = "/notnow status in_progress\n/notnow priority urgent\n/notnow start"

    run = asyncio.run(service.run_commands(1, text, "alice"))

    assert run.posted
    assert run.result.succeeded == 2
    assert run.result.failed == 1
    assert run.state.status == "in_progress"
    assert run.state.active_session.user == "alice"

    (posted,) = backend.list_comments(1)
    assert posted.body == run.comment
    assert posted.body.startswith("/notnow status in_progress\n\n/notnow start\n\n")
    assert _metadata(posted.body)["rejected"] == ["/notnow priority urgent"]

    state = service.load_state(1)
    assert state.is_initialized
    assert state.status == "in_progress"
    assert state.priority == "medium"
    assert state.active_session is not None


def test_run_commands_without_posting(service, backend) -> None:
    run = asyncio.run(service.run_commands(1, "/notnow priority high", "alice", post=False))

    assert not run.posted
    assert run.comment is None
    assert run.state.priority == "high"
    assert backend.list_comments(1) == []


def test_run_commands_reports_failed_post(tmp_path, settings, clock) -> None:
    offline = _OfflineBackend(tmp_path, {"path": "offline.json"}, clock=lambda: T0)
    offline.create_issue("Offline", "")
    service = IssueStateService(offline, settings=settings, clock=clock)

    run = asyncio.run(service.run_commands(1, "/notnow priority low", "alice"))

    assert run.result.success
    assert not run.posted
    assert run.comment is not None


def test_run_commands_requires_a_command(service) -> None:
    with pytest.raises(IssueServiceError, match="no /notnow commands"):
        asyncio.run(service.run_commands(1, "just chatting", "alice"))


def test_load_state_unknown_issue(service) -> None:
    with pytest.raises(IssueServiceError, match="cannot load issue #99"):
        service.load_state(99)


def test_refresh_snapshot_versions(service, backend, clock) -> None:
    first = service.refresh_snapshot(1, command="/notnow init")
    assert first.changed
    assert first.envelope.state_version == 1
    assert first.envelope.last_updated_by == "notnow"

    body = backend.get_issue(1).body
    assert body.startswith("Body text\n/notnow init\n\n" + BEGIN_MARKER)
    assert CODEC.extract(body) == first.envelope

    unchanged = service.refresh_snapshot(1)
    assert not unchanged.changed
    assert unchanged.envelope == first.envelope

    asyncio.run(service.run_commands(1, "/notnow priority high", "alice"))
    updated = service.refresh_snapshot(1, command="/notnow priority high", client_id="worker-2")
    assert updated.changed
    assert updated.envelope.state_version == 2
    assert updated.envelope.data.priority == "high"
    assert updated.envelope.last_updated_by == "worker-2"

    clock.now += timedelta(hours=2)
    stale = service.refresh_snapshot(1)
    assert stale.changed
    assert stale.envelope.state_version == 3
    assert backend.get_issue(1).body.count(BEGIN_MARKER) == 1


def test_create_issue(service, backend) -> None:
    created = service.create_issue("  Second  ", "/notnow init", labels=["bug"], assignees=["bob"])

    assert created.number == 2
    assert created.title == "Second"
    assert created.labels == ["bug"]
    assert [issue.number for issue in backend.list_issues()] == [1, 2]

    with pytest.raises(IssueServiceError, match="title must not be empty"):
        service.create_issue("   ")


def _events(settings) -> list[dict]:
    log = settings.log_dir / "telemetry.jsonl"
    return [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]


def test_posting_and_snapshot_refresh_are_logged(service, settings, monkeypatch) -> None:
    monkeypatch.setenv("NOTNOW_TELEMETRY", "1")

    asyncio.run(service.run_commands(1, "/notnow priority high", "alice"))
    service.refresh_snapshot(1, command="/notnow priority high")
    service.refresh_snapshot(1)

    events = _events(settings)
    assert [(event["event"], event["issue"], event["status"]) for event in events] == [
        ("commands.batch", 1, "success"),
        ("comment.posted", 1, "success"),
        ("snapshot.written", 1, "success"),
        ("snapshot.current", 1, "unchanged"),
    ]
    assert events[1]["component"] == "poster"
    assert events[2]["payload"] == {"version": 1, "updatedBy": "notnow"}


def test_failed_post_is_logged_as_warning(tmp_path, settings, clock, monkeypatch) -> None:
    monkeypatch.setenv("NOTNOW_TELEMETRY", "1")
    offline = _OfflineBackend(tmp_path, {"path": "offline.json"}, clock=lambda: T0)
    offline.create_issue("Offline", "")

    asyncio.run(IssueStateService(offline, settings=settings, clock=clock).run_commands(1, "/notnow stop", "alice"))

    failed = _events(settings)[-1]
    assert failed["event"] == "comment.failed"
    assert failed["level"] == "warn"
    assert failed["payload"] == {"error": "network unreachable"}
