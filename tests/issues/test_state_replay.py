from __future__ import annotations

from datetime import datetime, timedelta, timezone

from notnow.domain.issues.records import CommentRecord, IssueRecord
from notnow.domain.issues.replay import SourceBlock, apply_text, replay, replay_blocks
from notnow.domain.issues.snapshot import CODEC
from notnow.domain.issues.state import IssueState

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _issue(body: str = "", number: int = 42) -> IssueRecord:
    return IssueRecord(number=number, title="Tracker", body=body, created_at=T0, author="owner")


def _comment(cid: str, body: str, minutes: int, author: str = "alice") -> CommentRecord:
    return CommentRecord(id=cid, body=body, created_at=T0 + timedelta(minutes=minutes), author=author)


def _blocks(*texts: str) -> list[SourceBlock]:
    return [SourceBlock(text, T0 + timedelta(minutes=10 * index), "alice") for index, text in enumerate(texts)]


def test_body_then_comments_in_chronological_order() -> None:
    issue = _issue("/notnow init\n/notnow priority low")
    comments = [
        _comment("2", "/notnow status done", 20),
        _comment("1", "/notnow status in_progress", 10),
    ]

    state = replay(issue, comments)

    assert state.issue_number == 42
    assert state.title == "Tracker"
    assert state.is_initialized
    assert state.priority == "low"
    assert state.status == "done"
    assert state.last_updated == T0 + timedelta(minutes=20)


def test_replay_is_deterministic() -> None:
    issue = _issue("/notnow init")
    comments = [
        _comment("1", '/notnow start -d "spike"', 5),
        _comment("2", "/notnow subtask \"Write docs\" --estimate 2h\n/notnow stop", 65),
        _comment("3", "/notnow time 30m --date 2025-02-27", 70),
    ]
    first = replay(issue, comments)
    second = replay(issue, list(reversed(comments)))

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_second_start_closes_active_session() -> None:
    state = replay_blocks(_blocks("/notnow start", "/notnow start -d \"second\""))

    assert len(state.sessions) == 1
    closed = state.sessions[0]
    assert closed.id == "ws1"
    assert closed.duration == timedelta(minutes=10)
    assert closed.user == "alice"
    assert state.active_session.id == "ws2"
    assert state.active_session.description == "second"
    assert state.total_time_spent == timedelta(minutes=10)


def test_stop_without_active_session_is_a_no_op() -> None:
    state = replay_blocks(_blocks("/notnow stop"))
    assert state.sessions == []
    assert state.active_session is None


def test_time_creates_retroactive_session() -> None:
    state = replay_blocks(_blocks('/notnow log 1h30m -d "review"', "/notnow time 45m --date 2025-02-20"))

    first, second = state.sessions
    assert first.duration == timedelta(hours=1, minutes=30)
    assert first.ended_at == T0
    assert first.started_at == T0 - timedelta(hours=1, minutes=30)
    assert first.description == "review"
    assert second.ended_at == datetime(2025, 2, 20, 9, 10, tzinfo=timezone.utc)
    assert state.total_time_spent == timedelta(hours=2, minutes=15)


def test_time_without_duration_is_ignored() -> None:
    state = replay_blocks(_blocks("/notnow time soon"))
    assert state.sessions == []


def test_tags_are_idempotent_union() -> None:
    state = replay_blocks(_blocks("/notnow tags a,b", "/notnow tags a, c"))
    assert sorted(state.tags) == ["a", "b", "c"]


def test_tag_actions() -> None:
    state = replay_blocks(_blocks("/notnow labels a,b,c", "/notnow tag remove b", "/notnow tags set x, y"))
    assert state.tags == ["x", "y"]


def test_subtask_replace_by_id() -> None:
    state = replay_blocks(
        _blocks(
            '/notnow subtask "First" --id st1',
            '/notnow subtask "Second"',
            '/notnow subtask "Renamed" --id st1 --estimate 3h --assignee @bob',
        )
    )
    assert [(s.id, s.title) for s in state.subtasks] == [("st2", "Second"), ("st1", "Renamed")]
    renamed = state.find_subtask("st1")
    assert renamed.estimate == "3h"
    assert renamed.assignee == "bob"


def test_subtask_sub_grammar() -> None:
    state = replay_blocks(
        _blocks(
            "/notnow subtask add Write docs --estimate 1h",
            "/notnow task Deploy",
            "/notnow subtask complete st1",
            "/notnow subtask remove st2",
            "/notnow subtask list",
        )
    )
    assert [(s.id, s.title, s.status) for s in state.subtasks] == [("st1", "Write docs", "done")]
    assert state.subtasks[0].completed_at == T0 + timedelta(minutes=20)


def test_generated_subtask_id_skips_taken_ids() -> None:
    state = replay_blocks(_blocks('/notnow subtask "A" --id st2', '/notnow subtask "B"'))
    assert [s.id for s in state.subtasks] == ["st2", "st3"]


def test_complete_and_reopen() -> None:
    state = replay_blocks(
        _blocks(
            '/notnow subtask "A"',
            '/notnow subtask "B"',
            "/notnow done st1 --time 20m",
            "/notnow reopen st1",
            "/notnow complete",
        )
    )
    assert state.status == "done"
    assert all(s.is_done for s in state.subtasks)
    assert [s.description for s in state.sessions] == ["Completed: A"]
    assert state.total_time_spent == timedelta(minutes=20)

    reopened = apply_text(state, "/notnow reopen", T0 + timedelta(hours=1))
    assert reopened.status == "todo"
    assert state.status == "done"


def test_scalar_fields_and_aliases() -> None:
    state = replay_blocks(
        _blocks(
            "/notnow status In_Progress",
            "/notnow assignee @carol",
            "/notnow estimate 2h30m",
            "/notnow deadline 2025-04-01",
            "/notnow type Bug",
            "/notnow estimate whenever",
            "/notnow due not-a-date",
        )
    )
    assert state.status == "in_progress"
    assert state.assignee == "carol"
    assert state.estimate == "whenever"
    assert state.due_date == datetime(2025, 4, 1, tzinfo=timezone.utc)
    assert state.type == "bug"


def test_estimate_is_total_hours() -> None:
    state = replay_blocks(_blocks("/notnow estimate 26h5m"))
    assert state.estimate == "26:05"


def test_unknown_commands_do_not_touch_state() -> None:
    state = replay_blocks(_blocks("/notnow frobnicate", "/notnow comment hi"))
    assert state == IssueState()


def test_snapshot_and_metadata_blocks_are_ignored() -> None:
    stale = IssueState(status="blocked")
    body = CODEC.embed("/notnow init", CODEC.create_version(stale, "/notnow status blocked", "bot", now=T0))
    posted = "/notnow priority high\n\n<!-- notnow-metadata\nrejected:\n- /notnow status blocked\n-->"

    state = replay(_issue(body), [_comment("1", posted, 5)])

    assert state.is_initialized
    assert state.status == "todo"
    assert state.priority == "high"


def test_apply_text_leaves_input_untouched() -> None:
    original = IssueState(issue_number=1)
    updated = apply_text(original, "/notnow priority critical\n/notnow start", T0, "dave")

    assert original.priority == "medium"
    assert original.active_session is None
    assert updated.priority == "critical"
    assert updated.active_session.user == "dave"


def test_scalar_fields_ignore_trailing_options() -> None:
    state = replay_blocks(
        _blocks(
            '/notnow status in_progress --reason "waiting on review"',
            "/notnow priority high -r escalated",
            "/notnow type bug --reason triage",
            "/notnow assign @erin --notify",
        )
    )

    assert state.status == "in_progress"
    assert state.priority == "high"
    assert state.type == "bug"
    assert state.assignee == "erin"


def test_tag_listing_leaves_tags_alone() -> None:
    state = replay_blocks(_blocks("/notnow tags a,b", "/notnow tags list", "/notnow tags list extra"))
    assert state.tags == ["a", "b"]
