"""Fold an issue's command history into its current state.

The issue body is the first entry of the log (stamped with the issue creation
time), followed by every comment in ascending creation order. Each
``/notnow <name> <args>`` occurrence is applied to a single accumulator using
the timestamp of the block it was found in as "now". Occurrences whose name
has no reducer are skipped; nothing here raises for bad input.

Replays are pure: generated identifiers are counters derived from the state
itself, so the same inputs always produce the same state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from notnow.domain.commands.grammar import iter_occurrences, strip_metadata_blocks
from notnow.domain.commands.values import (
    ensure_utc,
    format_hours_minutes,
    parse_date,
    sum_duration_units,
)

from .records import CommentRecord, IssueRecord
from .snapshot import strip_snapshot
from .state import SUBTASK_DONE, SUBTASK_PENDING, IssueState, Subtask, WorkSession

COMMAND_ALIASES: Dict[str, str] = {
    "assignee": "assign",
    "tag": "tags",
    "labels": "tags",
    "deadline": "due",
    "done": "complete",
    "finish": "complete",
    "task": "subtask",
    "log": "time",
    "track": "time",
    "begin": "start",
    "pause": "stop",
    "end": "stop",
}

_QUOTED_TITLE = re.compile(r'"([^"]+)"')
_BARE_TITLE = re.compile(r"^([^-]+)(?:\s+--|\s*$)")
_ID_OPTION = re.compile(r"--id\s+(\S+)")
_ESTIMATE_OPTION = re.compile(r"--estimate\s+(\S+)")
_ASSIGNEE_OPTION = re.compile(r"--assignee\s+@?(\S+)")
_TIME_OPTION = re.compile(r"--time\s+(\S+)")
_DATE_OPTION = re.compile(r"--date\s+(\S+)")
_DESCRIPTION_OPTIONS = (
    re.compile(r'--description\s+"([^"]+)"'),
    re.compile(r'-d\s+"([^"]+)"'),
)
_TAG_ACTIONS = {"add", "remove", "set", "list"}


@dataclass(frozen=True)
class SourceBlock:
    text: str
    timestamp: datetime
    author: str = ""


Reducer = Callable[[IssueState, str, datetime, str], None]


def _extract_description(args: str) -> Optional[str]:
    for pattern in _DESCRIPTION_OPTIONS:
        match = pattern.search(args)
        if match:
            return match.group(1)
    return None


def _leading_text(args: str) -> str:
    """Return the words before the first option-like token."""

    words: List[str] = []
    for token in args.split():
        if token.startswith("-"):
            break
        words.append(token)
    return " ".join(words)


def _target_id(text: str) -> str:
    id_match = _ID_OPTION.search(text)
    if id_match:
        return id_match.group(1)
    return _leading_text(text).split(" ")[0]


def _next_session_id(state: IssueState) -> str:
    count = len(state.sessions) + (1 if state.active_session is not None else 0)
    return f"ws{count + 1}"


def next_subtask_id(subtasks: Iterable[Subtask]) -> str:
    """``st<N+1>`` for N existing subtasks, skipping ids that are already taken."""

    existing = [subtask.id for subtask in subtasks]
    taken = set(existing)
    candidate = len(existing) + 1
    while f"st{candidate}" in taken:
        candidate += 1
    return f"st{candidate}"


def split_subtask_title(text: str) -> Tuple[Optional[str], str]:
    """Split ``text`` into (title, remaining option text)."""

    quoted = _QUOTED_TITLE.search(text)
    if quoted:
        return quoted.group(1), text[quoted.end():].strip()
    bare = _BARE_TITLE.match(text)
    if bare:
        title = bare.group(1).strip()
        if title:
            return title, text[len(bare.group(1)):].strip()
    if text.strip() and not text.startswith("--"):
        return text.strip(), ""
    return None, text


class IssueStateReplayer:
    """Reducer over ``/notnow`` command occurrences."""

    def __init__(self, aliases: Mapping[str, str] | None = None) -> None:
        self._aliases = dict(COMMAND_ALIASES if aliases is None else aliases)
        self._reducers: Dict[str, Reducer] = {
            "init": self._init,
            "status": self._status,
            "priority": self._priority,
            "type": self._type,
            "assign": self._assign,
            "estimate": self._estimate,
            "due": self._due,
            "tags": self._tags,
            "subtask": self._subtask,
            "start": self._start,
            "stop": self._stop,
            "time": self._time,
            "complete": self._complete,
            "reopen": self._reopen,
        }

    @property
    def command_names(self) -> List[str]:
        return sorted(self._reducers)

    def canonical_name(self, name: str) -> str:
        lowered = name.lower()
        return self._aliases.get(lowered, lowered)

    def handles(self, name: str) -> bool:
        return self.canonical_name(name) in self._reducers

    def replay(self, issue: IssueRecord, comments: Iterable[CommentRecord]) -> IssueState:
        blocks = [SourceBlock(issue.body or "", issue.created_at, issue.author)]
        ordered = sorted(comments, key=lambda comment: ensure_utc(comment.created_at))
        blocks.extend(SourceBlock(comment.body or "", comment.created_at, comment.author) for comment in ordered)
        return self.replay_blocks(blocks, issue_number=issue.number, title=issue.title)

    def replay_blocks(
        self,
        blocks: Iterable[SourceBlock],
        *,
        issue_number: int = 0,
        title: str = "",
    ) -> IssueState:
        state = IssueState(issue_number=issue_number, title=title)
        for block in blocks:
            self._fold(state, block)
        state.recompute_time_spent()
        return state

    def apply_text(self, state: IssueState, text: str, timestamp: datetime, author: str = "") -> IssueState:
        """Return a copy of ``state`` with the commands in ``text`` folded in."""

        updated = state.clone()
        self._fold(updated, SourceBlock(text, timestamp, author))
        updated.recompute_time_spent()
        return updated

    def _fold(self, state: IssueState, block: SourceBlock) -> None:
        text = strip_metadata_blocks(strip_snapshot(block.text))
        now = ensure_utc(block.timestamp)
        for occurrence in iter_occurrences(text):
            reducer = self._reducers.get(self.canonical_name(occurrence.name))
            if reducer is None:
                continue
            state.last_updated = now
            reducer(state, occurrence.arguments, now, block.author)

    # scalar fields

    def _init(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        state.is_initialized = True

    def _status(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        value = _leading_text(args)
        if value:
            state.status = value.lower()

    def _priority(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        value = _leading_text(args)
        if value:
            state.priority = value.lower()

    def _type(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        value = _leading_text(args)
        if value:
            state.type = value.lower()

    def _assign(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        user = _leading_text(args).lstrip("@")
        if user:
            state.assignee = user

    def _estimate(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        if not args:
            return
        duration = sum_duration_units(args)
        state.estimate = format_hours_minutes(duration) if duration is not None else args

    def _due(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        parsed = parse_date(args)
        if parsed is not None:
            state.due_date = parsed

    def _tags(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        action = "add"
        payload = args
        parts = args.split(None, 1)
        if len(parts) == 2 and parts[0].lower() in _TAG_ACTIONS:
            action, payload = parts[0].lower(), parts[1]
        if action == "list" or args.strip().lower() == "list":
            return
        tags = [tag.strip() for tag in payload.split(",") if tag.strip()]
        if action == "remove":
            state.tags = [tag for tag in state.tags if tag not in tags]
            return
        merged = [] if action == "set" else list(state.tags)
        merged.extend(tags)
        state.tags = list(dict.fromkeys(merged))

    # subtasks

    def _subtask(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        text = args.strip()
        if text.lower().startswith("add "):
            text = text[4:].strip()
        lowered = text.lower()

        if lowered.startswith("complete "):
            target = state.find_subtask(_target_id(text[9:]))
            if target is not None:
                target.status = SUBTASK_DONE
                target.completed_at = now
            return
        if lowered.startswith("remove "):
            subtask_id = _target_id(text[7:])
            state.subtasks = [subtask for subtask in state.subtasks if subtask.id != subtask_id]
            return
        if lowered == "list":
            return

        title, remaining = split_subtask_title(text)
        if not title:
            return
        id_match = _ID_OPTION.search(remaining)
        estimate_match = _ESTIMATE_OPTION.search(remaining)
        assignee_match = _ASSIGNEE_OPTION.search(remaining)
        subtask = Subtask(
            id=id_match.group(1) if id_match else next_subtask_id(state.subtasks),
            title=title,
            estimate=estimate_match.group(1) if estimate_match else None,
            assignee=assignee_match.group(1) if assignee_match else None,
        )
        # replace-by-id: the new entry wins wholesale and moves to the end
        state.subtasks = [existing for existing in state.subtasks if existing.id != subtask.id]
        state.subtasks.append(subtask)

    def _complete(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        subtask_id = _leading_text(args).split(" ")[0] if args else ""
        if not subtask_id:
            state.status = "done"
            for subtask in state.subtasks:
                subtask.status = SUBTASK_DONE
                subtask.completed_at = now
            return

        target = state.find_subtask(subtask_id)
        if target is not None:
            target.status = SUBTASK_DONE
            target.completed_at = now
        time_match = _TIME_OPTION.search(args)
        if time_match:
            duration = sum_duration_units(time_match.group(1))
            if duration:
                description = f"Completed: {target.title}" if target else "Completed subtask"
                self._add_closed_session(state, now, duration, description, author)

    def _reopen(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        subtask_id = _leading_text(args).split(" ")[0] if args else ""
        if not subtask_id:
            state.status = "todo"
            return
        target = state.find_subtask(subtask_id)
        if target is not None:
            target.status = SUBTASK_PENDING
            target.completed_at = None

    # work sessions

    def _start(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        self._close_active(state, now)
        state.active_session = WorkSession(
            id=_next_session_id(state),
            started_at=now,
            description=_extract_description(args),
            user=author or None,
        )

    def _stop(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        self._close_active(state, now)

    def _time(self, state: IssueState, args: str, now: datetime, author: str) -> None:
        duration = sum_duration_units(_leading_text(args))
        if not duration:
            return
        ended_at = now
        date_match = _DATE_OPTION.search(args)
        if date_match:
            custom = parse_date(date_match.group(1))
            if custom is not None:
                ended_at = datetime.combine(custom.date(), now.timetz())
        self._add_closed_session(state, ended_at, duration, _extract_description(args), author)

    def _add_closed_session(
        self,
        state: IssueState,
        ended_at: datetime,
        duration: timedelta,
        description: Optional[str],
        author: str,
    ) -> None:
        state.sessions.append(
            WorkSession(
                id=_next_session_id(state),
                started_at=ended_at - duration,
                ended_at=ended_at,
                duration=duration,
                description=description,
                user=author or None,
            )
        )

    @staticmethod
    def _close_active(state: IssueState, now: datetime) -> None:
        active = state.active_session
        if active is None:
            return
        active.close(now)
        state.sessions.append(active)
        state.active_session = None


DEFAULT_REPLAYER = IssueStateReplayer()


def replay(issue: IssueRecord, comments: Iterable[CommentRecord]) -> IssueState:
    return DEFAULT_REPLAYER.replay(issue, comments)


def replay_blocks(blocks: Iterable[SourceBlock], *, issue_number: int = 0, title: str = "") -> IssueState:
    return DEFAULT_REPLAYER.replay_blocks(blocks, issue_number=issue_number, title=title)


def apply_text(state: IssueState, text: str, timestamp: datetime, author: str = "") -> IssueState:
    return DEFAULT_REPLAYER.apply_text(state, text, timestamp, author)


__all__ = [
    "COMMAND_ALIASES",
    "DEFAULT_REPLAYER",
    "IssueStateReplayer",
    "SourceBlock",
    "apply_text",
    "next_subtask_id",
    "replay",
    "replay_blocks",
    "split_subtask_title",
]
