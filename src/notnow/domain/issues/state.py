"""Materialised issue state produced by command replay."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from notnow.domain.commands.values import format_timespan, isoformat, parse_date, parse_timespan

SUBTASK_PENDING = "pending"
SUBTASK_DONE = "done"


def _dt(value: Optional[datetime]) -> Optional[str]:
    return isoformat(value) if value is not None else None


def _parse_dt(value: Any, field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    parsed = parse_date(str(value))
    if parsed is None:
        raise ValueError(f"{field_name} is not a valid timestamp: {value!r}")
    return parsed


@dataclass
class Subtask:
    id: str
    title: str
    status: str = SUBTASK_PENDING
    estimate: Optional[str] = None
    assignee: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def is_done(self) -> bool:
        return self.status == SUBTASK_DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "estimate": self.estimate,
            "assignee": self.assignee,
            "completedAt": _dt(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Subtask":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            status=str(data.get("status", SUBTASK_PENDING)),
            estimate=data.get("estimate"),
            assignee=data.get("assignee"),
            completed_at=_parse_dt(data.get("completedAt"), "completedAt"),
        )


@dataclass
class WorkSession:
    id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration: timedelta = field(default_factory=timedelta)
    description: Optional[str] = None
    user: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def close(self, ended_at: datetime) -> None:
        self.ended_at = ended_at
        self.duration = ended_at - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startedAt": _dt(self.started_at),
            "endedAt": _dt(self.ended_at),
            "duration": format_timespan(self.duration),
            "description": self.description,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkSession":
        started_at = _parse_dt(data.get("startedAt"), "startedAt")
        if started_at is None:
            raise ValueError("work session startedAt is required")
        duration_raw = data.get("duration")
        return cls(
            id=str(data["id"]),
            started_at=started_at,
            ended_at=_parse_dt(data.get("endedAt"), "endedAt"),
            duration=parse_timespan(duration_raw) if duration_raw else timedelta(0),
            description=data.get("description"),
            user=data.get("user"),
        )


@dataclass(frozen=True)
class TaskCounts:
    open: int
    total: int

    @property
    def display(self) -> str:
        return f"[{self.open}/{self.total}]" if self.total > 0 else ""


@dataclass
class IssueState:
    issue_number: int = 0
    title: str = ""
    status: str = "todo"
    priority: str = "medium"
    type: Optional[str] = None
    assignee: Optional[str] = None
    estimate: Optional[str] = None
    due_date: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    subtasks: List[Subtask] = field(default_factory=list)
    sessions: List[WorkSession] = field(default_factory=list)
    active_session: Optional[WorkSession] = None
    total_time_spent: timedelta = field(default_factory=timedelta)
    last_updated: Optional[datetime] = None
    is_initialized: bool = False

    def clone(self) -> "IssueState":
        return copy.deepcopy(self)

    def find_subtask(self, subtask_id: str) -> Optional[Subtask]:
        for subtask in self.subtasks:
            if subtask.id == subtask_id:
                return subtask
        return None

    def recompute_time_spent(self) -> None:
        self.total_time_spent = sum((session.duration for session in self.sessions), timedelta(0))

    def task_counts(self) -> TaskCounts:
        open_count = sum(1 for subtask in self.subtasks if not subtask.is_done)
        return TaskCounts(open=open_count, total=len(self.subtasks))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issueNumber": self.issue_number,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "type": self.type,
            "assignee": self.assignee,
            "estimate": self.estimate,
            "dueDate": _dt(self.due_date),
            "tags": list(self.tags),
            "subtasks": [subtask.to_dict() for subtask in self.subtasks],
            "sessions": [session.to_dict() for session in self.sessions],
            "activeSession": self.active_session.to_dict() if self.active_session else None,
            "totalTimeSpent": format_timespan(self.total_time_spent),
            "lastUpdated": _dt(self.last_updated),
            "isInitialized": self.is_initialized,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IssueState":
        active = data.get("activeSession")
        total_raw = data.get("totalTimeSpent")
        return cls(
            issue_number=int(data.get("issueNumber", 0)),
            title=str(data.get("title", "")),
            status=str(data.get("status", "todo")),
            priority=str(data.get("priority", "medium")),
            type=data.get("type"),
            assignee=data.get("assignee"),
            estimate=data.get("estimate"),
            due_date=_parse_dt(data.get("dueDate"), "dueDate"),
            tags=[str(tag) for tag in data.get("tags") or []],
            subtasks=[Subtask.from_dict(item) for item in data.get("subtasks") or []],
            sessions=[WorkSession.from_dict(item) for item in data.get("sessions") or []],
            active_session=WorkSession.from_dict(active) if active else None,
            total_time_spent=parse_timespan(total_raw) if total_raw else timedelta(0),
            last_updated=_parse_dt(data.get("lastUpdated"), "lastUpdated"),
            is_initialized=bool(data.get("isInitialized", False)),
        )


__all__ = [
    "IssueState",
    "SUBTASK_DONE",
    "SUBTASK_PENDING",
    "Subtask",
    "TaskCounts",
    "WorkSession",
]
