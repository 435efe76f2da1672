"""Issue and comment records exchanged with issue backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from notnow.domain.commands.values import ensure_utc, isoformat, parse_date


class IssueRecordError(ValueError):
    """Raised when an issue or comment payload is invalid."""


def _timestamp(value: Any, label: str) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    parsed = parse_date(str(value)) if value is not None else None
    if parsed is None:
        raise IssueRecordError(f"{label} missing or invalid: {value!r}")
    return parsed


@dataclass(frozen=True)
class CommentRecord:
    id: str
    body: str
    created_at: datetime
    author: str = ""
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "body": self.body,
            "created_at": isoformat(self.created_at),
            "author": self.author,
        }
        if self.url:
            payload["url"] = self.url
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CommentRecord":
        if "id" not in data:
            raise IssueRecordError("comment entry missing id")
        return cls(
            id=str(data["id"]),
            body=str(data.get("body") or ""),
            created_at=_timestamp(data.get("created_at"), "comment created_at"),
            author=str(data.get("author") or ""),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class IssueRecord:
    number: int
    title: str
    body: str
    created_at: datetime
    state: str = "open"
    author: str = ""
    labels: List[str] = field(default_factory=list)
    url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.number <= 0:
            raise IssueRecordError("issue number must be a positive integer")
        if self.state not in {"open", "closed"}:
            raise IssueRecordError(f"issue state must be open or closed, got {self.state!r}")

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "created_at": isoformat(self.created_at),
            "author": self.author,
            "labels": list(self.labels),
        }
        if self.url:
            payload["url"] = self.url
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IssueRecord":
        if "number" not in data:
            raise IssueRecordError("issue entry missing number")
        try:
            number = int(data["number"])
        except (TypeError, ValueError) as exc:
            raise IssueRecordError(f"issue number invalid: {data['number']!r}") from exc
        return cls(
            number=number,
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            created_at=_timestamp(data.get("created_at"), "issue created_at"),
            state=str(data.get("state") or "open").lower(),
            author=str(data.get("author") or ""),
            labels=[str(label) for label in data.get("labels") or []],
            url=data.get("url"),
        )


__all__ = ["CommentRecord", "IssueRecord", "IssueRecordError"]
