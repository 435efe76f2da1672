"""Port for issue trackers that store the command log."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from notnow.domain.issues.records import CommentRecord, IssueRecord

ISSUE_STATES = ("open", "closed", "all")


class IssueBackendError(RuntimeError):
    """Raised when a backend call fails or returns an unusable payload."""


class IssueBackend(ABC):
    """Abstract issue tracker holding issue bodies and comment history."""

    @abstractmethod
    def list_issues(self, state: str = "open") -> List[IssueRecord]:
        """Return issues filtered by ``open``, ``closed`` or ``all``."""

    @abstractmethod
    def get_issue(self, number: int) -> IssueRecord:
        """Return a single issue; raise ``IssueBackendError`` if it is unknown."""

    @abstractmethod
    def list_comments(self, number: int) -> List[CommentRecord]:
        """Return every comment on the issue in creation order."""

    @abstractmethod
    def create_issue(
        self,
        title: str,
        body: str,
        labels: Optional[Sequence[str]] = None,
        assignees: Optional[Sequence[str]] = None,
    ) -> IssueRecord:
        """Create an issue and return it."""

    @abstractmethod
    def add_comment(self, number: int, body: str) -> CommentRecord:
        """Append a comment to the issue."""

    @abstractmethod
    def update_issue(
        self,
        number: int,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        state: Optional[str] = None,
    ) -> IssueRecord:
        """Patch the given fields; ``None`` leaves a field untouched."""

    def close_issue(self, number: int) -> IssueRecord:
        return self.update_issue(number, state="closed")

    def reopen_issue(self, number: int) -> IssueRecord:
        return self.update_issue(number, state="open")


def check_state_filter(state: str) -> str:
    normalised = (state or "").strip().lower()
    if normalised not in ISSUE_STATES:
        raise IssueBackendError(f"unsupported issue state filter '{state}'")
    return normalised


__all__ = ["ISSUE_STATES", "IssueBackend", "IssueBackendError", "check_state_filter"]
