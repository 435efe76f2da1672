"""Issue-level services: command runs, posting and snapshots."""

from .posting import CommandPoster
from .service import CommandRun, IssueServiceError, IssueStateService, SnapshotRefresh, split_applied

__all__ = [
    "CommandPoster",
    "CommandRun",
    "IssueServiceError",
    "IssueStateService",
    "SnapshotRefresh",
    "split_applied",
]
