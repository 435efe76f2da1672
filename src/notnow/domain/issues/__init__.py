"""Issue state domain: records, replayed state and snapshots."""

from .records import CommentRecord, IssueRecord, IssueRecordError
from .replay import IssueStateReplayer, SourceBlock, apply_text, replay, replay_blocks
from .snapshot import MalformedSnapshotError, SnapshotCodec, StateEnvelope
from .state import IssueState, Subtask, TaskCounts, WorkSession

__all__ = [
    "CommentRecord",
    "IssueRecord",
    "IssueRecordError",
    "IssueState",
    "IssueStateReplayer",
    "MalformedSnapshotError",
    "SnapshotCodec",
    "SourceBlock",
    "StateEnvelope",
    "Subtask",
    "TaskCounts",
    "WorkSession",
    "apply_text",
    "replay",
    "replay_blocks",
]
