"""Issue backend port."""

from .backend import IssueBackend, IssueBackendError

__all__ = ["IssueBackend", "IssueBackendError"]
