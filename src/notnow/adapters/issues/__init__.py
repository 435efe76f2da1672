"""Issue backend adapters."""

from .backends import BackendBuildResult, build_backend_from_config
from .file_backend import FileIssueBackend
from .github_backend import GitHubIssueBackend

__all__ = ["BackendBuildResult", "FileIssueBackend", "GitHubIssueBackend", "build_backend_from_config"]
