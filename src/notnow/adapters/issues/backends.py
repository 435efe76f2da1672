"""Factory helpers for issue backends."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from notnow.ports.issues.backend import IssueBackend, IssueBackendError

from .file_backend import FileIssueBackend
from .github_backend import GitHubIssueBackend

_SECRET_KEYS = {"token", "api_token", "password"}


@dataclass(frozen=True)
class BackendBuildResult:
    backend: IssueBackend
    report_config: Dict[str, Any]


def build_backend_from_config(project_root: Path, config: Dict[str, Any]) -> BackendBuildResult:
    if "type" not in config or not isinstance(config["type"], str):
        raise IssueBackendError("backend.config_invalid: missing backend type")
    backend_type = config["type"].strip().lower()

    raw_options = config.get("options", {})
    if not isinstance(raw_options, dict):
        raise IssueBackendError("backend.config_invalid: options must be object")
    options: Dict[str, Any] = dict(raw_options)

    if backend_type == "file":
        if "path" not in options:
            raise IssueBackendError("backend.config_invalid: options.path required for file backend")
        backend: IssueBackend = FileIssueBackend(project_root, options)
    elif backend_type == "github":
        backend = GitHubIssueBackend(options)
    else:
        raise IssueBackendError(f"backend.not_supported: {backend_type}")

    report_config = {
        "type": config["type"],
        "options": _sanitise_options(options),
    }
    return BackendBuildResult(backend=backend, report_config=report_config)


def _sanitise_options(options: Dict[str, Any]) -> Dict[str, Any]:
    def _mask(value: Any) -> Any:
        if isinstance(value, dict):
            masked: Dict[str, Any] = {}
            for key, item in value.items():
                if key in _SECRET_KEYS and item:
                    masked[key] = "***"
                else:
                    masked[key] = _mask(item)
            return masked
        if isinstance(value, list):
            return [_mask(item) for item in value]
        return value

    return _mask(options)


__all__ = ["BackendBuildResult", "build_backend_from_config"]
