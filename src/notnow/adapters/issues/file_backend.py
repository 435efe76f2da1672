"""Local JSON issue store.

The document has the shape ``{"issues": [{..., "comments": [...]}]}``. Every
mutation rewrites the whole file atomically.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from notnow.domain.commands.values import utc_now
from notnow.domain.issues.records import CommentRecord, IssueRecord, IssueRecordError
from notnow.ports.issues.backend import IssueBackend, IssueBackendError, check_state_filter


class FileIssueBackend(IssueBackend):
    def __init__(
        self,
        project_root: Path,
        options: Dict[str, Any],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        raw_path = options.get("path")
        if not raw_path:
            raise IssueBackendError("file backend requires 'path'")
        candidate = Path(str(raw_path))
        self._path = candidate if candidate.is_absolute() else (project_root / candidate).resolve()
        self._author = str(options.get("author") or "")
        self._clock = clock or utc_now

    @property
    def path(self) -> Path:
        return self._path

    def list_issues(self, state: str = "open") -> List[IssueRecord]:
        wanted = check_state_filter(state)
        issues = [_issue_from(entry) for entry in self._load()["issues"]]
        if wanted == "all":
            return issues
        return [issue for issue in issues if issue.state == wanted]

    def get_issue(self, number: int) -> IssueRecord:
        return _issue_from(self._find(self._load(), number))

    def list_comments(self, number: int) -> List[CommentRecord]:
        entry = self._find(self._load(), number)
        return [_comment_from(item) for item in entry.get("comments") or []]

    def create_issue(
        self,
        title: str,
        body: str,
        labels: Optional[Sequence[str]] = None,
        assignees: Optional[Sequence[str]] = None,
    ) -> IssueRecord:
        document = self._load()
        number = max((int(entry.get("number", 0)) for entry in document["issues"]), default=0) + 1
        record = IssueRecord(
            number=number,
            title=title,
            body=body,
            created_at=self._clock(),
            author=self._author,
            labels=list(labels or []),
        )
        entry = record.to_dict()
        entry["assignees"] = list(assignees or [])
        entry["comments"] = []
        document["issues"].append(entry)
        self._save(document)
        return record

    def add_comment(self, number: int, body: str) -> CommentRecord:
        document = self._load()
        entry = self._find(document, number)
        comments = entry.setdefault("comments", [])
        next_id = document.get("next_comment_id") or _max_comment_id(document) + 1
        comment = CommentRecord(id=str(next_id), body=body, created_at=self._clock(), author=self._author)
        comments.append(comment.to_dict())
        document["next_comment_id"] = int(next_id) + 1
        self._save(document)
        return comment

    def update_issue(
        self,
        number: int,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        state: Optional[str] = None,
    ) -> IssueRecord:
        document = self._load()
        entry = self._find(document, number)
        if title is not None:
            entry["title"] = title
        if body is not None:
            entry["body"] = body
        if state is not None:
            if state not in {"open", "closed"}:
                raise IssueBackendError(f"unsupported issue state '{state}'")
            entry["state"] = state
        record = _issue_from(entry)
        self._save(document)
        return record

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {"issues": []}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise IssueBackendError(f"issue store {self._path} is not valid JSON") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("issues", []), list):
            raise IssueBackendError(f"issue store {self._path} must be an object with an 'issues' list")
        payload.setdefault("issues", [])
        return payload

    def _save(self, document: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(self._path, json.dumps(document, indent=2, ensure_ascii=False) + "\n")

    @staticmethod
    def _find(document: Dict[str, Any], number: int) -> Dict[str, Any]:
        for entry in document["issues"]:
            if isinstance(entry, dict) and entry.get("number") == number:
                return entry
        raise IssueBackendError(f"issue #{number} not found")


def _issue_from(entry: Any) -> IssueRecord:
    if not isinstance(entry, dict):
        raise IssueBackendError("each stored issue must be an object")
    try:
        return IssueRecord.from_dict(entry)
    except IssueRecordError as exc:
        raise IssueBackendError(str(exc)) from exc


def _comment_from(entry: Any) -> CommentRecord:
    if not isinstance(entry, dict):
        raise IssueBackendError("each stored comment must be an object")
    try:
        return CommentRecord.from_dict(entry)
    except IssueRecordError as exc:
        raise IssueBackendError(str(exc)) from exc


def _max_comment_id(document: Dict[str, Any]) -> int:
    highest = 0
    for entry in document["issues"]:
        for comment in entry.get("comments") or []:
            try:
                highest = max(highest, int(comment.get("id", 0)))
            except (TypeError, ValueError):
                continue
    return highest


def _atomic_write(path: Path, data: str) -> None:
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data.encode("utf-8"))
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


__all__ = ["FileIssueBackend"]
