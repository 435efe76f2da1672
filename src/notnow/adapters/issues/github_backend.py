"""GitHub Issues backend."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import requests

from notnow.domain.commands.values import parse_date
from notnow.domain.issues.records import CommentRecord, IssueRecord, IssueRecordError
from notnow.ports.issues.backend import IssueBackend, IssueBackendError, check_state_filter

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"


@dataclass
class GitHubAuthConfig:
    token_env: str | None

    def resolve(self) -> str:
        if not self.token_env:
            raise IssueBackendError("github backend requires token_env for API usage")
        token = os.environ.get(self.token_env)
        if not token:
            raise IssueBackendError(
                f"github backend token missing in environment variable '{self.token_env}'"
            )
        return token


class GitHubIssueBackend(IssueBackend):
    def __init__(self, options: Dict[str, Any], session: requests.Session | None = None) -> None:
        self._owner = options.get("owner")
        self._repo = options.get("repo")
        if not self._owner or not self._repo:
            raise IssueBackendError("github backend requires 'owner' and 'repo'")
        self._api_url = str(options.get("api_url") or DEFAULT_API_URL).rstrip("/")
        self._auth_config = GitHubAuthConfig(token_env=options.get("token_env", DEFAULT_TOKEN_ENV))
        self._session = session or requests.Session()

    @property
    def repository(self) -> str:
        return f"{self._owner}/{self._repo}"

    def list_issues(self, state: str = "open") -> List[IssueRecord]:
        items = self._get_paginated(self._url("issues"), {"state": check_state_filter(state), "per_page": 100})
        return [_to_issue(item) for item in items if isinstance(item, dict) and not item.get("pull_request")]

    def get_issue(self, number: int) -> IssueRecord:
        payload = self._request("GET", self._url(f"issues/{number}"))
        if payload.get("pull_request"):
            raise IssueBackendError(f"#{number} is a pull request, not an issue")
        return _to_issue(payload)

    def list_comments(self, number: int) -> List[CommentRecord]:
        items = self._get_paginated(self._url(f"issues/{number}/comments"), {"per_page": 100})
        return [_to_comment(item) for item in items if isinstance(item, dict)]

    def create_issue(
        self,
        title: str,
        body: str,
        labels: Optional[Sequence[str]] = None,
        assignees: Optional[Sequence[str]] = None,
    ) -> IssueRecord:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        if assignees:
            payload["assignees"] = list(assignees)
        return _to_issue(self._request("POST", self._url("issues"), json=payload))

    def add_comment(self, number: int, body: str) -> CommentRecord:
        return _to_comment(self._request("POST", self._url(f"issues/{number}/comments"), json={"body": body}))

    def update_issue(
        self,
        number: int,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        state: Optional[str] = None,
    ) -> IssueRecord:
        payload: Dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if state is not None:
            if state not in {"open", "closed"}:
                raise IssueBackendError(f"unsupported issue state '{state}'")
            payload["state"] = state
        if not payload:
            return self.get_issue(number)
        return _to_issue(self._request("PATCH", self._url(f"issues/{number}"), json=payload))

    def _url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self._owner}/{self._repo}/{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._auth_config.resolve()}",
        }

    def _request(self, method: str, url: str, *, json: Dict[str, Any] | None = None) -> Dict[str, Any]:
        response = self._session.request(method, url, json=json, headers=self._headers(), timeout=30)
        if response.status_code >= 400:
            raise IssueBackendError(f"github backend request failed: {response.status_code} {response.text}")
        payload = response.json()
        if not isinstance(payload, dict):
            raise IssueBackendError("github backend returned a non-object payload")
        return payload

    def _get_paginated(self, url: str, params: Dict[str, Any]) -> List[Any]:
        headers = self._headers()
        items: List[Any] = []
        next_url: str | None = url
        while next_url:
            response = self._session.get(next_url, params=params, headers=headers, timeout=30)
            params = {}  # subsequent pages use link headers only
            if response.status_code >= 400:
                raise IssueBackendError(f"github backend request failed: {response.status_code} {response.text}")
            page_items = response.json()
            if isinstance(page_items, list):
                items.extend(page_items)
            next_url = _next_link(response.headers.get("Link"))
        return items


def _login(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("login") or "")
    return ""


def _to_issue(item: Dict[str, Any]) -> IssueRecord:
    labels = item.get("labels") or []
    try:
        return IssueRecord(
            number=int(item["number"]),
            title=str(item.get("title") or ""),
            body=str(item.get("body") or ""),
            state=str(item.get("state") or "open").lower(),
            created_at=_created_at(item),
            author=_login(item.get("user")),
            labels=[label.get("name") if isinstance(label, dict) else str(label) for label in labels],
            url=item.get("html_url"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise IssueBackendError(f"github backend returned an invalid issue: {exc}") from exc


def _to_comment(item: Dict[str, Any]) -> CommentRecord:
    try:
        return CommentRecord(
            id=str(item["id"]),
            body=str(item.get("body") or ""),
            created_at=_created_at(item),
            author=_login(item.get("user")),
            url=item.get("html_url"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise IssueBackendError(f"github backend returned an invalid comment: {exc}") from exc


def _created_at(item: Dict[str, Any]) -> datetime:
    parsed = parse_date(str(item.get("created_at") or ""))
    if parsed is None:
        raise IssueRecordError(f"created_at missing or invalid: {item.get('created_at')!r}")
    return parsed


def _next_link(link_header: str | None) -> str | None:
    if not link_header:
        return None
    parts = [part.strip() for part in link_header.split(",")]
    for part in parts:
        if "rel=\"next\"" in part:
            url_part, _ = part.split(";", 1)
            return url_part.strip(" <>")
    return None


__all__ = ["GitHubAuthConfig", "GitHubIssueBackend"]
