"""Render executed commands as an issue comment and post it."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

from notnow.domain.commands.models import CommandResult, ExecutionResult
from notnow.domain.commands.values import ensure_utc, utc_now
from notnow.ports.issues.backend import IssueBackend, IssueBackendError
from notnow.settings import SETTINGS, RuntimeSettings
from notnow.utils.telemetry import COMMENT_FAILED, COMMENT_POSTED, record_event

METADATA_OPEN = "<!-- notnow-metadata"
METADATA_CLOSE = "-->"

logger = logging.getLogger(__name__)


def _hours(data: Dict[str, Any]) -> Optional[str]:
    hours = data.get("totalHours")
    if not isinstance(hours, (int, float)):
        return None
    return f"{hours:.1f}h" if hours >= 1 else f"{int(hours * 60)}m"


def _display(result: CommandResult) -> str:
    """Short, bolded summary of what a successful command changed."""

    data = result.data if isinstance(result.data, dict) else {}
    message = result.message
    if "newStatus" in data:
        return f"Status changed to **{data['newStatus']}**"
    if "newAssignee" in data:
        return f"Assigned to **{data['newAssignee']}**"
    if message.startswith("Logged") and _hours(data):
        return f"Logged **{_hours(data)}** of work"
    if message.startswith("Priority") and "priority" in data:
        return f"Priority set to **{data['priority']}**"
    if message.startswith("Due date") and "dueDate" in data:
        return f"Due date set to **{str(data['dueDate'])[:10]}**"
    if message.startswith("Work session started"):
        return "⏱️ Started work session"
    if message.startswith("Work session stopped") and "duration" in data:
        return f"⏹️ Stopped work session (duration: **{data['duration']}**)"
    if message.startswith("Added subtask") and "id" in data:
        return f"Added subtask: **{data.get('title')}** (`{data['id']}`)"
    if message.startswith("Completed subtask") and "title" in data:
        return f"✅ Completed subtask: **{data['title']}**"
    return message


class CommandPoster:
    def __init__(
        self,
        backend: IssueBackend,
        clock: Callable[[], datetime] | None = None,
        *,
        settings: RuntimeSettings | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock or utc_now
        self._settings = settings or SETTINGS

    def format_comment(
        self,
        command_text: str,
        result: ExecutionResult,
        executed_at: datetime | None = None,
        rejected: Sequence[str] = (),
    ) -> str:
        executed = ensure_utc(executed_at or self._clock())
        metadata: Dict[str, Any] = {
            "executed": f"{executed:%Y-%m-%d %H:%M:%S} UTC",
            "success": result.success,
            "summary": result.summary,
            "results": [self._metadata_entry(item) for item in result.results],
        }
        if rejected:
            metadata["rejected"] = list(rejected)
        dumped = yaml.safe_dump(metadata, sort_keys=False, allow_unicode=True, default_flow_style=False)
        # the block lives inside an HTML comment
        dumped = dumped.replace(METADATA_CLOSE, "-- >")

        lines: List[str] = [command_text.rstrip(), "", METADATA_OPEN, dumped.rstrip("\n"), METADATA_CLOSE]
        if not result.success:
            lines += ["", "> ⚠️ **Command execution had errors:**"]
            lines += [f"> - {item.error}" for item in result.results if not item.success]
        elif result.results:
            lines += ["", "> ✅ **Command executed successfully**"]
            lines += [f"> - {_display(item)}" for item in result.results]
        return "\n".join(lines) + "\n"

    def post(
        self,
        issue_number: int,
        command_text: str,
        result: ExecutionResult,
        rejected: Sequence[str] = (),
    ) -> bool:
        return self.publish(issue_number, self.format_comment(command_text, result, rejected=rejected))

    def publish(self, issue_number: int, comment: str) -> bool:
        try:
            self._backend.add_comment(issue_number, comment)
        except IssueBackendError as exc:
            logger.warning("failed to post commands to issue #%s: %s", issue_number, exc)
            record_event(
                self._settings,
                COMMENT_FAILED,
                issue=issue_number,
                payload={"error": str(exc)},
                level="warn",
                status="failed",
                component="poster",
            )
            return False
        record_event(
            self._settings,
            COMMENT_POSTED,
            issue=issue_number,
            payload={"chars": len(comment)},
            status="success",
            component="poster",
        )
        return True

    @staticmethod
    def _metadata_entry(result: CommandResult) -> Dict[str, Any]:
        if not result.success:
            return {"status": "failed", "error": result.error}
        entry: Dict[str, Any] = {"status": "success", "message": result.message}
        if result.data is not None:
            entry["data"] = result.data
        return entry


__all__ = ["CommandPoster", "METADATA_OPEN"]
