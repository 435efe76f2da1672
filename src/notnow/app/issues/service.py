"""Application service tying the backend, executor, replay and snapshot together."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from notnow.app.commands.bootstrap import build_registry
from notnow.app.commands.executor import CommandExecutor
from notnow.app.commands.handlers import HandlerServices
from notnow.app.commands.registry import CommandRegistry
from notnow.domain.commands.models import ExecutionContext, ExecutionResult, ParsedCommand
from notnow.domain.commands.schema import CommandContext
from notnow.domain.commands.values import utc_now
from notnow.domain.issues.records import IssueRecord
from notnow.domain.issues.replay import DEFAULT_REPLAYER, IssueStateReplayer
from notnow.domain.issues.snapshot import CODEC, SnapshotCodec, StateEnvelope
from notnow.domain.issues.state import IssueState
from notnow.ports.issues.backend import IssueBackend, IssueBackendError
from notnow.settings import DEFAULT_SNAPSHOT_MAX_AGE, SETTINGS, NotNowConfig, RuntimeSettings
from notnow.utils.telemetry import SNAPSHOT_CURRENT, SNAPSHOT_WRITTEN, record_event

from .posting import CommandPoster

logger = logging.getLogger(__name__)


class IssueServiceError(RuntimeError):
    """Raised when an issue operation cannot be completed."""


@dataclass(frozen=True)
class CommandRun:
    issue_number: int
    parsed: List[ParsedCommand]
    result: ExecutionResult
    posted: bool
    comment: Optional[str] = None

    @property
    def state(self) -> Optional[IssueState]:
        return self.result.state


@dataclass(frozen=True)
class SnapshotRefresh:
    envelope: StateEnvelope
    changed: bool


def split_applied(text: str, parsed: Sequence[ParsedCommand], result: ExecutionResult) -> Tuple[str, List[str]]:
    """Drop failed command occurrences from ``text``; return (text, rejected raw texts)."""

    rejected: List[Tuple[int, str]] = [
        (command.position, command.raw_text)
        for command, outcome in zip(parsed, result.results)
        if not outcome.success
    ]
    applied = text
    for position, raw in sorted(rejected, reverse=True):
        applied = applied[:position] + applied[position + len(raw):]
    return applied.strip(), [raw for _, raw in rejected]


class IssueStateService:
    def __init__(
        self,
        backend: IssueBackend,
        registry: CommandRegistry | None = None,
        *,
        config: NotNowConfig | None = None,
        settings: RuntimeSettings | None = None,
        replayer: IssueStateReplayer | None = None,
        codec: SnapshotCodec | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._settings = settings or SETTINGS
        self._registry = registry or build_registry(HandlerServices(backend=backend, settings=self._settings))
        self._config = config
        self._replayer = replayer or DEFAULT_REPLAYER
        self._codec = codec or CODEC
        self._clock = clock or utc_now
        self._executor = CommandExecutor(self._registry, replayer=self._replayer, settings=self._settings)
        self._poster = CommandPoster(backend, clock=self._clock, settings=self._settings)

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    def load_state(self, number: int) -> IssueState:
        try:
            issue = self._backend.get_issue(number)
            comments = self._backend.list_comments(number)
        except IssueBackendError as exc:
            raise IssueServiceError(f"cannot load issue #{number}: {exc}") from exc
        return self._replayer.replay(issue, comments)

    async def run_commands(
        self,
        number: int,
        text: str,
        user: str,
        context: CommandContext = CommandContext.COMMENT,
        post: bool = True,
    ) -> CommandRun:
        state = await asyncio.to_thread(self.load_state, number)
        now = self._clock()
        parsed = self._executor.parser.parse(text, context, now=now)
        if not parsed:
            raise IssueServiceError("no /notnow commands found in text")
        execution_context = ExecutionContext(
            issue_number=number,
            user=user,
            timestamp=now,
            command_context=context,
            raw_text=text,
            state=state,
        )
        result = await self._executor.execute_commands(parsed, execution_context)
        if not post:
            return CommandRun(issue_number=number, parsed=parsed, result=result, posted=False)

        applied, rejected = split_applied(text, parsed, result)
        comment = self._poster.format_comment(applied, result, executed_at=now, rejected=rejected)
        posted = await asyncio.to_thread(self._poster.publish, number, comment)
        return CommandRun(issue_number=number, parsed=parsed, result=result, posted=posted, comment=comment)

    def refresh_snapshot(
        self,
        number: int,
        command: Optional[str] = None,
        client_id: Optional[str] = None,
        max_age: Optional[timedelta] = None,
    ) -> SnapshotRefresh:
        client = client_id or (self._config.client_id if self._config else "notnow")
        age = max_age or (self._config.snapshot_max_age if self._config else DEFAULT_SNAPSHOT_MAX_AGE)
        try:
            issue = self._backend.get_issue(number)
            comments = self._backend.list_comments(number)
        except IssueBackendError as exc:
            raise IssueServiceError(f"cannot load issue #{number}: {exc}") from exc

        fresh = self._replayer.replay(issue, comments)
        now = self._clock()
        current = self._codec.extract(issue.body)
        if (
            current is not None
            and current.data.to_dict() == fresh.to_dict()
            and not self._codec.is_stale(current, age, now=now)
        ):
            self._record_snapshot(number, SNAPSHOT_CURRENT, current, "unchanged")
            return SnapshotRefresh(envelope=current, changed=False)

        if current is None:
            envelope = self._codec.create_version(fresh, command, client, now=now)
        else:
            envelope = self._codec.increment_version(current, fresh, command, client, now=now)
        try:
            self._backend.update_issue(number, body=self._codec.embed(issue.body, envelope))
        except IssueBackendError as exc:
            raise IssueServiceError(f"cannot update snapshot on issue #{number}: {exc}") from exc
        logger.debug("issue #%s snapshot now at version %s", number, envelope.state_version)
        self._record_snapshot(number, SNAPSHOT_WRITTEN, envelope, "success")
        return SnapshotRefresh(envelope=envelope, changed=True)

    def _record_snapshot(self, number: int, event: str, envelope: StateEnvelope, status: str) -> None:
        record_event(
            self._settings,
            event,
            issue=number,
            payload={"version": envelope.state_version, "updatedBy": envelope.last_updated_by},
            status=status,
            component="snapshot",
        )

    def create_issue(
        self,
        title: str,
        body: str = "",
        labels: Optional[Sequence[str]] = None,
        assignees: Optional[Sequence[str]] = None,
    ) -> IssueRecord:
        if not title or not title.strip():
            raise IssueServiceError("issue title must not be empty")
        try:
            return self._backend.create_issue(title.strip(), body, labels=labels, assignees=assignees)
        except IssueBackendError as exc:
            raise IssueServiceError(f"cannot create issue: {exc}") from exc


__all__ = ["CommandRun", "IssueServiceError", "IssueStateService", "SnapshotRefresh", "split_applied"]
