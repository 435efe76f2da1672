"""Sequential, async dispatch of parsed commands to their handlers."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import List, Sequence

from notnow.domain.commands.models import (
    CommandArgs,
    CommandResult,
    ExecutionContext,
    ExecutionResult,
    ParsedCommand,
)
from notnow.domain.issues.replay import DEFAULT_REPLAYER, IssueStateReplayer
from notnow.domain.issues.state import IssueState
from notnow.settings import SETTINGS, RuntimeSettings
from notnow.utils.telemetry import COMMANDS_BATCH, record_event

from .parser import CommandParser
from .registry import CommandRegistry

logger = logging.getLogger(__name__)


class CommandExecutor:
    """Runs a batch one command at a time, in input order.

    A failing command never stops the batch. After every success the command
    text is folded into the running state so later commands see its effect;
    each handler gets its own copy of that state.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        parser: CommandParser | None = None,
        *,
        replayer: IssueStateReplayer | None = None,
        settings: RuntimeSettings | None = None,
    ) -> None:
        self._registry = registry
        self._parser = parser or CommandParser(registry)
        self._replayer = replayer or DEFAULT_REPLAYER
        self._settings = settings or registry.services.settings or SETTINGS

    @property
    def parser(self) -> CommandParser:
        return self._parser

    async def execute(self, text: str, context: ExecutionContext) -> ExecutionResult:
        parsed = self._parser.parse(text, context.command_context, now=context.timestamp)
        return await self.execute_commands(parsed, context)

    async def execute_commands(self, parsed: Sequence[ParsedCommand], context: ExecutionContext) -> ExecutionResult:
        started = time.perf_counter()
        state = context.state.clone() if context.state is not None else IssueState(issue_number=context.issue_number)
        results: List[CommandResult] = []
        for command in parsed:
            per_command = dataclasses.replace(context, raw_text=command.raw_text, state=state.clone())
            result = await self._execute_one(command, per_command)
            results.append(result)
            if result.success:
                state = self._replayer.apply_text(state, command.raw_text, context.timestamp, context.user)

        outcome = ExecutionResult(results=results, state=state)
        logger.debug("issue #%s: %s", context.issue_number, outcome.summary)
        record_event(
            self._settings,
            COMMANDS_BATCH,
            issue=context.issue_number,
            payload={
                "user": context.user,
                "commands": [command.name for command in parsed],
                "succeeded": outcome.succeeded,
                "failed": outcome.failed,
            },
            status=_batch_status(outcome),
            component="executor",
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        return outcome

    async def _execute_one(self, command: ParsedCommand, context: ExecutionContext) -> CommandResult:
        if not command.is_valid:
            return CommandResult.failure(command.error or f"Invalid command '{command.name}'")
        registration = command.registration
        if registration is None:
            return CommandResult.failure(f"Command '{command.name}' not found")
        handler = self._resolve_handler(command)
        if handler is None:
            return CommandResult.failure(f"Handler not found for command '{command.name}'")
        try:
            return await handler.execute(context, CommandArgs.from_parsed(command))
        except Exception as exc:  # handler faults become failed results
            logger.warning("command '%s' raised: %s", command.name, exc, exc_info=True)
            return CommandResult.failure(f"Error executing '{command.name}': {exc}")

    def _resolve_handler(self, command: ParsedCommand):
        factory = command.registration.handler if command.registration else None
        if factory is None:
            return None
        try:
            return factory(self._registry.services)
        except Exception as exc:  # a broken factory counts as a missing handler
            logger.warning("handler for '%s' could not be built: %s", command.name, exc, exc_info=True)
            return None


def _batch_status(outcome: ExecutionResult) -> str:
    if outcome.success:
        return "success"
    return "partial" if outcome.succeeded else "failed"


__all__ = ["CommandExecutor"]
