"""Handler contract and the services handed to handler factories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from notnow.domain.commands.models import CommandArgs, CommandResult, ExecutionContext
from notnow.domain.issues.state import IssueState
from notnow.ports.issues.backend import IssueBackend
from notnow.settings import RuntimeSettings


@dataclass(frozen=True)
class HandlerServices:
    backend: Optional[IssueBackend] = None
    settings: Optional[RuntimeSettings] = None


class CommandHandler(Protocol):  # pragma: no cover
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        ...


class BaseHandler:
    """Convenience base; subclasses are their own handler factory."""

    def __init__(self, services: HandlerServices) -> None:
        self.services = services

    @staticmethod
    def state_of(context: ExecutionContext) -> IssueState:
        if context.state is not None:
            return context.state
        return IssueState(issue_number=context.issue_number)

    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        raise NotImplementedError


__all__ = ["BaseHandler", "CommandHandler", "HandlerServices"]
