"""Command domain exports."""

from .models import (
    CommandArgs,
    CommandErrorKind,
    CommandResult,
    DuplicateModuleError,
    ExecutionContext,
    ExecutionResult,
    ParsedCommand,
)
from .schema import (
    CommandContext,
    CommandModule,
    CommandOption,
    CommandParameter,
    CommandRegistration,
    CommandSchema,
    HandlerFactory,
    ParamType,
)

__all__ = [
    "CommandArgs",
    "CommandContext",
    "CommandErrorKind",
    "CommandModule",
    "CommandOption",
    "CommandParameter",
    "CommandRegistration",
    "CommandResult",
    "CommandSchema",
    "DuplicateModuleError",
    "ExecutionContext",
    "ExecutionResult",
    "HandlerFactory",
    "ParamType",
    "ParsedCommand",
]
