"""Parse, dispatch and result models for embedded commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, TypeVar

from .schema import CommandContext, CommandRegistration
from .values import utc_now

if TYPE_CHECKING:  # pragma: no cover
    from notnow.domain.issues.state import IssueState

T = TypeVar("T")


class DuplicateModuleError(RuntimeError):
    """Raised when a command module name is registered twice."""

    def __init__(self, module_name: str) -> None:
        self.module_name = module_name
        super().__init__(f"Module {module_name} already registered")


class CommandErrorKind(str, Enum):
    UNKNOWN_COMMAND = "unknown_command"
    CONTEXT_NOT_ALLOWED = "context_not_allowed"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_FIELD_VALUE = "invalid_field_value"
    HANDLER_NOT_FOUND = "handler_not_found"
    HANDLER_EXECUTION_FAILURE = "handler_execution_failure"


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    raw_text: str
    position: int
    registration: Optional[CommandRegistration] = None
    arguments: Mapping[str, Any] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)
    is_valid: bool = True
    error: Optional[str] = None
    error_kind: Optional[CommandErrorKind] = None

    @classmethod
    def invalid(
        cls,
        name: str,
        raw_text: str,
        position: int,
        error: str,
        kind: CommandErrorKind,
        registration: CommandRegistration | None = None,
    ) -> "ParsedCommand":
        return cls(
            name=name,
            raw_text=raw_text,
            position=position,
            registration=registration,
            is_valid=False,
            error=error,
            error_kind=kind,
        )


def _convert(value: Any, default: T, cast: Callable[[Any], T] | None) -> T:
    if value is None:
        return default
    if cast is None:
        return value
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


@dataclass
class CommandArgs:
    """Untyped argument bag handed to handlers."""

    parameters: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_parsed(cls, command: ParsedCommand) -> "CommandArgs":
        return cls(parameters=dict(command.arguments), options=dict(command.options))

    def get_parameter(self, name: str, default: Any = None, cast: Callable[[Any], Any] | None = None) -> Any:
        return _convert(self.parameters.get(name), default, cast)

    def get_option(self, name: str, default: Any = None, cast: Callable[[Any], Any] | None = None) -> Any:
        return _convert(self.options.get(name), default, cast)


@dataclass
class ExecutionContext:
    issue_number: int = 0
    user: str = ""
    timestamp: datetime = field(default_factory=utc_now)
    command_context: CommandContext = CommandContext.COMMENT
    raw_text: str = ""
    state: Optional["IssueState"] = None


@dataclass
class CommandResult:
    success: bool
    message: str = ""
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "CommandResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: str) -> "CommandResult":
        return cls(success=False, message=f"Command failed: {error}", error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class ExecutionResult:
    results: List[CommandResult] = field(default_factory=list)
    state: Optional["IssueState"] = None

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def summary(self) -> str:
        if self.failed == 0:
            return f"all {len(self.results)} succeeded"
        return f"{self.succeeded} succeeded, {self.failed} failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "summary": self.summary,
            "results": [result.to_dict() for result in self.results],
        }


__all__ = [
    "CommandArgs",
    "CommandErrorKind",
    "CommandResult",
    "DuplicateModuleError",
    "ExecutionContext",
    "ExecutionResult",
    "ParsedCommand",
]
