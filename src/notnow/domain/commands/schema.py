"""Declarative command schemas and registrations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, Flag
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Protocol, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from notnow.app.commands.handlers import CommandHandler, HandlerServices


class CommandContext(Flag):
    """Surface a command may run in."""

    NONE = 0
    ISSUE_BODY = 1
    COMMENT = 2
    BOTH = ISSUE_BODY | COMMENT

    def allows(self, other: "CommandContext") -> bool:
        if not other:
            return False
        return (self & other) == other

    @property
    def label(self) -> str:
        labels = {
            CommandContext.NONE: "None",
            CommandContext.ISSUE_BODY: "IssueBody",
            CommandContext.COMMENT: "Comment",
            CommandContext.BOTH: "Both",
        }
        return labels.get(self, str(self))


class ParamType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DURATION = "duration"


Validator = Callable[[Any], bool]
HandlerFactory = Callable[["HandlerServices"], "CommandHandler"]


@dataclass(frozen=True)
class CommandParameter:
    name: str
    type: ParamType = ParamType.STRING
    required: bool = False
    default: Any = None
    description: str = ""
    validator: Optional[Validator] = None
    # consumes every positional token up to the next option
    rest: bool = False


@dataclass(frozen=True)
class CommandOption:
    long_name: str
    short_name: str = ""
    type: ParamType = ParamType.STRING
    required: bool = False
    default: Any = None
    description: str = ""


@dataclass(frozen=True)
class CommandSchema:
    parameters: Sequence[CommandParameter] = ()
    options: Sequence[CommandOption] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "options", tuple(self.options))
        seen: set[str] = set()
        for param in self.parameters:
            if param.name in seen:
                raise ValueError(f"duplicate parameter '{param.name}' in schema")
            seen.add(param.name)

    def find_long_option(self, name: str) -> CommandOption | None:
        lowered = name.lower()
        for option in self.options:
            if option.long_name.lower() == lowered:
                return option
        return None

    def find_short_option(self, name: str) -> CommandOption | None:
        lowered = name.lower()
        for option in self.options:
            if option.short_name and option.short_name.lower() == lowered:
                return option
        return None


@dataclass(frozen=True, eq=False)
class CommandRegistration:
    """Catalog entry binding a command name (and aliases) to a handler factory."""

    name: str
    context: CommandContext
    handler: Optional[HandlerFactory] = None
    schema: CommandSchema = field(default_factory=CommandSchema)
    aliases: Sequence[str] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("command name must be a non-empty string")
        object.__setattr__(self, "aliases", tuple(self.aliases))

    def names(self) -> List[str]:
        return [self.name, *self.aliases]


class CommandModule(Protocol):  # pragma: no cover
    name: str
    version: str

    def get_commands(self) -> List[CommandRegistration]:
        ...

    def on_initialize(self, services: "HandlerServices") -> None:
        ...


__all__ = [
    "CommandContext",
    "CommandModule",
    "CommandOption",
    "CommandParameter",
    "CommandRegistration",
    "CommandSchema",
    "HandlerFactory",
    "ParamType",
    "Validator",
]
