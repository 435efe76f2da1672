"""Turn free text into validated, schema-bound commands."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from notnow.domain.commands.grammar import CommandOccurrence, contains_command, iter_occurrences, tokenize
from notnow.domain.commands.models import CommandErrorKind, ParsedCommand
from notnow.domain.commands.schema import (
    CommandContext,
    CommandOption,
    CommandParameter,
    CommandSchema,
    ParamType,
)
from notnow.domain.commands.values import coerce_value, utc_now

from .registry import CommandRegistry


class _Binding:
    """Mutable accumulator for one occurrence; the first error recorded wins."""

    def __init__(self) -> None:
        self.arguments: Dict[str, Any] = {}
        self.options: Dict[str, Any] = {}
        self.error: Optional[str] = None
        self.error_kind: Optional[CommandErrorKind] = None

    def fail(self, message: str, kind: CommandErrorKind) -> None:
        if self.error is None:
            self.error = message
            self.error_kind = kind


def _is_option_like(token: str) -> bool:
    return token.startswith("-")


class CommandParser:
    def __init__(self, registry: CommandRegistry) -> None:
        self._registry = registry

    def contains_command(self, text: str) -> bool:
        return contains_command(text)

    def parse(
        self,
        text: str,
        context: CommandContext = CommandContext.COMMENT,
        *,
        now: datetime | None = None,
    ) -> List[ParsedCommand]:
        """Parse every ``/notnow`` occurrence in ``text``; never raises."""

        reference = now or utc_now()
        return [self._parse_occurrence(occurrence, context, reference) for occurrence in iter_occurrences(text)]

    def _parse_occurrence(
        self,
        occurrence: CommandOccurrence,
        context: CommandContext,
        now: datetime,
    ) -> ParsedCommand:
        name = occurrence.name.lower()
        registration = self._registry.get_command(name)
        if registration is None:
            return ParsedCommand.invalid(
                name,
                occurrence.raw_text,
                occurrence.position,
                f"Unknown command: {name}",
                CommandErrorKind.UNKNOWN_COMMAND,
            )
        if not registration.context.allows(context):
            return ParsedCommand.invalid(
                name,
                occurrence.raw_text,
                occurrence.position,
                f"Command '{name}' not allowed in {context.label}",
                CommandErrorKind.CONTEXT_NOT_ALLOWED,
                registration,
            )

        binding = _Binding()
        self._bind(registration.schema, tokenize(occurrence.arguments), binding, now)
        self._apply_defaults(registration.schema, binding)
        self._check_required(registration.schema, binding)

        return ParsedCommand(
            name=name,
            raw_text=occurrence.raw_text,
            position=occurrence.position,
            registration=registration,
            arguments=binding.arguments,
            options=binding.options,
            is_valid=binding.error is None,
            error=binding.error,
            error_kind=binding.error_kind,
        )

    def _bind(self, schema: CommandSchema, tokens: List[str], binding: _Binding, now: datetime) -> None:
        next_parameter = 0
        index = 0
        while index < len(tokens):
            token = tokens[index]
            if token.startswith("--") and len(token) > 2:
                option = schema.find_long_option(token[2:])
                index = self._bind_option(option, tokens, index, binding, now, strict=True)
                continue
            if len(token) == 2 and token.startswith("-") and token != "--":
                option = schema.find_short_option(token[1])
                index = self._bind_option(option, tokens, index, binding, now, strict=False)
                continue
            if next_parameter < len(schema.parameters):
                parameter = schema.parameters[next_parameter]
                next_parameter += 1
                if parameter.rest:
                    end = index
                    while end < len(tokens) and not _is_option_like(tokens[end]):
                        end += 1
                    self._bind_parameter(parameter, " ".join(tokens[index:end]), binding, now)
                    index = end
                    continue
                self._bind_parameter(parameter, token, binding, now)
            index += 1

    @staticmethod
    def _bind_option(
        option: Optional[CommandOption],
        tokens: List[str],
        index: int,
        binding: _Binding,
        now: datetime,
        *,
        strict: bool,
    ) -> int:
        if option is None:
            return index + 1
        if option.type is ParamType.BOOLEAN:
            binding.options[option.long_name] = True
            return index + 1
        value_index = index + 1
        if value_index < len(tokens) and not _is_option_like(tokens[value_index]):
            binding.options[option.long_name] = coerce_value(tokens[value_index], option.type, now=now)
            return value_index + 1
        if strict:
            binding.fail(f"Option --{option.long_name} requires a value", CommandErrorKind.INVALID_FIELD_VALUE)
        return index + 1

    @staticmethod
    def _bind_parameter(parameter: CommandParameter, token: str, binding: _Binding, now: datetime) -> None:
        value = coerce_value(token, parameter.type, now=now)
        if parameter.validator is not None and not _passes(parameter, value):
            # rejected values are never bound
            binding.fail(
                f"Invalid value for parameter '{parameter.name}': {token}",
                CommandErrorKind.INVALID_FIELD_VALUE,
            )
            return
        binding.arguments[parameter.name] = value

    @staticmethod
    def _apply_defaults(schema: CommandSchema, binding: _Binding) -> None:
        for parameter in schema.parameters:
            if parameter.name not in binding.arguments and parameter.default is not None:
                binding.arguments[parameter.name] = parameter.default
        for option in schema.options:
            if option.long_name not in binding.options and option.default is not None:
                binding.options[option.long_name] = option.default

    @staticmethod
    def _check_required(schema: CommandSchema, binding: _Binding) -> None:
        for parameter in schema.parameters:
            if parameter.required and parameter.name not in binding.arguments:
                binding.fail(
                    f"Required parameter '{parameter.name}' is missing",
                    CommandErrorKind.MISSING_REQUIRED_FIELD,
                )
        for option in schema.options:
            if option.required and option.long_name not in binding.options:
                binding.fail(
                    f"Required option '--{option.long_name}' is missing",
                    CommandErrorKind.MISSING_REQUIRED_FIELD,
                )


def _passes(parameter: CommandParameter, value: Any) -> bool:
    try:
        return bool(parameter.validator(value))  # type: ignore[misc]
    except (TypeError, ValueError):
        return False


__all__ = ["CommandParser"]
