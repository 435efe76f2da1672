"""Catalog of command registrations keyed by name and alias."""

from __future__ import annotations

from typing import Dict, List, Optional

from notnow.domain.commands.models import DuplicateModuleError
from notnow.domain.commands.schema import CommandContext, CommandModule, CommandRegistration

from .handlers import HandlerServices


class CommandRegistry:
    """Case-insensitive table of registrations.

    Primary names and aliases share one table; registering a key that is
    already present replaces the earlier entry.
    """

    def __init__(self, services: HandlerServices | None = None) -> None:
        self._services = services or HandlerServices()
        self._commands: Dict[str, CommandRegistration] = {}
        self._modules: Dict[str, CommandModule] = {}

    @property
    def services(self) -> HandlerServices:
        return self._services

    def register_module(self, module: CommandModule) -> None:
        if module.name in self._modules:
            raise DuplicateModuleError(module.name)
        self._modules[module.name] = module
        for registration in module.get_commands():
            self.register_command(registration)
        module.on_initialize(self._services)

    def register_command(self, registration: CommandRegistration) -> None:
        for name in registration.names():
            self._commands[name.lower()] = registration

    def get_command(self, name: str) -> Optional[CommandRegistration]:
        if not name:
            return None
        return self._commands.get(name.lower())

    def get_all_commands(self) -> List[CommandRegistration]:
        return _distinct(self._commands.values())

    def get_modules(self) -> List[CommandModule]:
        return list(self._modules.values())

    def get_commands_for_context(self, context: CommandContext) -> List[CommandRegistration]:
        return [registration for registration in self.get_all_commands() if registration.context.allows(context)]

    def is_command_available(self, name: str, context: CommandContext) -> bool:
        registration = self.get_command(name)
        return registration is not None and registration.context.allows(context)

    def get_command_names(self, context: CommandContext | None = None) -> List[str]:
        registrations = self.get_all_commands() if context is None else self.get_commands_for_context(context)
        return [registration.name for registration in registrations]

    def get_command_suggestions(self, prefix: str, context: CommandContext) -> List[str]:
        needle = (prefix or "").strip().lower()
        names = {
            name
            for registration in self.get_commands_for_context(context)
            for name in registration.names()
            if name.lower().startswith(needle)
        }
        return sorted(names, key=str.lower)


def _distinct(registrations) -> List[CommandRegistration]:
    seen: set[int] = set()
    ordered: List[CommandRegistration] = []
    for registration in registrations:
        if id(registration) in seen:
            continue
        seen.add(id(registration))
        ordered.append(registration)
    return ordered


__all__ = ["CommandRegistry"]
