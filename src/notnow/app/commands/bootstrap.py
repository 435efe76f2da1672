"""One-time wiring of the command registry."""

from __future__ import annotations

from typing import Iterable

from notnow.domain.commands.schema import CommandModule
from notnow.plugins.loader import load_modules

from .handlers import HandlerServices
from .registry import CommandRegistry


def build_registry(
    services: HandlerServices | None = None,
    *,
    extra_modules: Iterable[CommandModule] = (),
    discover_plugins: bool = False,
) -> CommandRegistry:
    """Create a registry holding the built-in modules plus any extras.

    Raises ``DuplicateModuleError`` when two modules share a name.
    """

    from notnow.modules import builtin_modules  # modules import this package

    registry = CommandRegistry(services)
    for module in builtin_modules():
        registry.register_module(module)
    for module in extra_modules:
        registry.register_module(module)
    if discover_plugins:
        for module in load_modules():
            registry.register_module(module)
    return registry


__all__ = ["build_registry"]
