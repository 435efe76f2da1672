"""Load command modules published through entry points."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List

from notnow.domain.commands.schema import CommandModule
from notnow.plugins import iter_entry_points

logger = logging.getLogger(__name__)


class PluginLoadError(RuntimeError):
    """Raised when an entry point does not provide a command module."""


def _is_module(candidate: Any) -> bool:
    return (
        isinstance(getattr(candidate, "name", None), str)
        and callable(getattr(candidate, "get_commands", None))
        and callable(getattr(candidate, "on_initialize", None))
    )


def resolve_module(target: Any, source: str = "<plugin>") -> CommandModule:
    """Accept a module object, a module class or a zero-argument factory."""

    if _is_module(target) and not isinstance(target, type):
        return target
    if callable(target):
        produced = target()
        if _is_module(produced):
            return produced
    raise PluginLoadError(f"entry point {source} did not provide a command module")


def load_modules(entry_points: Iterable[Any] | None = None) -> List[CommandModule]:
    modules: List[CommandModule] = []
    for entry_point in entry_points if entry_points is not None else iter_entry_points():
        module = resolve_module(entry_point.load(), entry_point.name)
        logger.debug("loaded command module %s from entry point %s", module.name, entry_point.name)
        modules.append(module)
    return modules


__all__ = ["PluginLoadError", "load_modules", "resolve_module"]
