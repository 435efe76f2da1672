"""Built-in command modules."""

from __future__ import annotations

from typing import List

from notnow.domain.commands.schema import CommandModule

from .collaboration import CollaborationModule
from .core import CoreModule
from .subtasks import SubtasksModule
from .time_tracking import TimeTrackingModule


def builtin_modules() -> List[CommandModule]:
    return [CoreModule(), TimeTrackingModule(), SubtasksModule(), CollaborationModule()]


__all__ = [
    "CollaborationModule",
    "CoreModule",
    "SubtasksModule",
    "TimeTrackingModule",
    "builtin_modules",
]
