"""Command registry, parser and executor."""

from .bootstrap import build_registry
from .executor import CommandExecutor
from .handlers import BaseHandler, CommandHandler, HandlerServices
from .parser import CommandParser
from .registry import CommandRegistry

__all__ = [
    "BaseHandler",
    "CommandExecutor",
    "CommandHandler",
    "CommandParser",
    "CommandRegistry",
    "HandlerServices",
    "build_registry",
]
