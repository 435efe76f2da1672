"""Entry-point discovery for third-party command modules."""

from __future__ import annotations

from importlib import metadata
from typing import Iterable

ENTRY_POINT_GROUP = "notnow.modules"


def iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=ENTRY_POINT_GROUP)


__all__ = ["ENTRY_POINT_GROUP", "iter_entry_points"]
