"""Value coercion helpers shared by the parser, handlers and replay."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from .schema import ParamType

DURATION_PATTERN = re.compile(r"(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?", re.IGNORECASE)
_UNIT_PATTERN = re.compile(r"(\d+)([hms])", re.IGNORECASE)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def parse_duration(value: str | None) -> timedelta:
    """Parse ``2h30m``-style literals anchored at the start of ``value``.

    Missing components count as zero; text that does not start with a
    component yields a zero duration.
    """

    if not value:
        return timedelta(0)
    match = DURATION_PATTERN.match(value)
    if match is None:
        return timedelta(0)
    hours, minutes, seconds = (int(group) if group else 0 for group in match.groups())
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def sum_duration_units(value: str | None) -> timedelta | None:
    """Sum every ``<n>h`` / ``<n>m`` / ``<n>s`` unit found in ``value``.

    Returns ``None`` when no unit is present, so callers can tell "unparseable"
    apart from an explicit zero.
    """

    if not value or not value.strip():
        return None
    total = timedelta(0)
    found = False
    for amount, unit in _UNIT_PATTERN.findall(value):
        found = True
        number = int(amount)
        unit = unit.lower()
        if unit == "h":
            total += timedelta(hours=number)
        elif unit == "m":
            total += timedelta(minutes=number)
        else:
            total += timedelta(seconds=number)
    return total if found else None


def format_hours_minutes(value: timedelta) -> str:
    total_minutes = int(value.total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def format_compact(value: timedelta) -> str:
    total_minutes = int(value.total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h{minutes}m"


def format_timespan(value: timedelta) -> str:
    """Render a duration as ``[d.]hh:mm:ss``."""

    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{sign}{days}.{clock}" if days else f"{sign}{clock}"


_TIMESPAN_PATTERN = re.compile(r"^(-)?(?:(\d+)\.)?(\d{1,2}):(\d{2}):(\d{2})(?:\.\d+)?$")


def parse_timespan(value: str) -> timedelta:
    match = _TIMESPAN_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"invalid timespan '{value}'")
    sign, days, hours, minutes, seconds = match.groups()
    span = timedelta(days=int(days or 0), hours=int(hours), minutes=int(minutes), seconds=int(seconds))
    return -span if sign else span


def parse_date(value: str | None) -> datetime | None:
    """Best-effort calendar parse; ``None`` when nothing matches."""

    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return ensure_utc(datetime.fromisoformat(candidate))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return 0


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered in {"true", "1"}


def coerce_value(value: str, target: ParamType, *, now: datetime | None = None) -> Any:
    """Convert a raw token to ``target``; never raises.

    Unparseable dates fall back to ``now`` (lossy by contract).
    """

    if target is ParamType.STRING:
        return value
    if target is ParamType.INTEGER:
        return parse_int(value)
    if target is ParamType.BOOLEAN:
        return parse_bool(value)
    if target is ParamType.DATE:
        parsed = parse_date(value)
        return parsed if parsed is not None else (now or utc_now())
    if target is ParamType.DURATION:
        return parse_duration(value)
    return value


__all__ = [
    "DURATION_PATTERN",
    "coerce_value",
    "ensure_utc",
    "format_compact",
    "format_hours_minutes",
    "format_timespan",
    "isoformat",
    "parse_bool",
    "parse_date",
    "parse_duration",
    "parse_int",
    "parse_timespan",
    "sum_duration_units",
    "utc_now",
]
