"""Work session and time logging commands."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import List

from notnow.app.commands.handlers import BaseHandler, HandlerServices
from notnow.domain.commands.models import CommandArgs, CommandResult, ExecutionContext
from notnow.domain.commands.schema import (
    CommandContext,
    CommandOption,
    CommandParameter,
    CommandRegistration,
    CommandSchema,
    ParamType,
)
from notnow.domain.commands.values import ensure_utc, format_compact, isoformat, parse_duration

DEFAULT_REPORT_WINDOW = timedelta(days=30)

_TIME_TOKEN = re.compile(r"^\d+[hm]", re.IGNORECASE)


class TimeHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        raw = args.get_parameter("duration", "", str)
        description = args.get_option("description")
        duration = parse_duration(raw)
        if not duration:
            return CommandResult.failure("Invalid duration format. Use format like '2h30m'")
        logged_on = ensure_utc(args.get_option("date") or context.timestamp)
        message = f"Logged {raw}"
        if description:
            message += f" - {description}"
        return CommandResult.ok(
            message,
            {
                "duration": format_compact(duration),
                "totalHours": round(duration.total_seconds() / 3600, 2),
                "description": description,
                "date": f"{logged_on:%Y-%m-%d}",
                "loggedBy": context.user,
            },
        )


class StartHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        active = self.state_of(context).active_session
        description = args.get_option("description")
        message = "Work session started"
        if description:
            message += f" - {description}"
        data = {"startedAt": isoformat(context.timestamp), "description": description, "user": context.user}
        if active is not None:
            elapsed = ensure_utc(context.timestamp) - ensure_utc(active.started_at)
            message += f" (closing session {active.id} after {format_compact(elapsed)})"
            data["closedSession"] = active.id
        return CommandResult.ok(message, data)


class StopHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        active = self.state_of(context).active_session
        if active is None:
            return CommandResult.failure("No active work session found")
        description = args.get_option("description")
        duration = ensure_utc(context.timestamp) - ensure_utc(active.started_at)
        message = f"Work session stopped. Duration: {format_compact(duration)}"
        if description:
            message += f" - {description}"
        return CommandResult.ok(
            message,
            {
                "session": active.id,
                "startedAt": isoformat(active.started_at),
                "endedAt": isoformat(context.timestamp),
                "duration": format_compact(duration),
                "description": description or active.description,
            },
        )


class SessionHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        active = self.state_of(context).active_session
        if active is None:
            return CommandResult.ok("No active work session", {"active": False})
        started = ensure_utc(active.started_at)
        elapsed = ensure_utc(context.timestamp) - started
        return CommandResult.ok(
            f"Active session: {format_compact(elapsed)} (started {started:%H:%M})",
            {
                "active": True,
                "session": active.id,
                "startedAt": isoformat(started),
                "elapsed": format_compact(elapsed),
                "description": active.description,
                "user": active.user,
            },
        )


class TimeSpentHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        state = self.state_of(context)
        user = args.get_option("user")
        user = user.lstrip("@") if user else None
        until = ensure_utc(args.get_option("to") or context.timestamp)
        since = ensure_utc(args.get_option("from") or (until - DEFAULT_REPORT_WINDOW))

        total = timedelta(0)
        count = 0
        for session in state.sessions:
            if user and (session.user or "").lstrip("@") != user:
                continue
            day = ensure_utc(session.ended_at or session.started_at).date()
            if not since.date() <= day <= until.date():
                continue
            total += session.duration
            count += 1

        message = f"Total time spent: {format_compact(total)}"
        if user:
            message += f" by {user}"
        message += f" ({since:%Y-%m-%d} to {until:%Y-%m-%d})"
        return CommandResult.ok(
            message,
            {
                "total": format_compact(total),
                "totalHours": round(total.total_seconds() / 3600, 2),
                "sessions": count,
                "user": user,
                "from": f"{since:%Y-%m-%d}",
                "to": f"{until:%Y-%m-%d}",
            },
        )


def _description_option() -> CommandOption:
    return CommandOption("description", "d", description="Work description")


class TimeTrackingModule:
    name = "TimeTracking"
    version = "1.0.0"

    def get_commands(self) -> List[CommandRegistration]:
        return [
            CommandRegistration(
                name="time",
                aliases=("log", "track"),
                description="Log time spent",
                context=CommandContext.COMMENT,
                handler=TimeHandler,
                schema=CommandSchema(
                    parameters=[
                        CommandParameter(
                            "duration",
                            required=True,
                            description="Duration, e.g. 2h30m",
                            validator=lambda value: bool(_TIME_TOKEN.match(str(value))),
                        )
                    ],
                    options=[
                        _description_option(),
                        CommandOption("date", type=ParamType.DATE, description="Day the work happened"),
                    ],
                ),
            ),
            CommandRegistration(
                name="start",
                aliases=("begin",),
                description="Start a work session",
                context=CommandContext.COMMENT,
                handler=StartHandler,
                schema=CommandSchema(options=[_description_option()]),
            ),
            CommandRegistration(
                name="stop",
                aliases=("pause", "end"),
                description="Stop the active work session",
                context=CommandContext.COMMENT,
                handler=StopHandler,
                schema=CommandSchema(options=[_description_option()]),
            ),
            CommandRegistration(
                name="session",
                description="Show the active work session",
                context=CommandContext.COMMENT,
                handler=SessionHandler,
            ),
            CommandRegistration(
                name="timespent",
                aliases=("total",),
                description="Report time spent",
                context=CommandContext.COMMENT,
                handler=TimeSpentHandler,
                schema=CommandSchema(
                    options=[
                        CommandOption("user", "u", description="Only sessions by this user"),
                        CommandOption("from", type=ParamType.DATE, description="Start of the window"),
                        CommandOption("to", type=ParamType.DATE, description="End of the window"),
                    ]
                ),
            ),
        ]

    def on_initialize(self, services: HandlerServices) -> None:
        return None


__all__ = ["TimeTrackingModule"]
