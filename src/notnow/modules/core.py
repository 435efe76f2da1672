"""Core issue commands: lifecycle, ownership and classification."""

from __future__ import annotations

import re
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
from notnow.domain.commands.values import ensure_utc, isoformat, parse_duration

VALID_STATUSES = ("todo", "in_progress", "review", "testing", "done", "blocked")
VALID_PRIORITIES = ("low", "medium", "high", "critical")
TAG_ACTIONS = ("add", "remove", "set", "list")

_ESTIMATE_TOKEN = re.compile(r"^\d+[hms]", re.IGNORECASE)


def _split_tags(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


class InitHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        kind = args.get_option("type", "task", str)
        priority = args.get_option("priority", "medium", str)
        workflow = args.get_option("workflow", "standard", str)
        data = {
            "initialized": True,
            "initializedAt": isoformat(context.timestamp),
            "type": kind,
            "priority": priority,
            "workflow": workflow,
            "user": context.user,
        }
        return CommandResult.ok(f"Issue initialized as {kind} with {priority} priority", data)


class StatusHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        status = args.get_parameter("status", "", str).lower()
        reason = args.get_option("reason")
        if not status:
            return CommandResult.failure("Status is required")
        if status not in VALID_STATUSES:
            return CommandResult.failure(f"Invalid status. Valid values: {', '.join(VALID_STATUSES)}")
        previous = self.state_of(context).status
        message = f"Status changed to '{status}'"
        if reason:
            message += f": {reason}"
        return CommandResult.ok(
            message,
            {"previousStatus": previous, "newStatus": status, "reason": reason, "updatedBy": context.user},
        )


class AssignHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        user = args.get_parameter("user", "", str)
        if not user:
            return CommandResult.failure("User is required")
        if not user.startswith("@"):
            user = "@" + user
        previous = self.state_of(context).assignee
        return CommandResult.ok(
            f"Issue assigned to {user}",
            {"previousAssignee": previous, "newAssignee": user, "assignedBy": context.user},
        )


class DueHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        due = args.get_parameter("date")
        if due is None:
            return CommandResult.failure("Due date is required")
        due = ensure_utc(due)
        if due.date() < ensure_utc(context.timestamp).date():
            return CommandResult.failure("Due date cannot be in the past")
        return CommandResult.ok(
            f"Due date set to {due:%Y-%m-%d}",
            {"dueDate": isoformat(due), "setBy": context.user},
        )


class EstimateHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        raw = args.get_parameter("duration", "", str)
        update = bool(args.get_option("update", False))
        duration = parse_duration(raw)
        if not duration:
            return CommandResult.failure("Invalid duration format. Use format like '2h30m'")
        action = "updated" if update else "set"
        return CommandResult.ok(
            f"Estimate {action} to {raw}",
            {
                "estimate": raw,
                "totalHours": round(duration.total_seconds() / 3600, 2),
                "isUpdate": update,
                "setBy": context.user,
            },
        )


class TagsHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        action = args.get_parameter("action", "add", str).lower()
        raw_tags = args.get_parameter("tags")
        if action not in TAG_ACTIONS:
            # "/notnow tags a, b" binds the tag list to the action slot
            raw_tags = ",".join(part for part in (args.get_parameter("action", "", str), raw_tags) if part)
            action = "add"
        if action == "list":
            current = list(self.state_of(context).tags)
            message = f"Tags: {', '.join(current)}" if current else "No tags"
            return CommandResult.ok(message, {"action": action, "tags": current})

        tags = _split_tags(raw_tags)
        if not tags:
            return CommandResult.failure("Tags are required")
        messages = {
            "add": f"Added tags: {', '.join(tags)}",
            "remove": f"Removed tags: {', '.join(tags)}",
            "set": f"Tags set to: {', '.join(tags)}",
        }
        return CommandResult.ok(messages[action], {"action": action, "tags": tags, "updatedBy": context.user})


class PriorityHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        level = args.get_parameter("level", "", str).lower()
        if level not in VALID_PRIORITIES:
            return CommandResult.failure(f"Invalid priority. Valid values: {', '.join(VALID_PRIORITIES)}")
        return CommandResult.ok(f"Priority set to {level}", {"priority": level, "setBy": context.user})


class TypeHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        kind = args.get_parameter("kind", "", str).lower()
        if not kind:
            return CommandResult.failure("Type is required")
        return CommandResult.ok(f"Type set to {kind}", {"type": kind, "setBy": context.user})


class CoreModule:
    name = "Core"
    version = "1.0.0"

    def get_commands(self) -> List[CommandRegistration]:
        return [
            CommandRegistration(
                name="init",
                description="Initialize issue tracking",
                context=CommandContext.ISSUE_BODY,
                handler=InitHandler,
                schema=CommandSchema(
                    options=[
                        CommandOption("type", default="task", description="Issue type (bug, feature, task)"),
                        CommandOption("priority", default="medium", description="Initial priority"),
                        CommandOption("workflow", default="standard", description="Workflow template"),
                    ]
                ),
            ),
            CommandRegistration(
                name="status",
                description="Change the issue status",
                context=CommandContext.COMMENT,
                handler=StatusHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("status", required=True, description="New status")],
                    options=[CommandOption("reason", "r", description="Reason for the change")],
                ),
            ),
            CommandRegistration(
                name="assign",
                aliases=("assignee",),
                description="Assign the issue to a user",
                context=CommandContext.BOTH,
                handler=AssignHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("user", required=True, description="Username (with or without @)")],
                ),
            ),
            CommandRegistration(
                name="due",
                aliases=("deadline",),
                description="Set the due date",
                context=CommandContext.BOTH,
                handler=DueHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("date", ParamType.DATE, required=True, description="Due date")],
                ),
            ),
            CommandRegistration(
                name="estimate",
                description="Set the time estimate",
                context=CommandContext.BOTH,
                handler=EstimateHandler,
                schema=CommandSchema(
                    parameters=[
                        CommandParameter(
                            "duration",
                            required=True,
                            description="Estimated duration, e.g. 2h30m",
                            validator=lambda value: bool(_ESTIMATE_TOKEN.match(str(value))),
                        )
                    ],
                    options=[CommandOption("update", type=ParamType.BOOLEAN, description="Update an existing estimate")],
                ),
            ),
            CommandRegistration(
                name="tags",
                aliases=("tag", "labels"),
                description="Manage issue tags",
                context=CommandContext.BOTH,
                handler=TagsHandler,
                schema=CommandSchema(
                    parameters=[
                        CommandParameter("action", default="add", description="add, remove, set or list"),
                        CommandParameter("tags", description="Comma-separated tags", rest=True),
                    ],
                ),
            ),
            CommandRegistration(
                name="priority",
                description="Set the priority",
                context=CommandContext.BOTH,
                handler=PriorityHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("level", required=True, description="low, medium, high or critical")],
                ),
            ),
            CommandRegistration(
                name="type",
                description="Set the issue type",
                context=CommandContext.BOTH,
                handler=TypeHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("kind", required=True, description="Issue type, e.g. bug or feature")],
                ),
            ),
        ]

    def on_initialize(self, services: HandlerServices) -> None:
        return None


__all__ = ["CoreModule", "VALID_PRIORITIES", "VALID_STATUSES"]
