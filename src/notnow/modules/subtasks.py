"""Subtask checklist commands."""

from __future__ import annotations

from typing import Any, Dict, List

from notnow.app.commands.handlers import BaseHandler, HandlerServices
from notnow.domain.commands.models import CommandArgs, CommandResult, ExecutionContext
from notnow.domain.commands.schema import (
    CommandContext,
    CommandOption,
    CommandParameter,
    CommandRegistration,
    CommandSchema,
)
from notnow.domain.issues.replay import next_subtask_id
from notnow.domain.issues.state import IssueState, Subtask

SUBTASK_ACTIONS = ("add", "list", "remove", "complete")


def _subtask_summary(subtask: Subtask) -> Dict[str, Any]:
    return {
        "id": subtask.id,
        "title": subtask.title,
        "status": subtask.status,
        "estimate": subtask.estimate,
        "assignee": subtask.assignee,
    }


def _complete_subtask(state: IssueState, subtask_id: str, time_spent: str | None) -> CommandResult:
    subtask = state.find_subtask(subtask_id)
    if subtask is None:
        return CommandResult.failure(f"Subtask '{subtask_id}' not found")
    if subtask.is_done:
        return CommandResult.failure(f"Subtask '{subtask_id}' is already completed")
    message = f"Completed subtask '{subtask.title}'"
    if time_spent:
        message += f" (time: {time_spent})"
    return CommandResult.ok(message, {"id": subtask.id, "title": subtask.title, "time": time_spent})


class SubtaskHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        state = self.state_of(context)
        action = args.get_parameter("action", "add", str)
        title = args.get_parameter("title")
        if action.lower() in SUBTASK_ACTIONS:
            action = action.lower()
        else:
            # bare "/notnow subtask Write docs": every positional word is title
            title = " ".join(part for part in (action, title) if part)
            action = "add"

        if action == "list":
            return self._list(state)
        if action in {"remove", "complete"}:
            subtask_id = args.get_option("id") or title
            if not subtask_id:
                return CommandResult.failure(f"Subtask ID required for {action} action")
            if action == "complete":
                return _complete_subtask(state, subtask_id, None)
            subtask = state.find_subtask(subtask_id)
            if subtask is None:
                return CommandResult.failure(f"Subtask '{subtask_id}' not found")
            return CommandResult.ok(f"Removed subtask '{subtask.title}'", {"id": subtask.id})

        if not title:
            return CommandResult.failure("Title required for adding subtask")
        subtask_id = args.get_option("id") or next_subtask_id(state.subtasks)
        depends = [item.strip() for item in (args.get_option("depends") or "").split(",") if item.strip()]
        assignee = args.get_option("assignee")
        data = {
            "id": subtask_id,
            "title": title,
            "estimate": args.get_option("estimate"),
            "assignee": assignee.lstrip("@") if assignee else None,
            "depends": depends,
            "replaced": state.find_subtask(subtask_id) is not None,
        }
        return CommandResult.ok(f"Added subtask '{title}' with ID '{subtask_id}'", data)

    @staticmethod
    def _list(state: IssueState) -> CommandResult:
        if not state.subtasks:
            return CommandResult.ok("No subtasks", {"count": 0})
        counts = state.task_counts()
        completed = counts.total - counts.open
        data = {
            "count": counts.total,
            "completed": completed,
            "open": counts.open,
            "progress": counts.display,
            "subtasks": [_subtask_summary(subtask) for subtask in state.subtasks],
        }
        return CommandResult.ok(f"Found {counts.total} subtasks ({completed} completed) {counts.display}", data)


class CompleteHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        state = self.state_of(context)
        subtask_id = args.get_parameter("id")
        time_spent = args.get_option("time")
        if subtask_id:
            result = _complete_subtask(state, subtask_id, time_spent)
            if result.success and args.get_option("notes"):
                result.data["notes"] = args.get_option("notes")
            return result
        pending = sum(1 for subtask in state.subtasks if not subtask.is_done)
        message = "Issue marked as done"
        if pending:
            message += f" ({pending} open subtasks closed)"
        return CommandResult.ok(message, {"previousStatus": state.status, "closedSubtasks": pending})


class ReopenHandler(BaseHandler):
    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        state = self.state_of(context)
        subtask_id = args.get_parameter("id")
        reason = args.get_option("reason")
        suffix = f": {reason}" if reason else ""
        if not subtask_id:
            return CommandResult.ok(f"Issue reopened{suffix}", {"previousStatus": state.status, "reason": reason})
        subtask = state.find_subtask(subtask_id)
        if subtask is None:
            return CommandResult.failure(f"Subtask '{subtask_id}' not found")
        if not subtask.is_done:
            return CommandResult.failure(f"Subtask '{subtask_id}' is not completed")
        return CommandResult.ok(
            f"Reopened subtask '{subtask.title}'{suffix}",
            {"id": subtask.id, "title": subtask.title, "reason": reason},
        )


class SubtasksModule:
    name = "Subtasks"
    version = "1.0.0"

    def get_commands(self) -> List[CommandRegistration]:
        return [
            CommandRegistration(
                name="subtask",
                aliases=("task",),
                description="Manage subtasks",
                context=CommandContext.BOTH,
                handler=SubtaskHandler,
                schema=CommandSchema(
                    parameters=[
                        CommandParameter("action", default="add", description="add, list, remove or complete"),
                        CommandParameter("title", description="Subtask title", rest=True),
                    ],
                    options=[
                        CommandOption("id", description="Subtask ID"),
                        CommandOption("estimate", description="Time estimate"),
                        CommandOption("depends", description="Dependencies (comma-separated IDs)"),
                        CommandOption("assignee", description="Assignee username"),
                    ],
                ),
            ),
            CommandRegistration(
                name="complete",
                aliases=("done", "finish"),
                description="Complete a subtask, or the issue when no ID is given",
                context=CommandContext.COMMENT,
                handler=CompleteHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("id", description="Subtask ID to complete")],
                    options=[
                        CommandOption("time", description="Time spent on the subtask"),
                        CommandOption("notes", description="Completion notes"),
                    ],
                ),
            ),
            CommandRegistration(
                name="reopen",
                description="Reopen a subtask, or the issue when no ID is given",
                context=CommandContext.COMMENT,
                handler=ReopenHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("id", description="Subtask ID to reopen")],
                    options=[CommandOption("reason", description="Reason for reopening")],
                ),
            ),
        ]

    def on_initialize(self, services: HandlerServices) -> None:
        return None


__all__ = ["SubtasksModule"]
