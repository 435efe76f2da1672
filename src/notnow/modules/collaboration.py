"""Commands that publish content to the issue through the backend."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

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
from notnow.domain.commands.values import isoformat
from notnow.domain.issues.records import CommentRecord
from notnow.ports.issues.backend import IssueBackendError

PROGRESS_SEGMENTS = 20

logger = logging.getLogger(__name__)


def format_as_markdown(text: str) -> str:
    """Quote plain text; leave text that already carries markdown alone."""

    if "```" in text or "#" in text or "**" in text:
        return text
    return "> " + text.replace("\n", "\n> ")


def progress_bar(percentage: int) -> str:
    percentage = max(0, min(100, percentage))
    filled = percentage * PROGRESS_SEGMENTS // 100
    return "[" + "█" * filled + "░" * (PROGRESS_SEGMENTS - filled) + "]"


def _split_items(raw: Optional[str]) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


class _PostingHandler(BaseHandler):
    noun = "comment"

    async def _post(self, context: ExecutionContext, body: str) -> CommentRecord | CommandResult:
        backend = self.services.backend
        if backend is None:
            return CommandResult.failure(f"Issue backend not available. Cannot post {self.noun}.")
        try:
            return await asyncio.to_thread(backend.add_comment, context.issue_number, body)
        except IssueBackendError as exc:
            logger.warning("posting %s to issue #%s failed: %s", self.noun, context.issue_number, exc)
            return CommandResult.failure(f"Failed to post {self.noun}: {exc}")

    @staticmethod
    def _comment_data(comment: CommentRecord) -> dict:
        return {
            "commentId": comment.id,
            "author": comment.author,
            "createdAt": isoformat(comment.created_at),
            "url": comment.url,
        }


class CommentHandler(_PostingHandler):
    noun = "comment"

    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        text = args.get_option("body") or args.get_parameter("message")
        if not text:
            return CommandResult.failure("Comment text is required. Use message parameter or --body option.")
        if args.get_option("markdown", False):
            text = format_as_markdown(text)
        posted = await self._post(context, text)
        if isinstance(posted, CommandResult):
            return posted
        data = self._comment_data(posted)
        data["bodyLength"] = len(posted.body)
        author = posted.author or context.user
        return CommandResult.ok(f"Comment posted successfully by {author}", data)


class NoteHandler(_PostingHandler):
    noun = "note"

    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        text = args.get_parameter("text")
        if not text:
            return CommandResult.failure("Note text is required.")
        title = args.get_option("title")
        category = args.get_option("category", "note")
        body = "\n".join(
            [
                f"### 📝 {title or 'Note'}",
                "",
                f"**Category:** {category}",
                f"**Author:** @{context.user}",
                f"**Date:** {context.timestamp:%Y-%m-%d %H:%M} UTC",
                "",
                "---",
                "",
                text,
            ]
        )
        posted = await self._post(context, body)
        if isinstance(posted, CommandResult):
            return posted
        data = self._comment_data(posted)
        data.update({"category": category, "title": title})
        return CommandResult.ok(f"Note added to issue #{context.issue_number}", data)


class UpdateHandler(_PostingHandler):
    noun = "update"

    async def execute(self, context: ExecutionContext, args: CommandArgs) -> CommandResult:
        message = args.get_parameter("message")
        progress = args.get_option("progress")
        blockers = _split_items(args.get_option("blockers"))
        next_steps = _split_items(args.get_option("next"))
        if not message and progress is None and not blockers and not next_steps:
            return CommandResult.failure(
                "Update requires at least a message, progress percentage, blockers, or next steps."
            )

        lines = [
            "## 📊 Status Update",
            "",
            f"**From:** @{context.user}",
            f"**Date:** {context.timestamp:%Y-%m-%d %H:%M} UTC",
            "",
        ]
        if progress is not None:
            lines += [f"### Progress: {progress}%", progress_bar(progress), ""]
        if message:
            lines += ["### Update", message, ""]
        if blockers:
            lines += ["### 🚧 Blockers", *(f"- {item}" for item in blockers), ""]
        if next_steps:
            lines += ["### ➡️ Next Steps", *(f"- [ ] {item}" for item in next_steps)]

        posted = await self._post(context, "\n".join(lines).rstrip() + "\n")
        if isinstance(posted, CommandResult):
            return posted
        data = self._comment_data(posted)
        data.update({"progress": progress, "hasBlockers": bool(blockers)})
        return CommandResult.ok("Status update posted successfully", data)


class CollaborationModule:
    name = "Collaboration"
    version = "1.0.0"

    def get_commands(self) -> List[CommandRegistration]:
        return [
            CommandRegistration(
                name="comment",
                description="Post a comment to the issue",
                context=CommandContext.COMMENT,
                handler=CommentHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("message", description="Comment text", rest=True)],
                    options=[
                        CommandOption("body", description="Comment body (overrides the message)"),
                        CommandOption("markdown", type=ParamType.BOOLEAN, description="Quote plain text"),
                    ],
                ),
            ),
            CommandRegistration(
                name="note",
                description="Post a formatted note",
                context=CommandContext.COMMENT,
                handler=NoteHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("text", description="Note text", rest=True)],
                    options=[
                        CommandOption("title", description="Note title"),
                        CommandOption("category", default="note", description="Note category"),
                    ],
                ),
            ),
            CommandRegistration(
                name="update",
                description="Post a progress update",
                context=CommandContext.COMMENT,
                handler=UpdateHandler,
                schema=CommandSchema(
                    parameters=[CommandParameter("message", description="Update text", rest=True)],
                    options=[
                        CommandOption("progress", type=ParamType.INTEGER, description="Progress percentage"),
                        CommandOption("blockers", description="Comma-separated blockers"),
                        CommandOption("next", description="Comma-separated next steps"),
                    ],
                ),
            ),
        ]

    def on_initialize(self, services: HandlerServices) -> None:
        if services.backend is None:
            logger.debug("collaboration commands registered without an issue backend")


__all__ = ["CollaborationModule", "format_as_markdown", "progress_bar"]
