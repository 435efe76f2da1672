from __future__ import annotations

import asyncio
import json

from notnow.app.commands import CommandExecutor, CommandRegistry, HandlerServices
from notnow.domain.commands import (
    CommandContext,
    CommandRegistration,
    CommandResult,
    ExecutionContext,
    ParsedCommand,
)
from notnow.domain.issues.state import IssueState


class ExplodingHandler:
    def __init__(self, services) -> None:
        self.services = services

    async def execute(self, context, args):
        raise RuntimeError("boom")


class MutatingHandler:
    def __init__(self, services) -> None:
        self.services = services

    async def execute(self, context, args):
        context.state.status = "corrupted"
        return CommandResult.failure("refused")


def _context(now, **overrides) -> ExecutionContext:
    values = {"issue_number": 7, "user": "alice", "timestamp": now, "command_context": CommandContext.COMMENT}
    values.update(overrides)
    return ExecutionContext(**values)


def test_batch_with_invalid_middle_command(registry, now) -> None:
    executor = CommandExecutor(registry)
    text = "/notnow status in_progress\n/notnow bogus\n/notnow priority high"

    result = asyncio.run(executor.execute(text, _context(now)))

    assert len(result.results) == 3
    assert not result.success
    assert result.summary == "2 succeeded, 1 failed"
    assert result.results[1].error == "Unknown command: bogus"
    assert result.results[1].message == "Command failed: Unknown command: bogus"
    assert result.state.status == "in_progress"
    assert result.state.priority == "high"


def test_all_succeeded_summary(registry, now) -> None:
    result = asyncio.run(CommandExecutor(registry).execute("/notnow priority low", _context(now)))
    assert result.success
    assert result.summary == "all 1 succeeded"
    assert result.to_dict()["results"][0]["success"] is True


def test_context_gated_command_is_never_dispatched(registry, now) -> None:
    result = asyncio.run(CommandExecutor(registry).execute("/notnow init", _context(now)))
    assert not result.success
    assert result.results[0].error == "Command 'init' not allowed in Comment"
    assert result.state.is_initialized is False


def test_later_commands_observe_earlier_effects(registry, now) -> None:
    text = "/notnow start\n/notnow stop"
    result = asyncio.run(CommandExecutor(registry).execute(text, _context(now)))

    assert result.success, [r.error for r in result.results]
    assert result.state.active_session is None
    assert [s.id for s in result.state.sessions] == ["ws1"]


def test_stop_without_session_fails(registry, now) -> None:
    result = asyncio.run(CommandExecutor(registry).execute("/notnow stop", _context(now)))
    assert result.results[0].error == "No active work session found"


def test_handler_exception_is_converted(now) -> None:
    registry = CommandRegistry(HandlerServices())
    registry.register_command(CommandRegistration(name="explode", context=CommandContext.BOTH, handler=ExplodingHandler))
    registry.register_command(CommandRegistration(name="noop", context=CommandContext.BOTH))
    executor = CommandExecutor(registry)

    result = asyncio.run(executor.execute("/notnow explode\n/notnow noop", _context(now)))

    assert result.results[0].error == "Error executing 'explode': boom"
    assert result.results[1].error == "Handler not found for command 'noop'"
    assert result.summary == "0 succeeded, 2 failed"


def test_valid_command_without_registration(registry, now) -> None:
    orphan = ParsedCommand(name="ghost", raw_text="/notnow ghost", position=0)
    result = asyncio.run(CommandExecutor(registry).execute_commands([orphan], _context(now)))
    assert result.results[0].error == "Command 'ghost' not found"


def test_handlers_cannot_corrupt_running_state(now) -> None:
    registry = CommandRegistry(HandlerServices())
    registry.register_command(CommandRegistration(name="mutate", context=CommandContext.BOTH, handler=MutatingHandler))
    original = IssueState(issue_number=7, status="review")

    result = asyncio.run(CommandExecutor(registry).execute("/notnow mutate", _context(now, state=original)))

    assert original.status == "review"
    assert result.state.status == "review"


def test_batch_emits_telemetry(registry, now, settings, monkeypatch) -> None:
    monkeypatch.setenv("NOTNOW_TELEMETRY", "1")
    executor = CommandExecutor(registry, settings=settings)

    asyncio.run(executor.execute("/notnow priority high\n/notnow nope", _context(now)))

    lines = (settings.log_dir / "telemetry.jsonl").read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "commands.batch"
    assert record["issue"] == 7
    assert record["payload"]["user"] == "alice"
    assert record["status"] == "partial"
    assert record["payload"]["commands"] == ["priority", "nope"]
    assert record["payload"]["failed"] == 1


def _broken_factory(services):
    raise LookupError("no such service")


def test_handler_factory_failure_reads_as_missing_handler(now) -> None:
    registry = CommandRegistry(HandlerServices())
    registry.register_command(CommandRegistration(name="broken", context=CommandContext.BOTH, handler=_broken_factory))

    result = asyncio.run(CommandExecutor(registry).execute("/notnow broken", _context(now)))

    assert result.results[0].error == "Handler not found for command 'broken'"


def test_listing_tags_keeps_them(registry, now) -> None:
    result = asyncio.run(CommandExecutor(registry).execute("/notnow tags a,b\n/notnow tags list", _context(now)))

    assert result.success
    assert result.results[1].message == "Tags: a, b"
    assert result.state.tags == ["a", "b"]
