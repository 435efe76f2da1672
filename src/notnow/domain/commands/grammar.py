"""Marker grammar shared by the command parser and the replay engine."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List

MARKER = "/notnow"

COMMAND_PATTERN = re.compile(
    rf"{re.escape(MARKER)}[ \t]+((?:(?!{re.escape(MARKER)})\S)+)(?:[ \t]+([^\r\n]*?))?[ \t]*(?=\r?\n|{re.escape(MARKER)}|$)",
    re.IGNORECASE | re.MULTILINE,
)

# Hidden blocks written back by this package; their contents are not part of the log.
METADATA_BLOCK_PATTERN = re.compile(r"<!--\s*notnow-metadata\b.*?-->", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class CommandOccurrence:
    name: str
    arguments: str
    raw_text: str
    position: int


def iter_occurrences(text: str) -> Iterator[CommandOccurrence]:
    if not text:
        return
    for match in COMMAND_PATTERN.finditer(text):
        yield CommandOccurrence(
            name=match.group(1),
            arguments=(match.group(2) or "").strip(),
            raw_text=match.group(0),
            position=match.start(),
        )


def contains_command(text: str) -> bool:
    return bool(text) and COMMAND_PATTERN.search(text) is not None


def tokenize(text: str) -> List[str]:
    """Split an argument span on whitespace, honouring double quotes.

    A quote preceded by a backslash does not toggle quoting and is kept
    verbatim together with the backslash.
    """

    tokens: List[str] = []
    current: List[str] = []
    in_quotes = False
    for index, char in enumerate(text):
        if char == '"' and (index == 0 or text[index - 1] != "\\"):
            in_quotes = not in_quotes
        elif char.isspace() and not in_quotes:
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(char)
    if current:
        tokens.append("".join(current))
    return tokens


def strip_metadata_blocks(text: str) -> str:
    return METADATA_BLOCK_PATTERN.sub("", text)


__all__ = [
    "COMMAND_PATTERN",
    "CommandOccurrence",
    "MARKER",
    "contains_command",
    "iter_occurrences",
    "strip_metadata_blocks",
    "tokenize",
]
