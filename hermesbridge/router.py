"""Classifies inbound text into control words, commands, continuations and free-form requests."""

import re
from dataclasses import dataclass
from typing import Optional, Union

from hermesbridge.constants import DANGERZONE, SAFETYZONE, START_WORD, STOP_WORD
from hermesbridge.conversation import ConversationState, PendingOp
from hermesbridge.errors import ExecBoundsError

SYNC_SUBCOMMANDS = ("status", "test", "push")
READ_ALIASES = ("cat", "echo", "show")


@dataclass(frozen=True)
class ListCommand:
    path: str = ""


@dataclass(frozen=True)
class ReadCommand:
    path: str


@dataclass(frozen=True)
class WriteCommand:
    """Write a file. Missing path or content makes it interactive."""

    path: Optional[str] = None
    content: Optional[str] = None


@dataclass(frozen=True)
class AppendCommand:
    path: str
    content: str


@dataclass(frozen=True)
class EditCommand:
    """Replace one 1-indexed line, or the whole file interactively when line is None."""

    path: str
    line: Optional[int] = None
    content: Optional[str] = None


@dataclass(frozen=True)
class SyncCommand:
    subcommand: Optional[str] = None


@dataclass(frozen=True)
class ExecCommand:
    cmdline: str


@dataclass(frozen=True)
class StatusCommand:
    pass


@dataclass(frozen=True)
class HelpCommand:
    pass


@dataclass(frozen=True)
class UnknownCommand:
    raw: str


Command = Union[
    ListCommand,
    ReadCommand,
    WriteCommand,
    AppendCommand,
    EditCommand,
    SyncCommand,
    ExecCommand,
    StatusCommand,
    HelpCommand,
    UnknownCommand,
]


@dataclass(frozen=True)
class StopRoute:
    pass


@dataclass(frozen=True)
class StartRoute:
    pass


@dataclass(frozen=True)
class DiscardRoute:
    """Input received while the conversation is stopped."""


@dataclass(frozen=True)
class ZoneRoute:
    edits_enabled: bool


@dataclass(frozen=True)
class PromptRoute:
    """Bare prefix with no subcommand."""


@dataclass(frozen=True)
class CommandRoute:
    command: Command


@dataclass(frozen=True)
class ContinuationRoute:
    op: PendingOp
    text: str


@dataclass(frozen=True)
class FreeFormRoute:
    text: str


Route = Union[
    StopRoute,
    StartRoute,
    DiscardRoute,
    ZoneRoute,
    PromptRoute,
    CommandRoute,
    ContinuationRoute,
    FreeFormRoute,
]


def is_command(text: str, prefix: str) -> bool:
    """Check whether text starts with the command prefix as a whole word."""
    return re.match(rf"{re.escape(prefix)}(?:\s|$)", text.lstrip()) is not None


def route(text: str, state: ConversationState, prefix: str) -> Route:
    """Classify one inbound message for a conversation.

    Order: stop/start, the stopped state, zone toggles, commands (which take
    precedence over a pending operation), continuations, free-form text.

    Args:
        text: Message text
        state: Conversation state (not modified)
        prefix: Command prefix

    Returns:
        Route variant

    Raises:
        ExecBoundsError: If a command is missing an argument or has a bad line number
    """
    word = text.strip().lower()
    if word == STOP_WORD:
        return StopRoute()
    if word == START_WORD:
        return StartRoute()
    if state.stopped:
        return DiscardRoute()

    if text.strip() == DANGERZONE:
        return ZoneRoute(edits_enabled=True)
    if text.strip() == SAFETYZONE:
        return ZoneRoute(edits_enabled=False)

    if is_command(text, prefix):
        body = text.lstrip()[len(prefix):]
        if not body.strip():
            return PromptRoute()
        return CommandRoute(parse_command(body, prefix))

    if state.pending is not None:
        return ContinuationRoute(state.pending, text)

    return FreeFormRoute(text)


def parse_command(body: str, prefix: str) -> Command:
    """Parse the text following the command prefix.

    Content arguments keep their inner whitespace and newlines.

    Args:
        body: Text after the prefix
        prefix: Command prefix, for usage messages

    Returns:
        Command variant (UnknownCommand for unrecognised subcommands)

    Raises:
        ExecBoundsError: If a required argument is missing or malformed
    """
    parts = body.lstrip().split(None, 1)
    name = parts[0]
    rest = parts[1] if len(parts) > 1 else ""

    if name == "ls":
        return ListCommand(rest.strip())

    if name in READ_ALIASES:
        if not rest.strip():
            raise ExecBoundsError(f"Usage: {prefix} {name} <file>")
        return ReadCommand(rest.strip())

    if name == "write":
        path, content = _split_path(rest)
        return WriteCommand(path, content)

    if name == "append":
        path, content = _split_path(rest)
        if path is None or content is None:
            raise ExecBoundsError(f"Usage: {prefix} append <file> <content>")
        return AppendCommand(path, content)

    if name == "edit":
        path, remainder = _split_path(rest)
        if path is None:
            raise ExecBoundsError(f"Usage: {prefix} edit <file> [<line> <content>]")
        if remainder is None:
            return EditCommand(path)
        line_parts = remainder.split(None, 1)
        if not line_parts[0].isdigit():
            raise ExecBoundsError(f"Line number must be a positive integer, got {line_parts[0]!r}")
        if len(line_parts) < 2:
            raise ExecBoundsError(f"Usage: {prefix} edit <file> <line> <content>")
        return EditCommand(path, int(line_parts[0]), line_parts[1])

    if name == "sync":
        sub = rest.strip() or None
        if sub is not None and sub not in SYNC_SUBCOMMANDS:
            raise ExecBoundsError(f"Usage: {prefix} sync [{'|'.join(SYNC_SUBCOMMANDS)}]")
        return SyncCommand(sub)

    if name == "exec":
        if not rest.strip():
            raise ExecBoundsError(f"Usage: {prefix} exec <command>")
        return ExecCommand(rest.strip())

    if name == "status":
        return StatusCommand()

    if name == "help":
        return HelpCommand()

    return UnknownCommand(body.strip())


def _split_path(rest: str) -> tuple[Optional[str], Optional[str]]:
    """Split "<path> <remainder...>" keeping the remainder verbatim."""
    parts = rest.lstrip().split(None, 1)
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1]
