"""Per-conversation state: paused flag, pending interactive operation, last activity."""

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditingFile:
    """Waiting for the full replacement content of `path`."""

    path: str


@dataclass(frozen=True)
class WritingFile:
    """Waiting for a location choice (path is None) or the content of `path`."""

    path: Optional[str] = None
    suggestions: Optional[tuple[str, ...]] = None


PendingOp = Union[EditingFile, WritingFile]


@dataclass
class ConversationState:
    """State of one conversation.

    Attributes:
        stopped: Replies are paused until "start"
        pending: At most one interactive operation awaiting input
        last_file: Last file touched by a command or directive
        last_command: Last command or directive executed
    """

    stopped: bool = False
    pending: Optional[PendingOp] = None
    last_file: Optional[str] = None
    last_command: Optional[str] = None

    def get_context_summary(self) -> str:
        """Summarize recent activity for the system prompt."""
        parts = []
        if self.last_file:
            parts.append(f"Last file: {self.last_file}")
        if self.last_command:
            parts.append(f"Last command: {self.last_command}")
        return "\n".join(parts) if parts else "No recent context"


@dataclass
class ConversationRegistry:
    """All conversation states, keyed by conversation id."""

    states: dict[str, ConversationState] = field(default_factory=dict)

    def get(self, conversation_id: str) -> ConversationState:
        if conversation_id not in self.states:
            self.states[conversation_id] = ConversationState()
        return self.states[conversation_id]

    def set_pending(self, conversation_id: str, op: PendingOp) -> None:
        """Set the pending operation, replacing any previous one."""
        state = self.get(conversation_id)
        if state.pending is not None and state.pending != op:
            logger.info("Replacing pending %s in %s", type(state.pending).__name__, conversation_id)
        state.pending = op

    def clear_pending(self, conversation_id: str) -> None:
        self.get(conversation_id).pending = None

    def stop(self, conversation_id: str) -> None:
        state = self.get(conversation_id)
        state.stopped = True
        state.pending = None

    def start(self, conversation_id: str) -> None:
        self.get(conversation_id).stopped = False

    def remember(self, conversation_id: str, last_file: Optional[str] = None, last_command: Optional[str] = None) -> None:
        """Record the most recent file and command."""
        state = self.get(conversation_id)
        if last_file is not None:
            state.last_file = last_file
        if last_command is not None:
            state.last_command = last_command


def suggest_file_locations(filename: str) -> tuple[str, ...]:
    """Suggest three workspace locations for a new file.

    Args:
        filename: Bare file name (no directory component)

    Returns:
        Three distinct relative paths, best guess first
    """
    name = PurePosixPath(filename)
    ext = name.suffix.lower()
    stem = name.name.lower()
    suggestions: list[str] = []

    if ext in (".py", ".ts", ".js", ".tsx", ".jsx"):
        if "test" in stem or "spec" in stem:
            suggestions.append(f"tests/{filename}")
        suggestions.append(f"src/{filename}")
        if "component" in stem:
            suggestions.append(f"src/components/{filename}")
    elif ext in (".json", ".yaml", ".yml", ".toml", ".ini", ".env") or "config" in stem or "settings" in stem:
        suggestions.extend([filename, f"config/{filename}"])
    elif ext in (".md", ".txt", ".rst") or not ext:
        suggestions.extend([filename, f"docs/{filename}"])
    elif ext in (".sh", ".bash"):
        suggestions.append(f"scripts/{filename}")
    else:
        suggestions.extend([filename, f"src/{filename}", f"lib/{filename}"])

    for fallback in (filename, f"misc/{filename}", f"temp/{filename}"):
        if len(suggestions) >= 3:
            break
        if fallback not in suggestions:
            suggestions.append(fallback)

    return tuple(dict.fromkeys(suggestions))[:3]
