"""Explicit command execution against the workspace, executor and sync gate."""

import logging
from typing import Optional

from hermesbridge.constants import DEFAULT_EXEC_OUTPUT_CHARS, DEFAULT_READ_DISPLAY_CHARS
from hermesbridge.conversation import ConversationRegistry, EditingFile, WritingFile, suggest_file_locations
from hermesbridge.errors import BridgeError, WorkspaceError, describe
from hermesbridge.router import (
    AppendCommand,
    Command,
    EditCommand,
    ExecCommand,
    HelpCommand,
    ListCommand,
    ReadCommand,
    StatusCommand,
    SyncCommand,
    UnknownCommand,
    WriteCommand,
)
from hermesbridge.tools.executor import Executor
from hermesbridge.tools.sync_health import SyncHealthGate, format_health
from hermesbridge.tools.workspace import Workspace
from hermesbridge.utils.logging import TranscriptLogger
from hermesbridge.utils.text import code_block, truncate

logger = logging.getLogger(__name__)


class CommandExecutor:
    """Turns parsed commands and pending-operation continuations into replies."""

    def __init__(
        self,
        workspace: Workspace,
        executor: Executor,
        sync_gate: SyncHealthGate,
        registry: ConversationRegistry,
        prefix: str,
        read_display_chars: int = DEFAULT_READ_DISPLAY_CHARS,
        exec_output_chars: int = DEFAULT_EXEC_OUTPUT_CHARS,
        transcript: Optional[TranscriptLogger] = None,
    ):
        """Initialize command executor.

        Args:
            workspace: Sandboxed workspace
            executor: Shell command executor
            sync_gate: Sync health gate
            registry: Conversation states (pending operations, last file)
            prefix: Command prefix, for help and hints
            read_display_chars: Display limit for file reads
            exec_output_chars: Display limit for command output
            transcript: Optional transcript for exec records
        """
        self.workspace = workspace
        self.executor = executor
        self.sync_gate = sync_gate
        self.registry = registry
        self.prefix = prefix
        self.read_display_chars = read_display_chars
        self.exec_output_chars = exec_output_chars
        self.transcript = transcript

    def execute(self, conversation_id: str, command: Command) -> str:
        """Execute a command.

        Expected failures (sandbox denials, missing files, bounds errors,
        unhealthy sync) are rendered as the reply, never raised.

        Args:
            conversation_id: Conversation issuing the command
            command: Parsed command

        Returns:
            Reply text
        """
        logger.info("Command in %s: %s", conversation_id, command)
        try:
            return self._dispatch(conversation_id, command)
        except BridgeError as e:
            logger.warning("Command %s failed: %s", type(command).__name__, e)
            return describe(e)

    def continue_pending(self, conversation_id: str, text: str) -> str:
        """Feed a message to the conversation's pending operation.

        Args:
            conversation_id: Conversation with a pending operation
            text: Message text (file content or location choice)

        Returns:
            Reply text
        """
        op = self.registry.get(conversation_id).pending
        try:
            if isinstance(op, WritingFile) and op.path is None:
                return self._choose_location(conversation_id, op, text)
            if isinstance(op, WritingFile):
                path = self.workspace.resolve(op.path)
                self.workspace.write(path, text)
                self.registry.clear_pending(conversation_id)
                self.registry.remember(conversation_id, last_file=path.relative, last_command="write")
                return f"✅ Created **{path}**"
            if isinstance(op, EditingFile):
                path = self.workspace.resolve(op.path)
                self.workspace.write(path, text)
                self.registry.clear_pending(conversation_id)
                self.registry.remember(conversation_id, last_file=path.relative, last_command="edit")
                return f"✅ Saved **{path}**"
        except BridgeError as e:
            logger.warning("Pending %s failed: %s", type(op).__name__, e)
            self.registry.clear_pending(conversation_id)
            return describe(e)
        return "❓ Nothing is waiting for input."

    def prompt_text(self) -> str:
        return (
            "📚 **What would you like to work on today?**\n\n"
            f"Use `{self.prefix} help` for commands or just chat with me!"
        )

    def help_text(self) -> str:
        p = self.prefix
        return "\n".join(
            [
                "📚 **Workspace Commands:**",
                f"`{p} ls [path]` - List files",
                f"`{p} cat <file>` - Read file content (also `echo`, `show`)",
                f"`{p} write <file> <content>` - Write a file",
                f"`{p} write [file]` - Write a file interactively (suggests a location)",
                f"`{p} append <file> <content>` - Append to a file",
                f"`{p} edit <file> <line> <content>` - Replace one line",
                f"`{p} edit <file>` - Replace the whole file with your next message",
                f"`{p} sync` - Pull from the host (only when the workspace is healthy)",
                f"`{p} sync status` - Sync health",
                f"`{p} sync test` - Sync diagnostics",
                f"`{p} sync push` - Push to the host (only when the workspace is healthy)",
                f"`{p} exec <cmd>` - Execute a command in the workspace",
                f"`{p} status` - Workspace status",
                f"`{p} help` - This help",
                f"`{p}` - Quick prompt",
                "",
                "Regular messages go to the AI assistant.",
                "`:dangerzone` / `:safetyzone` toggle AI file editing.",
                "Say **stop** to pause replies and **start** to resume.",
            ]
        )

    def _dispatch(self, conversation_id: str, command: Command) -> str:
        if isinstance(command, ListCommand):
            return self._list(conversation_id, command)
        if isinstance(command, ReadCommand):
            return self._read(conversation_id, command)
        if isinstance(command, WriteCommand):
            return self._write(conversation_id, command)
        if isinstance(command, AppendCommand):
            path = self.workspace.resolve(command.path)
            self.workspace.append(path, command.content)
            self.registry.remember(conversation_id, last_file=path.relative, last_command="append")
            return f"✅ Appended to **{path}**"
        if isinstance(command, EditCommand):
            return self._edit(conversation_id, command)
        if isinstance(command, SyncCommand):
            return self._sync(command)
        if isinstance(command, ExecCommand):
            return self._exec(conversation_id, command)
        if isinstance(command, StatusCommand):
            return self._status()
        if isinstance(command, HelpCommand):
            return self.help_text()
        if isinstance(command, UnknownCommand):
            return self._unknown(command)
        raise TypeError(f"Unsupported command: {command!r}")

    def _list(self, conversation_id: str, command: ListCommand) -> str:
        path = self.workspace.resolve(command.path)
        entries = self.workspace.list_dir(path)
        listing = "\n".join(entry.render() for entry in entries) or "(empty)"
        self.registry.remember(conversation_id, last_command="ls")
        return f"📂 **{path.relative if path.relative != '.' else '/'}**\n{code_block(listing)}"

    def _read(self, conversation_id: str, command: ReadCommand) -> str:
        path = self.workspace.resolve(command.path)
        content = self.workspace.read(path)
        self.registry.remember(conversation_id, last_file=path.relative, last_command="cat")
        return f"📄 **{path}**:\n{code_block(truncate(content, self.read_display_chars))}"

    def _write(self, conversation_id: str, command: WriteCommand) -> str:
        if command.path is not None and command.content is not None:
            path = self.workspace.resolve(command.path)
            self.workspace.write(path, command.content)
            self.registry.remember(conversation_id, last_file=path.relative, last_command="write")
            return f"✅ Wrote **{path}** ({len(command.content.encode('utf-8'))} bytes)"

        if command.path is not None and "/" in command.path:
            path = self.workspace.resolve(command.path)
            self.registry.set_pending(conversation_id, WritingFile(path=path.relative))
            return f"✏️ Send the content for **{path}**:"

        filename = command.path or "newfile"
        suggestions = suggest_file_locations(filename)
        self.registry.set_pending(conversation_id, WritingFile(suggestions=suggestions))

        lines = ["📝 **Where should I create the file?**", ""]
        if command.path:
            lines.extend([f"File: **{command.path}**", ""])
        lines.append("Suggested locations:")
        lines.extend(f"**{i}**. `{suggestion}`" for i, suggestion in enumerate(suggestions, 1))
        lines.extend(["", "Reply with 1, 2, or 3, or type a custom path:"])
        return "\n".join(lines)

    def _choose_location(self, conversation_id: str, op: WritingFile, text: str) -> str:
        choice = text.strip()
        suggestions = op.suggestions or ()
        if choice.isdigit() and 1 <= int(choice) <= len(suggestions):
            raw = suggestions[int(choice) - 1]
        elif "/" in choice or "." in choice:
            raw = choice
        else:
            return f"❌ Please reply with 1-{len(suggestions)}, or a full file path"

        path = self.workspace.resolve(raw)
        self.registry.set_pending(conversation_id, WritingFile(path=path.relative))
        return f"✏️ Send the content for **{path}**:"

    def _edit(self, conversation_id: str, command: EditCommand) -> str:
        path = self.workspace.resolve(command.path)

        if command.line is None:
            if not path.absolute.is_file():
                raise WorkspaceError(f"File not found: {path}")
            self.registry.set_pending(conversation_id, EditingFile(path=path.relative))
            return f"📝 Send the new content for **{path}**:"

        self.workspace.edit_line(path, command.line, command.content or "")
        self.registry.remember(conversation_id, last_file=path.relative, last_command="edit")
        return f"✅ Line {command.line} of **{path}** updated"

    def _sync(self, command: SyncCommand) -> str:
        if command.subcommand == "status":
            return format_health(self.sync_gate.check())
        if command.subcommand == "test":
            return self.sync_gate.diagnostics()

        outcome = self.sync_gate.push() if command.subcommand == "push" else self.sync_gate.pull()
        if outcome.success:
            return f"✅ **Sync Complete**\n📥 {outcome.message}"
        return f"❌ {outcome.message}"

    def _exec(self, conversation_id: str, command: ExecCommand) -> str:
        result = self.executor.run(command.cmdline)
        if self.transcript:
            self.transcript.save_exec_result(command.cmdline, result.to_dict())
        self.registry.remember(conversation_id, last_command=command.cmdline)

        if result.blocked:
            return f"🚫 {result.stderr}"

        output = "\n".join(part for part in (result.stdout.rstrip(), result.stderr.rstrip()) if part)
        block = code_block(truncate(output or "(no output)", self.exec_output_chars))
        if result.timed_out:
            return f"⏱️ **Command timed out:**\n{block}"
        if result.output_truncated:
            return f"✂️ **Output too large, command stopped:**\n{block}"
        if result.success:
            return f"💻 **Output:**\n{block}"
        return f"❌ **Command failed (exit {result.exit_code}):**\n{block}"

    def _status(self) -> str:
        status = self.workspace.status()
        return (
            "📊 **Workspace Status:**\n"
            f"📁 Path: `{self.workspace.root}`\n"
            f"📄 Files: {status.file_count}\n"
            f"💾 Size: {status.total_mb:.2f} MB"
        )

    def _unknown(self, command: UnknownCommand) -> str:
        name = command.raw.split()[0] if command.raw.split() else command.raw
        if name.startswith("/") and len(name) > 1:
            return f"💡 Did you mean **{self.prefix} {name[1:]}**? (without the slash)"
        return f"❓ Unknown command. Try **{self.prefix} help** for available commands."
