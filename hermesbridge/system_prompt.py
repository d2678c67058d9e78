"""System prompt builder with Anthropic prompt caching support."""

from pathlib import Path

from hermesbridge.conversation import ConversationState


class SystemPromptBuilder:
    """Builds the system prompt that teaches the model the directive grammar."""

    def __init__(self, workspace_root: Path, command_prefix: str):
        """Initialize system prompt builder.

        Args:
            workspace_root: Sandbox root shown to the model
            command_prefix: Explicit command prefix, mentioned for users who ask
        """
        self.workspace_root = workspace_root
        self.command_prefix = command_prefix

    def build_system_messages(self, edits_enabled: bool, state: ConversationState) -> list[dict]:
        """Build system blocks with cache_control for Anthropic.

        The identity and directive blocks only change with the editing mode,
        so they are cached; the per-conversation context block is not.

        Args:
            edits_enabled: Whether write-type directives are advertised
            state: Conversation state for last file/command context

        Returns:
            List of system message blocks
        """
        messages = [
            {
                "type": "text",
                "text": self._build_core_identity(),
                "cache_control": {"type": "ephemeral"},
            },
            {
                "type": "text",
                "text": self._build_directive_instructions(edits_enabled),
                "cache_control": {"type": "ephemeral"},
            },
        ]

        context = self._build_context(state)
        if context:
            messages.append({"type": "text", "text": context})

        return messages

    def _build_core_identity(self) -> str:
        return f"""# Hermes Workspace Assistant

You are Hermes, an AI assistant integrated with a chat bot that can read and edit files in a project workspace.

Current workspace path: {self.workspace_root}

## Communication Style
- Concise and conversational; replies are read on a phone
- Use the file directives below instead of guessing file contents
- Users can also run explicit commands; `{self.command_prefix} help` lists them
"""

    def _build_directive_instructions(self, edits_enabled: bool) -> str:
        lines = [
            "# File Directives",
            "",
            "CRITICAL: You have access to these file directives. Put each directive on its own line:",
            "1. LIST_FILES (shows all files in the workspace root)",
            "2. READ_FILE:<filename> (reads a specific file)",
        ]
        if edits_enabled:
            lines.extend(
                [
                    "3. WRITE_FILE:<filename>:<content> (creates or overwrites a file)",
                    "4. APPEND_FILE:<filename>:<content> (adds to the end of a file)",
                    "5. EDIT_FILE:<filename>:<line>:<new text> (replaces one line, 1-indexed)",
                    "",
                    "For multi-line content, end the directive line after the second ':' and put",
                    "the content in a ``` fenced block on the following lines. EDIT_FILE also",
                    "accepts a fenced unified diff this way.",
                ]
            )
        else:
            lines.extend(["", "NOTE: File editing is DISABLED. You can only read and analyze files, not create or modify them."])

        lines.extend(
            [
                "",
                "DIRECTIVE EXAMPLES:",
                'User: "Show me all files"',
                'Your response: "I\'ll list the files for you.',
                "",
                "LIST_FILES",
                '"',
                "",
                'User: "Read the README"',
                'Your response: "Let me read the README file:',
                "",
                "READ_FILE:README.md",
                '"',
                "",
                "ALWAYS:",
                "- Put directives on separate lines",
                "- Use the directives when the user asks about files",
                "- Paths are relative to the workspace root",
            ]
        )
        return "\n".join(lines)

    def _build_context(self, state: ConversationState) -> str:
        if not state.last_file and not state.last_command:
            return ""
        return f"# Recent Context\n\n{state.get_context_summary()}"
