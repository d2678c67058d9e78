"""Find-execute-substitute processing of directives embedded in model output.

Grammar (markers are case-sensitive and must not follow an identifier character):

    LIST_FILES
    READ_FILE:<path>
    WRITE_FILE:<path>:<content to end of line>
    APPEND_FILE:<path>:<content to end of line>
    EDIT_FILE:<path>:<line>:<new text>

WRITE_FILE, APPEND_FILE and EDIT_FILE also accept an empty remainder followed
by a ``` fenced block on the next lines; for EDIT_FILE the block is a unified
diff. Every occurrence is replaced in place by its result, so no raw marker
survives into the reply.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from hermesbridge.constants import DEFAULT_DIRECTIVE_READ_CHARS
from hermesbridge.conversation import ConversationState
from hermesbridge.errors import BridgeError, ExtractionError, SandboxViolation, describe
from hermesbridge.tools.workspace import Workspace
from hermesbridge.utils.text import code_block, truncate

logger = logging.getLogger(__name__)

MARKER_RE = re.compile(r"(?<![A-Za-z0-9_])(LIST_FILES|READ_FILE|WRITE_FILE|APPEND_FILE|EDIT_FILE)")
PATH_TRAILING_PUNCTUATION = ".,;:!?)]}'\"`"
PATH_LEADING_QUOTES = "'\"`"
FENCE = "```"

EDITS_DISABLED = '❌ File editing is disabled. Type ":dangerzone" to enable file editing capabilities.'
EMPTY_REPLY = "✅ Command processed"


@dataclass(frozen=True)
class ListFiles:
    span: tuple[int, int]


@dataclass(frozen=True)
class ReadFile:
    path: str
    span: tuple[int, int]


@dataclass(frozen=True)
class WriteFile:
    path: str
    content: str
    span: tuple[int, int]


@dataclass(frozen=True)
class AppendFile:
    path: str
    content: str
    span: tuple[int, int]


@dataclass(frozen=True)
class EditFile:
    """Either a single-line replacement (line, text) or a unified diff."""

    path: str
    span: tuple[int, int]
    line: Optional[int] = None
    text: Optional[str] = None
    diff: Optional[str] = None


@dataclass(frozen=True)
class MalformedDirective:
    error: ExtractionError
    span: tuple[int, int]


Directive = Union[ListFiles, ReadFile, WriteFile, AppendFile, EditFile]
Extracted = Union[Directive, MalformedDirective]

MUTATING = (WriteFile, AppendFile, EditFile)


def extract_directives(text: str) -> list[Extracted]:
    """Find every directive occurrence, left to right.

    Occurrences never overlap: a marker inside another directive's payload
    (for example inside written content) belongs to that payload.

    Args:
        text: Model output

    Returns:
        Directives and malformed occurrences in text order
    """
    found: list[Extracted] = []
    pos = 0
    while True:
        match = MARKER_RE.search(text, pos)
        if match is None:
            return found
        item = _parse_occurrence(text, match.group(1), match.start(), match.end())
        found.append(item)
        pos = max(item.span[1], match.end())


def _parse_occurrence(text: str, kind: str, start: int, end: int) -> Extracted:
    if kind == "LIST_FILES":
        return ListFiles(span=(start, end))

    if not text.startswith(":", end):
        return _malformed(kind, "missing ':' after marker", start, end)
    cursor = end + 1

    if kind == "READ_FILE":
        run = re.match(r"[ \t]*(\S*)", text[cursor:])
        raw = run.group(1)
        kept = raw.rstrip(PATH_TRAILING_PUNCTUATION)
        path = kept.lstrip(PATH_LEADING_QUOTES)
        path_end = cursor + run.start(1) + len(kept)
        # A closing quote matching the opening one belongs to the directive
        if path != kept and raw[len(kept):].startswith(kept[0]):
            path_end += 1
        if not path:
            return _malformed(kind, "empty path", start, cursor)
        return ReadFile(path=path, span=(start, path_end))

    line_end = _line_end(text, cursor)
    separator = text.find(":", cursor, line_end)
    if separator == -1:
        return _malformed(kind, "missing ':' between path and content", start, line_end)

    path = text[cursor:separator].strip().strip(PATH_LEADING_QUOTES)
    if not path:
        return _malformed(kind, "empty path", start, line_end)

    remainder = text[separator + 1 : line_end]
    block: Optional[tuple[str, int]] = None
    if not remainder.strip():
        if text.startswith(FENCE, line_end + 1):
            block = _read_fence(text, line_end + 1)
            if block is None:
                return _malformed(kind, "unterminated code fence", start, line_end)
        elif kind != "EDIT_FILE":
            return _malformed(kind, "missing content", start, line_end)

    if kind in ("WRITE_FILE", "APPEND_FILE"):
        cls = WriteFile if kind == "WRITE_FILE" else AppendFile
        if block is not None:
            return cls(path=path, content=block[0], span=(start, block[1]))
        return cls(path=path, content=remainder.strip(), span=(start, line_end))

    # EDIT_FILE
    if block is not None:
        return EditFile(path=path, diff=block[0], span=(start, block[1]))

    instructions = remainder.strip()
    line_spec, colon, new_text = instructions.partition(":")
    if not colon:
        return _malformed(kind, "expected <line>:<text> or a fenced diff", start, line_end)
    if not line_spec.strip().isdigit():
        return _malformed(kind, f"line number must be numeric, got {line_spec.strip()!r}", start, line_end)
    return EditFile(
        path=path,
        line=int(line_spec.strip()),
        text=new_text[1:] if new_text.startswith(" ") else new_text,
        span=(start, line_end),
    )


def _line_end(text: str, pos: int) -> int:
    newline = text.find("\n", pos)
    return len(text) if newline == -1 else newline


def _read_fence(text: str, fence_start: int) -> Optional[tuple[str, int]]:
    """Read a fenced block opening at fence_start.

    Returns:
        (content, end offset just past the closing fence), or None if unterminated
    """
    body_start = _line_end(text, fence_start) + 1
    if body_start > len(text):
        return None

    lines = []
    pos = body_start
    while pos <= len(text):
        end = _line_end(text, pos)
        line = text[pos:end]
        if line.strip() == FENCE:
            content = "\n".join(lines)
            return (content + "\n" if lines else ""), end
        lines.append(line)
        pos = end + 1
    return None


def _malformed(kind: str, reason: str, start: int, end: int) -> MalformedDirective:
    return MalformedDirective(error=ExtractionError(kind, reason), span=(start, end))


class DirectiveProcessor:
    """Executes directives through the workspace and substitutes their results."""

    def __init__(self, workspace: Workspace, read_chars: int = DEFAULT_DIRECTIVE_READ_CHARS):
        """Initialize processor.

        Args:
            workspace: Sandboxed workspace every directive goes through
            read_chars: Display limit for READ_FILE results
        """
        self.workspace = workspace
        self.read_chars = read_chars

    def apply(self, text: str, state: ConversationState, edits_enabled: bool) -> str:
        """Replace every directive in model output with its result.

        Args:
            text: Model output
            state: Conversation state; last_file/last_command follow the last
                successful directive
            edits_enabled: Whether write/append/edit directives may execute

        Returns:
            Reply text, never empty
        """
        pieces = []
        pos = 0
        last_success: Optional[Directive] = None

        for item in extract_directives(text):
            start, end = item.span
            pieces.append(text[pos:start])
            result, ok = self._execute(item, edits_enabled)
            pieces.append(result)
            pos = end
            if ok:
                last_success = item

        pieces.append(text[pos:])

        if last_success is not None:
            state.last_command = _kind(last_success)
            if not isinstance(last_success, ListFiles):
                state.last_file = last_success.path

        reply = "".join(pieces).strip()
        return reply or EMPTY_REPLY

    def _execute(self, item: Extracted, edits_enabled: bool) -> tuple[str, bool]:
        if isinstance(item, MalformedDirective):
            logger.warning("%s", item.error)
            return describe(item.error), False

        if isinstance(item, MUTATING) and not edits_enabled:
            logger.info("Refused %s on %s: editing disabled", _kind(item), item.path)
            return EDITS_DISABLED, False

        try:
            result = self._run(item)
        except SandboxViolation as e:
            return f"🚫 Access denied: {e.raw_path}", False
        except BridgeError as e:
            logger.warning("%s failed: %s", _kind(item), e)
            return describe(e), False

        logger.info("Executed %s%s", _kind(item), "" if isinstance(item, ListFiles) else f" on {item.path}")
        return result, True

    def _run(self, item: Directive) -> str:
        if isinstance(item, ListFiles):
            entries = self.workspace.list_dir(self.workspace.resolve(""))
            listing = "\n".join(entry.render() for entry in entries) or "(empty)"
            return f"📂 **Files:**\n{code_block(listing)}"

        path = self.workspace.resolve(item.path)

        if isinstance(item, ReadFile):
            content = self.workspace.read(path)
            return f"📄 **{path}:**\n{code_block(truncate(content, self.read_chars))}"

        if isinstance(item, WriteFile):
            self.workspace.write(path, item.content)
            return f"✅ Wrote **{path}**"

        if isinstance(item, AppendFile):
            self.workspace.append(path, item.content)
            return f"✅ Appended to **{path}**"

        if item.diff is not None:
            self.workspace.apply_diff(path, item.diff)
            return f"✅ Applied diff to **{path}**"

        self.workspace.edit_line(path, item.line, item.text)
        return f"✅ Edited line {item.line} of **{path}**"


def _kind(item: Directive) -> str:
    return {
        ListFiles: "LIST_FILES",
        ReadFile: "READ_FILE",
        WriteFile: "WRITE_FILE",
        AppendFile: "APPEND_FILE",
        EditFile: "EDIT_FILE",
    }[type(item)]
