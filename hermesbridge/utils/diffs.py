"""Utilities for applying unified diffs."""

from typing import Optional

from unidiff import PatchSet
from unidiff.errors import UnidiffParseError


def apply_patch(content: str, patch_str: str) -> tuple[bool, Optional[str], Optional[str]]:
    """Apply a single-file unified diff to content.

    Hunk-only diffs (no ---/+++ header) are accepted. Every hunk's context
    and removed lines must match the content exactly.

    Args:
        content: Original content
        patch_str: Unified diff string

    Returns:
        Tuple of (success, result_content, error_message)
    """
    if not patch_str.lstrip().startswith("---"):
        patch_str = "--- a/file\n+++ b/file\n" + patch_str
    if not patch_str.endswith("\n"):
        patch_str += "\n"

    try:
        patchset = PatchSet(patch_str)
    except UnidiffParseError as e:
        return False, None, f"Invalid diff: {e}"

    if len(patchset) == 0:
        return False, None, "Empty patch"

    if len(patchset) > 1:
        return False, None, "Patch contains multiple files"

    patched_file = patchset[0]
    lines = content.splitlines(keepends=True)

    # Apply hunks in reverse order to maintain line numbers
    for hunk in reversed(patched_file):
        source_length = hunk.source_length
        # A pure insertion names the line it goes after
        source_start = hunk.source_start if source_length == 0 else max(hunk.source_start - 1, 0)

        expected = [line.value for line in hunk if line.is_context or line.is_removed]
        actual = lines[source_start : source_start + source_length]
        if [l.rstrip("\n") for l in expected] != [l.rstrip("\n") for l in actual]:
            return False, None, f"Hunk at line {hunk.source_start} does not match the file"

        new_lines = [line.value for line in hunk if line.is_added or line.is_context]
        lines[source_start : source_start + source_length] = new_lines

    return True, "".join(lines), None


def normalize_line_endings(content: str) -> str:
    """Normalize line endings to LF.

    Args:
        content: Content with potentially mixed line endings

    Returns:
        Content with normalized line endings
    """
    return content.replace("\r\n", "\n").replace("\r", "\n")
