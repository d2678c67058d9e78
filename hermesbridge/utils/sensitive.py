"""Sensitive-name and skip rules using pathspec."""

from typing import Iterable

import pathspec

from hermesbridge.constants import SENSITIVE_PATTERNS, STATUS_IGNORES


class NameRules:
    """Matches workspace-relative paths against gitwildmatch patterns."""

    def __init__(self, patterns: Iterable[str]):
        """Initialize rules.

        Args:
            patterns: gitwildmatch patterns; blank lines and comments are skipped
        """
        patterns = [p.strip() for p in patterns if p.strip() and not p.strip().startswith("#")]
        self.spec = pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    def matches(self, relative_path: str) -> bool:
        """Check a workspace-relative POSIX path.

        A pattern matching any component also matches everything below it,
        so "secrets/notes.txt" is caught by "*secret*".

        Args:
            relative_path: Path relative to the workspace root

        Returns:
            True if any pattern matches
        """
        if relative_path in ("", "."):
            return False
        return self.spec.match_file(relative_path)


def sensitive_rules() -> NameRules:
    """Build the denylist the workspace guard enforces."""
    return NameRules(SENSITIVE_PATTERNS)


def status_ignore_rules() -> NameRules:
    """Build the skip rules used when aggregating workspace status."""
    return NameRules(STATUS_IGNORES)
