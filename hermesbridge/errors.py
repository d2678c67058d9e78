"""Error taxonomy for the message-processing pipeline."""

from typing import Optional


class BridgeError(Exception):
    """Base class for all hermesbridge errors."""


class SandboxViolation(BridgeError):
    """A path escaped the workspace root or matched the sensitive-name denylist."""

    def __init__(self, raw_path: str, reason: str):
        """Initialize violation.

        Args:
            raw_path: Path as supplied by the user or model
            reason: Why the path was rejected
        """
        super().__init__(f"{reason}: {raw_path}")
        self.raw_path = raw_path
        self.reason = reason


class WorkspaceError(BridgeError):
    """A sandboxed file operation failed (missing file, too large, I/O error)."""


class ExtractionError(BridgeError):
    """A directive was found in model output but its payload is malformed."""

    def __init__(self, kind: str, reason: str):
        super().__init__(f"Malformed {kind} directive: {reason}")
        self.kind = kind
        self.reason = reason


class ExecBoundsError(BridgeError):
    """Invalid command arguments: missing argument or line number out of range."""


class SyncUnhealthy(BridgeError):
    """The workspace is not healthy enough for a destructive sync."""

    def __init__(self, missing_critical: list[str], reasons: list[str]):
        """Initialize refusal.

        Args:
            missing_critical: Critical filenames absent from the workspace
            reasons: Human-readable refusal reasons
        """
        super().__init__("; ".join(reasons) or "Workspace unhealthy")
        self.missing_critical = missing_critical
        self.reasons = reasons


class TransportError(BridgeError):
    """The chat transport rejected a request."""


class UpstreamError(BridgeError):
    """The completion backend failed."""

    user_message = "⚠️ Sorry, I'm having trouble with that request. Wait a sec and try again, or ask me something else."

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class UpstreamTimeout(UpstreamError):
    user_message = "⌛ The AI backend timed out. Wait a sec and try again, or ask me something else."


class UpstreamRateLimited(UpstreamError):
    user_message = "⏳ Rate limit exceeded. Please wait a moment and try again."


class UpstreamAuthError(UpstreamError):
    user_message = "🔑 API key issue. Please check the AI backend configuration."


class UpstreamNetworkError(UpstreamError):
    user_message = "🌐 Network issue. Wait a sec and try again, or ask me something else."


def describe(error: BridgeError) -> str:
    """Render an expected pipeline error as a chat reply."""
    if isinstance(error, SandboxViolation):
        return f"🚫 Access denied: {error.raw_path} ({error.reason})"
    if isinstance(error, SyncUnhealthy):
        lines = ["🚫 **Sync refused:** workspace is unhealthy"]
        lines.extend(f"• {reason}" for reason in error.reasons)
        return "\n".join(lines)
    if isinstance(error, ExtractionError):
        return f"⚠️ {error}"
    if isinstance(error, UpstreamError):
        return error.user_message
    return f"❌ {error}"
