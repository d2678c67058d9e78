"""Authorization gate with a single static allow-list."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from hermesbridge.constants import DEFAULT_UNAUTHORIZED_POLICY, UNAUTHORIZED_POLICIES
from hermesbridge.events import InboundEvent
from hermesbridge.router import is_command

logger = logging.getLogger(__name__)


@dataclass
class AuthDecision:
    """Outcome of an authorization check.

    reply is the refusal to send, or None when the event is dropped silently
    (or allowed).
    """

    allowed: bool
    reply: Optional[str] = None


class AuthorizationGate:
    """Checks senders against the allow-list.

    Policy: explicit commands from unauthorized senders are always refused
    with a reply. Free-form text from unauthorized senders follows
    `unauthorized_policy`: "refuse" replies the same way, "drop" stays silent.
    """

    def __init__(
        self,
        principals: Iterable[str],
        command_prefix: str,
        unauthorized_policy: str = DEFAULT_UNAUTHORIZED_POLICY,
    ):
        """Initialize gate.

        Args:
            principals: Allowed usernames (with or without @) or numeric user ids
            command_prefix: Prefix marking explicit commands
            unauthorized_policy: "refuse" or "drop" for unauthorized free-form text
        """
        if unauthorized_policy not in UNAUTHORIZED_POLICIES:
            raise ValueError(f"Unknown unauthorized policy: {unauthorized_policy}")
        self.principals = {p.lstrip("@").lower() for p in principals if p.strip()}
        self.command_prefix = command_prefix
        self.unauthorized_policy = unauthorized_policy

    def authorize(self, event: InboundEvent) -> bool:
        """Check the sender against the allow-list (usernames match case-insensitively)."""
        candidates = {event.author_id.lower()}
        if event.author_name:
            candidates.add(event.author_name.lstrip("@").lower())
        return bool(candidates & self.principals)

    def check(self, event: InboundEvent) -> AuthDecision:
        """Authorize an event and decide the refusal, if any.

        Args:
            event: Admitted inbound event

        Returns:
            AuthDecision
        """
        if self.authorize(event):
            return AuthDecision(allowed=True)

        command = is_command(event.text, self.command_prefix)
        who = f"@{event.author_name}" if event.author_name else f"user {event.author_id}"
        logger.warning("Unauthorized %s from %s", "command" if command else "message", who)

        if command or self.unauthorized_policy == "refuse":
            return AuthDecision(
                allowed=False,
                reply=f"⛔ Sorry {who}, you are not authorized to use this bot.",
            )
        return AuthDecision(allowed=False)
