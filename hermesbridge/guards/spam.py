"""Outbound spam suppression."""

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from hermesbridge.config import SpamSettings

logger = logging.getLogger(__name__)


@dataclass
class SentRecord:
    conversation_id: str
    prefix: str
    timestamp: float


class SpamGuard:
    """Decides whether an outbound message would be part of a reply loop.

    Two independent rules, each checked against messages recorded before the
    one being decided:

    - window rule: among the last `window` recorded messages (all
      conversations), `window_threshold` or more share this prefix
    - duplicate rule: this (conversation, prefix) was recorded
      `duplicate_threshold` or more times within `duplicate_window` seconds

    Callers must call record() after every decision, suppressed or not.
    """

    def __init__(
        self,
        settings: Optional[SpamSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize guard.

        Args:
            settings: Thresholds; defaults when None
            clock: Monotonic time source in seconds
        """
        self.settings = settings or SpamSettings()
        self.clock = clock
        self.history: deque[SentRecord] = deque(maxlen=self.settings.history)
        self.recent: dict[tuple[str, str], list[float]] = {}

    def prefix(self, text: str) -> str:
        return text[: self.settings.prefix_len].lower()

    def should_suppress(self, conversation_id: str, text: str) -> bool:
        """Check an outbound message before it is sent.

        Args:
            conversation_id: Destination conversation
            text: Outbound text

        Returns:
            True if the message must not be sent
        """
        now = self.clock()
        self._evict(now)
        prefix = self.prefix(text)

        window = list(self.history)[-self.settings.window:]
        similar = sum(1 for record in window if record.prefix == prefix)
        if similar >= self.settings.window_threshold:
            logger.warning(
                "Suppressed outbound message to %s: sent %d times in last %d messages: %r",
                conversation_id,
                similar,
                self.settings.window,
                prefix,
            )
            return True

        stamps = [
            ts for ts in self.recent.get((conversation_id, prefix), [])
            if now - ts <= self.settings.duplicate_window
        ]
        if len(stamps) >= self.settings.duplicate_threshold:
            logger.warning(
                "Suppressed duplicate to %s: sent %d times in %.0fs: %r",
                conversation_id,
                len(stamps),
                self.settings.duplicate_window,
                prefix,
            )
            return True

        return False

    def record(self, conversation_id: str, text: str) -> None:
        """Record an outbound decision."""
        now = self.clock()
        prefix = self.prefix(text)
        self.history.append(SentRecord(conversation_id, prefix, now))
        self.recent.setdefault((conversation_id, prefix), []).append(now)

    def _evict(self, now: float) -> None:
        cutoff = now - self.settings.cleanup_window
        for key in list(self.recent):
            stamps = [ts for ts in self.recent[key] if ts >= cutoff]
            if stamps:
                self.recent[key] = stamps
            else:
                del self.recent[key]
