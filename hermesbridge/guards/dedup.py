"""Per-event idempotence and self-message rejection."""

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Optional

from hermesbridge.constants import DEFAULT_DEDUP_CAPACITY
from hermesbridge.events import InboundEvent

logger = logging.getLogger(__name__)


class DedupWindow:
    """Bounded, insertion-ordered set of processed event ids."""

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, event_id: str) -> None:
        """Record an id, evicting the oldest ones past capacity."""
        self._ids[event_id] = None
        while len(self._ids) > self.capacity:
            self._ids.popitem(last=False)


class LoopGuard:
    """First gate of the pipeline: drops duplicates, bot traffic and backlog."""

    def __init__(
        self,
        window: DedupWindow,
        started_at: Optional[datetime] = None,
        bot_id: Optional[str] = None,
    ):
        """Initialize guard.

        Args:
            window: Dedup window shared for the process lifetime
            started_at: Process start; earlier messages are backlog
            bot_id: This bot's own user id, once known
        """
        self.window = window
        # Chat timestamps have one-second resolution
        started = started_at or datetime.now(timezone.utc)
        self.started_at = started.replace(microsecond=0)
        self.bot_id = bot_id

    def admit(self, event: InboundEvent) -> bool:
        """Decide whether an event may be processed.

        Rejection has no side effects; admission records the event id.

        Args:
            event: Inbound event

        Returns:
            True if the event should be processed
        """
        if event.id in self.window:
            logger.info("Already processed event %s", event.id)
            return False

        if event.is_self_or_other_bot or (self.bot_id is not None and event.author_id == self.bot_id):
            logger.info("Ignoring bot message %s", event.id)
            return False

        if event.sent_at < self.started_at:
            logger.info(
                "Ignoring event %s sent at %s (before start at %s)",
                event.id,
                event.sent_at.isoformat(),
                self.started_at.isoformat(),
            )
            return False

        self.window.add(event.id)
        return True
