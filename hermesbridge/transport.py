"""Chat transport: Telegram Bot API over long polling."""

import logging
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from hermesbridge.constants import DEFAULT_POLL_TIMEOUT, MAX_MESSAGE_LENGTH, TELEGRAM_API_BASE
from hermesbridge.errors import TransportError
from hermesbridge.events import InboundEvent
from hermesbridge.utils.text import split_message

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """Ordered, at-least-once event source plus a send primitive."""

    def receive_events(self) -> Iterator[InboundEvent]:
        ...

    def send(self, conversation_id: str, text: str) -> None:
        ...


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    username: Optional[str] = None
    first_name: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: Optional[str] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    date: int
    chat: TelegramChat
    from_: Optional[TelegramUser] = Field(None, alias="from")
    text: Optional[str] = None


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None


def to_event(message: TelegramMessage) -> Optional[InboundEvent]:
    """Convert a Telegram message to an InboundEvent.

    Messages without text or sender (joins, photos, channel posts) yield None.
    """
    if message.text is None or message.from_ is None:
        return None

    return InboundEvent(
        id=f"{message.chat.id}:{message.message_id}",
        conversation_id=str(message.chat.id),
        author_id=str(message.from_.id),
        author_name=message.from_.username or "",
        is_self_or_other_bot=message.from_.is_bot,
        text=message.text,
        sent_at=datetime.fromtimestamp(message.date, tz=timezone.utc),
    )


class TelegramTransport:
    """Telegram Bot API client."""

    def __init__(
        self,
        token: str,
        client: Optional[httpx.Client] = None,
        base_url: str = TELEGRAM_API_BASE,
        poll_timeout: int = DEFAULT_POLL_TIMEOUT,
    ):
        """Initialize transport.

        Args:
            token: Bot token
            client: Pre-built httpx client (tests)
            base_url: Bot API base URL
            poll_timeout: Long-poll timeout in seconds
        """
        self.poll_timeout = poll_timeout
        self.client = client or httpx.Client(timeout=httpx.Timeout(poll_timeout + 10))
        self.base_url = f"{base_url.rstrip('/')}/bot{token}"
        self.offset: Optional[int] = None

    def close(self) -> None:
        self.client.close()

    def get_me(self) -> TelegramUser:
        """Fetch the bot's own user."""
        return TelegramUser.model_validate(self._call("getMe"))

    def drain_backlog(self) -> int:
        """Acknowledge every update pending at startup without processing it.

        Returns:
            Number of updates skipped
        """
        skipped = 0
        while True:
            updates = self._get_updates(timeout=0)
            if not updates:
                break
            skipped += len(updates)

        if skipped:
            logger.info("Skipped %d pending updates from before startup", skipped)
        return skipped

    def poll(self) -> list[InboundEvent]:
        """Long-poll once and convert text messages to events.

        Returns:
            Events in arrival order
        """
        events = []
        for update in self._get_updates(timeout=self.poll_timeout):
            if update.message is None:
                continue
            event = to_event(update.message)
            if event is not None:
                events.append(event)
        return events

    def receive_events(self) -> Iterator[InboundEvent]:
        """Yield events forever. Network errors propagate to the caller."""
        while True:
            yield from self.poll()

    def send(self, conversation_id: str, text: str) -> None:
        """Send text, split into chunks that fit a single message.

        Chunks rejected for bad Markdown are resent as plain text.

        Args:
            conversation_id: Chat id
            text: Message text
        """
        for chunk in split_message(text, MAX_MESSAGE_LENGTH):
            payload = {
                "chat_id": conversation_id,
                "text": chunk,
                "parse_mode": "Markdown",
                "disable_web_page_preview": True,
            }
            try:
                self._call("sendMessage", payload)
            except TransportError as e:
                logger.warning("Markdown send failed (%s), retrying as plain text", e)
                payload.pop("parse_mode")
                self._call("sendMessage", payload)

    def _get_updates(self, timeout: int) -> list[TelegramUpdate]:
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if self.offset is not None:
            payload["offset"] = self.offset

        raw = self._call("getUpdates", payload, timeout=timeout + 10)
        updates = [TelegramUpdate.model_validate(item) for item in raw]
        if updates:
            self.offset = updates[-1].update_id + 1
        return updates

    def _call(self, method: str, payload: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        """Call a Bot API method.

        Raises:
            httpx.HTTPError: On network failure or a non-JSON error response
            TransportError: When the API answers ok=false
        """
        kwargs: dict[str, Any] = {"json": payload or {}}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = self.client.post(f"{self.base_url}/{method}", **kwargs)

        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise TransportError(f"{method}: unexpected response body")

        if not data.get("ok"):
            raise TransportError(f"{method} failed: {data.get('description', 'unknown error')}")
        return data["result"]
