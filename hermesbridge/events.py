"""Inbound chat events."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(BaseModel):
    """A single chat message delivered by the transport.

    Immutable; the Dispatcher consumes each one exactly once.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable id, identical across redeliveries")
    conversation_id: str = Field(description="Chat the message belongs to")
    author_id: str = Field(description="Sender id as reported by the transport")
    author_name: str = Field("", description="Sender username, if any")
    is_self_or_other_bot: bool = Field(False, description="Sender is this bot or another bot")
    text: str
    sent_at: datetime
