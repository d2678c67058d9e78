"""State models for LangGraph."""

from operator import add
from typing import Annotated, Optional, TypedDict

from hermesbridge.events import InboundEvent
from hermesbridge.router import Route


class BridgeState(TypedDict, total=False):
    """The state object passed through the per-event LangGraph workflow.

    Attributes:
        event: The inbound event being handled
        halt: Processing ends after the current node (rejected, discarded or refused)
        route: Router classification, None when routing failed
        model_output: Raw model text awaiting directive processing
        replies: Outbound texts, delivered in order at the end
        delivered: Number of replies actually sent
    """

    event: InboundEvent
    halt: bool
    route: Optional[Route]
    model_output: Optional[str]
    replies: Annotated[list[str], add]
    delivered: int
