"""LangGraph dispatcher: one graph run per inbound event."""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

import httpx
from langgraph.graph import END, START, StateGraph

from hermesbridge.config import Config
from hermesbridge.constants import POLL_ERROR_BACKOFF, START_WORD
from hermesbridge.conversation import ConversationRegistry
from hermesbridge.directives import DirectiveProcessor
from hermesbridge.errors import ExecBoundsError, TransportError, UpstreamError, describe
from hermesbridge.events import InboundEvent
from hermesbridge.guards.auth import AuthorizationGate
from hermesbridge.guards.dedup import DedupWindow, LoopGuard
from hermesbridge.guards.spam import SpamGuard
from hermesbridge.llm import CompletionBackend
from hermesbridge.router import (
    CommandRoute,
    ContinuationRoute,
    DiscardRoute,
    FreeFormRoute,
    PromptRoute,
    StartRoute,
    StopRoute,
    ZoneRoute,
    route,
)
from hermesbridge.state import BridgeState
from hermesbridge.system_prompt import SystemPromptBuilder
from hermesbridge.tools.commands import CommandExecutor
from hermesbridge.tools.executor import Executor
from hermesbridge.tools.sync_health import SyncHealthGate
from hermesbridge.tools.workspace import Workspace
from hermesbridge.transport import ChatTransport
from hermesbridge.utils.logging import TranscriptLogger

logger = logging.getLogger(__name__)

DEGRADED_REPLY = UpstreamError.user_message
ACK_REPLY = "📨 Request received, thinking..."

CAPABILITIES = (
    "I can:\n"
    "• Read and understand your codebase\n"
    "• Answer questions about your project\n"
    "• Analyze files and provide insights\n"
)

DEPLOY_GREETING = (
    "🚀 I just redeployed and boy are my packets reconstituted! "
    "How can I help you with your project today?\n\n"
    + CAPABILITIES
    + '• ⚠️ Create and edit files (type "**:dangerzone**" to enable, "**:safetyzone**" to disable)\n\n'
    'Try: "Show me the README" or "List all files"'
)

STOPPED_REPLY = '⏹️ Stopped. File editing disabled. Send "start" to resume.'

DANGERZONE_REPLY = (
    "🚨 **DANGER ZONE ACTIVATED**\n\n"
    "File editing is now enabled. I can:\n"
    "• Create new files\n"
    "• Modify existing files\n\n"
    '⚠️ Use with caution! Type ":safetyzone" to disable.'
)

SAFETYZONE_REPLY = (
    "🔒 **SAFETY ZONE ACTIVATED**\n\n"
    "File editing is now disabled. I can only:\n"
    "• Read and analyze files\n"
    "• Answer questions about your codebase\n\n"
    'Type ":dangerzone" to re-enable file editing.'
)


class Dispatcher:
    """Runs every inbound event through guards, routing, execution and delivery."""

    def __init__(
        self,
        config: Config,
        transport: ChatTransport,
        backend: CompletionBackend,
        bot_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
        transcript: Optional[TranscriptLogger] = None,
        sync_gate: Optional[SyncHealthGate] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            config: Configuration object
            transport: Chat transport used for every send
            backend: Completion backend for free-form requests
            bot_id: This bot's user id
            started_at: Process start (defaults to now)
            transcript: Optional transcript logger
            sync_gate: Sync health gate (defaults to one built from config)
            sleep: Back-off sleeper for the poll loop
        """
        self.config = config
        self.transport = transport
        self.backend = backend
        self.transcript = transcript
        self.sleep = sleep
        self.edits_enabled = config.allow_file_edits

        # Process-wide guards and state
        self.dedup = DedupWindow(config.dedup_capacity)
        self.loop_guard = LoopGuard(self.dedup, started_at=started_at, bot_id=bot_id)
        self.auth = AuthorizationGate(config.authorized_users, config.command_prefix, config.unauthorized_policy)
        self.spam = SpamGuard(config.spam)
        self.registry = ConversationRegistry()

        # Tools
        self.workspace = Workspace(config.workspace_path, config.max_read_mb, config.max_write_mb)
        self.executor = Executor(self.workspace.root, config.exec_timeout)
        self.sync_gate = sync_gate or SyncHealthGate(
            self.workspace.root,
            critical_files=config.critical_files,
            min_file_count=config.min_file_count,
            sync_source=config.sync_source,
            timeout=config.sync_timeout,
        )
        self.commands = CommandExecutor(
            self.workspace,
            self.executor,
            self.sync_gate,
            self.registry,
            config.command_prefix,
            read_display_chars=config.read_display_chars,
            exec_output_chars=config.exec_output_chars,
            transcript=transcript,
        )
        self.directives = DirectiveProcessor(self.workspace, config.directive_read_chars)
        self.prompts = SystemPromptBuilder(self.workspace.root, config.command_prefix)

        self.graph = self.build_graph()

    def build_graph(self):
        """Build the per-event workflow.

        Returns:
            Compiled StateGraph
        """
        workflow = StateGraph(BridgeState)

        workflow.add_node("admit", self.admit_node)
        workflow.add_node("authorize", self.authorize_node)
        workflow.add_node("classify", self.classify_node)
        workflow.add_node("control", self.control_node)
        workflow.add_node("continuation", self.continuation_node)
        workflow.add_node("command", self.command_node)
        workflow.add_node("model", self.model_node)
        workflow.add_node("directives", self.directives_node)
        workflow.add_node("deliver", self.deliver_node)

        workflow.add_edge(START, "admit")
        workflow.add_conditional_edges("admit", lambda s: END if s["halt"] else "authorize")
        workflow.add_conditional_edges("authorize", lambda s: "deliver" if s["halt"] else "classify")
        workflow.add_conditional_edges("classify", self._next_after_route)
        workflow.add_conditional_edges("model", lambda s: "directives" if s.get("model_output") is not None else "deliver")
        for node in ("control", "continuation", "command", "directives"):
            workflow.add_edge(node, "deliver")
        workflow.add_edge("deliver", END)

        return workflow.compile()

    def handle_event(self, event: InboundEvent) -> None:
        """Process one event inside an error boundary.

        An unexpected failure after admission is logged and answered with a
        generic degraded-service reply; it never propagates to the poll loop.
        """
        try:
            self.graph.invoke({"event": event, "replies": []})
        except Exception:
            logger.exception("Unhandled error while processing event %s", event.id)
            if event.id not in self.dedup:
                return
            try:
                self.deliver(event.conversation_id, DEGRADED_REPLY)
            except (httpx.HTTPError, TransportError):
                logger.exception("Could not deliver degraded-service reply for %s", event.id)

    def deliver(self, conversation_id: str, text: str) -> bool:
        """Send one outbound message through the spam guard.

        Returns:
            True if the message was sent
        """
        suppressed = self.spam.should_suppress(conversation_id, text)
        self.spam.record(conversation_id, text)
        if self.transcript:
            self.transcript.log_message("out", conversation_id, text, suppressed=suppressed)
        if suppressed:
            return False
        self.transport.send(conversation_id, text)
        return True

    def notify_startup(self) -> None:
        """Greet the configured chat once after a deployment."""
        if self.config.authorized_chat_id:
            self.deliver(self.config.authorized_chat_id, DEPLOY_GREETING)
            logger.info("Deployment notice sent to chat %s", self.config.authorized_chat_id)

    def run_forever(self) -> None:
        """Consume events in arrival order; retry the poll after network errors."""
        while True:
            try:
                for event in self.transport.receive_events():
                    self.handle_event(event)
            except (httpx.HTTPError, TransportError) as e:
                logger.warning("Polling failed: %s. Retrying in %.0fs", e, POLL_ERROR_BACKOFF)
                self.sleep(POLL_ERROR_BACKOFF)

    # Nodes

    def admit_node(self, state: BridgeState) -> dict:
        event = state["event"]
        if not self.loop_guard.admit(event):
            return {"halt": True}

        if self.transcript:
            self.transcript.log_message("in", event.conversation_id, event.text)

        conversation = self.registry.get(event.conversation_id)
        if conversation.stopped and event.text.strip().lower() != START_WORD:
            logger.info("Discarding event %s: conversation %s is stopped", event.id, event.conversation_id)
            return {"halt": True}

        return {"halt": False}

    def authorize_node(self, state: BridgeState) -> dict:
        decision = self.auth.check(state["event"])
        if decision.allowed:
            return {"halt": False}
        return {"halt": True, "replies": [decision.reply] if decision.reply else []}

    def classify_node(self, state: BridgeState) -> dict:
        event = state["event"]
        conversation = self.registry.get(event.conversation_id)
        try:
            return {"route": route(event.text, conversation, self.config.command_prefix)}
        except ExecBoundsError as e:
            return {"route": None, "replies": [describe(e)]}

    def _next_after_route(self, state: BridgeState) -> str:
        current = state.get("route")
        if current is None:
            return "deliver"
        if isinstance(current, CommandRoute):
            return "command"
        if isinstance(current, ContinuationRoute):
            return "continuation"
        if isinstance(current, FreeFormRoute):
            return "model"
        return "control"

    def control_node(self, state: BridgeState) -> dict:
        conversation_id = state["event"].conversation_id
        current = state["route"]

        if isinstance(current, StopRoute):
            self.registry.stop(conversation_id)
            self.edits_enabled = False
            logger.info("Conversation %s stopped", conversation_id)
            return {"replies": [STOPPED_REPLY]}

        if isinstance(current, StartRoute):
            self.registry.start(conversation_id)
            logger.info("Conversation %s started", conversation_id)
            hint = '"**:safetyzone**" to disable' if self.edits_enabled else '"**:dangerzone**" to enable'
            return {
                "replies": [
                    "▶️ Started! How can I help you with your project?\n\n"
                    + CAPABILITIES
                    + f"• ⚠️ Create and edit files ({hint})\n\n"
                    'Try: "Show me the README" or "List all files"'
                ]
            }

        if isinstance(current, ZoneRoute):
            self.edits_enabled = current.edits_enabled
            logger.warning(
                "File editing %s by %s",
                "enabled" if current.edits_enabled else "disabled",
                state["event"].author_name or state["event"].author_id,
            )
            return {"replies": [DANGERZONE_REPLY if current.edits_enabled else SAFETYZONE_REPLY]}

        if isinstance(current, PromptRoute):
            return {"replies": [self.commands.prompt_text()]}

        if isinstance(current, DiscardRoute):
            return {"replies": []}

        raise TypeError(f"Unexpected control route: {current!r}")

    def continuation_node(self, state: BridgeState) -> dict:
        event = state["event"]
        return {"replies": [self.commands.continue_pending(event.conversation_id, state["route"].text)]}

    def command_node(self, state: BridgeState) -> dict:
        event = state["event"]
        return {"replies": [self.commands.execute(event.conversation_id, state["route"].command)]}

    def model_node(self, state: BridgeState) -> dict:
        event = state["event"]
        if self.config.ack_requests:
            self.deliver(event.conversation_id, ACK_REPLY)

        conversation = self.registry.get(event.conversation_id)
        system = self.prompts.build_system_messages(self.edits_enabled, conversation)
        try:
            output = self.backend.complete(system, event.text)
        except UpstreamError as e:
            logger.warning("Upstream failure for event %s: %s", event.id, type(e).__name__)
            return {"model_output": None, "replies": [e.user_message]}

        return {"model_output": output}

    def directives_node(self, state: BridgeState) -> dict:
        event = state["event"]
        conversation = self.registry.get(event.conversation_id)
        reply = self.directives.apply(state["model_output"], conversation, self.edits_enabled)
        return {"replies": [reply]}

    def deliver_node(self, state: BridgeState) -> dict:
        conversation_id = state["event"].conversation_id
        sent = sum(1 for reply in state.get("replies", []) if self.deliver(conversation_id, reply))
        return {"delivered": sent}
