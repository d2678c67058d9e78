"""End-to-end tests for the event dispatcher."""

import json
from datetime import timedelta

import httpx
import pytest

from hermesbridge.directives import EDITS_DISABLED
from hermesbridge.errors import UpstreamRateLimited
from hermesbridge.graph import (
    ACK_REPLY,
    DANGERZONE_REPLY,
    DEGRADED_REPLY,
    DEPLOY_GREETING,
    SAFETYZONE_REPLY,
    STOPPED_REPLY,
    Dispatcher,
)
from hermesbridge.utils.logging import TranscriptLogger

from conftest import STARTED_AT, FakeBackend, FakeTransport, make_event


def make_dispatcher(config, transport, backend, **kwargs):
    return Dispatcher(config, transport, backend, bot_id="999", started_at=STARTED_AT, **kwargs)


def system_text(call):
    system_prompt, _ = call
    return "\n".join(block["text"] for block in system_prompt)


def test_free_form_goes_to_model(mock_config, fake_transport, fake_backend):
    """Test that chat text is answered by the model."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("what is this project?"))

    assert fake_transport.sent == [("100", "Hello!")]
    assert fake_backend.calls[0][1] == "what is this project?"
    assert "File editing is DISABLED" in system_text(fake_backend.calls[0])


def test_duplicate_event_handled_once(mock_config, fake_transport, fake_backend):
    """Test that a redelivered event produces no second reply."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)
    event = make_event("hello")

    dispatcher.handle_event(event)
    dispatcher.handle_event(event)

    assert len(fake_transport.sent) == 1
    assert len(fake_backend.calls) == 1


def test_bot_messages_are_ignored(mock_config, fake_transport, fake_backend):
    """Test that messages from bots never get a reply."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("hello", is_bot=True))
    dispatcher.handle_event(make_event("hello", event_id="100:2", author_id="999"))

    assert fake_transport.sent == []
    assert fake_backend.calls == []


def test_backlog_is_ignored(mock_config, fake_transport, fake_backend):
    """Test that messages sent before startup are skipped."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("old", sent_at=STARTED_AT - timedelta(minutes=5)))

    assert fake_transport.sent == []


def test_message_in_start_second_is_admitted(mock_config, fake_transport, fake_backend):
    """Test that the start time is compared at one-second resolution."""
    dispatcher = Dispatcher(
        mock_config,
        fake_transport,
        fake_backend,
        started_at=STARTED_AT + timedelta(milliseconds=700),
    )

    dispatcher.handle_event(make_event("hi", sent_at=STARTED_AT))

    assert fake_transport.texts() == ["Hello!"]


def test_unauthorized_command_refused(mock_config, fake_transport, fake_backend):
    """Test that strangers get a refusal and nothing runs."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event(":h cat README.md", author_name="mallory", author_id="5"))

    assert fake_transport.texts() == ["⛔ Sorry @mallory, you are not authorized to use this bot."]


def test_unauthorized_free_form_dropped_under_drop_policy(mock_config, fake_transport, fake_backend):
    """Test the silent policy for unauthorized chat."""
    mock_config.unauthorized_policy = "drop"
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("hello", author_name="mallory", author_id="5"))

    assert fake_transport.sent == []
    assert fake_backend.calls == []


def test_command_runs_without_model(mock_config, fake_transport, fake_backend):
    """Test that explicit commands bypass the model."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event(":h cat README.md"))

    assert fake_transport.texts() == ["📄 **README.md**:\n```\n# Test Project\n\n```"]
    assert fake_backend.calls == []


def test_command_usage_error(mock_config, fake_transport, fake_backend):
    """Test that usage errors are replied, not raised."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event(":h cat"))

    assert fake_transport.texts()[0].startswith("❌ Usage")


def test_bare_prefix_prompts(mock_config, fake_transport, fake_backend):
    """Test the quick prompt."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event(":h"))

    assert fake_transport.texts()[0].startswith("📚 **What would you like to work on today?**")


def test_stop_and_start(mock_config, fake_transport, fake_backend):
    """Test that a stopped conversation stays silent until start."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("stop", event_id="100:1"))
    dispatcher.handle_event(make_event("hello", event_id="100:2"))
    dispatcher.handle_event(make_event(":h ls", event_id="100:3"))
    dispatcher.handle_event(make_event("Start", event_id="100:4"))
    dispatcher.handle_event(make_event("hello", event_id="100:5"))

    texts = fake_transport.texts()
    assert texts[0] == STOPPED_REPLY
    assert texts[1].startswith("▶️ Started!")
    assert texts[2] == "Hello!"
    assert len(texts) == 3
    assert len(fake_backend.calls) == 1


def test_stop_only_affects_its_conversation(mock_config, fake_transport, fake_backend):
    """Test that other chats keep working while one is stopped."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("stop", event_id="100:1"))
    dispatcher.handle_event(make_event("hello", event_id="200:1", conversation_id="200"))

    assert fake_transport.sent[-1] == ("200", "Hello!")


def test_directives_need_dangerzone(mock_config, fake_transport, test_project):
    """Test that model writes are refused until editing is enabled."""
    backend = FakeBackend(output="WRITE_FILE:made.txt:content")
    dispatcher = make_dispatcher(mock_config, fake_transport, backend)

    dispatcher.handle_event(make_event("make a file", event_id="100:1"))
    assert fake_transport.texts()[-1] == EDITS_DISABLED
    assert not (test_project / "made.txt").exists()

    dispatcher.handle_event(make_event(":dangerzone", event_id="100:2"))
    assert fake_transport.texts()[-1] == DANGERZONE_REPLY

    dispatcher.handle_event(make_event("make a file", event_id="100:3"))
    assert fake_transport.texts()[-1] == "✅ Wrote **made.txt**"
    assert (test_project / "made.txt").read_text() == "content"
    assert "WRITE_FILE:<filename>:<content>" in system_text(backend.calls[-1])

    dispatcher.handle_event(make_event(":safetyzone", event_id="100:4"))
    assert fake_transport.texts()[-1] == SAFETYZONE_REPLY
    assert not dispatcher.edits_enabled


def test_stop_disables_editing(mock_config, fake_transport, fake_backend):
    """Test that stop also turns editing off."""
    mock_config.allow_file_edits = True
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("stop"))

    assert not dispatcher.edits_enabled


def test_read_directive_updates_context(mock_config, fake_transport):
    """Test that the next prompt carries the last file."""
    backend = FakeBackend(output="READ_FILE:README.md")
    dispatcher = make_dispatcher(mock_config, fake_transport, backend)

    dispatcher.handle_event(make_event("show readme", event_id="100:1"))
    dispatcher.handle_event(make_event("and now?", event_id="100:2"))

    assert fake_transport.texts()[0].startswith("📄 **README.md:**")
    assert "Last file: README.md" in system_text(backend.calls[1])


def test_interactive_edit_flow(mock_config, fake_transport, fake_backend, test_project):
    """Test that the message after an interactive edit becomes the content."""
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event(":h edit notes.txt", event_id="100:1"))
    dispatcher.handle_event(make_event("brand new\n", event_id="100:2"))

    assert fake_transport.texts() == ["📝 Send the new content for **notes.txt**:", "✅ Saved **notes.txt**"]
    assert (test_project / "notes.txt").read_text() == "brand new\n"
    assert fake_backend.calls == []


def test_upstream_error_reply(mock_config, fake_transport):
    """Test that backend failures become a friendly reply."""
    backend = FakeBackend(error=UpstreamRateLimited("429"))
    dispatcher = make_dispatcher(mock_config, fake_transport, backend)

    dispatcher.handle_event(make_event("hello"))

    assert fake_transport.texts() == [UpstreamRateLimited.user_message]


def test_unexpected_error_is_contained(mock_config, fake_transport):
    """Test the per-event error boundary."""
    backend = FakeBackend(error=RuntimeError("boom"))
    dispatcher = make_dispatcher(mock_config, fake_transport, backend)

    dispatcher.handle_event(make_event("hello", event_id="100:1"))
    backend.error = None
    dispatcher.handle_event(make_event("again", event_id="100:2"))

    assert fake_transport.texts() == [DEGRADED_REPLY, "Hello!"]


def test_ack_sent_before_model_reply(mock_config, fake_transport, fake_backend):
    """Test the optional acknowledgement."""
    mock_config.ack_requests = True
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.handle_event(make_event("hello"))

    assert fake_transport.texts() == [ACK_REPLY, "Hello!"]


def test_repeated_replies_are_suppressed(mock_config, fake_transport):
    """Test that a looping model cannot flood the chat."""
    backend = FakeBackend(output="Same answer every time")
    dispatcher = make_dispatcher(mock_config, fake_transport, backend)

    for i in range(4):
        dispatcher.handle_event(make_event(f"question {i}", event_id=f"100:{i}"))

    assert fake_transport.texts() == ["Same answer every time"] * 2
    assert len(backend.calls) == 4


def test_notify_startup(mock_config, fake_transport, fake_backend):
    """Test the deployment greeting."""
    mock_config.authorized_chat_id = "100"
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend)

    dispatcher.notify_startup()

    assert fake_transport.sent == [("100", DEPLOY_GREETING)]


def test_transcript_records_both_directions(mock_config, fake_transport, fake_backend, temp_dir):
    """Test that inbound and outbound messages are logged."""
    transcript = TranscriptLogger(temp_dir / "logs", run_id="test")
    dispatcher = make_dispatcher(mock_config, fake_transport, fake_backend, transcript=transcript)

    dispatcher.handle_event(make_event("hello"))

    lines = transcript.transcript_path.read_text(encoding="utf-8").splitlines()
    entries = [json.loads(line) for line in lines]
    assert [(e["direction"], e["content"]) for e in entries] == [("in", "hello"), ("out", "Hello!")]


class Done(Exception):
    pass


class FlakyTransport(FakeTransport):
    """Fails the first poll, then yields its events, then stops the test."""

    def __init__(self, events):
        super().__init__(events)
        self.polls = 0

    def receive_events(self):
        self.polls += 1
        if self.polls == 1:
            raise httpx.ConnectError("network down")
        yield from self.events
        raise Done()


def test_run_forever_retries_after_network_error(mock_config, fake_backend):
    """Test that polling resumes after a transient failure."""
    transport = FlakyTransport([make_event("hello")])
    sleeps = []
    dispatcher = make_dispatcher(mock_config, transport, fake_backend, sleep=sleeps.append)

    with pytest.raises(Done):
        dispatcher.run_forever()

    assert sleeps == [5.0]
    assert transport.texts() == ["Hello!"]
