"""Pytest configuration and fixtures."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hermesbridge.config import Config
from hermesbridge.events import InboundEvent

STARTED_AT = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeTransport:
    """Records sends; yields queued events."""

    def __init__(self, events=None):
        self.events = list(events or [])
        self.sent: list[tuple[str, str]] = []

    def receive_events(self):
        yield from self.events

    def send(self, conversation_id, text):
        self.sent.append((conversation_id, text))

    def texts(self):
        return [text for _, text in self.sent]


class FakeBackend:
    """Returns canned model output, or raises a queued error."""

    def __init__(self, output="Hello!", error=None):
        self.output = output
        self.error = error
        self.calls: list[tuple] = []

    def complete(self, system_prompt, user_text):
        self.calls.append((system_prompt, user_text))
        if self.error is not None:
            raise self.error
        return self.output


def make_event(
    text,
    event_id="100:1",
    conversation_id="100",
    author_id="42",
    author_name="alice",
    is_bot=False,
    sent_at=None,
):
    """Build an inbound event sent after STARTED_AT."""
    return InboundEvent(
        id=event_id,
        conversation_id=conversation_id,
        author_id=author_id,
        author_name=author_name,
        is_self_or_other_bot=is_bot,
        text=text,
        sent_at=sent_at or STARTED_AT + timedelta(seconds=5),
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_project(temp_dir):
    """Create a test workspace structure."""
    workspace = temp_dir / "workspace"
    workspace.mkdir()

    (workspace / "src").mkdir()
    (workspace / "src" / "main.py").write_text("def hello():\n    return 'world'\n")
    (workspace / "src" / "utils.py").write_text("def add(a, b):\n    return a + b\n")

    (workspace / "README.md").write_text("# Test Project\n")
    (workspace / "notes.txt").write_text("first\nsecond\n")
    (workspace / ".env").write_text("ANTHROPIC_API_KEY=sk-test\n")
    (workspace / "api_token.txt").write_text("secret\n")

    yield workspace


@pytest.fixture
def mock_config(test_project, temp_dir):
    """Create a configuration pointing at the test workspace."""
    return Config(
        telegram_bot_token="123:abc",
        anthropic_api_key="test_key",
        workspace_path=test_project,
        authorized_users=["alice"],
        log_dir=temp_dir / "logs",
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_backend():
    return FakeBackend()
