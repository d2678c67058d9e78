"""Tests for conversation state and file location suggestions."""

from hermesbridge.conversation import (
    ConversationRegistry,
    EditingFile,
    WritingFile,
    suggest_file_locations,
)


def test_registry_creates_state_on_demand():
    """Test lazy state creation."""
    registry = ConversationRegistry()

    state = registry.get("1")

    assert not state.stopped
    assert state.pending is None
    assert registry.get("1") is state


def test_single_pending_operation():
    """Test that a new pending operation replaces the old one."""
    registry = ConversationRegistry()

    registry.set_pending("1", EditingFile("a.txt"))
    registry.set_pending("1", WritingFile(path="b.txt"))

    assert registry.get("1").pending == WritingFile(path="b.txt")


def test_stop_clears_pending():
    """Test that stopping a conversation drops its pending operation."""
    registry = ConversationRegistry()
    registry.set_pending("1", EditingFile("a.txt"))

    registry.stop("1")

    assert registry.get("1").stopped
    assert registry.get("1").pending is None

    registry.start("1")
    assert not registry.get("1").stopped


def test_conversations_are_independent():
    """Test that state is keyed by conversation."""
    registry = ConversationRegistry()

    registry.stop("1")

    assert not registry.get("2").stopped


def test_remember_and_summary():
    """Test last file/command bookkeeping."""
    registry = ConversationRegistry()
    assert registry.get("1").get_context_summary() == "No recent context"

    registry.remember("1", last_file="README.md", last_command="cat")

    summary = registry.get("1").get_context_summary()
    assert "README.md" in summary
    assert "cat" in summary


def test_suggestions_for_source_file():
    """Test suggestions for a source file."""
    assert suggest_file_locations("app.ts") == ("src/app.ts", "app.ts", "misc/app.ts")


def test_suggestions_for_test_file():
    """Test that test files suggest tests/ first."""
    assert suggest_file_locations("test_app.py")[0] == "tests/test_app.py"


def test_suggestions_for_docs():
    """Test suggestions for documentation."""
    assert suggest_file_locations("guide.md") == ("guide.md", "docs/guide.md", "misc/guide.md")


def test_suggestions_for_scripts():
    """Test suggestions for shell scripts."""
    assert suggest_file_locations("deploy.sh")[0] == "scripts/deploy.sh"


def test_suggestions_always_three_distinct():
    """Test that exactly three distinct suggestions are offered."""
    for name in ["newfile", "config.yaml", "data.csv", "Button.component.tsx", "x.sh"]:
        suggestions = suggest_file_locations(name)
        assert len(suggestions) == 3
        assert len(set(suggestions)) == 3
