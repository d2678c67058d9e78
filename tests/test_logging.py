"""Tests for logging setup and the transcript."""

import json
import logging

from rich.logging import RichHandler

from hermesbridge.utils.logging import TranscriptLogger, setup_logging


def test_setup_logging_installs_rich_handler():
    """Test that the root logger uses rich and httpx is quieted."""
    setup_logging("debug")

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(handler, RichHandler) for handler in root.handlers)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_transcript_layout(temp_dir):
    """Test the per-run directory structure."""
    transcript = TranscriptLogger(temp_dir, run_id="run1")

    assert transcript.log_dir == temp_dir / "runs" / "run1"
    assert (transcript.log_dir / "exec").is_dir()
    assert transcript.get_log_path() == str((temp_dir / "runs" / "run1").absolute())


def test_log_message_appends_ndjson(temp_dir):
    """Test transcript entries, including suppressed sends."""
    transcript = TranscriptLogger(temp_dir, run_id="run1")

    transcript.log_message("in", "100", "hello")
    transcript.log_message("out", "100", "héllo", suppressed=True)

    entries = [json.loads(line) for line in transcript.transcript_path.read_text(encoding="utf-8").splitlines()]
    assert entries[0]["direction"] == "in"
    assert "suppressed" not in entries[0]
    assert entries[1]["content"] == "héllo"
    assert entries[1]["suppressed"] is True


def test_save_exec_result(temp_dir):
    """Test that exec results are written as JSON."""
    transcript = TranscriptLogger(temp_dir, run_id="run1")

    transcript.save_exec_result("ls -la", {"success": True, "exit_code": 0})

    (path,) = (temp_dir / "runs" / "run1" / "exec").iterdir()
    assert path.name.endswith("_ls__la.json")
    data = json.loads(path.read_text())
    assert data["command"] == "ls -la"
    assert data["exit_code"] == 0
