"""Process logging setup and the NDJSON message transcript."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler


def setup_logging(level: str = "INFO") -> None:
    """Route all loggers through a rich handler.

    Args:
        level: Root log level name
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every long-poll request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class TranscriptLogger:
    """Writes the inbound/outbound transcript of one bot run."""

    def __init__(self, log_root: Path, run_id: Optional[str] = None):
        """Initialize transcript logger.

        Args:
            log_root: Base log directory (outside the workspace)
            run_id: Optional run ID (generated if not provided)
        """
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")

        self.log_dir = log_root / "runs" / self.run_id
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.transcript_path = self.log_dir / "transcript.ndjson"
        self.exec_dir = self.log_dir / "exec"
        self.exec_dir.mkdir(exist_ok=True)

    def log_message(
        self,
        direction: str,
        conversation_id: str,
        content: str,
        suppressed: bool = False,
    ) -> None:
        """Append one message to the transcript.

        Args:
            direction: "in" or "out"
            conversation_id: Conversation the message belongs to
            content: Message text
            suppressed: Outbound message blocked by the spam guard
        """
        entry = {
            "ts": datetime.now().isoformat(),
            "direction": direction,
            "conversation_id": conversation_id,
            "content": content,
        }
        if suppressed:
            entry["suppressed"] = True

        with open(self.transcript_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def save_exec_result(self, command: str, result: dict) -> None:
        """Save an exec command result.

        Args:
            command: Command that was executed
            result: Execution result dictionary
        """
        safe_cmd = "".join(c if c.isalnum() else "_" for c in command[:50])
        timestamp = datetime.now().strftime("%H%M%S%f")
        exec_path = self.exec_dir / f"{timestamp}_{safe_cmd}.json"

        with open(exec_path, "w") as f:
            json.dump(
                {
                    "command": command,
                    "timestamp": datetime.now().isoformat(),
                    **result,
                },
                f,
                indent=2,
            )

    def get_log_path(self) -> str:
        return str(self.log_dir.absolute())
