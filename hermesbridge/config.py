"""Configuration loading and management."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from hermesbridge.constants import (
    DEFAULT_COMMAND_PREFIX,
    DEFAULT_CRITICAL_FILES,
    DEFAULT_DEDUP_CAPACITY,
    DEFAULT_DIRECTIVE_READ_CHARS,
    DEFAULT_EXEC_OUTPUT_CHARS,
    DEFAULT_EXEC_TIMEOUT,
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_MIN_FILE_COUNT,
    DEFAULT_MODEL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_READ_DISPLAY_CHARS,
    DEFAULT_SPAM_CLEANUP_WINDOW,
    DEFAULT_SPAM_DUPLICATE_THRESHOLD,
    DEFAULT_SPAM_DUPLICATE_WINDOW,
    DEFAULT_SPAM_HISTORY,
    DEFAULT_SPAM_PREFIX_LEN,
    DEFAULT_SPAM_WINDOW,
    DEFAULT_SPAM_WINDOW_THRESHOLD,
    DEFAULT_SYNC_SOURCE,
    DEFAULT_SYNC_TIMEOUT,
    DEFAULT_UNAUTHORIZED_POLICY,
    DEFAULT_WORKSPACE_PATH,
    UNAUTHORIZED_POLICIES,
)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class SpamSettings:
    """Spam guard thresholds."""

    prefix_len: int = DEFAULT_SPAM_PREFIX_LEN
    history: int = DEFAULT_SPAM_HISTORY
    window: int = DEFAULT_SPAM_WINDOW
    window_threshold: int = DEFAULT_SPAM_WINDOW_THRESHOLD
    duplicate_threshold: int = DEFAULT_SPAM_DUPLICATE_THRESHOLD
    duplicate_window: float = DEFAULT_SPAM_DUPLICATE_WINDOW
    cleanup_window: float = DEFAULT_SPAM_CLEANUP_WINDOW


@dataclass
class Config:
    """hermesbridge configuration.

    Loads from .env and optionally a JSON overrides file.
    """

    # Credentials
    telegram_bot_token: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Model settings
    default_model: str = DEFAULT_MODEL

    # Workspace
    workspace_path: Path = Path(DEFAULT_WORKSPACE_PATH)
    max_read_mb: int = DEFAULT_MAX_READ_MB
    max_write_mb: int = DEFAULT_MAX_WRITE_MB
    read_display_chars: int = DEFAULT_READ_DISPLAY_CHARS
    directive_read_chars: int = DEFAULT_DIRECTIVE_READ_CHARS

    # Access control
    authorized_users: list[str] = field(default_factory=list)
    authorized_chat_id: Optional[str] = None
    unauthorized_policy: str = DEFAULT_UNAUTHORIZED_POLICY

    # Chat behaviour
    command_prefix: str = DEFAULT_COMMAND_PREFIX
    allow_file_edits: bool = False
    ack_requests: bool = False

    # Execution settings
    exec_timeout: int = DEFAULT_EXEC_TIMEOUT
    exec_output_chars: int = DEFAULT_EXEC_OUTPUT_CHARS

    # Guards
    dedup_capacity: int = DEFAULT_DEDUP_CAPACITY
    spam: SpamSettings = field(default_factory=SpamSettings)

    # Sync
    sync_source: str = DEFAULT_SYNC_SOURCE
    sync_timeout: int = DEFAULT_SYNC_TIMEOUT
    critical_files: list[str] = field(default_factory=lambda: list(DEFAULT_CRITICAL_FILES))
    min_file_count: int = DEFAULT_MIN_FILE_COUNT

    # Transport and logging
    poll_timeout: int = DEFAULT_POLL_TIMEOUT
    log_dir: Path = field(default_factory=lambda: Path.home() / ".hermesbridge")
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from environment and an optional overrides file.

        Args:
            config_path: Optional JSON file with spam/sync/dedup overrides

        Returns:
            Config instance
        """
        load_dotenv()

        authorized_users = _env_list("AUTHORIZED_USERS")
        single_user = os.getenv("AUTHORIZED_USER")
        if single_user and single_user not in authorized_users:
            authorized_users.append(single_user)

        config = cls(
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("HERMES_MODEL", DEFAULT_MODEL),
            workspace_path=Path(os.getenv("WORKSPACE_PATH", DEFAULT_WORKSPACE_PATH)),
            max_read_mb=int(os.getenv("HERMES_MAX_READ_MB", DEFAULT_MAX_READ_MB)),
            max_write_mb=int(os.getenv("HERMES_MAX_WRITE_MB", DEFAULT_MAX_WRITE_MB)),
            authorized_users=authorized_users,
            authorized_chat_id=os.getenv("AUTHORIZED_CHAT_ID") or None,
            unauthorized_policy=os.getenv("UNAUTHORIZED_POLICY", DEFAULT_UNAUTHORIZED_POLICY).lower(),
            command_prefix=os.getenv("HERMES_PREFIX", DEFAULT_COMMAND_PREFIX),
            allow_file_edits=_env_bool("ALLOW_FILE_EDITS"),
            ack_requests=_env_bool("HERMES_ACK_REQUESTS"),
            exec_timeout=int(os.getenv("HERMES_EXEC_TIMEOUT", DEFAULT_EXEC_TIMEOUT)),
            sync_source=os.getenv("SYNC_SOURCE", DEFAULT_SYNC_SOURCE),
            log_level=os.getenv("HERMES_LOG_LEVEL", "INFO").upper(),
        )

        log_dir = os.getenv("HERMES_LOG_DIR")
        if log_dir:
            config.log_dir = Path(log_dir)

        if config_path and config_path.exists():
            try:
                with open(config_path) as f:
                    config.apply_overrides(json.load(f))
            except (json.JSONDecodeError, IOError):
                pass  # Ignore invalid config

        return config

    def apply_overrides(self, data: dict) -> None:
        """Apply tunable constants from a parsed overrides document.

        Args:
            data: Dict with optional "spam", "sync" and "dedup_capacity" keys
        """
        spam = data.get("spam", {})
        for name in vars(self.spam):
            if name in spam:
                setattr(self.spam, name, type(getattr(self.spam, name))(spam[name]))

        sync = data.get("sync", {})
        if "critical_files" in sync:
            self.critical_files = [str(name) for name in sync["critical_files"]]
        if "min_file_count" in sync:
            self.min_file_count = int(sync["min_file_count"])
        if "source" in sync:
            self.sync_source = str(sync["source"])

        if "dedup_capacity" in data:
            self.dedup_capacity = int(data["dedup_capacity"])

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.telegram_bot_token:
            errors.append("No bot token found. Set TELEGRAM_BOT_TOKEN")

        if not self.anthropic_api_key:
            errors.append("No API key found. Set ANTHROPIC_API_KEY")

        if not self.authorized_users:
            errors.append("No authorized users. Set AUTHORIZED_USERS")

        if self.unauthorized_policy not in UNAUTHORIZED_POLICIES:
            errors.append(
                f"UNAUTHORIZED_POLICY must be one of {', '.join(UNAUTHORIZED_POLICIES)}"
            )

        if not self.workspace_path.is_dir():
            errors.append(f"Workspace directory does not exist: {self.workspace_path}")

        if self.exec_timeout <= 0:
            errors.append("exec_timeout must be positive")

        if self.max_read_mb <= 0:
            errors.append("max_read_mb must be positive")

        if self.max_write_mb <= 0:
            errors.append("max_write_mb must be positive")

        if self.dedup_capacity <= 0:
            errors.append("dedup_capacity must be positive")

        return errors

    def to_dict(self) -> dict:
        """Convert config to dictionary (for logging/display)."""
        return {
            "default_model": self.default_model,
            "workspace_path": str(self.workspace_path),
            "authorized_users": self.authorized_users,
            "unauthorized_policy": self.unauthorized_policy,
            "command_prefix": self.command_prefix,
            "allow_file_edits": self.allow_file_edits,
            "exec_timeout": self.exec_timeout,
            "dedup_capacity": self.dedup_capacity,
            "spam": dict(vars(self.spam)),
            "critical_files": self.critical_files,
            "min_file_count": self.min_file_count,
            "has_bot_token": bool(self.telegram_bot_token),
            "has_anthropic_key": bool(self.anthropic_api_key),
        }
