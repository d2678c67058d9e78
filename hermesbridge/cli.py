"""Command-line entry point for the hermesbridge bot."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from hermesbridge.config import Config
from hermesbridge.graph import Dispatcher
from hermesbridge.llm import LLM
from hermesbridge.transport import TelegramTransport
from hermesbridge.utils.logging import TranscriptLogger, setup_logging

app = typer.Typer(help="hermesbridge - chat bot bridging a project workspace and Claude")
console = Console()
logger = logging.getLogger(__name__)


@app.callback()
def callback() -> None:
    """hermesbridge - chat bot bridging a project workspace and Claude."""


@app.command()
def run(
    workspace: Optional[Path] = typer.Option(
        None,
        "--workspace", "-w",
        help="Workspace directory (default: WORKSPACE_PATH)",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="JSON file overriding spam, sync and dedup settings",
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="Model to use (e.g., anthropic:claude-sonnet-4-5)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (default: HERMES_LOG_LEVEL or INFO)",
    ),
) -> None:
    """Start polling the chat transport and answering messages."""
    started_at = datetime.now(timezone.utc)

    try:
        config = Config.load(config_file)
    except (ValueError, OSError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)

    if workspace:
        config.workspace_path = workspace.resolve()
    if model:
        config.default_model = model
    if log_level:
        config.log_level = log_level.upper()

    errors = config.validate()
    try:
        descriptor = LLM.parse_model_string(config.default_model)
    except ValueError as e:
        errors.append(str(e))

    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)

    setup_logging(config.log_level)
    logger.info("Configuration: %s", config.to_dict())
    transcript = TranscriptLogger(config.log_dir)

    transport = TelegramTransport(config.telegram_bot_token, poll_timeout=config.poll_timeout)
    me = transport.get_me()

    console.print(Panel.fit(
        f"[bold cyan]hermesbridge[/bold cyan] @{me.username or me.id}\n"
        f"Workspace: {config.workspace_path}\n"
        f"Model: {config.default_model}\n"
        f"Authorized: {', '.join(config.authorized_users)}\n"
        f"File edits: {'enabled' if config.allow_file_edits else 'disabled'}\n"
        f"Logs: {transcript.get_log_path()}",
        border_style="cyan",
    ))

    transport.drain_backlog()

    dispatcher = Dispatcher(
        config,
        transport,
        LLM(descriptor, config.anthropic_api_key),
        bot_id=str(me.id),
        started_at=started_at,
        transcript=transcript,
    )
    dispatcher.notify_startup()

    try:
        dispatcher.run_forever()
    except KeyboardInterrupt:
        console.print("\n[cyan]Goodbye![/cyan]")
    finally:
        transport.close()


if __name__ == "__main__":
    app()
