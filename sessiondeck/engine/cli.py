"""CLI entry point for the session deck.

Usage:
    sessiondeck "spawn a session in ./api and run its tests"
    sessiondeck --config deck.yaml
    sessiondeck --discover
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.table import Table

from sessiondeck.adapters.event_bus import EventBus

from .config import DeckConfig
from .discovery import discover_sessions
from .errors import DeckError
from .events import (
    DeckEvent,
    OverseerAborted,
    OverseerAwake,
    OverseerError,
    OverseerMessageEvent,
    OverseerSleeping,
    SessionKilled,
    SessionSpawned,
    SessionStatusChanged,
)
from .history import InMemoryHistory
from .model_client import AnthropicModelClient
from .models import MessageRole
from .overseer import Overseer
from .session_manager import SessionManager
from .yaml_config import load_yaml_config

console = Console()

_QUIT_WORDS = ("/quit", "/exit")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="sessiondeck",
        description="Run coding-assistant sessions side by side under an overseer agent",
    )
    parser.add_argument(
        "message",
        nargs="?",
        default=None,
        help="Message for the overseer (omit for an interactive prompt)",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (sessions/overseer/logging sections)",
    )
    parser.add_argument(
        "--project-root",
        default=None,
        help="Base directory for relative session paths (default: current dir)",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Model for the overseer (default: from config)",
    )
    parser.add_argument(
        "--max-turns",
        type=int,
        default=None,
        help="Maximum model calls per overseer message (default: 10)",
    )
    parser.add_argument(
        "--discover",
        action="store_true",
        help="List past sessions that can be resumed, then exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    config = _build_config(args)

    level = logging.DEBUG if args.verbose else getattr(
        logging, config.log_level.upper(), logging.INFO,
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.discover:
        _print_discovered()
        return

    try:
        asyncio.run(_run(config, args.message))
    except KeyboardInterrupt:
        console.print("\nInterrupted.")
        sys.exit(1)


def _build_config(args: argparse.Namespace) -> DeckConfig:
    if args.config:
        try:
            config = load_yaml_config(args.config)
        except (FileNotFoundError, ValueError) as exc:
            print(f"Error: {exc}")
            sys.exit(1)
    else:
        config = DeckConfig.from_env()
    if args.project_root is not None:
        config.project_root = args.project_root
    if args.model is not None:
        config.overseer_model = args.model
    if args.max_turns is not None:
        config.max_turns = args.max_turns
    return config


def _print_discovered() -> None:
    sessions = discover_sessions()
    table = Table(title=f"Resumable sessions ({len(sessions)})")
    table.add_column("ID", style="bold")
    table.add_column("Project")
    table.add_column("Messages", justify="right")
    table.add_column("Modified")
    table.add_column("Preview")
    for s in sessions:
        table.add_row(
            s.id,
            s.project_dir,
            str(s.message_count),
            s.last_modified.strftime("%Y-%m-%d %H:%M"),
            s.preview,
        )
    console.print(table)


def render_event(event: DeckEvent) -> str | None:
    """Console line for an event, or None for events not shown."""
    if isinstance(event, OverseerMessageEvent) and event.message is not None:
        msg = event.message
        if msg.role == MessageRole.ASSISTANT:
            return f"[green]overseer:[/green] {msg.content}"
        if msg.role == MessageRole.TOOL:
            return f"[dim]  {msg.content}[/dim]"
        return None
    if isinstance(event, OverseerSleeping):
        conditions = ", ".join(c.type.value for c in event.conditions)
        return f"[cyan]sleeping until {conditions}[/cyan]"
    if isinstance(event, OverseerAwake):
        return f"[cyan]awake ({event.reason.value})[/cyan]"
    if isinstance(event, OverseerAborted):
        return "[yellow]aborted[/yellow]"
    if isinstance(event, OverseerError):
        return f"[red]error:[/red] {event.error}"
    if isinstance(event, SessionSpawned) and event.session is not None:
        return f"[magenta]{event.session.id}[/magenta] spawned in {event.session.cwd}"
    if isinstance(event, SessionStatusChanged):
        return f"[magenta]{event.session_id}[/magenta] {event.status.value}"
    if isinstance(event, SessionKilled):
        return f"[magenta]{event.session_id}[/magenta] killed"
    return None


async def _print_events(bus: EventBus) -> None:
    async for event in bus.consume():
        line = render_event(event)
        if line is not None:
            console.print(line)


async def _run(config: DeckConfig, message: str | None) -> None:
    history = InMemoryHistory()
    manager = SessionManager(config=config, history=history)
    overseer = Overseer(
        manager,
        AnthropicModelClient(
            max_tokens=config.overseer_max_tokens,
            api_key_env=config.api_key_env,
        ),
        config=config,
        history=history,
    )
    bus = EventBus()
    bus.attach(manager.events, overseer.events)
    printer = asyncio.create_task(_print_events(bus))

    try:
        if message:
            await _chat(overseer, message)
        else:
            console.print("[cyan]Type a message for the overseer (/quit to exit)[/cyan]\n")
            while True:
                try:
                    text = await asyncio.to_thread(console.input, "[bold]you>[/bold] ")
                except EOFError:
                    break
                if text.strip().lower() in _QUIT_WORDS:
                    break
                if text.strip():
                    await _chat(overseer, text)
    finally:
        overseer.abort()
        await manager.shutdown()
        # Let the printer drain what shutdown published.
        await asyncio.sleep(0)
        bus.close()
        bus.detach()
        await asyncio.gather(printer, return_exceptions=True)


async def _chat(overseer: Overseer, text: str) -> None:
    try:
        await overseer.chat(text)
    except DeckError as exc:
        console.print(f"[red]{exc}[/red]")


if __name__ == "__main__":
    main()
