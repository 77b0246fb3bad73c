"""CLI entry point for hearth."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from hearth.app import HearthApp
from hearth.config import AppConfig, load_config
from hearth.exceptions import ConfigError
from hearth.log import setup_logging
from hearth.storage.database import Database
from hearth.storage.event_repo import EventRepository


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="hearth",
        description="Personal agent engine: tool-using turns and scheduled agent tasks",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_config_args(subparsers.add_parser("start", help="Start the engine and scheduler"))
    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))
    events_parser = subparsers.add_parser("events", help="List stored calendar events")
    _add_config_args(events_parser)
    events_parser.add_argument("--all", action="store_true", help="Include disabled and past events")

    args = parser.parse_args(argv)

    if args.command is None:
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    config = _load(args.config, args.env)
    if args.command == "config-check":
        _check_config(config, args.config)
    elif args.command == "events":
        asyncio.run(_list_events(config, include_all=args.all))
    elif args.command == "start":
        setup_logging(config.log_level, json=config.log_json)
        asyncio.run(_serve(config))


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and edit it.", file=sys.stderr)
        sys.exit(1)


def _check_config(config: AppConfig, config_path: str) -> None:
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  LLM: {config.llm.backend} ({config.llm.model})")
    if config.llm.backend == "anthropic" and not config.anthropic:
        print("  WARNING: no 'anthropic' section; the engine will not start")
    print(f"  Agents: {len(config.agents)}")
    for agent in config.agents:
        print(f"    - {agent.id} (max_rounds={agent.max_rounds}, history_limit={agent.history_limit})")
    tools = config.security.tools
    print(f"  Tool profile: {tools.profile}")
    if tools.allow is not None:
        print(f"    allow: {', '.join(tools.allow) or '(none)'}")
    if tools.deny:
        print(f"    deny: {', '.join(tools.deny)}")
    for conversation_type, override in config.security.conversations.items():
        print(f"    {conversation_type}: allow={override.tools.allow} deny={override.tools.deny}")
    print(f"  Scheduler timezone: {config.scheduler.timezone}")
    print(f"  Browser: {'enabled' if config.services.browser.enabled else 'disabled'}")


async def _list_events(config: AppConfig, include_all: bool) -> None:
    db = Database(config.storage.db_path)
    await db.initialize()
    try:
        events = await EventRepository(db).all()
    finally:
        await db.close()

    if not include_all:
        events = [e for e in events if e.enabled and e.next_occurrence_at]
    if not events:
        print("No calendar events.")
        return
    events.sort(key=lambda e: (e.next_occurrence_at is None, e.next_occurrence_at or e.start_time))
    for event in events:
        nxt = event.next_occurrence_at.isoformat() if event.next_occurrence_at else "-"
        state = "on " if event.enabled else "off"
        print(f"[{state}] {event.id}  {nxt}  {event.recurrence.type:<8} {event.action.type:<12} {event.title}")


async def _serve(config: AppConfig) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: stop_event.set())

    try:
        app = HearthApp(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    await app.start()
    try:
        await stop_event.wait()
    finally:
        await app.stop()


if __name__ == "__main__":
    main()
