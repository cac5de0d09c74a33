"""Application entry point for the inbox triage service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.action_queue import FileActionQueue
from adapters.checkpoint_store import FileCheckpointStore
from adapters.dedup_store import JsonDedupStore
from adapters.gmail_inbox import GmailInbox
from adapters.health_server import HealthServer
from adapters.triage_log import JsonlTriageLog
from adapters.webhook_notifier import WebhookNotifier
from client import build_gmail_service, load_credentials
from core.config import TriageConfig
from core.processor import TriageCycle
from core.stats import TriageStats
from get_session import authorize

NAME = "TRIAGE"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict, base_dir: str) -> None:
    config = config or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = settings.resolve_path(file_cfg.get("path", "logs/inbox-triage.log"), base_dir)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


@dataclass
class _Service:
    source: settings.ConfigSource
    paths: settings.StatePaths
    stats: TriageStats
    dedup: JsonDedupStore
    notifier: WebhookNotifier
    cycle: TriageCycle


def _build_service(source: settings.ConfigSource, inbox: Any) -> _Service:
    """Wire adapters into the triage cycle.

    ``inbox`` may be ``None`` for commands that only work on local state.
    """

    config = source.current()
    paths = settings.resolve_state_paths(source.raw, source.path)
    stats = TriageStats()
    dedup = JsonDedupStore(paths.processed_file, config.dedup)
    notifier = WebhookNotifier(config.webhook, stats)

    def snapshot() -> TriageConfig:
        # Adapters follow the same snapshot the cycle observes.
        current = source.current()
        dedup.configure(current.dedup)
        notifier.configure(current.webhook)
        return current

    cycle = TriageCycle(
        config_source=snapshot,
        inbox=inbox,
        dedup=dedup,
        checkpoint=FileCheckpointStore(paths.checkpoint_file),
        queue=FileActionQueue(paths.queue_dir),
        triage_log=JsonlTriageLog(paths.log_file),
        notifier=notifier,
        stats=stats,
    )
    return _Service(source, paths, stats, dedup, notifier, cycle)


def _build_inbox(source: settings.ConfigSource) -> GmailInbox:
    gmail_cfg = source.raw.get("gmail", {})
    paths = settings.resolve_state_paths(source.raw, source.path)
    creds = load_credentials(paths.token_path, paths.credentials_path)
    service = build_gmail_service(creds, float(gmail_cfg.get("requestTimeoutSeconds", 30)))
    return GmailInbox(
        service,
        user_id=os.getenv("GMAIL_USER_ID", "me"),
        page_size=int(gmail_cfg.get("pageSize", 100)),
    )


def _load_source() -> settings.ConfigSource:
    source = settings.ConfigSource(settings.config_path())
    _configure_logging(source.raw.get("logging", {}), os.path.dirname(source.path))
    return source


async def _serve(service: _Service) -> None:
    logger = logging.getLogger(__name__)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass

    health = HealthServer(service.stats, port=settings.server_port())
    await health.start()

    # One ticker drives the cycle; the cycle itself drops ticks that arrive
    # while a previous cycle is still running.
    cycles: set[asyncio.Task] = set()
    try:
        while not stop.is_set():
            task = loop.create_task(service.cycle.run())
            cycles.add(task)
            task.add_done_callback(cycles.discard)
            interval = service.source.current().check_interval_seconds
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        logger.info("Shutting down")
        if cycles:
            await asyncio.gather(*cycles, return_exceptions=True)
        await service.notifier.drain()
        await health.stop()


def _run() -> None:
    _print_banner()
    source = _load_source()
    logger = logging.getLogger(__name__)
    config = source.current()
    logger.info("Starting inbox triage")
    logger.info("%s rules are loaded", len(config.rules))
    if config.shadow_mode:
        logger.info("Shadow mode: decisions are logged, nothing is queued or notified")
    logger.info("Polling Gmail every %ss", config.check_interval_seconds)
    logger.info("Config: %s", source.path)

    service = _build_service(source, _build_inbox(source))
    asyncio.run(_serve(service))


def _once() -> None:
    source = _load_source()
    service = _build_service(source, _build_inbox(source))

    async def _run_once() -> None:
        await service.cycle.run()
        await service.notifier.drain()

    asyncio.run(_run_once())
    logging.getLogger(__name__).info("Cycle stats: %s", service.stats.snapshot())


def _suppress() -> None:
    source = _load_source()
    service = _build_service(source, None)
    config = source.current()
    resolved = service.cycle.resolve_suppressed_alerts(config)
    service.cycle.housekeeping(config)
    print(f"Suppressed {len(resolved)} resolved alert(s)")
    for email_id in sorted(resolved):
        print(f"  {email_id}")


def _authorize() -> None:
    _print_banner()
    source = _load_source()
    paths = settings.resolve_state_paths(source.raw, source.path)
    authorize(paths.credentials_path, paths.token_path)
    print(f"Gmail token stored at {paths.token_path}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="inbox-triage")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start polling and the health server")
    subparsers.add_parser("once", help="Run a single triage cycle and exit")
    subparsers.add_parser("authorize", help="Run the Gmail OAuth flow and store the token")
    subparsers.add_parser(
        "suppress",
        help="Resolve pending DOWN alerts that already have a later UP alert.",
    )

    args = parser.parse_args(argv)
    if args.command == "once":
        _once()
        return
    if args.command == "authorize":
        _authorize()
        return
    if args.command == "suppress":
        _suppress()
        return
    _run()


if __name__ == "__main__":
    main()
