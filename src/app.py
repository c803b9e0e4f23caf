"""Application entry point for the breakwatch native messaging host."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import text2art
from dotenv import load_dotenv

import settings
from adapters.etld import BaseDomainResolver
from adapters.json_catalog import JsonFileCatalog
from adapters.native_bridge import NativeHostBridge
from adapters.notification_formatting import format_notification
from adapters.sqlite_storage import SQLiteStorage
from core.activator import BreakageActivator
from core.controller import BreakageController
from core.ledger import NotificationLedger
from core.models import RULE_KINDS
from core.registry import BreakageRegistry, build_rules
from core.tracker import ActivityTracker

NAME = "BREAKWATCH"
FONT = "small"


def _print_banner() -> None:
    # stdout carries native messaging frames, so the banner goes to stderr.
    sys.stderr.write(text2art(NAME, font=FONT))
    sys.stderr.flush()


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        # StreamHandler defaults to stderr, which keeps stdout clean.
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/breakwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
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


def _test_mode() -> bool:
    override = os.getenv("BREAKWATCH_TEST_MODE")
    if override is not None:
        return override.strip().lower() in {"1", "true", "yes"}
    return settings.TEST_MODE


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


async def _serve(bridge: NativeHostBridge, activator: BreakageActivator) -> int:
    # The reader must be running before activation: the feature state
    # arrives with the extension's hello.
    reader = asyncio.create_task(bridge.run())
    try:
        await activator.start()
        return await reader
    finally:
        activator.stop()


def _run() -> int:
    _print_banner()
    load_dotenv()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting breakwatch")

    storage = _open_storage()
    bridge = NativeHostBridge(
        storage,
        BaseDomainResolver(),
        test_mode=_test_mode(),
        call_timeout=settings.BRIDGE_CALL_TIMEOUT,
    )
    registry = BreakageRegistry(JsonFileCatalog(settings.CATALOG_PATHS), bridge)
    controller = BreakageController(
        registry=registry,
        ledger=NotificationLedger(storage),
        bridge=bridge,
        cookies=bridge,
        matching=settings.MATCHING,
        notifications=settings.NOTIFICATIONS,
    )
    tracker = ActivityTracker(controller, bridge, settings.TRACKING)
    activator = BreakageActivator(bridge, bridge, registry, tracker)
    logger.info(
        "Matching tab rules by %s, request rules by %s; notifications are %s",
        settings.MATCHING.tab_mode,
        settings.MATCHING.request_mode,
        settings.NOTIFICATIONS.mode,
    )

    try:
        return asyncio.run(_serve(bridge, activator))
    except KeyboardInterrupt:
        return 0


def _ledger(args: argparse.Namespace) -> int:
    storage = _open_storage()
    if args.action == "clear":
        removed = NotificationLedger(storage).clear()
        print(f"Removed {removed} notified domain(s).")
        return 0
    for domain in storage.list_notified_domains():
        print(domain)
    return 0


def _load_bundled(catalog: JsonFileCatalog, kind: str) -> list:
    try:
        return asyncio.run(catalog.load(kind))
    except (OSError, ValueError):
        logging.getLogger(__name__).warning(
            "Unable to load the bundled %s breakages", kind, exc_info=True
        )
        return []


def _breakages(args: argparse.Namespace) -> int:
    storage = _open_storage()
    kinds = [args.kind] if args.kind else list(RULE_KINDS)

    if args.action == "set":
        with open(args.file, "r", encoding="utf-8") as handle:
            breakages = json.load(handle)
        if not isinstance(breakages, list):
            print("The breakages file must contain a JSON array.", file=sys.stderr)
            return 2
        storage.set_dynamic_breakages(args.kind, breakages)
        print(f"Stored {len(breakages)} dynamic {args.kind} breakage(s).")
        return 0

    if args.action == "clear":
        for kind in kinds:
            storage.clear_dynamic_breakages(kind)
        return 0

    catalog = JsonFileCatalog(settings.CATALOG_PATHS)
    for kind in kinds:
        sources = (
            ("static", _load_bundled(catalog, kind)),
            ("dynamic", storage.get_dynamic_breakages(kind)),
        )
        for origin, raw in sources:
            for rule in build_rules(raw):
                domains = ", ".join(sorted(rule.domains))
                text = format_notification(rule.message, "text")
                print(f"[{kind}/{origin}] {rule.id or '-'} ({domains}): {text}")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="breakwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the native messaging host")

    ledger_parser = subparsers.add_parser("ledger", help="Inspect or reset notified domains")
    ledger_parser.add_argument("action", choices=["list", "clear"])

    breakages_parser = subparsers.add_parser("breakages", help="Manage breakage catalogs")
    breakages_parser.add_argument("action", choices=["show", "set", "clear"])
    breakages_parser.add_argument("file", nargs="?", help="JSON array of breakages (for set)")
    breakages_parser.add_argument("--kind", choices=list(RULE_KINDS))

    args = parser.parse_args(argv)
    if args.command == "ledger":
        raise SystemExit(_ledger(args))
    if args.command == "breakages":
        if args.action == "set" and (not args.kind or not args.file):
            parser.error("breakages set requires --kind and a file")
        raise SystemExit(_breakages(args))
    raise SystemExit(_run())


if __name__ == "__main__":
    main()
