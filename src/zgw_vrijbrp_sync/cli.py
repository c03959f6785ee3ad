"""Command line entry point: run synchronization passes.

Intended to be invoked by a scheduler (cron, systemd timer) or by hand.
Each invocation runs one pass per selected handler, then delivers the
events dispatched during the pass to the handlers subscribed to their
topic, and prints a report.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .bus import InMemoryBus
from .config import Config, load_config
from .config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from .config_schema import SyncStrategy, UnifiedConfig, build_config
from .core.client import GatewayClient
from .errors import SyncError, error_response_for
from .logger import setup_logging
from .resources import ResourceRegistry
from .store import JsonObjectStore
from .sync.engine import SyncEngine
from .sync.reporter import (
    ConsoleObserver,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)


def _load_settings(args: argparse.Namespace) -> tuple[UnifiedConfig, Config]:
    """Merge .env, YAML and CLI arguments into the unified and runtime config.

    Raises:
        ValueError: A configuration value is invalid.
    """
    # .env first so ${VAR} interpolation in YAML can use its values
    load_dotenv()

    try:
        unified = build_config(load_hierarchical_config())
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration file: {exc}") from exc

    config = load_config(
        store_path=args.store,
        max_parallel=args.max_parallel,
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        yaml_fallbacks=unified.sync.model_dump(),
    )
    return unified, config


def _build_engines(
    unified: UnifiedConfig, config: Config
) -> tuple[dict[str, SyncEngine], InMemoryBus]:
    store = JsonObjectStore(config.store_path)
    client = GatewayClient()
    registry = ResourceRegistry.from_config(unified)
    bus = InMemoryBus()

    engines: dict[str, SyncEngine] = {}
    for name, handler in unified.handlers.items():
        engines[name] = SyncEngine(
            store=store,
            client=client,
            registry=registry,
            bus=bus,
            handler_name=name,
            handler=handler,
            max_parallel=handler.max_parallel
            if "max_parallel" in handler.model_fields_set
            else config.max_parallel,
        )
        # Push handlers with a topic consume the events dispatch handlers publish
        if handler.strategy == SyncStrategy.PUSH and handler.topic:
            bus.subscribe(handler.topic, engines[name].handle_event)

    return engines, bus


@contextmanager
def _cancel_on_signals(cancel_event: threading.Event) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a cooperative cancel for the block.

    The candidate in flight finishes and records its outcome; candidates
    not yet started are skipped.  Handlers can only be installed from the
    main thread; elsewhere the block runs unchanged.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _request_cancel(signum: int, frame: Any) -> None:
        logger.warning(
            "Received %s, finishing the current candidate",
            signal.Signals(signum).name,
        )
        cancel_event.set()

    previous = {
        signum: signal.signal(signum, _request_cancel)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _select_handlers(
    engines: dict[str, SyncEngine], requested: list[str]
) -> list[str]:
    """Handlers to run: the requested ones, or every one that runs passes.

    Push handlers subscribed to a topic only run when named explicitly;
    they are fed by the dispatch handlers.

    Raises:
        ValueError: A requested handler is not configured.
    """
    if requested:
        unknown = [name for name in requested if name not in engines]
        if unknown:
            raise ValueError(
                f"Unknown handler(s): {', '.join(unknown)}. "
                f"Configured: {', '.join(sorted(engines)) or 'none'}"
            )
        return requested

    return [
        name
        for name, engine in engines.items()
        if not (
            engine.handler.strategy == SyncStrategy.PUSH
            and engine.handler.topic
        )
    ]


def main(args: argparse.Namespace) -> int:
    """Run the selected handlers once. Returns the process exit code."""
    if args.init:
        path = ensure_config()
        print(f"Config file: {path}")
        return 0

    try:
        unified, config = _load_settings(args)
    except ValueError as exc:
        print(f"ERROR: Configuration error: {exc}", file=sys.stderr)
        return 2

    os.environ.setdefault("LOG_LEVEL", unified.logging.level)
    setup_logging(
        mode=args.mode,
        debug=config.debug,
        log_file=config.log_file,
        debug_format="json" if args.json_logs else "text",
    )

    config_files = discover_config_files()
    logger.info(
        "Configuration loaded from: %s",
        ", ".join(str(p) for p in config_files) if config_files else "defaults",
    )

    engines, bus = _build_engines(unified, config)
    try:
        selected = _select_handlers(engines, args.handlers)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    if not selected:
        print("No handlers configured. Run with --init to create a config file.")
        return 0

    observer = ConsoleObserver() if args.verbose and not args.json else None
    cancel_event = threading.Event()
    reports: list[dict[str, Any]] = []
    failed = False

    try:
        with _cancel_on_signals(cancel_event):
            for name in selected:
                report = engines[name].run(
                    dry_run=args.dry_run,
                    observer=observer,
                    cancel_event=cancel_event,
                )
                failed = failed or bool(report.errors)

                if args.json:
                    reports.append(report_to_json(report))
                elif args.dry_run:
                    print(format_dry_run_preview(report))
                    print()
                else:
                    print(format_sync_report(report))
                    print()

                if cancel_event.is_set():
                    break

            # Undelivered events are picked up again by the next pass
            if not args.dry_run and not cancel_event.is_set():
                delivered = bus.drain()
                if delivered:
                    logger.info("Delivered %d dispatched events", delivered)
    except SyncError as exc:
        logger.error("Pass aborted: %s", exc)
        if args.json:
            print(json.dumps(error_response_for(exc), indent=2))
        else:
            print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(reports, indent=2))

    if cancel_event.is_set():
        print("Interrupted.", file=sys.stderr)
        return 130
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zgw-vrijbrp-sync",
        description="Synchronize ZGW cases with VrijBRP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every configured handler once
  zgw-vrijbrp-sync

  # Preview the candidates of one handler
  zgw-vrijbrp-sync cases-to-vrijbrp --dry-run

  # Scheduled run: log to file only, JSON report on stdout
  zgw-vrijbrp-sync --mode scheduled --json

  # Write a starter config to .zgw_sync/config.yml
  zgw-vrijbrp-sync --init
        """,
    )
    parser.add_argument(
        "handlers",
        nargs="*",
        help="Handler names to run (default: all handlers that run passes)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be synchronized without calling remotes or writing",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print reports as JSON",
    )
    parser.add_argument(
        "--store",
        help="Object store file (takes precedence over ZGW_SYNC_STORE and config files)",
    )
    parser.add_argument(
        "--max-parallel",
        type=int,
        help="Candidates processed concurrently, 1-64 (takes precedence over ZGW_SYNC_MAX_PARALLEL)",
    )
    parser.add_argument(
        "--mode",
        choices=["cli", "scheduled"],
        default="cli",
        help="Logging mode: 'cli' logs to stderr, 'scheduled' to a file only",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default for scheduled mode: /tmp/zgw-vrijbrp-sync.log)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit log records as JSON lines",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print per-candidate progress",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create a starter config file if none exists and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"zgw-vrijbrp-sync version {__version__}",
    )
    return parser


def run() -> None:
    """Console script entry point."""
    args = build_parser().parse_args()
    sys.exit(main(args))


if __name__ == "__main__":
    run()
