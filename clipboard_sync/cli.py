"""
Command line entry point.

Usage:
    clipboard-sync serve [--host HOST] [--port PORT] [--db PATH]
                         [--log-level LEVEL] [--json-logs]

Flags override CLIPBOARD_* environment variables.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Any

from aiohttp import web

from . import __version__
from .api.app import build_app
from .config import ClipboardConfig
from .exceptions import ClipboardSyncError
from .logging_utils import configure_plain_logging, configure_structured_logging, get_sync_logger

logger = get_sync_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipboard-sync",
        description="End-to-end encrypted clipboard sync server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # In-memory server on the default port
  clipboard-sync serve

  # Persistent store, JSON logs
  clipboard-sync serve --db ./clipboard.db --json-logs
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API and realtime relay")
    serve.add_argument("--host", help="Bind address")
    serve.add_argument("--port", type=int, help="Bind port")
    serve.add_argument("--db", dest="db_path", help="SQLite database path (:memory: for none)")
    serve.add_argument("--log-level", help="Logging level name")
    serve.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit structured JSON logs",
    )
    serve.add_argument("--public-base-url", help="Base URL used in share links")
    return parser


def resolve_config(args: argparse.Namespace) -> ClipboardConfig:
    """Environment config with command line flags layered on top."""
    config = ClipboardConfig.from_env()
    overrides: dict[str, Any] = {
        name: getattr(args, name)
        for name in ("host", "port", "db_path", "log_level", "json_logs", "public_base_url")
        if getattr(args, name, None) is not None
    }
    return replace(config, **overrides) if overrides else config


def setup_logging(config: ClipboardConfig) -> None:
    if config.json_logs:
        configure_structured_logging(config.log_level_value)
    else:
        configure_plain_logging(config.log_level_value)


def serve(config: ClipboardConfig) -> None:
    logger.info(f"Serving on http://{config.host}:{config.port} (db={config.db_path})")
    web.run_app(build_app(config), host=config.host, port=config.port, print=None)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args)
    except ClipboardSyncError as e:
        print(f"Invalid configuration: {e.message}", file=sys.stderr)
        return 2

    setup_logging(config)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    if args.command == "serve":
        serve(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
