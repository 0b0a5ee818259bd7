"""
ODEM etcd adapter - command line entry point.

This module wires configuration, logging and the records CLI together:
- Loads Settings from environment variables
- Configures logging (JSON or text)
- Connects an adapter and runs one records command

Usage:
    odem-etcd keys --max-depth 1
    python -m odem.etcd_adapter.main read user/42

Configuration is entirely via environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import json_log_formatter

from .adapter import AdapterError, create_adapter
from .config import Settings
from .kv import KvError
from .tools.records_cli import RecordsCLI

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Complete configuration
    """
    level = getattr(logging, settings.observability.log_level.upper(), logging.INFO)

    if settings.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aetcd").setLevel(logging.WARNING)
    logging.getLogger("grpc").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ODEM etcd record tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    keys_parser = subparsers.add_parser("keys", help="List record keys")
    keys_parser.add_argument("--prefix", default="", help="Only list keys below this prefix")
    keys_parser.add_argument("--max-depth", type=int, help="Truncate keys to this many segments")

    read_parser = subparsers.add_parser("read", help="Print a record")
    read_parser.add_argument("key")

    write_parser = subparsers.add_parser("write", help="Write a record")
    write_parser.add_argument("key")
    write_parser.add_argument("data", help="Record as JSON")

    create_parser = subparsers.add_parser("create", help="Create a record at a new key")
    create_parser.add_argument("template", help="Key template, %%u is replaced by a UUID")
    create_parser.add_argument("data", help="Record as JSON")

    remove_parser = subparsers.add_parser("remove", help="Remove a record and its children")
    remove_parser.add_argument("key")

    purge_parser = subparsers.add_parser("purge", help="Remove all records in scope")
    purge_parser.add_argument("--yes", action="store_true", help="Confirm purging")

    watch_parser = subparsers.add_parser("watch", help="Print remote changes")
    watch_parser.add_argument("--count", type=int, help="Stop after this many changes")

    return parser


async def run(settings: Settings, args: argparse.Namespace) -> int:
    """Connect an adapter and run the selected command."""
    adapter = create_adapter(settings)
    cli = RecordsCLI(adapter, out=sys.stdout)

    async with adapter:
        if args.command == "keys":
            return await cli.keys(prefix=args.prefix, max_depth=args.max_depth)
        elif args.command == "read":
            return await cli.read(args.key)
        elif args.command == "write":
            return await cli.write(args.key, args.data)
        elif args.command == "create":
            return await cli.create(args.template, args.data)
        elif args.command == "remove":
            return await cli.remove(args.key)
        elif args.command == "purge":
            return await cli.purge(args.yes)
        elif args.command == "watch":
            return await cli.watch(count=args.count)

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings)
    settings.log_config()

    try:
        code = asyncio.run(run(settings, args))
    except KeyboardInterrupt:
        code = 130
    except (KvError, AdapterError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
