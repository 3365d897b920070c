#!/usr/bin/env python3
"""
Command-line access to a kvlog store.

Usage:
    # Store a value read from stdin
    echo '{"a": 1}' | kvlog --data-file ./kv.db set config --mime application/json

    # Store a file
    kvlog --data-file ./kv.db set logo --mime image/png --file logo.png

    # Fetch a value, requiring a matching MIME type
    kvlog --data-file ./kv.db get config --accept 'application/*'

    # List keys
    kvlog --data-file ./kv.db keys
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from kvlog.core.errors import CorruptRecordError
from kvlog.service import (
    InvalidMimeError,
    KeyNotFoundError,
    KVService,
    NotAcceptableError,
)
from kvlog.utils.config import Config, ConfigError
from kvlog.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_MIME = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kvlog",
        description="kvlog - a key-value store backed by an append-only log",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML configuration file",
    )

    parser.add_argument(
        "--data-file",
        type=str,
        default=None,
        help="Log file holding the store (default: ./kvlog.db)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["json", "console"],
        help="Log output format (default: json)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Write a value to stdout")
    get_parser.add_argument("key", help="Key to fetch")
    get_parser.add_argument(
        "--accept",
        type=str,
        default=None,
        help="Accept header the stored MIME type must match",
    )

    set_parser = subparsers.add_parser("set", help="Store a value")
    set_parser.add_argument("key", help="Key to store under")
    set_parser.add_argument(
        "--mime",
        type=str,
        required=True,
        help="MIME type of the value",
    )
    set_parser.add_argument(
        "--file",
        type=str,
        default=None,
        help="Read the value from this file instead of stdin",
    )

    subparsers.add_parser("keys", help="List stored keys")

    return parser


def load_config(args: argparse.Namespace) -> Config:
    """Build the configuration, letting command-line flags win."""
    config = Config(args.config)

    if args.data_file:
        config.set("store.path", args.data_file)
    if args.log_level:
        config.set("logging.level", args.log_level)
    if args.log_format:
        config.set("logging.format", args.log_format)

    return config


def read_value(args: argparse.Namespace) -> bytes:
    if args.file:
        return Path(args.file).read_bytes()
    return sys.stdin.buffer.read()


async def run(args: argparse.Namespace, config: Config) -> int:
    """
    Run one command against the store.

    Args:
        args: Parsed arguments
        config: Effective configuration

    Returns:
        Process exit code
    """
    service = await KVService.open(
        config.get("store.path"),
        fsync_on_flush=config.get("store.fsync_on_flush", False),
    )

    async with service:
        if args.command == "get":
            entry = await service.get_value(args.key, accept=args.accept)
            sys.stdout.buffer.write(entry.value)
            sys.stdout.buffer.flush()

        elif args.command == "set":
            value = read_value(args)
            await service.set_value(args.key, value, args.mime)
            logger.info(
                "Value stored",
                key=args.key,
                mime=args.mime,
                size=len(value),
            )

        elif args.command == "keys":
            for key in await service.keys():
                print(key)

    return EXIT_OK


def setup(args: argparse.Namespace) -> Config:
    """
    Load the configuration and configure logging.

    Raises:
        ConfigError: If the configuration file is unusable
        OSError: If the configuration file or log output cannot be opened
        ValueError: If the log level or format is unknown
    """
    config = load_config(args)

    configure_logging(
        log_level=config.get("logging.level", "INFO"),
        log_format=config.get("logging.format", "json"),
        log_output=config.get("logging.output", "stderr"),
    )
    logger.debug("Effective configuration", config=config.to_dict())

    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # logging is not configured yet, so setup failures go straight to stderr
    try:
        config = setup(args)
    except (ConfigError, OSError, ValueError) as e:
        print(f"kvlog: configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        return asyncio.run(run(args, config))

    except KeyNotFoundError as e:
        logger.warning("Key not found", key=e.key)
        return EXIT_ERROR

    except (NotAcceptableError, InvalidMimeError) as e:
        logger.warning("MIME type rejected", error=str(e))
        return EXIT_MIME

    except CorruptRecordError as e:
        logger.error("Store log is corrupt", error=str(e), position=e.position)
        return EXIT_ERROR

    except (OSError, ValueError) as e:
        logger.error("Store error", error=str(e))
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
