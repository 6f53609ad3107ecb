"""Command-line interface for Gmail Reader.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import structlog

from gmail_reader import __version__
from gmail_reader.config import get_settings
from gmail_reader.exceptions import GmailReaderError
from gmail_reader.gmail.client import GmailClient
from gmail_reader.models import FetchLevel
from gmail_reader.store import Connection, MailEntity

logger = structlog.get_logger()

_SHOWN_HEADERS = ("From", "To", "Cc", "Date", "Subject")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gmail-reader", description="Gmail Reader")
    subparsers = parser.add_subparsers(dest="command", required=True)

    show_parser = subparsers.add_parser("show", help="Render a message")
    show_parser.add_argument("message_id", help="Gmail message ID")
    show_parser.add_argument("--html", action="store_true", help="Prefer the HTML rendering")
    show_parser.add_argument("--raw", action="store_true", help="Print the raw RFC 2822 source")

    draft_parser = subparsers.add_parser("draft", help="Render a draft")
    draft_parser.add_argument("draft_id", help="Gmail draft ID")

    subparsers.add_parser("labels", help="List labels with their colours")

    return parser


async def _print_entity(entity: MailEntity, prefer_html: bool) -> None:
    await entity.ensure_level(FetchLevel.FULL)
    for name in _SHOWN_HEADERS:
        value = await entity.get_header(name, default="")
        if value:
            print(f"{name}: {value}")
    print(f"Labels: {await entity.get_labels_string()}")

    status = await entity.get_trust_status()
    if status is not None:
        verdict = "GOOD" if status.good else "NOT GOOD"
        print(f"Signature: {verdict} {status.signer} {status.detail}".rstrip())
    print()
    print(await entity.get_body_html() if prefer_html else await entity.get_body())


async def _connect() -> Connection:
    settings = get_settings()
    client = GmailClient(settings)
    await client.authenticate()
    return Connection(client=client, settings=settings)


async def _cmd_show(args: argparse.Namespace) -> int:
    conn = await _connect()
    msg = conn.message(args.message_id)
    if args.raw:
        sys.stdout.write((await msg.raw()).decode("utf-8", errors="replace"))
        return 0
    await _print_entity(msg, args.html)
    return 0


async def _cmd_draft(args: argparse.Namespace) -> int:
    conn = await _connect()
    await _print_entity(conn.draft(args.draft_id), prefer_html=False)
    return 0


async def _cmd_labels(args: argparse.Namespace) -> int:
    conn = await _connect()
    for label in sorted(await conn.load_labels(), key=lambda l: l.name.lower()):
        print(f"{label.id}\t{label.label_string()}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Gmail Reader CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
    )

    logger.info("gmail_reader_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    commands = {
        "show": _cmd_show,
        "draft": _cmd_draft,
        "labels": _cmd_labels,
    }
    handler = commands.get(parsed.command)
    if handler is None:
        logger.error("unknown_command", command=parsed.command)
        return 2

    try:
        return asyncio.run(handler(parsed))
    except GmailReaderError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
