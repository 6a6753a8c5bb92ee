"""
Admin CLI for tripstore.

This tool inspects and maintains a tripstore data directory:
- dump: Print the document (optionally one entity kind) as JSON
- scan-changes: Run an incremental change scan and print affected trips
- unread: Print the persisted unread trip identifiers
- mark-read: Remove identifiers from the unread list

Usage:
    tripstore-admin dump --entity Trip
    tripstore-admin scan-changes
    tripstore-admin mark-read p:trips_data/Trip/6F1C...

Invariants:
    - dump and unread never modify any file
    - scan-changes advances the widget cursor exactly like the app does
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from ..codec.errors import DecodeError
from ..codec.identifiers import Identifier
from ..codec.wire import encode_snapshot
from ..config import Settings
from ..context import DataContext
from ..main import setup_logging
from ..store.document_store import DocumentStoreError, FetchDescriptor

logger = logging.getLogger(__name__)


class AdminCLI:
    """Commands operating on one DataContext.

    Example:
        >>> cli = AdminCLI(DataContext.open(Settings()))
        >>> print(await cli.dump("Trip"))
    """

    def __init__(self, context: DataContext) -> None:
        self.context = context

    async def dump(self, entity_name: str | None = None) -> str:
        """Return the document (or one kind) as pretty JSON."""
        if entity_name:
            snapshots = (await self.context.store.fetch(FetchDescriptor(entity_name))).snapshots
        else:
            snapshots = list((await self.context.store.read()).values())
        records = [encode_snapshot(s) for s in sorted(snapshots, key=lambda s: s.identifier.token)]
        return json.dumps(records, indent=2, sort_keys=True)

    async def scan_changes(self) -> dict[str, Any]:
        """Run an incremental scan and report the result."""
        changed, token = await self.context.reducer.compute_changed_parents()
        return {
            "token": token.value if token else None,
            "changed": sorted(i.token for i in changed),
            "unread": [i.token for i in self.context.reducer.unread_identifiers()],
        }

    def unread(self) -> list[str]:
        return [i.token for i in self.context.reducer.unread_identifiers()]

    def mark_read(self, tokens: list[str]) -> list[str]:
        """Mark identifiers read and return the remaining unread list.

        Raises:
            DecodeError: If a token is malformed
        """
        identifiers = [Identifier.from_token(t) for t in tokens]
        return [i.token for i in self.context.reducer.mark_read(identifiers)]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tripstore admin tool")
    parser.add_argument("--data-dir", help="Data directory (overrides TRIPSTORE_DATA_DIR)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    dump_parser = subparsers.add_parser("dump", help="Print the document as JSON")
    dump_parser.add_argument("--entity", help="Only print this entity kind")

    subparsers.add_parser("scan-changes", help="Scan the history for changed trips")
    subparsers.add_parser("unread", help="Print unread trip identifiers")

    mark_parser = subparsers.add_parser("mark-read", help="Mark trips as read")
    mark_parser.add_argument("identifiers", nargs="+", help="Identifier tokens")

    return parser


async def _run(cli: AdminCLI, args: argparse.Namespace) -> int:
    if args.command == "dump":
        print(await cli.dump(args.entity))
    elif args.command == "scan-changes":
        print(json.dumps(await cli.scan_changes(), indent=2))
    elif args.command == "unread":
        print(json.dumps(cli.unread(), indent=2))
    elif args.command == "mark-read":
        print(json.dumps(cli.mark_read(args.identifiers), indent=2))
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    settings = Settings(data_dir=args.data_dir) if args.data_dir else Settings()
    setup_logging(settings)

    cli = AdminCLI(DataContext.open(settings))
    try:
        exit_code = asyncio.run(_run(cli, args))
    except (DocumentStoreError, DecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
