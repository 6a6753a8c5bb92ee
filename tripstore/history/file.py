"""
File-backed transaction log.

The log is a JSON Lines file next to the document: one Transaction per
line, appended in commit order. The widget process reads the same file to
scan for changes without opening the document for writing.

File format:
    {"author": "widget", "changes": [{"identifier": "p:...", "kind": "update"}], "timestamp_ms": 1730000000000, "token": 7}

Invariants:
    - Lines are only ever appended, never rewritten
    - Tokens increase by one per line written by this class
    - A torn or undecodable line is skipped on read, never fatal
    - Each append is flushed and fsynced before it returns

How to change safely:
    - New transaction fields must be optional when decoding
    - Keep one transaction per line; readers split on newlines
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Sequence

from .base import (
    Change,
    HistoryToken,
    LogDecodeError,
    Transaction,
    TransactionLogError,
)

logger = logging.getLogger(__name__)


class FileTransactionLog:
    """TransactionLog stored as an append-only JSON Lines file.

    Thread safety:
        Appends from one process are serialized by an asyncio lock.
        Only one process may append (single-writer discipline); any
        number of processes may scan.

    Example:
        >>> log = FileTransactionLog("/data/trips_history.jsonl")
        >>> txn = await log.append("widget", changes)
        >>> await log.scan_after(HistoryToken(3), "widget")
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def append(
        self,
        author: str | None,
        changes: Sequence[Change],
    ) -> Transaction:
        """Append a transaction with the next token.

        Raises:
            TransactionLogError: If the file cannot be written
        """
        async with self._lock:
            transactions = self._read_all()
            last = transactions[-1].token.value if transactions else 0
            transaction = Transaction(
                token=HistoryToken(last + 1),
                author=author,
                changes=tuple(changes),
                timestamp_ms=int(time.time() * 1000),
            )
            line = json.dumps(transaction.to_dict(), sort_keys=True) + "\n"

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "ab") as f:
                    if f.tell() > 0 and not self._ends_with_newline():
                        # Isolate a torn trailing line from the new entry
                        f.write(b"\n")
                    f.write(line.encode("utf-8"))
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise TransactionLogError(f"Failed to append to {self.path}: {e}") from e

        logger.debug(
            "Transaction appended to log file",
            extra={
                "path": str(self.path),
                "token": transaction.token.value,
                "author": author,
                "changes": len(changes),
            },
        )
        return transaction

    async def scan_after(
        self,
        token: HistoryToken | None,
        author: str | None,
    ) -> list[Transaction]:
        """Return transactions after token written by author.

        Raises:
            TransactionLogError: If the file exists but cannot be read
        """
        return [
            t
            for t in self._read_all()
            if (token is None or t.token > token) and t.author == author
        ]

    async def last_token(self) -> HistoryToken | None:
        transactions = self._read_all()
        return transactions[-1].token if transactions else None

    def _ends_with_newline(self) -> bool:
        with open(self.path, "rb") as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) == b"\n"

    def _read_all(self) -> list[Transaction]:
        """Read and decode every line, skipping undecodable ones."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise TransactionLogError(f"Failed to read {self.path}: {e}") from e

        transactions: list[Transaction] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                transaction = Transaction.from_dict(json.loads(line.decode("utf-8")))
            except (UnicodeDecodeError, json.JSONDecodeError, LogDecodeError) as e:
                logger.warning(
                    f"Skipping undecodable log entry: {e}",
                    extra={"path": str(self.path), "line": line_no},
                )
                continue
            if transactions and transaction.token <= transactions[-1].token:
                logger.warning(
                    "Skipping out-of-order log entry",
                    extra={"path": str(self.path), "line": line_no, "token": transaction.token.value},
                )
                continue
            transactions.append(transaction)
        return transactions
