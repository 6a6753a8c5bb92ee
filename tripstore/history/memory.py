"""
In-memory transaction log implementation for testing.

This module provides a simple in-memory log backend for:
- Unit tests
- Single-process tools that do not need history across restarts

Invariants:
    - All data is lost on process exit
    - Provides the same ordering guarantees as the file-backed log
    - Safe for concurrent coroutines (asyncio lock)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Sequence

from .base import Change, HistoryToken, Transaction

logger = logging.getLogger(__name__)


class InMemoryTransactionLog:
    """In-memory implementation of TransactionLog.

    Example:
        >>> log = InMemoryTransactionLog()
        >>> await log.append("widget", [Change(ChangeKind.INSERT, stay_id)])
        >>> len(await log.scan_after(None, "widget"))
        1
    """

    def __init__(self) -> None:
        self._transactions: list[Transaction] = []
        self._lock = asyncio.Lock()

    async def append(
        self,
        author: str | None,
        changes: Sequence[Change],
    ) -> Transaction:
        """Append a transaction with the next token."""
        async with self._lock:
            transaction = Transaction(
                token=HistoryToken(len(self._transactions) + 1),
                author=author,
                changes=tuple(changes),
                timestamp_ms=int(time.time() * 1000),
            )
            self._transactions.append(transaction)

        logger.debug(
            "Transaction appended to in-memory log",
            extra={"token": transaction.token.value, "author": author, "changes": len(changes)},
        )
        return transaction

    async def scan_after(
        self,
        token: HistoryToken | None,
        author: str | None,
    ) -> list[Transaction]:
        """Return transactions after token written by author."""
        async with self._lock:
            return [
                t
                for t in self._transactions
                if (token is None or t.token > token) and t.author == author
            ]

    async def last_token(self) -> HistoryToken | None:
        async with self._lock:
            return self._transactions[-1].token if self._transactions else None

    # Testing helpers

    def get_all_transactions(self) -> list[Transaction]:
        """Get all transactions regardless of author (testing helper)."""
        return list(self._transactions)

    def get_transaction_count(self) -> int:
        return len(self._transactions)
