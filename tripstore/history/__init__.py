"""
Transaction log abstraction for tripstore.

This module provides a pluggable history backend supporting:
- JSON Lines file (shared between the app and the widget)
- In-memory (for testing)

Every DocumentStore save appends one Transaction. Consumers keep their own
HistoryToken cursor and scan for entries committed after it.

Invariants:
    - Transactions are totally ordered by token
    - Appended transactions are never modified
    - Readers never block the writer

How to change safely:
    - New backends must implement the TransactionLog protocol
    - Keep the on-disk line format backward compatible
"""

from .base import (
    Change,
    ChangeKind,
    HistoryToken,
    LogDecodeError,
    Transaction,
    TransactionLog,
    TransactionLogError,
)
from .file import FileTransactionLog
from .memory import InMemoryTransactionLog

__all__ = [
    # Protocol and types
    "TransactionLog",
    "Transaction",
    "Change",
    "ChangeKind",
    "HistoryToken",
    "TransactionLogError",
    "LogDecodeError",
    # Implementations
    "FileTransactionLog",
    "InMemoryTransactionLog",
]
