"""
Key-value blob store for small per-app values.

This stands in for the platform's user defaults: it survives restarts and
is scoped to one app (shared with that app's widget, never with other
apps). Values are opaque bytes.

Invariants:
    - set_data(key, None) removes the key
    - get_data() returns None for a missing key, never raises for it
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable


class PreferenceKey:
    """Well-known preference keys."""

    UNREAD_TRIP_IDENTIFIERS = "unreadTripIdentifiers"
    HISTORY_TOKEN = "historyToken"


class PreferenceStoreError(Exception):
    """Base exception for preference store operations."""
    pass


@runtime_checkable
class PreferenceStore(Protocol):
    """Protocol for preference store backends."""

    @abstractmethod
    def get_data(self, key: str) -> bytes | None:
        """Return the blob stored under key, or None."""
        ...

    @abstractmethod
    def set_data(self, key: str, value: bytes | None) -> None:
        """Store value under key; None removes the key.

        Raises:
            PreferenceStoreError: If the value cannot be persisted
        """
        ...
