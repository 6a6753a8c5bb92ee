"""
In-memory preference store for testing.
"""

from __future__ import annotations

import threading


class InMemoryPreferenceStore:
    """PreferenceStore kept in a dict; lost on process exit."""

    def __init__(self) -> None:
        self._values: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get_data(self, key: str) -> bytes | None:
        with self._lock:
            return self._values.get(key)

    def set_data(self, key: str, value: bytes | None) -> None:
        with self._lock:
            if value is None:
                self._values.pop(key, None)
            else:
                self._values[key] = bytes(value)

    def keys(self) -> list[str]:
        """All stored keys (testing helper)."""
        with self._lock:
            return sorted(self._values)
