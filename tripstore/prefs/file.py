"""
File-backed preference store.

All preferences of one app live in a single JSON object whose values are
base64-encoded blobs:

    {"historyToken": "eyJ2YWx1ZSI6IDd9", "unreadTripIdentifiers": "WyJwOi4uLiJd"}

Invariants:
    - Every set_data() atomically replaces the file
    - A missing or unreadable file reads as empty; it is never fatal
    - The file is re-read on every get_data() so another process's writes
      become visible
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from pathlib import Path

from ..store.files import atomic_write
from .base import PreferenceStoreError

logger = logging.getLogger(__name__)


class JsonFilePreferenceStore:
    """PreferenceStore persisted as one JSON file.

    Example:
        >>> prefs = JsonFilePreferenceStore("/data/preferences.json")
        >>> prefs.set_data("historyToken", b'{"value": 3}')
        >>> prefs.get_data("historyToken")
        b'{"value": 3}'
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def get_data(self, key: str) -> bytes | None:
        encoded = self._load().get(key)
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            logger.warning(
                f"Ignoring undecodable preference value: {e}",
                extra={"path": str(self.path), "key": key},
            )
            return None

    def set_data(self, key: str, value: bytes | None) -> None:
        with self._lock:
            values = self._load()
            if value is None:
                values.pop(key, None)
            else:
                values[key] = base64.b64encode(value).decode("ascii")

            data = json.dumps(values, indent=2, sort_keys=True).encode("utf-8")
            try:
                atomic_write(self.path, data)
            except OSError as e:
                raise PreferenceStoreError(f"Failed to write {self.path}: {e}") from e

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning(f"Failed to read preferences: {e}", extra={"path": str(self.path)})
            return {}

        try:
            values = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring corrupt preferences file: {e}", extra={"path": str(self.path)})
            return {}

        if not isinstance(values, dict):
            logger.warning("Ignoring preferences file that is not an object", extra={"path": str(self.path)})
            return {}
        return values
