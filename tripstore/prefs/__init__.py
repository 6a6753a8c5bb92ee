"""
Preference store module for tripstore.

Holds small per-app blobs that survive restarts: the change reducer's
history cursor and the list of unread trip identifiers.
"""

from .base import PreferenceKey, PreferenceStore, PreferenceStoreError
from .file import JsonFilePreferenceStore
from .memory import InMemoryPreferenceStore

__all__ = [
    "PreferenceStore",
    "PreferenceKey",
    "PreferenceStoreError",
    "JsonFilePreferenceStore",
    "InMemoryPreferenceStore",
]
