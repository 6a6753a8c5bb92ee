"""
Document store module for tripstore.

This module handles:
- The single-file JSON document store (read, write, save, fetch)
- Atomic file replacement
- In-memory filtering and sorting of fetched snapshots

Invariants:
    - A save either replaces the whole document or leaves it untouched
    - Provisional identifiers never survive a save
    - fetch() never filters or sorts; callers do it in memory
"""

from .document_store import (
    CorruptDocumentError,
    DocumentStore,
    DocumentStoreError,
    DocumentWriteError,
    FetchDescriptor,
    FetchResult,
    JSONStoreConfiguration,
    PreferInMemoryFilterError,
    PreferInMemorySortError,
    SaveRequest,
    SaveResult,
    UnsupportedQueryError,
)
from .files import atomic_write
from .query import filter_snapshots, references_to, sort_snapshots

__all__ = [
    "DocumentStore",
    "JSONStoreConfiguration",
    "SaveRequest",
    "SaveResult",
    "FetchDescriptor",
    "FetchResult",
    "DocumentStoreError",
    "CorruptDocumentError",
    "DocumentWriteError",
    "UnsupportedQueryError",
    "PreferInMemoryFilterError",
    "PreferInMemorySortError",
    "atomic_write",
    "filter_snapshots",
    "sort_snapshots",
    "references_to",
]
