"""
tripstore - JSON document persistence and change feed for the Trips app.

This package implements the storage layer shared by the Trips app and its
widget extension:
- Typed entities encoded as identifier-stamped snapshots
- One JSON document per container, replaced atomically on every save
- An append-only transaction log written alongside every save
- A change reducer that turns new log entries into "unread" trips

Architecture:
    ┌─────────────┐     ┌─────────────────┐     ┌─────────────────┐
    │  App / UI   │────▶│  DocumentStore  │────▶│  trips_data     │
    │  (edits)    │     │  save(batch)    │     │  (JSON file)    │
    └─────────────┘     └────────┬────────┘     └─────────────────┘
                                 │ append
                                 ▼
                        ┌─────────────────┐
                        │ TransactionLog  │
                        └────────┬────────┘
                                 │ scan_after(cursor, author)
                                 ▼
                        ┌─────────────────┐     ┌─────────────────┐
                        │  ChangeReducer  │────▶│ PreferenceStore │
                        │                 │     │ (cursor, unread)│
                        └─────────────────┘     └─────────────────┘

Invariants:
    - The app is the only writer of a document (single-writer discipline)
    - A document file is always either the old or the new version, never partial
    - Permanent identifiers never change once assigned
    - The history cursor only moves forward

How to change safely:
    - Keep the on-disk record format backward compatible
    - New entity kinds need a registered EntityTypeDef
    - New change kinds must be handled explicitly by the reducer
"""

from ._version import __version__

__all__ = ["__version__"]
