"""
Change feed module for tripstore.

Turns the transaction log into the set of trips changed by the widget
since the last scan, and keeps the persisted unread-trip list current.

Invariants:
    - Scans are incremental: each transaction is folded at most once
    - A delete of a child cancels earlier inserts/updates in the same scan
"""

from .reducer import (
    TRIP_ACCOMMODATION_LINK,
    WIDGET_AUTHOR,
    ChangeReducer,
    ChangeScan,
    ParentLink,
)

__all__ = [
    "ChangeReducer",
    "ChangeScan",
    "ParentLink",
    "TRIP_ACCOMMODATION_LINK",
    "WIDGET_AUTHOR",
]
