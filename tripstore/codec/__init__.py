"""
Snapshot codec for tripstore.

This module converts entities to immutable, identifier-stamped snapshots
and snapshots to their on-disk JSON records:
- Identifier: provisional or permanent entity identifier
- Snapshot: one immutable entity version
- SnapshotCodec: entity <-> snapshot using the schema registry
- encode_snapshot / decode_snapshot: snapshot <-> JSON record

Invariants:
    - Snapshots are immutable
    - Provisional references are rewritten by remap_references() during save
"""

from .errors import CodecError, DecodeError
from .identifiers import Identifier
from .snapshot import Snapshot
from .wire import SnapshotRecord, decode_snapshot, encode_snapshot
from .codec import SnapshotCodec, remap_references

__all__ = [
    "Identifier",
    "Snapshot",
    "SnapshotCodec",
    "SnapshotRecord",
    "remap_references",
    "encode_snapshot",
    "decode_snapshot",
    "CodecError",
    "DecodeError",
]
