"""
Durable file replacement.

atomic_write() writes to a temporary file in the destination directory,
fsyncs it, then renames it over the destination. Readers see either the
old or the new file in full, never a partial write.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


def _write_payload(f: BinaryIO, data: bytes) -> None:
    f.write(data)
    f.flush()
    os.fsync(f.fileno())


def atomic_write(path: str | Path, data: bytes) -> None:
    """Atomically replace the contents of path with data.

    The temporary file is removed if writing fails; the destination is
    left untouched.

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "wb", delete=False, dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    ) as f:
        try:
            _write_payload(f, data)
        except BaseException:
            f.close()
            with suppress(FileNotFoundError):
                os.unlink(f.name)
            raise
    try:
        os.replace(f.name, path)
    except OSError:
        with suppress(FileNotFoundError):
            os.unlink(f.name)
        raise
    logger.debug("Replaced file", extra={"path": str(path), "size_bytes": len(data)})
