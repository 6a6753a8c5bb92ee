"""
Error types for the snapshot codec.

Invariants:
    - All codec errors inherit from CodecError
    - DecodeError is scoped to one snapshot or token, never a whole document
"""

from __future__ import annotations


class CodecError(Exception):
    """Base exception for snapshot codec failures."""
    pass


class DecodeError(CodecError):
    """A snapshot, value or identifier token does not have the expected shape.

    Attributes:
        identifier: Token of the offending snapshot, when known
        errors: Individual validation messages
    """

    def __init__(
        self,
        message: str,
        identifier: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.errors = errors or []
