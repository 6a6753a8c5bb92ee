"""
CLI tools for tripstore administration.

Invariants:
    - Tools work offline against a data directory
    - Read-only commands never modify files
"""

from .admin_cli import AdminCLI

__all__ = ["AdminCLI"]
