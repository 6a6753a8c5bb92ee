"""
tripstore Test Suite.

This package contains:
- unit/: Unit tests (temporary directories, in-memory log and preferences)
- integration/: Integration tests (file-backed app and widget contexts, admin CLI)
"""
