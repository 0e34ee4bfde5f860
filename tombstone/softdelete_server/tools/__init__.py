"""
CLI tools for soft-delete administration.

This module provides command-line tools for:
- migrate: Add tombstone columns to eligible tables
- trash / restore / purge: Work with tombstoned records
- settings: Restore behavior configuration

Invariants:
    - Tools work offline against the SQLite file
    - Migration is idempotent and can be re-run safely
"""

from .softdelete_cli import SoftDeleteCLI, load_registry, parse_actor

__all__ = ["SoftDeleteCLI", "load_registry", "parse_actor"]
