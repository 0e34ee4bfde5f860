"""
Store module - the record store the soft-delete engine sits in front of.

This module provides:
- RecordStore interface and Record type
- Filter documents compiled to SQL
- Typed relation-populate tree
- SQLite implementation

Invariants:
    - Validated writes never touch tombstone columns
    - Raw column writes are restricted to tombstone columns and version_label
"""

from .base import (
    Record,
    RecordStore,
    RecordValidationError,
    StoreError,
    TombstoneColumns,
    UnknownResourceTypeError,
    VersionLabel,
)
from .filters import Filter, FilterError, and_filters, compile_filter
from .populate import PopulateError, PopulateNode, PopulateSpec
from .sqlite_store import SqliteRecordStore

__all__ = [
    "Record",
    "RecordStore",
    "RecordValidationError",
    "StoreError",
    "TombstoneColumns",
    "UnknownResourceTypeError",
    "VersionLabel",
    "Filter",
    "FilterError",
    "and_filters",
    "compile_filter",
    "PopulateError",
    "PopulateNode",
    "PopulateSpec",
    "SqliteRecordStore",
]
