"""
Soft-delete engine - tombstone interception for record stores.

This package sits between an application's CRUD calls and its record store:
- "delete" becomes tombstone-marking; rows are never physically removed
- read/list/count calls are rewritten for a tri-state visibility status
- draft/published siblings of one document are tombstoned and restored together
- tombstone columns are added to eligible tables at startup
- restore and purge are exposed for the surrounding admin layer

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌──────────────┐
    │ Application │────▶│ SoftDeleteInter- │────▶│ RecordStore  │
    │  CRUD call  │     │ ceptor           │     │ (SQLite)     │
    └─────────────┘     └────────┬─────────┘     └──────────────┘
                                 │
             ┌───────────────────┼────────────────────┐
             ▼                   ▼                    ▼
      ┌─────────────┐    ┌──────────────┐     ┌──────────────┐
      │   Status    │    │   Version    │     │  Tombstone   │
      │  Resolver   │    │ Coordinator  │     │   Accessor   │
      └─────────────┘    └──────────────┘     └──────────────┘

Invariants:
    - Delete never means gone for eligible, migrated types (purge excepted)
    - Tombstone columns are written only by delete and restore paths
    - Migration completes before the interceptor is constructed
    - Eligibility and migration state are fixed for the process lifetime

How to change safely:
    - New operation kinds must be added to the Operation union and to the
      interceptor's match statement
    - Keep migrations additive (nullable columns only)
"""

from ._version import __version__

__all__ = ["__version__"]
