"""
Soft-delete core: tombstoning, status-aware reads, restore and purge.

Components:
    - SchemaMigrator: adds tombstone columns to eligible tables
    - TombstoneAccessor: writes and clears tombstone fields
    - StatusResolver: visibility filters and populate rewriting
    - VersionCoordinator: document-wide writes across draft/published rows
    - SoftDeleteInterceptor: CRUD facade around the record store
    - TrashService: listing, restore, purge and behavior settings
"""

from .accessor import CLEARED_MARK, TombstoneAccessor, TombstoneMark
from .actors import Actor, ActorKind, ActorResolver, AuthContext, resolve_actor
from .events import ENTRY_DELETE, ENTRY_RESTORE, EventHub, EventSink
from .interceptor import DeleteResult, SoftDeleteInterceptor
from .migrator import MigrationReport, SchemaMigrator
from .operations import CountOp, CreateOp, DeleteOp, FindManyOp, FindOneOp, Operation, UpdateOp
from .settings import (
    BehaviorConfig,
    BehaviorConfigStore,
    SingleTypeRestoreBehavior,
    VersionedRestoreBehavior,
)
from .status import ResolvedQuery, Status, StatusResolver, tombstone_clause
from .trash import RestoreResult, TombstonedDocument, TombstoneListing, TrashService
from .versions import VersionConsistency, VersionCoordinator, VersionFanout

__all__ = [
    # Actors
    "Actor",
    "ActorKind",
    "ActorResolver",
    "AuthContext",
    "resolve_actor",
    # Events
    "ENTRY_DELETE",
    "ENTRY_RESTORE",
    "EventHub",
    "EventSink",
    # Tombstones
    "CLEARED_MARK",
    "TombstoneAccessor",
    "TombstoneMark",
    "MigrationReport",
    "SchemaMigrator",
    # Reads
    "ResolvedQuery",
    "Status",
    "StatusResolver",
    "tombstone_clause",
    # Versions
    "VersionConsistency",
    "VersionCoordinator",
    "VersionFanout",
    # Interception
    "SoftDeleteInterceptor",
    "DeleteResult",
    "Operation",
    "CreateOp",
    "FindOneOp",
    "FindManyOp",
    "CountOp",
    "UpdateOp",
    "DeleteOp",
    # Trash
    "TrashService",
    "TombstoneListing",
    "TombstonedDocument",
    "RestoreResult",
    "BehaviorConfig",
    "BehaviorConfigStore",
    "SingleTypeRestoreBehavior",
    "VersionedRestoreBehavior",
]
