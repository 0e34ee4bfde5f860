"""
Trash service: the API exposed to the admin layer.

Operations:
    - list_eligible_types: resource types that participate in soft delete
    - list_tombstoned: tombstoned records of one type, newest first
    - restore: clear the tombstone of a record or document
    - purge: physically remove a tombstoned record or the tombstoned
      versions of a document
    - get_behavior_config / set_behavior_config: restore behavior options

Authorization is checked by the caller before any of these run.

Invariants:
    - Restore and purge refuse resource types that are not eligible
    - Purge is irreversible and only removes tombstoned rows
    - After restoring into a single-kind type, at most one record of that
      type is live
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import (
    NotFound,
    PartialVersionFailure,
    SoftDeleteError,
    StorageWriteFailure,
    UnsupportedResourceType,
)
from ..schema.capability import CapabilityFilter
from ..schema.registry import ResourceTypeRegistry
from ..schema.types import ResourceKind, ResourceTypeDef
from ..store.base import Record, RecordStore, TombstoneColumns, VersionLabel
from ..store.filters import Filter, and_filters
from ..store.populate import PopulateSpec
from .accessor import TombstoneMark
from .actors import ActorResolver, AuthContext, resolve_actor
from .events import ENTRY_DELETE, ENTRY_RESTORE, EventSink, build_payload
from .settings import (
    BehaviorConfig,
    BehaviorConfigStore,
    SingleTypeRestoreBehavior,
    VersionedRestoreBehavior,
)
from .status import Status, tombstone_clause
from .versions import VersionCoordinator

logger = logging.getLogger(__name__)

RESTORE_ACTION = "restore"
PURGE_ACTION = "delete-permanently"


@dataclass
class TombstonedDocument:
    """Tombstoned versions of one document, labelled draft or published."""

    document_key: str
    versions: list[Record] = field(default_factory=list)

    @property
    def deleted_at(self) -> int:
        return max((r.deleted_at or 0) for r in self.versions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_key": self.document_key,
            TombstoneColumns.DELETED_AT: self.deleted_at,
            "versions": [
                {**r.to_dict(), "version": r.version_label or VersionLabel.PUBLISHED.value}
                for r in self.versions
            ],
        }


@dataclass
class TombstoneListing:
    """Result of list_tombstoned.

    Attributes:
        uid: Resource type uid
        grouped: True when entries are TombstonedDocument groups
        entries: Records, or document groups for versioned types
    """

    uid: str
    grouped: bool
    entries: list[Record] | list[TombstonedDocument] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "grouped": self.grouped,
            "entries": [e.to_dict() for e in self.entries],
        }


@dataclass
class RestoreResult:
    """Result of restore.

    Attributes:
        uid: Resource type uid
        records: Rows whose tombstone was cleared
        displaced: Live rows of a single-kind type removed to make room
        failure: Partial failure across sibling versions, if any
    """

    uid: str
    records: list[Record] = field(default_factory=list)
    displaced: list[Record] = field(default_factory=list)
    failure: PartialVersionFailure | None = None

    @property
    def record(self) -> Record | None:
        for r in self.records:
            if r.is_draft:
                return r
        return self.records[0] if self.records else None


class TrashService:
    """List, restore and purge tombstoned records."""

    def __init__(
        self,
        store: RecordStore,
        registry: ResourceTypeRegistry,
        capability: CapabilityFilter,
        migrated: frozenset[str],
        coordinator: VersionCoordinator,
        behavior: BehaviorConfigStore,
        events: EventSink,
        actor_resolver: ActorResolver = resolve_actor,
    ) -> None:
        self.store = store
        self.registry = registry
        self.capability = capability
        self.migrated = frozenset(migrated)
        self.coordinator = coordinator
        self.accessor = coordinator.accessor
        self.behavior = behavior
        self.events = events
        self.actor_resolver = actor_resolver

    def list_eligible_types(self) -> list[dict[str, Any]]:
        return [
            {
                "uid": rt.uid,
                "display_name": rt.label,
                "plural_name": rt.plural_name or rt.label,
            }
            for rt in sorted(self.registry.resource_types(), key=lambda rt: rt.uid)
            if self.capability.eligible(rt.uid)
        ]

    async def list_tombstoned(self, uid: str, populate: Any = None) -> TombstoneListing:
        """Tombstoned records of a type, ordered by deleted_at descending.

        Versioned types are grouped by document_key.

        Raises:
            UnsupportedResourceType: If the type is not eligible
        """
        resource_type = self._require_eligible(uid)
        grouped = resource_type.supports_versioning
        if uid not in self.migrated:
            logger.warning(f"{uid} has no tombstone columns; trash is empty")
            return TombstoneListing(uid=uid, grouped=grouped)

        records = await self.store.find_many(
            uid,
            tombstone_clause(Status.DELETED),
            PopulateSpec.parse(populate),
            sort=[f"{TombstoneColumns.DELETED_AT}:desc", "id:asc"],
        )
        if not grouped:
            return TombstoneListing(uid=uid, grouped=False, entries=records)

        documents: dict[str, TombstonedDocument] = {}
        for record in records:
            key = record.document_key or f"id:{record.id}"
            documents.setdefault(key, TombstonedDocument(document_key=key)).versions.append(record)
        for document in documents.values():
            document.versions.sort(key=lambda r: (not r.is_draft, r.id))

        entries = sorted(documents.values(), key=lambda d: d.deleted_at, reverse=True)
        return TombstoneListing(uid=uid, grouped=True, entries=entries)

    async def restore(
        self,
        uid: str,
        target: int | str,
        context: AuthContext | None = None,
    ) -> RestoreResult:
        """Clear the tombstone of a record (by id) or a document (by key).

        Raises:
            UnsupportedResourceType: If the type is not eligible
            NotFound: If nothing tombstoned matches the target
            StorageWriteFailure: If the restore write fails
        """
        resource_type = self._require_eligible(uid)
        if uid not in self.migrated:
            raise NotFound(uid, target)

        config = await self.behavior.get()
        try:
            if resource_type.supports_versioning:
                result = await self._restore_document(resource_type, target, config, context)
            else:
                result = await self._restore_row(resource_type, target, config, context)
        except SoftDeleteError:
            raise
        except Exception as e:
            logger.error(f"Restore failed for {uid} target {target!r}: {e}")
            raise StorageWriteFailure(RESTORE_ACTION, uid, e) from e

        for record in result.records:
            self.events.emit(
                ENTRY_RESTORE, build_payload(uid, RESTORE_ACTION, record.to_dict())
            )
        logger.info(
            f"Restored {len(result.records)} record(s) of {uid}",
            extra={"uid": uid, "target": target, "displaced": len(result.displaced)},
        )
        return result

    async def purge(self, uid: str, target: int | str) -> int:
        """Physically remove a tombstoned record or the tombstoned versions of a document.

        Live rows are never touched; purge only empties the trash.

        Raises:
            UnsupportedResourceType: If the type is not eligible
            NotFound: If nothing tombstoned matches the target
            StorageWriteFailure: If the delete fails
        """
        resource_type = self._require_eligible(uid)
        if uid not in self.migrated:
            raise NotFound(uid, target)

        document_key = None
        record_id = None
        if resource_type.supports_versioning:
            document_key = await self._document_key(resource_type, target)
            if document_key is None:
                record_id = _as_id(target)
        else:
            record_id = _as_id(target)
            if record_id is None:
                raise NotFound(uid, target)

        if document_key is not None:
            count = await self.coordinator.purge_document(uid, document_key)
            snapshot: dict[str, Any] | None = {"document_key": document_key}
        else:
            deleted = tombstone_clause(Status.DELETED)
            existing = await self.store.get(uid, record_id, deleted)
            if existing is None:
                raise NotFound(uid, target)
            try:
                count = await self.store.delete_where(
                    uid, and_filters({"id": record_id}, deleted)
                )
            except Exception as e:
                raise StorageWriteFailure("purge", uid, e) from e
            snapshot = existing.to_dict()

        if count == 0:
            raise NotFound(uid, target)

        self.events.emit(ENTRY_DELETE, build_payload(uid, PURGE_ACTION, snapshot, count=count))
        logger.info(f"Purged {count} record(s) of {uid}", extra={"uid": uid, "target": target})
        return count

    async def get_behavior_config(self) -> BehaviorConfig:
        return await self.behavior.get()

    async def set_behavior_config(self, config: BehaviorConfig | dict[str, Any]) -> BehaviorConfig:
        return await self.behavior.set(config)

    def _require_eligible(self, uid: str) -> ResourceTypeDef:
        resource_type = self.registry.get(uid)
        if resource_type is None or not self.capability.eligible(uid):
            raise UnsupportedResourceType(uid)
        return resource_type

    async def _restore_row(
        self,
        resource_type: ResourceTypeDef,
        target: int | str,
        config: BehaviorConfig,
        context: AuthContext | None,
    ) -> RestoreResult:
        uid = resource_type.uid
        record_id = _as_id(target)
        if record_id is None:
            raise NotFound(uid, target)

        existing = await self.store.get(uid, record_id, tombstone_clause(Status.DELETED))
        if existing is None:
            raise NotFound(uid, target)

        restored = await self.accessor.clear_mark(uid, record_id)
        if restored is None:
            raise NotFound(uid, target)
        displaced = await self._displace_single(
            resource_type, {"id": {"$ne": record_id}}, config, context
        )
        return RestoreResult(uid=uid, records=[restored], displaced=displaced)

    async def _restore_document(
        self,
        resource_type: ResourceTypeDef,
        target: int | str,
        config: BehaviorConfig,
        context: AuthContext | None,
    ) -> RestoreResult:
        uid = resource_type.uid
        document_key = await self._document_key(resource_type, target)
        if document_key is None:
            # versioned row created without a document key
            return await self._restore_row(resource_type, target, config, context)

        tombstoned = await self.store.count(
            uid, and_filters({"document_key": document_key}, tombstone_clause(Status.DELETED))
        )
        if tombstoned == 0:
            raise NotFound(uid, target)

        as_draft = (
            config.versioned_restore_behavior is VersionedRestoreBehavior.RESTORE_AS_DRAFT
        )
        fanout = await self.coordinator.restore_document(uid, document_key, as_draft=as_draft)
        written = set(fanout.written)
        displaced: list[Record] = []
        if written:
            displaced = await self._displace_single(
                resource_type, {"document_key": {"$ne": document_key}}, config, context
            )
        return RestoreResult(
            uid=uid,
            records=[r for r in fanout.records if r.id in written],
            displaced=displaced,
            failure=fanout.failure,
        )

    async def _displace_single(
        self,
        resource_type: ResourceTypeDef,
        others: Filter,
        config: BehaviorConfig,
        context: AuthContext | None,
    ) -> list[Record]:
        """Retire the other live records of a single-kind type.

        Runs after the restore write, so a failed restore never costs the
        type its live record.
        """
        if resource_type.kind is not ResourceKind.SINGLE:
            return []

        uid = resource_type.uid
        live = await self.store.find_many(
            uid, and_filters(others, tombstone_clause(Status.PUBLISHED))
        )
        if not live:
            return []

        ids = [r.id for r in live]
        if config.single_type_restore_behavior is SingleTypeRestoreBehavior.DELETE_PERMANENTLY:
            await self.store.delete_where(uid, {"id": {"$in": ids}})
            logger.info(f"Purged live {uid} record(s) {ids} displaced by restore")
            return live

        mark = TombstoneMark.now(self.actor_resolver(context))
        displaced = []
        for record_id in ids:
            record = await self.accessor.apply_mark(uid, record_id, mark)
            if record is not None:
                displaced.append(record)
        logger.info(f"Tombstoned live {uid} record(s) {ids} displaced by restore")
        return displaced

    async def _document_key(self, resource_type: ResourceTypeDef, target: int | str) -> str | None:
        """Document key addressed by a target: the key itself or a row id."""
        if isinstance(target, int):
            record = await self.store.get(resource_type.uid, target)
            if record is None:
                raise NotFound(resource_type.uid, target)
            return record.document_key
        return str(target)


def _as_id(target: int | str) -> int | None:
    if isinstance(target, int):
        return target
    if isinstance(target, str) and target.isdigit():
        return int(target)
    return None
