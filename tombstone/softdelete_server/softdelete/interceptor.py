"""
Soft-delete interceptor wrapping a record store.

The interceptor is constructed once at startup, after migration, with a
reference to the store. Callers hold it explicitly; nothing is patched
globally.

Decision rule:
    A resource type participates when it is eligible AND its table was
    migrated. Non-participating types pass straight through to the store,
    so a delete there is a physical delete.

Delete path for participating types:
    1. Resolve the actor from the auth context
    2. Build a tombstone mark stamped with the current time
    3. Versioned: tombstone every sibling through the version coordinator;
       otherwise tombstone the single row
    4. Emit entry.delete with action soft-delete
    5. Return the tombstoned record; delete_entry also reports the rows
       written and any sibling that failed

Invariants:
    - Participating rows are never physically deleted here
    - Delete fails closed: a write error raises StorageWriteFailure and is
      never retried as a physical delete
    - Tombstone fields cannot be set through create or update
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, assert_never

from ..errors import PartialVersionFailure, SoftDeleteError, StorageWriteFailure
from ..schema.capability import CapabilityFilter
from ..schema.registry import ResourceTypeRegistry
from ..store.base import Record, RecordStore, TombstoneColumns
from ..store.filters import Filter
from .accessor import TombstoneAccessor, TombstoneMark
from .actors import Actor, ActorResolver, AuthContext, resolve_actor
from .events import ENTRY_DELETE, EventSink, build_payload
from .operations import (
    CountOp,
    CreateOp,
    DeleteOp,
    FindManyOp,
    FindOneOp,
    Operation,
    UpdateOp,
)
from .status import Status, StatusResolver
from .versions import VersionCoordinator, VersionFanout

logger = logging.getLogger(__name__)

SOFT_DELETE_ACTION = "soft-delete"


@dataclass
class DeleteResult:
    """Outcome of one delete call.

    Attributes:
        record: The tombstoned (or physically removed) record, None when
            nothing matched
        written: IDs of the rows this call tombstoned
        failure: Sibling versions that could not be tombstoned, if any
        physical: Whether the row was physically removed (non-participating type)
    """

    record: Record | None = None
    written: list[int] = field(default_factory=list)
    failure: PartialVersionFailure | None = None
    physical: bool = False

    @property
    def partial(self) -> bool:
        return self.failure is not None


class SoftDeleteInterceptor:
    """Decorator around a RecordStore that turns delete into tombstoning.

    Args:
        store: Underlying record store
        registry: Frozen resource type registry
        capability: Eligibility predicate
        migrated: uids whose tables carry the tombstone columns
        coordinator: Version coordinator for versioned types
        events: Event sink for entry.delete
        actor_resolver: Maps an auth context to an actor

    Example:
        >>> interceptor = SoftDeleteInterceptor(store, registry, capability,
        ...                                     migrated, coordinator, events)
        >>> record = await interceptor.delete("api::article.article", 42,
        ...                                   context=AuthContext("admin", {"id": 7}))
        >>> record.deleted_by_actor_kind
        'admin'
    """

    def __init__(
        self,
        store: RecordStore,
        registry: ResourceTypeRegistry,
        capability: CapabilityFilter,
        migrated: frozenset[str],
        coordinator: VersionCoordinator,
        events: EventSink,
        actor_resolver: ActorResolver = resolve_actor,
    ) -> None:
        self.store = store
        self.registry = registry
        self.capability = capability
        self.migrated = frozenset(migrated)
        self.coordinator = coordinator
        self.accessor: TombstoneAccessor = coordinator.accessor
        self.events = events
        self.actor_resolver = actor_resolver
        self.resolver = StatusResolver(registry, self.participates)

    def participates(self, uid: str) -> bool:
        return self.capability.eligible(uid) and uid in self.migrated

    async def execute(self, op: Operation, context: AuthContext | None = None) -> Any:
        """Run one operation through the interception rules."""
        match op:
            case CreateOp():
                return await self._create(op)
            case FindOneOp():
                return await self._find_one(op)
            case FindManyOp():
                return await self._find_many(op)
            case CountOp():
                return await self._count(op)
            case UpdateOp():
                return await self._update(op)
            case DeleteOp():
                return (await self._delete(op, context)).record
            case _:
                assert_never(op)

    # Convenience wrappers

    async def create(
        self,
        uid: str,
        data: dict[str, Any],
        document_key: str | None = None,
        version_label: str | None = None,
    ) -> Record:
        return await self.execute(CreateOp(uid, data, document_key, version_label))

    async def find_one(
        self,
        uid: str,
        record_id: int,
        status: Status | str | None = None,
        populate: Any = None,
    ) -> Record | None:
        return await self.execute(FindOneOp(uid, record_id, status, populate))

    async def find_many(
        self,
        uid: str,
        filters: Filter | None = None,
        status: Status | str | None = None,
        populate: Any = None,
        sort: list[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        return await self.execute(
            FindManyOp(uid, filters or {}, status, populate, sort, limit, offset)
        )

    async def count(
        self,
        uid: str,
        filters: Filter | None = None,
        status: Status | str | None = None,
    ) -> int:
        return await self.execute(CountOp(uid, filters or {}, status))

    async def update(self, uid: str, record_id: int, data: dict[str, Any]) -> Record | None:
        return await self.execute(UpdateOp(uid, record_id, data))

    async def delete(
        self,
        uid: str,
        record_id: int | None = None,
        document_key: str | None = None,
        context: AuthContext | None = None,
    ) -> Record | None:
        return await self.execute(DeleteOp(uid, record_id, document_key), context)

    async def delete_entry(
        self,
        uid: str,
        record_id: int | None = None,
        document_key: str | None = None,
        context: AuthContext | None = None,
    ) -> DeleteResult:
        """Delete like delete(), also reporting written rows and partial failures."""
        return await self._delete(DeleteOp(uid, record_id, document_key), context)

    # Handlers

    async def _create(self, op: CreateOp) -> Record:
        data = self._strip_tombstone_fields(op.uid, op.data)
        return await self.store.create(op.uid, data, op.document_key, op.version_label)

    async def _find_one(self, op: FindOneOp) -> Record | None:
        resolved = self.resolver.resolve(op.uid, op.status, None, op.populate)
        return await self.store.get(op.uid, op.id, resolved.filters, resolved.populate)

    async def _find_many(self, op: FindManyOp) -> list[Record]:
        resolved = self.resolver.resolve(op.uid, op.status, op.filters, op.populate)
        return await self.store.find_many(
            op.uid,
            resolved.filters,
            resolved.populate,
            sort=op.sort,
            limit=op.limit,
            offset=op.offset,
        )

    async def _count(self, op: CountOp) -> int:
        resolved = self.resolver.resolve(op.uid, op.status, op.filters)
        return await self.store.count(op.uid, resolved.filters)

    async def _update(self, op: UpdateOp) -> Record | None:
        data = self._strip_tombstone_fields(op.uid, op.data)
        return await self.store.update(op.uid, op.id, data)

    async def _delete(self, op: DeleteOp, context: AuthContext | None) -> DeleteResult:
        if op.id is None and op.document_key is None:
            logger.debug(f"Delete on {op.uid} without a target; nothing to do")
            return DeleteResult()

        if not self.participates(op.uid):
            removed = await self._physical_delete(op)
            return DeleteResult(record=removed, physical=removed is not None)

        actor = self.actor_resolver(context)
        mark = TombstoneMark.now(actor)
        resource_type = self.registry.get(op.uid)

        try:
            if resource_type.supports_versioning:
                fanout = await self._tombstone_versions(op, mark)
            else:
                fanout = await self._tombstone_row(op, mark)
        except SoftDeleteError:
            raise
        except Exception as e:
            logger.error(
                f"Soft delete failed for {op.uid}: {e}",
                extra={"uid": op.uid, "record_id": op.id, "document_key": op.document_key},
            )
            raise StorageWriteFailure(SOFT_DELETE_ACTION, op.uid, e) from e

        snapshot = fanout.canonical
        if snapshot is not None and fanout.written:
            self._emit_deleted(op.uid, snapshot, actor, fanout)
        return DeleteResult(record=snapshot, written=list(fanout.written), failure=fanout.failure)

    async def _tombstone_row(self, op: DeleteOp, mark: TombstoneMark) -> VersionFanout:
        existing = await self._locate(op)
        if existing is None:
            return VersionFanout(document_key=op.document_key)

        fanout = VersionFanout(document_key=existing.document_key, records=[existing])
        if existing.is_tombstoned:
            logger.debug(f"{op.uid}:{existing.id} already tombstoned")
            return fanout

        record = await self.accessor.apply_mark(op.uid, existing.id, mark)
        if record is not None:
            fanout.records = [record]
            fanout.written = [record.id]
        return fanout

    async def _tombstone_versions(self, op: DeleteOp, mark: TombstoneMark) -> VersionFanout:
        document_key = op.document_key
        if document_key is None:
            existing = await self.store.get(op.uid, op.id)
            if existing is None:
                return VersionFanout(document_key=None)
            if existing.document_key is None:
                return await self._tombstone_row(op, mark)
            document_key = existing.document_key

        return await self.coordinator.tombstone_document(op.uid, document_key, mark)

    async def _locate(self, op: DeleteOp) -> Record | None:
        if op.id is not None:
            return await self.store.get(op.uid, op.id)
        records = await self.store.find_many(
            op.uid, {"document_key": op.document_key}, sort=["id:asc"], limit=1
        )
        return records[0] if records else None

    async def _physical_delete(self, op: DeleteOp) -> Record | None:
        if op.id is not None:
            return await self.store.delete(op.uid, op.id)

        records = await self.store.find_many(
            op.uid, {"document_key": op.document_key}, sort=["id:asc"]
        )
        if not records:
            return None
        await self.store.delete_where(op.uid, {"document_key": op.document_key})
        return VersionFanout(document_key=op.document_key, records=records).canonical

    def _emit_deleted(
        self,
        uid: str,
        snapshot: Record,
        actor: Actor,
        fanout: VersionFanout,
    ) -> None:
        failure = fanout.failure
        payload = build_payload(
            uid,
            SOFT_DELETE_ACTION,
            snapshot.to_dict(),
            actor=actor.to_dict(),
            partial_failures=len(failure.failed) if failure is not None else 0,
        )
        self.events.emit(ENTRY_DELETE, payload)
        logger.info(
            f"Soft-deleted {uid}:{snapshot.id}",
            extra={"uid": uid, "record_id": snapshot.id, "actor": str(actor)},
        )

    @staticmethod
    def _strip_tombstone_fields(uid: str, data: dict[str, Any]) -> dict[str, Any]:
        present = [c for c in TombstoneColumns.ALL if c in data]
        if not present:
            return data
        logger.warning(
            f"Ignoring tombstone fields on write to {uid}: {present}",
            extra={"uid": uid},
        )
        return {k: v for k, v in data.items() if k not in TombstoneColumns.ALL}
