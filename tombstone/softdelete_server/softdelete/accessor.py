"""
Tombstone store accessor.

Low-level writes of the three tombstone fields. These go through the
store's raw column path, which bypasses attribute validation: tombstone
columns are deliberately not part of any resource type's attributes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from ..store.base import Record, RecordStore, TombstoneColumns, VersionLabel
from .actors import Actor, ActorKind

logger = logging.getLogger(__name__)

CLEARED_MARK: dict[str, Any] = {column: None for column in TombstoneColumns.ALL}


@dataclass(frozen=True)
class TombstoneMark:
    """Tombstone values applied by one delete call.

    Attributes:
        deleted_at: Deletion timestamp (Unix ms)
        actor_id: Actor identifier, None when unknown
        actor_kind: Kind of actor
    """

    deleted_at: int
    actor_id: int | None
    actor_kind: ActorKind

    @classmethod
    def now(cls, actor: Actor) -> TombstoneMark:
        return cls(deleted_at=int(time.time() * 1000), actor_id=actor.id, actor_kind=actor.kind)

    def columns(self) -> dict[str, Any]:
        return {
            TombstoneColumns.DELETED_AT: self.deleted_at,
            TombstoneColumns.DELETED_BY_ACTOR_ID: self.actor_id,
            TombstoneColumns.DELETED_BY_ACTOR_KIND: self.actor_kind.value,
        }


class TombstoneAccessor:
    """Reads and writes tombstone fields on individual rows."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def apply_mark(self, uid: str, record_id: int, mark: TombstoneMark) -> Record | None:
        record = await self.store.write_columns(uid, record_id, mark.columns())
        logger.debug(
            "Applied tombstone",
            extra={"uid": uid, "record_id": record_id, "actor_kind": mark.actor_kind.value},
        )
        return record

    async def apply_mark_many(
        self, uid: str, record_ids: list[int], mark: TombstoneMark
    ) -> list[Record]:
        """Apply one mark to several rows in a single store transaction."""
        return await self.store.write_columns_many(uid, record_ids, mark.columns())

    async def clear_mark(
        self, uid: str, record_id: int, relabel: VersionLabel | None = None
    ) -> Record | None:
        """Clear all three tombstone fields, optionally relabelling the version."""
        values = dict(CLEARED_MARK)
        if relabel is not None:
            values["version_label"] = relabel.value
        record = await self.store.write_columns(uid, record_id, values)
        logger.debug("Cleared tombstone", extra={"uid": uid, "record_id": record_id})
        return record

    async def clear_mark_many(self, uid: str, record_ids: list[int]) -> list[Record]:
        return await self.store.write_columns_many(uid, record_ids, dict(CLEARED_MARK))
