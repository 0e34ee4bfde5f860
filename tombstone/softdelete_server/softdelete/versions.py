"""
Version coordinator for draft/published documents.

A versioned document is a group of rows sharing one document_key, at most
one draft and one published. Tombstoning and restoring act on the whole
group.

Consistency policies:
    - best-effort: each sibling is written independently. A failed sibling
      is recorded as a PartialVersionFailure on the result and the others
      are still attempted; StorageWriteFailure is raised only when every
      sibling failed.
    - atomic: all siblings are written in one store transaction, so they
      commit together or not at all. Stores without transactions fall
      back to best-effort.

Purge removes only the tombstoned versions of a document; a version that was
restored on its own stays live.

How to change safely:
    - Keep the canonical choice stable (a written draft, then any written
      row, then the draft); callers return it as the delete result
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from ..errors import PartialVersionFailure, StorageWriteFailure
from ..store.base import Record, RecordStore, VersionLabel
from ..store.filters import and_filters
from .accessor import TombstoneAccessor, TombstoneMark
from .status import Status, tombstone_clause

logger = logging.getLogger(__name__)


class VersionConsistency(Enum):
    BEST_EFFORT = "best-effort"
    ATOMIC = "atomic"


@dataclass
class VersionFanout:
    """Outcome of one document-wide write.

    Attributes:
        document_key: Document that was addressed
        records: Every version of the document, in post-write state
        written: IDs of the rows this call actually changed
        failure: Partial failure, if some siblings could not be written
    """

    document_key: str | None
    records: list[Record] = field(default_factory=list)
    written: list[int] = field(default_factory=list)
    failure: PartialVersionFailure | None = None

    @property
    def canonical(self) -> Record | None:
        """The version a caller sees as the result.

        Rows this call wrote win over rows it did not, so a failed draft
        never hides a written published row. Within either group the draft
        comes first.
        """
        written = set(self.written)
        candidates = [r for r in self.records if r.id in written] or self.records
        for record in candidates:
            if record.is_draft:
                return record
        return candidates[0] if candidates else None

    @property
    def found(self) -> bool:
        return bool(self.records)


class VersionCoordinator:
    """Fans tombstone, restore and purge out across sibling versions."""

    def __init__(
        self,
        store: RecordStore,
        accessor: TombstoneAccessor,
        consistency: VersionConsistency = VersionConsistency.BEST_EFFORT,
    ) -> None:
        self.store = store
        self.accessor = accessor
        self.consistency = consistency

        if consistency is VersionConsistency.ATOMIC and not store.supports_transactions:
            logger.warning(
                "Store does not support transactions; version writes are best-effort",
                extra={"store": type(store).__name__},
            )
            self.consistency = VersionConsistency.BEST_EFFORT

    async def versions(self, uid: str, document_key: str) -> list[Record]:
        return await self.store.find_many(
            uid, {"document_key": document_key}, sort=["id:asc"]
        )

    async def tombstone_document(
        self, uid: str, document_key: str, mark: TombstoneMark
    ) -> VersionFanout:
        """Apply a tombstone mark to every live version of a document."""
        versions = await self.versions(uid, document_key)
        targets = [r for r in versions if not r.is_tombstoned]

        return await self._fan_out(
            uid,
            document_key,
            versions,
            targets,
            write_one=lambda record_id: self.accessor.apply_mark(uid, record_id, mark),
            write_all=lambda ids: self.accessor.apply_mark_many(uid, ids, mark),
            operation="soft-delete",
        )

    async def restore_document(
        self, uid: str, document_key: str, as_draft: bool = False
    ) -> VersionFanout:
        """Clear tombstone fields on the tombstoned versions of a document.

        With as_draft, only the draft is restored; if the document has no
        tombstoned draft and no live draft, its published row is restored
        and relabelled as draft.
        """
        versions = await self.versions(uid, document_key)
        targets = [r for r in versions if r.is_tombstoned]
        relabel: VersionLabel | None = None

        if as_draft and targets:
            drafts = [r for r in targets if r.is_draft]
            has_live_draft = any(r.is_draft and not r.is_tombstoned for r in versions)
            if drafts:
                targets = drafts
            elif not has_live_draft:
                targets = targets[:1]
                relabel = VersionLabel.DRAFT

        # relabelled restores are written row by row
        return await self._fan_out(
            uid,
            document_key,
            versions,
            targets,
            write_one=lambda record_id: self.accessor.clear_mark(uid, record_id, relabel),
            write_all=(
                None if relabel is not None
                else lambda ids: self.accessor.clear_mark_many(uid, ids)
            ),
            operation="restore",
        )

    async def purge_document(self, uid: str, document_key: str) -> int:
        """Physically remove the tombstoned version rows of a document.

        Live versions are left in place. Returns the number of rows removed.
        """
        tombstoned = and_filters(
            {"document_key": document_key}, tombstone_clause(Status.DELETED)
        )
        try:
            count = await self.store.delete_where(uid, tombstoned)
        except Exception as e:
            raise StorageWriteFailure("purge", uid, e) from e
        logger.info(
            f"Purged {count} version(s) of {uid} document {document_key}",
            extra={"uid": uid, "document_key": document_key},
        )
        return count

    async def _fan_out(
        self,
        uid: str,
        document_key: str,
        versions: list[Record],
        targets: list[Record],
        write_one: Callable[[int], Awaitable[Record | None]],
        write_all: Callable[[list[int]], Awaitable[list[Record]]] | None,
        operation: str,
    ) -> VersionFanout:
        fanout = VersionFanout(document_key=document_key, records=list(versions))
        if not targets:
            return fanout

        ids = [r.id for r in targets]
        if self.consistency is VersionConsistency.ATOMIC and write_all is not None:
            try:
                written = await write_all(ids)
            except Exception as e:
                logger.error(
                    f"Atomic {operation} of {uid} document {document_key} failed: {e}",
                    extra={"uid": uid, "document_key": document_key},
                )
                raise StorageWriteFailure(operation, uid, e) from e
            self._merge(fanout, written)
            return fanout

        updated: list[Record] = []
        failed: dict[int, str] = {}
        for record_id in ids:
            try:
                record = await write_one(record_id)
            except Exception as e:
                failed[record_id] = str(e)
                continue
            if record is None:
                failed[record_id] = "record not found"
            else:
                updated.append(record)

        if failed and not updated:
            raise StorageWriteFailure(
                operation,
                uid,
                f"every version of document {document_key!r} failed: {failed}",
            )

        self._merge(fanout, updated)
        if failed:
            fanout.failure = PartialVersionFailure(
                uid, document_key, [r.id for r in updated], failed
            )
            logger.warning(
                fanout.failure.message,
                extra={"uid": uid, "document_key": document_key, "failed": list(failed)},
            )
        return fanout

    @staticmethod
    def _merge(fanout: VersionFanout, updated: list[Record]) -> None:
        by_id = {r.id: r for r in updated}
        fanout.records = [by_id.get(r.id, r) for r in fanout.records]
        fanout.written = [r.id for r in updated]
