"""
Schema migrator for tombstone columns.

At startup, every eligible resource type's table gets three nullable
columns: deleted_at, deleted_by_actor_id, deleted_by_actor_kind.

Invariants:
    - Migration is additive and idempotent; existing columns are untouched
    - Failure on one table never stops the others
    - A type is "migrated" only when all three columns are present
      afterwards; unmigrated types pass through the interceptor unchanged

How to change safely:
    - New tombstone columns must be nullable so existing rows stay live
    - Never drop or rename columns here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..errors import MigrationError
from ..schema.capability import CapabilityFilter
from ..schema.types import ResourceTypeDef
from ..store.base import RecordStore, TombstoneColumns

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """Outcome of one migration pass.

    Attributes:
        added: uid -> columns added in this pass
        unchanged: uids whose tables already had every column
        failed: uid -> migration error
        skipped: uids not eligible for soft delete
    """

    added: dict[str, list[str]] = field(default_factory=dict)
    unchanged: list[str] = field(default_factory=list)
    failed: dict[str, MigrationError] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def migrated(self) -> frozenset[str]:
        """uids whose tables carry all tombstone columns."""
        return frozenset(self.added) | frozenset(self.unchanged)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "unchanged": len(self.unchanged),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }


class SchemaMigrator:
    """Ensures tombstone columns exist on eligible tables."""

    def __init__(self, store: RecordStore, capability: CapabilityFilter) -> None:
        self.store = store
        self.capability = capability

    async def ensure_columns(self, resource_types: Iterable[ResourceTypeDef]) -> MigrationReport:
        report = MigrationReport()

        for resource_type in resource_types:
            uid = resource_type.uid
            if not self.capability.eligible(uid):
                report.skipped.append(uid)
                continue

            try:
                added = await self._migrate_table(resource_type)
            except Exception as e:
                error = MigrationError(uid, resource_type.table, str(e))
                report.failed[uid] = error
                logger.error(
                    f"Failed to migrate {resource_type.table}: {e}",
                    extra={"uid": uid, "table": resource_type.table},
                )
                continue

            if added:
                report.added[uid] = added
                logger.info(f"Added tombstone columns to {resource_type.table}: {added}")
            else:
                report.unchanged.append(uid)

        logger.info("Tombstone migration complete", extra=report.summary())
        return report

    async def _migrate_table(self, resource_type: ResourceTypeDef) -> list[str]:
        table = resource_type.table
        added = []
        for column, column_type in TombstoneColumns.DEFINITIONS:
            if await self.store.has_column(table, column):
                continue
            await self.store.add_column(table, column, column_type)
            added.append(column)

        missing = [c for c in TombstoneColumns.ALL if not await self.store.has_column(table, c)]
        if missing:
            raise MigrationError(resource_type.uid, table, f"columns still missing: {missing}")
        return added
