"""
Unit tests for the tombstone column migrator.

Tests cover:
- Adding the three tombstone columns to eligible tables
- Idempotency across repeated runs
- Skipping ineligible types
- Isolating per-table failures
"""

import pytest

from tombstone.softdelete_server.errors import MigrationError
from tombstone.softdelete_server.schema.capability import CapabilityFilter
from tombstone.softdelete_server.softdelete.migrator import SchemaMigrator
from tombstone.softdelete_server.store import TombstoneColumns

from tests.support import ARTICLE, PAGE, USER


async def _create_tables(store, registry, skip=()):
    await store.initialize()
    for resource_type in registry.resource_types():
        if resource_type.uid not in skip:
            await store.create_table(resource_type.uid)


class TestSchemaMigrator:
    """Tests for SchemaMigrator."""

    @pytest.mark.asyncio
    async def test_adds_columns_to_eligible_tables(self, store, registry):
        """Every eligible table gets all three tombstone columns."""
        await _create_tables(store, registry)
        migrator = SchemaMigrator(store, CapabilityFilter())

        report = await migrator.ensure_columns(registry.resource_types())

        assert report.ok
        assert report.added[ARTICLE] == list(TombstoneColumns.ALL)
        for column in TombstoneColumns.ALL:
            assert await store.has_column("articles", column)
            assert await store.has_column("pages", column)

    @pytest.mark.asyncio
    async def test_skips_ineligible_tables(self, store, registry):
        await _create_tables(store, registry)
        migrator = SchemaMigrator(store, CapabilityFilter())

        report = await migrator.ensure_columns(registry.resource_types())

        assert USER in report.skipped
        assert USER not in report.migrated
        assert not await store.has_column("up_users", TombstoneColumns.DELETED_AT)

    @pytest.mark.asyncio
    async def test_idempotent(self, store, registry):
        """Running twice yields the same columns and no errors."""
        await _create_tables(store, registry)
        migrator = SchemaMigrator(store, CapabilityFilter())

        first = await migrator.ensure_columns(registry.resource_types())
        second = await migrator.ensure_columns(registry.resource_types())

        assert second.ok
        assert second.added == {}
        assert set(second.unchanged) == set(first.added)
        assert second.migrated == first.migrated

    @pytest.mark.asyncio
    async def test_partial_columns_completed(self, store, registry):
        """A table with some tombstone columns gets only the missing ones."""
        await _create_tables(store, registry)
        await store.add_column("articles", TombstoneColumns.DELETED_AT, "TIMESTAMP")
        migrator = SchemaMigrator(store, CapabilityFilter())

        report = await migrator.ensure_columns(registry.resource_types())

        assert report.added[ARTICLE] == [
            TombstoneColumns.DELETED_BY_ACTOR_ID,
            TombstoneColumns.DELETED_BY_ACTOR_KIND,
        ]

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, store, registry):
        """A table that cannot be migrated does not stop the others."""
        await _create_tables(store, registry, skip={PAGE})
        migrator = SchemaMigrator(store, CapabilityFilter())

        report = await migrator.ensure_columns(registry.resource_types())

        assert not report.ok
        assert isinstance(report.failed[PAGE], MigrationError)
        assert report.failed[PAGE].table == "pages"
        assert PAGE not in report.migrated
        assert ARTICLE in report.migrated
        assert report.summary()["failed"] == 1
