"""
Integration tests for the complete soft-delete flow.

These tests run the engine against a real SQLite file and walk records
through delete, list, restore and purge the way the admin layer does.
"""

import pytest

from tombstone.softdelete_server.engine import SoftDeleteEngine
from tombstone.softdelete_server.errors import NotFound
from tombstone.softdelete_server.softdelete.actors import AuthContext
from tombstone.softdelete_server.softdelete.events import ENTRY_DELETE, ENTRY_RESTORE
from tombstone.softdelete_server.store import SqliteRecordStore, TombstoneColumns

from tests.support import (
    ARTICLE,
    CATEGORY,
    PAGE,
    TAG,
    build_registry,
    create_page_document,
    start_engine,
)

ADMIN = AuthContext("admin", {"id": 7})


class TestArticleLifecycle:
    """A non-versioned record from creation to purge."""

    @pytest.mark.asyncio
    async def test_delete_list_restore(self, store, registry, events):
        engine = await start_engine(store, registry, events)
        interceptor = engine.interceptor
        await store.create(ARTICLE, {"title": "Launch"}, record_id=42)

        deleted = await interceptor.delete(ARTICLE, 42, context=ADMIN)
        assert deleted.deleted_by_actor_id == 7
        assert deleted.deleted_by_actor_kind == "admin"

        # hidden from default reads, visible in trash
        assert await interceptor.find_one(ARTICLE, 42) is None
        assert await interceptor.count(ARTICLE) == 0
        kept = await interceptor.find_one(ARTICLE, 42, status="all")
        assert kept.deleted_at is not None
        assert (kept.deleted_by_actor_id, kept.deleted_by_actor_kind) == (7, "admin")
        listing = await engine.trash.list_tombstoned(ARTICLE)
        assert [r.id for r in listing.entries] == [42]

        await engine.trash.restore(ARTICLE, 42, ADMIN)

        restored = await interceptor.find_one(ARTICLE, 42)
        assert restored is not None
        assert restored.data["title"] == "Launch"
        for column in TombstoneColumns.ALL:
            assert getattr(restored, column) is None
        assert len(await engine.trash.list_tombstoned(ARTICLE)) == 0
        assert [e for e, _ in events.events] == [ENTRY_DELETE, ENTRY_RESTORE]

    @pytest.mark.asyncio
    async def test_purge_is_final(self, store, registry, events):
        engine = await start_engine(store, registry, events)
        await store.create(ARTICLE, {"title": "Launch"}, record_id=42)
        await engine.interceptor.delete(ARTICLE, 42, context=ADMIN)

        assert await engine.trash.purge(ARTICLE, 42) == 1

        assert await engine.interceptor.find_one(ARTICLE, 42, status="all") is None
        with pytest.raises(NotFound):
            await engine.trash.restore(ARTICLE, 42)
        assert events.actions() == ["soft-delete", "delete-permanently"]

    @pytest.mark.asyncio
    async def test_relations_respect_status(self, store, registry):
        engine = await start_engine(store, registry)
        interceptor = engine.interceptor
        news = await interceptor.create(CATEGORY, {"name": "News"})
        red = await interceptor.create(TAG, {"name": "red"})
        blue = await interceptor.create(TAG, {"name": "blue"})
        article = await interceptor.create(
            ARTICLE, {"title": "Hi", "category": news.id, "tags": [red.id, blue.id]}
        )
        await interceptor.delete(TAG, blue.id)

        found = await interceptor.find_one(ARTICLE, article.id, populate=["category", "tags"])
        assert found.relations["category"].id == news.id
        assert [t.id for t in found.relations["tags"]] == [red.id]

        everything = await interceptor.find_one(
            ARTICLE, article.id, status="all", populate={"tags": True}
        )
        assert sorted(t.id for t in everything.relations["tags"]) == sorted([red.id, blue.id])


class TestVersionedDocument:
    """A draft/published document moving through trash."""

    @pytest.mark.asyncio
    async def test_document_round_trip(self, store, registry, events):
        engine = await start_engine(store, registry, events)
        await create_page_document(store)

        deleted = await engine.interceptor.delete(PAGE, document_key="doc-1", context=ADMIN)
        assert deleted.id == 10
        assert await engine.interceptor.count(PAGE) == 0

        listing = await engine.trash.list_tombstoned(PAGE)
        assert len(listing) == 1
        document = listing.entries[0]
        assert document.document_key == "doc-1"
        assert [v.id for v in document.versions] == [10, 11]

        result = await engine.trash.restore(PAGE, "doc-1")
        assert sorted(r.id for r in result.records) == [10, 11]
        assert await engine.interceptor.count(PAGE) == 2

    @pytest.mark.asyncio
    async def test_purge_document_removes_all_versions(self, store, registry):
        engine = await start_engine(store, registry)
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, 10)

        assert await engine.trash.purge(PAGE, "doc-1") == 2
        assert await engine.interceptor.count(PAGE, status="all") == 0


class TestRestart:
    """State survives an engine restart over the same file."""

    @pytest.mark.asyncio
    async def test_restart_keeps_tombstones_and_settings(self, data_dir):
        db_path = f"{data_dir}/restart.db"
        registry = build_registry()
        first = await start_engine(SqliteRecordStore(db_path, registry, wal_mode=False), registry)
        await first.store.create(ARTICLE, {"title": "Launch"}, record_id=42)
        await first.interceptor.delete(ARTICLE, 42, context=ADMIN)
        await first.trash.set_behavior_config({"versionedRestoreBehavior": "restore-as-draft"})

        registry = build_registry()
        second = SoftDeleteEngine(registry, SqliteRecordStore(db_path, registry, wal_mode=False))
        report = await second.start()

        assert report.added == {}
        assert ARTICLE in report.unchanged
        assert [r.id for r in (await second.trash.list_tombstoned(ARTICLE)).entries] == [42]
        config = await second.trash.get_behavior_config()
        assert config.versioned_restore_behavior.value == "restore-as-draft"
