"""
Unit tests for the trash service.

Tests cover:
- Eligible type listing
- Tombstoned listing order and document grouping
- Restore and purge by id and document key
- Purge leaves live rows untouched
- Single-type displacement on restore
- Restore-as-draft for versioned documents
"""

import pytest

from tombstone.softdelete_server.errors import NotFound, UnsupportedResourceType
from tombstone.softdelete_server.softdelete.accessor import TombstoneMark
from tombstone.softdelete_server.softdelete.actors import ActorKind, AuthContext
from tombstone.softdelete_server.softdelete.events import ENTRY_DELETE, ENTRY_RESTORE

from tests.support import (
    ARTICLE,
    HOMEPAGE,
    PAGE,
    USER,
    create_page_document,
    start_engine,
)

ADMIN = AuthContext("admin", {"id": 7})


def _mark(deleted_at):
    return TombstoneMark(deleted_at=deleted_at, actor_id=7, actor_kind=ActorKind.ADMIN)


class TestListing:
    """Tests for list_eligible_types and list_tombstoned."""

    @pytest.mark.asyncio
    async def test_list_eligible_types(self, store, registry):
        engine = await start_engine(store, registry)

        types = engine.trash.list_eligible_types()

        assert [t["uid"] for t in types] == [
            ARTICLE,
            "api::category.category",
            HOMEPAGE,
            PAGE,
            "api::tag.tag",
        ]
        article = types[0]
        assert article["display_name"] == "Article"
        assert article["plural_name"] == "Articles"
        assert USER not in [t["uid"] for t in types]

    @pytest.mark.asyncio
    async def test_list_tombstoned_newest_first(self, store, registry):
        engine = await start_engine(store, registry)
        accessor = engine.interceptor.accessor
        ids = []
        for title in ("First", "Second", "Third"):
            ids.append((await store.create(ARTICLE, {"title": title})).id)
        await accessor.apply_mark(ARTICLE, ids[0], _mark(1_000))
        await accessor.apply_mark(ARTICLE, ids[2], _mark(3_000))

        listing = await engine.trash.list_tombstoned(ARTICLE)

        assert not listing.grouped
        assert [r.id for r in listing.entries] == [ids[2], ids[0]]

    @pytest.mark.asyncio
    async def test_list_tombstoned_groups_versions(self, store, registry):
        engine = await start_engine(store, registry)
        await create_page_document(store, "doc-1")
        await store.create(PAGE, {"title": "Other"}, "doc-2", "published", record_id=20)
        await engine.interceptor.coordinator.tombstone_document(PAGE, "doc-1", _mark(1_000))
        await engine.interceptor.coordinator.tombstone_document(PAGE, "doc-2", _mark(2_000))

        listing = await engine.trash.list_tombstoned(PAGE)

        assert listing.grouped
        assert [d.document_key for d in listing.entries] == ["doc-2", "doc-1"]
        doc1 = listing.entries[1].to_dict()
        assert [v["version"] for v in doc1["versions"]] == ["draft", "published"]
        assert doc1["deleted_at"] == 1_000

    @pytest.mark.asyncio
    async def test_list_tombstoned_rejects_ineligible(self, store, registry):
        engine = await start_engine(store, registry)

        with pytest.raises(UnsupportedResourceType):
            await engine.trash.list_tombstoned(USER)


class TestRestore:
    """Tests for restore."""

    @pytest.mark.asyncio
    async def test_restore_row(self, store, registry, events):
        engine = await start_engine(store, registry, events)
        article = await engine.interceptor.create(ARTICLE, {"title": "Hello"})
        await engine.interceptor.delete(ARTICLE, article.id, context=ADMIN)

        result = await engine.trash.restore(ARTICLE, article.id)

        assert result.record.id == article.id
        row = await store.get(ARTICLE, article.id)
        assert row.deleted_at is None
        assert row.deleted_by_actor_id is None
        assert row.deleted_by_actor_kind is None
        assert events.events[-1][0] == ENTRY_RESTORE
        assert events.events[-1][1]["action"] == "restore"

    @pytest.mark.asyncio
    async def test_restore_live_row_is_not_found(self, store, registry):
        engine = await start_engine(store, registry)
        article = await engine.interceptor.create(ARTICLE, {"title": "Hello"})

        with pytest.raises(NotFound):
            await engine.trash.restore(ARTICLE, article.id)

    @pytest.mark.asyncio
    async def test_restore_missing_row_is_not_found(self, store, registry):
        engine = await start_engine(store, registry)

        with pytest.raises(NotFound):
            await engine.trash.restore(ARTICLE, 404)

    @pytest.mark.asyncio
    async def test_restore_rejects_ineligible(self, store, registry):
        engine = await start_engine(store, registry)

        with pytest.raises(UnsupportedResourceType):
            await engine.trash.restore(USER, 1)

    @pytest.mark.asyncio
    async def test_restore_document_by_key(self, store, registry, events):
        engine = await start_engine(store, registry, events)
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, document_key="doc-1", context=ADMIN)

        result = await engine.trash.restore(PAGE, "doc-1")

        assert sorted(r.id for r in result.records) == [10, 11]
        assert result.record.id == 10
        assert await store.count(PAGE, {"deleted_at": {"$null": True}}) == 2
        restores = [e for e, _ in events.events if e == ENTRY_RESTORE]
        assert len(restores) == 2

    @pytest.mark.asyncio
    async def test_restore_document_by_row_id(self, store, registry):
        engine = await start_engine(store, registry)
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, document_key="doc-1")

        result = await engine.trash.restore(PAGE, 11)

        assert sorted(r.id for r in result.records) == [10, 11]

    @pytest.mark.asyncio
    async def test_restore_as_draft(self, store, registry):
        engine = await start_engine(store, registry)
        await engine.trash.set_behavior_config({"versionedRestoreBehavior": "restore-as-draft"})
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, document_key="doc-1")

        result = await engine.trash.restore(PAGE, "doc-1")

        assert [r.id for r in result.records] == [10]
        assert (await store.get(PAGE, 10)).deleted_at is None
        assert (await store.get(PAGE, 11)).is_tombstoned


class TestSingleTypeRestore:
    """Tests for restoring into a single-kind type that has a live record."""

    async def _seed(self, store, registry, behavior):
        engine = await start_engine(store, registry)
        await engine.trash.set_behavior_config({"singleTypeRestoreBehavior": behavior})
        old = await engine.interceptor.create(HOMEPAGE, {"headline": "Old"})
        await engine.interceptor.delete(HOMEPAGE, old.id, context=ADMIN)
        new = await engine.interceptor.create(HOMEPAGE, {"headline": "New"})
        return engine, old, new

    @pytest.mark.asyncio
    async def test_soft_delete_behavior_tombstones_live_record(self, store, registry):
        engine, old, new = await self._seed(store, registry, "soft-delete")

        result = await engine.trash.restore(HOMEPAGE, old.id, ADMIN)

        assert [r.id for r in result.displaced] == [new.id]
        assert (await store.get(HOMEPAGE, new.id)).is_tombstoned
        assert await engine.interceptor.count(HOMEPAGE) == 1
        assert (await engine.interceptor.find_many(HOMEPAGE))[0].id == old.id

    @pytest.mark.asyncio
    async def test_delete_permanently_behavior_removes_live_record(self, store, registry):
        engine, old, new = await self._seed(store, registry, "delete-permanently")

        result = await engine.trash.restore(HOMEPAGE, old.id)

        assert [r.id for r in result.displaced] == [new.id]
        assert await store.get(HOMEPAGE, new.id) is None
        assert await engine.interceptor.count(HOMEPAGE, status="all") == 1


class TestPurge:
    """Tests for purge."""

    @pytest.mark.asyncio
    async def test_purge_row(self, store, registry, events):
        engine = await start_engine(store, registry, events)
        article = await engine.interceptor.create(ARTICLE, {"title": "Hello"})
        await engine.interceptor.delete(ARTICLE, article.id)

        assert await engine.trash.purge(ARTICLE, article.id) == 1
        assert await store.get(ARTICLE, article.id) is None
        event, payload = events.events[-1]
        assert event == ENTRY_DELETE
        assert payload["action"] == "delete-permanently"

    @pytest.mark.asyncio
    async def test_purge_is_irreversible(self, store, registry):
        engine = await start_engine(store, registry)
        article = await engine.interceptor.create(ARTICLE, {"title": "Hello"})
        await engine.interceptor.delete(ARTICLE, article.id)
        await engine.trash.purge(ARTICLE, article.id)

        with pytest.raises(NotFound):
            await engine.trash.restore(ARTICLE, article.id)
        with pytest.raises(NotFound):
            await engine.trash.purge(ARTICLE, article.id)

    @pytest.mark.asyncio
    async def test_purge_document(self, store, registry):
        engine = await start_engine(store, registry)
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, document_key="doc-1")

        assert await engine.trash.purge(PAGE, "doc-1") == 2
        assert await store.count(PAGE) == 0

    @pytest.mark.asyncio
    async def test_purge_document_by_row_id(self, store, registry):
        engine = await start_engine(store, registry)
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, document_key="doc-1")

        assert await engine.trash.purge(PAGE, 10) == 2

    @pytest.mark.asyncio
    async def test_purge_document_keeps_restored_draft(self, store, registry):
        engine = await start_engine(store, registry)
        await engine.trash.set_behavior_config({"versionedRestoreBehavior": "restore-as-draft"})
        await create_page_document(store)
        await engine.interceptor.delete(PAGE, document_key="doc-1")
        await engine.trash.restore(PAGE, "doc-1")

        assert await engine.trash.purge(PAGE, "doc-1") == 1
        draft = await store.get(PAGE, 10)
        assert draft is not None
        assert not draft.is_tombstoned
        assert await store.get(PAGE, 11) is None

    @pytest.mark.asyncio
    async def test_purge_live_document_is_not_found(self, store, registry):
        engine = await start_engine(store, registry)
        await create_page_document(store)

        with pytest.raises(NotFound):
            await engine.trash.purge(PAGE, "doc-1")
        assert await store.count(PAGE) == 2

    @pytest.mark.asyncio
    async def test_purge_live_row_is_not_found(self, store, registry):
        engine = await start_engine(store, registry)
        article = await engine.interceptor.create(ARTICLE, {"title": "Hello"})

        with pytest.raises(NotFound):
            await engine.trash.purge(ARTICLE, article.id)
        assert await store.get(ARTICLE, article.id) is not None

    @pytest.mark.asyncio
    async def test_purge_rejects_ineligible(self, store, registry):
        engine = await start_engine(store, registry)

        with pytest.raises(UnsupportedResourceType):
            await engine.trash.purge(USER, 1)


class TestBehaviorConfig:
    """Tests for get/set behavior config through the service."""

    @pytest.mark.asyncio
    async def test_defaults(self, store, registry):
        engine = await start_engine(store, registry)

        config = await engine.trash.get_behavior_config()

        assert config.to_storage() == {
            "singleTypeRestoreBehavior": "soft-delete",
            "versionedRestoreBehavior": "restore-unchanged",
        }

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_field(self, store, registry):
        engine = await start_engine(store, registry)

        await engine.trash.set_behavior_config({"singleTypeRestoreBehavior": "delete-permanently"})
        config = await engine.trash.get_behavior_config()

        assert config.to_storage() == {
            "singleTypeRestoreBehavior": "delete-permanently",
            "versionedRestoreBehavior": "restore-unchanged",
        }
