"""
Unit tests for the SQLite record store.

Tests cover:
- Record CRUD operations
- Filtering, sorting and pagination
- Raw column writes and their restrictions
- Relation populate
- Column introspection and additive migration
"""

import pytest

from tombstone.softdelete_server.store import (
    FilterError,
    PopulateSpec,
    RecordValidationError,
    StoreError,
    UnknownResourceTypeError,
)

from tests.support import ARTICLE, CATEGORY, PAGE, TAG


async def _create_tables(store, registry):
    await store.initialize()
    for resource_type in registry.resource_types():
        await store.create_table(resource_type.uid)


class TestRecordCrud:
    """Tests for create/get/update/delete."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, store, registry):
        """Create stores data and assigns an id."""
        await _create_tables(store, registry)

        record = await store.create(ARTICLE, {"title": "Hello", "body": "World"})

        assert record.id is not None
        assert record.created_at > 0
        fetched = await store.get(ARTICLE, record.id)
        assert fetched.data["title"] == "Hello"
        assert fetched.deleted_at is None

    @pytest.mark.asyncio
    async def test_create_with_explicit_id(self, store, registry):
        await _create_tables(store, registry)

        record = await store.create(PAGE, {"title": "About"}, "doc-1", "draft", record_id=10)

        assert record.id == 10
        assert record.document_key == "doc-1"
        assert record.is_draft

    @pytest.mark.asyncio
    async def test_create_validates(self, store, registry):
        await _create_tables(store, registry)

        with pytest.raises(RecordValidationError):
            await store.create(ARTICLE, {"body": "missing title"})

    @pytest.mark.asyncio
    async def test_unknown_resource_type(self, store, registry):
        await _create_tables(store, registry)

        with pytest.raises(UnknownResourceTypeError):
            await store.create("api::missing.missing", {})

    @pytest.mark.asyncio
    async def test_update_is_partial(self, store, registry):
        await _create_tables(store, registry)
        record = await store.create(ARTICLE, {"title": "Hello", "body": "v1"})

        updated = await store.update(ARTICLE, record.id, {"body": "v2"})

        assert updated.data == {**record.data, "body": "v2"}

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, store, registry):
        await _create_tables(store, registry)

        assert await store.update(ARTICLE, 999, {"body": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete_returns_last_state(self, store, registry):
        await _create_tables(store, registry)
        record = await store.create(ARTICLE, {"title": "Gone"})

        removed = await store.delete(ARTICLE, record.id)

        assert removed.data["title"] == "Gone"
        assert await store.get(ARTICLE, record.id) is None
        assert await store.delete(ARTICLE, record.id) is None

    @pytest.mark.asyncio
    async def test_delete_where(self, store, registry):
        await _create_tables(store, registry)
        await store.create(PAGE, {"title": "a"}, "doc-1", "draft")
        await store.create(PAGE, {"title": "a"}, "doc-1", "published")
        await store.create(PAGE, {"title": "b"}, "doc-2", "draft")

        count = await store.delete_where(PAGE, {"document_key": "doc-1"})

        assert count == 2
        assert await store.count(PAGE) == 1

    @pytest.mark.asyncio
    async def test_delete_where_requires_filter(self, store, registry):
        await _create_tables(store, registry)

        with pytest.raises(StoreError):
            await store.delete_where(PAGE, {})


class TestQueries:
    """Tests for find_many and count."""

    @pytest.mark.asyncio
    async def test_filter_sort_paginate(self, store, registry):
        await _create_tables(store, registry)
        for title in ("c", "a", "b"):
            await store.create(ARTICLE, {"title": title})

        records = await store.find_many(ARTICLE, sort=["title:asc"], limit=2)
        assert [r.data["title"] for r in records] == ["a", "b"]

        records = await store.find_many(ARTICLE, sort=["title:desc"], limit=2, offset=1)
        assert [r.data["title"] for r in records] == ["b", "a"]

        assert await store.count(ARTICLE, {"title": {"$in": ["a", "c"]}}) == 2

    @pytest.mark.asyncio
    async def test_invalid_sort(self, store, registry):
        await _create_tables(store, registry)

        with pytest.raises(FilterError):
            await store.find_many(ARTICLE, sort=["password:asc"])

        with pytest.raises(FilterError):
            await store.find_many(ARTICLE, sort=["title:sideways"])


class TestRawColumnWrites:
    """Tests for write_columns and write_columns_many."""

    @pytest.mark.asyncio
    async def test_write_requires_columns(self, store, registry):
        """Tombstone columns must exist before they can be written."""
        await _create_tables(store, registry)
        record = await store.create(ARTICLE, {"title": "x"})

        with pytest.raises(StoreError, match="has no columns"):
            await store.write_columns(ARTICLE, record.id, {"deleted_at": 1})

    @pytest.mark.asyncio
    async def test_write_after_adding_columns(self, store, registry):
        await _create_tables(store, registry)
        await store.add_column("articles", "deleted_at", "TIMESTAMP")
        record = await store.create(ARTICLE, {"title": "x"})

        written = await store.write_columns(ARTICLE, record.id, {"deleted_at": 1234})

        assert written.deleted_at == 1234
        assert await store.write_columns(ARTICLE, 999, {"deleted_at": 1}) is None

    @pytest.mark.asyncio
    async def test_attribute_columns_not_writable(self, store, registry):
        await _create_tables(store, registry)
        record = await store.create(ARTICLE, {"title": "x"})

        with pytest.raises(StoreError, match="Raw writes not allowed"):
            await store.write_columns(ARTICLE, record.id, {"title": "y"})

    @pytest.mark.asyncio
    async def test_write_many_is_all_or_nothing(self, store, registry):
        await _create_tables(store, registry)
        await store.add_column("pages", "deleted_at", "TIMESTAMP")
        draft = await store.create(PAGE, {"title": "a"}, "doc-1", "draft")

        with pytest.raises(StoreError, match="not found"):
            await store.write_columns_many(PAGE, [draft.id, 999], {"deleted_at": 1})

        assert (await store.get(PAGE, draft.id)).deleted_at is None


class TestColumns:
    """Tests for has_column and add_column."""

    @pytest.mark.asyncio
    async def test_add_column(self, store, registry):
        await _create_tables(store, registry)

        assert await store.has_column("articles", "deleted_at") is False
        await store.add_column("articles", "deleted_at", "TIMESTAMP")
        assert await store.has_column("articles", "deleted_at") is True

    @pytest.mark.asyncio
    async def test_add_column_missing_table(self, store, registry):
        await store.initialize()

        with pytest.raises(StoreError, match="no such table"):
            await store.add_column("articles", "deleted_at", "TIMESTAMP")


class TestPopulate:
    """Tests for relation populate."""

    @pytest.mark.asyncio
    async def test_populate_to_one_and_to_many(self, store, registry):
        await _create_tables(store, registry)
        news = await store.create(CATEGORY, {"name": "News"})
        py = await store.create(TAG, {"name": "python"})
        db = await store.create(TAG, {"name": "databases"})
        article = await store.create(
            ARTICLE, {"title": "x", "category": news.id, "tags": [py.id, db.id]}
        )

        fetched = await store.get(ARTICLE, article.id, populate=PopulateSpec.parse("category,tags"))

        assert fetched.relations["category"].data["name"] == "News"
        assert [t.data["name"] for t in fetched.relations["tags"]] == ["python", "databases"]
        assert fetched.to_dict()["category"]["name"] == "News"

    @pytest.mark.asyncio
    async def test_populate_filter(self, store, registry):
        await _create_tables(store, registry)
        py = await store.create(TAG, {"name": "python"})
        db = await store.create(TAG, {"name": "databases"})
        article = await store.create(ARTICLE, {"title": "x", "tags": [py.id, db.id]})

        spec = PopulateSpec.parse({"tags": {"filters": {"name": {"$startsWith": "py"}}}})
        fetched = await store.get(ARTICLE, article.id, populate=spec)

        assert [t.id for t in fetched.relations["tags"]] == [py.id]

    @pytest.mark.asyncio
    async def test_populate_nested(self, store, registry):
        await _create_tables(store, registry)
        category = await store.create(CATEGORY, {"name": "News"})
        article = await store.create(ARTICLE, {"title": "x", "category": category.id})
        await store.update(CATEGORY, category.id, {"featured": article.id})

        spec = PopulateSpec.parse({"category": {"populate": {"featured": True}}})
        fetched = await store.get(ARTICLE, article.id, populate=spec)

        assert fetched.relations["category"].relations["featured"].id == article.id

    @pytest.mark.asyncio
    async def test_populate_non_relation(self, store, registry):
        await _create_tables(store, registry)
        article = await store.create(ARTICLE, {"title": "x"})

        with pytest.raises(FilterError):
            await store.get(ARTICLE, article.id, populate=PopulateSpec.parse("title"))
