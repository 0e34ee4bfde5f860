"""
Shared resource types and helpers for the test suite.
"""

from __future__ import annotations

from typing import Any

from tombstone.softdelete_server.config import EngineConfig, InterceptionConfig
from tombstone.softdelete_server.engine import SoftDeleteEngine
from tombstone.softdelete_server.schema import (
    ResourceKind,
    ResourceTypeDef,
    ResourceTypeRegistry,
    attribute,
)
from tombstone.softdelete_server.softdelete.versions import VersionConsistency
from tombstone.softdelete_server.store import RecordStore

ARTICLE = "api::article.article"
CATEGORY = "api::category.category"
TAG = "api::tag.tag"
PAGE = "api::page.page"
HOMEPAGE = "api::homepage.homepage"
USER = "plugin::users-permissions.user"


def build_registry() -> ResourceTypeRegistry:
    """Registry with collection, versioned, single and plugin types."""
    registry = ResourceTypeRegistry()
    registry.register(ResourceTypeDef(
        uid=USER,
        table="up_users",
        display_name="User",
        attributes=(attribute("username", "str", required=True),),
    ))
    registry.register(ResourceTypeDef(
        uid=CATEGORY,
        table="categories",
        display_name="Category",
        plural_name="Categories",
        attributes=(
            attribute("name", "str", required=True),
            attribute("featured", "relation", target=ARTICLE),
        ),
    ))
    registry.register(ResourceTypeDef(
        uid=TAG,
        table="tags",
        display_name="Tag",
        plural_name="Tags",
        attributes=(attribute("name", "str", required=True),),
    ))
    registry.register(ResourceTypeDef(
        uid=ARTICLE,
        table="articles",
        display_name="Article",
        plural_name="Articles",
        attributes=(
            attribute("title", "str", required=True),
            attribute("body", "text"),
            attribute("category", "relation", target=CATEGORY),
            attribute("tags", "relation", target=TAG, cardinality="to-many"),
            attribute("author", "relation", target=USER),
        ),
    ))
    registry.register(ResourceTypeDef(
        uid=PAGE,
        table="pages",
        display_name="Page",
        plural_name="Pages",
        supports_versioning=True,
        attributes=(attribute("title", "str", required=True),),
    ))
    registry.register(ResourceTypeDef(
        uid=HOMEPAGE,
        table="homepages",
        display_name="Homepage",
        kind=ResourceKind.SINGLE,
        attributes=(attribute("headline", "str"),),
    ))
    return registry


class RecordingSink:
    """Event sink that keeps every emitted event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def actions(self) -> list[str]:
        return [payload["action"] for _, payload in self.events]


async def start_engine(
    store: RecordStore,
    registry: ResourceTypeRegistry,
    events: RecordingSink | None = None,
    consistency: VersionConsistency = VersionConsistency.BEST_EFFORT,
) -> SoftDeleteEngine:
    """Create tables, migrate and return a started engine."""
    config = EngineConfig(
        interception=InterceptionConfig(version_consistency=consistency),
    )
    engine = SoftDeleteEngine(registry, store, config=config, events=events)
    await engine.start(create_tables=True)
    return engine


async def create_page_document(store: RecordStore, document_key: str = "doc-1") -> None:
    """A versioned document with draft id=10 and published id=11."""
    await store.create(PAGE, {"title": "About"}, document_key, "draft", record_id=10)
    await store.create(PAGE, {"title": "About"}, document_key, "published", record_id=11)
