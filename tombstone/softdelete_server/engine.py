"""
Soft-delete engine - startup orchestration.

Startup order:
    1. Check relation targets and freeze the resource type registry
    2. Initialize the record store
    3. Migrate tombstone columns onto eligible tables
    4. Build the interceptor and trash service from the migrated set
    5. Back-fill restore behavior defaults

Invariants:
    - Migration completes before the interceptor exists
    - One migrated set is shared by the interceptor and the trash service
    - A table that failed to migrate is logged and passes through unchanged

How to change safely:
    - Components that need the migrated set must be built after step 3
    - Keep start() idempotent
"""

from __future__ import annotations

import logging
from pathlib import Path

import json_log_formatter

from .config import EngineConfig
from .schema.capability import CapabilityFilter
from .schema.registry import ResourceTypeRegistry
from .softdelete.accessor import TombstoneAccessor
from .softdelete.actors import ActorResolver, resolve_actor
from .softdelete.events import EventHub, EventSink
from .softdelete.interceptor import SoftDeleteInterceptor
from .softdelete.migrator import MigrationReport, SchemaMigrator
from .softdelete.settings import BehaviorConfigStore
from .softdelete.trash import TrashService
from .softdelete.versions import VersionCoordinator
from .store.base import RecordStore
from .store.sqlite_store import SqliteRecordStore

logger = logging.getLogger(__name__)


def setup_logging(config: EngineConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Engine configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class SoftDeleteEngine:
    """Soft-delete engine orchestrator.

    Attributes:
        config: Engine configuration
        registry: Resource type registry
        store: Record store
        events: Event sink shared by interceptor and trash service
        report: Migration report of the last start()

    Example:
        >>> engine = SoftDeleteEngine(registry, store)
        >>> await engine.start()
        >>> await engine.interceptor.delete("api::article.article", 42)
        >>> listing = await engine.trash.list_tombstoned("api::article.article")
    """

    def __init__(
        self,
        registry: ResourceTypeRegistry,
        store: RecordStore,
        config: EngineConfig | None = None,
        events: EventSink | None = None,
        actor_resolver: ActorResolver = resolve_actor,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry
        self.store = store
        self.events = events or EventHub()
        self.actor_resolver = actor_resolver
        self.capability = CapabilityFilter(self.config.interception.eligible_prefix)
        self.report: MigrationReport | None = None

        self._interceptor: SoftDeleteInterceptor | None = None
        self._trash: TrashService | None = None

    @classmethod
    def from_config(
        cls,
        registry: ResourceTypeRegistry,
        config: EngineConfig | None = None,
        events: EventSink | None = None,
    ) -> SoftDeleteEngine:
        """Build an engine backed by a SQLite file from configuration."""
        config = config or EngineConfig.from_env()
        Path(config.storage.db_path).parent.mkdir(parents=True, exist_ok=True)
        store = SqliteRecordStore(
            db_path=config.storage.db_path,
            registry=registry,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
            cache_size_pages=config.storage.cache_size_pages,
        )
        return cls(registry, store, config=config, events=events)

    @property
    def started(self) -> bool:
        return self._interceptor is not None

    @property
    def interceptor(self) -> SoftDeleteInterceptor:
        if self._interceptor is None:
            raise RuntimeError("Engine not started")
        return self._interceptor

    @property
    def trash(self) -> TrashService:
        if self._trash is None:
            raise RuntimeError("Engine not started")
        return self._trash

    async def start(self, create_tables: bool = False) -> MigrationReport:
        """Migrate storage and build the interception components.

        Args:
            create_tables: Create missing resource type tables first

        Returns:
            The migration report

        Raises:
            ValueError: If a relation targets an unregistered resource type
        """
        if self.started and self.report is not None:
            logger.warning("Engine already started")
            return self.report

        logger.info("Starting soft-delete engine")
        self.config.log_config()

        errors = self.registry.validate_all()
        if errors:
            raise ValueError(f"Invalid resource types: {'; '.join(errors)}")
        if not self.registry.frozen:
            self.registry.freeze()

        await self.store.initialize()
        if create_tables:
            for resource_type in self.registry.resource_types():
                await self.store.create_table(resource_type.uid)

        migrator = SchemaMigrator(self.store, self.capability)
        self.report = await migrator.ensure_columns(self.registry.resource_types())
        migrated = self.report.migrated
        for uid, error in self.report.failed.items():
            logger.warning(f"{uid} will not be soft-deleted: {error.message}")

        accessor = TombstoneAccessor(self.store)
        coordinator = VersionCoordinator(
            self.store, accessor, self.config.interception.version_consistency
        )
        behavior = BehaviorConfigStore(self.store)
        await behavior.ensure_defaults()

        self._interceptor = SoftDeleteInterceptor(
            store=self.store,
            registry=self.registry,
            capability=self.capability,
            migrated=migrated,
            coordinator=coordinator,
            events=self.events,
            actor_resolver=self.actor_resolver,
        )
        self._trash = TrashService(
            store=self.store,
            registry=self.registry,
            capability=self.capability,
            migrated=migrated,
            coordinator=coordinator,
            behavior=behavior,
            events=self.events,
            actor_resolver=self.actor_resolver,
        )

        logger.info(
            "Soft-delete engine started",
            extra={"migrated": sorted(migrated), **self.report.summary()},
        )
        return self.report
