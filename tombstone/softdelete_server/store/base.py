"""
Base interface and types for record stores.

This module defines the RecordStore interface the soft-delete engine
consumes, along with the Record type and store errors.

Two write paths exist:
    - create/update: validated against the resource type's attributes;
      tombstone columns are not attributes and are rejected there
    - write_columns/write_columns_many: raw column writes that bypass
      attribute validation, used only for tombstone fields

Invariants:
    - Records are identified by (uid, id)
    - Versioned rows share a document_key and carry a version_label
    - Tombstone columns may be absent until the migrator has run

How to change safely:
    - Interface changes require updating every implementation
    - Keep raw column writes restricted to known columns
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .filters import Filter
from .populate import PopulateSpec


class StoreError(Exception):
    """Base exception for store operations."""
    pass


class UnknownResourceTypeError(StoreError):
    """Resource type uid is not registered with the store."""
    pass


class RecordValidationError(StoreError):
    """Write payload failed attribute validation."""

    def __init__(self, uid: str, errors: list[str]) -> None:
        self.uid = uid
        self.errors = errors
        super().__init__(f"Invalid data for {uid}: {'; '.join(errors)}")


class VersionLabel(Enum):
    """Version of a row within a document group."""

    DRAFT = "draft"
    PUBLISHED = "published"


class TombstoneColumns:
    """Column names and SQL types of the tombstone fields."""

    DELETED_AT = "deleted_at"
    DELETED_BY_ACTOR_ID = "deleted_by_actor_id"
    DELETED_BY_ACTOR_KIND = "deleted_by_actor_kind"

    ALL = (DELETED_AT, DELETED_BY_ACTOR_ID, DELETED_BY_ACTOR_KIND)

    # nullable timestamp, nullable integer, nullable string
    DEFINITIONS = (
        (DELETED_AT, "TIMESTAMP"),
        (DELETED_BY_ACTOR_ID, "INTEGER"),
        (DELETED_BY_ACTOR_KIND, "VARCHAR(255)"),
    )


@dataclass
class Record:
    """A stored record.

    Attributes:
        uid: Resource type uid
        id: Row identifier
        data: Attribute values (relations hold raw target ids)
        document_key: Identity shared by the versions of one document
        version_label: "draft" or "published" for versioned types
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
        deleted_at: Tombstone timestamp (Unix ms), None when live
        deleted_by_actor_id: Who tombstoned the record
        deleted_by_actor_kind: Kind of actor who tombstoned the record
        relations: Populated related records, keyed by relation name
    """

    uid: str
    id: int
    data: dict[str, Any] = field(default_factory=dict)
    document_key: str | None = None
    version_label: str | None = None
    created_at: int = 0
    updated_at: int = 0
    deleted_at: int | None = None
    deleted_by_actor_id: int | None = None
    deleted_by_actor_kind: str | None = None
    relations: dict[str, Record | list[Record] | None] = field(default_factory=dict)

    @property
    def is_tombstoned(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_draft(self) -> bool:
        return self.version_label == VersionLabel.DRAFT.value

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a dictionary; populated relations replace raw ids."""
        result: dict[str, Any] = {"id": self.id}
        if self.document_key is not None:
            result["document_key"] = self.document_key
        if self.version_label is not None:
            result["version_label"] = self.version_label
        result.update(self.data)
        for name, related in self.relations.items():
            if isinstance(related, list):
                result[name] = [r.to_dict() for r in related]
            else:
                result[name] = related.to_dict() if related is not None else None
        result["created_at"] = self.created_at
        result["updated_at"] = self.updated_at
        result[TombstoneColumns.DELETED_AT] = self.deleted_at
        result[TombstoneColumns.DELETED_BY_ACTOR_ID] = self.deleted_by_actor_id
        result[TombstoneColumns.DELETED_BY_ACTOR_KIND] = self.deleted_by_actor_kind
        return result


class RecordStore(ABC):
    """Store executor consumed by the soft-delete engine.

    Attributes:
        supports_transactions: Whether write_columns_many commits all rows
            atomically
    """

    supports_transactions: bool = False

    async def initialize(self) -> None:
        """Prepare backing storage. Optional; default does nothing."""
        return None

    @abstractmethod
    async def create_table(self, uid: str) -> None:
        """Create the table of a resource type if it does not exist."""

    @abstractmethod
    async def create(
        self,
        uid: str,
        data: dict[str, Any],
        document_key: str | None = None,
        version_label: str | None = None,
        record_id: int | None = None,
    ) -> Record:
        """Insert a validated record (id assigned unless given)."""

    @abstractmethod
    async def get(
        self,
        uid: str,
        record_id: int,
        filters: Filter | None = None,
        populate: PopulateSpec | None = None,
    ) -> Record | None:
        """Fetch one record by id, subject to an optional filter."""

    @abstractmethod
    async def find_many(
        self,
        uid: str,
        filters: Filter | None = None,
        populate: PopulateSpec | None = None,
        sort: list[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """Fetch records matching a filter."""

    @abstractmethod
    async def count(self, uid: str, filters: Filter | None = None) -> int:
        """Count records matching a filter."""

    @abstractmethod
    async def update(self, uid: str, record_id: int, data: dict[str, Any]) -> Record | None:
        """Patch a record's attributes (validated)."""

    @abstractmethod
    async def delete(self, uid: str, record_id: int) -> Record | None:
        """Physically remove a row; returns its last state."""

    @abstractmethod
    async def delete_where(self, uid: str, filters: Filter) -> int:
        """Physically remove every matching row; returns the count."""

    @abstractmethod
    async def has_column(self, table: str, column: str) -> bool:
        """Whether a table has a column."""

    @abstractmethod
    async def add_column(self, table: str, column: str, column_type: str) -> None:
        """Add a nullable column to a table."""

    @abstractmethod
    async def write_columns(
        self, uid: str, record_id: int, values: dict[str, Any]
    ) -> Record | None:
        """Write raw column values to one row, bypassing attribute validation."""

    @abstractmethod
    async def write_columns_many(
        self, uid: str, record_ids: list[int], values: dict[str, Any]
    ) -> list[Record]:
        """Write raw column values to several rows in one transaction.

        Raises:
            StoreError: If the store cannot write the rows atomically
        """

    @abstractmethod
    async def get_setting(self, key: str) -> Any | None:
        """Read a process-wide setting value."""

    @abstractmethod
    async def put_setting(self, key: str, value: Any) -> None:
        """Persist a process-wide setting value."""
