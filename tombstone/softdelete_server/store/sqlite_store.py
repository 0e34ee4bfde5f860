"""
SQLite record store.

This module manages the SQLite database holding one table per resource
type plus a settings table:

    <resource table>:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - document_key TEXT (shared by draft/published versions)
        - version_label TEXT ("draft" | "published")
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)
        - one column per attribute
        - deleted_at TIMESTAMP, deleted_by_actor_id INTEGER,
          deleted_by_actor_kind VARCHAR(255)  (added by the migrator)

    engine_settings:
        - key TEXT PRIMARY KEY
        - value_json TEXT
        - updated_at INTEGER (Unix ms)

Invariants:
    - Multi-statement writes run in one BEGIN IMMEDIATE transaction
    - Raw column writes are limited to tombstone columns and version_label
    - Column lists are cached per table and refreshed after add_column

How to change safely:
    - Keep new columns nullable so existing rows stay valid
    - Use transactions for all write operations
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..schema.registry import ResourceTypeRegistry
from ..schema.types import AttributeDef, AttributeKind, ResourceTypeDef
from .base import (
    Record,
    RecordStore,
    RecordValidationError,
    StoreError,
    TombstoneColumns,
    UnknownResourceTypeError,
)
from .filters import Filter, FilterError, compile_filter
from .populate import PopulateSpec

logger = logging.getLogger(__name__)

RAW_WRITABLE_COLUMNS = frozenset(TombstoneColumns.ALL) | {"version_label"}


def _now_ms() -> int:
    return int(time.time() * 1000)


class SqliteRecordStore(RecordStore):
    """SQLite-backed record store.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = SqliteRecordStore("/var/lib/softdelete/app.db", registry)
        >>> await store.initialize()
        >>> await store.create_table("api::article.article")
        >>> record = await store.create("api::article.article", {"title": "Hello"})
    """

    supports_transactions = True

    def __init__(
        self,
        db_path: str,
        registry: ResourceTypeRegistry,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: SQLite database file
            registry: Resource types served by this store
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.db_path = Path(db_path)
        self.registry = registry
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._columns: dict[str, frozenset[str]] = {}
        self._lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    def _resource_type(self, uid: str) -> ResourceTypeDef:
        resource_type = self.registry.get(uid)
        if resource_type is None:
            raise UnknownResourceTypeError(f"Unknown resource type: {uid}")
        return resource_type

    def _table_columns(self, conn: sqlite3.Connection, table: str) -> frozenset[str]:
        cached = self._columns.get(table)
        if cached is not None:
            return cached
        rows = conn.execute(f'PRAGMA table_info("{table}")').fetchall()
        columns = frozenset(row["name"] for row in rows)
        if columns:
            self._columns[table] = columns
        return columns

    async def initialize(self) -> None:
        """Create the settings table."""
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS engine_settings (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        updated_at INTEGER NOT NULL
                    )
                """)
        logger.info(f"Initialized record store: {self.db_path}")

    async def create_table(self, uid: str) -> None:
        resource_type = self._resource_type(uid)
        attribute_columns = "".join(
            f',\n                "{a.name}" {a.column_type}' for a in resource_type.attributes
        )
        async with self._lock:
            with self._get_connection() as conn:
                conn.executescript(f"""
                    CREATE TABLE IF NOT EXISTS "{resource_type.table}" (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        document_key TEXT,
                        version_label TEXT,
                        created_at INTEGER NOT NULL,
                        updated_at INTEGER NOT NULL{attribute_columns}
                    );

                    CREATE INDEX IF NOT EXISTS "idx_{resource_type.table}_document"
                        ON "{resource_type.table}"(document_key);
                """)
                self._columns.pop(resource_type.table, None)
        logger.debug(f"Created table {resource_type.table} for {uid}")

    async def create(
        self,
        uid: str,
        data: dict[str, Any],
        document_key: str | None = None,
        version_label: str | None = None,
        record_id: int | None = None,
    ) -> Record:
        resource_type = self._resource_type(uid)
        is_valid, errors = resource_type.validate_data(data)
        if not is_valid:
            raise RecordValidationError(uid, errors)

        now = _now_ms()
        values: dict[str, Any] = {} if record_id is None else {"id": record_id}
        values.update({
            "document_key": document_key,
            "version_label": version_label,
            "created_at": now,
            "updated_at": now,
        })
        values.update(self._encode_data(resource_type, data))

        columns = ", ".join(f'"{c}"' for c in values)
        placeholders = ", ".join("?" for _ in values)

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    f'INSERT INTO "{resource_type.table}" ({columns}) VALUES ({placeholders})',
                    list(values.values()),
                )
                record_id = cursor.lastrowid
                row = conn.execute(
                    f'SELECT * FROM "{resource_type.table}" WHERE id = ?', (record_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug("Created record", extra={"uid": uid, "record_id": record_id})
        return self._row_to_record(resource_type, row)

    async def get(
        self,
        uid: str,
        record_id: int,
        filters: Filter | None = None,
        populate: PopulateSpec | None = None,
    ) -> Record | None:
        resource_type = self._resource_type(uid)
        with self._get_connection() as conn:
            where, params = compile_filter(
                filters, self._table_columns(conn, resource_type.table)
            )
            row = conn.execute(
                f'SELECT * FROM "{resource_type.table}" WHERE id = ? AND ({where})',
                [record_id, *params],
            ).fetchone()
            if not row:
                return None

            record = self._row_to_record(resource_type, row)
            if populate:
                self._populate(conn, resource_type, [record], populate)
            return record

    async def find_many(
        self,
        uid: str,
        filters: Filter | None = None,
        populate: PopulateSpec | None = None,
        sort: list[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        resource_type = self._resource_type(uid)
        with self._get_connection() as conn:
            columns = self._table_columns(conn, resource_type.table)
            where, params = compile_filter(filters, columns)

            query = f'SELECT * FROM "{resource_type.table}" WHERE {where}'
            query += f" ORDER BY {self._order_by(sort, columns)}"
            if limit is not None or offset:
                query += " LIMIT ? OFFSET ?"
                params.extend([limit if limit is not None else -1, offset])

            records = [
                self._row_to_record(resource_type, row)
                for row in conn.execute(query, params).fetchall()
            ]
            if populate and records:
                self._populate(conn, resource_type, records, populate)
            return records

    async def count(self, uid: str, filters: Filter | None = None) -> int:
        resource_type = self._resource_type(uid)
        with self._get_connection() as conn:
            where, params = compile_filter(
                filters, self._table_columns(conn, resource_type.table)
            )
            cursor = conn.execute(
                f'SELECT COUNT(*) FROM "{resource_type.table}" WHERE {where}', params
            )
            return cursor.fetchone()[0]

    async def update(self, uid: str, record_id: int, data: dict[str, Any]) -> Record | None:
        """Update a record's attributes.

        Uses PATCH semantics - only the given attributes change.
        """
        resource_type = self._resource_type(uid)
        is_valid, errors = resource_type.validate_data(data, partial=True)
        if not is_valid:
            raise RecordValidationError(uid, errors)

        values = self._encode_data(resource_type, data)
        values["updated_at"] = _now_ms()
        return self._write(resource_type, [record_id], values, require_all=False)[0]

    async def delete(self, uid: str, record_id: int) -> Record | None:
        resource_type = self._resource_type(uid)
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    f'SELECT * FROM "{resource_type.table}" WHERE id = ?', (record_id,)
                ).fetchone()
                if not row:
                    conn.execute("ROLLBACK")
                    return None

                conn.execute(f'DELETE FROM "{resource_type.table}" WHERE id = ?', (record_id,))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug("Deleted record", extra={"uid": uid, "record_id": record_id})
        return self._row_to_record(resource_type, row)

    async def delete_where(self, uid: str, filters: Filter) -> int:
        resource_type = self._resource_type(uid)
        if not filters:
            raise StoreError(f"Refusing to delete every row of {uid} without a filter")

        with self._get_connection() as conn:
            where, params = compile_filter(
                filters, self._table_columns(conn, resource_type.table)
            )
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    f'DELETE FROM "{resource_type.table}" WHERE {where}', params
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
            return cursor.rowcount

    async def has_column(self, table: str, column: str) -> bool:
        with self._get_connection() as conn:
            self._columns.pop(table, None)
            return column in self._table_columns(conn, table)

    async def add_column(self, table: str, column: str, column_type: str) -> None:
        async with self._lock:
            with self._get_connection() as conn:
                if not self._table_columns(conn, table):
                    raise StoreError(f"no such table: {table}")
                conn.execute(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {column_type} NULL')
                self._columns.pop(table, None)
        logger.debug(f"Added column {table}.{column} ({column_type})")

    async def write_columns(
        self, uid: str, record_id: int, values: dict[str, Any]
    ) -> Record | None:
        resource_type = self._resource_type(uid)
        self._check_raw_columns(values)
        values = {**values, "updated_at": _now_ms()}
        return self._write(resource_type, [record_id], values, require_all=False)[0]

    async def write_columns_many(
        self, uid: str, record_ids: list[int], values: dict[str, Any]
    ) -> list[Record]:
        resource_type = self._resource_type(uid)
        self._check_raw_columns(values)
        values = {**values, "updated_at": _now_ms()}
        return [r for r in self._write(resource_type, record_ids, values, require_all=True) if r]

    async def get_setting(self, key: str) -> Any | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value_json FROM engine_settings WHERE key = ?", (key,)
            ).fetchone()
            return json.loads(row["value_json"]) if row else None

    async def put_setting(self, key: str, value: Any) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO engine_settings (key, value_json, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), _now_ms()),
            )

    def _check_raw_columns(self, values: dict[str, Any]) -> None:
        disallowed = set(values) - RAW_WRITABLE_COLUMNS
        if disallowed:
            raise StoreError(f"Raw writes not allowed for columns: {sorted(disallowed)}")

    def _write(
        self,
        resource_type: ResourceTypeDef,
        record_ids: list[int],
        values: dict[str, Any],
        require_all: bool,
    ) -> list[Record | None]:
        """Apply the same column values to rows in one transaction.

        Args:
            resource_type: Resource type of the rows
            record_ids: Rows to update
            values: Column -> value
            require_all: Roll back and raise if any row is missing

        Returns:
            Post-update records in record_ids order (None where missing)
        """
        table = resource_type.table
        with self._get_connection() as conn:
            columns = self._table_columns(conn, table)
            missing_columns = set(values) - columns
            if missing_columns:
                raise StoreError(f"Table {table} has no columns {sorted(missing_columns)}")

            assignments = ", ".join(f'"{c}" = ?' for c in values)
            results: list[Record | None] = []

            conn.execute("BEGIN IMMEDIATE")
            try:
                for record_id in record_ids:
                    cursor = conn.execute(
                        f'UPDATE "{table}" SET {assignments} WHERE id = ?',
                        [*values.values(), record_id],
                    )
                    if cursor.rowcount == 0:
                        if require_all:
                            raise StoreError(f"Record {resource_type.uid}:{record_id} not found")
                        results.append(None)
                        continue
                    row = conn.execute(
                        f'SELECT * FROM "{table}" WHERE id = ?', (record_id,)
                    ).fetchone()
                    results.append(self._row_to_record(resource_type, row))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return results

    def _order_by(self, sort: list[str] | None, columns: frozenset[str]) -> str:
        if not sort:
            return "id ASC"
        parts = []
        for item in sort:
            column, _, direction = item.partition(":")
            direction = (direction or "asc").upper()
            if column not in columns:
                raise FilterError(f"Unknown sort column: {column}")
            if direction not in ("ASC", "DESC"):
                raise FilterError(f"Invalid sort direction: {direction}")
            parts.append(f'"{column}" {direction}')
        parts.append("id ASC")
        return ", ".join(parts)

    def _encode_data(self, resource_type: ResourceTypeDef, data: dict[str, Any]) -> dict[str, Any]:
        encoded = {}
        for name, value in data.items():
            attr = resource_type.get_attribute(name)
            encoded[name] = _encode_value(attr, value) if attr else value
        return encoded

    def _row_to_record(self, resource_type: ResourceTypeDef, row: sqlite3.Row) -> Record:
        keys = set(row.keys())
        data = {
            a.name: _decode_value(a, row[a.name])
            for a in resource_type.attributes
            if a.name in keys
        }
        tombstone = {c: row[c] if c in keys else None for c in TombstoneColumns.ALL}
        return Record(
            uid=resource_type.uid,
            id=row["id"],
            data=data,
            document_key=row["document_key"],
            version_label=row["version_label"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=tombstone[TombstoneColumns.DELETED_AT],
            deleted_by_actor_id=tombstone[TombstoneColumns.DELETED_BY_ACTOR_ID],
            deleted_by_actor_kind=tombstone[TombstoneColumns.DELETED_BY_ACTOR_KIND],
        )

    def _populate(
        self,
        conn: sqlite3.Connection,
        resource_type: ResourceTypeDef,
        records: list[Record],
        spec: PopulateSpec,
    ) -> None:
        """Attach related records for every relation declared in spec.

        Recurses only into nested specs the caller declared.
        """
        for name, node in spec.items():
            attr = resource_type.get_attribute(name)
            if attr is None or not attr.is_relation:
                raise FilterError(f"'{name}' is not a relation of {resource_type.uid}")
            target = self._resource_type(attr.target)

            wanted: set[int] = set()
            for record in records:
                raw = record.data.get(name)
                if isinstance(raw, list):
                    wanted.update(raw)
                elif raw is not None:
                    wanted.add(raw)

            related: dict[int, Record] = {}
            if wanted:
                where, params = compile_filter(
                    node.filters, self._table_columns(conn, target.table)
                )
                id_list = sorted(wanted)
                placeholders = ", ".join("?" for _ in id_list)
                rows = conn.execute(
                    f'SELECT * FROM "{target.table}" WHERE id IN ({placeholders}) AND ({where})',
                    [*id_list, *params],
                ).fetchall()
                fetched = [self._row_to_record(target, row) for row in rows]
                if node.populate and fetched:
                    self._populate(conn, target, fetched, node.populate)
                related = {r.id: r for r in fetched}

            for record in records:
                raw = record.data.get(name)
                if attr.is_to_many:
                    record.relations[name] = [related[i] for i in (raw or []) if i in related]
                else:
                    record.relations[name] = related.get(raw) if raw is not None else None


def _encode_value(attr: AttributeDef, value: Any) -> Any:
    if value is None:
        return None
    if attr.is_to_many or attr.kind == AttributeKind.JSON:
        return json.dumps(value)
    if attr.kind == AttributeKind.BOOLEAN:
        return int(value)
    return value


def _decode_value(attr: AttributeDef, value: Any) -> Any:
    if value is None:
        return None
    if attr.is_to_many or attr.kind == AttributeKind.JSON:
        return json.loads(value)
    if attr.kind == AttributeKind.BOOLEAN:
        return bool(value)
    return value


