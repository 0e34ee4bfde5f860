"""
Error types for the soft-delete engine.

This module defines the exceptions raised by the engine:
- SoftDeleteError: Base exception
- MigrationError: A table could not be migrated (isolated, non-fatal)
- UnsupportedResourceType: Type does not participate in soft delete
- NotFound: No such record or document
- PartialVersionFailure: Only some sibling versions were written
- StorageWriteFailure: A tombstone, restore or purge write failed

Authorization failures are never raised here; the surrounding API layer
performs its own capability check before calling restore or purge.

Invariants:
    - All errors inherit from SoftDeleteError
    - Errors carry a stable code and structured details
"""

from __future__ import annotations

from typing import Any


class SoftDeleteError(Exception):
    """Base exception for all soft-delete engine errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SOFT_DELETE_ERROR"
        self.details = details or {}


class MigrationError(SoftDeleteError):
    """Tombstone columns could not be added to a table.

    Never raised out of the migrator; it is recorded in the
    MigrationReport so startup can continue.
    """

    def __init__(self, uid: str, table: str, cause: str) -> None:
        super().__init__(
            f"Failed to migrate {uid} (table {table}): {cause}",
            code="MIGRATION_ERROR",
            details={"uid": uid, "table": table, "cause": cause},
        )
        self.uid = uid
        self.table = table


class UnsupportedResourceType(SoftDeleteError):
    """Resource type does not participate in soft delete."""

    def __init__(self, uid: str) -> None:
        super().__init__(
            f"Resource type not supported: {uid}",
            code="UNSUPPORTED_RESOURCE_TYPE",
            details={"uid": uid},
        )
        self.uid = uid


class NotFound(SoftDeleteError):
    """No record or document matches the target."""

    def __init__(self, uid: str, target: int | str, message: str | None = None) -> None:
        super().__init__(
            message or f"No entries found for {uid} target {target!r}",
            code="NOT_FOUND",
            details={"uid": uid, "target": target},
        )
        self.uid = uid
        self.target = target


class PartialVersionFailure(SoftDeleteError):
    """Some sibling versions of a document were written, others failed.

    Multi-version writes are best-effort: this error is attached to the
    result and logged rather than raised.

    Attributes:
        succeeded: IDs of rows that were written
        failed: Mapping of row ID to error message
    """

    def __init__(
        self,
        uid: str,
        document_key: str,
        succeeded: list[int],
        failed: dict[int, str],
    ) -> None:
        super().__init__(
            f"{len(failed)} of {len(succeeded) + len(failed)} version(s) of "
            f"{uid} document {document_key!r} failed to update",
            code="PARTIAL_VERSION_FAILURE",
            details={
                "uid": uid,
                "document_key": document_key,
                "succeeded": succeeded,
                "failed": failed,
            },
        )
        self.document_key = document_key
        self.succeeded = succeeded
        self.failed = failed


class StorageWriteFailure(SoftDeleteError):
    """A tombstone, restore or purge write failed."""

    def __init__(self, operation: str, uid: str, cause: Exception | str) -> None:
        super().__init__(
            f"{operation} failed for {uid}: {cause}",
            code="STORAGE_WRITE_FAILURE",
            details={"operation": operation, "uid": uid, "cause": str(cause)},
        )
        self.operation = operation
        self.uid = uid
