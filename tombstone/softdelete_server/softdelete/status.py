"""
Status resolver: visibility filters for read, list and count calls.

A requested status turns into a tombstone clause that is ANDed with the
caller's own filter:

    published -> existing AND deleted_at IS NULL
    deleted   -> existing AND deleted_at IS NOT NULL
    all       -> existing

The same clause is pushed into every declared relation fetch whose target
participates in soft delete, so a published read never leaks tombstoned
related records.

Invariants:
    - Unknown or absent status values mean "published"
    - Non-participating types get their query back unchanged
    - Only relations the caller declared are visited; depth is never
      inferred, so cyclic relation graphs terminate
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from ..schema.registry import ResourceTypeRegistry
from ..schema.types import ResourceTypeDef
from ..store.base import TombstoneColumns
from ..store.filters import Filter, and_filters
from ..store.populate import PopulateNode, PopulateSpec

logger = logging.getLogger(__name__)


class Status(Enum):
    """Requested read visibility."""

    PUBLISHED = "published"
    DELETED = "deleted"
    ALL = "all"

    @classmethod
    def parse(cls, value: Status | str | None) -> Status:
        """Parse a requested status, defaulting to PUBLISHED.

        Example:
            >>> Status.parse("deleted")
            <Status.DELETED: 'deleted'>
            >>> Status.parse("archived")
            <Status.PUBLISHED: 'published'>
        """
        if isinstance(value, Status):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                logger.debug(f"Unrecognized status {value!r}, using published")
        return cls.PUBLISHED


def tombstone_clause(status: Status) -> Filter:
    """Filter selecting the rows visible under a status."""
    if status is Status.PUBLISHED:
        return {TombstoneColumns.DELETED_AT: {"$null": True}}
    if status is Status.DELETED:
        return {TombstoneColumns.DELETED_AT: {"$notNull": True}}
    return {}


@dataclass(frozen=True)
class ResolvedQuery:
    """Filter and populate tree ready for the store.

    Attributes:
        filters: Combined filter
        populate: Rewritten populate tree, None if nothing is populated
        status: Status that was applied
    """

    filters: Filter
    populate: PopulateSpec | None
    status: Status


class StatusResolver:
    """Composes status-aware filters and populate trees.

    Args:
        registry: Resource types, used to find relation targets
        participates: Predicate telling whether a uid is eligible and migrated
    """

    def __init__(
        self,
        registry: ResourceTypeRegistry,
        participates: Callable[[str], bool],
    ) -> None:
        self.registry = registry
        self.participates = participates

    def resolve(
        self,
        uid: str,
        requested_status: Status | str | None = None,
        filters: Filter | None = None,
        populate: Any = None,
    ) -> ResolvedQuery:
        status = Status.parse(requested_status)
        spec = PopulateSpec.parse(populate)

        if not self.participates(uid):
            return ResolvedQuery(filters=dict(filters or {}), populate=spec, status=status)

        resolved_filters = and_filters(filters, tombstone_clause(status))
        resource_type = self.registry.get(uid)
        if spec is not None:
            spec = self._visit_spec(resource_type, spec, status)
        return ResolvedQuery(filters=resolved_filters, populate=spec, status=status)

    def _visit_spec(
        self,
        owner: ResourceTypeDef | None,
        spec: PopulateSpec,
        status: Status,
    ) -> PopulateSpec:
        return PopulateSpec({
            name: self._visit_node(owner, name, node, status)
            for name, node in spec.items()
        })

    def _visit_node(
        self,
        owner: ResourceTypeDef | None,
        name: str,
        node: PopulateNode,
        status: Status,
    ) -> PopulateNode:
        target = self._relation_target(owner, name)

        if target is not None and self.participates(target.uid):
            node = node.with_filters(and_filters(node.filters, tombstone_clause(status)))

        if node.populate is not None:
            node = node.with_populate(self._visit_spec(target, node.populate, status))
        return node

    def _relation_target(self, owner: ResourceTypeDef | None, name: str) -> ResourceTypeDef | None:
        if owner is None:
            return None
        attr = owner.get_attribute(name)
        if attr is None or not attr.is_relation or attr.target is None:
            return None
        return self.registry.get(attr.target)
