"""
Resource type registry.

The ResourceTypeRegistry is the central authority for all resource types.
It provides:
- Registration of resource types during startup discovery
- Lookup by uid
- Relation consistency checks before the engine starts
- Freeze mechanism to prevent runtime modifications

Invariants:
    - Registry is mutable during startup, frozen before the engine starts
    - Once frozen, no new types can be registered
    - uid and table must be unique

How to change safely:
    - Register all types before calling freeze()
    - A new qualifying resource type requires a process restart
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator

from .types import ResourceTypeDef

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a duplicate uid or table."""
    pass


class ResourceTypeRegistry:
    """Registry for all resource type definitions.

    Registration is guarded by a lock; lookups after freeze are lock-free.

    Example:
        >>> registry = ResourceTypeRegistry()
        >>> registry.register(article)
        >>> registry.freeze()
        >>> registry.get("api::article.article").table
        'articles'
    """

    def __init__(self) -> None:
        self._types: dict[str, ResourceTypeDef] = {}
        self._tables: dict[str, str] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, resource_type: ResourceTypeDef) -> None:
        """Register a resource type definition.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If uid or table is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register resource type '{resource_type.uid}': registry is frozen"
                )
            if resource_type.uid in self._types:
                raise DuplicateRegistrationError(
                    f"uid '{resource_type.uid}' already registered"
                )
            if resource_type.table in self._tables:
                raise DuplicateRegistrationError(
                    f"Table '{resource_type.table}' already registered for "
                    f"'{self._tables[resource_type.table]}'"
                )

            self._types[resource_type.uid] = resource_type
            self._tables[resource_type.table] = resource_type.uid
            logger.debug(f"Registered resource type: {resource_type.uid} (table={resource_type.table})")

    def get(self, uid: str) -> ResourceTypeDef | None:
        return self._types.get(uid)

    def __contains__(self, uid: object) -> bool:
        return uid in self._types

    def __len__(self) -> int:
        return len(self._types)

    def resource_types(self) -> Iterator[ResourceTypeDef]:
        yield from self._types.values()

    def freeze(self) -> None:
        """Freeze the registry.

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")
            self._frozen = True
        logger.info(f"Resource type registry frozen with {len(self._types)} types")

    def validate_all(self) -> list[str]:
        """Check that every relation targets a registered type.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for resource_type in self._types.values():
            for relation in resource_type.relations():
                if relation.target not in self._types:
                    errors.append(
                        f"Relation '{relation.name}' in '{resource_type.uid}' "
                        f"references unknown type {relation.target}"
                    )
        return errors

    @classmethod
    def from_dict(cls, data: dict) -> ResourceTypeRegistry:
        """Create an unfrozen registry from {"resource_types": [...]}."""
        registry = cls()
        for type_data in data.get("resource_types", []):
            registry.register(ResourceTypeDef.from_dict(type_data))
        return registry
