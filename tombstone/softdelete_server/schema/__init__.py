"""
Schema module for the soft-delete engine.

This module provides the resource type model discovered at startup:
- Type definitions (ResourceTypeDef, AttributeDef, AttributeKind)
- Resource type registry, frozen before the engine starts
- Capability filter deciding which types participate in soft delete

Invariants:
    - Resource types are immutable after startup discovery
    - Eligibility is decided by uid convention and cached for the process
"""

from .capability import DEFAULT_ELIGIBLE_PREFIX, CapabilityFilter
from .registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    ResourceTypeRegistry,
)
from .types import (
    AttributeDef,
    AttributeKind,
    RelationCardinality,
    ResourceKind,
    ResourceTypeDef,
    attribute,
)

__all__ = [
    # Types
    "AttributeDef",
    "AttributeKind",
    "RelationCardinality",
    "ResourceKind",
    "ResourceTypeDef",
    "attribute",
    # Registry
    "ResourceTypeRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    # Capability
    "CapabilityFilter",
    "DEFAULT_ELIGIBLE_PREFIX",
]
