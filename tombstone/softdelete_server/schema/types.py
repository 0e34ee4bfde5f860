"""
Core type definitions for resource types.

This module defines the types discovered once at startup and then frozen:
- AttributeDef: Individual attribute of a resource type
- ResourceTypeDef: Definition of a resource type backed by one table

Invariants:
    - uid is the canonical identifier (e.g. "api::article.article")
    - table names and attribute names are plain SQL identifiers
    - Relation attributes always name their target uid
    - Definitions are immutable (frozen dataclasses)

How to change safely:
    - Add attributes; never rename a table that already holds tombstones
    - Keep from_dict in step with the CLI type file format

Example:
    >>> Article = ResourceTypeDef(
    ...     uid="api::article.article",
    ...     table="articles",
    ...     attributes=(
    ...         attribute("title", "str", required=True),
    ...         attribute("category", "relation", target="api::category.category"),
    ...     ),
    ... )
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class AttributeKind(Enum):
    """Supported attribute kinds.

    These map to SQLite column affinities and validation rules.
    """

    STRING = "str"
    TEXT = "text"
    INTEGER = "int"
    FLOAT = "float"
    BOOLEAN = "bool"
    TIMESTAMP = "timestamp"  # Unix milliseconds
    JSON = "json"
    RELATION = "relation"

    @classmethod
    def from_str(cls, value: str) -> AttributeKind:
        """Convert string representation to AttributeKind.

        Raises:
            ValueError: If value is not a valid attribute kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid attribute kind '{value}'. Valid kinds: {valid}")

    @property
    def column_type(self) -> str:
        """SQLite column type for this kind."""
        return {
            AttributeKind.STRING: "TEXT",
            AttributeKind.TEXT: "TEXT",
            AttributeKind.INTEGER: "INTEGER",
            AttributeKind.FLOAT: "REAL",
            AttributeKind.BOOLEAN: "INTEGER",
            AttributeKind.TIMESTAMP: "INTEGER",
            AttributeKind.JSON: "TEXT",
            AttributeKind.RELATION: "INTEGER",
        }[self]


class RelationCardinality(Enum):
    """How many target records a relation attribute points to."""

    TO_ONE = "to-one"  # column holds one target id
    TO_MANY = "to-many"  # column holds a JSON list of target ids


class ResourceKind(Enum):
    """Collection types hold many records; single types hold one live record."""

    COLLECTION = "collection"
    SINGLE = "single"


@dataclass(frozen=True)
class AttributeDef:
    """Definition of a single attribute of a resource type.

    Attributes:
        name: Column name
        kind: Data kind of the attribute
        required: Whether the attribute is required on create
        target: Target resource type uid if kind is RELATION
        cardinality: To-one or to-many for relations
        description: Human-readable description
    """

    name: str
    kind: AttributeKind
    required: bool = False
    target: str | None = None
    cardinality: RelationCardinality = RelationCardinality.TO_ONE
    description: str = ""

    def __post_init__(self) -> None:
        """Validate attribute definition."""
        if not self.name or not _IDENTIFIER.match(self.name):
            raise ValueError(f"Invalid attribute name '{self.name}'")
        if self.kind == AttributeKind.RELATION and not self.target:
            raise ValueError(f"target required for relation attribute '{self.name}'")

    @property
    def is_relation(self) -> bool:
        return self.kind == AttributeKind.RELATION

    @property
    def is_to_many(self) -> bool:
        return self.is_relation and self.cardinality == RelationCardinality.TO_MANY

    @property
    def column_type(self) -> str:
        """SQLite column type; to-many relations store a JSON id list."""
        if self.is_to_many:
            return "TEXT"
        return self.kind.column_type

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this attribute definition.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if value is None:
            if self.required:
                return False, f"Attribute '{self.name}' is required"
            return True, None

        validators = {
            AttributeKind.STRING: lambda v: isinstance(v, str),
            AttributeKind.TEXT: lambda v: isinstance(v, str),
            AttributeKind.INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
            AttributeKind.FLOAT: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
            AttributeKind.BOOLEAN: lambda v: isinstance(v, bool),
            AttributeKind.TIMESTAMP: lambda v: isinstance(v, int) and v >= 0,
            AttributeKind.JSON: lambda _: True,
        }

        if self.kind == AttributeKind.RELATION:
            if self.cardinality == RelationCardinality.TO_MANY:
                ok = isinstance(value, list) and all(
                    isinstance(i, int) and not isinstance(i, bool) for i in value
                )
            else:
                ok = isinstance(value, int) and not isinstance(value, bool)
            if not ok:
                return False, f"Attribute '{self.name}' must hold {self.cardinality.value} record id(s)"
            return True, None

        validator = validators[self.kind]
        if not validator(value):
            return False, f"Attribute '{self.name}' has invalid type for kind {self.kind.value}"
        return True, None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttributeDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            kind=AttributeKind.from_str(data["kind"]),
            required=data.get("required", False),
            target=data.get("target"),
            cardinality=RelationCardinality(data.get("cardinality", "to-one")),
            description=data.get("description", ""),
        )


def attribute(
    name: str,
    kind: str | AttributeKind,
    *,
    required: bool = False,
    target: str | None = None,
    cardinality: str | RelationCardinality = RelationCardinality.TO_ONE,
    description: str = "",
) -> AttributeDef:
    """Convenience function to create an AttributeDef.

    Example:
        >>> title = attribute("title", "str", required=True)
        >>> tags = attribute("tags", "relation", target="api::tag.tag", cardinality="to-many")
    """
    if isinstance(kind, str):
        kind = AttributeKind.from_str(kind)
    if isinstance(cardinality, str):
        cardinality = RelationCardinality(cardinality)
    return AttributeDef(
        name=name,
        kind=kind,
        required=required,
        target=target,
        cardinality=cardinality,
        description=description,
    )


@dataclass(frozen=True)
class ResourceTypeDef:
    """Definition of a resource type stored in one table.

    Attributes:
        uid: Canonical identifier, e.g. "api::page.page"
        table: Underlying table name
        display_name: Human-readable name
        plural_name: Human-readable plural name
        kind: Collection or single type
        supports_versioning: Whether records come as draft/published pairs
        attributes: Tuple of attribute definitions

    Invariants:
        - uid and table are unique across the registry
        - attribute names do not collide with system columns

    Example:
        >>> Page = ResourceTypeDef(
        ...     uid="api::page.page",
        ...     table="pages",
        ...     supports_versioning=True,
        ...     attributes=(attribute("title", "str"),),
        ... )
    """

    uid: str
    table: str
    display_name: str = ""
    plural_name: str = ""
    kind: ResourceKind = ResourceKind.COLLECTION
    supports_versioning: bool = False
    attributes: tuple[AttributeDef, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate resource type definition."""
        if not self.uid:
            raise ValueError("Resource type uid cannot be empty")
        if not _IDENTIFIER.match(self.table):
            raise ValueError(f"Invalid table name '{self.table}' for {self.uid}")

        names = [a.name for a in self.attributes]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate attribute name in resource type '{self.uid}'")

    @property
    def label(self) -> str:
        """Display name, falling back to the uid's model part."""
        return self.display_name or self.uid.rsplit(".", 1)[-1]

    def get_attribute(self, name: str) -> AttributeDef | None:
        for a in self.attributes:
            if a.name == name:
                return a
        return None

    def relations(self) -> list[AttributeDef]:
        """Get list of relation attributes."""
        return [a for a in self.attributes if a.is_relation]

    def validate_data(self, data: dict[str, Any], partial: bool = False) -> tuple[bool, list[str]]:
        """Validate a write payload against this resource type.

        Args:
            data: Attribute values
            partial: PATCH semantics (missing required attributes allowed)

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors: list[str] = []

        known_names = {a.name for a in self.attributes}
        unknown = set(data.keys()) - known_names
        if unknown:
            errors.append(f"Unknown attributes: {sorted(unknown)}")

        for a in self.attributes:
            if partial and a.name not in data:
                continue
            is_valid, error = a.validate_value(data.get(a.name))
            if not is_valid and error:
                errors.append(error)

        return len(errors) == 0, errors

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceTypeDef:
        """Create from dictionary representation."""
        return cls(
            uid=data["uid"],
            table=data["table"],
            display_name=data.get("display_name", ""),
            plural_name=data.get("plural_name", ""),
            kind=ResourceKind(data.get("kind", "collection")),
            supports_versioning=data.get("supports_versioning", False),
            attributes=tuple(AttributeDef.from_dict(a) for a in data.get("attributes", [])),
        )

    def __hash__(self) -> int:
        """Hash based on uid (stable identifier)."""
        return hash(self.uid)

    def __eq__(self, other: object) -> bool:
        """Equality based on uid."""
        if not isinstance(other, ResourceTypeDef):
            return NotImplemented
        return self.uid == other.uid
