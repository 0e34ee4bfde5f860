"""
Typed relation-populate tree.

Callers declare which relations to fetch alongside a record, optionally
with a filter per relation and further nested relations:

    PopulateSpec.parse({
        "category": True,
        "tags": {"filters": {"name": {"$startsWith": "py"}}},
        "author": {"populate": {"avatar": True}},
    })

The tree only ever contains what the caller declared; nothing here infers
extra depth, so walking it terminates even on cyclic relation graphs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterator

from .filters import Filter


class PopulateError(ValueError):
    """Populate declaration is malformed."""
    pass


@dataclass(frozen=True)
class PopulateNode:
    """One declared relation fetch.

    Attributes:
        filters: Filter applied to the related records
        populate: Nested relations to fetch on the related records
    """

    filters: Filter = field(default_factory=dict)
    populate: PopulateSpec | None = None

    def with_filters(self, filters: Filter) -> PopulateNode:
        return replace(self, filters=filters)

    def with_populate(self, populate: PopulateSpec | None) -> PopulateNode:
        return replace(self, populate=populate)

    def to_dict(self) -> dict[str, Any] | bool:
        if not self.filters and self.populate is None:
            return True
        result: dict[str, Any] = {}
        if self.filters:
            result["filters"] = self.filters
        if self.populate is not None:
            result["populate"] = self.populate.to_dict()
        return result


@dataclass(frozen=True)
class PopulateSpec:
    """Relation name -> PopulateNode."""

    relations: dict[str, PopulateNode] = field(default_factory=dict)

    def __iter__(self) -> Iterator[str]:
        return iter(self.relations)

    def __len__(self) -> int:
        return len(self.relations)

    def __contains__(self, name: object) -> bool:
        return name in self.relations

    def __getitem__(self, name: str) -> PopulateNode:
        return self.relations[name]

    def items(self) -> Iterator[tuple[str, PopulateNode]]:
        yield from self.relations.items()

    def depth(self) -> int:
        """Deepest declared nesting level (1 for a flat spec)."""
        if not self.relations:
            return 0
        return 1 + max(
            (node.populate.depth() if node.populate is not None else 0)
            for node in self.relations.values()
        )

    def to_dict(self) -> dict[str, Any]:
        return {name: node.to_dict() for name, node in self.relations.items()}

    @classmethod
    def parse(cls, value: Any) -> PopulateSpec | None:
        """Build a tree from the caller's populate declaration.

        Accepts None/False (nothing), a comma-separated string, a list of
        names or mappings, a mapping of name -> True | {filters, populate},
        or an existing PopulateSpec.

        Raises:
            PopulateError: If the declaration cannot be interpreted
        """
        if value is None or value is False:
            return None
        if isinstance(value, PopulateSpec):
            return value
        if isinstance(value, str):
            names = [n.strip() for n in value.split(",") if n.strip()]
            if "*" in names:
                raise PopulateError("Wildcard populate is not supported; name each relation")
            return cls({name: PopulateNode() for name in names})
        if isinstance(value, (list, tuple)):
            relations: dict[str, PopulateNode] = {}
            for item in value:
                parsed = cls.parse(item)
                if parsed is not None:
                    relations.update(parsed.relations)
            return cls(relations)
        if isinstance(value, dict):
            return cls({str(name): _parse_node(name, node) for name, node in value.items()
                        if node is not False and node is not None})
        raise PopulateError(f"Unsupported populate declaration: {type(value).__name__}")


def _parse_node(name: str, value: Any) -> PopulateNode:
    if value is True:
        return PopulateNode()
    if isinstance(value, PopulateNode):
        return value
    if not isinstance(value, dict):
        raise PopulateError(f"Populate entry for '{name}' must be true or a mapping")

    unknown = set(value) - {"filters", "populate"}
    if unknown:
        raise PopulateError(f"Unknown keys in populate entry '{name}': {sorted(unknown)}")

    filters = value.get("filters") or {}
    if not isinstance(filters, dict):
        raise PopulateError(f"filters for '{name}' must be a mapping")
    return PopulateNode(filters=filters, populate=PopulateSpec.parse(value.get("populate")))
