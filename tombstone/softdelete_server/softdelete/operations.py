"""
Typed operations accepted by the interceptor.

The set is closed: the interceptor dispatches on these variants with an
exhaustive match, so a new variant must be handled there too.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from ..store.filters import Filter
from .status import Status


@dataclass(frozen=True)
class CreateOp:
    uid: str
    data: dict[str, Any]
    document_key: str | None = None
    version_label: str | None = None


@dataclass(frozen=True)
class FindOneOp:
    uid: str
    id: int
    status: Status | str | None = None
    populate: Any = None


@dataclass(frozen=True)
class FindManyOp:
    uid: str
    filters: Filter = field(default_factory=dict)
    status: Status | str | None = None
    populate: Any = None
    sort: list[str] | None = None
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class CountOp:
    uid: str
    filters: Filter = field(default_factory=dict)
    status: Status | str | None = None


@dataclass(frozen=True)
class UpdateOp:
    uid: str
    id: int
    data: dict[str, Any]


@dataclass(frozen=True)
class DeleteOp:
    """Delete by row id or by document_key (versioned types)."""

    uid: str
    id: int | None = None
    document_key: str | None = None


Operation = Union[CreateOp, FindOneOp, FindManyOp, CountOp, UpdateOp, DeleteOp]
