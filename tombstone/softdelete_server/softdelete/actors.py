"""
Actor resolution for tombstone marks.

The authenticated context is owned by the surrounding API layer; this
module only turns it into the {id, kind} pair recorded on a tombstone.

Actor kinds:
    - admin: authenticated through the admin strategy
    - application-user: authenticated as an end user of the application
    - unknown: anything else, including unauthenticated calls
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class ActorKind(Enum):
    """Kind of actor recorded in deleted_by_actor_kind."""

    ADMIN = "admin"
    APPLICATION_USER = "application-user"
    UNKNOWN = "unknown"


# Authentication strategy name -> actor kind
_STRATEGY_KINDS = {
    "admin": ActorKind.ADMIN,
    "users-permissions": ActorKind.APPLICATION_USER,
    "application-user": ActorKind.APPLICATION_USER,
    "user": ActorKind.APPLICATION_USER,
}


@dataclass(frozen=True)
class Actor:
    """Who performed a delete.

    Attributes:
        id: Actor identifier, None when unknown
        kind: Actor kind
    """

    id: int | None
    kind: ActorKind

    @classmethod
    def unknown(cls) -> Actor:
        return cls(id=None, kind=ActorKind.UNKNOWN)

    @classmethod
    def parse(cls, actor_str: str) -> Actor:
        """Parse an actor string such as "admin:7" or "user:42".

        Raises:
            ValueError: If format is invalid
        """
        if ":" not in actor_str:
            raise ValueError(f"Invalid actor format: {actor_str}")

        strategy, id_str = actor_str.split(":", 1)
        kind = _STRATEGY_KINDS.get(strategy)
        if kind is None:
            raise ValueError(f"Invalid actor type: {strategy}")
        if not id_str.isdigit():
            raise ValueError(f"Actor id must be an integer: {actor_str}")
        return cls(id=int(id_str), kind=kind)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "kind": self.kind.value}

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id if self.id is not None else '-'}"


@dataclass(frozen=True)
class AuthContext:
    """Authenticated request context handed over by the API layer.

    Attributes:
        strategy: Authentication strategy name ("admin", "users-permissions", ...)
        credentials: Strategy-specific credentials; "id" identifies the actor
    """

    strategy: str | None = None
    credentials: dict[str, Any] = field(default_factory=dict)


ActorResolver = Callable[[AuthContext | None], Actor]


def resolve_actor(context: AuthContext | None) -> Actor:
    """Default actor resolver.

    Known strategies map to their actor kind; anything else is unknown
    with no id.
    """
    if context is None or context.strategy is None:
        return Actor.unknown()

    kind = _STRATEGY_KINDS.get(context.strategy)
    if kind is None:
        return Actor.unknown()

    raw_id = context.credentials.get("id")
    actor_id = int(raw_id) if isinstance(raw_id, (int, str)) and str(raw_id).isdigit() else None
    return Actor(id=actor_id, kind=kind)
