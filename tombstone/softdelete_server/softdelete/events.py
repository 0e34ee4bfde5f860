"""
Domain events emitted by the soft-delete engine.

Events are published after the write they describe has committed, for
external observers such as audit trails or cache invalidation.

Event names and actions:
    - entry.delete / soft-delete: record tombstoned instead of deleted
    - entry.restore / restore: tombstone cleared
    - entry.delete / delete-permanently: record purged
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

PLUGIN_ID = "soft-delete"

ENTRY_DELETE = "entry.delete"
ENTRY_RESTORE = "entry.restore"

EventHandler = Callable[[str, dict[str, Any]], None]


@runtime_checkable
class EventSink(Protocol):
    """Anything events can be emitted to."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        ...


class EventHub:
    """In-process event sink with per-event subscribers.

    A failing subscriber is logged and does not affect other subscribers
    or the write that produced the event.

    Example:
        >>> hub = EventHub()
        >>> hub.subscribe("entry.delete", lambda event, payload: print(payload["uid"]))
        >>> hub.emit("entry.delete", {"uid": "api::article.article"})
        api::article.article
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(event, payload)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"event": event, "uid": payload.get("uid")},
                )


def build_payload(
    uid: str,
    action: str,
    entry: dict[str, Any] | None,
    **extra: Any,
) -> dict[str, Any]:
    """Event payload in the shape observers expect."""
    payload = {
        "uid": uid,
        "entry": entry,
        "plugin": {"id": PLUGIN_ID},
        "action": action,
    }
    payload.update(extra)
    return payload
