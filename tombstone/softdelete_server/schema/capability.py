"""
Capability filter deciding which resource types participate in soft delete.

Application-owned resource types follow the "api::" uid convention;
system and plugin types ("admin::", "plugin::", ...) never participate.

Invariants:
    - The decision is a pure function of the uid and the configured prefix
    - Results are cached for the process lifetime, never invalidated
"""

from __future__ import annotations

import threading

DEFAULT_ELIGIBLE_PREFIX = "api::"


class CapabilityFilter:
    """Cached eligibility predicate.

    Example:
        >>> capability = CapabilityFilter()
        >>> capability.eligible("api::article.article")
        True
        >>> capability.eligible("plugin::users-permissions.user")
        False
    """

    def __init__(self, prefix: str = DEFAULT_ELIGIBLE_PREFIX) -> None:
        if not prefix:
            raise ValueError("Eligible prefix cannot be empty")
        self.prefix = prefix
        self._cache: dict[str, bool] = {}
        self._lock = threading.Lock()

    def eligible(self, uid: str | None) -> bool:
        """Whether resources of this type are soft-deleted instead of removed."""
        if not uid:
            return False
        cached = self._cache.get(uid)
        if cached is not None:
            return cached
        with self._lock:
            result = uid.startswith(self.prefix) and len(uid) > len(self.prefix)
            self._cache[uid] = result
            return result

    def __call__(self, uid: str | None) -> bool:
        return self.eligible(uid)
