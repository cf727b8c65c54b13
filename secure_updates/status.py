"""Last operation outcome of a unit, kept for 30 seconds.

The host reads this right after a check to show a short notice; older
outcomes are not interesting and simply expire from the cache.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from .cache import MINUTE_IN_SECONDS
from .models import StatusKind, UpdateStatus

if TYPE_CHECKING:
    from .cache import CacheNamespace

STATUS_TTL: Final = MINUTE_IN_SECONDS // 2
STATUS_KEY: Final = "status"


class StatusReporter:
    """Records the latest outcome in the unit's cache namespace."""

    def __init__(self, cache: CacheNamespace, ttl: float = STATUS_TTL) -> None:
        self._cache = cache
        self._ttl = ttl

    def record(self, status: StatusKind, message: str) -> UpdateStatus:
        """Store ``(status, message)`` as the unit's last outcome."""
        entry = UpdateStatus(status=status, message=message)
        self._cache.set(STATUS_KEY, entry, self._ttl)
        return entry

    def success(self, message: str) -> UpdateStatus:
        return self.record(StatusKind.SUCCESS, message)

    def error(self, message: str) -> UpdateStatus:
        return self.record(StatusKind.ERROR, message)

    def last(self) -> UpdateStatus | None:
        """Return the last outcome if it has not expired yet."""
        entry = self._cache.get(STATUS_KEY)
        return entry if isinstance(entry, UpdateStatus) else None

    def clear(self) -> None:
        self._cache.delete(STATUS_KEY)
