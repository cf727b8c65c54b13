"""Fixed-window rate limiting for requests to the update server.

Each endpoint gets a ``RateWindow`` counter stored in the unit's cache
namespace. The first request of a window creates the counter with a TTL equal
to the window length; later requests increment it without extending the TTL,
so the window resets only when the cache entry expires. Bursts straddling a
window boundary can therefore reach twice the limit.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from .errors import RateLimitedError

if TYPE_CHECKING:
    from .cache import CacheNamespace
    from .models import RateLimitConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateWindow:
    """Request count inside the current window."""

    count: int
    window_start: float


class RateLimiter:
    """Per-endpoint request gate for one update unit."""

    def __init__(
        self,
        cache: CacheNamespace,
        unit: str,
        requests_per_window: int = 30,
        window_seconds: float = 60,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            cache: The unit's cache namespace.
            unit: Unit slug, mixed into the counter key.
            requests_per_window: Maximum requests allowed per window.
            window_seconds: Window length in seconds.
        """
        if requests_per_window < 1:
            raise ValueError("requests_per_window must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._cache = cache
        self._unit = unit
        self.limit = requests_per_window
        self.window_seconds = window_seconds
        self._log = logger.bind(component="rate_limiter", unit=unit)

    @classmethod
    def from_config(cls, cache: CacheNamespace, unit: str, config: RateLimitConfig) -> RateLimiter:
        """Create a RateLimiter from RateLimitConfig."""
        return cls(
            cache,
            unit,
            requests_per_window=config.requests_per_window,
            window_seconds=config.window_seconds,
        )

    def key_for(self, endpoint: str) -> str:
        """Return the cache key holding the counter for ``endpoint``."""
        digest = hashlib.md5(f"{self._unit}{endpoint}".encode(), usedforsecurity=False)
        return f"rate:{digest.hexdigest()}"

    def allow(self, endpoint: str) -> None:
        """Count one request against ``endpoint``.

        Raises:
            RateLimitedError: If the limit for the current window is reached.
                The counter is left unchanged.
        """

        def step(window: Any) -> tuple[RateWindow, float | None]:
            if not isinstance(window, RateWindow):
                return RateWindow(count=1, window_start=time.time()), self.window_seconds
            if window.count >= self.limit:
                raise RateLimitedError("Too many requests. Please try again later.")
            return RateWindow(count=window.count + 1, window_start=window.window_start), None

        try:
            window = self._cache.update(self.key_for(endpoint), step)
        except RateLimitedError:
            self._log.warning("rate_limited", endpoint=endpoint, limit=self.limit)
            raise

        self._log.debug("request_allowed", endpoint=endpoint, count=window.count)

    def remaining(self, endpoint: str) -> int:
        """Return how many requests ``endpoint`` has left in the current window."""
        window = self._cache.get(self.key_for(endpoint))
        if not isinstance(window, RateWindow):
            return self.limit
        return max(self.limit - window.count, 0)

    def reset(self, endpoint: str) -> None:
        """Forget the counter for ``endpoint``."""
        self._cache.delete(self.key_for(endpoint))
