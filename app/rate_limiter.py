"""
Fixed-window rate limiting for authentication-adjacent endpoints.

Counting is delegated to the ``limits`` package, the engine behind slowapi.
The default ``memory://`` storage is process-local and expires its own keys,
so behind several instances each one enforces its own limit. Point
``rate_limit_storage_uri`` at a shared store (``redis://...``) when global
limits are required; ``check`` stays the interface either way.
"""
import math
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Response
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .config import get_settings
from .errors import RateLimitedError
from .logging_config import get_logger

logger = get_logger("rate_limit")

UNKNOWN_IDENTIFIER = "unknown"
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW_MS = 15 * 60 * 1000


@dataclass
class RateLimitResult:
    is_limited: bool
    remaining: int
    reset_time: int  # epoch milliseconds
    retry_after: Optional[int]


def _window_item(max_attempts: int, window_ms: int) -> RateLimitItem:
    return RateLimitItemPerSecond(max_attempts, max(1, math.ceil(window_ms / 1000)))


def _bucket(identifier: Optional[str]) -> str:
    return identifier.strip() if identifier and identifier.strip() else UNKNOWN_IDENTIFIER


class RateLimiter:
    """
    Fixed-window counter keyed by client identifier.

    A window opens on the first request for an identifier and lasts
    ``window_ms``; the storage drops the counter when it elapses.
    """

    def __init__(self, storage_uri: str = "memory://"):
        self.storage_uri = storage_uri
        self._storage: Optional[Storage] = None
        self._strategy: Optional[FixedWindowRateLimiter] = None

    def start(self) -> None:
        """Open the counter storage. Safe to call more than once."""
        if self._strategy is not None:
            return
        self._storage = storage_from_string(self.storage_uri)
        self._strategy = FixedWindowRateLimiter(self._storage)
        logger.debug("Rate limiter started", storage=self.storage_uri.split("://")[0])

    def check(
        self,
        identifier: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> RateLimitResult:
        """Count one request for ``identifier`` and report whether it is over the limit."""
        self.start()
        key = _bucket(identifier)
        item = _window_item(max_attempts, window_ms)

        # hit() increments atomically in the storage and reports whether we are still within the limit
        allowed = self._strategy.hit(item, key)
        stats = self._strategy.get_window_stats(item, key)
        reset_time = int(stats.reset_time * 1000)

        if not allowed:
            return RateLimitResult(
                is_limited=True,
                remaining=0,
                reset_time=reset_time,
                retry_after=max(1, math.ceil(stats.reset_time - time.time())),
            )

        return RateLimitResult(
            is_limited=False,
            remaining=stats.remaining,
            reset_time=reset_time,
            retry_after=None,
        )

    def reset(
        self,
        identifier: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> None:
        """Forget one identifier's window for the given limit."""
        self.start()
        self._strategy.clear(_window_item(max_attempts, window_ms), _bucket(identifier))

    def destroy(self) -> None:
        """Drop every counter and release the storage."""
        if self._storage is not None and self.storage_uri.startswith("memory://"):
            self._storage.reset()
        self._storage = None
        self._strategy = None


# ============================================================
# FASTAPI DEPENDENCY
# ============================================================

def client_identifier(request: Request) -> str:
    """Client IP, preferring the first X-Forwarded-For hop set by the edge proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return UNKNOWN_IDENTIFIER


def rate_limit(scope: str, max_attempts: Optional[int] = None, window_ms: Optional[int] = None):
    """
    Build a dependency that throttles a route per client.

    ``scope`` namespaces the bucket so different endpoints do not share a
    counter. Limits default to the configured values.
    """

    def dependency(request: Request, response: Response) -> RateLimitResult:
        settings = get_settings()
        limit = max_attempts or settings.rate_limit_max_attempts
        window = window_ms or settings.rate_limit_window_ms
        limiter: RateLimiter = request.app.state.rate_limiter

        identifier = client_identifier(request)
        result = limiter.check(f"{scope}:{identifier}", limit, window)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_time // 1000)

        if result.is_limited:
            logger.warning("Rate limit exceeded", scope=scope, identifier=identifier)
            raise RateLimitedError(
                "Too many requests. Please try again later.",
                retry_after=result.retry_after,
            )
        return result

    return dependency
