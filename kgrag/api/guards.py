"""
Request guards: API key check and per-client rate limiting.

Both are FastAPI dependencies attached to the `/api/v1` routers. The rate
limiter is an explicit object created by `create_app()` and kept on
``app.state.rate_limiter``; it owns its counters and clock.
"""

import secrets
import threading
import time
from collections.abc import Callable

from fastapi import Header, HTTPException, Request, status

from kgrag.core.config import settings
from kgrag.core.logging import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-KEY"


# =============================================================================
# Rate Limiter
# =============================================================================


class RateLimiter:
    """
    Fixed-window request counter per client key.

    A window opens on a key's first request and lasts `window_seconds`;
    up to `max_requests` are admitted inside it. Counters are never swept,
    so memory grows with the number of distinct keys seen.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "RateLimiter":
        return cls(max_requests=settings.rate_limit_per_minute)

    def allow(self, key: str) -> bool:
        """Count one request for `key`; False once the window is full."""
        if self.max_requests <= 0:
            return True
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.max_requests:
                self._windows[key] = (started, count)
                return False
            self._windows[key] = (started, count + 1)
            return True

    def __len__(self) -> int:
        return len(self._windows)


def client_key(request: Request) -> str:
    """First ``X-Forwarded-For`` address, else the peer host."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


# =============================================================================
# Dependencies
# =============================================================================


async def require_api_key(
    x_api_key: str | None = Header(default=None, alias=API_KEY_HEADER),
) -> None:
    """Reject requests without the configured API key (no-op when unset)."""
    expected = settings.api_key
    if not expected:
        return
    if x_api_key is None or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


async def enforce_rate_limit(request: Request) -> None:
    limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    key = client_key(request)
    if not limiter.allow(key):
        logger.warning("Rate limit exceeded", client=key, path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(int(limiter.window_seconds))},
        )
