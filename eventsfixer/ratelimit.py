"""Per-client rate limiting for the JSON API and public forms.

Requests are keyed on the connection address. Forwarded headers only count
when uvicorn is told to trust the proxy (``forwarded_allow_ips``), in which
case it has already rewritten ``request.client``.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from fastapi import Request
from limits import RateLimitItem, RateLimitItemPerMinute, RateLimitItemPerSecond
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings
from .errors import RateLimitError

logger = logging.getLogger("uvicorn.error")

RATE_LIMITS: dict[str, RateLimitItem] = {
    "api": RateLimitItemPerSecond(
        settings.rate_limit_requests, settings.rate_limit_window_seconds
    ),
    "rsvp": RateLimitItemPerMinute(5),
    "invites": RateLimitItemPerMinute(20),
}

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
)


def retry_after_seconds(item: RateLimitItem, *identifiers: str) -> int:
    reset_time, _ = limiter.limiter.get_window_stats(item, *identifiers)
    return max(math.ceil(reset_time - time.time()), 1)


def rate_limit(route_class: str) -> Callable[[Request], None]:
    """Build a FastAPI dependency enforcing the ``route_class`` limit."""
    item = RATE_LIMITS[route_class]

    def dependency(request: Request) -> None:
        if not limiter.enabled:
            return
        client = get_remote_address(request)
        if not limiter.limiter.hit(item, route_class, client):
            logger.warning("Rate limit exceeded for %s:%s", route_class, client)
            raise RateLimitError(
                retry_after=retry_after_seconds(item, route_class, client)
            )

    return dependency
