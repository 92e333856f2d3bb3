"""
Fixed-window rate limiting backed by the shared Django cache.

Counters are advanced with django-ratelimit's `get_usage`, which increments
a per-window cache key atomically (`cache.add` followed by `cache.incr`), so
every worker process sees the same counts when the cache is Redis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django_ratelimit.core import get_usage

from shared.domain.exceptions import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    count: int
    limit: int
    remaining: int
    retry_after: int
    limited: bool


def client_identity(request) -> str:
    """First address of the forwarding chain, else the socket peer."""
    header = getattr(settings, "CLIENT_IP_HEADER", "HTTP_X_FORWARDED_FOR")
    forwarded = request.META.get(header, "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "unknown")


def _identity_key(group, request) -> str:
    return client_identity(request)


def check_rate_limit(request, group: str, rate: str | None = None) -> RateLimitStatus:
    """
    Count this request against the caller's window.

    Raises RateLimitError once the window's limit is exceeded.
    """
    rate = rate or settings.BOOKING_RATE_LIMIT
    usage = get_usage(
        request,
        group=group,
        key=_identity_key,
        rate=rate,
        increment=True,
    )
    if usage is None:
        return RateLimitStatus(count=0, limit=0, remaining=0, retry_after=0, limited=False)

    status = RateLimitStatus(
        count=usage["count"],
        limit=usage["limit"],
        remaining=max(usage["limit"] - usage["count"], 0),
        retry_after=max(int(usage["time_left"]), 1),
        limited=usage["should_limit"],
    )
    if status.limited:
        logger.warning(
            f"Rate limit exceeded for {client_identity(request)} on {group}: "
            f"{status.count}/{status.limit}"
        )
        raise RateLimitError(
            "Too many booking requests. Please try again shortly.",
            retry_after=status.retry_after,
        )
    return status
