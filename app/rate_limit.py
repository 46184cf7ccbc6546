"""
Rate limiting.

Two layers:

  • `limiter` (slowapi) – coarse per-IP default for the general API
    (60/min), applied to school mutations.
  • `RateLimiter` – fixed-window counters for the OTP endpoints, kept in a
    CounterStore so every increment-and-compare is one atomic operation:
      send   – 3 requests / 60 s   (prevents email spam)
      verify – 5 requests / 600 s  (prevents brute force)

If the counter store is unreachable the OTP limiter fails open.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import SEND_OTP_LIMIT, SEND_OTP_WINDOW, VERIFY_OTP_LIMIT, VERIFY_OTP_WINDOW
from app.services.stores import CounterStore

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])

DEFAULT = "60/minute"    # general API

SEND_OTP = "send-otp"
VERIFY_OTP = "verify-otp"


@dataclass(frozen=True)
class RatePolicy:
    limit: int
    window_seconds: int


DEFAULT_POLICIES: dict[str, RatePolicy] = {
    SEND_OTP: RatePolicy(SEND_OTP_LIMIT, SEND_OTP_WINDOW),
    VERIFY_OTP: RatePolicy(VERIFY_OTP_LIMIT, VERIFY_OTP_WINDOW),
}


@dataclass
class RateDecision:
    allowed: bool
    limit: int | None = None
    remaining: int | None = None
    retry_after_seconds: int | None = None
    reset_at: float | None = None

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        if self.remaining is not None:
            headers["X-RateLimit-Remaining"] = str(self.remaining)
        if self.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(int(self.reset_at))
        if self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class RateLimiter:
    """Per-(client key, endpoint) fixed-window limiter."""

    def __init__(
        self,
        store: CounterStore,
        policies: dict[str, RatePolicy] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policies = dict(policies or DEFAULT_POLICIES)
        self._clock = clock

    def policy(self, endpoint: str) -> RatePolicy:
        return self._policies[endpoint]

    async def admit(self, client_key: str, endpoint: str) -> RateDecision:
        policy = self._policies[endpoint]
        now = self._clock()
        try:
            hits, window_start = await self._store.hit(
                client_key,
                endpoint,
                now=now,
                window_seconds=policy.window_seconds,
                cap=policy.limit + 1,
            )
        except Exception:
            logger.warning(
                "Rate limit store unavailable for %s/%s, allowing request",
                endpoint,
                client_key,
                exc_info=True,
            )
            return RateDecision(allowed=True)

        reset_at = window_start + policy.window_seconds
        if hits > policy.limit:
            retry_after = max(1, math.ceil(reset_at - now))
            logger.info(
                "Rate limit exceeded for %s on %s (retry in %ds)",
                client_key, endpoint, retry_after,
            )
            return RateDecision(
                allowed=False,
                limit=policy.limit,
                remaining=0,
                retry_after_seconds=retry_after,
                reset_at=reset_at,
            )
        return RateDecision(
            allowed=True,
            limit=policy.limit,
            remaining=policy.limit - hits,
            reset_at=reset_at,
        )

    async def purge(self) -> int:
        return await self._store.purge(now=self._clock())


def client_key(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "").strip()
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"
