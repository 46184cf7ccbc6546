from __future__ import annotations

import asyncio
import contextlib
import logging

from app.rate_limit import RateLimiter
from app.services.otp import OtpService

logger = logging.getLogger(__name__)


class BackgroundWorker:
    """Base class for services that run a periodic background loop."""

    def __init__(self, *, interval: float, name: str) -> None:
        self._interval = interval
        self._name = name
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        await self._on_start()
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.info("%s started (every %ds)", self._name, self._interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("%s stopped", self._name)

    async def _on_start(self) -> None:
        pass

    async def _tick(self) -> None:
        raise NotImplementedError

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._tick()
            except Exception:
                logger.exception("%s tick failed, will retry", self._name)


class ChallengeSweeper(BackgroundWorker):
    """
    Housekeeping: drops long-expired OTP challenges and closed rate windows.

    Correctness never depends on this running; verification already
    rejects expired codes.
    """

    def __init__(
        self,
        otp_service: OtpService,
        rate_limiter: RateLimiter,
        *,
        interval: float,
        grace_seconds: float,
    ) -> None:
        super().__init__(interval=interval, name="otp-sweeper")
        self._otp_service = otp_service
        self._rate_limiter = rate_limiter
        self._grace_seconds = grace_seconds

    async def _tick(self) -> None:
        challenges = await self._otp_service.purge(self._grace_seconds)
        counters = await self._rate_limiter.purge()
        if challenges or counters:
            logger.info(
                "Purged %d expired OTP challenges and %d rate-limit windows",
                challenges, counters,
            )
