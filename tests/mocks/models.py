"""
Pre-built model instances and fakes for use in tests.

    from tests.mocks.models import MOCK_USER, RecordingSender
"""

from __future__ import annotations

import asyncio

from app.models import User

# ── Users ──────────────────────────────────────────────────────────────────

MOCK_USER = User(id=1, email="principal@example.com", name="principal", role="user")

MOCK_ADMIN = User(id=2, email="admin@example.com", name="admin", role="admin")


# ── Collaborators ──────────────────────────────────────────────────────────


class RecordingSender:
    """Stands in for send_otp_email and keeps every message it was given."""

    def __init__(self, *, succeed: bool = True, delay: float = 0.0) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self._succeed = succeed
        self._delay = delay

    async def __call__(self, email: str, code: str, name: str = "User") -> bool:
        if self._delay:
            await asyncio.sleep(self._delay)
        self.sent.append((email, code, name))
        return self._succeed

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


class BrokenStore:
    """Every storage call fails, as if the database were unreachable."""

    async def upsert(self, *args, **kwargs):
        raise ConnectionError("store unavailable")

    async def consume(self, *args, **kwargs):
        raise ConnectionError("store unavailable")

    async def hit(self, *args, **kwargs):
        raise ConnectionError("store unavailable")

    async def purge(self, *args, **kwargs):
        raise ConnectionError("store unavailable")

    async def get_or_create(self, *args, **kwargs):
        raise ConnectionError("store unavailable")


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
