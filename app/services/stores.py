"""
Storage backends for OTP challenges, rate-limit counters and users.

Two interchangeable implementations of each store:

  • Sqlite*  – durable, delegates to app.db (one atomic statement per call)
  • Memory*  – ephemeral, process-local, guarded by a lock

The backend is chosen once at startup by `build_stores`; services only
ever see the protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import count
from threading import Lock
from typing import Protocol

from app import db
from app.models import User

logger = logging.getLogger(__name__)


class OtpStore(Protocol):
    async def upsert(self, email: str, code: str, *, expires_at: float, now: float) -> None: ...

    async def consume(self, email: str, code: str, *, now: float) -> bool: ...

    async def purge(self, *, expired_before: float) -> int: ...


class CounterStore(Protocol):
    async def hit(
        self, client_key: str, endpoint: str, *, now: float, window_seconds: int, cap: int
    ) -> tuple[int, float]: ...

    async def purge(self, *, now: float) -> int: ...


class UserStore(Protocol):
    async def get_or_create(self, email: str, *, name: str, role: str = "user") -> User: ...


# ── SQLite ────────────────────────────────────────────────────────────────


class SqliteOtpStore:
    async def upsert(self, email: str, code: str, *, expires_at: float, now: float) -> None:
        await db.upsert_otp(email, code, expires_at=expires_at, now=now)

    async def consume(self, email: str, code: str, *, now: float) -> bool:
        return await db.consume_otp(email, code, now=now)

    async def purge(self, *, expired_before: float) -> int:
        return await db.purge_otps(expired_before=expired_before)


class SqliteCounterStore:
    async def hit(
        self, client_key: str, endpoint: str, *, now: float, window_seconds: int, cap: int
    ) -> tuple[int, float]:
        return await db.hit_counter(
            client_key, endpoint, now=now, window_seconds=window_seconds, cap=cap
        )

    async def purge(self, *, now: float) -> int:
        return await db.purge_counters(now=now)


class SqliteUserStore:
    async def get_or_create(self, email: str, *, name: str, role: str = "user") -> User:
        return await db.get_or_create_user(email, name=name, role=role)


# ── In-memory ─────────────────────────────────────────────────────────────


@dataclass
class _Challenge:
    code: str
    expires_at: float
    created_at: float
    is_used: bool = False


class MemoryOtpStore:
    def __init__(self) -> None:
        self._data: dict[str, _Challenge] = {}
        self._lock = Lock()

    async def upsert(self, email: str, code: str, *, expires_at: float, now: float) -> None:
        with self._lock:
            self._data[email] = _Challenge(code=code, expires_at=expires_at, created_at=now)

    async def consume(self, email: str, code: str, *, now: float) -> bool:
        with self._lock:
            challenge = self._data.get(email)
            if (
                challenge is None
                or challenge.is_used
                or challenge.expires_at <= now
                or challenge.code != code
            ):
                return False
            challenge.is_used = True
            return True

    async def purge(self, *, expired_before: float) -> int:
        with self._lock:
            stale = [e for e, c in self._data.items() if c.expires_at < expired_before]
            for email in stale:
                del self._data[email]
        return len(stale)


class MemoryCounterStore:
    def __init__(self) -> None:
        # (client_key, endpoint) -> (count, window_start, window_seconds)
        self._data: dict[tuple[str, str], tuple[int, float, int]] = {}
        self._lock = Lock()

    async def hit(
        self, client_key: str, endpoint: str, *, now: float, window_seconds: int, cap: int
    ) -> tuple[int, float]:
        key = (client_key, endpoint)
        with self._lock:
            current = self._data.get(key)
            if current is None or now - current[1] >= window_seconds:
                hits, window_start = 1, now
            else:
                hits, window_start = min(current[0] + 1, cap), current[1]
            self._data[key] = (hits, window_start, window_seconds)
        return hits, window_start

    async def purge(self, *, now: float) -> int:
        with self._lock:
            stale = [k for k, (_, start, window) in self._data.items() if start + window <= now]
            for key in stale:
                del self._data[key]
        return len(stale)


class MemoryUserStore:
    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._ids = count(1)
        self._lock = Lock()

    async def get_or_create(self, email: str, *, name: str, role: str = "user") -> User:
        with self._lock:
            user = self._users.get(email)
            if user is None:
                user = User(id=next(self._ids), email=email, name=name, role=role)
                self._users[email] = user
            return user


# ── Selection ─────────────────────────────────────────────────────────────


@dataclass
class Stores:
    backend: str
    otps: OtpStore = field(repr=False)
    counters: CounterStore = field(repr=False)
    users: UserStore = field(repr=False)


def build_stores(backend: str) -> Stores:
    """Instantiate the store set for *backend* ("sqlite" or "memory")."""
    if backend == "sqlite":
        return Stores("sqlite", SqliteOtpStore(), SqliteCounterStore(), SqliteUserStore())
    if backend == "memory":
        logger.warning("Using in-memory stores; state is lost on restart")
        return Stores("memory", MemoryOtpStore(), MemoryCounterStore(), MemoryUserStore())
    raise ValueError(f"Unknown storage backend: {backend!r}")
