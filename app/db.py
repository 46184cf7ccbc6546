"""
SQLite database layer using aiosqlite.

Stores users, schools, pending OTP challenges and rate-limit counters.
Tables are created automatically on first connect.

Every operation that must be atomic with respect to concurrent requests
(OTP upsert / consume, counter increment) is a single SQL statement.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from app.config import DB_PATH
from app.models import School, User

logger = logging.getLogger(__name__)

# ── Module-level connection ───────────────────────────────────────────────

_db: aiosqlite.Connection | None = None


async def init_db() -> None:
    """Open the database and create tables if they don't exist."""
    global _db
    db_path = Path(DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row  # dict-like rows
    await _db.execute("PRAGMA journal_mode=WAL")
    await _db.execute("PRAGMA foreign_keys=ON")

    await _db.executescript(_SCHEMA)
    await _db.commit()
    logger.info("Database initialized at %s", db_path)


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed")


def get_db() -> aiosqlite.Connection:
    """Return the active database connection (must call init_db first)."""
    assert _db is not None, "Database not initialized; call init_db() first"
    return _db


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    email           TEXT NOT NULL UNIQUE,
    name            TEXT NOT NULL,
    role            TEXT NOT NULL DEFAULT 'user',
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schools (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    address         TEXT NOT NULL,
    city            TEXT NOT NULL,
    state           TEXT NOT NULL,
    contact         TEXT NOT NULL,
    email_id        TEXT NOT NULL,
    image           TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_schools_city ON schools(city);
CREATE INDEX IF NOT EXISTS idx_schools_state ON schools(state);
CREATE INDEX IF NOT EXISTS idx_schools_email ON schools(email_id);

-- One row per email: issuing a new code overwrites the previous one.
CREATE TABLE IF NOT EXISTS otp_challenges (
    email           TEXT PRIMARY KEY,
    code            TEXT NOT NULL,
    expires_at      REAL NOT NULL,  -- unix seconds
    is_used         INTEGER NOT NULL DEFAULT 0,
    created_at      REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_otp_expires ON otp_challenges(expires_at);

CREATE TABLE IF NOT EXISTS rate_limits (
    client_key      TEXT NOT NULL,
    endpoint        TEXT NOT NULL,
    count           INTEGER NOT NULL,
    window_start    REAL NOT NULL,  -- unix seconds
    window_seconds  INTEGER NOT NULL,
    PRIMARY KEY (client_key, endpoint)
);
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_user(row: aiosqlite.Row) -> User:
    return User(id=row["id"], email=row["email"], name=row["name"], role=row["role"])


def _row_to_school(row: aiosqlite.Row) -> School:
    return School(
        id=row["id"],
        name=row["name"],
        address=row["address"],
        city=row["city"],
        state=row["state"],
        contact=row["contact"],
        email_id=row["email_id"],
        image=row["image"],
        created_at=row["created_at"],
    )


# ══════════════════════════════════════════════════════════════════════════
#                    OTP CHALLENGES
# ══════════════════════════════════════════════════════════════════════════


async def upsert_otp(email: str, code: str, *, expires_at: float, now: float) -> None:
    """Store a fresh challenge for *email*, replacing any previous one."""
    db = get_db()
    await db.execute(
        """
        INSERT INTO otp_challenges (email, code, expires_at, is_used, created_at)
        VALUES (?, ?, ?, 0, ?)
        ON CONFLICT (email) DO UPDATE SET
            code = excluded.code,
            expires_at = excluded.expires_at,
            is_used = 0,
            created_at = excluded.created_at
        """,
        (email, code, expires_at, now),
    )
    await db.commit()


async def consume_otp(email: str, code: str, *, now: float) -> bool:
    """
    Mark the challenge used if it matches, is unused and unexpired.

    Returns True only for the single caller whose UPDATE changed the row.
    """
    db = get_db()
    cur = await db.execute(
        """
        UPDATE otp_challenges SET is_used = 1
        WHERE email = ? AND code = ? AND is_used = 0 AND expires_at > ?
        """,
        (email, code, now),
    )
    await db.commit()
    return cur.rowcount == 1


async def purge_otps(*, expired_before: float) -> int:
    """Delete challenges that expired before the given timestamp."""
    db = get_db()
    cur = await db.execute(
        "DELETE FROM otp_challenges WHERE expires_at < ?", (expired_before,)
    )
    await db.commit()
    return cur.rowcount


# ══════════════════════════════════════════════════════════════════════════
#                    RATE-LIMIT COUNTERS
# ══════════════════════════════════════════════════════════════════════════


async def hit_counter(
    client_key: str,
    endpoint: str,
    *,
    now: float,
    window_seconds: int,
    cap: int,
) -> tuple[int, float]:
    """
    Count one request and return ``(count, window_start)`` after the hit.

    Starts a new window when none exists or the current one has elapsed.
    The stored count saturates at *cap* so denied bursts don't grow it.
    SET expressions see the pre-update row, so reset and increment are
    decided against the same snapshot.
    """
    db = get_db()
    params = {
        "key": client_key,
        "endpoint": endpoint,
        "now": now,
        "window": window_seconds,
        "cap": cap,
    }
    rows = await db.execute_fetchall(
        """
        INSERT INTO rate_limits (client_key, endpoint, count, window_start, window_seconds)
        VALUES (:key, :endpoint, 1, :now, :window)
        ON CONFLICT (client_key, endpoint) DO UPDATE SET
            count = CASE
                WHEN :now - rate_limits.window_start >= :window THEN 1
                ELSE MIN(rate_limits.count + 1, :cap)
            END,
            window_start = CASE
                WHEN :now - rate_limits.window_start >= :window THEN :now
                ELSE rate_limits.window_start
            END,
            window_seconds = :window
        RETURNING count, window_start
        """,
        params,
    )
    await db.commit()
    row = list(rows)[0]
    return int(row["count"]), float(row["window_start"])


async def purge_counters(*, now: float) -> int:
    """Delete counters whose window has closed."""
    db = get_db()
    cur = await db.execute(
        "DELETE FROM rate_limits WHERE window_start + window_seconds <= ?", (now,)
    )
    await db.commit()
    return cur.rowcount


# ══════════════════════════════════════════════════════════════════════════
#                    USERS
# ══════════════════════════════════════════════════════════════════════════


async def get_user_by_email(email: str) -> User | None:
    db = get_db()
    async with db.execute("SELECT * FROM users WHERE email = ?", (email,)) as cur:
        row = await cur.fetchone()
    return _row_to_user(row) if row else None


async def get_or_create_user(email: str, *, name: str, role: str = "user") -> User:
    """Return the user for *email*, inserting it first if unseen."""
    db = get_db()
    await db.execute(
        """
        INSERT INTO users (email, name, role, created_at) VALUES (?, ?, ?, ?)
        ON CONFLICT (email) DO NOTHING
        """,
        (email, name, role, _now_iso()),
    )
    await db.commit()
    return await get_user_by_email(email)  # type: ignore[return-value]


# ══════════════════════════════════════════════════════════════════════════
#                    SCHOOLS
# ══════════════════════════════════════════════════════════════════════════


async def create_school(
    *,
    name: str,
    address: str,
    city: str,
    state: str,
    contact: str,
    email_id: str,
    image: str | None = None,
) -> School:
    """Insert a new school and return it."""
    db = get_db()
    now = _now_iso()
    cur = await db.execute(
        """
        INSERT INTO schools
            (name, address, city, state, contact, email_id, image, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (name, address, city, state, contact, email_id, image, now, now),
    )
    await db.commit()
    return await get_school(cur.lastrowid)  # type: ignore[return-value]


async def get_school(school_id: int) -> School | None:
    db = get_db()
    async with db.execute("SELECT * FROM schools WHERE id = ?", (school_id,)) as cur:
        row = await cur.fetchone()
    return _row_to_school(row) if row else None


async def list_schools() -> list[School]:
    """Return all schools, newest first."""
    db = get_db()
    async with db.execute("SELECT * FROM schools ORDER BY id DESC") as cur:
        rows = await cur.fetchall()
    return [_row_to_school(r) for r in rows]
