"""
Shared test fixtures.

Provides a FastAPI TestClient wired to:
  • a temporary SQLite database (via app lifespan)
  • a recording email sender (no SMTP)
  • slowapi's coarse limiter switched off

The OTP rate limiter stays on: every test gets a fresh database, so its
counters start empty.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app import db
from app.config import SESSION_COOKIE_NAME
from app.main import app
from app.services.session import mint_token
from tests.mocks.models import MOCK_USER, RecordingSender


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def sender(monkeypatch) -> RecordingSender:
    """Replaces the email collaborator; inspect ``sender.sent``."""
    fake = RecordingSender()
    monkeypatch.setattr("app.services.email.send_otp_email", fake)
    return fake


@pytest.fixture()
def fixed_code(monkeypatch) -> str:
    """Makes every issued OTP equal to 123456."""
    monkeypatch.setattr("app.services.otp.generate_code", lambda: "123456")
    return "123456"


@pytest.fixture()
def _test_env(monkeypatch, tmp_path, sender):
    """
    Internal fixture that patches the DB path, storage backend and upload
    directory so the app lifespan runs cleanly against a temp database.
    """
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setattr("app.main.STORAGE_BACKEND", "sqlite")
    monkeypatch.setattr("app.services.images.UPLOAD_DIR", str(tmp_path / "uploads"))

    # ── Disable coarse rate limiting in tests ─────────────────────────
    from app.rate_limit import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)

    return sender


@pytest.fixture()
def client(_test_env) -> TestClient:
    """
    Anonymous TestClient. Uses a context manager so the lifespan runs
    (DB init/shutdown).
    """
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def authed_client(client: TestClient) -> TestClient:
    """TestClient carrying a valid session cookie for MOCK_USER."""
    client.cookies.set(SESSION_COOKIE_NAME, mint_token(MOCK_USER))
    return client


@pytest_asyncio.fixture()
async def sqlite_db(monkeypatch, tmp_path):
    """Open app.db against a temp file for store-level tests."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "store.db"))
    await db.init_db()
    yield db
    await db.close_db()
