"""Main FastAPI application for the School Directory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app import db
from app.config import (
    LOG_LEVEL,
    OTP_PURGE_GRACE_SECONDS,
    OTP_PURGE_INTERVAL,
    STORAGE_BACKEND,
    UPLOAD_DIR,
    is_production,
)
from app.errors import install_error_handlers
from app.gate import install_request_gate
from app.rate_limit import RateLimiter, limiter
from app.routers import auth, health, pages, schools
from app.services import email as email_service
from app.services.background import ChallengeSweeper
from app.services.images import LOCAL_URL_PREFIX, build_image_uploader
from app.services.otp import OtpService
from app.services.session import SessionService
from app.services.stores import build_stores

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = STORAGE_BACKEND
    try:
        await db.init_db()
    except Exception:
        if is_production():
            raise
        logger.exception("Database unavailable, falling back to in-memory stores")
        backend = "memory"

    stores = build_stores(backend)
    logger.info("Auth state stored in %s backend", stores.backend)

    app.state.rate_limiter = RateLimiter(stores.counters)
    app.state.otp_service = OtpService(stores.otps, send_email=email_service.send_otp_email)
    app.state.session_service = SessionService(stores.users)
    app.state.image_uploader = build_image_uploader()

    sweeper = ChallengeSweeper(
        app.state.otp_service,
        app.state.rate_limiter,
        interval=OTP_PURGE_INTERVAL,
        grace_seconds=OTP_PURGE_GRACE_SECONDS,
    )
    await sweeper.start()

    yield

    await sweeper.stop()
    await app.state.image_uploader.close()
    await db.close_db()


app = FastAPI(
    title="School Directory",
    description="Register and browse schools; email-OTP login gates write access",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
install_error_handlers(app)
install_request_gate(app)

app.mount(
    LOCAL_URL_PREFIX,
    StaticFiles(directory=UPLOAD_DIR, check_dir=False),
    name="uploads",
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(schools.router)
app.include_router(pages.router)
