"""
Session tokens: signed, time-boxed JWTs carried in an HTTP-only cookie.

Tokens are stateless: nothing is stored server-side, so logout only clears
the cookie and a token stays valid until its own expiry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response
from pydantic import ValidationError

from app.config import (
    ENVIRONMENT,
    JWT_ALGORITHM,
    JWT_EXPIRY_SECONDS,
    JWT_SECRET,
    LEGACY_SESSION_COOKIES,
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SAMESITE,
)
from app.errors import DependencyFailure
from app.models import SessionPayload, User
from app.services.otp import display_name, normalize_email
from app.services.stores import UserStore

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"


# ── Tokens ─────────────────────────────────────────────────────────────────


def mint_token(
    user: User,
    *,
    expires_in: timedelta = timedelta(seconds=JWT_EXPIRY_SECONDS),
    now: datetime | None = None,
) -> str:
    """Sign a token carrying the user's id, email and role."""
    issued_at = now or datetime.now(UTC)
    payload = {
        "userId": user.id,
        "email": user.email,
        "role": user.role,
        "iat": issued_at,
        "exp": issued_at + expires_in,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str | None) -> SessionPayload | None:
    """
    Decode and validate a session token.

    Returns None for a missing, tampered, expired or structurally
    incomplete token. Never raises.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired session token")
        return None
    except jwt.PyJWTError as exc:
        logger.debug("Rejected session token: %s", exc)
        return None

    try:
        return SessionPayload.model_validate(claims)
    except ValidationError:
        logger.warning("Rejected session token with incomplete claims")
        return None


# ── Cookies ────────────────────────────────────────────────────────────────


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite=SESSION_COOKIE_SAMESITE,
        secure=ENVIRONMENT == "production",
        path="/",
        max_age=JWT_EXPIRY_SECONDS,
    )


def clear_session_cookies(response: Response) -> None:
    """Expire the session cookie and any cookie names used previously."""
    for name in (SESSION_COOKIE_NAME, *LEGACY_SESSION_COOKIES):
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            samesite=SESSION_COOKIE_SAMESITE,
            secure=ENVIRONMENT == "production",
        )


# ── Sessions ───────────────────────────────────────────────────────────────


@dataclass
class Session:
    user: User
    token: str


class SessionService:
    def __init__(self, users: UserStore) -> None:
        self._users = users

    async def create_session(self, raw_email: str, name: str | None = None) -> Session:
        """
        Resolve (or create) the user behind a verified email and mint a token.

        *name* only applies when the user is created; existing users keep
        theirs.
        """
        email = normalize_email(raw_email)
        try:
            user = await self._users.get_or_create(
                email, name=(name or "").strip() or display_name(email), role=DEFAULT_ROLE
            )
        except Exception as exc:
            logger.exception("Failed to resolve user for %s", email)
            raise DependencyFailure() from exc
        logger.info("Session created for user %s (%s)", user.id, user.email)
        return Session(user=user, token=mint_token(user))
