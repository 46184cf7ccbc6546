"""
One-time passcode issuance and verification.

A challenge is a 6-digit code bound to an email address. Only the most
recently issued code for an address is ever valid, and a code can be
consumed exactly once before it expires.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from app.config import EMAIL_TIMEOUT_SECONDS, OTP_TTL_MINUTES
from app.errors import GENERIC_OTP_FAILURE, DependencyFailure, ValidationError
from app.services.email import send_otp_email
from app.services.stores import OtpStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CODE_RE = re.compile(r"[0-9]{6}")

SendOtp = Callable[[str, str, str], Awaitable[bool]]


@dataclass
class OtpResult:
    success: bool
    message: str


def normalize_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def require_email(raw: str | None) -> str:
    """Normalized address, or ValidationError if it is missing or malformed."""
    email = normalize_email(raw)
    if not email:
        raise ValidationError("Email is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    return email


def display_name(email: str) -> str:
    return email.split("@", 1)[0]


def generate_code() -> str:
    """Uniform 6-digit code in 100000–999999, kept as a string."""
    return str(100_000 + secrets.randbelow(900_000))


class OtpService:
    def __init__(
        self,
        store: OtpStore,
        send_email: SendOtp = send_otp_email,
        *,
        ttl: timedelta = timedelta(minutes=OTP_TTL_MINUTES),
        send_timeout: float = EMAIL_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._send_email = send_email
        self._ttl = ttl
        self._send_timeout = send_timeout
        self._clock = clock

    async def issue(self, raw_email: str | None) -> OtpResult:
        """
        Store a fresh code for the address and email it.

        A stored challenge whose email could not be delivered is still
        reported as a failure.
        """
        email = require_email(raw_email)
        code = generate_code()
        now = self._clock()
        try:
            await self._store.upsert(
                email, code, expires_at=now + self._ttl.total_seconds(), now=now
            )
        except Exception as exc:
            logger.exception("Failed to store OTP for %s", email)
            raise DependencyFailure() from exc

        try:
            sent = await asyncio.wait_for(
                self._send_email(email, code, display_name(email)),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("OTP dispatch to %s timed out after %.1fs", email, self._send_timeout)
            sent = False

        if not sent:
            return OtpResult(False, "Failed to send OTP")
        logger.info("OTP issued for %s", email)
        return OtpResult(True, "OTP sent successfully")

    async def verify(self, raw_email: str | None, raw_code: str | None) -> OtpResult:
        """
        Consume the challenge if the code matches and is still live.

        Every failure reads the same regardless of which check failed.
        """
        email = normalize_email(raw_email)
        code = str(raw_code or "").strip()
        if not EMAIL_RE.match(email) or not CODE_RE.fullmatch(code):
            return OtpResult(False, GENERIC_OTP_FAILURE)

        try:
            consumed = await self._store.consume(email, code, now=self._clock())
        except Exception as exc:
            logger.exception("Failed to verify OTP for %s", email)
            raise DependencyFailure() from exc

        if not consumed:
            return OtpResult(False, GENERIC_OTP_FAILURE)
        return OtpResult(True, "OTP verified successfully")

    async def purge(self, grace_seconds: float) -> int:
        """Delete challenges expired for longer than *grace_seconds*."""
        return await self._store.purge(expired_before=self._clock() - grace_seconds)
