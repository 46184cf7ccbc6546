"""
Email service: sends one-time passcodes via SMTP.

In development (no SMTP configured), emails are printed to the console
so you can see what *would* be sent without configuring a mail server.
"""

from __future__ import annotations

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import (
    EMAIL_TIMEOUT_SECONDS,
    OTP_TTL_MINUTES,
    SMTP_FROM_EMAIL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
    smtp_enabled,
)

logger = logging.getLogger(__name__)

_SUBJECT = "Your OTP for School Management"


def _build_html_body(code: str, name: str) -> str:
    return f"""
    <html>
    <body style="font-family:sans-serif;color:#333">
      <h2>School Management verification code</h2>
      <p>Hello {name},</p>
      <p>Your one-time passcode is:</p>
      <p style="font-size:28px;font-weight:bold;letter-spacing:4px">{code}</p>
      <p>The code expires in {OTP_TTL_MINUTES} minutes and can be used once.</p>
      <p style="margin-top:1em;font-size:0.9em;color:#888">
        If you didn't request this code you can ignore this email.
      </p>
    </body>
    </html>
    """


async def send_otp_email(to_email: str, code: str, name: str = "User") -> bool:
    """
    Send (or log) an OTP email.

    Returns True when the message was handed to the SMTP server (or logged
    in console mode) and False on any delivery failure, including timeout.
    """
    # ── Console fallback (dev mode) ───────────────────────────────────
    if not smtp_enabled():
        logger.info(
            "📧 [DEV] Would send OTP email to %s (%s): code %s",
            to_email, name, code,
        )
        return True

    # ── Real SMTP send ────────────────────────────────────────────────
    import aiosmtplib

    msg = MIMEMultipart("alternative")
    msg["Subject"] = _SUBJECT
    msg["From"] = f"School Management <{SMTP_FROM_EMAIL}>"
    msg["To"] = to_email

    plain = (
        f"Hello {name},\n\nYour one-time passcode is {code}.\n"
        f"It expires in {OTP_TTL_MINUTES} minutes."
    )
    msg.attach(MIMEText(plain, "plain"))
    msg.attach(MIMEText(_build_html_body(code, name), "html"))

    try:
        await aiosmtplib.send(
            msg,
            hostname=SMTP_HOST,
            port=SMTP_PORT,
            username=SMTP_USERNAME,
            password=SMTP_PASSWORD,
            start_tls=SMTP_USE_TLS,
            timeout=EMAIL_TIMEOUT_SECONDS,
        )
    except aiosmtplib.SMTPTimeoutError:
        logger.error("Timed out sending OTP email to %s", to_email)
        return False
    except Exception:
        logger.exception("Failed to send OTP email to %s", to_email)
        return False

    logger.info("OTP email sent to %s", to_email)
    return True
