"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")


def is_production() -> bool:
    return ENVIRONMENT == "production"


# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# SQLite database file
DB_PATH: str = os.getenv("DB_PATH", str(DATA_DIR / "school_directory.db"))

# "sqlite" (durable) or "memory" (ephemeral, single process only)
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "sqlite").lower()

# ── JWT / session cookie ──────────────────────────────────────────────────

JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me-in-production")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRY_SECONDS: int = int(os.getenv("JWT_EXPIRY_SECONDS", "86400"))

SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "school_management_token")
SESSION_COOKIE_SAMESITE: str = os.getenv("SESSION_COOKIE_SAMESITE", "lax").lower()

# Cookies set by older deployments; cleared on logout.
LEGACY_SESSION_COOKIES: tuple[str, ...] = ("session", "token")

# ── OTP ───────────────────────────────────────────────────────────────────

OTP_TTL_MINUTES: int = int(os.getenv("OTP_TTL_MINUTES", "15"))

# How often the sweeper purges stale challenges (seconds).
OTP_PURGE_INTERVAL: float = float(os.getenv("OTP_PURGE_INTERVAL", "3600"))

# Challenges are only purged once expired for at least this long.
OTP_PURGE_GRACE_SECONDS: int = int(os.getenv("OTP_PURGE_GRACE_SECONDS", "86400"))

# ── Rate limits ───────────────────────────────────────────────────────────

SEND_OTP_LIMIT: int = int(os.getenv("SEND_OTP_LIMIT", "3"))
SEND_OTP_WINDOW: int = int(os.getenv("SEND_OTP_WINDOW", "60"))
VERIFY_OTP_LIMIT: int = int(os.getenv("VERIFY_OTP_LIMIT", "5"))
VERIFY_OTP_WINDOW: int = int(os.getenv("VERIFY_OTP_WINDOW", "600"))

# ── SMTP ──────────────────────────────────────────────────────────────────

SMTP_HOST: str = os.getenv("SMTP_HOST", "")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", "noreply@schooldirectory.local")
SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

# Upper bound for one outbound email, connection included.
EMAIL_TIMEOUT_SECONDS: float = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

# Set to "false" to force console-only mode even when SMTP credentials are present.
# Handy for local development to avoid burning real SMTP quota.
_SMTP_ENABLED_OVERRIDE: str = os.getenv("SMTP_ENABLED", "auto")


def smtp_enabled() -> bool:
    """True when SMTP should actually send emails.

    Controlled by SMTP_ENABLED env var:
      • "auto" (default): send if credentials are configured
      • "true":  always send (will fail if credentials are missing)
      • "false": never send, print to console instead
    """
    if _SMTP_ENABLED_OVERRIDE.lower() == "false":
        return False
    if _SMTP_ENABLED_OVERRIDE.lower() == "true":
        return True
    # "auto": send only when credentials are fully configured
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


# ── Image uploads ─────────────────────────────────────────────────────────

CLOUDINARY_CLOUD_NAME: str = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY: str = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET: str = os.getenv("CLOUDINARY_API_SECRET", "")
CLOUDINARY_FOLDER: str = os.getenv("CLOUDINARY_FOLDER", "schools")

UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", str(PROJECT_ROOT / "uploads" / "schools"))
UPLOAD_TIMEOUT_SECONDS: float = float(os.getenv("UPLOAD_TIMEOUT_SECONDS", "15"))
MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))


def cloudinary_enabled() -> bool:
    return bool(CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET)
