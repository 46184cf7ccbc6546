"""
Application error taxonomy.

Every error raised deliberately by the services derives from AppError and
carries the HTTP status and the message the client is allowed to see.
`install_error_handlers` renders them as ``{"success": false, "error": ...}``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

GENERIC_OTP_FAILURE = "Invalid or expired OTP"


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"success": False, "error": self.message}

    def headers(self) -> dict[str, str] | None:
        return None


class ValidationError(AppError):
    """Malformed user input (email shape, missing form fields)."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests. Please try again later."

    def __init__(
        self,
        retry_after: int,
        message: str | None = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after = max(int(retry_after), 1)
        self._headers = dict(headers or {})

    def to_body(self) -> dict:
        return {**super().to_body(), "retryAfter": self.retry_after}

    def headers(self) -> dict[str, str]:
        return {**self._headers, "Retry-After": str(self.retry_after)}


class AuthInvalid(AppError):
    """Wrong, used or expired OTP, or an invalid/expired token."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = GENERIC_OTP_FAILURE

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class DependencyFailure(AppError):
    """Storage, email or upload collaborator failed. Details stay in the log."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, DependencyFailure):
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.__cause__ or exc,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(),
        headers=exc.headers(),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
