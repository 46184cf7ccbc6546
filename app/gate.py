"""
Request gate. Decides, for every inbound request, whether a session is
required and what happens when it is missing.

  • API paths (/api/...)   → 401 JSON
  • page paths             → 303 redirect to /login?from=<original path>

Preflight requests never need a session, and API responses always carry
permissive CORS headers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from app.config import SESSION_COOKIE_NAME
from app.models import SessionPayload
from app.services.session import verify_token

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class Access(str, Enum):
    PUBLIC = "public"
    PROTECTED = "protected"


@dataclass(frozen=True)
class MixedRoute:
    prefix: str
    public_methods: frozenset[str]


# Matched exactly.
PUBLIC_PATHS = frozenset(
    {
        "/",
        LOGIN_PATH,
        "/login/verify",
        "/api/auth/send-otp",
        "/api/auth/verify-otp",
        "/api/auth/check",
        "/api/auth/logout",
        "/api/auth/signout",
        "/api/health",
        "/docs",
        "/openapi.json",
        "/favicon.ico",
    }
)

# Matched on a path-segment boundary.
PUBLIC_PREFIXES = ("/static", "/uploads")

_READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

MIXED_ROUTES = (
    MixedRoute("/api/schools", _READ_METHODS),
    MixedRoute("/schools", _READ_METHODS),
)


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def classify(path: str, method: str) -> Access:
    """Return whether *method* on *path* requires a session."""
    if path in PUBLIC_PATHS or any(_under(path, p) for p in PUBLIC_PREFIXES):
        return Access.PUBLIC
    for route in MIXED_ROUTES:
        if _under(path, route.prefix):
            return Access.PUBLIC if method.upper() in route.public_methods else Access.PROTECTED
    return Access.PROTECTED


def is_api_path(path: str) -> bool:
    return _under(path, "/api")


def extract_token(request: Request) -> str | None:
    """Session cookie first, then an ``Authorization: Bearer`` header."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("authorization", "")
    scheme, _, credentials = auth.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def login_redirect(request: Request) -> RedirectResponse:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return RedirectResponse(
        f"{LOGIN_PATH}?{urlencode({'from': target})}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


def _with_cors(response: Response) -> Response:
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


def install_request_gate(app: FastAPI) -> None:
    @app.middleware("http")
    async def _request_gate(request: Request, call_next):
        path = request.url.path
        method = request.method.upper()
        api = is_api_path(path)

        if method == "OPTIONS":
            if api:
                return _with_cors(Response(status_code=status.HTTP_204_NO_CONTENT))
            return await call_next(request)

        token = extract_token(request)
        user: SessionPayload | None = verify_token(token)
        request.state.user = user

        if user is None and classify(path, method) is Access.PROTECTED:
            if api:
                error = "Invalid or expired token" if token else "Authentication required"
                logger.info("Rejected %s %s: %s", method, path, error)
                return _with_cors(
                    JSONResponse(
                        status_code=status.HTTP_401_UNAUTHORIZED,
                        content={"success": False, "error": error},
                    )
                )
            logger.info("Redirecting unauthenticated %s %s to login", method, path)
            return login_redirect(request)

        response = await call_next(request)
        return _with_cors(response) if api else response
