"""
Authentication endpoints – email OTP flow with JWT session cookies.
"""

from fastapi import APIRouter, Request, Response

from app.dependencies import CurrentUser, Limiter, OptionalUser, Otp, Sessions
from app.errors import AuthInvalid, DependencyFailure, RateLimited
from app.models import (
    AuthCheckResponse,
    AuthResponse,
    MessageResponse,
    SendOtpRequest,
    SessionPayload,
    VerifyOtpRequest,
)
from app.rate_limit import SEND_OTP, VERIFY_OTP, RateLimiter, client_key
from app.services.otp import require_email
from app.services.session import clear_session_cookies, set_session_cookie

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def _admit_or_429(
    limiter: RateLimiter, request: Request, response: Response, endpoint: str
) -> None:
    decision = await limiter.admit(client_key(request), endpoint)
    if not decision.allowed:
        raise RateLimited(
            decision.retry_after_seconds or 1,
            "Too many requests. Please try again later.",
            headers=decision.headers(),
        )
    for key, value in decision.headers().items():
        response.headers[key] = value


@router.post(
    "/send-otp",
    response_model=MessageResponse,
    operation_id="sendOtp",
    summary="Email a one-time passcode to the given address",
)
async def send_otp(
    request: Request,
    body: SendOtpRequest,
    response: Response,
    otp: Otp,
    limiter: Limiter,
) -> MessageResponse:
    """
    Generate a 6-digit OTP, store it, and send it via email.
    In dev mode (no SMTP configured), the OTP is printed to the console.
    """
    email = require_email(body.email)
    await _admit_or_429(limiter, request, response, SEND_OTP)

    result = await otp.issue(email)
    if not result.success:
        raise DependencyFailure(result.message)
    return MessageResponse(message=result.message)


@router.post(
    "/verify-otp",
    response_model=AuthResponse,
    operation_id="verifyOtp",
    summary="Verify OTP and receive a JWT session cookie",
)
async def verify_otp(
    request: Request,
    body: VerifyOtpRequest,
    response: Response,
    otp: Otp,
    limiter: Limiter,
    sessions: Sessions,
) -> AuthResponse:
    """
    Consume the OTP. On success, resolve or create the user, set a signed
    session cookie, and return the user info.
    """
    await _admit_or_429(limiter, request, response, VERIFY_OTP)

    result = await otp.verify(body.email, body.otp)
    if not result.success:
        raise AuthInvalid(result.message)

    session = await sessions.create_session(body.email, name=body.name)
    set_session_cookie(response, session.token)
    response.headers["Cache-Control"] = "no-store, max-age=0"
    return AuthResponse(message=result.message, user=session.user)


@router.post(
    "/logout",
    response_model=MessageResponse,
    operation_id="logout",
    summary="Clear the session cookie",
)
async def logout(response: Response) -> MessageResponse:
    clear_session_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/signout",
    response_model=MessageResponse,
    operation_id="signout",
    summary="Clear the session cookie (legacy alias of /logout)",
    include_in_schema=False,
)
async def signout(response: Response) -> MessageResponse:
    return await logout(response)


@router.get(
    "/check",
    response_model=AuthCheckResponse,
    operation_id="checkAuth",
    summary="Report whether the caller holds a valid session",
)
async def check(user: OptionalUser) -> AuthCheckResponse:
    return AuthCheckResponse(authenticated=user is not None, user=user)


@router.get(
    "/me",
    response_model=SessionPayload,
    operation_id="getMe",
    summary="Get current authenticated user info",
)
async def get_me(current_user: CurrentUser) -> SessionPayload:
    return current_user
