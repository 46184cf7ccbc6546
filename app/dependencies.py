from typing import Annotated

from fastapi import Depends, Request, status

from app.errors import AuthInvalid
from app.models import SessionPayload
from app.rate_limit import RateLimiter
from app.services.images import ImageUploader
from app.services.otp import OtpService
from app.services.session import SessionService


# ── Services (built once in the app lifespan) ──────────────────────────────


def get_otp_service(request: Request) -> OtpService:
    return request.app.state.otp_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def get_image_uploader(request: Request) -> ImageUploader:
    return request.app.state.image_uploader


Otp = Annotated[OtpService, Depends(get_otp_service)]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Sessions = Annotated[SessionService, Depends(get_session_service)]
Images = Annotated[ImageUploader, Depends(get_image_uploader)]


# ── Session ────────────────────────────────────────────────────────────────


def get_optional_user(request: Request) -> SessionPayload | None:
    """The payload the request gate verified, if any."""
    return getattr(request.state, "user", None)


async def get_current_user(
    user: Annotated[SessionPayload | None, Depends(get_optional_user)],
) -> SessionPayload:
    if user is None:
        raise AuthInvalid(
            "Authentication required",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    return user


CurrentUser = Annotated[SessionPayload, Depends(get_current_user)]
OptionalUser = Annotated[SessionPayload | None, Depends(get_optional_user)]
