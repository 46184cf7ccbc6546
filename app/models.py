"""Pydantic models for the School Directory API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Users & sessions ──────────────────────────────────────────────────────


class User(BaseModel):
    """A user is established purely by owning a mailbox."""
    id: int = Field(..., description="User identifier")
    email: str = Field(..., description="Unique email address")
    name: str = Field(..., description="Display name")
    role: str = Field(default="user", description="Authorization role")


class SessionPayload(BaseModel):
    """
    Claims carried by a session token.

    Decoded tokens are validated against this schema; a token missing
    ``userId``, ``email`` or ``role`` is treated as invalid.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")
    email: str = Field(..., min_length=3)
    role: str = Field(..., min_length=1)
    iat: Optional[int] = None
    exp: Optional[int] = None

    def claims(self) -> dict:
        return {"userId": self.user_id, "email": self.email, "role": self.role}


class SendOtpRequest(BaseModel):
    email: str = ""


class VerifyOtpRequest(BaseModel):
    email: str = ""
    otp: str = ""
    # Display name for a first-time user; defaults to the email local part.
    name: str = ""


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    user: User


class AuthCheckResponse(BaseModel):
    authenticated: bool
    user: Optional[SessionPayload] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime


# ── Schools ───────────────────────────────────────────────────────────────


class School(BaseModel):
    id: int
    name: str
    address: str
    city: str
    state: str
    contact: str
    email_id: str
    image: Optional[str] = None
    created_at: Optional[str] = None


class SchoolListResponse(BaseModel):
    success: bool = True
    data: List[School]


class SchoolResponse(BaseModel):
    success: bool = True
    data: School


class SchoolCreatedResponse(BaseModel):
    success: bool = True
    message: str
    data: dict
