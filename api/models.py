"""
API request and response models for the SessionGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Length caps here are transport guards only (reject absurd bodies early); the
real rules (email shape, password policy) live in auth/validation.py and are
reported as VALIDATION_ERROR results.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Identity

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignInRequest(BaseModel):
    """Request body for POST /api/v1/auth/sign-in."""

    # No str_strip_whitespace: whitespace is a legitimate password character.
    # The email is normalized by the core.
    email: str = Field(max_length=320)
    password: str = Field(max_length=1000, json_schema_extra={"format": "password"})


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh. The session is named by the JWT."""

    reset_token: str = Field(min_length=1, max_length=256)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/password."""

    current_password: str = Field(max_length=1000)
    new_password: str = Field(max_length=1000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityInfo(BaseModel):
    """Public view of an Identity. Never includes the password digest."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityInfo":
        return cls(id=identity.id, email=identity.email, name=identity.name)


class TokenResponse(BaseModel):
    """Returned by sign-in and refresh. The raw reset token is shown ONCE."""

    model_config = ConfigDict(frozen=True)

    access_token: str  # signed session JWT
    token_type: str = "bearer"
    session_id: str
    expires_at: datetime
    reset_token: str
    reset_expires_at: datetime
    identity: Optional[IdentityInfo] = None


class SessionResponse(BaseModel):
    """Response for GET /api/v1/auth/session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    identity: IdentityInfo


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload. code is an ErrorCode value or a transport code."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
