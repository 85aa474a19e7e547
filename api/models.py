"""
API request and response models for Keystone REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
No response model has a password field, so a sanitized view cannot grow one
by accident during serialization.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Identity, PublicUser

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Shape check only; deliverability is not our concern.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    user = "user"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=72)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=72)
    role: RoleEnum = RoleEnum.user


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=320, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    role: Optional[RoleEnum] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Sanitized user record."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: RoleEnum
    created_at: str
    updated_at: str

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(**user.to_dict())


class IdentityResponse(BaseModel):
    """The identity carried by the caller's token."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: RoleEnum

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(id=identity.id, name=identity.name, email=identity.email, role=identity.role.value)


class LoginResponse(BaseModel):
    """Response body for a successful login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: IdentityResponse


class DashboardResponse(BaseModel):
    """Response body for GET /api/v1/admin/dashboard."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: IdentityResponse
    timestamp: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

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
