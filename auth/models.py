"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store, token service and orchestrator do the work.

User vs PublicUser:
  User is the internal record and carries password_hash. It is returned by
  exactly one registry method (UserStore.find_by_email) and consumed only by
  AuthService. Every other registry method returns PublicUser, which has no
  hash field at all. PublicUser.from_user() is the single place the hash is
  dropped, so there is no second mapping to forget a field in.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    user = "user"


class LoginOutcome(str, Enum):
    """Internal result of a credential check.

    AuthService.login() collapses every non-SUCCESS value into one
    InvalidCredentials error at the boundary.
    """

    SUCCESS = "success"
    USER_NOT_FOUND = "user_not_found"
    PASSWORD_MISMATCH = "password_mismatch"
    CORRUPT_CREDENTIAL = "corrupt_credential"


@dataclass
class User:
    """Internal user record. Never serialize this to a response."""

    name: str
    email: str  # stored as given; uniqueness is exact-match
    password_hash: str
    role: Role = Role.user
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """Sanitized view of a User, safe to return to any caller."""

    id: int
    name: str
    email: str
    role: Role
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["role"] = self.role.value
        return data


@dataclass(frozen=True)
class TokenClaims:
    """Signed token payload.

    name/email/role are a snapshot taken at issuance. A later profile change
    or demotion does not alter tokens already issued; they keep the old values
    until expires_at.
    """

    subject: int
    name: str
    email: str
    role: Role
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class Identity:
    """The authenticated principal attached to a request."""

    id: int
    name: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: PublicUser
    expires_in: int
