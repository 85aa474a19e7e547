"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The request authenticator: reads "Authorization: Bearer <token>", hands the
token to AuthService.authenticate(), and attaches the resulting Identity to
request.state.identity for downstream handlers.

get_current_identity() raises InvalidCredentials (401) when the header is
missing or the token does not verify, Forbidden (403) when the token verifies
but its payload is incomplete.
require_admin() wraps it and raises Forbidden (403) for non-admin identities.

Both raise auth/ errors rather than HTTPException; api/main.py renders them
through the shared error envelope.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import Forbidden, InvalidCredentials
from auth.models import Identity
from auth.service import AuthService


def _bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_identity(request: Request) -> Identity:
    """Require a valid bearer token. Use as a FastAPI dependency:

    @router.get("/protected")
    async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise InvalidCredentials("Authentication required.")
    auth_service: AuthService = request.app.state.auth_service
    identity = auth_service.authenticate(token)
    request.state.identity = identity
    return identity


def require_admin(request: Request) -> Identity:
    """Require an admin identity. 401 if unauthenticated, 403 if not admin."""
    identity = get_current_identity(request)
    if not identity.is_admin:
        raise Forbidden("Admin access required.")
    return identity
