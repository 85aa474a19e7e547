"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login   -- email/password login; returns a bearer token
  GET  /api/v1/auth/me      -- identity carried by the caller's token

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  AuthService.login() returns the same InvalidCredentials for an unknown
  email and a wrong password; this route does not add any distinction.
  Cache-Control: no-store on login responses, success or failure.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import IdentityResponse, LoginRequest, LoginResponse
from auth.dependencies import get_current_identity
from auth.errors import InvalidCredentials
from auth.models import Identity
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/login: public -- login endpoint must be unauthenticated
# - GET  /api/v1/auth/me:    requires a bearer token (get_current_identity)
router = APIRouter()


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token and the user."""
    auth_service: AuthService = request.app.state.auth_service
    try:
        result = auth_service.login(body.email, body.password)
    except InvalidCredentials as exc:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": exc.code, "message": exc.message}},
            headers={"WWW-Authenticate": "Bearer"},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    user = result.user
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=result.expires_in,
            user=IdentityResponse(id=user.id, name=user.name, email=user.email, role=user.role.value),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=IdentityResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    """Return the identity snapshot carried by the caller's token."""
    return IdentityResponse.from_identity(identity)
