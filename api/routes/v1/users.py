"""
api/routes/v1/users.py -- User management REST endpoints (admin only).

Routes:
  POST   /api/v1/users        -- create user (201, 409 on duplicate email)
  GET    /api/v1/users        -- list users in creation order
  GET    /api/v1/users/{id}   -- fetch one user (404 if unknown)
  PUT    /api/v1/users/{id}   -- partial update (404, 409)
  DELETE /api/v1/users/{id}   -- remove user; returns the removed record (404)

Every response is built from PublicUser through UserResponse, neither of
which has a password field. NotFound / Conflict raised by the store are
rendered by the AuthError handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import UserCreate, UserResponse, UserUpdate
from auth.dependencies import require_admin
from auth.models import Identity
from auth.store import UserStore

router = APIRouter()


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current: Identity = Depends(require_admin),
) -> UserResponse:
    """Create a user account. Admin only."""
    user = _store(request).create(body.name, body.email, body.password, body.role.value)
    return UserResponse.from_public(user)


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current: Identity = Depends(require_admin)) -> list[UserResponse]:
    """List all user accounts. Admin only."""
    return [UserResponse.from_public(u) for u in _store(request).list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, current: Identity = Depends(require_admin)) -> UserResponse:
    return UserResponse.from_public(_store(request).find_by_id(user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    current: Identity = Depends(require_admin),
) -> UserResponse:
    """Update name, email, password or role. Omitted fields are left as they are.

    Tokens already issued to this user keep their old name/email/role until
    they expire.
    """
    user = _store(request).update(
        user_id,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role.value if body.role is not None else None,
    )
    return UserResponse.from_public(user)


@router.delete("/users/{user_id}", response_model=UserResponse)
def delete_user(request: Request, user_id: int, current: Identity = Depends(require_admin)) -> UserResponse:
    return UserResponse.from_public(_store(request).remove(user_id))
