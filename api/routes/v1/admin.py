"""
api/routes/v1/admin.py -- Protected admin dashboard.

GET /api/v1/admin/dashboard requires a valid bearer token (any role) and
greets the caller by the name carried in the token.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.models import DashboardResponse, IdentityResponse
from auth.dependencies import get_current_identity
from auth.models import Identity

router = APIRouter()


@router.get("/admin/dashboard", response_model=DashboardResponse)
async def dashboard(identity: Identity = Depends(get_current_identity)) -> DashboardResponse:
    return DashboardResponse(
        message=f"Welcome to the admin dashboard, {identity.name}!",
        user=IdentityResponse.from_identity(identity),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
