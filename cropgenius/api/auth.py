"""
Auth API Endpoints
Farmers sign in through Supabase in the app; these endpoints only read the session
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cropgenius.core.auth import optional_auth, require_auth
from cropgenius.core.settings import settings

router = APIRouter()


class FarmerIdentity(BaseModel):
    id: str
    email: Optional[str] = None
    role: str = "authenticated"
    created_at: Optional[str] = None


class AuthStatus(BaseModel):
    enabled: bool
    provider: str = "supabase"
    websocket_url: str = "/ws"


class SessionState(BaseModel):
    authenticated: bool
    farmer: Optional[FarmerIdentity] = None


@router.get("/me", response_model=FarmerIdentity)
async def who_am_i(current_user: dict = Depends(require_auth)):
    """
    The signed-in farmer.

    **Requires a Supabase bearer token**
    """
    return FarmerIdentity(**current_user)


@router.get("/status", response_model=AuthStatus)
async def auth_status():
    """Whether sign-in can work at all (Supabase configured)"""
    return AuthStatus(enabled=bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY))


@router.get("/session", response_model=SessionState, response_model_exclude_none=True)
async def session_state(current_user: Optional[dict] = Depends(optional_auth)):
    """Never answers 401: the app uses this to pick between onboarding and the dashboard"""
    if not current_user:
        return SessionState(authenticated=False)
    return SessionState(authenticated=True, farmer=FarmerIdentity(**current_user))
