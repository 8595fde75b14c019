"""
Supabase JWT authentication dependencies
"""

import logging
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException, status

from cropgenius.core.context import user_id_var
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)


def _extract_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_user(token: str) -> Optional[Dict]:
    """Ask Supabase Auth who owns this JWT. Returns None for invalid tokens."""
    try:
        response = get_supabase().auth.get_user(token)
    except Exception as e:
        logger.warning(f"⚠️ Token verification failed: {e}")
        return None

    user = getattr(response, "user", None)
    if not user:
        return None

    created_at = getattr(user, "created_at", None)
    return {
        "id": str(user.id),
        "email": getattr(user, "email", None),
        "role": getattr(user, "role", None) or "authenticated",
        "created_at": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
    }


async def optional_auth(authorization: Optional[str] = Header(None)) -> Optional[Dict]:
    """Current user or None. Never raises."""
    token = _extract_token(authorization)
    if not token:
        return None
    user = resolve_user(token)
    if user:
        user_id_var.set(user["id"])
    return user


async def require_auth(current_user: Optional[Dict] = Depends(optional_auth)) -> Dict:
    """Current user, or 401"""
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user
