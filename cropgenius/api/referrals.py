"""
Referrals API Endpoints
"""

from functools import lru_cache

from fastapi import APIRouter, Depends

from cropgenius.core.auth import require_auth
from cropgenius.core.serializers import prepare_response
from cropgenius.schemas.client import RedeemReferralRequest, ReferralStats
from cropgenius.services.referrals_service import ReferralService

router = APIRouter()


@lru_cache()
def get_referral_service() -> ReferralService:
    return ReferralService()


@router.get("/stats", response_model=ReferralStats)
async def referral_stats(
    current_user: dict = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    return service.stats(current_user["id"])


@router.get("/history")
async def referral_history(
    current_user: dict = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    return prepare_response(service.history(current_user["id"]), id_fields=["id", "referred_id"])


@router.post("/redeem")
async def redeem_referral(
    body: RedeemReferralRequest,
    current_user: dict = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    """Redeem a friend's code. The friend earns 10 credits."""
    return prepare_response(service.redeem(current_user["id"], body.code), id_fields=["id", "referrer_id", "referred_id"])
