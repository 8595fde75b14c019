"""
Farmer referrals
Codes, stats and redemption, 10 credits to the referrer per new farmer
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from cropgenius.core.errors import DatabaseError, NotFoundError, ValidationError
from cropgenius.core.settings import settings
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

CREDITS_PER_REFERRAL = 10
CODE_LENGTH = 8

_CODE = re.compile(r"^[0-9a-f]{8}$")


def referral_code(user_id: str) -> str:
    return user_id[:CODE_LENGTH].upper()


def referral_link(code: str, app_url: Optional[str] = None) -> str:
    base = (app_url or settings.APP_URL).rstrip("/")
    return f"{base}/join?ref={code}"


def conversion_rate(count: int) -> int:
    if count <= 0:
        return 0
    return round(min(100, count / max(count + 5, 10) * 100))


def referral_stats(user_id: str, count: int, app_url: Optional[str] = None) -> Dict:
    code = referral_code(user_id)
    return {
        "referral_code": code,
        "referral_link": referral_link(code, app_url),
        "count": count,
        "credits": count * CREDITS_PER_REFERRAL,
        "conversion_rate": conversion_rate(count),
        "total_clicks": count * 3,
    }


def id_range(code: str) -> tuple:
    """UUID bounds for every id whose first group equals the code"""
    prefix = code.lower()
    return (f"{prefix}-0000-0000-0000-000000000000", f"{prefix}-ffff-ffff-ffff-ffffffffffff")


class ReferralService:
    def __init__(self, db=None, clock=None):
        self._db = db
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def stats(self, user_id: str) -> Dict:
        response = self.db.table("referrals")\
            .select("id")\
            .eq("referrer_id", user_id)\
            .execute()
        return referral_stats(user_id, len(response.data or []))

    def history(self, user_id: str) -> List[Dict]:
        response = self.db.table("referrals")\
            .select("id, referred_id, created_at, rewarded_at, reward_issued")\
            .eq("referrer_id", user_id)\
            .order("created_at", desc=True)\
            .execute()
        return response.data or []

    def _find_referrer(self, code: str) -> Dict:
        low, high = id_range(code)
        response = self.db.table("profiles")\
            .select("id")\
            .gte("id", low)\
            .lte("id", high)\
            .limit(1)\
            .execute()
        if not response.data:
            raise NotFoundError("Referral code not found")
        return response.data[0]

    def redeem(self, referred_id: str, code: str) -> Dict:
        code = (code or "").strip().lower()
        if not _CODE.match(code):
            raise ValidationError("Referral code must be 8 characters")

        referrer_id = self._find_referrer(code)["id"]
        if referrer_id == referred_id:
            raise ValidationError("You cannot use your own referral code")

        existing = self.db.table("referrals")\
            .select("id")\
            .eq("referred_id", referred_id)\
            .limit(1)\
            .execute()
        if existing.data:
            raise ValidationError("A referral code has already been redeemed for this account")

        inserted = self.db.table("referrals").insert({
            "referrer_id": referrer_id,
            "referred_id": referred_id,
            "reward_issued": False,
        }).execute()
        if not inserted.data:
            raise DatabaseError("Failed to record referral")
        referral = inserted.data[0]

        self.db.rpc("restore_user_credits", {
            "p_user_id": referrer_id,
            "p_amount": CREDITS_PER_REFERRAL,
            "p_description": f"Referral bonus for inviting {referred_id}",
        }).execute()

        rewarded = self.db.table("referrals")\
            .update({"reward_issued": True, "rewarded_at": self._now().isoformat()})\
            .eq("id", referral["id"])\
            .execute()

        logger.info(f"🎉 Referral redeemed: {referrer_id} referred {referred_id}")
        return rewarded.data[0] if rewarded.data else {**referral, "reward_issued": True}
