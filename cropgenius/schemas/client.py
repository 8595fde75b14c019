"""Pydantic schemas for client layout selection, referrals and WhatsApp"""

from pydantic import BaseModel
from typing import Optional, List, Dict, Literal

DeviceType = Literal["mobile", "tablet", "desktop", "ultrawide"]
LayoutMode = Literal["mobile", "tablet", "desktop"]


class LayoutDecision(BaseModel):
    device_type: DeviceType
    orientation: Literal["portrait", "landscape"]
    layout: LayoutMode
    source: Literal["forced", "mode", "auto"]
    breakpoints: Dict[str, int]


class ReferralStats(BaseModel):
    referral_code: str
    referral_link: str
    count: int
    credits: int
    conversion_rate: int
    total_clicks: int


class RedeemReferralRequest(BaseModel):
    code: str


class WhatsAppSendRequest(BaseModel):
    phone_number: str
    message: str
    insight_type: Optional[str] = "general"


class WhatsAppSendResponse(BaseModel):
    success: bool
    message_id: Optional[str] = None
    to: str


class WebhookResult(BaseModel):
    status: str = "success"
    processed_messages: int = 0
    processed_statuses: int = 0
    errors: List[str] = []
