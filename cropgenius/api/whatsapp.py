"""
WhatsApp API Endpoints
Outbound farming insights and the WhatsApp Business webhook
"""

import json
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse

from cropgenius.core.auth import require_auth
from cropgenius.core.errors import ValidationError
from cropgenius.core.settings import settings
from cropgenius.schemas.client import WebhookResult, WhatsAppSendRequest, WhatsAppSendResponse
from cropgenius.services.whatsapp_service import WhatsAppService

router = APIRouter()


@lru_cache()
def get_whatsapp_service() -> WhatsAppService:
    return WhatsAppService()


@router.post("/send", response_model=WhatsAppSendResponse)
async def send_insight(
    body: WhatsAppSendRequest,
    current_user: dict = Depends(require_auth),
    service: WhatsAppService = Depends(get_whatsapp_service),
):
    return await service.send_insight(body.phone_number, body.message, current_user["id"], body.insight_type)


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    service: WhatsAppService = Depends(get_whatsapp_service),
):
    """Meta's subscription handshake: echo the challenge when the token matches"""
    return PlainTextResponse(service.verify_webhook(mode, token, challenge))


@router.post("/webhook", response_model=WebhookResult)
async def receive_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    service: WhatsAppService = Depends(get_whatsapp_service),
):
    raw = await request.body()
    service.verify_signature(raw, x_hub_signature_256)
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise ValidationError("Invalid JSON body")
    return await service.handle_webhook(payload)


@router.get("/health")
async def whatsapp_health():
    return {
        "webhook": "active",
        "whatsapp_configured": bool(settings.WHATSAPP_ACCESS_TOKEN and settings.WHATSAPP_PHONE_NUMBER_ID),
    }
