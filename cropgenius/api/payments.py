"""
Payments API Endpoints
Pesapal checkout for CropGenius Pro, payment verification and the IPN callback
"""

import json
from functools import lru_cache
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from cropgenius.core.auth import require_auth
from cropgenius.core.errors import ValidationError
from cropgenius.schemas.payments import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    IPNRegistrationResponse,
    SubscriptionResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from cropgenius.services.payments_service import PaymentService, parse_ipn

router = APIRouter()


@lru_cache()
def get_payment_service() -> PaymentService:
    return PaymentService()


@router.post("/register-ipn", response_model=IPNRegistrationResponse)
async def register_ipn(
    current_user: dict = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    """Register (once) the IPN callback URL with Pesapal"""
    return await service.register_ipn()


@router.post("/initiate", response_model=InitiatePaymentResponse)
async def initiate_payment(
    body: InitiatePaymentRequest,
    request: Request,
    current_user: dict = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Start a Pesapal checkout for a Pro plan.
    Returns the hosted payment page URL.
    """
    return await service.initiate_payment(
        current_user,
        body.plan_type,
        redirect_url=body.redirect_url,
        origin=request.headers.get("origin"),
    )


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    body: VerifyPaymentRequest,
    current_user: dict = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    """Check a payment with Pesapal and activate Pro when it completed"""
    return await service.verify_payment(
        current_user,
        order_tracking_id=body.order_tracking_id,
        merchant_reference=body.merchant_reference,
    )


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    current_user: dict = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_subscription(current_user["id"])


async def _ipn_body(request: Request) -> dict:
    raw = await request.body()
    if not raw:
        return {}
    if "application/json" in request.headers.get("content-type", ""):
        try:
            data = json.loads(raw)
        except ValueError:
            raise ValidationError("Invalid JSON body")
        return data if isinstance(data, dict) else {}
    return {k: v[0] for k, v in parse_qs(raw.decode()).items()}


@router.api_route("/ipn", methods=["GET", "POST"], response_class=PlainTextResponse)
async def pesapal_ipn(request: Request, service: PaymentService = Depends(get_payment_service)):
    """
    Pesapal Instant Payment Notification.
    Answers with the plain-text acknowledgement Pesapal expects.
    """
    body = await _ipn_body(request) if request.method == "POST" else None
    service.log_event("ipn_received", {"method": request.method, "query": dict(request.query_params), "body": body})
    notification = parse_ipn(request.method, dict(request.query_params), body)
    return PlainTextResponse(await service.handle_ipn(notification))
