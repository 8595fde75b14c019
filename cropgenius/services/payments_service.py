"""
Pesapal subscription billing
Order creation, IPN handling, payment verification and plan activation
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from cropgenius.clients.pesapal import PesapalClient, STATUS_CODES
from cropgenius.core.errors import (
    ConfigurationError, ForbiddenError, NotFoundError, PaymentError, ValidationError,
)
from cropgenius.core.events import event_manager
from cropgenius.core.settings import settings
from cropgenius.core.supabase import get_supabase
from cropgenius.schemas.payments import IPNNotification, PlanDetails

logger = logging.getLogger(__name__)

PLANS = {
    "pro": PlanDetails(plan_type="pro", amount=999, name="CropGenius Pro", interval="monthly"),
    "pro_annual": PlanDetails(plan_type="pro_annual", amount=9999, name="CropGenius Pro Annual", interval="yearly"),
}

IPN_ENVIRONMENT = "live"
PRO_CREDITS = 1000
AMOUNT_TOLERANCE = 0.01


def plan_for(plan_type: str) -> PlanDetails:
    """'pro' is monthly; anything else is billed as the annual plan"""
    if not plan_type:
        raise ValidationError("Plan type is required")
    if plan_type == "pro":
        return PLANS["pro"]
    return PLANS["pro_annual"]


def merchant_reference(user_id: str, now_ms: Optional[int] = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"CG-{user_id[:8]}-{now_ms}"


def split_name(full_name: str):
    parts = full_name.split(" ")
    first = parts[0] or full_name
    last = " ".join(parts[1:])
    return first, last


def transaction_status(data: Dict) -> str:
    description = (data.get("payment_status_description") or "").upper()
    if description:
        return description
    return STATUS_CODES.get(data.get("status_code"), "INVALID")


def matches_session(transaction: Dict, session: Dict, order_tracking_id: Optional[str]) -> bool:
    """The transaction was raised for this session's own order"""
    stored_tracking_id = (session.get("payment_data") or {}).get("pesapal_order_tracking_id")
    return (
        bool(stored_tracking_id)
        and order_tracking_id == stored_tracking_id
        and transaction.get("merchant_reference") == session.get("id")
    )


def is_verified(transaction: Dict, session: Dict, order_tracking_id: Optional[str]) -> bool:
    if not matches_session(transaction, session, order_tracking_id):
        return False
    completed = (
        (transaction.get("payment_status_description") or "").upper() == "COMPLETED"
        or transaction.get("status_code") == 1
    )
    try:
        amount = float(transaction.get("amount"))
    except (TypeError, ValueError):
        return False
    return (
        completed
        and transaction.get("currency") == "KES"
        and abs(amount - float(session.get("amount") or 0)) <= AMOUNT_TOLERANCE
    )


def parse_ipn(method: str, query: Dict, body: Optional[Dict]) -> IPNNotification:
    """
    GET notifications carry OrderTrackingId/OrderMerchantReference and are always CHANGE.
    POST notifications carry the pesapal_* fields.
    """
    if method.upper() == "GET":
        tracking_id = query.get("OrderTrackingId")
        reference = query.get("OrderMerchantReference")
        notification_type = query.get("OrderNotificationType") or "CHANGE"
    else:
        body = body or {}
        tracking_id = body.get("pesapal_transaction_tracking_id") or body.get("OrderTrackingId")
        reference = body.get("pesapal_merchant_reference") or body.get("OrderMerchantReference")
        notification_type = body.get("pesapal_notification_type") or body.get("OrderNotificationType")

    if not tracking_id or not reference:
        raise ValidationError("Missing parameters")

    return IPNNotification(
        notification_type=notification_type or "CHANGE",
        order_tracking_id=tracking_id,
        merchant_reference=reference,
    )


class PaymentService:
    """
    Pesapal checkout for CropGenius Pro.
    """

    def __init__(self, db=None, pesapal: Optional[PesapalClient] = None, events=None, clock=None):
        self._db = db
        self.pesapal = pesapal or PesapalClient()
        self.events = events or event_manager
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    # ---------------------------------------------------------------- logging

    def log_event(self, event_type: str, data: Dict):
        try:
            self.db.table("payment_logs").insert({
                "event_type": event_type,
                "event_data": data,
                "timestamp": self._now().isoformat(),
            }).execute()
        except Exception as e:
            logger.error(f"❌ Failed to log payment event {event_type}: {e}")

    # -------------------------------------------------------------------- IPN

    def _stored_ipn(self) -> Optional[Dict]:
        response = self.db.table("pesapal_ipn_urls")\
            .select("*")\
            .eq("environment", IPN_ENVIRONMENT)\
            .limit(1)\
            .execute()
        return response.data[0] if response.data else None

    async def register_ipn(self, ipn_url: Optional[str] = None) -> Dict:
        existing = self._stored_ipn()
        if existing and existing.get("notification_id"):
            logger.info(f"ℹ️ IPN URL already registered: {existing['notification_id']}")
            return {
                "success": True,
                "notification_id": existing["notification_id"],
                "ipn_url": existing.get("ipn_url"),
                "message": "IPN URL already registered",
            }

        ipn_url = ipn_url or settings.PESAPAL_IPN_URL
        if not ipn_url:
            raise ConfigurationError("PESAPAL_IPN_URL not configured")

        result = await self.pesapal.register_ipn(ipn_url, "POST")
        notification_id = result["ipn_id"]

        self.db.table("pesapal_ipn_urls").upsert({
            "notification_id": notification_id,
            "ipn_url": ipn_url,
            "environment": IPN_ENVIRONMENT,
            "created_at": self._now().isoformat(),
        }, on_conflict="environment").execute()

        logger.info(f"✅ IPN URL registered: {notification_id}")
        return {
            "success": True,
            "notification_id": notification_id,
            "ipn_url": ipn_url,
            "message": "IPN URL registered successfully",
        }

    # ---------------------------------------------------------------- orders

    def _customer(self, user: Dict):
        response = self.db.table("profiles")\
            .select("full_name, email")\
            .eq("id", user["id"])\
            .limit(1)\
            .execute()
        profile = response.data[0] if response.data else {}
        email = profile.get("email") or user.get("email") or ""
        name = profile.get("full_name") or (email.split("@")[0] if email else "") or "Customer"
        return name, email

    async def initiate_payment(self, user: Dict, plan_type: str,
                               redirect_url: Optional[str] = None, origin: Optional[str] = None) -> Dict:
        plan = plan_for(plan_type)
        name, email = self._customer(user)
        if not email:
            raise ValidationError("Customer email and name are required")

        ipn = self._stored_ipn()
        if not ipn or not ipn.get("notification_id"):
            raise PaymentError("IPN URL not registered. Please register IPN URL first.")

        reference = merchant_reference(user["id"])
        first_name, last_name = split_name(name)
        callback = redirect_url or f"{origin or settings.APP_URL}/upgrade?upgrade=success"

        order = {
            "id": reference,
            "currency": "KES",
            "amount": plan.amount,
            "description": f"{plan.name} - {plan.interval} billing",
            "callback_url": callback,
            "notification_id": ipn["notification_id"],
            "branch": "CropGenius",
            "billing_address": {
                "email_address": email,
                "phone_number": "",
                "country_code": "KE",
                "first_name": first_name,
                "middle_name": "",
                "last_name": last_name,
                "line_1": "",
                "line_2": "",
                "city": "",
                "state": "",
                "postal_code": "",
                "zip_code": "",
            },
        }

        logger.info(f"💳 Submitting Pesapal order {reference} ({plan.name})")
        result = await self.pesapal.submit_order(order)
        tracking_id = result.get("order_tracking_id")
        if not tracking_id:
            raise PaymentError(f"Pesapal returned no order tracking id for {reference}")

        self.db.table("payment_sessions").insert({
            "id": reference,
            "user_id": user["id"],
            "amount": plan.amount,
            "currency": "KES",
            "plan_type": plan.plan_type,
            "status": "pending",
            "payment_data": {
                "pesapal_redirect_url": result["redirect_url"],
                "pesapal_order_tracking_id": tracking_id,
                "plan_details": plan.model_dump(),
                "payment_method": "pesapal",
            },
        }).execute()

        logger.info(f"✅ Payment session created: {reference}")
        return {
            "success": True,
            "payment_link": result["redirect_url"],
            "order_tracking_id": tracking_id,
            "tx_ref": reference,
            "amount": plan.amount,
            "currency": "KES",
            "plan": plan.model_dump(),
        }

    # ---------------------------------------------------------- verification

    def _session(self, reference: str) -> Optional[Dict]:
        response = self.db.table("payment_sessions")\
            .select("*")\
            .eq("id", reference)\
            .limit(1)\
            .execute()
        return response.data[0] if response.data else None

    def complete_session(self, session: Dict, transaction: Dict, order_tracking_id: Optional[str]) -> bool:
        """Mark paid, activate Pro and grant credits. No-op for already completed sessions."""
        if session.get("status") == "completed":
            return False

        now = self._now()
        # Conditional on the stored status: only one concurrent caller gets the row back
        claimed = self.db.table("payment_sessions").update({
            "status": "completed",
            "completed_at": now.isoformat(),
            "pesapal_data": transaction,
        }).eq("id", session["id"]).neq("status", "completed").execute()
        if not claimed.data:
            logger.info(f"ℹ️ Payment session {session['id']} was already completed")
            session["status"] = "completed"
            return False

        annual = session.get("plan_type") == "pro_annual"
        period_end = now + timedelta(days=365 if annual else 30)

        self.db.table("user_plans").upsert({
            "user_id": session["user_id"],
            "plan_type": "pro",
            "status": "active",
            "current_period_start": now.isoformat(),
            "current_period_end": period_end.isoformat(),
            "pesapal_order_tracking_id": order_tracking_id,
            "billing_cycle": "yearly" if annual else "monthly",
        }, on_conflict="user_id").execute()

        self.db.rpc("restore_user_credits", {
            "p_user_id": session["user_id"],
            "p_amount": PRO_CREDITS,
            "p_description": f"Pro subscription activated via Pesapal - {session.get('plan_type')}",
        }).execute()

        session["status"] = "completed"
        logger.info(f"✅ Pro plan activated for user {session['user_id']} until {period_end.date()}")
        return True

    async def verify_payment(self, user: Dict, order_tracking_id: Optional[str] = None,
                             merchant_reference: Optional[str] = None) -> Dict:
        if not order_tracking_id and not merchant_reference:
            raise ValidationError("Order tracking ID or merchant reference is required")

        session = self._session(merchant_reference) if merchant_reference else None
        if order_tracking_id is None and session:
            order_tracking_id = (session.get("payment_data") or {}).get("pesapal_order_tracking_id")
        if not order_tracking_id:
            raise NotFoundError("Payment session not found")

        transaction = await self.pesapal.get_transaction_status(order_tracking_id)
        reference = merchant_reference or transaction.get("merchant_reference")
        if session is None and reference:
            session = self._session(reference)
        if not session:
            logger.error(f"❌ Payment session not found for reference: {reference}")
            raise NotFoundError("Payment session not found")
        if session.get("user_id") != user["id"]:
            raise ForbiddenError("Payment session belongs to another user")

        verified = is_verified(transaction, session, order_tracking_id)
        if verified:
            self.complete_session(session, transaction, order_tracking_id)

        return {
            "success": True,
            "verified": verified,
            "transaction": {
                "order_tracking_id": order_tracking_id,
                "merchant_reference": transaction.get("merchant_reference"),
                "status": transaction_status(transaction),
                "status_code": transaction.get("status_code"),
                "amount": transaction.get("amount"),
                "currency": transaction.get("currency"),
                "payment_method": transaction.get("payment_method"),
                "payment_account": transaction.get("payment_account"),
                "confirmation_code": transaction.get("confirmation_code"),
                "created_date": transaction.get("created_date"),
                "description": transaction.get("description"),
            },
            "payment_session": session,
        }

    async def process_status_change(self, order_tracking_id: str, merchant_reference: str) -> Dict:
        self.log_event("status_check_started", {"trackingId": order_tracking_id})

        transaction = await self.pesapal.get_transaction_status(order_tracking_id)
        status = transaction_status(transaction)
        self.log_event("pesapal_status_received", {"trackingId": order_tracking_id, "status": status})

        session = self._session(merchant_reference)
        if not session:
            self.log_event("session_not_found", {"merchantReference": merchant_reference})
            raise NotFoundError("Payment session not found")

        if not matches_session(transaction, session, order_tracking_id):
            logger.warning(f"⚠️ Transaction {order_tracking_id} does not belong to session {merchant_reference}")
            self.log_event("transaction_mismatch", {
                "trackingId": order_tracking_id,
                "merchantReference": merchant_reference,
                "transactionReference": transaction.get("merchant_reference"),
            })
            return {"status": status, "activated": False}

        activated = False
        if is_verified(transaction, session, order_tracking_id):
            activated = self.complete_session(session, transaction, order_tracking_id)
            if activated:
                self.log_event("subscription_activated", {
                    "trackingId": order_tracking_id,
                    "userId": session["user_id"],
                    "planType": session.get("plan_type"),
                })
        elif status in ("FAILED", "REVERSED", "INVALID") and session.get("status") != "completed":
            self.db.table("payment_sessions").update({
                "status": status.lower(),
                "pesapal_data": transaction,
            }).eq("id", merchant_reference).neq("status", "completed").execute()

        await self.events.notify(session["user_id"], "payment_status", {
            "merchant_reference": merchant_reference,
            "status": status,
            "activated": activated,
        })
        return {"status": status, "activated": activated}

    async def handle_ipn(self, notification: IPNNotification) -> str:
        """Process a Pesapal notification. Always answers with Pesapal's acknowledgement format."""
        self.log_event("ipn_parsed", notification.model_dump())

        if notification.notification_type == "CHANGE":
            try:
                await self.process_status_change(notification.order_tracking_id, notification.merchant_reference)
            except Exception as e:
                logger.error(f"❌ IPN processing failed for {notification.order_tracking_id}: {e}")
                self.log_event("status_update_failed", {
                    "trackingId": notification.order_tracking_id,
                    "error": str(e),
                })
        else:
            self.log_event("ipn_ignored", {
                "reason": "Not a CHANGE notification",
                "notificationType": notification.notification_type,
                "orderTrackingId": notification.order_tracking_id,
            })

        return notification.acknowledgement()

    # ------------------------------------------------------------ subscription

    def get_subscription(self, user_id: str) -> Dict:
        response = self.db.table("user_plans")\
            .select("*")\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        plan = response.data[0] if response.data else None
        if not plan:
            return {"is_pro": False}

        is_pro = False
        period_end = plan.get("current_period_end")
        if plan.get("status") == "active" and period_end:
            try:
                end = datetime.fromisoformat(str(period_end).replace("Z", "+00:00"))
                if end.tzinfo is None:
                    end = end.replace(tzinfo=timezone.utc)
                is_pro = end > self._now()
            except ValueError:
                logger.warning(f"⚠️ Unreadable plan end date for user {user_id}: {period_end}")

        return {
            "is_pro": is_pro,
            "plan_type": plan.get("plan_type"),
            "status": plan.get("status"),
            "billing_cycle": plan.get("billing_cycle"),
            "current_period_end": str(period_end) if period_end else None,
        }
