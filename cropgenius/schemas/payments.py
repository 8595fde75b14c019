"""Pydantic schemas for Pesapal billing"""

from pydantic import BaseModel
from typing import Optional, Dict, Literal


class PlanDetails(BaseModel):
    plan_type: str
    amount: float
    name: str
    interval: Literal["monthly", "yearly"]


class InitiatePaymentRequest(BaseModel):
    plan_type: str
    redirect_url: Optional[str] = None


class InitiatePaymentResponse(BaseModel):
    success: bool = True
    payment_link: str
    order_tracking_id: str
    tx_ref: str
    amount: float
    currency: str = "KES"
    plan: PlanDetails


class VerifyPaymentRequest(BaseModel):
    order_tracking_id: Optional[str] = None
    merchant_reference: Optional[str] = None


class TransactionStatus(BaseModel):
    order_tracking_id: Optional[str] = None
    merchant_reference: Optional[str] = None
    status: Optional[str] = None
    status_code: Optional[int] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    payment_account: Optional[str] = None
    confirmation_code: Optional[str] = None
    created_date: Optional[str] = None
    description: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    verified: bool
    transaction: TransactionStatus
    payment_session: Optional[Dict] = None


class IPNNotification(BaseModel):
    notification_type: str
    order_tracking_id: str
    merchant_reference: str

    def acknowledgement(self) -> str:
        return (
            f"pesapal_notification_type={self.notification_type}"
            f"&pesapal_transaction_tracking_id={self.order_tracking_id}"
            f"&pesapal_merchant_reference={self.merchant_reference}"
        )


class IPNRegistrationResponse(BaseModel):
    success: bool = True
    notification_id: str
    ipn_url: Optional[str] = None
    message: str


class SubscriptionResponse(BaseModel):
    is_pro: bool
    plan_type: Optional[str] = None
    status: Optional[str] = None
    billing_cycle: Optional[str] = None
    current_period_end: Optional[str] = None
