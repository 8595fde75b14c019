"""
Pesapal API 3.0 client
Token auth, IPN registration, order submission and transaction status
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from cropgenius.clients.base import APIClient
from cropgenius.core.errors import ConfigurationError, PaymentError
from cropgenius.core.settings import settings

logger = logging.getLogger(__name__)

# Used when Pesapal omits expiryDate (tokens live 5 minutes)
DEFAULT_TOKEN_LIFETIME = 4 * 60

STATUS_CODES = {0: "INVALID", 1: "COMPLETED", 2: "FAILED", 3: "REVERSED"}


def _parse_expiry(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        expiry = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry.timestamp()


def _ok(data: Dict) -> bool:
    return str(data.get("status")) == "200"


class PesapalClient(APIClient):
    service_name = "pesapal"
    error_class = PaymentError

    def __init__(self, consumer_key: str = None, consumer_secret: str = None,
                 base_url: str = None, clock=time.time, **kwargs):
        super().__init__(base_url or settings.pesapal_base_url, **kwargs)
        self.consumer_key = consumer_key if consumer_key is not None else settings.PESAPAL_CONSUMER_KEY
        self.consumer_secret = consumer_secret if consumer_secret is not None else settings.PESAPAL_CONSUMER_SECRET
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    async def request_token(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token

        if not self.consumer_key or not self.consumer_secret:
            raise ConfigurationError("Pesapal credentials not configured")

        data = await self.post_json("/api/Auth/RequestToken", {
            "consumer_key": self.consumer_key,
            "consumer_secret": self.consumer_secret,
        })
        token = data.get("token")
        if not token:
            message = (data.get("error") or {}).get("message") or data.get("message") or "no token returned"
            raise PaymentError(f"Pesapal authentication failed: {message}")

        expires_at = _parse_expiry(data.get("expiryDate"))
        self._token = token
        # Refresh 30s early
        self._token_expires_at = (expires_at - 30) if expires_at else self._clock() + DEFAULT_TOKEN_LIFETIME
        logger.info("🔑 Pesapal token acquired")
        return token

    async def _auth_headers(self) -> Dict:
        token = await self.request_token()
        return {"Authorization": f"Bearer {token}"}

    async def register_ipn(self, url: str, notification_type: str = "POST") -> Dict:
        data = await self.post_json(
            "/api/URLSetup/RegisterIPN",
            {"url": url, "ipn_notification_type": notification_type},
            headers=await self._auth_headers(),
        )
        if not _ok(data) or not data.get("ipn_id"):
            raise PaymentError(f"IPN registration failed: {data.get('message') or 'Unknown error'}")
        return data

    async def submit_order(self, order: Dict) -> Dict:
        data = await self.post_json(
            "/api/Transactions/SubmitOrderRequest",
            order,
            headers=await self._auth_headers(),
        )
        if not _ok(data) or not data.get("redirect_url"):
            error = data.get("error") or {}
            raise PaymentError(
                f"Order submission failed: {error.get('message') or data.get('message') or 'Unknown error'}"
            )
        return data

    async def get_transaction_status(self, order_tracking_id: str) -> Dict:
        data = await self.get_json(
            "/api/Transactions/GetTransactionStatus",
            params={"orderTrackingId": order_tracking_id},
            headers=await self._auth_headers(),
        )
        if not _ok(data):
            error = data.get("error") or {}
            raise PaymentError(
                f"Verification failed: {data.get('message') or error.get('message') or 'Unknown error'}"
            )
        return data
