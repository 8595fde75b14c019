"""
WhatsApp farming assistant
Outbound insights and the inbound webhook: every farmer message gets a reply
routed by intent (help, weather, market prices, photos).
"""

import hashlib
import hmac
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Optional

from cropgenius.clients.whatsapp import WhatsAppClient
from cropgenius.core.errors import CropGeniusError, ForbiddenError, ValidationError
from cropgenius.core.settings import settings
from cropgenius.core.supabase import get_supabase
from cropgenius.services.market_service import BASE_PRICES, MarketService
from cropgenius.services.weather_service import DEFAULT_LAT, DEFAULT_LON, WeatherService

logger = logging.getLogger(__name__)

WEATHER_KEYWORDS = ("weather", "rain", "forecast", "temperature", "hali ya hewa", "mvua")
MARKET_KEYWORDS = ("price", "prices", "market", "sell", "bei", "soko")

HELP_TEXT = """🌱 *CropGenius* is here to help!

Send me:
• *weather*: today's conditions and forecast
• *price maize* (or beans, rice, tomato...): latest market prices
• A *photo* of a sick plant: how to scan it in the app
• *help*: this menu"""

IMAGE_TEXT = ("📸 Thanks for the photo! For an instant disease diagnosis, open CropGenius and use "
              "the crop scanner. It gives treatment steps and local product recommendations.")

ERROR_TEXT = """🤖 I'm sorry, I'm having trouble processing your request right now. Please try again in a few minutes.

Type "help" for more options."""

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """Digits only, keeping a leading '+'. Raises ValidationError unless 10-15 digits."""
    raw = (phone or "").strip()
    digits = _NON_DIGITS.sub("", raw)
    if not 10 <= len(digits) <= 15:
        raise ValidationError("Phone number must have 10 to 15 digits")
    return f"+{digits}" if raw.startswith("+") else digits


def detect_intent(message: Dict) -> str:
    if message.get("type") == "image":
        return "image"
    if message.get("type") == "location":
        return "weather"
    text = ((message.get("text") or {}).get("body") or "").lower().strip()
    if text in ("help", "menu", "hi", "hello", "start", "msaada"):
        return "help"
    if any(k in text for k in WEATHER_KEYWORDS):
        return "weather"
    if any(k in text for k in MARKET_KEYWORDS):
        return "market"
    return "general"


def mentioned_crop(text: str) -> str:
    lowered = (text or "").lower()
    return next((crop for crop in BASE_PRICES if re.search(rf"\b{crop}", lowered)), "maize")


def weather_summary(report: Dict) -> str:
    current = report["current"]
    lines = [
        f"🌤️ *Weather for {report['location']}*",
        f"Now: {current['temperature']}°C, {current['description']}",
        f"Humidity: {current['humidity']}%, wind {current['wind_speed']} km/h {current['wind_direction']}",
    ]
    upcoming = report.get("forecast") or []
    if upcoming:
        lines.append("")
        lines.append("Next days:")
        for day in upcoming[:3]:
            lines.append(
                f"• {day['date']}: {day['temp_min']}-{day['temp_max']}°C, "
                f"{day['description']} ({day['rain_probability']}% rain)"
            )
    return "\n".join(lines)


def market_summary(crop: str, prices: Dict) -> str:
    rows = prices.get("data") or []
    if not rows:
        return f"📊 No market prices found for {crop} right now."
    lines = [f"📊 *{crop.capitalize()} prices*"]
    for row in rows[:3]:
        lines.append(f"• {row['market_name']}: {row['currency']} {row['price']:,.0f} {row['unit']} ({row['trend']})")
    return "\n".join(lines)


class WhatsAppService:
    def __init__(self, db=None, client: Optional[WhatsAppClient] = None,
                 weather: Optional[WeatherService] = None, market: Optional[MarketService] = None,
                 verify_token: Optional[str] = None, app_secret: Optional[str] = None):
        self._db = db
        self.client = client or WhatsAppClient()
        self._weather = weather
        self._market = market
        self.verify_token = verify_token if verify_token is not None else settings.WHATSAPP_VERIFY_TOKEN
        self.app_secret = app_secret if app_secret is not None else settings.WHATSAPP_APP_SECRET

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    @property
    def weather(self) -> WeatherService:
        if self._weather is None:
            self._weather = WeatherService(db=self._db)
        return self._weather

    @property
    def market(self) -> MarketService:
        if self._market is None:
            self._market = MarketService(db=self._db)
        return self._market

    # ---- Outbound ----

    async def send_insight(self, phone: str, message: str, user_id: Optional[str] = None,
                           insight_type: str = "general") -> Dict:
        if not message:
            raise ValidationError("Message is required")
        to = normalize_phone(phone)

        result = await self.client.send_text(to.lstrip("+"), message)
        message_id = ((result.get("messages") or [{}])[0]).get("id")
        logger.info(f"📱 WhatsApp {insight_type} insight sent to {to}: {message_id}")

        try:
            self.db.table("whatsapp_messages").insert({
                "user_id": user_id,
                "phone_number": to,
                "message": message,
                "insight_type": insight_type,
                "message_id": message_id,
                "direction": "outbound",
                "sent_at": datetime.now(timezone.utc).isoformat(),
            }).execute()
        except Exception as e:
            logger.error(f"❌ Failed to log WhatsApp message: {e}")

        return {"success": True, "message_id": message_id, "to": to}

    # ---- Webhook ----

    def verify_webhook(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> str:
        if mode == "subscribe" and self.verify_token and token == self.verify_token:
            logger.info("✅ WhatsApp webhook verified successfully")
            return challenge or ""
        logger.error("❌ WhatsApp webhook verification failed")
        raise ForbiddenError("Webhook verification failed")

    def verify_signature(self, raw_body: bytes, header: Optional[str]) -> bool:
        if not self.app_secret:
            logger.warning("⚠️ WHATSAPP_APP_SECRET not configured, skipping signature check")
            return True
        expected = "sha256=" + hmac.new(self.app_secret.encode(), raw_body, hashlib.sha256).hexdigest()
        if not header or not hmac.compare_digest(expected, header):
            raise ForbiddenError("Invalid webhook signature")
        return True

    async def reply_for(self, message: Dict) -> str:
        intent = detect_intent(message)
        if intent == "help" or intent == "general":
            return HELP_TEXT
        if intent == "image":
            return IMAGE_TEXT
        if intent == "weather":
            location = message.get("location") or {}
            lat = location.get("latitude", DEFAULT_LAT)
            lon = location.get("longitude", DEFAULT_LON)
            return weather_summary(await self.weather.by_coordinates(float(lat), float(lon)))
        crop = mentioned_crop((message.get("text") or {}).get("body"))
        return market_summary(crop, await self.market.live_prices(crop))

    async def _process_message(self, message: Dict):
        sender = message.get("from")
        logger.info(f"📨 Processing {message.get('type')} message from {sender}")
        try:
            reply = await self.reply_for(message)
            await self.client.send_text(sender, reply)
        except Exception:
            try:
                await self.client.send_text(sender, ERROR_TEXT)
            except CropGeniusError as send_error:
                logger.error(f"❌ Failed to send error response: {send_error.message}")
            raise

    async def handle_webhook(self, payload: Dict) -> Dict:
        if payload.get("object") != "whatsapp_business_account":
            raise ValidationError(f"Invalid webhook object: {payload.get('object')}")

        result = {"status": "success", "processed_messages": 0, "processed_statuses": 0, "errors": []}
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                if change.get("field") != "messages":
                    continue
                value = change.get("value") or {}

                for message in value.get("messages") or []:
                    try:
                        await self._process_message(message)
                        result["processed_messages"] += 1
                    except Exception as e:
                        logger.error(f"❌ Error processing message {message.get('id')}: {e}")
                        result["errors"].append(f"{message.get('id')}: {e}")

                for status in value.get("statuses") or []:
                    logger.info(
                        f"📈 Message {status.get('id')} to {status.get('recipient_id')}: {status.get('status')}"
                    )
                    result["processed_statuses"] += 1

        return result
