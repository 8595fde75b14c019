import asyncio
import hashlib
import hmac
from unittest.mock import AsyncMock, MagicMock

import pytest

from cropgenius.core.errors import ForbiddenError, NetworkError, ValidationError
from cropgenius.services.whatsapp_service import (
    ERROR_TEXT,
    HELP_TEXT,
    IMAGE_TEXT,
    WhatsAppService,
    detect_intent,
    market_summary,
    mentioned_crop,
    normalize_phone,
)

REPORT = {
    "location": "Nairobi Region",
    "current": {"temperature": 24, "description": "partly cloudy", "humidity": 65,
                "wind_speed": 12, "wind_direction": "NE"},
    "forecast": [{"date": "2024-05-21", "temp_min": 15, "temp_max": 26,
                  "description": "light rain", "rain_probability": 70}],
}

PRICES = {"data": [{"market_name": "Wakulima", "currency": "KES", "price": 3500.0,
                    "unit": "per bag", "trend": "up"}]}


def _service(fake_db, app_secret="", verify_token="cg-verify"):
    client = MagicMock()
    client.send_text = AsyncMock(return_value={"messages": [{"id": "wamid.42"}]})
    weather = MagicMock(by_coordinates=AsyncMock(return_value=REPORT))
    market = MagicMock(live_prices=AsyncMock(return_value=PRICES))
    return WhatsAppService(db=fake_db, client=client, weather=weather, market=market,
                           verify_token=verify_token, app_secret=app_secret)


def _payload(*messages, statuses=()):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [
            {"field": "messages", "value": {"messages": list(messages), "statuses": list(statuses)}},
            {"field": "account_update", "value": {"messages": [{"id": "ignored"}]}},
        ]}],
    }


def _text(body, sender="254712345678", message_id="m1"):
    return {"id": message_id, "from": sender, "type": "text", "text": {"body": body}}


class TestHelpers:
    def test_normalize_phone(self):
        assert normalize_phone("+254 712 345 678") == "+254712345678"
        assert normalize_phone("0712-345-678") == "0712345678"
        with pytest.raises(ValidationError):
            normalize_phone("12345")

    @pytest.mark.parametrize("message,intent", [
        ({"type": "image"}, "image"),
        ({"type": "location", "location": {"latitude": 0.5, "longitude": 35.2}}, "weather"),
        (_text("Habari, msaada"), "general"),
        (_text("msaada"), "help"),
        (_text("Will it rain this week?"), "weather"),
        (_text("bei ya maharagwe"), "market"),
        (_text("Price of beans"), "market"),
        (_text("thanks!"), "general"),
    ])
    def test_detect_intent(self, message, intent):
        assert detect_intent(message) == intent

    def test_mentioned_crop(self):
        assert mentioned_crop("price of tomato today") == "tomato"
        assert mentioned_crop("prices please") == "maize"

    def test_market_summary(self):
        assert "Wakulima: KES 3,500 per bag (up)" in market_summary("beans", PRICES)
        assert market_summary("beans", {"data": []}).startswith("📊 No market prices")


class TestOutbound:
    def test_send_insight_logs_message(self, fake_db):
        service = _service(fake_db)
        result = asyncio.run(service.send_insight("+254 712 345 678", "Rain expected", "user-1", "weather"))

        assert result == {"success": True, "message_id": "wamid.42", "to": "+254712345678"}
        service.client.send_text.assert_awaited_once_with("254712345678", "Rain expected")
        logged = fake_db.payloads("whatsapp_messages", "insert")[0]
        assert logged["insight_type"] == "weather"
        assert logged["direction"] == "outbound"

    def test_send_insight_requires_message(self, fake_db):
        with pytest.raises(ValidationError):
            asyncio.run(_service(fake_db).send_insight("+254712345678", ""))


class TestWebhook:
    def test_verify_webhook(self, fake_db):
        service = _service(fake_db)
        assert service.verify_webhook("subscribe", "cg-verify", "12345") == "12345"
        with pytest.raises(ForbiddenError):
            service.verify_webhook("subscribe", "wrong", "12345")

    def test_signature(self, fake_db):
        body = b'{"object":"whatsapp_business_account"}'
        service = _service(fake_db, app_secret="s3cret")
        good = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
        assert service.verify_signature(body, good) is True
        with pytest.raises(ForbiddenError):
            service.verify_signature(body, "sha256=deadbeef")
        with pytest.raises(ForbiddenError):
            service.verify_signature(body, None)

    def test_signature_skipped_without_secret(self, fake_db):
        assert _service(fake_db).verify_signature(b"{}", None) is True

    def test_rejects_other_objects(self, fake_db):
        with pytest.raises(ValidationError):
            asyncio.run(_service(fake_db).handle_webhook({"object": "page"}))

    def test_routes_each_message(self, fake_db):
        service = _service(fake_db)
        location = {"id": "m3", "from": "254700000001", "type": "location",
                    "location": {"latitude": 0.52, "longitude": 35.27}}
        payload = _payload(
            _text("help", message_id="m1"),
            _text("price of tomato", message_id="m2"),
            location,
            {"id": "m4", "from": "254700000002", "type": "image"},
            statuses=[{"id": "s1", "recipient_id": "254712345678", "status": "delivered"}],
        )

        result = asyncio.run(service.handle_webhook(payload))

        assert result == {"status": "success", "processed_messages": 4, "processed_statuses": 1, "errors": []}
        replies = [c.args for c in service.client.send_text.await_args_list]
        assert replies[0] == ("254712345678", HELP_TEXT)
        assert "Tomato prices" in replies[1][1]
        assert "Weather for Nairobi Region" in replies[2][1]
        assert replies[3] == ("254700000002", IMAGE_TEXT)
        service.market.live_prices.assert_awaited_once_with("tomato")
        service.weather.by_coordinates.assert_awaited_once_with(0.52, 35.27)

    def test_failed_reply_sends_apology_and_records_error(self, fake_db):
        service = _service(fake_db)
        service.weather.by_coordinates = AsyncMock(side_effect=NetworkError("network down"))

        result = asyncio.run(service.handle_webhook(_payload(_text("weather today", message_id="m9"))))

        assert result["processed_messages"] == 0
        assert result["errors"] == ["m9: network down"]
        service.client.send_text.assert_awaited_once_with("254712345678", ERROR_TEXT)
