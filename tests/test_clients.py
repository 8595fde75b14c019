import asyncio
import json

import httpx
import pytest

from cropgenius.clients.base import APIClient
from cropgenius.clients.gemini import GeminiClient, extract_json, image_part
from cropgenius.clients.openweather import OpenWeatherClient
from cropgenius.clients.pesapal import PesapalClient
from cropgenius.clients.sentinel_hub import SentinelHubClient
from cropgenius.clients.whatsapp import WhatsAppClient
from cropgenius.core.errors import (
    AuthenticationError,
    ConfigurationError,
    CropGeniusError,
    ParsingError,
    PaymentError,
    RateLimitError,
    SatelliteDataError,
)
from cropgenius.core.retry import RetryConfig


def _http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _no_wait(delay):
    return None


class TestAPIClient:
    def test_5xx_is_wrapped_in_service_error(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(503, text="down")

        client = APIClient("https://api.test", http_client=_http(handler), retry=RetryConfig(max_retries=2),
                           sleep=_no_wait)
        with pytest.raises(CropGeniusError) as exc:
            asyncio.run(client.get_json("/x"))
        assert exc.value.status_code == 502
        assert exc.value.retryable
        assert calls == ["GET", "GET", "GET"]

    def test_get_recovers_from_a_transient_failure(self):
        responses = [httpx.Response(502), httpx.Response(200, json={"ok": True})]
        delays = []

        async def record(delay):
            delays.append(delay)

        client = APIClient("https://api.test", http_client=_http(lambda r: responses.pop(0)),
                           retry=RetryConfig(jitter=False), sleep=record)
        assert asyncio.run(client.get_json("/x")) == {"ok": True}
        assert delays == [1.0]

    def test_post_is_sent_once(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(503)

        client = APIClient("https://api.test", http_client=_http(handler), sleep=_no_wait)
        with pytest.raises(CropGeniusError):
            asyncio.run(client.post_json("/orders", {"amount": 999}))
        assert calls == ["POST"]

    def test_429_becomes_rate_limit(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(429)

        client = APIClient("https://api.test", http_client=_http(handler), sleep=_no_wait)
        with pytest.raises(RateLimitError):
            asyncio.run(client.get_json("/x"))
        assert len(calls) == 1

    def test_without_injected_client_each_call_gets_its_own(self, monkeypatch):
        opened = []
        real_client = httpx.AsyncClient

        def tracking_client(**kwargs):
            client = real_client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})), **kwargs)
            opened.append(client)
            return client

        monkeypatch.setattr(httpx, "AsyncClient", tracking_client)
        client = APIClient("https://api.test")
        asyncio.run(client.get_json("/a"))
        asyncio.run(client.get_json("/b"))

        assert len(opened) == 2
        assert all(c.is_closed for c in opened)
        assert opened[0].headers["User-Agent"] == "CropGenius-Africa/1.0"

    def test_401_becomes_authentication_error(self):
        client = APIClient("https://api.test", http_client=_http(lambda r: httpx.Response(401)))
        with pytest.raises(AuthenticationError):
            asyncio.run(client.get_json("/x"))

    def test_absolute_urls_bypass_base(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"ok": True})

        client = APIClient("https://api.test", http_client=_http(handler))
        asyncio.run(client.get_json("https://other.test/path"))
        asyncio.run(client.get_json("relative"))
        assert seen == ["https://other.test/path", "https://api.test/relative"]


class TestPesapalClient:
    def _client(self, handler, **kwargs):
        return PesapalClient(
            consumer_key="key", consumer_secret="secret",
            base_url="https://pay.test", http_client=_http(handler), **kwargs
        )

    def test_token_is_cached(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/api/Auth/RequestToken":
                return httpx.Response(200, json={"token": "tok", "expiryDate": "2999-01-01T00:00:00Z", "status": "200"})
            assert request.headers["Authorization"] == "Bearer tok"
            return httpx.Response(200, json={"status": "200", "ipn_id": "ipn-1"})

        client = self._client(handler)

        async def scenario():
            await client.register_ipn("https://cropgenius.africa/api/payments/ipn")
            await client.register_ipn("https://cropgenius.africa/api/payments/ipn")

        asyncio.run(scenario())
        assert calls.count("/api/Auth/RequestToken") == 1
        assert calls.count("/api/URLSetup/RegisterIPN") == 2

    def test_missing_credentials(self):
        client = PesapalClient(consumer_key="", consumer_secret="", base_url="https://pay.test")
        with pytest.raises(ConfigurationError):
            asyncio.run(client.request_token())

    def test_submit_order_requires_status_200(self):
        def handler(request):
            if request.url.path == "/api/Auth/RequestToken":
                return httpx.Response(200, json={"token": "tok"})
            return httpx.Response(200, json={"status": "500", "error": {"message": "Invalid amount"}})

        client = self._client(handler)
        with pytest.raises(PaymentError) as exc:
            asyncio.run(client.submit_order({"id": "CG-1"}))
        assert "Invalid amount" in exc.value.message

    def test_submit_order_is_never_resent(self):
        submitted = []

        def handler(request):
            if request.url.path == "/api/Auth/RequestToken":
                return httpx.Response(200, json={"token": "tok"})
            submitted.append(request.url.path)
            return httpx.Response(503)

        client = self._client(handler, sleep=_no_wait)
        with pytest.raises(PaymentError):
            asyncio.run(client.submit_order({"id": "CG-1"}))
        assert submitted == ["/api/Transactions/SubmitOrderRequest"]

    def test_transaction_status_query(self):
        def handler(request):
            if request.url.path == "/api/Auth/RequestToken":
                return httpx.Response(200, json={"token": "tok"})
            assert request.url.params["orderTrackingId"] == "track-1"
            return httpx.Response(200, json={"status": "200", "status_code": 1, "amount": 999})

        client = self._client(handler)
        data = asyncio.run(client.get_transaction_status("track-1"))
        assert data["status_code"] == 1


class TestGeminiClient:
    def test_generate_json_parses_fenced_answer(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "```json\n{\"crop\": \"maize\"}\n```"}]}}],
                "usageMetadata": {"totalTokenCount": 42},
            })

        client = GeminiClient(api_key="g-key", model="gemini-test", http_client=_http(handler))
        parsed, usage = asyncio.run(client.generate_json("Identify", extra_parts=[image_part("aGVsbG8=")]))

        assert parsed == {"crop": "maize"}
        assert usage == {"totalTokenCount": 42}
        assert "models/gemini-test:generateContent" in captured["url"]
        assert "key=g-key" in captured["url"]
        assert captured["body"]["contents"][0]["parts"][1]["inline_data"]["data"] == "aGVsbG8="

    def test_missing_candidates(self):
        client = GeminiClient(api_key="g-key", http_client=_http(lambda r: httpx.Response(200, json={})))
        with pytest.raises(ParsingError):
            asyncio.run(client.generate([{"text": "hi"}]))

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            asyncio.run(GeminiClient(api_key="").generate([{"text": "hi"}]))

    def test_extract_json_errors(self):
        with pytest.raises(ParsingError):
            extract_json("")
        with pytest.raises(ParsingError):
            extract_json("no json here")
        with pytest.raises(ParsingError):
            extract_json("{not: valid}")


class TestSentinelHubClient:
    def test_statistics_skip_cloudy_days(self):
        def handler(request):
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json={"access_token": "sh-token", "expires_in": 3600})
            assert request.headers["Authorization"] == "Bearer sh-token"
            return httpx.Response(200, json={"data": [
                {"interval": {"from": "2024-05-01T00:00:00Z"},
                 "outputs": {"ndvi": {"bands": {"B0": {"stats": {"mean": 0.61, "min": 0.2, "max": 0.8, "stDev": 0.1}}}}}},
                {"interval": {"from": "2024-05-02T00:00:00Z"},
                 "outputs": {"ndvi": {"bands": {"B0": {"stats": {"mean": float("nan")}}}}}},
            ]})

        client = SentinelHubClient(client_id="id", client_secret="secret", http_client=_http(handler))
        series = asyncio.run(client.ndvi_statistics([36.8, -1.3, 36.9, -1.2], "2024-05-01", "2024-05-30"))
        assert series == [{"date": "2024-05-01", "mean": 0.61, "min": 0.2, "max": 0.8, "stDev": 0.1}]

    def test_unconfigured(self):
        client = SentinelHubClient(client_id="", client_secret="")
        with pytest.raises(SatelliteDataError) as exc:
            asyncio.run(client.token())
        assert exc.value.status_code == 503
        assert not exc.value.retryable


class TestSmallClients:
    def test_openweather_uses_metric_units(self):
        def handler(request):
            assert request.url.path.endswith("/weather")
            assert request.url.params["units"] == "metric"
            assert request.url.params["appid"] == "ow-key"
            return httpx.Response(200, json={"main": {"temp": 24}})

        client = OpenWeatherClient(api_key="ow-key", http_client=_http(handler))
        assert asyncio.run(client.current(-1.29, 36.82)) == {"main": {"temp": 24}}

    def test_openweather_requires_key(self):
        with pytest.raises(ConfigurationError):
            asyncio.run(OpenWeatherClient(api_key="").forecast(0, 0))

    def test_whatsapp_send_text(self):
        def handler(request):
            assert request.url.path.endswith("/12345/messages")
            body = json.loads(request.content)
            assert body["to"] == "254712345678"
            assert body["text"] == {"body": "Hello"}
            return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

        client = WhatsAppClient(access_token="wa", phone_number_id="12345", http_client=_http(handler))
        result = asyncio.run(client.send_text("254712345678", "Hello"))
        assert result["messages"][0]["id"] == "wamid.1"

    def test_whatsapp_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            asyncio.run(WhatsAppClient(access_token="", phone_number_id="").send_text("1", "x"))
