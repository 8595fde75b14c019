import httpx

from cropgenius.core.errors import (
    AuthenticationError,
    CropGeniusError,
    DatabaseError,
    ErrorCode,
    GeminiAPIError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    SatelliteDataError,
    WeatherDataError,
    classify_error,
    user_friendly_message,
)


def _status_error(status, headers=None):
    request = httpx.Request("GET", "https://example.com")
    response = httpx.Response(status, headers=headers or {}, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def test_classified_errors_pass_through():
    error = NotFoundError("Field not found")
    assert classify_error(error) is error


def test_timeout_is_retryable_network_error():
    error = classify_error(httpx.ReadTimeout("read timed out"))
    assert isinstance(error, NetworkError)
    assert error.retryable


def test_http_429_uses_retry_after_header():
    error = classify_error(_status_error(429, {"Retry-After": "12"}))
    assert isinstance(error, RateLimitError)
    assert error.retry_after == 12
    assert error.status_code == 429


def test_http_401_is_authentication_error():
    assert isinstance(classify_error(_status_error(401)), AuthenticationError)


def test_message_keywords():
    assert isinstance(classify_error(RuntimeError("Unauthorized token")), AuthenticationError)
    assert isinstance(classify_error(RuntimeError("network unreachable")), NetworkError)
    assert isinstance(classify_error(RuntimeError("gemini returned garbage")), GeminiAPIError)
    assert isinstance(classify_error(RuntimeError("Gemini quota exceeded")), GeminiAPIError)
    assert isinstance(classify_error(RuntimeError("quota exceeded")), RateLimitError)
    assert isinstance(classify_error(RuntimeError("sentinel imagery missing")), SatelliteDataError)
    assert isinstance(classify_error(RuntimeError("weather provider down")), WeatherDataError)
    assert isinstance(classify_error(RuntimeError("database connection reset")), DatabaseError)


def test_context_prefixes_message():
    error = classify_error(RuntimeError("boom"), "pesapal")
    assert error.message == "pesapal: boom"


def test_to_dict_shape():
    body = RateLimitError("slow down").to_dict()
    assert body == {
        "success": False,
        "error": "slow down",
        "code": "RATE_LIMIT_EXCEEDED",
        "retryable": True,
        "retry_after": 60,
    }


def test_overrides_in_constructor():
    error = CropGeniusError("x", code=ErrorCode.PAYMENT_ERROR, status_code=418, retryable=True)
    assert error.code == ErrorCode.PAYMENT_ERROR
    assert error.status_code == 418
    assert error.retryable


def test_user_friendly_messages():
    assert "internet" in user_friendly_message(ErrorCode.NETWORK_ERROR)
    assert user_friendly_message("unknown") == "Something went wrong. Please try again."
