"""
Error types shared by every CropGenius service
Each error carries a machine code, an HTTP status and whether the caller may retry
"""

from enum import Enum
from typing import Optional

import httpx


class ErrorCode(str, Enum):
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    AI_SERVICE_UNAVAILABLE = "AI_SERVICE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_FIELD_DATA = "INVALID_FIELD_DATA"
    GEMINI_API_ERROR = "GEMINI_API_ERROR"
    SATELLITE_DATA_ERROR = "SATELLITE_DATA_ERROR"
    WEATHER_DATA_ERROR = "WEATHER_DATA_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    PARSING_ERROR = "PARSING_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PAYMENT_ERROR = "PAYMENT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


USER_FRIENDLY_MESSAGES = {
    ErrorCode.AUTHENTICATION_FAILED: "Please sign in again to continue.",
    ErrorCode.AI_SERVICE_UNAVAILABLE: "Our AI assistant is busy right now. Please try again in a moment.",
    ErrorCode.NETWORK_ERROR: "Connection problem. Check your internet and try again.",
    ErrorCode.INVALID_FIELD_DATA: "Some field details look wrong. Please check and try again.",
    ErrorCode.GEMINI_API_ERROR: "The crop analysis could not be completed. Please try again.",
    ErrorCode.SATELLITE_DATA_ERROR: "Satellite imagery is not available for this field right now.",
    ErrorCode.WEATHER_DATA_ERROR: "Weather data is temporarily unavailable.",
    ErrorCode.DATABASE_ERROR: "We could not save your data. Please try again.",
    ErrorCode.PARSING_ERROR: "We received an unexpected answer. Please try again.",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Too many requests. Please wait a minute and try again.",
    ErrorCode.PAYMENT_ERROR: "Payment could not be processed. You have not been charged.",
    ErrorCode.VALIDATION_ERROR: "Some details are missing or invalid.",
    ErrorCode.NOT_FOUND: "We could not find what you were looking for.",
    ErrorCode.FORBIDDEN: "You do not have permission to do that.",
    ErrorCode.CONFIGURATION_ERROR: "This feature is not available yet.",
}


def user_friendly_message(code: ErrorCode) -> str:
    return USER_FRIENDLY_MESSAGES.get(code, "Something went wrong. Please try again.")


class CropGeniusError(Exception):
    """Base error. Rendered as JSON by the API exception handler."""

    code: ErrorCode = ErrorCode.AI_SERVICE_UNAVAILABLE
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        retry_after: Optional[int] = None,
        original: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable
        self.retry_after = retry_after
        self.original = original

    def to_dict(self) -> dict:
        body = {
            "success": False,
            "error": self.message,
            "code": self.code.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            body["retry_after"] = self.retry_after
        return body


class AuthenticationError(CropGeniusError):
    code = ErrorCode.AUTHENTICATION_FAILED
    status_code = 401


class ForbiddenError(CropGeniusError):
    code = ErrorCode.FORBIDDEN
    status_code = 403


class ValidationError(CropGeniusError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class InvalidFieldDataError(CropGeniusError):
    code = ErrorCode.INVALID_FIELD_DATA
    status_code = 422


class NotFoundError(CropGeniusError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class ConfigurationError(CropGeniusError):
    code = ErrorCode.CONFIGURATION_ERROR
    status_code = 503


class NetworkError(CropGeniusError):
    code = ErrorCode.NETWORK_ERROR
    status_code = 503
    retryable = True


class AIServiceUnavailableError(CropGeniusError):
    code = ErrorCode.AI_SERVICE_UNAVAILABLE
    status_code = 503
    retryable = True


class GeminiAPIError(CropGeniusError):
    code = ErrorCode.GEMINI_API_ERROR
    status_code = 502
    retryable = True


class SatelliteDataError(CropGeniusError):
    code = ErrorCode.SATELLITE_DATA_ERROR
    status_code = 502
    retryable = True


class WeatherDataError(CropGeniusError):
    code = ErrorCode.WEATHER_DATA_ERROR
    status_code = 502
    retryable = True


class DatabaseError(CropGeniusError):
    code = ErrorCode.DATABASE_ERROR
    status_code = 500
    retryable = True


class ParsingError(CropGeniusError):
    code = ErrorCode.PARSING_ERROR
    status_code = 502


class RateLimitError(CropGeniusError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    status_code = 429
    retryable = True

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        super().__init__(message, retry_after=retry_after, **kwargs)


class PaymentError(CropGeniusError):
    code = ErrorCode.PAYMENT_ERROR
    status_code = 502


class CircuitOpenError(AIServiceUnavailableError):
    retryable = False


def classify_error(error: BaseException, context: str = "") -> CropGeniusError:
    """
    Map any exception raised while talking to an outside service onto a CropGeniusError.
    Already-classified errors pass through unchanged.
    """
    if isinstance(error, CropGeniusError):
        return error

    message = str(error) or error.__class__.__name__
    if context:
        message = f"{context}: {message}"

    if isinstance(error, httpx.TimeoutException):
        return NetworkError(message, original=error)
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            retry_after = error.response.headers.get("Retry-After")
            return RateLimitError(
                message,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else 60,
                original=error,
            )
        if status in (401, 403):
            return AuthenticationError(message, original=error)
        if status >= 500:
            return AIServiceUnavailableError(message, original=error)
    if isinstance(error, httpx.TransportError):
        return NetworkError(message, original=error)

    lowered = message.lower()
    if "auth" in lowered or "unauthorized" in lowered:
        return AuthenticationError(message, original=error)
    if "timeout" in lowered or "network" in lowered or "fetch" in lowered:
        return NetworkError(message, original=error)
    if "gemini" in lowered:
        return GeminiAPIError(message, original=error)
    if "rate limit" in lowered or "quota" in lowered or "429" in lowered:
        return RateLimitError(message, original=error)
    if "satellite" in lowered or "sentinel" in lowered:
        return SatelliteDataError(message, original=error)
    if "weather" in lowered:
        return WeatherDataError(message, original=error)
    if "database" in lowered or "supabase" in lowered or "postgres" in lowered:
        return DatabaseError(message, original=error)
    if "json" in lowered or "parse" in lowered:
        return ParsingError(message, original=error)

    return AIServiceUnavailableError(message, original=error)
