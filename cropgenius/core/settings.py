"""
Application settings
Loaded once from the environment (and an optional .env file)
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


class Settings:
    """Upper-case attributes mirror the environment variable names"""

    def __init__(self):
        # Supabase
        self.SUPABASE_URL = os.getenv("SUPABASE_URL", "")
        self.SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
        self.SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

        # Public app URL (referral links, payment callbacks)
        self.APP_URL = os.getenv("APP_URL", "https://cropgenius.africa")

        # Pesapal
        self.PESAPAL_CONSUMER_KEY = os.getenv("PESAPAL_CONSUMER_KEY", "")
        self.PESAPAL_CONSUMER_SECRET = os.getenv("PESAPAL_CONSUMER_SECRET", "")
        self.PESAPAL_ENVIRONMENT = os.getenv("PESAPAL_ENVIRONMENT", "live")
        self.PESAPAL_IPN_URL = os.getenv("PESAPAL_IPN_URL", "")

        # AI providers
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.PLANTNET_API_KEY = os.getenv("PLANTNET_API_KEY", "")

        # Weather and satellite
        self.OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "")
        self.SENTINEL_CLIENT_ID = os.getenv("SENTINEL_CLIENT_ID", "")
        self.SENTINEL_CLIENT_SECRET = os.getenv("SENTINEL_CLIENT_SECRET", "")
        self.SENTINEL_INSTANCE_ID = os.getenv("SENTINEL_INSTANCE_ID", "")

        # WhatsApp Business
        self.WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
        self.WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
        self.WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
        self.WHATSAPP_APP_SECRET = os.getenv("WHATSAPP_APP_SECRET", "")

        # Caches (seconds)
        self.WEATHER_CACHE_TTL = _get_float("WEATHER_CACHE_TTL", 15 * 60)
        self.DISEASE_CACHE_TTL = _get_float("DISEASE_CACHE_TTL", 24 * 60 * 60)
        self.TASK_CACHE_TTL = _get_float("TASK_CACHE_TTL", 5 * 60)

        self.HTTP_TIMEOUT = _get_float("HTTP_TIMEOUT", 30.0)
        self.HTTP_MAX_RETRIES = int(_get_float("HTTP_MAX_RETRIES", 2))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        self.HOST = os.getenv("HOST", "0.0.0.0")
        self.PORT = int(os.getenv("PORT", "8000"))

    @property
    def pesapal_base_url(self) -> str:
        if self.PESAPAL_ENVIRONMENT == "sandbox":
            return "https://cybqa.pesapal.com/pesapalv3"
        return "https://pay.pesapal.com/v3"


settings = Settings()
