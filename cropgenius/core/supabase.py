from functools import lru_cache

from supabase import create_client, Client
from cropgenius.core.settings import settings
from cropgenius.core.errors import ConfigurationError


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Shared Supabase client.
    Uses the Service Role Key: the API enforces ownership itself (user_id filters).
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
