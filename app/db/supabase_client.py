"""Supabase client for the assessment store (verticals, sessions, matrices, DFDs)."""

from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get the process-wide Supabase client.

    Uses the service role key, so row-level security does not apply; callers
    scope every query by vertical_id themselves.

    Raises:
        RuntimeError: If the client cannot be created from settings
    """
    settings = get_settings()
    try:
        return create_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            options=ClientOptions(postgrest_client_timeout=settings.SUPABASE_TIMEOUT_S),
        )
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
