from supabase import create_client, Client  # type: ignore
from functools import lru_cache
from quizguard.config import settings


@lru_cache()
def get_supabase_client(use_service_role: bool = True) -> Client:
    """
    Get Supabase client.

    Created on first use so the engine can be imported and tested without
    Supabase credentials.

    Args:
        use_service_role: When True (default), use the service role key if available
            to ensure backend operations bypass RLS restrictions intended for public clients.
    """
    if use_service_role and settings.supabase_service_role_key:
        key = settings.supabase_service_role_key
    else:
        key = settings.supabase_key
    return create_client(settings.supabase_url, key)
