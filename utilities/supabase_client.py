import logging
from functools import lru_cache
from typing import Optional

from supabase import create_client, Client

from config.settings import settings

logger = logging.getLogger(__name__)

@lru_cache(maxsize=1)
def get_supabase() -> Optional[Client]:
    """Return a cached Supabase client if configured, else None.
    Uses the service role key: protected files are only reachable server-side.
    """
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY
    if not url or not key:
        return None
    try:
        return create_client(url, key)
    except Exception as e:
        logger.warning(f"Failed to initialize Supabase client: {e}")
        return None

def create_signed_download_url(file_path: str, expires_in: int = None) -> Optional[str]:
    """Signed Storage URL for a protected file, or None when Supabase is not configured"""
    sb = get_supabase()
    if sb is None:
        return None
    result = sb.storage.from_(settings.SUPABASE_STORAGE_BUCKET).create_signed_url(
        file_path, expires_in or settings.SUPABASE_SIGNED_URL_SECONDS
    )
    return result.get("signedURL") or result.get("signedUrl")
