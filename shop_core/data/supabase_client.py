# =============================================================================
# shop_core/data/supabase_client.py
# Supabase Client Configuration for the repair-shop dashboard
# =============================================================================

from __future__ import annotations
from typing import Optional
import logging

from supabase import AsyncClient, acreate_client

from shop_core.config import SyncSettings
from shop_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


async def create_supabase_client(settings: SyncSettings) -> AsyncClient:
    """
    Create an async Supabase client from settings.

    Expects credentials in .streamlit/secrets.toml:
        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

    or in the SUPABASE_URL / SUPABASE_KEY environment variables.
    """
    if not settings.has_remote:
        raise ConfigurationError(
            "Supabase credentials not found. Configure [supabase] url/key in "
            ".streamlit/secrets.toml or set SUPABASE_URL and SUPABASE_KEY.",
            config_key="supabase",
        )

    client = await acreate_client(settings.supabase_url, settings.supabase_key)
    logger.info("Supabase client created")
    return client


async def close_supabase_client(client: Optional[AsyncClient]) -> None:
    """Close realtime channels and the underlying HTTP session."""
    if client is None:
        return
    try:
        await client.remove_all_channels()
    except Exception as e:
        logger.debug(f"Error removing realtime channels: {e}")
    postgrest = getattr(client, "postgrest", None)
    if postgrest is not None and hasattr(postgrest, "aclose"):
        await postgrest.aclose()
