"""Supabase client for the orders, menus, vendors and delivery_addresses tables."""

from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from src.core.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Cached client authenticated with the project secret key.

    The secret key bypasses row-level security, so every caller must have
    passed ``authorize`` before reading or writing an order.
    """
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_secret_key)


async def check_database_connection() -> dict[str, Any]:
    """Probe the orders table with a one-row read.

    Returns:
        dict: ``{"healthy": True}`` or ``{"healthy": False, "error": ...}``.
    """
    try:
        get_supabase_client().table("orders").select("id").limit(1).execute()
    except Exception as e:
        return {"healthy": False, "error": str(e)}
    return {"healthy": True}
