"""Supabase client for the zone backing store."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Tables used by the zone store:
#
#   delivery_zones (id, "restaurantId", name, "minPrice", "minimumOrder",
#                   "deliveryTime", "estimatedTime", color, "isActive", "createdAt")
#   zone_cells     (restaurant_id, cell_id, zone_id)   -- unique (restaurant_id, cell_id)
#   service_areas  (restaurant_id, latitude, longitude, radius_m, cell_radius_m)
