"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and zone storage status."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "store": "memory",
            "message": "Supabase not configured. Set DZ_SUPABASE_URL and DZ_SUPABASE_KEY environment variables.",
        }

    try:
        supabase.table(settings.zones_table).select("id", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "store": "supabase",
            "message": "Database connected.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "store": "supabase",
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
