"""
Database connection management.

Provides the Supabase client singleton behind SupabaseCatalogStore.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings
from exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


class StoreConnectionError(Exception):
    """Supabase is configured but could not be reached."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Failed connections are not cached, so the next call tries again.

    Returns:
        Client: Supabase client

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_KEY is missing
        StoreConnectionError: If the catalog tables cannot be queried
    """
    if not settings.supabase_configured:
        raise ConfigurationError(
            message=f"Supabase environment variables missing: {', '.join(settings.missing_store_settings)}",
            details={"missing": settings.missing_store_settings}
        )

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(settings.supabase_url, settings.supabase_key)

        # Probe the catalog schema, not just the endpoint
        client.table("nomenclature_systems").select("id").limit(1).execute()

        logger.info("supabase_connected", status="success")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise StoreConnectionError(f"Failed to connect to Supabase: {e}") from e


def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with catalog row counts
    """
    if not settings.supabase_configured:
        return {
            "status": "unconfigured",
            "error": "Supabase credentials not set",
            "missing": settings.missing_store_settings
        }

    try:
        client = get_supabase_client()

        systems = client.table("nomenclature_systems").select("id", count="exact").execute()
        references = client.table("reference_terms").select("id", count="exact").execute()

        return {
            "status": "healthy",
            "systems_count": systems.count,
            "reference_terms_count": references.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
