"""
Database connection management.

Provides the async Supabase client singleton for database operations.
"""

from supabase import acreate_client, AsyncClient
from typing import Optional
import structlog

from config.settings import get_settings

logger = structlog.get_logger(__name__)


class DatabaseConnectionError(Exception):
    """Failed to connect to database."""
    pass


_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """
    Get cached async Supabase client instance.

    The client is created on first use and reused afterwards.
    Call reset_connection() to reconnect.

    Returns:
        AsyncClient: Supabase client

    Raises:
        DatabaseConnectionError: If connection fails
    """
    global _client
    if _client is not None:
        return _client

    settings = get_settings()
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        _client = await acreate_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info("supabase_connected", status="success")

        return _client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseConnectionError(f"Failed to connect to Supabase: {e}") from e


# ===================
# HELPER FUNCTIONS
# ===================

async def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = await get_supabase_client()

        mappings = await (
            client.table("sellout_store_master")
            .select("id", count="exact")
            .limit(1)
            .execute()
        )
        consolidated = await (
            client.table("consolidated_sellout")
            .select("id", count="exact")
            .limit(1)
            .execute()
        )

        return {
            "status": "healthy",
            "store_mappings_count": mappings.count,
            "consolidated_count": consolidated.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached database connection.

    Call this if connection becomes stale or after config changes.
    """
    global _client
    _client = None
    logger.info("database_connection_reset")
