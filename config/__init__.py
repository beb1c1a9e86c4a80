"""
Configuration module.

Exports:
    get_settings: Function to get cached settings
    get_supabase_client: Coroutine returning the async Supabase client
    check_connection: Health check coroutine
    configure_logging: structlog setup
"""

from config.settings import get_settings, Settings
from config.database import (
    get_supabase_client,
    check_connection,
    reset_connection,
    DatabaseConnectionError,
)
from config.logging import configure_logging

__all__ = [
    # Settings
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "check_connection",
    "reset_connection",
    "DatabaseConnectionError",

    # Logging
    "configure_logging",
]
