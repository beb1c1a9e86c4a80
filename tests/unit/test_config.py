"""
Unit tests for settings, database connection and logging setup.

Run: pytest tests/unit/test_config.py -v
"""

import pytest
import structlog
from unittest.mock import AsyncMock, patch

from config import (
    get_settings,
    Settings,
    get_supabase_client,
    check_connection,
    reset_connection,
    configure_logging,
    DatabaseConnectionError,
)

from tests.factories import ConsolidatedRowFactory, StoreMappingFactory


@pytest.fixture(autouse=True)
def fresh_connection():
    reset_connection()
    yield
    reset_connection()


class TestSettings:

    def test_batch_defaults(self, monkeypatch):
        monkeypatch.delenv("SYNC_BATCH_DELAY_MS", raising=False)
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.process_chunk_size == 100
        assert settings.sync_batch_size == 100
        assert settings.propagate_batch_size == 50
        assert settings.default_units_sold == 1
        assert settings.sync_batch_delay_seconds == 0.1

    def test_exposes_only_read_settings(self):
        assert set(Settings.model_fields) == {
            "supabase_url",
            "supabase_key",
            "process_chunk_size",
            "default_units_sold",
            "sync_batch_size",
            "sync_batch_delay_ms",
            "propagate_batch_size",
            "product_import_chunk_size",
            "store_import_chunk_size",
            "environment",
            "log_level",
        }

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SYNC_BATCH_DELAY_MS", "250")
        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.sync_batch_delay_seconds == 0.25
        assert settings.is_production


class TestDatabase:

    @pytest.mark.asyncio
    async def test_client_created_once(self, fake_db):
        with patch("config.database.acreate_client", AsyncMock(return_value=fake_db)) as create:
            first = await get_supabase_client()
            second = await get_supabase_client()

        assert first is second is fake_db
        create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_failure_raises(self):
        with patch("config.database.acreate_client", AsyncMock(side_effect=RuntimeError("refused"))):
            with pytest.raises(DatabaseConnectionError):
                await get_supabase_client()

    @pytest.mark.asyncio
    async def test_check_connection_reports_counts(self, fake_db):
        fake_db.seed("sellout_store_master", [StoreMappingFactory.create()])
        fake_db.seed("consolidated_sellout", [
            ConsolidatedRowFactory.create(),
            ConsolidatedRowFactory.create(),
        ])

        with patch("config.database.acreate_client", AsyncMock(return_value=fake_db)):
            status = await check_connection()

        assert status == {
            "status": "healthy",
            "store_mappings_count": 1,
            "consolidated_count": 2,
        }

    @pytest.mark.asyncio
    async def test_check_connection_unhealthy(self):
        with patch("config.database.acreate_client", AsyncMock(side_effect=RuntimeError("refused"))):
            status = await check_connection()

        assert status["status"] == "unhealthy"


class TestLogging:

    def teardown_method(self):
        structlog.reset_defaults()

    def test_production_renders_json(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()

        configure_logging()

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_development_renders_console(self):
        configure_logging()

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
