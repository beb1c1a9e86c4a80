"""
Unit tests for RecordEnricher and the catalog services.

Run: pytest tests/unit/test_enrichment_service.py -v
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from services.catalog_service import ProductCatalogService, StoreCatalogService
from services.enrichment_service import RecordEnricher
from models.catalog import ProductCatalogEntry, StoreCatalogEntry
from models.master import ProductMapping, StoreMapping
from models.sellout import RawSelloutRecord

from tests.factories import ProductMappingFactory, StoreMappingFactory


def _raw(**overrides) -> RawSelloutRecord:
    return RawSelloutRecord(**{
        "distributor": "D1",
        "code_product_distributor": "P1",
        "code_store_distributor": "S1",
        "description_distributor": "Widget",
        **overrides,
    })


class TestCatalogServices:

    @pytest.mark.asyncio
    async def test_find_product_by_code(self, catalogs):
        entry = await ProductCatalogService(catalogs).find_by_code("100")

        assert entry.model_name == "Widget Pro"

    @pytest.mark.asyncio
    async def test_find_store_by_code(self, catalogs):
        entry = await StoreCatalogService(catalogs).find_by_code("20")

        assert entry.store_name == "North Store"
        assert entry.authorized_distributor == "D2 Authorized"

    @pytest.mark.asyncio
    async def test_missing_code_returns_none(self, catalogs):
        assert await ProductCatalogService(catalogs).find_by_code("999") is None


class TestEnrich:
    """Tests for RecordEnricher.enrich()"""

    @pytest.mark.asyncio
    async def test_product_resolved_store_unknown(self, services, catalogs):
        """D1/P1/Widget with a product mapping to 100 and no store mapping."""
        catalogs.seed("sellout_product_master", [ProductMappingFactory.create(code_product="100")])

        enriched = await services.enricher.enrich(_raw())

        assert enriched.code_product == "100"
        assert enriched.code_store is None
        assert enriched.product_model == "Widget Pro"
        assert enriched.store_name is None
        assert enriched.authorized_distributor is None
        assert enriched.search_product_key == "D1P1Widget"
        assert enriched.search_store_key == "D1S1"

    @pytest.mark.asyncio
    async def test_fully_resolved_copies_catalog_attributes(self, services, catalogs):
        catalogs.seed("sellout_product_master", [ProductMappingFactory.create(code_product="200")])
        catalogs.seed("sellout_store_master", [StoreMappingFactory.create(code_store="10")])

        enriched = await services.enricher.enrich(_raw())

        assert enriched.code_product == "200"
        assert enriched.product_model == "Gadget Max"
        assert enriched.code_store == "10"
        assert enriched.store_name == "Central Store"
        assert enriched.authorized_distributor == "D1 Authorized"

    @pytest.mark.asyncio
    async def test_no_mappings_is_not_an_error(self, services, catalogs):
        enriched = await services.enricher.enrich(_raw())

        assert enriched.code_product is None
        assert enriched.code_store is None
        assert enriched.product_model is None
        assert enriched.store_name is None

    @pytest.mark.asyncio
    async def test_mapping_without_code_skips_catalog(self):
        product_masters = AsyncMock()
        product_masters.find_by_search_key.return_value = ProductMapping(
            **ProductMappingFactory.create(code_product=None, id=1)
        )
        store_masters = AsyncMock()
        store_masters.find_by_search_key.return_value = None
        product_catalog = AsyncMock()
        store_catalog = AsyncMock()
        enricher = RecordEnricher(product_masters, store_masters, product_catalog, store_catalog)

        enriched = await enricher.enrich(_raw())

        assert enriched.code_product is None
        product_catalog.find_by_code.assert_not_called()
        store_catalog.find_by_code.assert_not_called()

    @pytest.mark.asyncio
    async def test_code_missing_from_catalog_leaves_display_null(self, services, catalogs):
        catalogs.seed("sellout_product_master", [ProductMappingFactory.create(code_product="999")])

        enriched = await services.enricher.enrich(_raw())

        assert enriched.code_product == "999"
        assert enriched.product_model is None

    @pytest.mark.asyncio
    async def test_lookup_uses_normalized_keys(self, services, catalogs):
        catalogs.seed("sellout_store_master", [StoreMappingFactory.create(code_store="10")])

        enriched = await services.enricher.enrich(_raw(code_store_distributor="  S1 "))

        assert enriched.code_store == "10"

    @pytest.mark.asyncio
    async def test_mapping_lookups_finish_before_catalog_lookups(self):
        events = []

        def recorder(name, result, ticks):
            async def call(*args):
                events.append(f"{name}:start")
                for _ in range(ticks):
                    await asyncio.sleep(0)
                events.append(f"{name}:end")
                return result
            return call

        product_masters = AsyncMock()
        product_masters.find_by_search_key.side_effect = recorder(
            "product_mapping", ProductMapping(**ProductMappingFactory.create(id=1)), ticks=3
        )
        store_masters = AsyncMock()
        store_masters.find_by_search_key.side_effect = recorder(
            "store_mapping", StoreMapping(**StoreMappingFactory.create(id=1)), ticks=0
        )
        product_catalog = AsyncMock()
        product_catalog.find_by_code.side_effect = recorder(
            "product_catalog", ProductCatalogEntry(code="100", model_name="Widget Pro"), ticks=1
        )
        store_catalog = AsyncMock()
        store_catalog.find_by_code.side_effect = recorder(
            "store_catalog", StoreCatalogEntry(code="10", store_name="Central Store"), ticks=1
        )
        enricher = RecordEnricher(product_masters, store_masters, product_catalog, store_catalog)

        enriched = await enricher.enrich(_raw())

        assert enriched.product_model == "Widget Pro"
        assert enriched.store_name == "Central Store"
        last_mapping_end = max(
            events.index("product_mapping:end"), events.index("store_mapping:end")
        )
        first_catalog_start = min(
            events.index("product_catalog:start"), events.index("store_catalog:start")
        )
        assert last_mapping_end < first_catalog_start
        # Lookups within each phase overlap
        assert events.index("store_mapping:start") < events.index("product_mapping:end")


class TestPatchBuilders:

    @pytest.mark.asyncio
    async def test_product_patch(self, services, catalogs):
        mapping = ProductMapping(**ProductMappingFactory.create(code_product="100", id=1))

        patch = await services.enricher.product_patch(mapping)

        assert patch["code_product"] == "100"
        assert patch["product_model"] == "Widget Pro"
        assert patch["search_product_key"] == "D1P1Widget"
        assert "updated_at" in patch

    @pytest.mark.asyncio
    async def test_store_patch(self, services, catalogs):
        mapping = StoreMapping(**StoreMappingFactory.create(code_store="20", id=1))

        patch = await services.enricher.store_patch(mapping)

        assert patch["code_store"] == "20"
        assert patch["store_name"] == "North Store"
        assert patch["authorized_distributor"] == "D2 Authorized"
