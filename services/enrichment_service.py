"""
Record enrichment.

Resolves a raw distributor row to canonical product and store codes
through the master mappings, then pulls display attributes from the
canonical catalogs. Unresolved is a valid outcome: every derived field
falls back to None and nothing is raised for a miss.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional
import structlog

from models.master import ProductMapping, StoreMapping
from models.sellout import EnrichedFields, RawSelloutRecord
from services.catalog_service import (
    ProductCatalogService,
    StoreCatalogService,
    get_product_catalog_service,
    get_store_catalog_service,
)
from services.master_mapping_service import (
    ProductMasterService,
    StoreMasterService,
    get_product_master_service,
    get_store_master_service,
)
from utils.text_utils import product_search_key, store_search_key

logger = structlog.get_logger(__name__)


async def _none() -> None:
    return None


def _mapping_state(mapping) -> str:
    """Label a lookup result: unknown key, known key without code, or resolved."""
    if mapping is None:
        return "missing"
    return "resolved" if mapping.is_resolved else "unassigned"


class RecordEnricher:
    """
    Joins raw rows through master mappings and canonical catalogs.

    Product and store resolution are independent; both mapping lookups
    complete before either catalog lookup starts.
    """

    def __init__(
        self,
        product_masters: ProductMasterService,
        store_masters: StoreMasterService,
        product_catalog: ProductCatalogService,
        store_catalog: StoreCatalogService,
    ):
        self.product_masters = product_masters
        self.store_masters = store_masters
        self.product_catalog = product_catalog
        self.store_catalog = store_catalog

    async def enrich(self, raw: RawSelloutRecord) -> EnrichedFields:
        """
        Resolve derived fields for one raw row.

        Args:
            raw: Distributor row

        Returns:
            EnrichedFields with canonical codes and display attributes,
            each None when its lookup step misses
        """
        product_key = product_search_key(
            raw.distributor, raw.code_product_distributor, raw.description_distributor
        )
        store_key = store_search_key(raw.distributor, raw.code_store_distributor)

        product_mapping, store_mapping = await asyncio.gather(
            self.product_masters.find_by_search_key(product_key),
            self.store_masters.find_by_search_key(store_key),
        )

        product_entry, store_entry = await asyncio.gather(
            self._product_entry(product_mapping),
            self._store_entry(store_mapping),
        )

        enriched = EnrichedFields(
            code_product=product_mapping.code_product if product_mapping else None,
            code_store=store_mapping.code_store if store_mapping else None,
            product_model=product_entry.model_name if product_entry else None,
            store_name=store_entry.store_name if store_entry else None,
            authorized_distributor=store_entry.authorized_distributor if store_entry else None,
            search_product_key=product_key,
            search_store_key=store_key,
        )

        if not (enriched.product_resolved and enriched.store_resolved):
            logger.debug(
                "record_partially_resolved",
                product_key=product_key,
                store_key=store_key,
                product_mapping=_mapping_state(product_mapping),
                store_mapping=_mapping_state(store_mapping),
            )

        return enriched

    # ===================
    # PATCH BUILDERS
    # ===================

    async def product_patch(self, mapping: ProductMapping) -> dict[str, Any]:
        """Derived product fields for rows matching a resolved mapping."""
        entry = await self._product_entry(mapping)
        return {
            "code_product": mapping.code_product,
            "product_model": entry.model_name if entry else None,
            "search_product_key": mapping.search_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    async def store_patch(self, mapping: StoreMapping) -> dict[str, Any]:
        """Derived store fields for rows matching a resolved mapping."""
        entry = await self._store_entry(mapping)
        return {
            "code_store": mapping.code_store,
            "authorized_distributor": entry.authorized_distributor if entry else None,
            "store_name": entry.store_name if entry else None,
            "search_store_key": mapping.search_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    # ===================
    # HELPERS
    # ===================

    def _product_entry(self, mapping: Optional[ProductMapping]):
        if mapping is None or not mapping.is_resolved:
            return _none()
        return self.product_catalog.find_by_code(mapping.code_product)

    def _store_entry(self, mapping: Optional[StoreMapping]):
        if mapping is None or not mapping.is_resolved:
            return _none()
        return self.store_catalog.find_by_code(mapping.code_store)


# Singleton instance
_record_enricher: Optional[RecordEnricher] = None


async def get_record_enricher() -> RecordEnricher:
    """Get or create RecordEnricher instance."""
    global _record_enricher
    if _record_enricher is None:
        _record_enricher = RecordEnricher(
            product_masters=await get_product_master_service(),
            store_masters=await get_store_master_service(),
            product_catalog=await get_product_catalog_service(),
            store_catalog=await get_store_catalog_service(),
        )
    return _record_enricher
