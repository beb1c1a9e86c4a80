"""
Master data management.

Mapping writes that keep consolidated rows in step: every create,
update and import is followed by propagation or a backfill pass so
derived fields catch up with the new master data.
"""

from typing import Optional
import structlog

from models.master import (
    ProductMapping,
    ProductMappingCreate,
    ProductMappingUpdate,
    StoreMapping,
    StoreMappingCreate,
    StoreMappingUpdate,
)
from services.backfill_service import BackfillSynchronizer, get_backfill_synchronizer
from services.master_mapping_service import (
    ProductMasterService,
    StoreMasterService,
    get_product_master_service,
    get_store_master_service,
)
from exceptions import MappingNotFoundError
from utils.text_utils import product_search_key, store_search_key

logger = structlog.get_logger(__name__)


class MasterDataService:
    """Store and product mapping management with consolidated-row sync."""

    def __init__(
        self,
        product_masters: ProductMasterService,
        store_masters: StoreMasterService,
        backfill: BackfillSynchronizer,
    ):
        self.product_masters = product_masters
        self.store_masters = store_masters
        self.backfill = backfill

    # ===================
    # STORE MAPPINGS
    # ===================

    async def create_store_mapping(self, data: StoreMappingCreate) -> StoreMapping:
        """
        Create a store mapping and propagate it.

        Raises:
            DuplicateMappingError: If the distributor store key exists
        """
        mapping = await self.store_masters.create(data)
        await self.backfill.propagate_store_mappings([mapping])
        return mapping

    async def update_store_mapping(self, mapping_id: int, data: StoreMappingUpdate) -> StoreMapping:
        """
        Update a store mapping and propagate it.

        Raises:
            MappingNotFoundError: If mapping doesn't exist
        """
        mapping = await self.store_masters.update(mapping_id, data)
        await self.backfill.propagate_store_mappings([mapping])
        return mapping

    async def import_store_mappings(self, items: list[StoreMappingCreate]) -> int:
        """Bulk upsert store mappings, then backfill unresolved rows."""
        saved = await self.store_masters.import_mappings(items)
        synced = await self.backfill.sync_stores()
        logger.info("store_mappings_imported", saved=len(saved), rows_synced=synced)
        return len(saved)

    async def update_store_mappings_batch(self, items: list[StoreMappingUpdate]) -> list[StoreMapping]:
        """
        Update mappings located by their distributor store key.

        Raises:
            MappingNotFoundError: If any item matches no mapping
        """
        updated: list[StoreMapping] = []
        for item in items:
            search_key = store_search_key(item.distributor, item.store_distributor)
            existing = await self.store_masters.find_by_search_key(search_key)
            if existing is None:
                raise MappingNotFoundError("store", search_key)

            mapping = await self.store_masters.update(existing.id, item)
            await self.backfill.propagate_store_mappings([mapping])
            updated.append(mapping)

        logger.info("store_mappings_batch_updated", count=len(updated))
        return updated

    async def delete_store_mapping(self, mapping_id: int) -> bool:
        return await self.store_masters.delete(mapping_id)

    # ===================
    # PRODUCT MAPPINGS
    # ===================

    async def create_product_mapping(self, data: ProductMappingCreate) -> ProductMapping:
        """
        Create a product mapping and propagate it.

        Raises:
            DuplicateMappingError: If the distributor product key exists
        """
        mapping = await self.product_masters.create(data)
        await self.backfill.propagate_product_mappings([mapping])
        return mapping

    async def update_product_mapping(
        self,
        mapping_id: int,
        data: ProductMappingUpdate
    ) -> ProductMapping:
        """
        Update a product mapping and propagate it.

        Raises:
            MappingNotFoundError: If mapping doesn't exist
        """
        mapping = await self.product_masters.update(mapping_id, data)
        await self.backfill.propagate_product_mappings([mapping])
        return mapping

    async def import_product_mappings(self, items: list[ProductMappingCreate]) -> int:
        """Bulk upsert product mappings, then backfill unresolved rows."""
        saved = await self.product_masters.import_mappings(items)
        synced = await self.backfill.sync_products()
        logger.info("product_mappings_imported", saved=len(saved), rows_synced=synced)
        return len(saved)

    async def update_product_mappings_batch(
        self,
        items: list[ProductMappingUpdate]
    ) -> list[ProductMapping]:
        """
        Update mappings located by their distributor product key.

        Raises:
            MappingNotFoundError: If any item matches no mapping
        """
        updated: list[ProductMapping] = []
        for item in items:
            search_key = product_search_key(
                item.distributor, item.product_distributor, item.product_description
            )
            existing = await self.product_masters.find_by_search_key(search_key)
            if existing is None:
                raise MappingNotFoundError("product", search_key)

            mapping = await self.product_masters.update(existing.id, item)
            await self.backfill.propagate_product_mappings([mapping])
            updated.append(mapping)

        logger.info("product_mappings_batch_updated", count=len(updated))
        return updated

    async def delete_product_mapping(self, mapping_id: int) -> bool:
        return await self.product_masters.delete(mapping_id)


# Singleton instance
_master_data_service: Optional[MasterDataService] = None


async def get_master_data_service() -> MasterDataService:
    """Get or create MasterDataService instance."""
    global _master_data_service
    if _master_data_service is None:
        _master_data_service = MasterDataService(
            product_masters=await get_product_master_service(),
            store_masters=await get_store_master_service(),
            backfill=await get_backfill_synchronizer(),
        )
    return _master_data_service
