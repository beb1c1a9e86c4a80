"""
Duplicate/merge resolver.

Given an intent naming a distributor key, every consolidated row with
that key gets one computed patch. Missing master mappings implied by
the intent are created on the way; the UNIQUE search_key constraint
decides races and surfaces as DuplicateMappingError.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional
import structlog

from models.master import (
    ProductMappingCreate,
    ProductMappingUpdate,
    StoreMappingCreate,
    StoreMappingUpdate,
)
from models.merge import ByProductKey, ByStoreKey, MergeIntent, MergeResult
from services.catalog_service import (
    ProductCatalogService,
    StoreCatalogService,
    get_product_catalog_service,
    get_store_catalog_service,
)
from services.consolidation_service import ConsolidationService, get_consolidation_service
from services.enrichment_service import RecordEnricher, get_record_enricher
from services.master_mapping_service import (
    MasterMappingService,
    ProductMasterService,
    StoreMasterService,
    get_product_master_service,
    get_store_master_service,
)
from exceptions import UnknownCanonicalCodeError

logger = structlog.get_logger(__name__)


class MergeResolver:
    """Applies merge intents sequentially; the first failing intent aborts the call."""

    def __init__(
        self,
        enricher: RecordEnricher,
        product_masters: ProductMasterService,
        store_masters: StoreMasterService,
        product_catalog: ProductCatalogService,
        store_catalog: StoreCatalogService,
        store: ConsolidationService,
    ):
        self.enricher = enricher
        self.product_masters = product_masters
        self.store_masters = store_masters
        self.product_catalog = product_catalog
        self.store_catalog = store_catalog
        self.store = store

    async def merge_update(self, intents: Iterable[MergeIntent]) -> MergeResult:
        """
        Patch every consolidated row matched by each intent.

        Args:
            intents: ByProductKey / ByStoreKey intents, applied in order

        Returns:
            MergeResult with the total number of rows patched

        Raises:
            UnknownCanonicalCodeError: Intent code is not in the catalog
            DuplicateMappingError: Mapping create lost a uniqueness race
            DatabaseError: Any data access failure
        """
        intents = list(intents)
        updated = 0

        for intent in intents:
            if isinstance(intent, ByProductKey):
                updated += await self._merge_product(intent)
            elif isinstance(intent, ByStoreKey):
                updated += await self._merge_store(intent)
            else:
                raise TypeError(f"Unsupported merge intent: {type(intent).__name__}")

        logger.info("merge_completed", intents=len(intents), updated=updated)
        return MergeResult(updated=updated)

    # ===================
    # PER-KIND MERGE
    # ===================

    async def _merge_product(self, intent: ByProductKey) -> int:
        search_key = intent.search_key
        rows = await self.store.find_by_product_key(search_key)
        if not rows:
            logger.info("merge_intent_skipped", kind="product", search_key=search_key)
            return 0

        mapping = await self._ensure_mapping(
            kind="product",
            masters=self.product_masters,
            catalog=self.product_catalog,
            search_key=search_key,
            code=intent.code_product,
            new_mapping=lambda: ProductMappingCreate(
                distributor=intent.distributor,
                product_distributor=intent.product_code,
                product_description=intent.description,
                code_product=intent.code_product,
            ),
            assign_code=lambda: ProductMappingUpdate(code_product=intent.code_product),
        )

        patch: dict[str, Any] = {
            "distributor": intent.distributor,
            "code_product_distributor": intent.product_code,
            "description_distributor": intent.description,
            "search_product_key": search_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if mapping is not None and mapping.is_resolved:
            patch.update(await self.enricher.product_patch(mapping))

        affected = await self.store.update_fields_by_product_key(search_key, patch)
        logger.info(
            "merge_intent_applied",
            kind="product",
            search_key=search_key,
            matched=len(rows),
            updated=affected
        )
        return affected

    async def _merge_store(self, intent: ByStoreKey) -> int:
        search_key = intent.search_key
        rows = await self.store.find_by_store_key(search_key)
        if not rows:
            logger.info("merge_intent_skipped", kind="store", search_key=search_key)
            return 0

        mapping = await self._ensure_mapping(
            kind="store",
            masters=self.store_masters,
            catalog=self.store_catalog,
            search_key=search_key,
            code=intent.code_store,
            new_mapping=lambda: StoreMappingCreate(
                distributor=intent.distributor,
                store_distributor=intent.store_code,
                code_store=intent.code_store,
            ),
            assign_code=lambda: StoreMappingUpdate(code_store=intent.code_store),
        )

        patch: dict[str, Any] = {
            "distributor": intent.distributor,
            "code_store_distributor": intent.store_code,
            "search_store_key": search_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if mapping is not None and mapping.is_resolved:
            patch.update(await self.enricher.store_patch(mapping))

        affected = await self.store.update_fields_by_store_key(search_key, patch)
        logger.info(
            "merge_intent_applied",
            kind="store",
            search_key=search_key,
            matched=len(rows),
            updated=affected
        )
        return affected

    # ===================
    # MAPPING RESOLUTION
    # ===================

    async def _ensure_mapping(
        self,
        kind: str,
        masters: MasterMappingService,
        catalog,
        search_key: str,
        code: Optional[str],
        new_mapping: Callable,
        assign_code: Callable,
    ):
        """
        Reuse, complete or create the mapping implied by an intent.

        Returns:
            The mapping, or None when it is absent and no code was given
        """
        mapping = await masters.find_by_search_key(search_key)

        if mapping is not None:
            if not mapping.is_resolved and code:
                await self._verify_code(kind, catalog, code)
                mapping = await masters.update(mapping.id, assign_code())
                logger.info("merge_mapping_code_assigned", kind=kind, mapping_id=mapping.id)
            return mapping

        if not code:
            return None

        await self._verify_code(kind, catalog, code)
        # Raises DuplicateMappingError when a concurrent writer got there first
        return await masters.create(new_mapping())

    async def _verify_code(self, kind: str, catalog, code: str) -> None:
        if await catalog.find_by_code(code) is None:
            raise UnknownCanonicalCodeError(kind, code)


# Singleton instance
_merge_resolver: Optional[MergeResolver] = None


async def get_merge_resolver() -> MergeResolver:
    """Get or create MergeResolver instance."""
    global _merge_resolver
    if _merge_resolver is None:
        _merge_resolver = MergeResolver(
            enricher=await get_record_enricher(),
            product_masters=await get_product_master_service(),
            store_masters=await get_store_master_service(),
            product_catalog=await get_product_catalog_service(),
            store_catalog=await get_store_catalog_service(),
            store=await get_consolidation_service(),
        )
    return _merge_resolver
