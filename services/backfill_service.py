"""
Backfill synchronizer.

Re-resolves consolidated rows stored before their master mappings
existed, and pushes mapping edits out to every row sharing the edited
search key. Both operations only patch derived fields, so re-running
them against unchanged master data leaves the rows as they are.
"""

import asyncio
from collections import defaultdict
from datetime import date
from typing import Awaitable, Callable, Iterable, Optional
import structlog

from config import get_settings
from models.master import ProductMapping, StoreMapping
from models.sellout import SyncSummary, UnresolvedCandidate
from services.consolidation_service import ConsolidationService, get_consolidation_service
from services.enrichment_service import RecordEnricher, get_record_enricher
from services.master_mapping_service import (
    MasterMappingService,
    ProductMasterService,
    StoreMasterService,
    get_product_master_service,
    get_store_master_service,
)
from utils.text_utils import chunked, product_search_key, store_search_key

logger = structlog.get_logger(__name__)

PatchBuilder = Callable[..., Awaitable[dict]]


def _group_ids(
    candidates: Iterable[UnresolvedCandidate],
    key_for: Callable[[UnresolvedCandidate], str],
) -> dict[str, list[int]]:
    """Row ids grouped by recomputed search key, in first-seen order."""
    groups: dict[str, list[int]] = defaultdict(list)
    for candidate in candidates:
        groups[key_for(candidate)].append(candidate.id)
    return dict(groups)


def _fold(kind: str, items: list, outcomes: list) -> tuple[int, int]:
    """Sum settled row counts; failures are logged and counted, not raised."""
    updated = 0
    failed = 0
    for item, outcome in zip(items, outcomes):
        if isinstance(outcome, Exception):
            failed += 1
            logger.warning(
                "backfill_item_failed",
                kind=kind,
                search_key=getattr(item, "search_key", item),
                error=str(outcome)
            )
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            updated += outcome
    return updated, failed


class BackfillSynchronizer:
    """
    Store and product backfill passes plus mapping propagation.

    The two passes are independent. Keys are handled in fixed-size
    chunks; items in a chunk run together and fail independently, and
    chunks are separated by a short pause to bound load on the database.
    """

    def __init__(
        self,
        enricher: RecordEnricher,
        product_masters: ProductMasterService,
        store_masters: StoreMasterService,
        store: ConsolidationService,
    ):
        self.enricher = enricher
        self.product_masters = product_masters
        self.store_masters = store_masters
        self.store = store

    # ===================
    # BACKFILL
    # ===================

    async def sync_stores(self, calculate_date: Optional[date] = None) -> int:
        """
        Resolve rows whose canonical store code is still null.

        Args:
            calculate_date: Restrict to one calculation period

        Returns:
            Number of consolidated rows patched
        """
        candidates = await self.store.find_unresolved_stores(calculate_date)
        groups = _group_ids(
            candidates,
            lambda c: store_search_key(c.distributor, c.code_store_distributor),
        )
        return await self._sync_pass(
            "store", groups, self.store_masters, self.enricher.store_patch, calculate_date
        )

    async def sync_products(self, calculate_date: Optional[date] = None) -> int:
        """
        Resolve rows whose canonical product code is still null.

        Args:
            calculate_date: Restrict to one calculation period

        Returns:
            Number of consolidated rows patched
        """
        candidates = await self.store.find_unresolved_products(calculate_date)
        groups = _group_ids(
            candidates,
            lambda c: product_search_key(
                c.distributor, c.code_product_distributor, c.description_distributor
            ),
        )
        return await self._sync_pass(
            "product", groups, self.product_masters, self.enricher.product_patch, calculate_date
        )

    async def sync_period(self, year: int, month: int) -> SyncSummary:
        """Run both passes for the period starting on the first of the month."""
        period = date(year, month, 1)
        logger.info("backfill_period_started", calculate_date=period.isoformat())

        stores_updated = await self.sync_stores(period)
        products_updated = await self.sync_products(period)

        return SyncSummary(
            calculate_date=period,
            stores_updated=stores_updated,
            products_updated=products_updated,
        )

    async def _sync_pass(
        self,
        kind: str,
        groups: dict[str, list[int]],
        masters: MasterMappingService,
        build_patch: PatchBuilder,
        calculate_date: Optional[date],
    ) -> int:
        settings = get_settings()
        keys = list(groups)
        updated = 0
        failed = 0

        logger.info(
            "backfill_pass_started",
            kind=kind,
            calculate_date=calculate_date.isoformat() if calculate_date else None,
            candidate_keys=len(keys)
        )

        for index, chunk in enumerate(chunked(keys, settings.sync_batch_size)):
            if index:
                await asyncio.sleep(settings.sync_batch_delay_seconds)

            mappings = await masters.find_by_search_keys(chunk)
            resolved = [m for m in mappings if m.is_resolved and m.search_key in groups]

            outcomes = await asyncio.gather(
                *(self._patch_ids(groups[m.search_key], m, build_patch) for m in resolved),
                return_exceptions=True,
            )
            chunk_updated, chunk_failed = _fold(kind, resolved, outcomes)
            updated += chunk_updated
            failed += chunk_failed

        logger.info(
            "backfill_pass_completed",
            kind=kind,
            candidate_keys=len(keys),
            updated=updated,
            failed=failed
        )
        return updated

    async def _patch_ids(self, record_ids: list[int], mapping, build_patch: PatchBuilder) -> int:
        patch = await build_patch(mapping)
        return await self.store.update_fields_by_ids(record_ids, patch)

    # ===================
    # PROPAGATION
    # ===================

    async def propagate_product_mappings(self, mappings: Iterable[ProductMapping]) -> int:
        """Patch every consolidated row sharing each mapping's product key."""
        return await self._propagate(
            "product",
            mappings,
            self.enricher.product_patch,
            self.store.update_fields_by_product_key,
        )

    async def propagate_store_mappings(self, mappings: Iterable[StoreMapping]) -> int:
        """Patch every consolidated row sharing each mapping's store key."""
        return await self._propagate(
            "store",
            mappings,
            self.enricher.store_patch,
            self.store.update_fields_by_store_key,
        )

    async def _propagate(
        self,
        kind: str,
        mappings: Iterable,
        build_patch: PatchBuilder,
        apply: Callable[[str, dict], Awaitable[int]],
    ) -> int:
        eligible = []
        for mapping in mappings:
            if not mapping.search_key or not mapping.is_resolved:
                logger.warning(
                    "mapping_not_propagated",
                    kind=kind,
                    mapping_id=mapping.id,
                    search_key=mapping.search_key
                )
                continue
            eligible.append(mapping)

        async def apply_one(mapping) -> int:
            patch = await build_patch(mapping)
            return await apply(mapping.search_key, patch)

        updated = 0
        failed = 0
        for chunk in chunked(eligible, get_settings().propagate_batch_size):
            outcomes = await asyncio.gather(
                *(apply_one(m) for m in chunk),
                return_exceptions=True,
            )
            chunk_updated, chunk_failed = _fold(kind, chunk, outcomes)
            updated += chunk_updated
            failed += chunk_failed

        logger.info(
            "mappings_propagated",
            kind=kind,
            mappings=len(eligible),
            updated=updated,
            failed=failed
        )
        return updated


# Singleton instance
_backfill_synchronizer: Optional[BackfillSynchronizer] = None


async def get_backfill_synchronizer() -> BackfillSynchronizer:
    """Get or create BackfillSynchronizer instance."""
    global _backfill_synchronizer
    if _backfill_synchronizer is None:
        _backfill_synchronizer = BackfillSynchronizer(
            enricher=await get_record_enricher(),
            product_masters=await get_product_master_service(),
            store_masters=await get_store_master_service(),
            store=await get_consolidation_service(),
        )
    return _backfill_synchronizer
