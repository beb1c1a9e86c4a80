"""
Single consolidated record editing.

Creates and edits one row at a time. Every create or edit re-runs
enrichment so derived fields match the master data at write time.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union
import structlog

from models.sellout import (
    ConsolidatedRecord,
    ConsolidatedRecordCreate,
    ConsolidatedRecordUpdate,
    RawSelloutRecord,
)
from services.consolidation_service import ConsolidationService, get_consolidation_service
from services.enrichment_service import RecordEnricher, get_record_enricher

logger = structlog.get_logger(__name__)

DISTRIBUTOR_FIELDS = {
    "distributor",
    "code_product_distributor",
    "code_store_distributor",
    "description_distributor",
}


class SelloutRecordService:
    """Point create/update/delete of consolidated rows."""

    def __init__(self, enricher: RecordEnricher, store: ConsolidationService):
        self.enricher = enricher
        self.store = store

    async def create_record(
        self,
        raw: Union[RawSelloutRecord, dict[str, Any]]
    ) -> ConsolidatedRecord:
        """
        Enrich and persist one raw row.

        Sale and period dates keep only their date part.
        """
        if not isinstance(raw, RawSelloutRecord):
            raw = RawSelloutRecord.model_validate(raw)

        enriched = await self.enricher.enrich(raw)
        record = await self.store.create(ConsolidatedRecordCreate.from_raw(raw, enriched))

        logger.info(
            "consolidated_record_created",
            record_id=record.id,
            product_resolved=enriched.product_resolved,
            store_resolved=enriched.store_resolved
        )
        return record

    async def update_record(
        self,
        record_id: int,
        data: ConsolidatedRecordUpdate
    ) -> ConsolidatedRecord:
        """
        Apply edited fields and refresh derived fields.

        Enrichment runs on the stored distributor fields overlaid with
        any distributor fields being edited.

        Raises:
            ConsolidatedRecordNotFoundError: If row doesn't exist
        """
        existing = await self.store.get_by_id(record_id)

        changes = data.model_dump(exclude_unset=True, mode="json")
        if data.units_sold_distributor is not None:
            changes["units_sold_distributor"] = float(data.units_sold_distributor)

        raw = RawSelloutRecord(**{
            **existing.model_dump(include=DISTRIBUTOR_FIELDS),
            **data.model_dump(exclude_unset=True, include=DISTRIBUTOR_FIELDS),
        })
        enriched = await self.enricher.enrich(raw)

        fields = {
            **changes,
            **enriched.model_dump(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        return await self.store.update(record_id, fields)

    async def update_status(self, record_id: int, status: bool) -> ConsolidatedRecord:
        """
        Toggle the status flag only.

        Raises:
            ConsolidatedRecordNotFoundError: If row doesn't exist
        """
        return await self.store.update(record_id, {
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })

    async def delete_record(self, record_id: int) -> bool:
        """
        Delete one row.

        Raises:
            ConsolidatedRecordNotFoundError: If row doesn't exist
        """
        return await self.store.delete(record_id)


# Singleton instance
_sellout_record_service: Optional[SelloutRecordService] = None


async def get_sellout_record_service() -> SelloutRecordService:
    """Get or create SelloutRecordService instance."""
    global _sellout_record_service
    if _sellout_record_service is None:
        _sellout_record_service = SelloutRecordService(
            enricher=await get_record_enricher(),
            store=await get_consolidation_service(),
        )
    return _sellout_record_service
