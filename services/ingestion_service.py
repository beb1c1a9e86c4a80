"""
Sell-out upload ingestion.

Unpacks an uploaded chunk, clears the template's previous rows for the
period when the chunk is the first of its upload, runs the batch
processor and records an extraction log.
"""

from typing import Any, Optional
import structlog

from supabase import AsyncClient

from config import get_supabase_client
from models.ingest import (
    DATA_BLOCK_NAME,
    ExtractionLogCreate,
    IngestionResponse,
    SelloutUpload,
)
from models.sellout import BatchRunResult
from services.batch_processor_service import BatchProcessor, get_batch_processor
from services.consolidation_service import ConsolidationService, get_consolidation_service
from exceptions import InvalidDataBlockError

logger = structlog.get_logger(__name__)

SUCCESS_MESSAGE = "Data extracted successfully"
FAILURE_MESSAGE = "There were errors processing the data"


def extract_records(data_content: dict[str, Any]) -> list[dict]:
    """
    Pull the row array out of an upload payload.

    Raises:
        InvalidDataBlockError: Block missing, not a list, or empty
    """
    records = data_content.get(DATA_BLOCK_NAME) if isinstance(data_content, dict) else None
    if not isinstance(records, list) or not records:
        raise InvalidDataBlockError(DATA_BLOCK_NAME)
    return records


class IngestionService:
    """Upload entry point in front of the batch processor."""

    def __init__(
        self,
        db: AsyncClient,
        processor: BatchProcessor,
        store: ConsolidationService,
    ):
        self.db = db
        self.processor = processor
        self.store = store
        self.log_table = "extraction_logs"

    async def ingest(self, upload: SelloutUpload) -> IngestionResponse:
        """
        Process one uploaded chunk.

        Args:
            upload: Upload chunk with its data block and position

        Returns:
            IngestionResponse with the batch run summary

        Raises:
            InvalidDataBlockError: If the data block is unusable
        """
        records = extract_records(upload.data_content)

        logger.info(
            "ingesting_upload",
            template_id=upload.template_id,
            calculate_date=upload.calculate_date.isoformat(),
            upload_count=upload.upload_count,
            upload_total=upload.upload_total,
            records=len(records)
        )

        deleted = 0
        if upload.upload_count == 1:
            deleted = await self.store.delete_by_template(
                upload.template_id, upload.calculate_date
            )

        result = await self.processor.process(
            records, upload.template_id, upload.calculate_date
        )
        await self._write_log(upload, result)

        message = SUCCESS_MESSAGE if result.records_saved > 0 else FAILURE_MESSAGE
        logger.info(
            "upload_ingested",
            template_id=upload.template_id,
            status=result.status.value,
            saved=result.records_saved,
            failed=result.records_failed
        )
        return IngestionResponse(message=message, deleted=deleted, result=result)

    async def _write_log(self, upload: SelloutUpload, result: BatchRunResult) -> None:
        """Persist the run summary; a failed write never fails the upload."""
        entry = ExtractionLogCreate(
            template_id=upload.template_id,
            sellout_configuration_id=upload.sellout_configuration_id,
            calculate_date=upload.calculate_date,
            start_time=result.start_time.isoformat(),
            end_time=result.end_time.isoformat(),
            status=result.status.value,
            records_extracted=result.records_extracted,
            records_processed=result.records_processed,
            records_failed=result.records_failed,
            error_message=result.error_message,
            execution_details={
                "error_messages": result.error_messages,
                "technical_errors": result.technical_errors,
                "records_saved": result.records_saved,
                "duration_ms": result.duration_ms,
                "record_count": upload.record_count,
                "product_count": upload.product_count,
                "upload_count": upload.upload_count,
                "upload_total": upload.upload_total,
            },
        )

        try:
            await self.db.table(self.log_table).insert(entry.model_dump(mode="json")).execute()
        except Exception as e:
            logger.error(
                "extraction_log_write_failed",
                template_id=upload.template_id,
                error=str(e)
            )


# Singleton instance
_ingestion_service: Optional[IngestionService] = None


async def get_ingestion_service() -> IngestionService:
    """Get or create IngestionService instance."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService(
            db=await get_supabase_client(),
            processor=await get_batch_processor(),
            store=await get_consolidation_service(),
        )
    return _ingestion_service
