"""
Batch processing of uploaded sell-out rows.

Every row is enriched and saved on its own: a failing row is counted,
its technical error classified into a user-facing hint, and the run
moves on. Only an error escaping the per-row boundary marks the whole
run as FAILURE.
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, Union
import structlog

from config import get_settings
from models.sellout import (
    BatchRunResult,
    BatchStatus,
    ConsolidatedRecordCreate,
    RawSelloutRecord,
    parse_date_value,
)
from services.consolidation_service import ConsolidationService, get_consolidation_service
from services.enrichment_service import RecordEnricher, get_record_enricher
from utils.text_utils import chunked, group_messages

logger = structlog.get_logger(__name__)

RecordInput = Union[RawSelloutRecord, dict[str, Any]]

# Ordered: first matching rule wins
ERROR_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("date/time field value out of range", "valid date", "date_from_datetime"),
        "A date is out of range for record {code}. Check the data.",
    ),
    (
        ("duplicate key",),
        "A duplicate record already exists for record {code}.",
    ),
    (
        ("cannot be null", "null value in column"),
        "Required data is missing for record {code}.",
    ),
)
GENERIC_ERROR = "Could not process record {code}. Check the data."


def classify_error(technical_error: str, code: Optional[str]) -> str:
    """
    Turn a technical error into a user-facing message.

    Args:
        technical_error: Raw exception text
        code: Distributor store code of the failing row

    Returns:
        Message of the first rule whose keyword appears, else the generic one
    """
    for keywords, message in ERROR_RULES:
        if any(keyword in technical_error for keyword in keywords):
            return message.format(code=code)
    return GENERIC_ERROR.format(code=code)


def _store_code(record: Any) -> Optional[str]:
    if isinstance(record, RawSelloutRecord):
        return record.code_store_distributor
    if isinstance(record, dict):
        code = record.get("codeStoreDistributor", record.get("code_store_distributor"))
        return None if code is None else str(code)
    return None


class BatchProcessor:
    """Enrich and persist a batch of raw rows with per-row failure isolation."""

    def __init__(self, enricher: RecordEnricher, store: ConsolidationService):
        self.enricher = enricher
        self.store = store

    async def process(
        self,
        records: Iterable[RecordInput],
        template_id: int,
        calculate_date: Union[date, str],
    ) -> BatchRunResult:
        """
        Process a batch of raw rows.

        Rows in a chunk are issued together and joined; counts are
        folded from the settled outcomes after each join.

        Args:
            records: Raw rows (dicts in upload format or RawSelloutRecord)
            template_id: Owning batch/template id stamped on every row
            calculate_date: Calculation period stamped on every row

        Returns:
            BatchRunResult; never raises for per-row failures
        """
        start_time = datetime.now(timezone.utc)
        records = list(records)
        processed = 0
        failed = 0
        user_errors: list[str] = []
        technical_errors: list[str] = []

        logger.info(
            "batch_processing_started",
            template_id=template_id,
            records=len(records)
        )

        try:
            period = parse_date_value(calculate_date)
            chunk_size = get_settings().process_chunk_size

            for chunk in chunked(records, chunk_size):
                outcomes = await asyncio.gather(
                    *(self._process_one(record, template_id, period) for record in chunk),
                    return_exceptions=True,
                )

                for record, outcome in zip(chunk, outcomes):
                    if isinstance(outcome, Exception):
                        failed += 1
                        code = _store_code(record)
                        technical = str(outcome) or type(outcome).__name__
                        technical_errors.append(technical)
                        user_errors.append(classify_error(technical, code))
                        logger.warning(
                            "sellout_record_failed",
                            code_store_distributor=code,
                            error=technical
                        )
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        processed += 1

        except Exception as e:
            logger.error(
                "batch_processing_aborted",
                template_id=template_id,
                processed=processed,
                failed=failed,
                error=str(e)
            )
            return BatchRunResult(
                start_time=start_time,
                end_time=datetime.now(timezone.utc),
                status=BatchStatus.FAILURE,
                records_extracted=len(records),
                records_processed=processed,
                records_saved=processed,
                records_failed=failed,
                error_messages=group_messages(user_errors),
                technical_errors=technical_errors,
                error_message=str(e) or type(e).__name__,
            )

        logger.info(
            "batch_processing_completed",
            template_id=template_id,
            processed=processed,
            failed=failed
        )

        return BatchRunResult(
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            status=BatchStatus.SUCCESS,
            records_extracted=len(records),
            records_processed=processed,
            records_saved=processed,
            records_failed=failed,
            error_messages=group_messages(user_errors),
            technical_errors=technical_errors,
        )

    async def _process_one(
        self,
        record: RecordInput,
        template_id: int,
        calculate_date: Optional[date],
    ) -> None:
        raw = (
            record if isinstance(record, RawSelloutRecord)
            else RawSelloutRecord.model_validate(record)
        )
        if raw.units_sold_distributor is None:
            raw.units_sold_distributor = get_settings().default_units_sold

        enriched = await self.enricher.enrich(raw)
        row = ConsolidatedRecordCreate.from_raw(
            raw,
            enriched,
            calculate_date=calculate_date,
            template_id=template_id,
        )
        await self.store.create(row)


# Singleton instance
_batch_processor: Optional[BatchProcessor] = None


async def get_batch_processor() -> BatchProcessor:
    """Get or create BatchProcessor instance."""
    global _batch_processor
    if _batch_processor is None:
        _batch_processor = BatchProcessor(
            enricher=await get_record_enricher(),
            store=await get_consolidation_service(),
        )
    return _batch_processor
