"""
Unit tests for IngestionService.

Run: pytest tests/unit/test_ingestion_service.py -v
"""

import pytest

from services.ingestion_service import extract_records
from models.ingest import SelloutUpload
from models.sellout import BatchStatus
from exceptions import InvalidDataBlockError

from tests.factories import ConsolidatedRowFactory, ProductMappingFactory, RawRecordFactory


def _upload(records, **overrides) -> SelloutUpload:
    return SelloutUpload.model_validate({
        "templateId": 7,
        "calculateDate": "2024-05-01T00:00:00.000Z",
        "dataContent": {"consolidated_data_stores": records},
        "selloutConfigurationId": 3,
        "recordCount": len(records) if isinstance(records, list) else 0,
        "uploadCount": 1,
        "uploadTotal": 2,
        **overrides,
    })


class TestExtractRecords:

    @pytest.mark.parametrize("content", [
        {},
        {"consolidated_data_stores": []},
        {"consolidated_data_stores": "not a list"},
        {"other_block": [{"distributor": "D1"}]},
    ])
    def test_unusable_block_raises(self, content):
        with pytest.raises(InvalidDataBlockError):
            extract_records(content)

    def test_returns_rows(self):
        assert extract_records({"consolidated_data_stores": [{"a": 1}]}) == [{"a": 1}]


class TestIngest:

    @pytest.mark.asyncio
    async def test_first_chunk_replaces_previous_rows(self, services, catalogs):
        catalogs.seed("consolidated_sellout", [
            ConsolidatedRowFactory.create(),
            ConsolidatedRowFactory.create(template_id=8),
        ])
        catalogs.seed("sellout_product_master", [ProductMappingFactory.create()])

        response = await services.ingestion.ingest(_upload(RawRecordFactory.create_batch(2)))

        rows = catalogs.rows("consolidated_sellout")
        assert response.message == "Data extracted successfully"
        assert response.deleted == 1
        assert response.result.records_saved == 2
        assert len(rows) == 3
        assert sum(1 for r in rows if r["template_id"] == 7) == 2

    @pytest.mark.asyncio
    async def test_later_chunks_append(self, services, catalogs):
        catalogs.seed("consolidated_sellout", [ConsolidatedRowFactory.create()])

        response = await services.ingestion.ingest(
            _upload(RawRecordFactory.create_batch(1), uploadCount=2)
        )

        assert response.deleted == 0
        assert len(catalogs.rows("consolidated_sellout")) == 2
        assert catalogs.count_calls("consolidated_sellout", "delete") == 0

    @pytest.mark.asyncio
    async def test_writes_extraction_log(self, services, catalogs):
        records = RawRecordFactory.create_batch(2)
        records[1] = RawRecordFactory.create(store_code="S-BAD", sale_date="2024-99-01")

        await services.ingestion.ingest(_upload(records))

        logs = catalogs.rows("extraction_logs")
        assert len(logs) == 1
        log = logs[0]
        assert log["template_id"] == 7
        assert log["sellout_configuration_id"] == 3
        assert log["calculate_date"] == "2024-05-01"
        assert log["status"] == BatchStatus.SUCCESS.value
        assert log["records_processed"] == 1
        assert log["records_failed"] == 1
        assert log["execution_details"]["error_messages"] == [
            "A date is out of range for record S-BAD. Check the data."
        ]

    @pytest.mark.asyncio
    async def test_nothing_saved_reports_errors(self, services, catalogs):
        records = [RawRecordFactory.create(sale_date="bad-date")]

        response = await services.ingestion.ingest(_upload(records))

        assert response.message == "There were errors processing the data"
        assert response.result.records_failed == 1

    @pytest.mark.asyncio
    async def test_log_write_failure_does_not_fail_upload(self, services, catalogs):
        catalogs.fail_on["extraction_logs"] = "insert"

        response = await services.ingestion.ingest(_upload(RawRecordFactory.create_batch(1)))

        assert response.result.records_saved == 1
        assert catalogs.rows("extraction_logs") == []

    @pytest.mark.asyncio
    async def test_invalid_block_raises_before_any_write(self, services, catalogs):
        catalogs.seed("consolidated_sellout", [ConsolidatedRowFactory.create()])

        with pytest.raises(InvalidDataBlockError):
            await services.ingestion.ingest(_upload([]))

        assert len(catalogs.rows("consolidated_sellout")) == 1
