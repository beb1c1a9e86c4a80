"""
Sell-out upload models.

An upload carries one chunk of a distributor file: the rows sit under
a named array block inside data_content, and upload_count/upload_total
describe the chunk's position in a multi-part upload.
"""

from datetime import date
from typing import Any, Optional
from pydantic import Field, field_validator

from models.base import BaseSchema, InboundSchema
from models.sellout import BatchRunResult, parse_date_value


DATA_BLOCK_NAME = "consolidated_data_stores"


class SelloutUpload(InboundSchema):
    """One uploaded chunk of distributor sell-out rows."""

    template_id: int = Field(..., description="Owning batch/template identifier")
    calculate_date: date = Field(..., description="Calculation period date")
    data_content: dict[str, Any] = Field(default_factory=dict, description="Raw payload")
    sellout_configuration_id: Optional[int] = None
    record_count: int = Field(0, ge=0)
    product_count: int = Field(0, ge=0)
    upload_count: int = Field(1, ge=1, description="1-based position of this chunk")
    upload_total: int = Field(1, ge=1)

    @field_validator("calculate_date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_date_value(v)


class ExtractionLogCreate(BaseSchema):
    """Persisted subset of a batch run."""

    template_id: int
    sellout_configuration_id: Optional[int] = None
    calculate_date: date
    start_time: str
    end_time: str
    status: str
    records_extracted: int
    records_processed: int
    records_failed: int
    error_message: Optional[str] = None
    execution_details: dict[str, Any] = Field(default_factory=dict)


class IngestionResponse(BaseSchema):
    """Response from a sell-out upload."""

    message: str
    deleted: int = 0
    result: BatchRunResult
