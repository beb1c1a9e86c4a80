"""
Sell-out record schemas.

Raw distributor rows come in through uploads, get enriched against the
master mappings and canonical catalogs, and are stored as consolidated
records for reporting.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import Field, field_validator

from models.base import BaseSchema, InboundSchema, TimestampMixin


def parse_date_value(v: Any) -> Any:
    """Parse date from string or datetime, keeping only the date part."""
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, str):
        text = v.strip().split("T")[0].split(" ")[0]
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise ValueError(f"date/time field value out of range: {v!r}")
    return v


def _code_to_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    return str(v)


# ===================
# RAW RECORDS
# ===================

class RawSelloutRecord(InboundSchema):
    """One distributor row as uploaded. No identity until consolidated."""

    distributor: Optional[str] = None
    code_product_distributor: Optional[str] = None
    code_store_distributor: Optional[str] = None
    description_distributor: Optional[str] = None
    units_sold_distributor: Optional[Decimal] = Field(None, description="Units sold")
    sale_date: Optional[date] = None
    calculate_date: Optional[date] = Field(None, description="Calculation period date")

    @field_validator(
        "distributor",
        "code_product_distributor",
        "code_store_distributor",
        "description_distributor",
        mode="before",
    )
    @classmethod
    def stringify(cls, v):
        return _code_to_str(v)

    @field_validator("sale_date", "calculate_date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_date_value(v)


class EnrichedFields(BaseSchema):
    """Derived fields resolved from master mappings and catalogs."""

    code_product: Optional[str] = None
    code_store: Optional[str] = None
    product_model: Optional[str] = None
    store_name: Optional[str] = None
    authorized_distributor: Optional[str] = None
    search_product_key: str = ""
    search_store_key: str = ""

    @property
    def product_resolved(self) -> bool:
        return self.code_product is not None

    @property
    def store_resolved(self) -> bool:
        return self.code_store is not None


# ===================
# CONSOLIDATED RECORDS
# ===================

class ConsolidatedRecordCreate(BaseSchema):
    """Full consolidated row ready for insertion."""

    distributor: Optional[str] = None
    code_product_distributor: Optional[str] = None
    code_store_distributor: Optional[str] = None
    description_distributor: Optional[str] = None
    units_sold_distributor: Optional[Decimal] = None
    sale_date: Optional[date] = None
    code_product: Optional[str] = None
    code_store: Optional[str] = None
    product_model: Optional[str] = None
    store_name: Optional[str] = None
    authorized_distributor: Optional[str] = None
    search_product_key: Optional[str] = None
    search_store_key: Optional[str] = None
    calculate_date: Optional[date] = None
    template_id: Optional[int] = None
    status: bool = True

    @classmethod
    def from_raw(
        cls,
        raw: RawSelloutRecord,
        enriched: EnrichedFields,
        calculate_date: Optional[date] = None,
        template_id: Optional[int] = None,
    ) -> "ConsolidatedRecordCreate":
        """Merge distributor-origin fields with enrichment results."""
        return cls(
            **raw.model_dump(exclude={"calculate_date"}),
            **enriched.model_dump(),
            calculate_date=calculate_date or raw.calculate_date,
            template_id=template_id,
        )

    def to_row(self) -> dict:
        """Serialize for the database."""
        row = self.model_dump(mode="json")
        if self.units_sold_distributor is not None:
            row["units_sold_distributor"] = float(self.units_sold_distributor)
        return row


class ConsolidatedRecordUpdate(InboundSchema):
    """Editable fields of a consolidated row."""

    distributor: Optional[str] = None
    code_product_distributor: Optional[str] = None
    code_store_distributor: Optional[str] = None
    description_distributor: Optional[str] = None
    units_sold_distributor: Optional[Decimal] = None
    sale_date: Optional[date] = None
    calculate_date: Optional[date] = None
    status: Optional[bool] = None

    @field_validator("sale_date", "calculate_date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_date_value(v)


class ConsolidatedRecord(TimestampMixin, BaseSchema):
    """Consolidated row as stored."""

    id: int
    distributor: Optional[str] = None
    code_product_distributor: Optional[str] = None
    code_store_distributor: Optional[str] = None
    description_distributor: Optional[str] = None
    units_sold_distributor: Optional[Decimal] = None
    sale_date: Optional[date] = None
    code_product: Optional[str] = None
    code_store: Optional[str] = None
    product_model: Optional[str] = None
    store_name: Optional[str] = None
    authorized_distributor: Optional[str] = None
    search_product_key: Optional[str] = None
    search_store_key: Optional[str] = None
    calculate_date: Optional[date] = None
    template_id: Optional[int] = None
    status: Optional[bool] = None

    @field_validator(
        "code_product_distributor",
        "code_store_distributor",
        "code_product",
        "code_store",
        mode="before",
    )
    @classmethod
    def stringify(cls, v):
        return _code_to_str(v)

    @field_validator("units_sold_distributor", mode="before")
    @classmethod
    def ensure_decimal(cls, v):
        if v is not None:
            return Decimal(str(v))
        return v


class UnresolvedCandidate(BaseSchema):
    """Row still missing a canonical product or store code."""

    id: int
    distributor: Optional[str] = None
    code_product_distributor: Optional[str] = None
    code_store_distributor: Optional[str] = None
    description_distributor: Optional[str] = None

    @field_validator(
        "code_product_distributor",
        "code_store_distributor",
        mode="before",
    )
    @classmethod
    def stringify(cls, v):
        return _code_to_str(v)


class NullFieldFilters(BaseSchema):
    """Which derived fields must be null when listing unresolved rows."""

    code_product: bool = False
    code_store: bool = False
    product_model: bool = False
    store_name: bool = False
    authorized_distributor: bool = False

    def selected(self) -> list[str]:
        return [name for name, flag in self.model_dump().items() if flag]


class NullFieldSummary(BaseSchema):
    """Counts of rows with each derived field still null."""

    total: int
    code_product: int
    code_store: int
    product_model: int
    store_name: int
    authorized_distributor: int


# ===================
# BATCH / SYNC RESULTS
# ===================

class BatchStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class BatchRunResult(BaseSchema):
    """Summary of one batch processing run. Returned, never persisted."""

    start_time: datetime
    end_time: datetime
    status: BatchStatus
    records_extracted: int = 0
    records_processed: int = 0
    records_saved: int = 0
    records_failed: int = 0
    error_messages: list[str] = Field(default_factory=list, description="Grouped user-facing errors")
    technical_errors: list[str] = Field(default_factory=list, description="Raw technical error log")
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)


class SyncSummary(BaseSchema):
    """Result of a backfill run over both passes."""

    calculate_date: Optional[date] = None
    stores_updated: int = 0
    products_updated: int = 0
