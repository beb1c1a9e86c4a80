"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    InboundSchema,
    TimestampMixin,
)
from models.master import (
    ProductMappingCreate,
    ProductMappingUpdate,
    ProductMapping,
    StoreMappingCreate,
    StoreMappingUpdate,
    StoreMapping,
)
from models.catalog import (
    ProductCatalogEntry,
    StoreCatalogEntry,
)
from models.sellout import (
    RawSelloutRecord,
    EnrichedFields,
    ConsolidatedRecordCreate,
    ConsolidatedRecordUpdate,
    ConsolidatedRecord,
    UnresolvedCandidate,
    NullFieldFilters,
    NullFieldSummary,
    BatchStatus,
    BatchRunResult,
    SyncSummary,
)
from models.merge import (
    ByProductKey,
    ByStoreKey,
    MergeIntent,
    MergeRequest,
    MergeResult,
)
from models.ingest import (
    DATA_BLOCK_NAME,
    SelloutUpload,
    ExtractionLogCreate,
    IngestionResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "InboundSchema",
    "TimestampMixin",

    # Master mappings
    "ProductMappingCreate",
    "ProductMappingUpdate",
    "ProductMapping",
    "StoreMappingCreate",
    "StoreMappingUpdate",
    "StoreMapping",

    # Catalog
    "ProductCatalogEntry",
    "StoreCatalogEntry",

    # Sell-out
    "RawSelloutRecord",
    "EnrichedFields",
    "ConsolidatedRecordCreate",
    "ConsolidatedRecordUpdate",
    "ConsolidatedRecord",
    "UnresolvedCandidate",
    "NullFieldFilters",
    "NullFieldSummary",
    "BatchStatus",
    "BatchRunResult",
    "SyncSummary",

    # Merge
    "ByProductKey",
    "ByStoreKey",
    "MergeIntent",
    "MergeRequest",
    "MergeResult",

    # Ingest
    "DATA_BLOCK_NAME",
    "SelloutUpload",
    "ExtractionLogCreate",
    "IngestionResponse",
]
