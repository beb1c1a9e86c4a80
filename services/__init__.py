"""
Business logic services.

Each service handles one stage of sell-out reconciliation.
"""

from services.master_mapping_service import (
    MasterMappingService,
    ProductMasterService,
    StoreMasterService,
    get_product_master_service,
    get_store_master_service,
)
from services.catalog_service import (
    ProductCatalogService,
    StoreCatalogService,
    get_product_catalog_service,
    get_store_catalog_service,
)
from services.consolidation_service import ConsolidationService, get_consolidation_service
from services.enrichment_service import RecordEnricher, get_record_enricher
from services.batch_processor_service import (
    BatchProcessor,
    classify_error,
    get_batch_processor,
)
from services.backfill_service import BackfillSynchronizer, get_backfill_synchronizer
from services.merge_service import MergeResolver, get_merge_resolver
from services.master_data_service import MasterDataService, get_master_data_service
from services.sellout_record_service import SelloutRecordService, get_sellout_record_service
from services.ingestion_service import IngestionService, get_ingestion_service

__all__ = [
    "MasterMappingService",
    "ProductMasterService",
    "StoreMasterService",
    "get_product_master_service",
    "get_store_master_service",
    "ProductCatalogService",
    "StoreCatalogService",
    "get_product_catalog_service",
    "get_store_catalog_service",
    "ConsolidationService",
    "get_consolidation_service",
    "RecordEnricher",
    "get_record_enricher",
    "BatchProcessor",
    "classify_error",
    "get_batch_processor",
    "BackfillSynchronizer",
    "get_backfill_synchronizer",
    "MergeResolver",
    "get_merge_resolver",
    "MasterDataService",
    "get_master_data_service",
    "SelloutRecordService",
    "get_sellout_record_service",
    "IngestionService",
    "get_ingestion_service",
]
