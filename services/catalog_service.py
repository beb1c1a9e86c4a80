"""
Canonical catalog access.

Read-only lookups of internal products and stores by canonical code.
A mapping that points at a code missing from the catalog is a data
integrity warning: callers get None and carry on with null display
fields.
"""

from typing import Optional
import structlog

from supabase import AsyncClient

from config import get_supabase_client
from models.catalog import ProductCatalogEntry, StoreCatalogEntry
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class ProductCatalogService:
    """Internal product catalog (code → model name)."""

    def __init__(self, db: AsyncClient):
        self.db = db
        self.table = "product_catalog"

    async def find_by_code(self, code: str) -> Optional[ProductCatalogEntry]:
        """
        Get product display attributes by canonical code.

        Args:
            code: Canonical product code

        Returns:
            ProductCatalogEntry, or None when the code is not catalogued
        """
        try:
            result = await (
                self.db.table(self.table)
                .select("code, model_name")
                .eq("code", str(code))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_catalog_product_failed", code=code, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            logger.warning("catalog_entry_missing", kind="product", code=code)
            return None
        return ProductCatalogEntry(**result.data[0])


class StoreCatalogService:
    """Internal store catalog (code → store name, authorized distributor)."""

    def __init__(self, db: AsyncClient):
        self.db = db
        self.table = "store_catalog"

    async def find_by_code(self, code: str) -> Optional[StoreCatalogEntry]:
        """
        Get store display attributes by canonical code.

        Args:
            code: Canonical store code

        Returns:
            StoreCatalogEntry, or None when the code is not catalogued
        """
        try:
            result = await (
                self.db.table(self.table)
                .select("code, store_name, authorized_distributor")
                .eq("code", str(code))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_catalog_store_failed", code=code, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            logger.warning("catalog_entry_missing", kind="store", code=code)
            return None
        return StoreCatalogEntry(**result.data[0])


# Singleton instances
_product_catalog_service: Optional[ProductCatalogService] = None
_store_catalog_service: Optional[StoreCatalogService] = None


async def get_product_catalog_service() -> ProductCatalogService:
    """Get or create ProductCatalogService instance."""
    global _product_catalog_service
    if _product_catalog_service is None:
        _product_catalog_service = ProductCatalogService(await get_supabase_client())
    return _product_catalog_service


async def get_store_catalog_service() -> StoreCatalogService:
    """Get or create StoreCatalogService instance."""
    global _store_catalog_service
    if _store_catalog_service is None:
        _store_catalog_service = StoreCatalogService(await get_supabase_client())
    return _store_catalog_service
