"""
Consolidation store.

Persists enriched sell-out rows and serves the finders used by the
backfill synchronizer and the merge resolver. Derived fields stored
here are snapshots taken at enrichment or sync time, not live joins.
"""

import asyncio
from datetime import date
from typing import Any, Callable, Optional
import structlog

from supabase import AsyncClient

from config import get_supabase_client
from models.sellout import (
    ConsolidatedRecord,
    ConsolidatedRecordCreate,
    NullFieldFilters,
    NullFieldSummary,
    UnresolvedCandidate,
)
from exceptions import ConsolidatedRecordNotFoundError, DatabaseError
from utils.text_utils import chunked

logger = structlog.get_logger(__name__)

# PostgREST caps responses at 1000 rows by default
FETCH_PAGE_SIZE = 1000
ID_CHUNK_SIZE = 500

PRODUCT_CANDIDATE_COLUMNS = "id, distributor, code_product_distributor, description_distributor"
STORE_CANDIDATE_COLUMNS = "id, distributor, code_store_distributor"

SEARCHABLE_COLUMNS = (
    "distributor",
    "code_product_distributor",
    "code_store_distributor",
    "description_distributor",
)


def _quoted_pattern(value: str) -> str:
    """
    Quote a value for a PostgREST or=() filter.

    Commas and parentheses are reserved there, so the value is wrapped
    in double quotes with embedded quotes and backslashes escaped.
    """
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ConsolidationService:
    """
    Consolidated sell-out rows.

    Point CRUD, duplicate-detection finders and bulk field patches.
    """

    def __init__(self, db: AsyncClient):
        self.db = db
        self.table = "consolidated_sellout"

    # ===================
    # READ OPERATIONS
    # ===================

    async def get_by_id(self, record_id: int) -> ConsolidatedRecord:
        """
        Get a consolidated row by ID.

        Raises:
            ConsolidatedRecordNotFoundError: If row doesn't exist
        """
        try:
            result = await (
                self.db.table(self.table)
                .select("*")
                .eq("id", record_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_consolidated_failed", record_id=record_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ConsolidatedRecordNotFoundError(record_id)
        return ConsolidatedRecord(**result.data[0])

    async def find_by_product_key(self, search_key: str) -> list[ConsolidatedRecord]:
        """All rows sharing a product distributor key."""
        rows = await self._select_all(
            lambda: self.db.table(self.table)
            .select("*")
            .eq("search_product_key", search_key)
            .order("id")
        )
        return [ConsolidatedRecord(**row) for row in rows]

    async def find_by_store_key(self, search_key: str) -> list[ConsolidatedRecord]:
        """All rows sharing a store distributor key."""
        rows = await self._select_all(
            lambda: self.db.table(self.table)
            .select("*")
            .eq("search_store_key", search_key)
            .order("id")
        )
        return [ConsolidatedRecord(**row) for row in rows]

    async def find_unresolved_products(
        self,
        calculate_date: Optional[date] = None
    ) -> list[UnresolvedCandidate]:
        """Rows whose canonical product code is still null."""
        def build():
            query = (
                self.db.table(self.table)
                .select(PRODUCT_CANDIDATE_COLUMNS)
                .is_("code_product", "null")
            )
            if calculate_date:
                query = query.eq("calculate_date", calculate_date.isoformat())
            return query.order("id")

        rows = await self._select_all(build)
        return [UnresolvedCandidate(**row) for row in rows]

    async def find_unresolved_stores(
        self,
        calculate_date: Optional[date] = None
    ) -> list[UnresolvedCandidate]:
        """Rows whose canonical store code is still null."""
        def build():
            query = (
                self.db.table(self.table)
                .select(STORE_CANDIDATE_COLUMNS)
                .is_("code_store", "null")
            )
            if calculate_date:
                query = query.eq("calculate_date", calculate_date.isoformat())
            return query.order("id")

        rows = await self._select_all(build)
        return [UnresolvedCandidate(**row) for row in rows]

    async def get_unresolved(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        null_fields: Optional[NullFieldFilters] = None,
        calculate_date: Optional[date] = None,
    ) -> tuple[list[ConsolidatedRecord], int]:
        """
        List rows with selected derived fields still null.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            search: Substring matched against distributor fields
            null_fields: Derived fields that must be null
            calculate_date: Restrict to one calculation period

        Returns:
            Tuple of (rows, total count)
        """
        logger.info(
            "getting_unresolved_consolidated",
            page=page,
            page_size=page_size,
            null_fields=null_fields.selected() if null_fields else []
        )

        try:
            query = self.db.table(self.table).select("*", count="exact")

            for field in (null_fields.selected() if null_fields else []):
                query = query.is_(field, "null")
            if calculate_date:
                query = query.eq("calculate_date", calculate_date.isoformat())
            if search:
                pattern = _quoted_pattern(f"%{search}%")
                query = query.or_(
                    ",".join(f"{column}.ilike.{pattern}" for column in SEARCHABLE_COLUMNS)
                )

            offset = (page - 1) * page_size
            query = query.range(offset, offset + page_size - 1)
            query = query.order("id", desc=True)

            result = await query.execute()
        except Exception as e:
            logger.error("get_unresolved_consolidated_failed", error=str(e))
            raise DatabaseError("select", str(e))

        records = [ConsolidatedRecord(**row) for row in result.data]
        return records, result.count or 0

    async def get_null_field_summary(
        self,
        calculate_date: Optional[date] = None
    ) -> NullFieldSummary:
        """Count rows per derived field that is still null."""
        fields = list(NullFieldFilters.model_fields)

        async def count(field: Optional[str]) -> int:
            query = self.db.table(self.table).select("id", count="exact")
            if field:
                query = query.is_(field, "null")
            if calculate_date:
                query = query.eq("calculate_date", calculate_date.isoformat())
            result = await query.limit(1).execute()
            return result.count or 0

        try:
            counts = await asyncio.gather(count(None), *(count(f) for f in fields))
        except Exception as e:
            logger.error("null_field_summary_failed", error=str(e))
            raise DatabaseError("count", str(e))

        return NullFieldSummary(total=counts[0], **dict(zip(fields, counts[1:])))

    # ===================
    # WRITE OPERATIONS
    # ===================

    async def create(self, data: ConsolidatedRecordCreate) -> ConsolidatedRecord:
        """
        Insert a consolidated row.

        Raises:
            DatabaseError: Message carries the database error text
        """
        try:
            result = await (
                self.db.table(self.table)
                .insert(data.to_row())
                .execute()
            )
        except Exception as e:
            logger.warning(
                "create_consolidated_failed",
                code_store_distributor=data.code_store_distributor,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        return ConsolidatedRecord(**result.data[0])

    async def update(self, record_id: int, fields: dict[str, Any]) -> ConsolidatedRecord:
        """
        Patch a single row.

        Raises:
            ConsolidatedRecordNotFoundError: If row doesn't exist
        """
        existing = await self.get_by_id(record_id)
        if not fields:
            return existing

        try:
            result = await (
                self.db.table(self.table)
                .update(fields)
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_consolidated_failed", record_id=record_id, error=str(e))
            raise DatabaseError("update", str(e))

        logger.info(
            "consolidated_updated",
            record_id=record_id,
            fields=list(fields.keys())
        )
        return ConsolidatedRecord(**result.data[0])

    async def update_fields_by_product_key(self, search_key: str, patch: dict[str, Any]) -> int:
        """Patch every row sharing a product key. Returns affected rows."""
        return await self._bulk_update("search_product_key", search_key, patch)

    async def update_fields_by_store_key(self, search_key: str, patch: dict[str, Any]) -> int:
        """Patch every row sharing a store key. Returns affected rows."""
        return await self._bulk_update("search_store_key", search_key, patch)

    async def update_fields_by_ids(self, record_ids: list[int], patch: dict[str, Any]) -> int:
        """Patch a set of rows by id. Returns affected rows."""
        affected = 0
        for chunk in chunked(record_ids, ID_CHUNK_SIZE):
            try:
                result = await (
                    self.db.table(self.table)
                    .update(patch)
                    .in_("id", chunk)
                    .execute()
                )
            except Exception as e:
                logger.error("bulk_update_by_ids_failed", count=len(chunk), error=str(e))
                raise DatabaseError("update", str(e))
            affected += len(result.data or [])
        return affected

    async def delete(self, record_id: int) -> bool:
        """
        Delete a single row.

        Raises:
            ConsolidatedRecordNotFoundError: If row doesn't exist
        """
        await self.get_by_id(record_id)

        try:
            await self.db.table(self.table).delete().eq("id", record_id).execute()
        except Exception as e:
            logger.error("delete_consolidated_failed", record_id=record_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("consolidated_deleted", record_id=record_id)
        return True

    async def delete_by_template(self, template_id: int, calculate_date: date) -> int:
        """
        Delete every row owned by a template for one period.

        Used to make re-uploads idempotent.

        Returns:
            Number of rows deleted
        """
        logger.info(
            "deleting_consolidated_by_template",
            template_id=template_id,
            calculate_date=calculate_date.isoformat()
        )

        try:
            result = await (
                self.db.table(self.table)
                .delete()
                .eq("template_id", template_id)
                .eq("calculate_date", calculate_date.isoformat())
                .execute()
            )
        except Exception as e:
            logger.error("delete_consolidated_by_template_failed", error=str(e))
            raise DatabaseError("delete", str(e))

        deleted = len(result.data) if result.data else 0
        logger.info("consolidated_deleted_by_template", count=deleted)
        return deleted

    # ===================
    # HELPERS
    # ===================

    async def _bulk_update(self, column: str, value: str, patch: dict[str, Any]) -> int:
        try:
            result = await (
                self.db.table(self.table)
                .update(patch)
                .eq(column, value)
                .execute()
            )
        except Exception as e:
            logger.error(
                "bulk_update_consolidated_failed",
                column=column,
                value=value,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        affected = len(result.data or [])
        logger.debug("consolidated_bulk_updated", column=column, value=value, affected=affected)
        return affected

    async def _select_all(self, build: Callable) -> list[dict]:
        """Page through a query until the database runs out of rows."""
        rows: list[dict] = []
        offset = 0
        try:
            while True:
                result = await build().range(offset, offset + FETCH_PAGE_SIZE - 1).execute()
                page = result.data or []
                rows.extend(page)
                if len(page) < FETCH_PAGE_SIZE:
                    break
                offset += FETCH_PAGE_SIZE
        except Exception as e:
            logger.error("select_consolidated_failed", table=self.table, error=str(e))
            raise DatabaseError("select", str(e))
        return rows


# Singleton instance
_consolidation_service: Optional[ConsolidationService] = None


async def get_consolidation_service() -> ConsolidationService:
    """Get or create ConsolidationService instance."""
    global _consolidation_service
    if _consolidation_service is None:
        _consolidation_service = ConsolidationService(await get_supabase_client())
    return _consolidation_service
