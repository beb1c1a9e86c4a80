"""
Master mapping services.

Map a distributor's own product/store codes to internal canonical
codes. The search_key column is UNIQUE in both tables and that
constraint is the only arbiter of concurrent creates: a violation is
reported as DuplicateMappingError, never as a raw database error.
"""

from datetime import datetime, timezone
from typing import Generic, Iterable, Optional, TypeVar
import structlog

from supabase import AsyncClient

from config import get_supabase_client, get_settings
from models.master import (
    ProductMapping,
    ProductMappingCreate,
    ProductMappingUpdate,
    StoreMapping,
    StoreMappingCreate,
    StoreMappingUpdate,
)
from exceptions import (
    DatabaseError,
    DuplicateMappingError,
    MappingNotFoundError,
)
from utils.text_utils import chunked, product_search_key, store_search_key

logger = structlog.get_logger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

# Keeps PostgREST in.() filters well under URL length limits
LOOKUP_CHUNK_SIZE = 500

MappingT = TypeVar("MappingT", ProductMapping, StoreMapping)


def is_unique_violation(error: Exception) -> bool:
    """True when a database error comes from a uniqueness constraint."""
    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        return True
    return "duplicate key" in str(error).lower()


class MasterMappingService(Generic[MappingT]):
    """
    Shared CRUD and lookup logic for master mapping tables.

    Subclasses define the table, models and search key fields.
    Lookups never mutate; create/update/upsert are the only writers.
    """

    kind: str
    table: str
    model: type
    update_model: type
    code_field: str

    def __init__(self, db: AsyncClient):
        self.db = db

    def build_search_key(self, fields: dict) -> str:
        raise NotImplementedError

    # ===================
    # READ OPERATIONS
    # ===================

    async def find_by_search_key(self, search_key: str) -> Optional[MappingT]:
        """
        Point lookup by search key.

        Returns:
            The mapping, or None when the distributor key is unknown.
            A returned mapping may still have no canonical code.
        """
        try:
            result = await (
                self.db.table(self.table)
                .select("*")
                .eq("search_key", search_key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "find_mapping_failed",
                kind=self.kind,
                search_key=search_key,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return self.model(**result.data[0])

    async def find_by_search_keys(self, search_keys: Iterable[str]) -> list[MappingT]:
        """Bulk lookup; unknown keys are simply absent from the result."""
        keys = sorted({key for key in search_keys if key})
        if not keys:
            return []

        mappings: list[MappingT] = []
        try:
            for chunk in chunked(keys, LOOKUP_CHUNK_SIZE):
                result = await (
                    self.db.table(self.table)
                    .select("*")
                    .in_("search_key", chunk)
                    .execute()
                )
                mappings.extend(self.model(**row) for row in result.data)
        except Exception as e:
            logger.error(
                "find_mappings_bulk_failed",
                kind=self.kind,
                key_count=len(keys),
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        logger.debug(
            "mappings_bulk_found",
            kind=self.kind,
            requested=len(keys),
            found=len(mappings)
        )
        return mappings

    async def get_by_id(self, mapping_id: int) -> MappingT:
        """
        Get a mapping by ID.

        Raises:
            MappingNotFoundError: If mapping doesn't exist
        """
        try:
            result = await (
                self.db.table(self.table)
                .select("*")
                .eq("id", mapping_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "get_mapping_failed",
                kind=self.kind,
                mapping_id=mapping_id,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        if not result.data:
            raise MappingNotFoundError(self.kind, mapping_id)
        return self.model(**result.data[0])

    # ===================
    # WRITE OPERATIONS
    # ===================

    async def create(self, data) -> MappingT:
        """
        Create a mapping.

        Raises:
            DuplicateMappingError: If the search key already exists
        """
        fields = data.model_dump()
        search_key = self.build_search_key(fields)
        logger.info("creating_mapping", kind=self.kind, search_key=search_key)

        try:
            result = await (
                self.db.table(self.table)
                .insert({**fields, "search_key": search_key})
                .execute()
            )
        except Exception as e:
            if is_unique_violation(e):
                logger.warning(
                    "mapping_already_exists",
                    kind=self.kind,
                    search_key=search_key
                )
                raise DuplicateMappingError(self.kind, search_key) from e
            logger.error(
                "create_mapping_failed",
                kind=self.kind,
                search_key=search_key,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        mapping = self.model(**result.data[0])
        logger.info("mapping_created", kind=self.kind, mapping_id=mapping.id)
        return mapping

    async def update(self, mapping_id: int, data) -> MappingT:
        """
        Update a mapping and recompute its search key.

        Raises:
            MappingNotFoundError: If mapping doesn't exist
            DuplicateMappingError: If another mapping owns the new key
        """
        existing = await self.get_by_id(mapping_id)

        changes = data.model_dump(exclude_unset=True)
        merged = {**existing.model_dump(), **changes}
        search_key = self.build_search_key(merged)

        if search_key != existing.search_key:
            owner = await self.find_by_search_key(search_key)
            if owner is not None and owner.id != mapping_id:
                raise DuplicateMappingError(self.kind, search_key)

        update_data = {
            **changes,
            "search_key": search_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            result = await (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", mapping_id)
                .execute()
            )
        except Exception as e:
            if is_unique_violation(e):
                raise DuplicateMappingError(self.kind, search_key) from e
            logger.error(
                "update_mapping_failed",
                kind=self.kind,
                mapping_id=mapping_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        logger.info(
            "mapping_updated",
            kind=self.kind,
            mapping_id=mapping_id,
            fields=list(changes.keys())
        )
        return self.model(**result.data[0])

    async def upsert(self, data) -> MappingT:
        """Create the mapping, or update the row already owning its key."""
        existing = await self.find_by_search_key(self.build_search_key(data.model_dump()))
        if existing is None:
            return await self.create(data)

        changes = data.model_dump(exclude_unset=True)
        # A missing code never clears one already assigned
        if changes.get(self.code_field) is None:
            changes.pop(self.code_field, None)
        return await self.update(existing.id, self.update_model(**changes))

    async def bulk_upsert(self, items: list, chunk_size: int) -> list[MappingT]:
        """
        Insert or update many mappings.

        Items are deduplicated by search key (last occurrence wins).
        Each chunk does one bulk lookup, then one update and one insert.
        """
        unique: dict[str, dict] = {}
        for item in items:
            fields = item.model_dump()
            search_key = self.build_search_key(fields)
            if search_key:
                unique[search_key] = {**fields, "search_key": search_key}

        logger.info(
            "bulk_upserting_mappings",
            kind=self.kind,
            received=len(items),
            unique=len(unique)
        )

        saved: list[MappingT] = []
        now = datetime.now(timezone.utc).isoformat()

        for chunk in chunked(list(unique.values()), chunk_size):
            existing = await self.find_by_search_keys(row["search_key"] for row in chunk)
            existing_by_key = {m.search_key: m for m in existing}

            # Every update row carries the code column; a blank one keeps the stored code
            to_update = [
                {
                    **row,
                    self.code_field: row.get(self.code_field)
                        or existing_by_key[row["search_key"]].canonical_code,
                    "id": existing_by_key[row["search_key"]].id,
                    "updated_at": now,
                }
                for row in chunk
                if row["search_key"] in existing_by_key
            ]
            to_insert = [row for row in chunk if row["search_key"] not in existing_by_key]

            try:
                if to_update:
                    result = await self.db.table(self.table).upsert(to_update).execute()
                    saved.extend(self.model(**row) for row in result.data)
                if to_insert:
                    result = await self.db.table(self.table).insert(to_insert).execute()
                    saved.extend(self.model(**row) for row in result.data)
            except Exception as e:
                if is_unique_violation(e):
                    raise DuplicateMappingError(self.kind, "bulk import") from e
                logger.error(
                    "bulk_upsert_mappings_failed",
                    kind=self.kind,
                    error=str(e)
                )
                raise DatabaseError("upsert", str(e))

            logger.info(
                "mapping_chunk_upserted",
                kind=self.kind,
                updated=len(to_update),
                inserted=len(to_insert)
            )

        return saved

    async def delete(self, mapping_id: int) -> bool:
        """
        Delete a mapping.

        Raises:
            MappingNotFoundError: If mapping doesn't exist
        """
        await self.get_by_id(mapping_id)

        try:
            await self.db.table(self.table).delete().eq("id", mapping_id).execute()
        except Exception as e:
            logger.error(
                "delete_mapping_failed",
                kind=self.kind,
                mapping_id=mapping_id,
                error=str(e)
            )
            raise DatabaseError("delete", str(e))

        logger.info("mapping_deleted", kind=self.kind, mapping_id=mapping_id)
        return True


class ProductMasterService(MasterMappingService[ProductMapping]):
    """Distributor product code + description → canonical product code."""

    kind = "product"
    table = "sellout_product_master"
    model = ProductMapping
    update_model = ProductMappingUpdate
    code_field = "code_product"

    def build_search_key(self, fields: dict) -> str:
        return product_search_key(
            fields.get("distributor"),
            fields.get("product_distributor"),
            fields.get("product_description"),
        )

    async def import_mappings(self, items: list[ProductMappingCreate]) -> list[ProductMapping]:
        return await self.bulk_upsert(items, get_settings().product_import_chunk_size)


class StoreMasterService(MasterMappingService[StoreMapping]):
    """Distributor store code → canonical store code."""

    kind = "store"
    table = "sellout_store_master"
    model = StoreMapping
    update_model = StoreMappingUpdate
    code_field = "code_store"

    def build_search_key(self, fields: dict) -> str:
        return store_search_key(
            fields.get("distributor"),
            fields.get("store_distributor"),
        )

    async def import_mappings(self, items: list[StoreMappingCreate]) -> list[StoreMapping]:
        return await self.bulk_upsert(items, get_settings().store_import_chunk_size)


# Singleton instances
_product_master_service: Optional[ProductMasterService] = None
_store_master_service: Optional[StoreMasterService] = None


async def get_product_master_service() -> ProductMasterService:
    """Get or create ProductMasterService instance."""
    global _product_master_service
    if _product_master_service is None:
        _product_master_service = ProductMasterService(await get_supabase_client())
    return _product_master_service


async def get_store_master_service() -> StoreMasterService:
    """Get or create StoreMasterService instance."""
    global _store_master_service
    if _store_master_service is None:
        _store_master_service = StoreMasterService(await get_supabase_client())
    return _store_master_service
