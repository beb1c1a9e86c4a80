"""
Shared test fixtures.

FakeSupabase is an in-memory stand-in for the async Supabase client:
queries filter, page and mutate plain dict rows, and the master mapping
tables enforce their UNIQUE search_key constraint like Postgres does.
"""

import os
import re
import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SYNC_BATCH_DELAY_MS", "0")

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Optional

from config import get_settings

# Tables whose column carries a UNIQUE constraint
UNIQUE_COLUMNS = {
    "sellout_product_master": "search_key",
    "sellout_store_master": "search_key",
}


# ===================
# FAKE SUPABASE CLIENT
# ===================

class FakeAPIError(Exception):
    """Shaped like postgrest's APIError: carries a Postgres error code."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class FakeResponse:
    """Query response with .data and .count."""

    def __init__(self, data: list, count: Optional[int] = None):
        self.data = data
        self.count = count


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# column.operator.value, value either "quoted" or free of reserved characters
OR_CLAUSE = re.compile(r'(\w+)\.(\w+)\.("(?:[^"\\]|\\.)*"|[^,()"]*)(,|$)')


def _parse_or(expression: str) -> list[tuple[str, str, str]]:
    """Split a PostgREST or=() expression, rejecting malformed input like the server does."""
    clauses = []
    pos = 0
    while pos < len(expression):
        match = OR_CLAUSE.match(expression, pos)
        if match is None:
            raise FakeAPIError(f"failed to parse logic tree ({expression})", code="PGRST100")
        column, operator, value = match.group(1, 2, 3)
        if value.startswith('"'):
            value = re.sub(r"\\(.)", r"\1", value[1:-1])
        clauses.append((column, operator, value))
        pos = match.end()
    return clauses


def _ilike(value: Any, pattern: str) -> bool:
    needle = pattern.strip("%").lower()
    return value is not None and needle in str(value).lower()


class FakeQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._count_mode: Optional[str] = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None

    # Operations
    def select(self, *columns, count: Optional[str] = None):
        self._op = "select"
        self._count_mode = count
        return self

    def insert(self, payload):
        self._op = "insert"
        self._payload = payload
        return self

    def upsert(self, payload):
        self._op = "upsert"
        self._payload = payload
        return self

    def update(self, payload: dict):
        self._op = "update"
        self._payload = payload
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters
    def eq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def is_(self, column: str, value):
        expected = None if value in ("null", None) else value
        self._filters.append(lambda row: row.get(column) is expected)
        return self

    def in_(self, column: str, values):
        allowed = set(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def ilike(self, column: str, pattern: str):
        self._filters.append(lambda row: _ilike(row.get(column), pattern))
        return self

    def or_(self, expression: str):
        clauses = []
        for column, operator, pattern in _parse_or(expression):
            assert operator == "ilike"
            clauses.append((column, pattern))
        self._filters.append(
            lambda row: any(_ilike(row.get(c), p) for c, p in clauses)
        )
        return self

    # Shaping
    def order(self, column: str, desc: bool = False):
        self._order = (column, desc)
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    async def execute(self) -> FakeResponse:
        self._db.calls.append((self._table, self._op))
        if self._db.fail_on.get(self._table) in (self._op, "*"):
            raise FakeAPIError(f"simulated failure on {self._table}.{self._op}")
        handler = getattr(self, f"_run_{self._op}")
        return handler()

    # Execution
    def _matching(self) -> list[dict]:
        rows = self._db.tables.setdefault(self._table, [])
        return [row for row in rows if all(f(row) for f in self._filters)]

    def _run_select(self) -> FakeResponse:
        rows = self._matching()
        total = len(rows)
        if self._order:
            column, desc = self._order
            rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self._range:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        return FakeResponse(
            [dict(row) for row in rows],
            count=total if self._count_mode else None,
        )

    def _run_insert(self) -> FakeResponse:
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        created = []
        for item in payload:
            self._check_unique(item)
            row = {
                "created_at": _now(),
                "updated_at": _now(),
                **item,
                "id": self._db.next_id(self._table),
            }
            self._db.tables.setdefault(self._table, []).append(row)
            created.append(dict(row))
        return FakeResponse(created)

    def _run_upsert(self) -> FakeResponse:
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        saved = []
        rows = self._db.tables.setdefault(self._table, [])
        for item in payload:
            existing = next((r for r in rows if "id" in item and r["id"] == item["id"]), None)
            self._check_unique(item, ignore_id=item.get("id"))
            if existing is None:
                row = {"created_at": _now(), "updated_at": _now(), **item}
                row.setdefault("id", self._db.next_id(self._table))
                rows.append(row)
            else:
                existing.update(item)
                row = existing
            saved.append(dict(row))
        return FakeResponse(saved)

    def _run_update(self) -> FakeResponse:
        updated = []
        for row in self._matching():
            self._check_unique({**row, **self._payload}, ignore_id=row["id"])
            row.update(self._payload)
            updated.append(dict(row))
        return FakeResponse(updated)

    def _run_delete(self) -> FakeResponse:
        doomed = self._matching()
        doomed_ids = {id(row) for row in doomed}
        self._db.tables[self._table] = [
            row for row in self._db.tables.get(self._table, []) if id(row) not in doomed_ids
        ]
        return FakeResponse([dict(row) for row in doomed])

    def _check_unique(self, item: dict, ignore_id: Any = None) -> None:
        column = UNIQUE_COLUMNS.get(self._table)
        if not column or item.get(column) is None:
            return
        for row in self._db.tables.get(self._table, []):
            if row.get(column) == item[column] and row.get("id") != ignore_id:
                raise FakeAPIError(
                    f'duplicate key value violates unique constraint "{self._table}_{column}_key"',
                    code="23505",
                )


class FakeSupabase:
    """In-memory async Supabase client."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[str, str] = {}
        self._ids: dict[str, int] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def next_id(self, table: str) -> int:
        self._ids[table] = self._ids.get(table, 0) + 1
        return self._ids[table]

    def seed(self, table: str, rows: list[dict]) -> list[dict]:
        """Insert rows directly, assigning ids where missing."""
        stored = self.tables.setdefault(table, [])
        for row in rows:
            row = dict(row)
            if "id" not in row:
                row["id"] = self.next_id(table)
            else:
                self._ids[table] = max(self._ids.get(table, 0), row["id"])
            stored.append(row)
        return stored

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    def count_calls(self, table: str, op: str) -> int:
        return sum(1 for call in self.calls if call == (table, op))


# ===================
# FIXTURES
# ===================

@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reload settings from the test environment for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> FakeSupabase:
    """
    Create an in-memory Supabase client.

    Usage:
        async def test_something(fake_db):
            fake_db.seed("product_catalog", [{"code": "100", "model_name": "W"}])
    """
    return FakeSupabase()


@pytest.fixture
def services(fake_db):
    """Every service wired to the same fake database."""
    from services.backfill_service import BackfillSynchronizer
    from services.batch_processor_service import BatchProcessor
    from services.catalog_service import ProductCatalogService, StoreCatalogService
    from services.consolidation_service import ConsolidationService
    from services.enrichment_service import RecordEnricher
    from services.ingestion_service import IngestionService
    from services.master_data_service import MasterDataService
    from services.master_mapping_service import ProductMasterService, StoreMasterService
    from services.merge_service import MergeResolver
    from services.sellout_record_service import SelloutRecordService

    product_masters = ProductMasterService(fake_db)
    store_masters = StoreMasterService(fake_db)
    product_catalog = ProductCatalogService(fake_db)
    store_catalog = StoreCatalogService(fake_db)
    consolidation = ConsolidationService(fake_db)
    enricher = RecordEnricher(product_masters, store_masters, product_catalog, store_catalog)
    processor = BatchProcessor(enricher, consolidation)
    backfill = BackfillSynchronizer(enricher, product_masters, store_masters, consolidation)

    wired = SimpleNamespace()
    wired.product_masters = product_masters
    wired.store_masters = store_masters
    wired.product_catalog = product_catalog
    wired.store_catalog = store_catalog
    wired.consolidation = consolidation
    wired.enricher = enricher
    wired.processor = processor
    wired.backfill = backfill
    wired.merge = MergeResolver(
        enricher, product_masters, store_masters, product_catalog, store_catalog, consolidation
    )
    wired.master_data = MasterDataService(product_masters, store_masters, backfill)
    wired.records = SelloutRecordService(enricher, consolidation)
    wired.ingestion = IngestionService(fake_db, processor, consolidation)
    return wired


@pytest.fixture
def catalogs(fake_db):
    """Seed the canonical catalogs used across scenarios."""
    fake_db.seed("product_catalog", [
        {"code": "100", "model_name": "Widget Pro"},
        {"code": "200", "model_name": "Gadget Max"},
    ])
    fake_db.seed("store_catalog", [
        {"code": "10", "store_name": "Central Store", "authorized_distributor": "D1 Authorized"},
        {"code": "20", "store_name": "North Store", "authorized_distributor": "D2 Authorized"},
    ])
    return fake_db
