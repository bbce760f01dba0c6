"""
Shared test fixtures.

The mock Supabase client keeps rows per table so store operations can be
checked by reading the tables back.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from datetime import datetime
from typing import Generator, Optional

from models.catalog import Catalog, CanonicalTerm, FieldKind
from services.catalog_store import SupabaseCatalogStore
from services.memory_catalog_store import InMemoryCatalogStore
from services.catalog_service import set_catalog_store
from services.session_cache_service import clear_sessions


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseError(Exception):
    """Raised by the mock when a table operation is set to fail."""

    def __init__(self, message: str = "mock store failure", code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods, applied on execute()."""

    def __init__(self, client: "MockSupabaseClient", table: str, operation: str, payload=None):
        self._client = client
        self._table = table
        self._operation = operation
        self._payload = payload
        self._filters: list[tuple[str, object]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._client.check_failure(self._table, self._operation)
        rows = self._client.rows(self._table)

        if self._operation == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in items:
                row = dict(item)
                row.setdefault("id", self._client.next_id(self._table))
                row.setdefault("created_at", datetime.utcnow().isoformat() + "Z")
                rows.append(row)
                inserted.append(dict(row))
            return MockSupabaseResponse(data=inserted)

        matched = [row for row in rows if self._matches(row)]

        if self._operation == "update":
            for row in matched:
                row.update(self._payload)
            return MockSupabaseResponse(data=[dict(r) for r in matched])

        if self._operation == "delete":
            self._client.set_rows(self._table, [r for r in rows if not self._matches(r)])
            return MockSupabaseResponse(data=[dict(r) for r in matched])

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        return MockSupabaseResponse(data=[dict(r) for r in matched])


class MockSupabaseTable:
    """Mock Supabase table entry point."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._client, self._name, "select")

    def insert(self, data):
        return MockSupabaseQuery(self._client, self._name, "insert", data)

    def update(self, data):
        return MockSupabaseQuery(self._client, self._name, "update", data)

    def delete(self):
        return MockSupabaseQuery(self._client, self._name, "delete")


class MockSupabaseClient:
    """Mock Supabase client with in-memory tables and failure injection."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: dict[tuple[str, str], int] = {}
        self._counter = 0

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def set_rows(self, table_name: str, data: list[dict]):
        self._tables[table_name] = data

    def next_id(self, table_name: str) -> str:
        self._counter += 1
        return f"{table_name}-{self._counter}"

    def fail(self, table_name: str, operation: str, times: int = -1):
        """Make `operation` on `table_name` raise; times=-1 fails forever."""
        self._failures[(table_name, operation)] = times

    def check_failure(self, table_name: str, operation: str):
        remaining = self._failures.get((table_name, operation))
        if remaining is None or remaining == 0:
            return
        if remaining > 0:
            self._failures[(table_name, operation)] = remaining - 1
        raise MockSupabaseError(f"{operation} on {table_name} failed")

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)


# ===================
# FIXTURES
# ===================

@pytest.fixture(autouse=True)
def reset_singletons() -> Generator:
    """Fresh process-wide store and session cache for every test."""
    set_catalog_store(None)
    clear_sessions()
    yield
    set_catalog_store(None)
    clear_sessions()


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("reference_terms", [
                {"id": "m1", "field": "Manufacturer", "standard": "GE Healthcare", "variations": []}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def supabase_store(mock_supabase) -> SupabaseCatalogStore:
    """Supabase store over the mock client, seeded with the default catalog."""
    store = SupabaseCatalogStore(client=mock_supabase)
    store.seed_default_data()
    return store


@pytest.fixture
def memory_store() -> InMemoryCatalogStore:
    """In-memory store holding the default catalog."""
    return InMemoryCatalogStore()


@pytest.fixture
def catalog(memory_store) -> Catalog:
    return memory_store.load_catalog()


@pytest.fixture
def philips_term() -> CanonicalTerm:
    return CanonicalTerm(
        id="mfr-philips",
        standard="Philips Healthcare",
        variations=["Philips", "Phillips", "Philips Medical"],
    )


@pytest.fixture
def sample_mapping() -> dict:
    """Device Type, Manufacturer and a pass-through column."""
    return {
        "Type": FieldKind.DEVICE_TYPE,
        "Mfr": FieldKind.MANUFACTURER,
        "Serial": FieldKind.REFERENCE,
    }
