import asyncio
from typing import Any, Dict, List, Optional

import pytest

from deeby_view.column import ViewColumn
from deeby_view.fk import ForeignKeyInfo
from deeby_view.sources import LookupSource

COUNTRIES = [
    {"id": 1, "name": "France", "code": "FR"},
    {"id": 2, "name": "Japan", "code": "JP"},
]
CUSTOMERS = [
    {"id": 10, "name": "Alice", "country_id": 1},
    {"id": 11, "name": "Bob", "country_id": 2},
    {"id": 12, "name": "Carol", "country_id": None},
]
ORDERS = [
    {"id": 1, "customer_id": 10, "total": 250.5, "status": "paid"},
    {"id": 2, "customer_id": 11, "total": 99.0, "status": "open"},
    {"id": 3, "customer_id": 10, "total": None, "status": "open"},
    {"id": 4, "customer_id": 99, "total": 10.0, "status": "paid"},
    {"id": 5, "customer_id": None, "total": 5.25, "status": "void"},
]


class MemorySource(LookupSource):
    """Serves records from in-memory tables and records every fetch.

    Attributes:
        calls: `(table, value)` for each record fetch.
        fail_tables: Fetches from these tables raise.
        gate: When set, record fetches wait for it.
    """

    def __init__(self, tables, fks):
        self.tables: Dict[str, List[Dict[str, Any]]] = tables
        self.fks: Dict[str, List[ForeignKeyInfo]] = fks
        self.calls: List[Any] = []
        self.fail_tables: set = set()
        self.gate: Optional[asyncio.Event] = None

    async def fetch_foreign_record(self, fk_column, value, fk):
        self.calls.append((fk.referenced_table, value))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if fk.referenced_table in self.fail_tables:
            raise RuntimeError("connection lost")
        ref = fk.referenced_column(fk_column)
        for record in self.tables.get(fk.referenced_table, []):
            if record.get(ref) == value:
                return dict(record)
        return None

    async def fetch_referenced_columns(self, column, fk):
        records = self.tables.get(fk.referenced_table, [])
        return list(records[0].keys()) if records else []

    async def fetch_referenced_table_fks(self, table_name):
        return list(self.fks.get(table_name, []))


@pytest.fixture
def customer_fk():
    return ForeignKeyInfo(
        local_columns=("customer_id",),
        referenced_table="customers",
        referenced_columns=("id",),
        table="orders",
    )


@pytest.fixture
def country_fk():
    return ForeignKeyInfo(
        local_columns=("country_id",),
        referenced_table="countries",
        referenced_columns=("id",),
        table="customers",
    )


@pytest.fixture
def source(customer_fk, country_fk):
    return MemorySource(
        tables={
            "orders": [dict(r) for r in ORDERS],
            "customers": [dict(r) for r in CUSTOMERS],
            "countries": [dict(r) for r in COUNTRIES],
        },
        fks={
            "orders": [customer_fk],
            "customers": [country_fk],
            "countries": [],
        },
    )


@pytest.fixture
def order_columns():
    return [
        ViewColumn(name="id", declared_type="integer"),
        ViewColumn(name="customer_id", declared_type="integer"),
        ViewColumn(name="total", declared_type="numeric(10,2)"),
        ViewColumn(name="status", declared_type="varchar(16)"),
    ]


@pytest.fixture
def order_rows():
    return [dict(r) for r in ORDERS]
