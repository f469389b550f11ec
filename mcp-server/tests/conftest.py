import copy
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import pytest

from db import KNOWN_TABLES
from errors import StoreError
from tools import build_dispatcher

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class MemoryStore:
    """In-memory CatalogStore used in place of Postgres."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {name: [] for name in KNOWN_TABLES}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def seed(self, table: str, *rows: Mapping[str, Any]) -> None:
        self.tables[table].extend(dict(row) for row in rows)

    def fail(self, *tables: str) -> None:
        self.failing.update(tables)

    def _check(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if table not in self.tables:
            raise StoreError(f"Unknown table: {table!r}")
        if table in self.failing:
            raise StoreError(f"{table} is unavailable")

    @staticmethod
    def _project(row: Mapping[str, Any], columns: Sequence[str] | None) -> dict[str, Any]:
        if columns:
            return {column: copy.deepcopy(row.get(column)) for column in columns}
        return copy.deepcopy(dict(row))

    async def fetch_one(self, table, filters, columns=None):
        self._check("fetch_one", table)
        for row in self.tables[table]:
            if all(row.get(key) == value for key, value in filters.items()):
                return self._project(row, columns)
        return None

    async def fetch_all(self, table, filters, order_by=None, columns=None):
        self._check("fetch_all", table)
        rows = [row for row in self.tables[table] if all(row.get(key) == value for key, value in filters.items())]
        if order_by:
            rows = sorted(rows, key=lambda row: (row.get(order_by) is None, row.get(order_by)))
        return [self._project(row, columns) for row in rows]

    async def insert_one(self, table, row):
        self._check("insert_one", table)
        self.tables[table].append(copy.deepcopy(dict(row)))


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def seeded_store(store):
    store.seed(
        "brands",
        {
            "id": "b2",
            "name": "Zenith",
            "slug": "zenith",
            "logo_url": "https://cdn.example.com/zenith.png",
            "description": "Outdoor gear",
            "website_url": "https://zenith.example.com",
            "active": True,
            "commission_rate": 0.12,
        },
        {
            "id": "b1",
            "name": "Acme",
            "slug": "acme",
            "logo_url": None,
            "description": "Everything you need",
            "website_url": "https://acme.example.com",
            "active": True,
            "commission_rate": 0.08,
        },
        {"id": "b3", "name": "Bygone", "slug": "bygone", "active": False},
    )
    store.seed(
        "products",
        {
            "id": "p2",
            "brand_id": "b1",
            "name": "Zipper",
            "slug": "zipper",
            "description": "Heavy duty",
            "long_description": "A very long story about zippers.",
            "image_url": "https://cdn.example.com/zipper.png",
            "images": ["https://cdn.example.com/zipper.png", "https://cdn.example.com/zipper-2.png"],
            "base_price": 2500,
            "currency": "VND",
            "checkout_url": "https://shop.example.com/zipper?ref=site",
            "affiliate_params": {"utm_source": "chat", "ref": "aff42"},
            "active": True,
            "supplier_cost": 900,
        },
        {
            "id": "p1",
            "brand_id": "b1",
            "name": "Widget",
            "slug": "widget",
            "base_price": 1000,
            "currency": "VND",
            "active": True,
        },
        {"id": "p3", "brand_id": "b1", "name": "Antique", "active": False},
        {"id": "p9", "brand_id": "missing-brand", "name": "Orphan", "active": True},
    )
    store.seed(
        "product_variants",
        {"id": "v1", "product_id": "p2", "name": "Large", "sku": "ZIP-L", "price": 3000, "currency": "VND",
         "stock_status": "in_stock", "attributes": {"size": "L"}, "warehouse_bin": "A-12"},
        {"id": "v2", "product_id": "p2", "name": "Small", "sku": "ZIP-S", "price": 1500, "currency": "VND",
         "stock_status": "preorder", "attributes": {"size": "S"}},
        {"id": "v3", "product_id": "p2", "name": "Medium", "sku": "ZIP-M", "price": 2000, "currency": "VND",
         "stock_status": "out_of_stock", "attributes": {"size": "M"}},
        {"id": "v9", "product_id": "p1", "name": "Only", "price": 1000, "currency": "VND"},
    )
    store.seed("leads", {"id": "lead-0", "brand_id": "b2", "payload": {"name": "Existing"}, "consent": True})
    return store


@pytest.fixture()
def dispatcher(seeded_store):
    return build_dispatcher(seeded_store, clock=lambda: FIXED_NOW)


@pytest.fixture()
def now():
    return FIXED_NOW
