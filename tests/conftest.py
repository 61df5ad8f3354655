"""
Shared pytest fixtures for the Store Twin test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema and migrations applied (repository-level tests).
  - ``db``: An opened ``Database`` on a temporary file (component tests;
    ``:memory:`` would not survive across the per-operation connections).
  - ``seeded_db``: ``db`` plus a small store layout and opening stock.
  - ``ledger`` / ``detector`` / ``store``: components bound to ``seeded_db``;
    the ledger's clock is pinned to ``fixed_now`` (a Sunday).
  - ``forecast_payload``: factory for ``/recommend`` response bodies.

Seeded layout::

    store shelf 1 "Front"  rows 1 (cap 2), 2 (cap 1)
    warehouse shelf 1 "Bay A" row 1

    product 1 "Cola"     threshold 20   store row 1 = 5    warehouse = 50
    product 2 "Crisps"   threshold 20   (no store record)  warehouse = 30
    product 3 "Candy"    threshold 25   store row 1 = 25   warehouse = 0
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from stocktwin.config import LedgerConfig, RecommendationsConfig
from stocktwin.db.connection import Database
from stocktwin.db.migrations import run_migrations
from stocktwin.db.repositories.catalog_repo import LayoutRepository, ProductRepository
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.db.schema import apply_schema
from stocktwin.ledger.detector import LowStockDetector
from stocktwin.ledger.ledger import StockLedger
from stocktwin.models.catalog import Product, Shelf, StoreRow, WarehouseRow
from stocktwin.recommendations.store import RecommendationStore
from stocktwin.taxonomy.ledger_taxonomy import LocationKind

# A Sunday.
FIXED_NOW = datetime(2026, 10, 18, 9, 30, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with schema and migrations.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "db" / "stocktwin_test.db")


@pytest.fixture
def db(db_path: str) -> Generator[Database, None, None]:
    """An opened ``Database`` backed by a temporary file."""
    database = Database(db_path)
    database.open()
    yield database
    database.close()


def seed_layout(database: Database) -> None:
    """Write the layout and opening stock described in the module docstring."""
    with database.transaction() as conn:
        products = ProductRepository(conn)
        products.upsert(Product(product_id=1, name="Cola", brand="Fizzco", size="330ml",
                                category="Soft Drinks", reorder_threshold=20))
        products.upsert(Product(product_id=2, name="Crisps", brand="Crunchers",
                                category="Snacks", reorder_threshold=20))
        products.upsert(Product(product_id=3, name="Candy", category="Confectionery",
                                reorder_threshold=25))

        layout = LayoutRepository(conn)
        layout.upsert_shelf(LocationKind.STORE, Shelf(shelf_id=1, shelf_name="Front"))
        layout.upsert_store_row(StoreRow(row_id=1, shelf_id=1, row_number=1, max_products=2))
        layout.upsert_store_row(StoreRow(row_id=2, shelf_id=1, row_number=2, max_products=1))
        layout.upsert_shelf(LocationKind.WAREHOUSE, Shelf(shelf_id=1, shelf_name="Bay A"))
        layout.upsert_warehouse_row(WarehouseRow(row_id=1, shelf_id=1, row_number=1))

        stock = StockRepository(conn)
        stock.set_quantity(LocationKind.STORE, 1, 1, 5)
        stock.set_quantity(LocationKind.STORE, 3, 1, 25)
        stock.set_quantity(LocationKind.WAREHOUSE, 1, 1, 50)
        stock.set_quantity(LocationKind.WAREHOUSE, 2, 1, 30)
        stock.set_quantity(LocationKind.WAREHOUSE, 3, 1, 0)


@pytest.fixture
def seeded_db(db: Database) -> Database:
    seed_layout(db)
    return db


# ── Component fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def fixed_now() -> datetime:
    """The instant every component fixture's clock reports."""
    return FIXED_NOW


@pytest.fixture
def ledger(seeded_db: Database) -> StockLedger:
    return StockLedger(seeded_db, LedgerConfig(), clock=fixed_clock)


@pytest.fixture
def detector(seeded_db: Database) -> LowStockDetector:
    return LowStockDetector(seeded_db, LedgerConfig())


@pytest.fixture
def store(seeded_db: Database) -> RecommendationStore:
    return RecommendationStore(seeded_db, RecommendationsConfig())


# ── Sample payload factories ──────────────────────────────────────────────────

@pytest.fixture
def forecast_payload() -> Callable[..., dict[str, Any]]:
    """Factory for a successful ``/recommend`` body; override any field."""

    def _make(product_id: int = 1, **overrides: Any) -> dict[str, Any]:
        body: dict[str, Any] = {
            "product_id": product_id,
            "product_name": "Cola",
            "category": "Soft Drinks",
            "predicted_daily": 6.0,
            "predicted_daily_with_buffer": 6.9,
            "predicted_period_demand": 42.0,
            "predicted_with_buffer": 48.3,
            "period_days": 7,
            "ideal_stock": 48.3,
            "current_shelf": 5,
            "current_warehouse": 50,
            "recommended_transfer": 43.7,
            "recommended_order": 0.0,
            "safety_buffer": 0.15,
            "status": "success",
            "error": None,
        }
        body.update(overrides)
        return body

    return _make
