"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. products                 (no FKs)
  2. store_shelves            (no FKs)
  3. store_rows               (→ store_shelves)
  4. warehouse_shelves        (no FKs)
  5. warehouse_rows           (→ warehouse_shelves)
  6. store_stock              (→ products, store_rows)
  7. warehouse_stock          (→ products, warehouse_rows)
  8. stock_transactions       (→ products)
  9. sales_history            (→ products)
  10. restock_recommendations (→ products)

``quantity >= 0`` is enforced by CHECK constraints on both stock tables, so a
bug that tries to drive stock negative fails the statement instead of
corrupting the ledger.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_PRODUCTS = """
CREATE TABLE IF NOT EXISTS products (
    product_id        INTEGER PRIMARY KEY,
    name              TEXT    NOT NULL,
    brand             TEXT,
    flavor            TEXT,
    size              TEXT,
    category          TEXT,
    reorder_threshold INTEGER CHECK (reorder_threshold IS NULL OR reorder_threshold >= 0),
    created_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_STORE_SHELVES = """
CREATE TABLE IF NOT EXISTS store_shelves (
    shelf_id    INTEGER PRIMARY KEY,
    shelf_name  TEXT    NOT NULL UNIQUE
);
"""

_DDL_STORE_ROWS = """
CREATE TABLE IF NOT EXISTS store_rows (
    row_id        INTEGER PRIMARY KEY,
    shelf_id      INTEGER NOT NULL REFERENCES store_shelves(shelf_id),
    row_number    INTEGER NOT NULL,
    max_products  INTEGER NOT NULL DEFAULT 1 CHECK (max_products >= 0),
    UNIQUE (shelf_id, row_number)
);
"""

_DDL_WAREHOUSE_SHELVES = """
CREATE TABLE IF NOT EXISTS warehouse_shelves (
    shelf_id    INTEGER PRIMARY KEY,
    shelf_name  TEXT    NOT NULL UNIQUE
);
"""

_DDL_WAREHOUSE_ROWS = """
CREATE TABLE IF NOT EXISTS warehouse_rows (
    row_id      INTEGER PRIMARY KEY,
    shelf_id    INTEGER NOT NULL REFERENCES warehouse_shelves(shelf_id),
    row_number  INTEGER NOT NULL,
    UNIQUE (shelf_id, row_number)
);
"""

_DDL_STORE_STOCK = """
CREATE TABLE IF NOT EXISTS store_stock (
    stock_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id      INTEGER NOT NULL REFERENCES products(product_id),
    row_id          INTEGER NOT NULL REFERENCES store_rows(row_id),
    quantity        INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    last_restocked  TEXT,
    UNIQUE (product_id, row_id)
);

CREATE INDEX IF NOT EXISTS idx_store_stock_row
    ON store_stock(row_id);
"""

_DDL_WAREHOUSE_STOCK = """
CREATE TABLE IF NOT EXISTS warehouse_stock (
    stock_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id      INTEGER NOT NULL REFERENCES products(product_id),
    row_id          INTEGER NOT NULL REFERENCES warehouse_rows(row_id),
    quantity        INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    UNIQUE (product_id, row_id)
);
"""

_DDL_STOCK_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS stock_transactions (
    transaction_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id        INTEGER NOT NULL REFERENCES products(product_id),
    source            TEXT    NOT NULL CHECK (source IN ('store', 'warehouse')),
    destination       TEXT    CHECK (destination IS NULL OR destination IN ('store', 'warehouse')),
    quantity_delta    INTEGER NOT NULL CHECK (quantity_delta > 0),
    transaction_type  TEXT    NOT NULL CHECK (transaction_type IN ('sale', 'restock')),
    created_at        TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_product
    ON stock_transactions(product_id, transaction_id);
"""

_DDL_SALES_HISTORY = """
CREATE TABLE IF NOT EXISTS sales_history (
    sample_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id     INTEGER NOT NULL REFERENCES products(product_id),
    sale_date      TEXT    NOT NULL,
    quantity_sold  INTEGER NOT NULL CHECK (quantity_sold > 0),
    day_of_week    INTEGER NOT NULL CHECK (day_of_week BETWEEN 1 AND 7),
    is_holiday     INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_sales_history_product_date
    ON sales_history(product_id, sale_date);
"""

_DDL_RESTOCK_RECOMMENDATIONS = """
CREATE TABLE IF NOT EXISTS restock_recommendations (
    recommendation_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id               INTEGER NOT NULL REFERENCES products(product_id),
    generated_at             TEXT    NOT NULL,
    period_start             TEXT    NOT NULL,
    period_end               TEXT    NOT NULL,
    predicted_demand         REAL    NOT NULL,
    current_shelf_stock      INTEGER NOT NULL,
    current_warehouse_stock  INTEGER NOT NULL,
    recommended_transfer     INTEGER NOT NULL,
    recommended_order        INTEGER NOT NULL,
    safety_buffer            REAL    NOT NULL,
    status                   TEXT    NOT NULL DEFAULT 'pending'
                             CHECK (status IN ('pending', 'applied', 'dismissed'))
);

CREATE INDEX IF NOT EXISTS idx_recommendations_generated
    ON restock_recommendations(generated_at DESC);
"""

_ALL_DDL = [
    _DDL_PRODUCTS,
    _DDL_STORE_SHELVES,
    _DDL_STORE_ROWS,
    _DDL_WAREHOUSE_SHELVES,
    _DDL_WAREHOUSE_ROWS,
    _DDL_STORE_STOCK,
    _DDL_WAREHOUSE_STOCK,
    _DDL_STOCK_TRANSACTIONS,
    _DDL_SALES_HISTORY,
    _DDL_RESTOCK_RECOMMENDATIONS,
]

ALL_TABLE_NAMES = [
    "products",
    "store_shelves",
    "store_rows",
    "warehouse_shelves",
    "warehouse_rows",
    "store_stock",
    "warehouse_stock",
    "stock_transactions",
    "sales_history",
    "restock_recommendations",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent — safe to call on an already-initialized database.
    Each statement uses ``IF NOT EXISTS`` guards.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return index names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
