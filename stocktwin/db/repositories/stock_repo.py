"""
Repository for per-location stock records.

Both stock tables share one shape, so every query is built from the
``(stock table, rows table, shelves table)`` triple for the requested
``LocationKind``. Reads return ``StockRecord`` models joined with their
product and shelf placement.

When a product occupies more than one row at a location, the record with
the lowest ``stock_id`` is its *primary* record: sales draw from it and
restocks top it up. Level queries always sum across all rows.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from stocktwin.db.repositories.base import BaseRepository
from stocktwin.models.catalog import DEFAULT_REORDER_THRESHOLD, Product
from stocktwin.models.stock import ShelfSalesCount, StockLevels, StockRecord
from stocktwin.taxonomy.ledger_taxonomy import LocationKind

logger = logging.getLogger(__name__)

_TABLES: dict[LocationKind, tuple[str, str, str]] = {
    LocationKind.STORE: ("store_stock", "store_rows", "store_shelves"),
    LocationKind.WAREHOUSE: ("warehouse_stock", "warehouse_rows", "warehouse_shelves"),
}


def _select_records_sql(location: LocationKind) -> str:
    stock, rows, shelves = _TABLES[location]
    capacity = "r.max_products" if location == LocationKind.STORE else "NULL"
    restocked = "s.last_restocked" if location == LocationKind.STORE else "NULL"
    return f"""
        SELECT s.stock_id, s.product_id, s.row_id, s.quantity,
               {restocked} AS last_restocked,
               r.shelf_id, r.row_number, {capacity} AS max_products,
               sh.shelf_name,
               p.name, p.brand, p.flavor, p.size, p.category, p.reorder_threshold
        FROM {stock} s
        JOIN {rows} r     ON s.row_id = r.row_id
        JOIN {shelves} sh ON r.shelf_id = sh.shelf_id
        JOIN products p   ON s.product_id = p.product_id
    """


class StockRepository(BaseRepository):
    """Read/write access to ``store_stock`` and ``warehouse_stock``."""

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_primary_record(
        self, location: LocationKind, product_id: int
    ) -> Optional[StockRecord]:
        """Fetch the record a ledger mutation acts on for ``product_id``.

        Args:
            location: Which stock table to read.
            product_id: Product to look up.

        Returns:
            ``StockRecord`` or ``None`` if the product has no stock there.
        """
        row = self.fetchone(
            _select_records_sql(location)
            + " WHERE s.product_id = ? ORDER BY s.stock_id LIMIT 1;",
            (product_id,),
        )
        return _row_to_record(row, location) if row else None

    def list_records(self, location: LocationKind) -> list[StockRecord]:
        """Return every record at ``location`` ordered by shelf, row, product."""
        rows = self.fetchall(
            _select_records_sql(location)
            + " ORDER BY sh.shelf_id, r.row_number, s.product_id;"
        )
        return [_row_to_record(r, location) for r in rows]

    def list_low_stock(self, floor: int) -> list[StockRecord]:
        """Return store records with ``quantity <= max(reorder_threshold, floor)``.

        Args:
            floor: Minimum effective threshold, applied even when a product's
                own threshold is lower (or zero).

        Returns:
            Records ordered by quantity ascending, then product id.
        """
        rows = self.fetchall(
            _select_records_sql(LocationKind.STORE)
            + """
            WHERE s.quantity <= MAX(COALESCE(p.reorder_threshold, ?), ?)
            ORDER BY s.quantity ASC, s.product_id ASC;
            """,
            (DEFAULT_REORDER_THRESHOLD, floor),
        )
        return [_row_to_record(r, LocationKind.STORE) for r in rows]

    def stock_levels(self, product_id: int) -> StockLevels:
        """Sum a product's units per location (zero where it has no records)."""
        shelf = self.scalar(
            "SELECT SUM(quantity) FROM store_stock WHERE product_id = ?;",
            (product_id,),
            default=0,
        )
        warehouse = self.scalar(
            "SELECT SUM(quantity) FROM warehouse_stock WHERE product_id = ?;",
            (product_id,),
            default=0,
        )
        return StockLevels(
            product_id=product_id, shelf_stock=int(shelf), warehouse_stock=int(warehouse)
        )

    def find_available_store_row(self) -> Optional[int]:
        """Return the first store row whose occupant count is below capacity."""
        row = self.fetchone(
            """
            SELECT r.row_id FROM store_rows r
            WHERE (SELECT COUNT(*) FROM store_stock s WHERE s.row_id = r.row_id)
                  < r.max_products
            ORDER BY r.row_id
            LIMIT 1;
            """
        )
        return int(row["row_id"]) if row else None

    def shelf_sales_heatmap(self) -> list[ShelfSalesCount]:
        """Count sale transactions per store shelf holding the sold product.

        A product on several rows of one shelf is counted once per sale.
        """
        rows = self.fetchall(
            """
            SELECT sh.shelf_name, COUNT(DISTINCT t.transaction_id) AS sales_count
            FROM stock_transactions t
            JOIN store_stock s    ON t.product_id = s.product_id
            JOIN store_rows r     ON s.row_id = r.row_id
            JOIN store_shelves sh ON r.shelf_id = sh.shelf_id
            WHERE t.transaction_type = 'sale'
            GROUP BY sh.shelf_name
            ORDER BY sales_count DESC, sh.shelf_name;
            """
        )
        return [
            ShelfSalesCount(shelf_name=r["shelf_name"], sales_count=r["sales_count"])
            for r in rows
        ]

    # ── Writes ────────────────────────────────────────────────────────────────

    def adjust_quantity(
        self,
        location: LocationKind,
        stock_id: int,
        delta: int,
        restocked_at: Optional[datetime] = None,
    ) -> None:
        """Add ``delta`` (may be negative) to one record.

        The table's ``CHECK (quantity >= 0)`` rejects any update that would
        drive the record negative.

        Args:
            location: Which stock table.
            stock_id: Record PK.
            delta: Signed unit change.
            restocked_at: If given (store only), stamps ``last_restocked``.
        """
        table = _TABLES[location][0]
        if restocked_at is not None and location == LocationKind.STORE:
            self.execute(
                f"UPDATE {table} SET quantity = quantity + ?, last_restocked = ? "
                "WHERE stock_id = ?;",
                (delta, restocked_at.isoformat(), stock_id),
            )
        else:
            self.execute(
                f"UPDATE {table} SET quantity = quantity + ? WHERE stock_id = ?;",
                (delta, stock_id),
            )

    def insert_store_record(
        self,
        product_id: int,
        row_id: int,
        quantity: int,
        restocked_at: Optional[datetime] = None,
    ) -> int:
        """Create a store record for a product that has none yet.

        Returns:
            The new ``stock_id``.
        """
        self.execute(
            """
            INSERT INTO store_stock (product_id, row_id, quantity, last_restocked)
            VALUES (?, ?, ?, ?);
            """,
            (
                product_id,
                row_id,
                quantity,
                restocked_at.isoformat() if restocked_at else None,
            ),
        )
        return self.last_insert_rowid()

    def set_quantity(
        self, location: LocationKind, product_id: int, row_id: int, quantity: int
    ) -> None:
        """Set the absolute quantity of one (product, row) record, creating it.

        Used only by catalog seeding; ledger movements go through
        ``adjust_quantity``.
        """
        table = _TABLES[location][0]
        self.execute(
            f"""
            INSERT INTO {table} (product_id, row_id, quantity) VALUES (?, ?, ?)
            ON CONFLICT(product_id, row_id) DO UPDATE SET quantity = excluded.quantity;
            """,
            (product_id, row_id, quantity),
        )


# ── Private helpers ────────────────────────────────────────────────────────────


def _row_to_record(row: sqlite3.Row, location: LocationKind) -> StockRecord:
    product = Product(
        product_id=row["product_id"],
        name=row["name"],
        brand=row["brand"],
        flavor=row["flavor"],
        size=row["size"],
        category=row["category"],
        reorder_threshold=row["reorder_threshold"],
    )
    return StockRecord(
        stock_id=row["stock_id"],
        product=product,
        location=location,
        row_id=row["row_id"],
        quantity=row["quantity"],
        shelf_id=row["shelf_id"],
        shelf_name=row["shelf_name"],
        row_number=row["row_number"],
        max_products=row["max_products"],
        last_restocked=row["last_restocked"],
    )
