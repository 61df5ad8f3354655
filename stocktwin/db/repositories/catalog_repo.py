"""
Repositories for catalog reference data: products and shelf layout.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from stocktwin.db.repositories.base import BaseRepository
from stocktwin.models.catalog import Product, Shelf, StoreRow, WarehouseRow
from stocktwin.taxonomy.ledger_taxonomy import LocationKind

logger = logging.getLogger(__name__)


class ProductRepository(BaseRepository):
    """Read/write access to the ``products`` table."""

    def upsert(self, product: Product) -> int:
        """Insert a product or replace its metadata if the id already exists.

        Args:
            product: The ``Product`` to persist.

        Returns:
            The ``product_id`` (same as ``product.product_id``).
        """
        self.execute(
            """
            INSERT INTO products (product_id, name, brand, flavor, size, category, reorder_threshold)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(product_id) DO UPDATE SET
                name              = excluded.name,
                brand             = excluded.brand,
                flavor            = excluded.flavor,
                size              = excluded.size,
                category          = excluded.category,
                reorder_threshold = excluded.reorder_threshold;
            """,
            (
                product.product_id,
                product.name,
                product.brand,
                product.flavor,
                product.size,
                product.category,
                product.reorder_threshold,
            ),
        )
        return product.product_id

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Fetch a product by id.

        Args:
            product_id: Catalog product id.

        Returns:
            ``Product`` or ``None``.
        """
        row = self.fetchone("SELECT * FROM products WHERE product_id = ?;", (product_id,))
        return _row_to_product(row) if row else None

    def list_all(self) -> list[Product]:
        """Return every product ordered by id."""
        rows = self.fetchall("SELECT * FROM products ORDER BY product_id;")
        return [_row_to_product(r) for r in rows]

    def list_ids(self) -> list[int]:
        rows = self.fetchall("SELECT product_id FROM products ORDER BY product_id;")
        return [int(r["product_id"]) for r in rows]

    def count(self) -> int:
        return int(self.scalar("SELECT COUNT(*) FROM products;", default=0))


class LayoutRepository(BaseRepository):
    """Read/write access to shelves and rows for both locations."""

    def upsert_shelf(self, location: LocationKind, shelf: Shelf) -> int:
        """Insert or rename a shelf.

        Args:
            location: ``store`` or ``warehouse``.
            shelf: Shelf to persist.

        Returns:
            The ``shelf_id``.
        """
        table = _shelf_table(location)
        self.execute(
            f"""
            INSERT INTO {table} (shelf_id, shelf_name) VALUES (?, ?)
            ON CONFLICT(shelf_id) DO UPDATE SET shelf_name = excluded.shelf_name;
            """,
            (shelf.shelf_id, shelf.shelf_name),
        )
        return shelf.shelf_id

    def upsert_store_row(self, row: StoreRow) -> int:
        self.execute(
            """
            INSERT INTO store_rows (row_id, shelf_id, row_number, max_products)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(row_id) DO UPDATE SET
                shelf_id     = excluded.shelf_id,
                row_number   = excluded.row_number,
                max_products = excluded.max_products;
            """,
            (row.row_id, row.shelf_id, row.row_number, row.max_products),
        )
        return row.row_id

    def upsert_warehouse_row(self, row: WarehouseRow) -> int:
        self.execute(
            """
            INSERT INTO warehouse_rows (row_id, shelf_id, row_number)
            VALUES (?, ?, ?)
            ON CONFLICT(row_id) DO UPDATE SET
                shelf_id   = excluded.shelf_id,
                row_number = excluded.row_number;
            """,
            (row.row_id, row.shelf_id, row.row_number),
        )
        return row.row_id

    def list_store_rows(self) -> list[StoreRow]:
        """Return store rows in allocation order (ascending ``row_id``)."""
        rows = self.fetchall("SELECT * FROM store_rows ORDER BY row_id;")
        return [
            StoreRow(
                row_id=r["row_id"],
                shelf_id=r["shelf_id"],
                row_number=r["row_number"],
                max_products=r["max_products"],
            )
            for r in rows
        ]

    def list_shelves(self, location: LocationKind) -> list[Shelf]:
        table = _shelf_table(location)
        rows = self.fetchall(f"SELECT * FROM {table} ORDER BY shelf_id;")
        return [Shelf(shelf_id=r["shelf_id"], shelf_name=r["shelf_name"]) for r in rows]

    def store_row_exists(self, row_id: int) -> bool:
        return self.fetchone("SELECT 1 FROM store_rows WHERE row_id = ?;", (row_id,)) is not None


# ── Private helpers ────────────────────────────────────────────────────────────


def _shelf_table(location: LocationKind) -> str:
    return "store_shelves" if location == LocationKind.STORE else "warehouse_shelves"


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        product_id=row["product_id"],
        name=row["name"],
        brand=row["brand"],
        flavor=row["flavor"],
        size=row["size"],
        category=row["category"],
        reorder_threshold=row["reorder_threshold"],
    )
