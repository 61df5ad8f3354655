"""
Catalog seed loader: JSON → SQLite.

Responsibilities
----------------
1. Load ``config/catalog/sample_store.json`` (or any catalog JSON).
2. Validate it as a whole before writing anything.
3. Upsert products, shelves, rows, and opening stock quantities in a single
   transaction, so a bad file never leaves a half-loaded catalog.

File layout
-----------
    {
      "products": [
        {"product_id": 101, "name": "Cola", "brand": "Fizz", "flavor": "Original",
         "size": "330ml", "category": "Soft Drinks", "reorder_threshold": 20}
      ],
      "store_shelves": [
        {"shelf_id": 1, "shelf_name": "Aisle 1",
         "rows": [{"row_id": 1, "row_number": 1, "max_products": 2}]}
      ],
      "warehouse_shelves": [
        {"shelf_id": 1, "shelf_name": "Bay A",
         "rows": [{"row_id": 1, "row_number": 1}]}
      ],
      "store_stock":     [{"product_id": 101, "row_id": 1, "quantity": 5}],
      "warehouse_stock": [{"product_id": 101, "row_id": 1, "quantity": 50}]
    }

Validation rules
----------------
- Duplicate product ids, shelf ids, or row ids are rejected.
- Stock entries must reference a known product and a known row of the
  matching location.
- Quantities must be non-negative integers.

Opening quantities are absolute: reloading the file resets stock to the
file's values without logging transactions (seeding is not a movement).

Usage
-----
    from stocktwin.catalog.seed_loader import load_catalog

    result = load_catalog(db, Path("config/catalog/sample_store.json"))
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from stocktwin.db.connection import Database
from stocktwin.db.repositories.catalog_repo import LayoutRepository, ProductRepository
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.models.catalog import Product, Shelf, StoreRow, WarehouseRow
from stocktwin.taxonomy.ledger_taxonomy import LocationKind

logger = logging.getLogger(__name__)


@dataclass
class CatalogLoadResult:
    """Counts of records upserted by ``load_catalog()``."""

    products:        int = 0
    shelves:         int = 0
    rows:            int = 0
    stock_records:   int = 0


@dataclass
class _ParsedCatalog:
    products: list[Product]
    store_shelves: list[Shelf]
    store_rows: list[StoreRow]
    warehouse_shelves: list[Shelf]
    warehouse_rows: list[WarehouseRow]
    store_stock: list[tuple[int, int, int]]
    warehouse_stock: list[tuple[int, int, int]]


# ── Validation ────────────────────────────────────────────────────────────────


def parse_catalog(raw: dict[str, Any]) -> _ParsedCatalog:
    """Validate a decoded catalog document.

    Args:
        raw: Parsed JSON object.

    Returns:
        Typed catalog contents.

    Raises:
        ValueError: On any structural or referential problem.
    """
    if not isinstance(raw, dict):
        raise ValueError("Catalog file must contain a JSON object.")

    try:
        products = [Product(**p) for p in raw.get("products", [])]
    except (TypeError, ValidationError) as exc:
        raise ValueError(f"Invalid product entry: {exc}") from exc
    _reject_duplicates("product_id", [p.product_id for p in products])

    store_shelves, store_rows = _parse_shelves(
        raw.get("store_shelves", []), LocationKind.STORE
    )
    warehouse_shelves, warehouse_rows = _parse_shelves(
        raw.get("warehouse_shelves", []), LocationKind.WAREHOUSE
    )

    product_ids = {p.product_id for p in products}
    store_stock = _parse_stock(
        raw.get("store_stock", []), product_ids, {r.row_id for r in store_rows}, LocationKind.STORE
    )
    warehouse_stock = _parse_stock(
        raw.get("warehouse_stock", []),
        product_ids,
        {r.row_id for r in warehouse_rows},
        LocationKind.WAREHOUSE,
    )

    return _ParsedCatalog(
        products=products,
        store_shelves=store_shelves,
        store_rows=store_rows,
        warehouse_shelves=warehouse_shelves,
        warehouse_rows=warehouse_rows,
        store_stock=store_stock,
        warehouse_stock=warehouse_stock,
    )


def _reject_duplicates(label: str, values: list[int]) -> None:
    seen: set[int] = set()
    for v in values:
        if v in seen:
            raise ValueError(f"Duplicate {label} {v} in catalog file.")
        seen.add(v)


def _parse_shelves(
    records: list[dict[str, Any]], location: LocationKind
) -> tuple[list[Shelf], list[StoreRow] | list[WarehouseRow]]:
    shelves: list[Shelf] = []
    rows: list = []
    try:
        for rec in records:
            shelf = Shelf(shelf_id=rec["shelf_id"], shelf_name=rec["shelf_name"])
            shelves.append(shelf)
            for row in rec.get("rows", []):
                if location == LocationKind.STORE:
                    rows.append(StoreRow(shelf_id=shelf.shelf_id, **row))
                else:
                    rows.append(WarehouseRow(shelf_id=shelf.shelf_id, **row))
    except (KeyError, TypeError, ValidationError) as exc:
        raise ValueError(f"Invalid {location} shelf entry: {exc}") from exc

    _reject_duplicates(f"{location} shelf_id", [s.shelf_id for s in shelves])
    _reject_duplicates(f"{location} row_id", [r.row_id for r in rows])
    return shelves, rows


def _parse_stock(
    records: list[dict[str, Any]],
    product_ids: set[int],
    row_ids: set[int],
    location: LocationKind,
) -> list[tuple[int, int, int]]:
    entries: list[tuple[int, int, int]] = []
    for i, rec in enumerate(records):
        try:
            product_id = int(rec["product_id"])
            row_id = int(rec["row_id"])
            quantity = int(rec["quantity"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid {location} stock entry at index {i}: {exc}") from exc

        if product_id not in product_ids:
            raise ValueError(
                f"{location} stock entry at index {i} references unknown product {product_id}."
            )
        if row_id not in row_ids:
            raise ValueError(
                f"{location} stock entry at index {i} references unknown row {row_id}."
            )
        if quantity < 0:
            raise ValueError(
                f"{location} stock entry at index {i} has negative quantity {quantity}."
            )
        entries.append((product_id, row_id, quantity))
    return entries


# ── Top-level entry point ─────────────────────────────────────────────────────


def load_catalog(db: Database, catalog_path: Path) -> CatalogLoadResult:
    """Load, validate, and upsert a catalog seed file.

    Args:
        db: Opened ``Database``.
        catalog_path: Path to the catalog JSON file.

    Returns:
        ``CatalogLoadResult`` with upsert counts.

    Raises:
        FileNotFoundError: If ``catalog_path`` does not exist.
        ValueError: If the file is not valid JSON or fails validation.
    """
    logger.info("Loading catalog from %s", catalog_path)
    try:
        raw = json.loads(Path(catalog_path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Catalog file is not valid JSON: {exc}") from exc

    catalog = parse_catalog(raw)
    result = CatalogLoadResult()

    with db.transaction() as conn:
        products = ProductRepository(conn)
        layout = LayoutRepository(conn)
        stock = StockRepository(conn)

        for product in catalog.products:
            products.upsert(product)
            result.products += 1

        for shelf in catalog.store_shelves:
            layout.upsert_shelf(LocationKind.STORE, shelf)
            result.shelves += 1
        for shelf in catalog.warehouse_shelves:
            layout.upsert_shelf(LocationKind.WAREHOUSE, shelf)
            result.shelves += 1

        for row in catalog.store_rows:
            layout.upsert_store_row(row)
            result.rows += 1
        for row in catalog.warehouse_rows:
            layout.upsert_warehouse_row(row)
            result.rows += 1

        for product_id, row_id, quantity in catalog.store_stock:
            stock.set_quantity(LocationKind.STORE, product_id, row_id, quantity)
            result.stock_records += 1
        for product_id, row_id, quantity in catalog.warehouse_stock:
            stock.set_quantity(LocationKind.WAREHOUSE, product_id, row_id, quantity)
            result.stock_records += 1

    logger.info(
        "Catalog loaded: %d products, %d shelves, %d rows, %d stock records.",
        result.products, result.shelves, result.rows, result.stock_records,
    )
    return result
