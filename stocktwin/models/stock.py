"""
Stock ledger read models.

``StockRecord`` is one (product, location, row) quantity, enriched with its
shelf placement and the joined ``Product`` so presentation code never has to
issue a second lookup. ``StockLevels`` sums a product's records per location.
``LowStockEntry`` is what the detector returns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from stocktwin.models.catalog import Product
from stocktwin.taxonomy.ledger_taxonomy import LocationKind, StockSeverity


class StockRecord(BaseModel):
    """Quantity of one product held in one row at one location.

    Attributes:
        stock_id: DB PK of the stock row.
        product: The product held.
        location: ``store`` or ``warehouse``.
        row_id: Row holding the stock.
        quantity: Units on hand; never negative.
        shelf_id: Shelf containing the row.
        shelf_name: Display name of that shelf.
        row_number: Row position within the shelf.
        max_products: Row capacity (store rows only).
        last_restocked: Time of the most recent restock into this record.
    """

    model_config = ConfigDict(frozen=True)

    stock_id: int
    product: Product
    location: LocationKind
    row_id: int
    quantity: int
    shelf_id: int
    shelf_name: str
    row_number: int
    max_products: Optional[int] = None
    last_restocked: Optional[datetime] = None

    @property
    def product_id(self) -> int:
        return self.product.product_id

    @field_validator("quantity")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"quantity must be >= 0, got {v}.")
        return v


class StockLevels(BaseModel):
    """Total units of a product per location, summed over rows."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    shelf_stock: int = 0
    warehouse_stock: int = 0

    @property
    def total(self) -> int:
        return self.shelf_stock + self.warehouse_stock


class LowStockEntry(BaseModel):
    """A store record at or below its effective reorder threshold.

    Attributes:
        record: The offending store stock record.
        effective_threshold: ``max(reorder_threshold, floor)`` used for the test.
        severity: ``critical`` or ``low``.
    """

    model_config = ConfigDict(frozen=True)

    record: StockRecord
    effective_threshold: int
    severity: StockSeverity

    @property
    def product_id(self) -> int:
        return self.record.product_id

    @property
    def quantity(self) -> int:
        return self.record.quantity


class ShelfSalesCount(BaseModel):
    """Number of sale transactions attributed to one store shelf."""

    model_config = ConfigDict(frozen=True)

    shelf_name: str
    sales_count: int
