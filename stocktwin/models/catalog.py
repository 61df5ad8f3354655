"""
Catalog reference data: products and the physical shelf layout.

Products are immutable reference data; the ledger never edits them. Shelves
and rows describe where stock can live. Only store rows carry a capacity
(``max_products``: how many distinct products may occupy the row), which the
row-allocation policy reads when a restock has to place a product on the
sales floor for the first time.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

# Applied when a product row has no reorder threshold recorded.
DEFAULT_REORDER_THRESHOLD = 20


class Product(BaseModel):
    """A sellable product.

    Attributes:
        product_id: Catalog PK (assigned by the catalog, not autoincremented).
        name: Display name.
        brand: Manufacturer brand, if known.
        flavor: Variant/flavor, if any.
        size: Pack size as printed, e.g. ``"330ml"``.
        category: Merchandising category.
        reorder_threshold: Store quantity at or below which the product
            counts as low stock. Defaults to 20 when not configured.
    """

    model_config = ConfigDict(frozen=True)

    product_id: int
    name: str
    brand: Optional[str] = None
    flavor: Optional[str] = None
    size: Optional[str] = None
    category: Optional[str] = None
    reorder_threshold: int = DEFAULT_REORDER_THRESHOLD

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Product name must not be empty.")
        return v.strip()

    @field_validator("reorder_threshold", mode="before")
    @classmethod
    def default_missing_threshold(cls, v: Optional[int]) -> int:
        if v is None:
            return DEFAULT_REORDER_THRESHOLD
        if v < 0:
            raise ValueError(f"reorder_threshold must be >= 0, got {v}.")
        return v


class Shelf(BaseModel):
    """A named shelf unit in the store or the warehouse."""

    model_config = ConfigDict(frozen=True)

    shelf_id: int
    shelf_name: str


class StoreRow(BaseModel):
    """One row of a store shelf.

    Attributes:
        row_id: Globally unique row PK.
        shelf_id: Parent shelf.
        row_number: Position within the shelf, 1 = top.
        max_products: Number of distinct products the row can hold.
    """

    model_config = ConfigDict(frozen=True)

    row_id: int
    shelf_id: int
    row_number: int
    max_products: int = 1

    @field_validator("max_products")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_products must be >= 0, got {v}.")
        return v


class WarehouseRow(BaseModel):
    """One row of a warehouse shelf. Warehouse rows are uncapped."""

    model_config = ConfigDict(frozen=True)

    row_id: int
    shelf_id: int
    row_number: int
