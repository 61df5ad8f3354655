"""
Append-only ledger records: stock transactions and sales-history samples.

``StockTransaction.quantity_delta`` is the number of units moved, always
positive; the direction follows from ``transaction_type`` and the
source/destination pair. Neither model is ever updated after insertion.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from stocktwin.taxonomy.ledger_taxonomy import LocationKind, TransactionType


class StockTransaction(BaseModel):
    """One successful ledger movement.

    Attributes:
        transaction_id: Auto-assigned DB PK; ``None`` before insertion.
        product_id: Product moved.
        source: Location the units left.
        destination: Location the units arrived at; ``None`` for a sale.
        quantity_delta: Units moved (> 0).
        transaction_type: ``sale`` or ``restock``.
        created_at: UTC time the movement committed.
        request_id: Caller-supplied idempotency key, if any.
    """

    model_config = ConfigDict(frozen=True)

    transaction_id: Optional[int] = None
    product_id: int
    source: LocationKind
    destination: Optional[LocationKind] = None
    quantity_delta: int
    transaction_type: TransactionType
    created_at: datetime
    request_id: Optional[str] = None

    @field_validator("quantity_delta")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"quantity_delta must be > 0, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_route(self) -> "StockTransaction":
        if self.transaction_type == TransactionType.SALE:
            if self.source != LocationKind.STORE or self.destination is not None:
                raise ValueError("A sale must leave the store with no destination.")
        elif (self.source, self.destination) != (LocationKind.WAREHOUSE, LocationKind.STORE):
            raise ValueError("A restock must move warehouse -> store.")
        return self


class SalesHistorySample(BaseModel):
    """Daily demand sample fed to the forecasting service.

    ``day_of_week`` uses 1 = Sunday … 7 = Saturday.
    """

    model_config = ConfigDict(frozen=True)

    sample_id: Optional[int] = None
    product_id: int
    sale_date: date
    quantity_sold: int
    day_of_week: int
    is_holiday: bool = False

    @field_validator("quantity_sold")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"quantity_sold must be > 0, got {v}.")
        return v

    @field_validator("day_of_week")
    @classmethod
    def validate_day_of_week(cls, v: int) -> int:
        if not 1 <= v <= 7:
            raise ValueError(f"day_of_week must be in [1, 7], got {v}.")
        return v
