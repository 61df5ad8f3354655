"""
Forecast wire models and the persisted restock recommendation.

``ForecastRequest`` / ``ForecastResponse`` mirror the forecasting service's
JSON exactly (snake_case keys on the wire). ``RestockRecommendation`` is the
row written to ``restock_recommendations`` after a successful response.

Only ``ForecastResponse.to_recommendation()`` converts one into the other,
so the field mapping lives in one place.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from stocktwin.taxonomy.ledger_taxonomy import RecommendationStatus

SUCCESS_STATUS = "success"


class ForecastRequest(BaseModel):
    """Body of ``POST /recommend``."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    period_days: int = 7
    historical_weeks: int = 4
    safety_buffer: float = 0.15


class ForecastResponse(BaseModel):
    """Successful body of ``POST /recommend``.

    Only validated once ``status == "success"`` has been confirmed; failure
    bodies carry just ``status`` and ``error``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: int
    product_name: Optional[str] = None
    category: Optional[str] = None
    predicted_daily: float
    predicted_daily_with_buffer: float
    predicted_period_demand: float
    predicted_with_buffer: float
    period_days: int
    ideal_stock: float
    current_shelf: int
    current_warehouse: int
    recommended_transfer: float
    recommended_order: float
    safety_buffer: float
    status: str
    error: Optional[str] = None

    def to_recommendation(
        self,
        generated_at: datetime,
        period_start: date,
        period_end: date,
    ) -> "RestockRecommendation":
        """Build the pending recommendation this response describes.

        Transfer and order quantities are truncated to whole units.
        """
        return RestockRecommendation(
            product_id=self.product_id,
            generated_at=generated_at,
            period_start=period_start,
            period_end=period_end,
            predicted_demand=self.predicted_with_buffer,
            current_shelf_stock=self.current_shelf,
            current_warehouse_stock=self.current_warehouse,
            recommended_transfer=int(self.recommended_transfer),
            recommended_order=int(self.recommended_order),
            safety_buffer=self.safety_buffer,
            status=RecommendationStatus.PENDING,
        )


class RestockRecommendation(BaseModel):
    """A persisted replenishment suggestion for one product.

    Attributes:
        recommendation_id: Auto-assigned DB PK; ``None`` before insertion.
        product_id: Product the suggestion concerns.
        generated_at: UTC time the response was accepted.
        period_start: First day the forecast covers.
        period_end: Last day the forecast covers.
        predicted_demand: Buffered demand over the period.
        current_shelf_stock: Store units the service saw.
        current_warehouse_stock: Warehouse units the service saw.
        recommended_transfer: Units to move warehouse → store.
        recommended_order: Units to order from the supplier.
        safety_buffer: Buffer fraction applied by the service.
        status: Operator lifecycle state.
    """

    model_config = ConfigDict(frozen=True)

    recommendation_id: Optional[int] = None
    product_id: int
    generated_at: datetime
    period_start: date
    period_end: date
    predicted_demand: float
    current_shelf_stock: int
    current_warehouse_stock: int
    recommended_transfer: int
    recommended_order: int
    safety_buffer: float
    status: RecommendationStatus = RecommendationStatus.PENDING

    @field_validator("recommended_transfer", "recommended_order")
    @classmethod
    def validate_quantities(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Recommended quantities must be >= 0, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_period(self) -> "RestockRecommendation":
        if self.period_end < self.period_start:
            raise ValueError(
                f"period_end ({self.period_end}) must be >= period_start ({self.period_start})."
            )
        return self

    @property
    def total_units(self) -> int:
        """Transfer plus order; the display priority key."""
        return self.recommended_transfer + self.recommended_order
