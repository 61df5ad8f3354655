"""
Repository for ``restock_recommendations``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from stocktwin.db.repositories.base import BaseRepository
from stocktwin.models.recommendation import RestockRecommendation
from stocktwin.taxonomy.ledger_taxonomy import RecommendationStatus

logger = logging.getLogger(__name__)


class RecommendationRepository(BaseRepository):
    """Read/write access to the ``restock_recommendations`` table."""

    def insert(self, rec: RestockRecommendation) -> int:
        """Persist a recommendation.

        Args:
            rec: The recommendation; ``recommendation_id`` is ignored.

        Returns:
            The newly assigned ``recommendation_id``.
        """
        self.execute(
            """
            INSERT INTO restock_recommendations (
                product_id, generated_at, period_start, period_end,
                predicted_demand, current_shelf_stock, current_warehouse_stock,
                recommended_transfer, recommended_order, safety_buffer, status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                rec.product_id,
                rec.generated_at.isoformat(),
                rec.period_start.isoformat(),
                rec.period_end.isoformat(),
                rec.predicted_demand,
                rec.current_shelf_stock,
                rec.current_warehouse_stock,
                rec.recommended_transfer,
                rec.recommended_order,
                rec.safety_buffer,
                str(rec.status),
            ),
        )
        return self.last_insert_rowid()

    def get_by_id(self, recommendation_id: int) -> Optional[RestockRecommendation]:
        row = self.fetchone(
            "SELECT * FROM restock_recommendations WHERE recommendation_id = ?;",
            (recommendation_id,),
        )
        return _row_to_recommendation(row) if row else None

    def list_recent(self, limit: int = 50) -> list[RestockRecommendation]:
        """Return up to ``limit`` recommendations, most recently generated first.

        Ties on ``generated_at`` fall back to insertion order (newest first).
        """
        rows = self.fetchall(
            """
            SELECT * FROM restock_recommendations
            ORDER BY generated_at DESC, recommendation_id DESC
            LIMIT ?;
            """,
            (limit,),
        )
        return [_row_to_recommendation(r) for r in rows]

    def update_status(self, recommendation_id: int, status: RecommendationStatus) -> int:
        """Set ``status`` on one row. Returns the number of rows changed."""
        cur = self.execute(
            "UPDATE restock_recommendations SET status = ? WHERE recommendation_id = ?;",
            (str(status), recommendation_id),
        )
        return cur.rowcount

    def count(self, product_id: Optional[int] = None) -> int:
        if product_id is None:
            return int(
                self.scalar("SELECT COUNT(*) FROM restock_recommendations;", default=0)
            )
        return int(
            self.scalar(
                "SELECT COUNT(*) FROM restock_recommendations WHERE product_id = ?;",
                (product_id,),
                default=0,
            )
        )


# ── Private helpers ────────────────────────────────────────────────────────────


def _row_to_recommendation(row: sqlite3.Row) -> RestockRecommendation:
    return RestockRecommendation(
        recommendation_id=row["recommendation_id"],
        product_id=row["product_id"],
        generated_at=row["generated_at"],
        period_start=row["period_start"],
        period_end=row["period_end"],
        predicted_demand=row["predicted_demand"],
        current_shelf_stock=row["current_shelf_stock"],
        current_warehouse_stock=row["current_warehouse_stock"],
        recommended_transfer=row["recommended_transfer"],
        recommended_order=row["recommended_order"],
        safety_buffer=row["safety_buffer"],
        status=row["status"],
    )
