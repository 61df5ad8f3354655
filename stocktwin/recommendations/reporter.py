"""
Recommendation report writer: CSV and JSON exports of stored
recommendations, plus the display ordering used by the CLI.

All functions are pure I/O with no DB access. They consume the list
returned by ``RecommendationStore.list_recent()``.

Output files
------------
  data/outputs/recommendations/
    restock_recommendations_{date}.csv
    restock_recommendations_{date}.json
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from stocktwin.models.recommendation import RestockRecommendation

logger = logging.getLogger(__name__)

_FIELDNAMES = [
    "recommendation_id", "product_id", "generated_at", "period_start", "period_end",
    "predicted_demand", "current_shelf_stock", "current_warehouse_stock",
    "recommended_transfer", "recommended_order", "safety_buffer", "status",
]


def prioritize(
    recommendations: list[RestockRecommendation], limit: Optional[int] = None
) -> list[RestockRecommendation]:
    """Order for display: most units to move (transfer + order) first.

    Ties keep the newest-first order they arrived in.

    Args:
        recommendations: Typically ``RecommendationStore.list_recent()``.
        limit: Keep only the first ``limit`` after sorting.
    """
    ranked = sorted(recommendations, key=lambda r: -r.total_units)
    return ranked if limit is None else ranked[:limit]


def _as_row(rec: RestockRecommendation) -> dict:
    return {
        "recommendation_id":       rec.recommendation_id,
        "product_id":              rec.product_id,
        "generated_at":            rec.generated_at.isoformat(),
        "period_start":            rec.period_start.isoformat(),
        "period_end":              rec.period_end.isoformat(),
        "predicted_demand":        round(rec.predicted_demand, 2),
        "current_shelf_stock":     rec.current_shelf_stock,
        "current_warehouse_stock": rec.current_warehouse_stock,
        "recommended_transfer":    rec.recommended_transfer,
        "recommended_order":       rec.recommended_order,
        "safety_buffer":           rec.safety_buffer,
        "status":                  str(rec.status),
    }


def write_recommendations_csv(
    recommendations: list[RestockRecommendation],
    output_dir: Path,
    run_date: date | None = None,
) -> Path:
    """Write recommendations to a CSV file in display order.

    Args:
        recommendations: Records to export.
        output_dir:      Directory to write the file (created if missing).
        run_date:        Date label for the filename. Defaults to today.

    Returns:
        Path to the written CSV file.
    """
    if run_date is None:
        run_date = date.today()

    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = output_dir / f"restock_recommendations_{run_date}.csv"

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=_FIELDNAMES)
        writer.writeheader()
        for rec in prioritize(recommendations):
            writer.writerow(_as_row(rec))

    logger.info("Recommendation CSV written: %s (%d rows)", csv_path, len(recommendations))
    return csv_path


def write_recommendations_json(
    recommendations: list[RestockRecommendation],
    output_dir: Path,
    run_date: date | None = None,
) -> Path:
    """Write recommendations to a structured JSON file in display order.

    Args:
        recommendations: Records to export.
        output_dir:      Target directory.
        run_date:        Date label. Defaults to today.

    Returns:
        Path to the written JSON file.
    """
    if run_date is None:
        run_date = date.today()

    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = output_dir / f"restock_recommendations_{run_date}.json"

    ranked = prioritize(recommendations)
    payload = {
        "generated_at":    run_date.isoformat(),
        "count":           len(ranked),
        "total_transfer":  sum(r.recommended_transfer for r in ranked),
        "total_order":     sum(r.recommended_order for r in ranked),
        "recommendations": [_as_row(r) for r in ranked],
    }

    json_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Recommendation JSON written: %s", json_path)
    return json_path
