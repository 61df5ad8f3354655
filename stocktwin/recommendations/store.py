"""
Recommendation store: the durable home of forecast-derived restock
recommendations.

Append path: one ``add()`` per successful forecast response, written by the
orchestrator. Read path: ``list_recent()`` returns the newest first, capped
(50 by default). Display ordering and truncation belong to the presentation
layer (see ``reporter.prioritize``).

Status changes are operator actions: ``pending`` may become ``applied`` or
``dismissed``; both are final.
"""

from __future__ import annotations

import logging
from typing import Optional

from stocktwin.config import RecommendationsConfig
from stocktwin.db.connection import Database
from stocktwin.db.repositories.recommendation_repo import RecommendationRepository
from stocktwin.errors import NotFoundError
from stocktwin.models.recommendation import RestockRecommendation
from stocktwin.taxonomy.ledger_taxonomy import (
    ALLOWED_STATUS_TRANSITIONS,
    RecommendationStatus,
)

logger = logging.getLogger(__name__)


class RecommendationStore:
    """Persists and reads ``RestockRecommendation`` rows."""

    def __init__(self, db: Database, config: Optional[RecommendationsConfig] = None) -> None:
        self._db = db
        self._config = config or RecommendationsConfig()

    def ensure_writable(self) -> None:
        """Raise ``UnavailableError`` if ``add()`` cannot succeed right now."""
        self._db.ensure_available()

    def add(self, recommendation: RestockRecommendation) -> RestockRecommendation:
        """Insert one recommendation.

        Args:
            recommendation: Record to store; its ``recommendation_id`` is ignored.

        Returns:
            The stored record with its assigned ``recommendation_id``.
        """
        with self._db.transaction() as conn:
            rec_id = RecommendationRepository(conn).insert(recommendation)
        logger.debug("Stored recommendation %d for product %d.", rec_id, recommendation.product_id)
        return recommendation.model_copy(update={"recommendation_id": rec_id})

    def get(self, recommendation_id: int) -> RestockRecommendation:
        """Fetch one recommendation.

        Raises:
            NotFoundError: If no such recommendation exists.
        """
        with self._db.connect() as conn:
            rec = RecommendationRepository(conn).get_by_id(recommendation_id)
        if rec is None:
            raise NotFoundError("recommendation", recommendation_id)
        return rec

    def list_recent(self, limit: Optional[int] = None) -> list[RestockRecommendation]:
        """Most recently generated recommendations first.

        Args:
            limit: Maximum rows; defaults to ``recent_limit`` from config.
        """
        limit = self._config.recent_limit if limit is None else limit
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}.")
        with self._db.connect() as conn:
            return RecommendationRepository(conn).list_recent(limit)

    def set_status(
        self, recommendation_id: int, status: RecommendationStatus | str
    ) -> RestockRecommendation:
        """Apply an operator status transition.

        Args:
            recommendation_id: Target recommendation.
            status: New status (``applied`` or ``dismissed``).

        Returns:
            The updated record.

        Raises:
            ValueError: Unknown status or a transition not allowed from the
                current status.
            NotFoundError: If no such recommendation exists.
        """
        new_status = RecommendationStatus(status)
        with self._db.transaction() as conn:
            repo = RecommendationRepository(conn)
            current = repo.get_by_id(recommendation_id)
            if current is None:
                raise NotFoundError("recommendation", recommendation_id)
            if new_status not in ALLOWED_STATUS_TRANSITIONS[current.status]:
                raise ValueError(
                    f"Cannot change recommendation {recommendation_id} "
                    f"from '{current.status}' to '{new_status}'."
                )
            repo.update_status(recommendation_id, new_status)

        logger.info(
            "Recommendation %d: %s -> %s", recommendation_id, current.status, new_status
        )
        return current.model_copy(update={"status": new_status})

    def count(self, product_id: Optional[int] = None) -> int:
        with self._db.connect() as conn:
            return RecommendationRepository(conn).count(product_id)
