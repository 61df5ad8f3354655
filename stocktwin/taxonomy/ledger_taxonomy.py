"""
Closed vocabularies for the stock ledger and the replenishment pipeline.

  - ``LocationKind``          — where a stock record lives.
  - ``TransactionType``       — what a ledger log entry records.
  - ``RecommendationStatus``  — operator-driven lifecycle of a recommendation.
  - ``StockSeverity``         — urgency label attached by the low-stock detector.
  - ``RequestState``          — per-product forecast request lifecycle.

Values are the exact strings written to SQLite, so never rename a value
without a migration.

This module has NO imports from any other ``stocktwin`` package.
"""

from enum import StrEnum


class LocationKind(StrEnum):
    """Physical location holding a stock record."""

    STORE = "store"
    """Sales floor; the only location a sale can draw from."""

    WAREHOUSE = "warehouse"
    """Back room; source of every restock transfer."""


class TransactionType(StrEnum):
    """Kind of movement recorded in ``stock_transactions``."""

    SALE = "sale"
    """Units left the store for good (total stock decreases)."""

    RESTOCK = "restock"
    """Units moved warehouse → store (total stock unchanged)."""


class RecommendationStatus(StrEnum):
    """Lifecycle of a persisted restock recommendation."""

    PENDING = "pending"
    APPLIED = "applied"
    DISMISSED = "dismissed"


class StockSeverity(StrEnum):
    """Urgency of a low-stock entry."""

    CRITICAL = "critical"
    LOW = "low"


class RequestState(StrEnum):
    """Forecast request lifecycle for one product within one invocation.

    ``IDLE → REQUESTED → {SUCCESS, CONNECTIVITY_ERROR, SERVER_ERROR,
    PARSE_ERROR, STORAGE_ERROR}``. All outcomes are terminal; nothing is
    retried automatically. ``STORAGE_ERROR`` means the recommendation could
    not be written (or the store was unavailable before the call went out).
    """

    IDLE = "idle"
    REQUESTED = "requested"
    SUCCESS = "success"
    CONNECTIVITY_ERROR = "connectivity_error"
    SERVER_ERROR = "server_error"
    PARSE_ERROR = "parse_error"
    STORAGE_ERROR = "storage_error"

    @property
    def is_terminal(self) -> bool:
        return self not in (RequestState.IDLE, RequestState.REQUESTED)


# Operator transitions allowed on a stored recommendation.
ALLOWED_STATUS_TRANSITIONS: dict[RecommendationStatus, frozenset[RecommendationStatus]] = {
    RecommendationStatus.PENDING: frozenset(
        {RecommendationStatus.APPLIED, RecommendationStatus.DISMISSED}
    ),
    RecommendationStatus.APPLIED: frozenset(),
    RecommendationStatus.DISMISSED: frozenset(),
}
