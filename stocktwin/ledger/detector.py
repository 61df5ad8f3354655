"""
Low-stock detector.

A store record is low when ``quantity <= max(reorder_threshold, floor)``.
The floor (20 by default) keeps a product detectable even when its own
threshold is misconfigured to zero. Entries at or below
``critical_quantity`` (10 by default) are flagged ``critical``.

Pure read: never mutates ledger state.
"""

from __future__ import annotations

import logging
from typing import Optional

from stocktwin.config import LedgerConfig
from stocktwin.db.connection import Database
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.models.stock import LowStockEntry, StockRecord
from stocktwin.taxonomy.ledger_taxonomy import StockSeverity

logger = logging.getLogger(__name__)


class LowStockDetector:
    """Answers "which store records need replenishing?"."""

    def __init__(self, db: Database, config: Optional[LedgerConfig] = None) -> None:
        self._db = db
        self._config = config or LedgerConfig()

    def effective_threshold(self, record: StockRecord) -> int:
        return max(record.product.reorder_threshold, self._config.low_stock_floor)

    def severity(self, quantity: int) -> StockSeverity:
        if quantity <= self._config.critical_quantity:
            return StockSeverity.CRITICAL
        return StockSeverity.LOW

    def list_low_stock(self) -> list[LowStockEntry]:
        """Return every low store record, lowest quantity first."""
        with self._db.connect() as conn:
            records = StockRepository(conn).list_low_stock(self._config.low_stock_floor)

        entries = [
            LowStockEntry(
                record=r,
                effective_threshold=self.effective_threshold(r),
                severity=self.severity(r.quantity),
            )
            for r in records
        ]
        logger.debug("Low-stock scan: %d record(s) flagged.", len(entries))
        return entries

    def low_stock_product_ids(self) -> list[int]:
        """Distinct flagged product ids, in detector order."""
        return list(dict.fromkeys(e.product_id for e in self.list_low_stock()))
