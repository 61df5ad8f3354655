"""
Composition root: wires the ledger, detector, store, and orchestrator once
at startup from an ``AppConfig``.

Every component receives its collaborators through its constructor; nothing
is looked up at runtime. Tests build the same graph with a temporary DB path
and an ``httpx.MockTransport``.

Usage::

    services = build_services(config)
    try:
        services.ledger.record_sale(101, 2)
    finally:
        services.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from stocktwin.config import AppConfig
from stocktwin.db.connection import Database
from stocktwin.forecasting.client import ForecastClient
from stocktwin.forecasting.orchestrator import RecommendationOrchestrator
from stocktwin.ledger.detector import LowStockDetector
from stocktwin.ledger.ledger import StockLedger
from stocktwin.ledger.locks import ProductLockRegistry
from stocktwin.recommendations.store import RecommendationStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """The wired component graph for one session."""

    config:       AppConfig
    db:           Database
    ledger:       StockLedger
    detector:     LowStockDetector
    store:        RecommendationStore
    client:       ForecastClient
    orchestrator: RecommendationOrchestrator

    async def aclose(self) -> None:
        """Cancel in-flight forecasts, close the HTTP client and the database."""
        await self.orchestrator.aclose()
        self.db.close()

    def close(self) -> None:
        """Close the database. Use ``aclose()`` when forecasts may be running."""
        self.db.close()


def build_services(
    config: AppConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    open_db: bool = True,
) -> Services:
    """Construct and wire every component.

    Args:
        config: Loaded application config.
        transport: Optional ``httpx`` transport for the forecast client.
        open_db: Open the database (schema + migrations) immediately.

    Returns:
        ``Services`` bundle.

    Raises:
        UnavailableError: If ``open_db`` and the database cannot be opened.
    """
    db = Database.from_config(config.database)
    if open_db:
        db.open()

    locks = ProductLockRegistry()
    ledger = StockLedger(db, config.ledger, locks=locks)
    detector = LowStockDetector(db, config.ledger)
    store = RecommendationStore(db, config.recommendations)
    client = ForecastClient(config.forecast_service, transport=transport)
    orchestrator = RecommendationOrchestrator(
        client, store, detector, ledger, config.forecast_service
    )

    logger.debug("Services wired for database %s", config.database.db_path)
    return Services(
        config=config,
        db=db,
        ledger=ledger,
        detector=detector,
        store=store,
        client=client,
        orchestrator=orchestrator,
    )
