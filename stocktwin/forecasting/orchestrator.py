"""
Recommendation orchestrator: turns low-stock products into persisted restock
recommendations via the forecasting service.

Per product, per invocation, a request moves through::

    IDLE → REQUESTED → SUCCESS | CONNECTIVITY_ERROR | SERVER_ERROR | PARSE_ERROR
                             | STORAGE_ERROR

All outcomes are terminal; nothing is retried automatically. The last state
per product is available from ``state_for()``.

Resource discipline
-------------------
  - At most ``max_concurrency`` HTTP calls are outstanding at once
    (``asyncio.Semaphore``).
  - At most one request per product is in flight. A second request for a
    product whose first has not finished awaits the first one's result
    instead of issuing another HTTP call.
  - ``cancel_pending()`` abandons every in-flight request; a cancelled
    request writes nothing. ``aclose()`` also closes the HTTP client.

The recommendation store is checked before any HTTP call, so an unavailable
store fails fast. Persistence happens only after the response is fully
interpreted, then listeners are notified. Database work runs in a worker
thread (``asyncio.to_thread``) so a held write lock never stalls the loop;
a write already handed to the thread runs to completion, all or nothing. A failing listener is logged and never affects the
stored recommendation or the other listeners.

Usage::

    orchestrator = RecommendationOrchestrator(client, store, detector, ledger, config)
    outcomes = asyncio.run(orchestrator.recommend_for_low_stock())
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from stocktwin.config import ForecastServiceConfig
from stocktwin.errors import (
    ConnectivityError,
    ForecastError,
    ParseError,
    ServerError,
    StockTwinError,
    StorageError,
)
from stocktwin.forecasting.client import ForecastClient
from stocktwin.ledger.detector import LowStockDetector
from stocktwin.ledger.ledger import StockLedger
from stocktwin.models.recommendation import RestockRecommendation
from stocktwin.recommendations.store import RecommendationStore
from stocktwin.taxonomy.ledger_taxonomy import RequestState
from stocktwin.utils.time_utils import period_bounds, utcnow

logger = logging.getLogger(__name__)

HEALTHY_MESSAGE = "AI Server Connected!"

_ERROR_STATES: dict[type[ForecastError], RequestState] = {
    ConnectivityError: RequestState.CONNECTIVITY_ERROR,
    ServerError: RequestState.SERVER_ERROR,
    ParseError: RequestState.PARSE_ERROR,
}


@runtime_checkable
class RecommendationListener(Protocol):
    """Receives orchestrator results. Both callbacks run on the event loop."""

    def on_recommendation(self, recommendation: RestockRecommendation) -> None: ...

    def on_error(self, product_id: int, error: StockTwinError) -> None: ...


@dataclass
class ForecastOutcome:
    """Result of one product's request within a batch.

    Attributes:
        product_id:     Product requested.
        state:          Terminal ``RequestState`` (``IDLE`` if cancelled).
        recommendation: Stored recommendation on success.
        error:          Error message on failure.
    """

    product_id:     int
    state:          RequestState
    recommendation: Optional[RestockRecommendation] = None
    error:          Optional[str]                   = None

    @property
    def success(self) -> bool:
        return self.state == RequestState.SUCCESS


class RecommendationOrchestrator:
    """Builds requests, calls the service, persists results, notifies listeners.

    Args:
        client: Forecast service client.
        store: Recommendation store written on success.
        detector: Source of low-stock product ids.
        ledger: Source of the full product list.
        config: Forecast service section of ``AppConfig``.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        client: ForecastClient,
        store: RecommendationStore,
        detector: LowStockDetector,
        ledger: StockLedger,
        config: Optional[ForecastServiceConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._store = store
        self._detector = detector
        self._ledger = ledger
        self._config = config or ForecastServiceConfig()
        self._clock = clock
        self._listeners: list[RecommendationListener] = []
        self._states: dict[int, RequestState] = {}
        self._in_flight: dict[int, asyncio.Task[RestockRecommendation]] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ── Observers ─────────────────────────────────────────────────────────────

    def subscribe(self, listener: RecommendationListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: RecommendationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── State ─────────────────────────────────────────────────────────────────

    def state_for(self, product_id: int) -> RequestState:
        """Last known request state for ``product_id`` (``IDLE`` if never asked)."""
        return self._states.get(product_id, RequestState.IDLE)

    @property
    def in_flight_count(self) -> int:
        return sum(1 for t in self._in_flight.values() if not t.done())

    # ── Requests ──────────────────────────────────────────────────────────────

    async def check_health(self) -> str:
        """Probe the service and describe the result. Nothing is persisted."""
        try:
            await self._client.probe()
        except ConnectivityError as exc:
            logger.warning("Forecast service health check failed: %s", exc)
            return f"Cannot connect to AI server: {exc}"
        logger.info("Forecast service reachable at %s", self._client.base_url)
        return HEALTHY_MESSAGE

    async def request_recommendation(self, product_id: int) -> RestockRecommendation:
        """Request, persist, and return a recommendation for one product.

        Joins the in-flight request if one is already running for the product.

        Raises:
            ConnectivityError: Transport failure, timeout, non-2xx, no URL.
            ServerError: The service reported a failure.
            ParseError: The response was malformed.
            UnavailableError: The store is unavailable; no HTTP call was made.
            StorageError: The recommendation could not be written.
            asyncio.CancelledError: The request was cancelled.
        """
        task = self._submit(product_id)
        return await asyncio.shield(task)

    async def recommend_for(self, product_ids: Iterable[int]) -> list[ForecastOutcome]:
        """Request recommendations for several products concurrently.

        Duplicate ids are requested once. Failures are reported in the
        returned outcomes, never raised.

        Returns:
            One ``ForecastOutcome`` per distinct product, in input order.
        """
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []

        tasks = [self._submit(pid) for pid in ids]
        results = await asyncio.gather(
            *(asyncio.shield(t) for t in tasks), return_exceptions=True
        )

        outcomes: list[ForecastOutcome] = []
        for pid, result in zip(ids, results):
            if isinstance(result, RestockRecommendation):
                outcomes.append(
                    ForecastOutcome(pid, RequestState.SUCCESS, recommendation=result)
                )
            elif isinstance(result, asyncio.CancelledError):
                outcomes.append(ForecastOutcome(pid, RequestState.IDLE, error="cancelled"))
            elif isinstance(result, BaseException):
                outcomes.append(ForecastOutcome(pid, self.state_for(pid), error=str(result)))

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(
            "Forecast batch finished: %d/%d succeeded.", succeeded, len(outcomes)
        )
        return outcomes

    async def recommend_for_low_stock(self) -> list[ForecastOutcome]:
        """One request per product the low-stock detector currently flags."""
        product_ids = await asyncio.to_thread(self._detector.low_stock_product_ids)
        return await self.recommend_for(product_ids)

    async def recommend_for_all(self) -> list[ForecastOutcome]:
        """One request per catalog product."""
        products = await asyncio.to_thread(self._ledger.list_products)
        return await self.recommend_for(p.product_id for p in products)

    # ── Cancellation ──────────────────────────────────────────────────────────

    def cancel_pending(self) -> int:
        """Cancel every in-flight request. Returns how many were cancelled."""
        cancelled = 0
        for task in list(self._in_flight.values()):
            if not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.info("Cancelled %d in-flight forecast request(s).", cancelled)
        return cancelled

    async def aclose(self) -> None:
        """Cancel outstanding requests, wait for them to unwind, close the client."""
        pending = [t for t in self._in_flight.values() if not t.done()]
        self.cancel_pending()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._client.aclose()

    # ── Private helpers ───────────────────────────────────────────────────────

    def _bind_loop(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._semaphore is None:
            self._loop = loop
            self._semaphore = asyncio.Semaphore(self._config.max_concurrency)
            self._in_flight.clear()
            # Requests bound to a previous loop can never finish.
            for pid, state in list(self._states.items()):
                if not state.is_terminal:
                    self._states[pid] = RequestState.IDLE
        return self._semaphore

    def _submit(self, product_id: int) -> asyncio.Task[RestockRecommendation]:
        semaphore = self._bind_loop()
        task = self._in_flight.get(product_id)
        if task is not None and not task.done():
            logger.info("Forecast for product %d already in flight; joining it.", product_id)
            return task

        self._states[product_id] = RequestState.REQUESTED
        task = asyncio.create_task(
            self._run(product_id, semaphore), name=f"forecast-{product_id}"
        )
        self._in_flight[product_id] = task
        task.add_done_callback(lambda t, pid=product_id: self._forget(pid, t))
        return task

    def _forget(self, product_id: int, task: asyncio.Task) -> None:
        if self._in_flight.get(product_id) is task:
            del self._in_flight[product_id]

    async def _run(
        self, product_id: int, semaphore: asyncio.Semaphore
    ) -> RestockRecommendation:
        try:
            self._store.ensure_writable()
            async with semaphore:
                response = await self._client.fetch(self._client.build_request(product_id))

            generated_at = self._clock()
            period_start, period_end = period_bounds(
                generated_at.date(), self._config.period_days
            )
            try:
                recommendation = response.to_recommendation(
                    generated_at, period_start, period_end
                )
            except ValidationError as exc:
                raise ParseError(f"Unusable forecast values: {exc}", product_id) from exc

            try:
                stored = await asyncio.to_thread(self._store.add, recommendation)
            except sqlite3.Error as exc:
                raise StorageError(
                    f"Could not store recommendation: {exc}", product_id
                ) from exc

        except ForecastError as exc:
            state = _ERROR_STATES.get(type(exc), RequestState.CONNECTIVITY_ERROR)
            self._fail(product_id, state, exc)
            raise

        except StockTwinError as exc:
            self._fail(product_id, RequestState.STORAGE_ERROR, exc)
            raise

        except asyncio.CancelledError:
            self._states[product_id] = RequestState.IDLE
            logger.info("Forecast for product %d cancelled.", product_id)
            raise

        self._states[product_id] = RequestState.SUCCESS
        logger.info(
            "Recommendation %s stored for product %d: transfer=%d order=%d",
            stored.recommendation_id,
            product_id,
            stored.recommended_transfer,
            stored.recommended_order,
        )
        self._notify_recommendation(stored)
        return stored

    def _fail(self, product_id: int, state: RequestState, error: StockTwinError) -> None:
        self._states[product_id] = state
        logger.warning("Forecast for product %d failed (%s): %s", product_id, state, error)
        self._notify_error(product_id, error)

    def _notify_recommendation(self, recommendation: RestockRecommendation) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_recommendation(recommendation)
            except Exception:
                logger.exception("Listener %r failed in on_recommendation.", listener)

    def _notify_error(self, product_id: int, error: StockTwinError) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_error(product_id, error)
            except Exception:
                logger.exception("Listener %r failed in on_error.", listener)
