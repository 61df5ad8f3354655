"""
Stock ledger: atomic sale and restock movements plus the read queries
collaborators use to inspect stock.

Every mutation:
  1. Validates ``qty > 0`` before touching anything (``ValueError``).
  2. Holds the product's lock from ``ProductLockRegistry``.
  3. Runs inside one ``BEGIN IMMEDIATE`` transaction from ``Database``:
     source decrement, destination increment or creation, transaction log
     append (and sales-history sample for a sale) commit together or not
     at all.
  4. Logs and re-raises ``NotFoundError`` / ``InsufficientStockError``.

Idempotency: pass ``request_id`` to make a call safe to retry. A second call
with a key already in the log returns the logged transaction and changes
nothing. Calls without a key apply their effect every time.

Usage::

    ledger = StockLedger(db, config.ledger)
    txn = ledger.record_sale(product_id=101, qty=3)
    ledger.restock(101, 10, request_id="restock-2026-10-18-101")
"""

from __future__ import annotations

import logging
import random
import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from stocktwin.config import LedgerConfig
from stocktwin.db.connection import Database
from stocktwin.db.repositories.catalog_repo import LayoutRepository, ProductRepository
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.db.repositories.transaction_repo import (
    SalesHistoryRepository,
    TransactionRepository,
)
from stocktwin.errors import InsufficientStockError, NotFoundError, StockTwinError
from stocktwin.ledger.allocation import choose_store_row
from stocktwin.ledger.locks import ProductLockRegistry
from stocktwin.models.catalog import Product
from stocktwin.models.stock import LowStockEntry, ShelfSalesCount, StockLevels, StockRecord
from stocktwin.models.transaction import SalesHistorySample, StockTransaction
from stocktwin.taxonomy.ledger_taxonomy import LocationKind, TransactionType
from stocktwin.utils.time_utils import sales_day_of_week, utcnow

logger = logging.getLogger(__name__)


@dataclass
class RestockBatchResult:
    """Outcome of ``StockLedger.restock_low_stock()``.

    Attributes:
        restocked: One transaction per product that was topped up.
        failures:  product_id → error message for products that could not be.
    """

    restocked: list[StockTransaction] = field(default_factory=list)
    failures:  dict[int, str]         = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures


class StockLedger:
    """Owns every mutation of ``store_stock`` / ``warehouse_stock``.

    Args:
        db: Opened ``Database``.
        config: Ledger section of ``AppConfig``.
        locks: Shared lock registry; a private one is created if omitted.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        db: Database,
        config: Optional[LedgerConfig] = None,
        locks: Optional[ProductLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = db
        self._config = config or LedgerConfig()
        self._locks = locks or ProductLockRegistry()
        self._clock = clock

    # ── Mutations ─────────────────────────────────────────────────────────────

    def record_sale(
        self, product_id: int, qty: int, request_id: Optional[str] = None
    ) -> StockTransaction:
        """Sell ``qty`` units of a product from the store.

        Args:
            product_id: Product sold.
            qty: Units sold (> 0).
            request_id: Optional idempotency key.

        Returns:
            The logged ``sale`` transaction.

        Raises:
            ValueError: If ``qty <= 0`` or ``request_id`` belongs to a
                different movement.
            NotFoundError: If the product has no store stock record.
            InsufficientStockError: If the store holds fewer than ``qty``.
        """
        _validate_qty(qty)
        with self._locks.hold(product_id):
            try:
                with self._db.transaction() as conn:
                    replay = _find_replay(
                        conn, request_id, product_id, TransactionType.SALE, qty
                    )
                    if replay is not None:
                        return replay

                    stock = StockRepository(conn)
                    record = stock.get_primary_record(LocationKind.STORE, product_id)
                    if record is None:
                        raise NotFoundError("store stock", product_id)
                    if record.quantity < qty:
                        raise InsufficientStockError(
                            product_id, LocationKind.STORE, record.quantity, qty
                        )

                    now = self._clock()
                    stock.adjust_quantity(LocationKind.STORE, record.stock_id, -qty)
                    txn = _append_transaction(
                        conn,
                        StockTransaction(
                            product_id=product_id,
                            source=LocationKind.STORE,
                            destination=None,
                            quantity_delta=qty,
                            transaction_type=TransactionType.SALE,
                            created_at=now,
                            request_id=request_id,
                        ),
                    )
                    sale_date = now.date()
                    SalesHistoryRepository(conn).insert(
                        SalesHistorySample(
                            product_id=product_id,
                            sale_date=sale_date,
                            quantity_sold=qty,
                            day_of_week=sales_day_of_week(sale_date),
                        )
                    )
            except StockTwinError as exc:
                logger.warning("Sale rejected for product %d: %s", product_id, exc)
                raise

        logger.info(
            "Sale recorded: product=%d qty=%d store_qty=%d",
            product_id, qty, record.quantity - qty,
        )
        return txn

    def restock(
        self, product_id: int, qty: int, request_id: Optional[str] = None
    ) -> StockTransaction:
        """Move ``qty`` units of a product from the warehouse to the store.

        Creates the store record in an allocated row when the product is not
        on the sales floor yet.

        Args:
            product_id: Product moved.
            qty: Units moved (> 0).
            request_id: Optional idempotency key.

        Returns:
            The logged ``restock`` transaction.

        Raises:
            ValueError: If ``qty <= 0`` or ``request_id`` belongs to a
                different movement.
            NotFoundError: If the product has no warehouse stock record, or
                no store row can be allocated.
            InsufficientStockError: If the warehouse holds fewer than ``qty``.
        """
        _validate_qty(qty)
        with self._locks.hold(product_id):
            try:
                with self._db.transaction() as conn:
                    replay = _find_replay(
                        conn, request_id, product_id, TransactionType.RESTOCK, qty
                    )
                    if replay is not None:
                        return replay

                    stock = StockRepository(conn)
                    source = stock.get_primary_record(LocationKind.WAREHOUSE, product_id)
                    if source is None:
                        raise NotFoundError("warehouse stock", product_id)
                    if source.quantity < qty:
                        raise InsufficientStockError(
                            product_id, LocationKind.WAREHOUSE, source.quantity, qty
                        )

                    now = self._clock()
                    stock.adjust_quantity(LocationKind.WAREHOUSE, source.stock_id, -qty)

                    dest = stock.get_primary_record(LocationKind.STORE, product_id)
                    if dest is not None:
                        stock.adjust_quantity(
                            LocationKind.STORE, dest.stock_id, qty, restocked_at=now
                        )
                    else:
                        row_id = choose_store_row(
                            stock,
                            LayoutRepository(conn),
                            product_id,
                            default_row_id=self._config.default_store_row_id,
                        )
                        stock.insert_store_record(product_id, row_id, qty, restocked_at=now)

                    txn = _append_transaction(
                        conn,
                        StockTransaction(
                            product_id=product_id,
                            source=LocationKind.WAREHOUSE,
                            destination=LocationKind.STORE,
                            quantity_delta=qty,
                            transaction_type=TransactionType.RESTOCK,
                            created_at=now,
                            request_id=request_id,
                        ),
                    )
            except StockTwinError as exc:
                logger.warning("Restock rejected for product %d: %s", product_id, exc)
                raise

        logger.info(
            "Restocked: product=%d qty=%d warehouse_qty=%d",
            product_id, qty, source.quantity - qty,
        )
        return txn

    def restock_low_stock(self, entries: Iterable[LowStockEntry]) -> RestockBatchResult:
        """Top up every low-stock product from the warehouse.

        Each product receives ``max(2 * effective_threshold - quantity, 1)``
        units. A product appearing in several entries is restocked once.
        Failures are collected per product instead of aborting the batch;
        every successful restock is its own committed transaction.

        Args:
            entries: Output of ``LowStockDetector.list_low_stock()``.

        Returns:
            ``RestockBatchResult``.
        """
        result = RestockBatchResult()
        seen: set[int] = set()
        for entry in entries:
            if entry.product_id in seen:
                continue
            seen.add(entry.product_id)

            amount = max(entry.effective_threshold * 2 - entry.quantity, 1)
            try:
                result.restocked.append(self.restock(entry.product_id, amount))
            except StockTwinError as exc:
                result.failures[entry.product_id] = str(exc)

        logger.info(
            "Low-stock restock: %d restocked, %d failed.",
            len(result.restocked), len(result.failures),
        )
        return result

    def simulate_random_sale(self, rng: random.Random) -> Optional[StockTransaction]:
        """Sell one unit of a randomly chosen in-stock store product.

        Args:
            rng: Randomness source; seed it for reproducible runs.

        Returns:
            The sale transaction, or ``None`` when the store is empty.
        """
        candidates = sorted(
            {r.product_id for r in self.list_store_stock() if r.quantity > 0}
        )
        if not candidates:
            logger.info("Simulated sale skipped: store is empty.")
            return None
        return self.record_sale(rng.choice(candidates), 1)

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_product(self, product_id: int) -> Product:
        """Look up a product by id.

        Raises:
            NotFoundError: If the catalog has no such product.
        """
        with self._db.connect() as conn:
            product = ProductRepository(conn).get_by_id(product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        return product

    def list_products(self) -> list[Product]:
        with self._db.connect() as conn:
            return ProductRepository(conn).list_all()

    def list_store_stock(self) -> list[StockRecord]:
        with self._db.connect() as conn:
            return StockRepository(conn).list_records(LocationKind.STORE)

    def list_warehouse_stock(self) -> list[StockRecord]:
        with self._db.connect() as conn:
            return StockRepository(conn).list_records(LocationKind.WAREHOUSE)

    def stock_levels(self, product_id: int) -> StockLevels:
        """Shelf and warehouse totals for one product (zeros if it has none)."""
        with self._db.connect() as conn:
            return StockRepository(conn).stock_levels(product_id)

    def shelf_sales_heatmap(self) -> list[ShelfSalesCount]:
        """Sale counts per store shelf, busiest first."""
        with self._db.connect() as conn:
            return StockRepository(conn).shelf_sales_heatmap()

    def list_transactions(
        self, product_id: Optional[int] = None, limit: Optional[int] = None
    ) -> list[StockTransaction]:
        with self._db.connect() as conn:
            return TransactionRepository(conn).list_recent(product_id, limit)

    def list_sales_history(self, product_id: int) -> list[SalesHistorySample]:
        with self._db.connect() as conn:
            return SalesHistoryRepository(conn).list_for_product(product_id)


# ── Private helpers ────────────────────────────────────────────────────────────


def _validate_qty(qty: int) -> None:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValueError(f"qty must be a positive integer, got {qty!r}.")


def _find_replay(
    conn: sqlite3.Connection,
    request_id: Optional[str],
    product_id: int,
    transaction_type: TransactionType,
    qty: int,
) -> Optional[StockTransaction]:
    """Return the transaction already logged under ``request_id``, if any."""
    if request_id is None:
        return None
    existing = TransactionRepository(conn).get_by_request_id(request_id)
    if existing is None:
        return None
    if (
        existing.product_id != product_id
        or existing.transaction_type != transaction_type
        or existing.quantity_delta != qty
    ):
        raise ValueError(
            f"request_id {request_id!r} was already used for a different movement "
            f"({existing.transaction_type} of {existing.quantity_delta} "
            f"for product {existing.product_id})."
        )
    logger.info("Replay of request %s; returning transaction %s.", request_id, existing.transaction_id)
    return existing


def _append_transaction(conn: sqlite3.Connection, txn: StockTransaction) -> StockTransaction:
    txn_id = TransactionRepository(conn).insert(txn)
    return txn.model_copy(update={"transaction_id": txn_id})
