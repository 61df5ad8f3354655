"""
Repositories for the append-only ledger tables: ``stock_transactions`` and
``sales_history``.

Neither repository exposes an UPDATE. ``SalesHistoryRepository.clear()``
exists only for the synthetic backfill, which replaces history wholesale.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from stocktwin.db.repositories.base import BaseRepository
from stocktwin.models.transaction import SalesHistorySample, StockTransaction

logger = logging.getLogger(__name__)


class TransactionRepository(BaseRepository):
    """Append/read access to ``stock_transactions``."""

    def insert(self, txn: StockTransaction) -> int:
        """Append one transaction.

        Args:
            txn: The movement to log. ``transaction_id`` is ignored.

        Returns:
            The newly assigned ``transaction_id``.

        Raises:
            sqlite3.IntegrityError: If ``request_id`` was already used.
        """
        self.execute(
            """
            INSERT INTO stock_transactions (
                product_id, source, destination, quantity_delta,
                transaction_type, created_at, request_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                txn.product_id,
                str(txn.source),
                str(txn.destination) if txn.destination else None,
                txn.quantity_delta,
                str(txn.transaction_type),
                txn.created_at.isoformat(),
                txn.request_id,
            ),
        )
        return self.last_insert_rowid()

    def get_by_id(self, transaction_id: int) -> Optional[StockTransaction]:
        row = self.fetchone(
            "SELECT * FROM stock_transactions WHERE transaction_id = ?;", (transaction_id,)
        )
        return _row_to_transaction(row) if row else None

    def get_by_request_id(self, request_id: str) -> Optional[StockTransaction]:
        """Fetch the transaction recorded under an idempotency key, if any."""
        row = self.fetchone(
            "SELECT * FROM stock_transactions WHERE request_id = ?;", (request_id,)
        )
        return _row_to_transaction(row) if row else None

    def list_recent(
        self, product_id: Optional[int] = None, limit: Optional[int] = None
    ) -> list[StockTransaction]:
        """Return transactions oldest first, optionally for one product.

        Args:
            product_id: Restrict to this product, or ``None`` for all.
            limit: Keep only the most recent ``limit`` entries.

        Returns:
            List of ``StockTransaction`` in commit order.
        """
        sql = "SELECT * FROM stock_transactions"
        params: tuple = ()
        if product_id is not None:
            sql += " WHERE product_id = ?"
            params = (product_id,)
        sql += " ORDER BY transaction_id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params = params + (limit,)
        rows = self.fetchall(sql + ";", params)
        return [_row_to_transaction(r) for r in reversed(rows)]

    def count(self, product_id: Optional[int] = None) -> int:
        if product_id is None:
            return int(self.scalar("SELECT COUNT(*) FROM stock_transactions;", default=0))
        return int(
            self.scalar(
                "SELECT COUNT(*) FROM stock_transactions WHERE product_id = ?;",
                (product_id,),
                default=0,
            )
        )


class SalesHistoryRepository(BaseRepository):
    """Append/read access to ``sales_history``."""

    def insert(self, sample: SalesHistorySample) -> int:
        self.execute(_INSERT_SAMPLE_SQL, _sample_params(sample))
        return self.last_insert_rowid()

    def insert_many(self, samples: list[SalesHistorySample]) -> int:
        """Bulk-append samples.

        Returns:
            Number of rows inserted.
        """
        if not samples:
            return 0
        self.executemany(_INSERT_SAMPLE_SQL, [_sample_params(s) for s in samples])
        return len(samples)

    def clear(self) -> int:
        """Delete every sample. Returns the number of rows removed."""
        return self.execute("DELETE FROM sales_history;").rowcount

    def list_for_product(self, product_id: int) -> list[SalesHistorySample]:
        """Return a product's samples, most recent date first."""
        rows = self.fetchall(
            """
            SELECT * FROM sales_history
            WHERE product_id = ?
            ORDER BY sale_date DESC, sample_id DESC;
            """,
            (product_id,),
        )
        return [_row_to_sample(r) for r in rows]

    def count(self, product_id: Optional[int] = None) -> int:
        if product_id is None:
            return int(self.scalar("SELECT COUNT(*) FROM sales_history;", default=0))
        return int(
            self.scalar(
                "SELECT COUNT(*) FROM sales_history WHERE product_id = ?;",
                (product_id,),
                default=0,
            )
        )


# ── Private helpers ────────────────────────────────────────────────────────────

_INSERT_SAMPLE_SQL = """
    INSERT INTO sales_history (product_id, sale_date, quantity_sold, day_of_week, is_holiday)
    VALUES (?, ?, ?, ?, ?);
"""


def _sample_params(sample: SalesHistorySample) -> tuple:
    return (
        sample.product_id,
        sample.sale_date.isoformat(),
        sample.quantity_sold,
        sample.day_of_week,
        int(sample.is_holiday),
    )


def _row_to_transaction(row: sqlite3.Row) -> StockTransaction:
    return StockTransaction(
        transaction_id=row["transaction_id"],
        product_id=row["product_id"],
        source=row["source"],
        destination=row["destination"],
        quantity_delta=row["quantity_delta"],
        transaction_type=row["transaction_type"],
        created_at=row["created_at"],
        request_id=row["request_id"],
    )


def _row_to_sample(row: sqlite3.Row) -> SalesHistorySample:
    return SalesHistorySample(
        sample_id=row["sample_id"],
        product_id=row["product_id"],
        sale_date=row["sale_date"],
        quantity_sold=row["quantity_sold"],
        day_of_week=row["day_of_week"],
        is_holiday=bool(row["is_holiday"]),
    )
