"""Tests for StockLedger — sales, restocks, idempotency, atomicity, batch restock.

Seeded state (see conftest): product 1 has 5 in store and 50 in the
warehouse; product 2 has 30 in the warehouse only; product 3 has 25 in store
and an empty warehouse record.
"""

from __future__ import annotations

import random
from datetime import date, datetime, timezone

import pytest

from stocktwin.config import LedgerConfig
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.errors import InsufficientStockError, NotFoundError
from stocktwin.ledger.detector import LowStockDetector
from stocktwin.ledger.ledger import StockLedger
from stocktwin.taxonomy.ledger_taxonomy import LocationKind, TransactionType


# ── Helpers ────────────────────────────────────────────────────────────────────

FIXED_NOW = datetime(2026, 10, 18, 9, 30, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def _levels(ledger: StockLedger, product_id: int) -> tuple[int, int]:
    levels = ledger.stock_levels(product_id)
    return levels.shelf_stock, levels.warehouse_stock


def _fill_row(db, product_id: int, row_id: int, qty: int = 1) -> None:
    with db.transaction() as conn:
        StockRepository(conn).set_quantity(LocationKind.STORE, product_id, row_id, qty)


# ── Sales ──────────────────────────────────────────────────────────────────────

class TestRecordSale:
    def test_sale_decrements_store_only(self, ledger):
        ledger.record_sale(1, 3)
        assert _levels(ledger, 1) == (2, 50)

    def test_sale_logs_transaction(self, ledger):
        txn = ledger.record_sale(1, 3)
        assert txn.transaction_id is not None
        assert txn.transaction_type == TransactionType.SALE
        assert txn.source == LocationKind.STORE
        assert txn.destination is None
        assert txn.quantity_delta == 3
        assert txn.created_at == FIXED_NOW
        assert ledger.list_transactions(product_id=1) == [txn]

    def test_sale_appends_sales_history_sample(self, ledger):
        ledger.record_sale(1, 3)
        samples = ledger.list_sales_history(1)
        assert len(samples) == 1
        assert samples[0].sale_date == date(2026, 10, 18)
        assert samples[0].quantity_sold == 3
        assert samples[0].day_of_week == 1  # Sunday

    def test_selling_entire_stock_leaves_zero(self, ledger):
        ledger.record_sale(1, 5)
        assert _levels(ledger, 1) == (0, 50)

    def test_insufficient_stock_changes_nothing(self, ledger):
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_sale(1, 6)
        assert exc_info.value.available == 5
        assert exc_info.value.requested == 6
        assert _levels(ledger, 1) == (5, 50)
        assert ledger.list_transactions() == []
        assert ledger.list_sales_history(1) == []

    def test_no_store_record_raises_not_found(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.record_sale(2, 1)
        assert ledger.list_transactions() == []

    def test_unknown_product_raises_not_found(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.record_sale(999, 1)

    @pytest.mark.parametrize("qty", [0, -1, True, 1.5])
    def test_invalid_qty_raises_value_error(self, ledger, qty):
        with pytest.raises(ValueError):
            ledger.record_sale(1, qty)
        assert _levels(ledger, 1) == (5, 50)


# ── Restocks ───────────────────────────────────────────────────────────────────

class TestRestock:
    def test_restock_moves_units_warehouse_to_store(self, ledger):
        ledger.restock(1, 10)
        assert _levels(ledger, 1) == (15, 40)

    def test_restock_conserves_total(self, ledger):
        before = ledger.stock_levels(1).total
        ledger.restock(1, 50)
        assert ledger.stock_levels(1).total == before

    def test_restock_logs_transaction_and_stamps_record(self, ledger):
        txn = ledger.restock(1, 10)
        assert txn.transaction_type == TransactionType.RESTOCK
        assert txn.source == LocationKind.WAREHOUSE
        assert txn.destination == LocationKind.STORE
        assert txn.quantity_delta == 10
        record = next(r for r in ledger.list_store_stock() if r.product_id == 1)
        assert record.last_restocked == FIXED_NOW

    def test_restock_creates_store_record_in_available_row(self, ledger):
        ledger.restock(2, 5)
        record = next(r for r in ledger.list_store_stock() if r.product_id == 2)
        # Row 1 already holds two products, its full capacity.
        assert record.row_id == 2
        assert record.quantity == 5
        assert _levels(ledger, 2) == (5, 25)

    def test_restock_falls_back_to_default_row_when_full(self, seeded_db, ledger):
        _fill_row(seeded_db, 3, 2)
        ledger.restock(2, 5)
        record = next(r for r in ledger.list_store_stock() if r.product_id == 2)
        assert record.row_id == 1

    def test_failed_allocation_rolls_back_warehouse(self, seeded_db):
        _fill_row(seeded_db, 3, 2)
        ledger = StockLedger(seeded_db, LedgerConfig(default_store_row_id=99), clock=fixed_clock)
        with pytest.raises(NotFoundError):
            ledger.restock(2, 5)
        assert _levels(ledger, 2) == (0, 30)
        assert ledger.list_transactions() == []

    def test_insufficient_warehouse_stock(self, ledger):
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.restock(1, 51)
        assert exc_info.value.location == LocationKind.WAREHOUSE
        assert _levels(ledger, 1) == (5, 50)

    def test_empty_warehouse_record(self, ledger):
        with pytest.raises(InsufficientStockError):
            ledger.restock(3, 1)

    def test_no_warehouse_record_raises_not_found(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.restock(999, 1)

    def test_invalid_qty_raises_value_error(self, ledger):
        with pytest.raises(ValueError):
            ledger.restock(1, 0)


# ── Sequences and idempotency ──────────────────────────────────────────────────

class TestLedgerSequences:
    def test_sale_then_restock_scenario(self, ledger):
        ledger.record_sale(1, 3)
        assert _levels(ledger, 1) == (2, 50)
        ledger.restock(1, 10)
        assert _levels(ledger, 1) == (12, 40)
        txns = ledger.list_transactions(product_id=1)
        assert [t.transaction_type for t in txns] == [TransactionType.SALE, TransactionType.RESTOCK]

    def test_restock_then_sale_returns_to_start_on_shelf(self, ledger):
        ledger.restock(1, 7)
        ledger.record_sale(1, 7)
        assert _levels(ledger, 1) == (5, 43)

    def test_transaction_limit_keeps_most_recent(self, ledger):
        for _ in range(3):
            ledger.record_sale(1, 1)
        ledger.restock(1, 2)
        recent = ledger.list_transactions(limit=2)
        assert [t.transaction_type for t in recent] == [TransactionType.SALE, TransactionType.RESTOCK]

    def test_replayed_request_applies_once(self, ledger):
        first = ledger.record_sale(1, 2, request_id="till-1")
        second = ledger.record_sale(1, 2, request_id="till-1")
        assert second.transaction_id == first.transaction_id
        assert _levels(ledger, 1) == (3, 50)
        assert len(ledger.list_transactions()) == 1

    def test_replayed_restock_applies_once(self, ledger):
        ledger.restock(1, 10, request_id="move-1")
        ledger.restock(1, 10, request_id="move-1")
        assert _levels(ledger, 1) == (15, 40)

    def test_reused_request_id_for_other_movement_rejected(self, ledger):
        ledger.record_sale(1, 2, request_id="till-1")
        with pytest.raises(ValueError):
            ledger.record_sale(1, 3, request_id="till-1")
        with pytest.raises(ValueError):
            ledger.restock(1, 2, request_id="till-1")
        assert _levels(ledger, 1) == (3, 50)

    def test_calls_without_request_id_apply_every_time(self, ledger):
        ledger.record_sale(1, 1)
        ledger.record_sale(1, 1)
        assert _levels(ledger, 1) == (3, 50)


# ── Batch and simulation ───────────────────────────────────────────────────────

class TestRestockLowStock:
    def test_tops_up_low_products_and_collects_failures(self, seeded_db, ledger):
        entries = LowStockDetector(seeded_db, LedgerConfig()).list_low_stock()
        result = ledger.restock_low_stock(entries)

        # Product 1: 2 * 20 - 5 = 35 units. Product 3 has an empty warehouse.
        assert [t.product_id for t in result.restocked] == [1]
        assert result.restocked[0].quantity_delta == 35
        assert set(result.failures) == {3}
        assert not result.success
        assert _levels(ledger, 1) == (40, 15)

    def test_duplicate_entries_restocked_once(self, seeded_db, ledger):
        entries = LowStockDetector(seeded_db, LedgerConfig()).list_low_stock()
        product_1 = [e for e in entries if e.product_id == 1]
        result = ledger.restock_low_stock(product_1 * 2)
        assert len(result.restocked) == 1
        assert result.success

    def test_empty_input(self, ledger):
        result = ledger.restock_low_stock([])
        assert result.restocked == []
        assert result.success


class TestSimulateRandomSale:
    def test_sells_one_unit_of_an_in_stock_product(self, ledger):
        txn = ledger.simulate_random_sale(random.Random(7))
        assert txn is not None
        assert txn.product_id in {1, 3}
        assert txn.quantity_delta == 1

    def test_seeded_rng_picks_from_sorted_candidates(self, ledger):
        expected = random.Random(123).choice([1, 3])
        txn = ledger.simulate_random_sale(random.Random(123))
        assert txn.product_id == expected

    def test_empty_store_returns_none(self, ledger):
        ledger.record_sale(1, 5)
        ledger.record_sale(3, 25)
        assert ledger.simulate_random_sale(random.Random(0)) is None


# ── Reads ──────────────────────────────────────────────────────────────────────

class TestLedgerReads:
    def test_get_product(self, ledger):
        assert ledger.get_product(1).name == "Cola"

    def test_get_unknown_product_raises(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.get_product(999)

    def test_list_products(self, ledger):
        assert [p.product_id for p in ledger.list_products()] == [1, 2, 3]

    def test_warehouse_stock_listing(self, ledger):
        records = ledger.list_warehouse_stock()
        assert {r.product_id: r.quantity for r in records} == {1: 50, 2: 30, 3: 0}
        assert all(r.shelf_name == "Bay A" for r in records)

    def test_heatmap_after_sales(self, ledger):
        ledger.record_sale(1, 1)
        ledger.record_sale(3, 1)
        heatmap = ledger.shelf_sales_heatmap()
        assert [(h.shelf_name, h.sales_count) for h in heatmap] == [("Front", 2)]

    def test_unknown_product_levels_are_zero(self, ledger):
        assert _levels(ledger, 999) == (0, 0)
