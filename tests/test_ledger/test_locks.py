"""Tests for per-product locking and concurrent ledger mutations.

Concurrent callers share one ``StockLedger`` on a file-backed database;
SQLite's busy timeout absorbs the commit contention between threads.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from stocktwin.errors import InsufficientStockError
from stocktwin.ledger.locks import ProductLockRegistry


class TestProductLockRegistry:
    def test_same_product_same_lock(self):
        registry = ProductLockRegistry()
        assert registry.lock_for(1) is registry.lock_for(1)
        assert registry.lock_for(1) is not registry.lock_for(2)
        assert len(registry) == 2

    def test_hold_is_reentrant(self):
        registry = ProductLockRegistry()
        with registry.hold(1):
            with registry.hold(1):
                pass

    def test_hold_excludes_other_threads(self):
        registry = ProductLockRegistry()
        acquired = []

        def _try_acquire():
            acquired.append(registry.lock_for(1).acquire(blocking=False))

        with registry.hold(1):
            worker = threading.Thread(target=_try_acquire)
            worker.start()
            worker.join()
        assert acquired == [False]

    def test_other_products_not_blocked(self):
        registry = ProductLockRegistry()
        acquired = []

        def _try_acquire():
            lock = registry.lock_for(2)
            acquired.append(lock.acquire(blocking=False))
            lock.release()

        with registry.hold(1):
            worker = threading.Thread(target=_try_acquire)
            worker.start()
            worker.join()
        assert acquired == [True]


class TestConcurrentLedger:
    def test_concurrent_sales_never_oversell(self, ledger):
        def _sell():
            try:
                ledger.record_sale(1, 1)
                return True
            except InsufficientStockError:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: _sell(), range(12)))

        assert results.count(True) == 5
        assert ledger.stock_levels(1).shelf_stock == 0
        assert len(ledger.list_transactions(product_id=1)) == 5

    def test_concurrent_sales_and_restocks_conserve_units(self, ledger):
        def _work(i: int):
            if i % 2:
                ledger.restock(1, 2)
            else:
                try:
                    ledger.record_sale(1, 1)
                except InsufficientStockError:
                    pass

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(_work, range(20)))

        txns = ledger.list_transactions(product_id=1)
        sold = sum(t.quantity_delta for t in txns if t.transaction_type == "sale")
        moved = sum(t.quantity_delta for t in txns if t.transaction_type == "restock")
        levels = ledger.stock_levels(1)
        assert moved == 20
        assert levels.warehouse_stock == 50 - moved
        assert levels.shelf_stock == 5 + moved - sold

    def test_different_products_proceed_independently(self, ledger):
        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(ledger.record_sale, pid, 1) for pid in (1, 3, 1, 3)]
            for f in futures:
                f.result()
        assert ledger.stock_levels(1).shelf_stock == 3
        assert ledger.stock_levels(3).shelf_stock == 23
