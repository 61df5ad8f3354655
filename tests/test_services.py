"""Tests for build_services() — wiring the component graph from AppConfig."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from stocktwin.config import AppConfig, DatabaseConfig, ForecastServiceConfig
from stocktwin.db.repositories.catalog_repo import LayoutRepository, ProductRepository
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.errors import UnavailableError
from stocktwin.models.catalog import Product, Shelf, StoreRow, WarehouseRow
from stocktwin.services import build_services
from stocktwin.taxonomy.ledger_taxonomy import LocationKind


def _config(db_path: str, base_url: str = "http://forecast.test") -> AppConfig:
    return AppConfig(
        database=DatabaseConfig(db_path=db_path),
        forecast_service=ForecastServiceConfig(base_url=base_url),
    )


def _seed_one_product(db) -> None:
    with db.transaction() as conn:
        ProductRepository(conn).upsert(Product(product_id=1, name="Cola"))
        layout = LayoutRepository(conn)
        layout.upsert_shelf(LocationKind.STORE, Shelf(shelf_id=1, shelf_name="Front"))
        layout.upsert_store_row(StoreRow(row_id=1, shelf_id=1, row_number=1))
        layout.upsert_shelf(LocationKind.WAREHOUSE, Shelf(shelf_id=1, shelf_name="Bay A"))
        layout.upsert_warehouse_row(WarehouseRow(row_id=1, shelf_id=1, row_number=1))
        stock = StockRepository(conn)
        stock.set_quantity(LocationKind.STORE, 1, 1, 5)
        stock.set_quantity(LocationKind.WAREHOUSE, 1, 1, 50)


class TestBuildServices:
    def test_components_share_one_database(self, db_path):
        services = build_services(_config(db_path))
        try:
            assert services.db.is_available
            _seed_one_product(services.db)
            services.ledger.record_sale(1, 2)
            assert services.detector.low_stock_product_ids() == [1]
            assert services.store.count() == 0
        finally:
            services.close()
        assert not services.db.is_available

    def test_deferred_open(self, db_path):
        services = build_services(_config(db_path), open_db=False)
        with pytest.raises(UnavailableError):
            services.ledger.list_products()

    def test_unopenable_database(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(UnavailableError):
            build_services(_config(str(blocker / "stocktwin.db")))

    def test_end_to_end_recommendation(self, db_path, forecast_payload):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=forecast_payload()))
        services = build_services(_config(db_path), transport=transport)
        _seed_one_product(services.db)

        async def _go():
            try:
                return await services.orchestrator.recommend_for_low_stock()
            finally:
                await services.aclose()

        outcomes = asyncio.run(_go())
        assert [o.product_id for o in outcomes] == [1]
        assert outcomes[0].success
        assert outcomes[0].recommendation.recommended_transfer == 43
