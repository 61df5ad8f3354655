"""
Store Twin — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Build the service graph (``build_services``) when the command needs it.
  4. Execute the action.
  5. Report ``[OK]`` on stdout, or ``[ERROR] ...`` on stderr with exit code 1.

Install and run::

    pip install -e .
    stocktwin --help
    stocktwin init-db
    stocktwin load-catalog
    stocktwin record-sale 101 3
    stocktwin restock 101 10 --request-id restock-101-a
    stocktwin low-stock
    stocktwin seed-sales-history --seed 42
    stocktwin recommend --all
    stocktwin list-recommendations --top 10
"""

from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stocktwin",
    help="Store Twin — inventory ledger and replenishment pipeline.",
    add_completion=False,
)

_CONFIG_HELP = "Path to TOML config file."


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stocktwin.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from stocktwin.utils.logging import configure_logging
    configure_logging(config.logging)


def _services_or_exit(config):
    """Wire services, exiting if the database cannot be opened."""
    from stocktwin.errors import UnavailableError
    from stocktwin.services import build_services

    try:
        return build_services(config)
    except UnavailableError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _fail(exc: Exception) -> None:
    typer.echo(f"[ERROR] {exc}", err=True)
    raise typer.Exit(code=1)


def _bootstrap(config_path: Optional[str]):
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    return config, _services_or_exit(config)


# ── Database & catalog ────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from stocktwin.db.connection import get_connection
    from stocktwin.db.migrations import run_migrations
    from stocktwin.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)
        migrations_applied = run_migrations(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)
    fs = config.forecast_service

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Low-stock floor:   {config.ledger.low_stock_floor}")
    typer.echo(f"  Forecast service:  {fs.base_url or '(not set)'}")
    typer.echo(f"  Forecast window:   {fs.period_days}d from {fs.historical_weeks}w history")
    typer.echo(f"  Safety buffer:     {fs.safety_buffer:.0%}")
    typer.echo(f"  Max concurrency:   {fs.max_concurrency}")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("load-catalog")
def load_catalog_cmd(
    catalog_file: Optional[str] = typer.Option(
        None,
        "--file",
        "-f",
        help="Catalog JSON file. Defaults to config.data.catalog_seed_file.",
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Load products, shelf layout, and opening stock from a JSON file.

    Uses UPSERT semantics. Opening quantities overwrite current stock.
    """
    from stocktwin.catalog.seed_loader import load_catalog

    config, services = _bootstrap(config_path)
    path = Path(catalog_file) if catalog_file else Path(config.data.catalog_seed_file)
    if not path.exists():
        services.close()
        _fail(FileNotFoundError(f"Catalog file not found: {path}"))

    try:
        result = load_catalog(services.db, path)
    except ValueError as exc:
        _fail(exc)
    finally:
        services.close()

    typer.echo(f"  Products:      {result.products}")
    typer.echo(f"  Shelves:       {result.shelves}")
    typer.echo(f"  Rows:          {result.rows}")
    typer.echo(f"  Stock records: {result.stock_records}")
    typer.echo("[OK] Catalog loaded.")


# ── Ledger movements ──────────────────────────────────────────────────────────

@app.command("record-sale")
def record_sale(
    product_id: int = typer.Argument(..., help="Product sold."),
    qty: int = typer.Argument(..., help="Units sold."),
    request_id: Optional[str] = typer.Option(
        None, "--request-id", help="Idempotency key; a repeat is a no-op."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Sell units from the store shelf."""
    from stocktwin.errors import StockTwinError

    _, services = _bootstrap(config_path)
    try:
        txn = services.ledger.record_sale(product_id, qty, request_id=request_id)
        levels = services.ledger.stock_levels(product_id)
    except (StockTwinError, ValueError) as exc:
        _fail(exc)
    finally:
        services.close()

    typer.echo(f"  Transaction #{txn.transaction_id}: sold {txn.quantity_delta} of {product_id}")
    typer.echo(f"  Shelf: {levels.shelf_stock}  Warehouse: {levels.warehouse_stock}")
    typer.echo("[OK] Sale recorded.")


@app.command("restock")
def restock(
    product_id: int = typer.Argument(..., help="Product to move."),
    qty: int = typer.Argument(..., help="Units to move warehouse → store."),
    request_id: Optional[str] = typer.Option(
        None, "--request-id", help="Idempotency key; a repeat is a no-op."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Move units from the warehouse onto the store shelf."""
    from stocktwin.errors import StockTwinError

    _, services = _bootstrap(config_path)
    try:
        txn = services.ledger.restock(product_id, qty, request_id=request_id)
        levels = services.ledger.stock_levels(product_id)
    except (StockTwinError, ValueError) as exc:
        _fail(exc)
    finally:
        services.close()

    typer.echo(f"  Transaction #{txn.transaction_id}: moved {txn.quantity_delta} of {product_id}")
    typer.echo(f"  Shelf: {levels.shelf_stock}  Warehouse: {levels.warehouse_stock}")
    typer.echo("[OK] Restocked.")


@app.command("restock-low-stock")
def restock_low_stock(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Top up every low-stock product to twice its effective threshold."""
    _, services = _bootstrap(config_path)
    try:
        result = services.ledger.restock_low_stock(services.detector.list_low_stock())
    finally:
        services.close()

    for txn in result.restocked:
        typer.echo(f"  product {txn.product_id}: +{txn.quantity_delta}")
    for product_id, message in result.failures.items():
        typer.echo(f"  product {product_id}: FAILED ({message})", err=True)

    if not result.restocked and not result.failures:
        typer.echo("  No low-stock products.")
    if result.failures:
        typer.echo(f"[ERROR] {len(result.failures)} product(s) could not be restocked.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] Restocked {len(result.restocked)} product(s).")


@app.command("simulate-sales")
def simulate_sales(
    count: int = typer.Option(1, "--count", "-n", help="Number of one-unit sales."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Sell one unit of a random in-stock product, ``count`` times."""
    from stocktwin.errors import StockTwinError

    _, services = _bootstrap(config_path)
    rng = random.Random(seed)
    sold = 0
    try:
        for _ in range(count):
            txn = services.ledger.simulate_random_sale(rng)
            if txn is None:
                break
            sold += 1
            typer.echo(f"  Sold 1 × product {txn.product_id}")
    except StockTwinError as exc:
        _fail(exc)
    finally:
        services.close()

    typer.echo(f"[OK] Simulated {sold} sale(s).")


# ── Ledger reads ──────────────────────────────────────────────────────────────

@app.command("low-stock")
def low_stock(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """List store records at or below their effective reorder threshold."""
    _, services = _bootstrap(config_path)
    try:
        entries = services.detector.list_low_stock()
    finally:
        services.close()

    if not entries:
        typer.echo("No low-stock products.")
        return

    typer.echo(f"{'SEVERITY':<9} {'ID':>5}  {'PRODUCT':<28} {'QTY':>5} {'THRESH':>6}  SHELF")
    for e in entries:
        r = e.record
        typer.echo(
            f"{e.severity.upper():<9} {r.product_id:>5}  {r.product.name[:28]:<28} "
            f"{r.quantity:>5} {e.effective_threshold:>6}  {r.shelf_name} / row {r.row_number}"
        )


@app.command("stock-levels")
def stock_levels(
    product_id: Optional[int] = typer.Argument(
        None, help="Product to summarize. Omit to list every stock record."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Show shelf and warehouse stock."""
    from stocktwin.errors import NotFoundError

    _, services = _bootstrap(config_path)
    try:
        if product_id is not None:
            product = services.ledger.get_product(product_id)
            levels = services.ledger.stock_levels(product_id)
            typer.echo(f"{product.name} (#{product.product_id})")
            typer.echo(f"  Shelf:     {levels.shelf_stock}")
            typer.echo(f"  Warehouse: {levels.warehouse_stock}")
            typer.echo(f"  Total:     {levels.total}")
            return

        for title, records in (
            ("Store", services.ledger.list_store_stock()),
            ("Warehouse", services.ledger.list_warehouse_stock()),
        ):
            typer.echo(f"{title}:")
            for r in records:
                typer.echo(
                    f"  {r.product_id:>5}  {r.product.name[:28]:<28} {r.quantity:>5}  "
                    f"{r.shelf_name} / row {r.row_number}"
                )
    except NotFoundError as exc:
        _fail(exc)
    finally:
        services.close()


@app.command("heatmap")
def heatmap(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Sale transaction counts per store shelf."""
    _, services = _bootstrap(config_path)
    try:
        counts = services.ledger.shelf_sales_heatmap()
    finally:
        services.close()

    if not counts:
        typer.echo("No sales recorded.")
        return
    peak = max(c.sales_count for c in counts)
    for c in counts:
        bar = "#" * max(1, round(30 * c.sales_count / peak))
        typer.echo(f"  {c.shelf_name:<20} {c.sales_count:>5}  {bar}")


@app.command("seed-sales-history")
def seed_sales_history_cmd(
    days: Optional[int] = typer.Option(None, "--days", help="Days of history."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Replace sales history with a synthetic backfill for every product."""
    from stocktwin.ledger.history_seed import seed_sales_history

    config, services = _bootstrap(config_path)
    seed_config = config.seed
    updates = {}
    if days is not None:
        updates["history_days"] = days
    if seed is not None:
        updates["random_seed"] = seed
    if updates:
        seed_config = seed_config.model_copy(update=updates)

    try:
        written = seed_sales_history(services.db, seed_config)
    except ValueError as exc:
        _fail(exc)
    finally:
        services.close()

    typer.echo(f"[OK] Wrote {written} sales-history sample(s).")


# ── Forecasting & recommendations ─────────────────────────────────────────────

@app.command("check-forecast-service")
def check_forecast_service(
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Probe the forecasting service's /test endpoint."""
    from stocktwin.forecasting.orchestrator import HEALTHY_MESSAGE

    _, services = _bootstrap(config_path)

    async def _probe() -> str:
        try:
            return await services.orchestrator.check_health()
        finally:
            await services.aclose()

    status = asyncio.run(_probe())
    if status != HEALTHY_MESSAGE:
        typer.echo(f"[ERROR] {status}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {status}")


@app.command("recommend")
def recommend(
    product_id: Optional[int] = typer.Option(
        None, "--product-id", "-p", help="Request a single product."
    ),
    all_products: bool = typer.Option(
        False, "--all", help="Request every catalog product instead of low-stock ones."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Request restock recommendations from the forecasting service.

    Default scope is every low-stock product.
    """
    _, services = _bootstrap(config_path)
    orchestrator = services.orchestrator

    async def _run():
        try:
            if product_id is not None:
                return await orchestrator.recommend_for([product_id])
            if all_products:
                return await orchestrator.recommend_for_all()
            return await orchestrator.recommend_for_low_stock()
        finally:
            await services.aclose()

    outcomes = asyncio.run(_run())
    if not outcomes:
        typer.echo("Nothing to request.")
        return

    for o in outcomes:
        if o.success and o.recommendation is not None:
            rec = o.recommendation
            typer.echo(
                f"  product {o.product_id}: transfer {rec.recommended_transfer}, "
                f"order {rec.recommended_order} (demand {rec.predicted_demand:.1f})"
            )
        else:
            typer.echo(f"  product {o.product_id}: {o.state} ({o.error})", err=True)

    failed = sum(1 for o in outcomes if not o.success)
    if failed:
        typer.echo(f"[ERROR] {failed}/{len(outcomes)} request(s) failed.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {len(outcomes)} recommendation(s) stored.")


@app.command("list-recommendations")
def list_recommendations(
    limit: Optional[int] = typer.Option(None, "--limit", help="Rows read from the store."),
    top: Optional[int] = typer.Option(
        None, "--top", help="Show only the N largest by transfer + order."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Show recent recommendations, largest restock first."""
    from stocktwin.recommendations.reporter import prioritize

    config, services = _bootstrap(config_path)
    try:
        recent = services.store.list_recent(limit)
    except ValueError as exc:
        _fail(exc)
    finally:
        services.close()

    shown = prioritize(recent, top or config.recommendations.display_limit)
    if not shown:
        typer.echo("No recommendations yet.")
        return

    typer.echo(f"{'ID':>5} {'PRODUCT':>7} {'TRANSFER':>8} {'ORDER':>6} {'DEMAND':>7}  STATUS    GENERATED")
    for r in shown:
        typer.echo(
            f"{r.recommendation_id:>5} {r.product_id:>7} {r.recommended_transfer:>8} "
            f"{r.recommended_order:>6} {r.predicted_demand:>7.1f}  {r.status:<9} "
            f"{r.generated_at:%Y-%m-%d %H:%M}"
        )


@app.command("set-recommendation-status")
def set_recommendation_status(
    recommendation_id: int = typer.Argument(..., help="Recommendation to update."),
    status: str = typer.Argument(..., help="applied or dismissed"),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Mark a pending recommendation as applied or dismissed."""
    from stocktwin.errors import StockTwinError

    _, services = _bootstrap(config_path)
    try:
        rec = services.store.set_status(recommendation_id, status)
    except (StockTwinError, ValueError) as exc:
        _fail(exc)
    finally:
        services.close()

    typer.echo(f"[OK] Recommendation {rec.recommendation_id} is now {rec.status}.")


@app.command("export-recommendations")
def export_recommendations(
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", help="Defaults to <config.data.output_dir>/recommendations."
    ),
    fmt: str = typer.Option("both", "--format", help="csv, json, or both."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Rows read from the store."),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Write recent recommendations to CSV and/or JSON."""
    from stocktwin.recommendations.reporter import (
        write_recommendations_csv,
        write_recommendations_json,
    )

    if fmt not in ("csv", "json", "both"):
        _fail(ValueError(f"Unsupported format '{fmt}'. Use csv, json, or both."))

    config, services = _bootstrap(config_path)
    try:
        recent = services.store.list_recent(limit)
    finally:
        services.close()

    out = Path(output_dir) if output_dir else Path(config.data.output_dir) / "recommendations"
    if fmt in ("csv", "both"):
        typer.echo(f"  CSV:  {write_recommendations_csv(recent, out)}")
    if fmt in ("json", "both"):
        typer.echo(f"  JSON: {write_recommendations_json(recent, out)}")
    typer.echo(f"[OK] Exported {len(recent)} recommendation(s).")


if __name__ == "__main__":
    app()
