"""
Synthetic sales-history backfill.

The forecasting service needs several weeks of daily demand per product
before it can produce a recommendation. On a fresh install there is none,
so ``seed_sales_history()`` replaces the ``sales_history`` table with
``history_days`` of synthetic samples for every catalog product:

  - base demand ``weekend_base_sales`` on Saturday/Sunday, else ``weekday_base_sales``
  - plus ``rng.randint(-2, 3)``
  - floored at 1
  - weekends flagged ``is_holiday``

The randomness source is injected, so a seeded ``random.Random`` gives a
byte-identical backfill on every run.
"""

from __future__ import annotations

import logging
import random
from datetime import date
from typing import Optional

from stocktwin.config import SeedConfig
from stocktwin.db.connection import Database
from stocktwin.db.repositories.catalog_repo import ProductRepository
from stocktwin.db.repositories.transaction_repo import SalesHistoryRepository
from stocktwin.models.transaction import SalesHistorySample
from stocktwin.utils.time_utils import is_weekend_day, sales_day_of_week, today, trailing_dates

logger = logging.getLogger(__name__)

VARIATION_LOW = -2
VARIATION_HIGH = 3


def generate_samples(
    product_ids: list[int],
    config: SeedConfig,
    rng: random.Random,
    end_date: date,
) -> list[SalesHistorySample]:
    """Build the synthetic samples without touching the database.

    Iterates dates most-recent-first, and products in the given order within
    each date, so the draw sequence from ``rng`` is stable.
    """
    samples: list[SalesHistorySample] = []
    for sale_date in trailing_dates(end_date, config.history_days):
        dow = sales_day_of_week(sale_date)
        weekend = is_weekend_day(dow)
        base = config.weekend_base_sales if weekend else config.weekday_base_sales
        for product_id in product_ids:
            qty = max(1, base + rng.randint(VARIATION_LOW, VARIATION_HIGH))
            samples.append(
                SalesHistorySample(
                    product_id=product_id,
                    sale_date=sale_date,
                    quantity_sold=qty,
                    day_of_week=dow,
                    is_holiday=weekend,
                )
            )
    return samples


def seed_sales_history(
    db: Database,
    config: Optional[SeedConfig] = None,
    rng: Optional[random.Random] = None,
    end_date: Optional[date] = None,
) -> int:
    """Replace all sales history with a synthetic backfill.

    Args:
        db: Opened ``Database``.
        config: Seed parameters; defaults to ``SeedConfig()``.
        rng: Randomness source. When omitted, one is built from
            ``config.random_seed`` (``None`` → nondeterministic).
        end_date: Most recent sample date; defaults to today (UTC).

    Returns:
        Number of samples written.
    """
    config = config or SeedConfig()
    rng = rng or random.Random(config.random_seed)
    end_date = end_date or today()

    with db.transaction() as conn:
        product_ids = ProductRepository(conn).list_ids()
        history = SalesHistoryRepository(conn)
        removed = history.clear()
        samples = generate_samples(product_ids, config, rng, end_date)
        written = history.insert_many(samples)

    logger.info(
        "Sales history seeded: %d sample(s) for %d product(s) over %d day(s); %d removed.",
        written, len(product_ids), config.history_days, removed,
    )
    return written
