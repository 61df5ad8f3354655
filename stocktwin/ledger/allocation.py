"""
Store row allocation for a product's first restock onto the sales floor.

Policy: the first store row (ascending ``row_id``) whose occupant count is
below its ``max_products`` capacity. When every row is full, fall back to
the configured default row even though that may overfill it; the overflow
is logged as a warning so it shows up in operations logs.
"""

from __future__ import annotations

import logging

from stocktwin.db.repositories.catalog_repo import LayoutRepository
from stocktwin.db.repositories.stock_repo import StockRepository
from stocktwin.errors import NotFoundError

logger = logging.getLogger(__name__)


def choose_store_row(
    stock_repo: StockRepository,
    layout_repo: LayoutRepository,
    product_id: int,
    default_row_id: int = 1,
) -> int:
    """Pick the store row a new store record should be created in.

    Args:
        stock_repo: Repository bound to the current transaction.
        layout_repo: Repository bound to the same connection.
        product_id: Product being placed (for logging only).
        default_row_id: Row used when no row has spare capacity.

    Returns:
        The chosen ``row_id``.

    Raises:
        NotFoundError: If no row has capacity and the default row does not
            exist either.
    """
    row_id = stock_repo.find_available_store_row()
    if row_id is not None:
        logger.debug("Allocated store row %d for product %d.", row_id, product_id)
        return row_id

    if not layout_repo.store_row_exists(default_row_id):
        raise NotFoundError("store row", default_row_id)

    logger.warning(
        "No store row has spare capacity; placing product %d in default row %d "
        "beyond its capacity.",
        product_id,
        default_row_id,
    )
    return default_row_id
