"""
Exception hierarchy for Store Twin.

Every recoverable failure maps to a distinct exception type so callers can
branch on cause::

    StockTwinError
      ├── NotFoundError           product / stock record / recommendation missing
      ├── InsufficientStockError  source location holds fewer units than requested
      ├── ForecastError
      │     ├── ConnectivityError transport failure, timeout, non-2xx response
      │     ├── ServerError       service answered with status != "success"
      │     └── ParseError        payload missing fields / wrong types
      ├── StorageError            a write to the backing store failed
      └── UnavailableError        backing store failed to open at startup

Ledger and store operations guarantee no partial mutation when any of these
is raised.
"""

from __future__ import annotations

from typing import Optional


class StockTwinError(Exception):
    """Base class for all domain errors raised by this package."""


class NotFoundError(StockTwinError, LookupError):
    """Raised when a product, stock record, or recommendation does not exist.

    Attributes:
        entity:    What was looked up, e.g. ``"store stock"``.
        entity_id: The identifier that missed.
    """

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found for id={entity_id}.")


class InsufficientStockError(StockTwinError):
    """Raised when a sale or restock asks for more units than the source holds.

    Attributes:
        product_id: Product being moved.
        location:   Source location (``"store"`` or ``"warehouse"``).
        available:  Units currently on hand at the source.
        requested:  Units the caller asked for.
    """

    def __init__(
        self, product_id: int, location: str, available: int, requested: int
    ) -> None:
        self.product_id = product_id
        self.location = location
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough {location} stock for product {product_id}. "
            f"Available: {available}, requested: {requested}."
        )


class ForecastError(StockTwinError):
    """Base class for failures talking to the forecasting service.

    Attributes:
        product_id: Product the request was for, when known.
    """

    def __init__(self, message: str, product_id: Optional[int] = None) -> None:
        self.product_id = product_id
        super().__init__(message)


class ConnectivityError(ForecastError):
    """Transport failure, timeout, or non-2xx HTTP status."""


class ServerError(ForecastError):
    """The service responded but reported a failure in its ``status`` field.

    Attributes:
        server_message: The ``error`` text supplied by the service.
    """

    def __init__(
        self, server_message: str, product_id: Optional[int] = None
    ) -> None:
        self.server_message = server_message
        super().__init__(f"AI Server Error: {server_message}", product_id)


class ParseError(ForecastError):
    """The response body was not valid JSON or did not match the expected shape."""


class UnavailableError(StockTwinError):
    """The backing store could not be opened; the core refuses all operations."""


class StorageError(StockTwinError):
    """A write to the backing store failed, e.g. a lock wait timed out.

    Attributes:
        product_id: Product whose record was being written, when known.
    """

    def __init__(self, message: str, product_id: Optional[int] = None) -> None:
        self.product_id = product_id
        super().__init__(message)
