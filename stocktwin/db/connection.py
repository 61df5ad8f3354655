"""
SQLite connection management.

Provides a context manager ``get_connection()`` that:
  - Enables foreign key enforcement (OFF by default in SQLite).
  - Enables WAL journal mode so readers never block the ledger writer.
  - Sets a busy timeout to handle lock contention gracefully.
  - Uses ``sqlite3.Row`` factory so rows behave like dicts.
  - Optionally opens the scope with ``BEGIN IMMEDIATE`` so the write lock is
    taken before the first read of a read-modify-write.
  - Commits on clean exit, rolls back on exception.

``Database`` wraps the same helper with a lifecycle: ``open()`` creates the
schema once at startup, ``transaction()`` / ``connect()`` hand out scoped
connections, ``close()`` ends the session. A failed ``open()`` leaves the
object unavailable and every later call raises ``UnavailableError``.

Usage::

    from stocktwin.db.connection import Database

    db = Database(config.database)
    db.open()
    with db.transaction() as conn:
        conn.execute("UPDATE store_stock SET ...")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator

from stocktwin.errors import UnavailableError

if TYPE_CHECKING:
    from stocktwin.config import DatabaseConfig

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
    begin_immediate: bool = False,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    The connection is committed on clean exit and rolled back on exception.
    The database file (and any parent directories) are created if they do
    not already exist.

    Args:
        db_path: Path to the SQLite database file. ``":memory:"`` gives a
            private database that disappears when the scope closes.
        wal_mode: If ``True``, enable WAL journal mode for better concurrency.
        busy_timeout_ms: Milliseconds to wait when the database is locked
            before raising ``OperationalError``.
        begin_immediate: If ``True``, start a write transaction up front.

    Yields:
        An open, configured ``sqlite3.Connection``.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path != ":memory:":
        db_file = Path(db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        # Pragmas must run outside a transaction
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")

        if wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")

        if begin_immediate:
            conn.execute("BEGIN IMMEDIATE;")

        yield conn
        conn.commit()

    except BaseException:
        conn.rollback()
        raise

    finally:
        conn.close()


class Database:
    """Owns the backing-store lifecycle for one application session.

    Attributes:
        db_path:         SQLite file path.
        wal_mode:        Whether connections enable WAL.
        busy_timeout_ms: Lock wait before ``OperationalError``.
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._opened = False
        self._failure: str | None = None

    @classmethod
    def from_config(cls, config: "DatabaseConfig") -> "Database":
        return cls(
            db_path=config.db_path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )

    @property
    def is_available(self) -> bool:
        return self._opened and self._failure is None

    def open(self) -> None:
        """Open the backing store, creating the schema and applying migrations.

        Idempotent while the database is open.

        Raises:
            UnavailableError: If the file cannot be opened or initialized.
                The object stays unavailable for the rest of the session.
        """
        if self._failure is not None:
            raise UnavailableError(self._failure)
        if self._opened:
            return

        from stocktwin.db.migrations import run_migrations
        from stocktwin.db.schema import apply_schema

        try:
            with self._raw_connection() as conn:
                apply_schema(conn)
                run_migrations(conn)
        except (sqlite3.Error, OSError) as exc:
            self._failure = f"Database unavailable ({self.db_path}): {exc}"
            logger.critical(self._failure)
            raise UnavailableError(self._failure) from exc

        self._opened = True
        logger.info("Database opened: %s", self.db_path)

    def close(self) -> None:
        """End the session. Later operations raise ``UnavailableError``."""
        if self._opened:
            logger.info("Database closed: %s", self.db_path)
        self._opened = False

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Scoped connection for read queries."""
        self.ensure_available()
        with self._raw_connection() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Scoped ``BEGIN IMMEDIATE`` write transaction.

        Commits when the block exits cleanly; rolls back on any exception,
        including ``KeyboardInterrupt`` and task cancellation.
        """
        self.ensure_available()
        with self._raw_connection(begin_immediate=True) as conn:
            yield conn

    def ensure_available(self) -> None:
        """Raise ``UnavailableError`` unless the database is open and healthy.

        Touches no file; safe to call from the event loop.
        """
        if self._failure is not None:
            raise UnavailableError(self._failure)
        if not self._opened:
            raise UnavailableError(f"Database is not open: {self.db_path}")

    # ── Private helpers ───────────────────────────────────────────────────────

    def _raw_connection(self, begin_immediate: bool = False):
        return get_connection(
            self.db_path,
            wal_mode=self.wal_mode,
            busy_timeout_ms=self.busy_timeout_ms,
            begin_immediate=begin_immediate,
        )
