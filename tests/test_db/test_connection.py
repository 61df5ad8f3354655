"""Tests for get_connection() and the Database lifecycle.

What we test
------------
1. get_connection commits on clean exit and rolls back on exception.
2. begin_immediate takes the write lock up front.
3. Database.open() creates the schema; transaction()/connect() work after it.
4. Operations before open() or after close() raise UnavailableError.
5. A failed open() leaves the database permanently unavailable.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from stocktwin.db.connection import Database, get_connection
from stocktwin.db.schema import ALL_TABLE_NAMES, get_existing_tables
from stocktwin.errors import UnavailableError


class TestGetConnection:
    def test_commits_on_clean_exit(self, tmp_path):
        path = str(tmp_path / "a.db")
        with get_connection(path) as conn:
            conn.execute("CREATE TABLE t (x INTEGER);")
            conn.execute("INSERT INTO t VALUES (1);")
        with get_connection(path) as conn:
            assert conn.execute("SELECT COUNT(*) FROM t;").fetchone()[0] == 1

    def test_rolls_back_on_exception(self, tmp_path):
        path = str(tmp_path / "a.db")
        with get_connection(path) as conn:
            conn.execute("CREATE TABLE t (x INTEGER);")

        with pytest.raises(RuntimeError):
            with get_connection(path, begin_immediate=True) as conn:
                conn.execute("INSERT INTO t VALUES (1);")
                raise RuntimeError("boom")

        with get_connection(path) as conn:
            assert conn.execute("SELECT COUNT(*) FROM t;").fetchone()[0] == 0

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "a.db"
        with get_connection(str(path)):
            pass
        assert path.exists()

    def test_foreign_keys_enabled(self, tmp_path):
        with get_connection(str(tmp_path / "a.db")) as conn:
            assert conn.execute("PRAGMA foreign_keys;").fetchone()[0] == 1

    def test_begin_immediate_opens_transaction(self, tmp_path):
        with get_connection(str(tmp_path / "a.db"), begin_immediate=True) as conn:
            assert conn.in_transaction

    def test_begin_immediate_blocks_second_writer(self, tmp_path):
        path = str(tmp_path / "a.db")
        with get_connection(path, begin_immediate=True):
            with pytest.raises(sqlite3.OperationalError):
                with get_connection(path, busy_timeout_ms=50, begin_immediate=True):
                    pass


class TestDatabaseLifecycle:
    def test_open_creates_schema(self, db_path):
        database = Database(db_path)
        database.open()
        with database.connect() as conn:
            tables = get_existing_tables(conn)
        for table in ALL_TABLE_NAMES:
            assert table in tables
        assert database.is_available

    def test_open_is_idempotent(self, db):
        db.open()
        assert db.is_available

    def test_transaction_before_open_raises(self, db_path):
        database = Database(db_path)
        with pytest.raises(UnavailableError):
            with database.transaction():
                pass

    def test_operations_after_close_raise(self, db):
        db.close()
        assert not db.is_available
        with pytest.raises(UnavailableError):
            with db.connect():
                pass

    def test_transaction_rolls_back_on_error(self, seeded_db):
        with pytest.raises(ValueError):
            with seeded_db.transaction() as conn:
                conn.execute("UPDATE store_stock SET quantity = 0;")
                raise ValueError("abort")
        with seeded_db.connect() as conn:
            total = conn.execute("SELECT SUM(quantity) FROM store_stock;").fetchone()[0]
        assert total == 30


class TestUnavailable:
    @pytest.fixture
    def broken_path(self, tmp_path) -> str:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("occupied", encoding="utf-8")
        return str(Path(blocker) / "stocktwin.db")

    def test_failed_open_raises_unavailable(self, broken_path):
        database = Database(broken_path)
        with pytest.raises(UnavailableError):
            database.open()
        assert not database.is_available

    def test_every_later_call_fails_fast(self, broken_path):
        database = Database(broken_path)
        with pytest.raises(UnavailableError):
            database.open()

        with pytest.raises(UnavailableError):
            database.open()
        with pytest.raises(UnavailableError):
            with database.transaction():
                pass
        with pytest.raises(UnavailableError):
            with database.connect():
                pass
