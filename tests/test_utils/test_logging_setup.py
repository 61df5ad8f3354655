"""Tests for configure_logging() and the JSON line formatter."""

from __future__ import annotations

import json
import logging

import pytest

from stocktwin.config import LoggingConfig
from stocktwin.utils.logging import _JsonFormatter, configure_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def test_file_handler_created(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    configure_logging(LoggingConfig(level="WARNING", log_file=str(log_file)))
    logging.getLogger("stocktwin.test").warning("stock low")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "stock low" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger().level == logging.WARNING


def test_http_libraries_quietened(tmp_path):
    configure_logging(LoggingConfig(level="DEBUG", log_file=""))
    assert logging.getLogger("httpx").level == logging.WARNING


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord(
        "stocktwin.ledger", logging.INFO, __file__, 1, "Sale %s", ("ok",), None
    )
    record.product_id = 101
    payload = json.loads(_JsonFormatter().format(record))
    assert payload["msg"] == "Sale ok"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "stocktwin.ledger"
    assert payload["product_id"] == 101
