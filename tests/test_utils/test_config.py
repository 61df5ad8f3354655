"""Tests for configuration loading, layering, and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stocktwin.config import (
    AppConfig,
    ForecastServiceConfig,
    LedgerConfig,
    LoggingConfig,
    _deep_merge,
    load_config,
)

_ENV_VARS = ("STOCKTWIN_DB_PATH", "STOCKTWIN_LOG_LEVEL", "STOCKTWIN_FORECAST_URL", "STOCKTWIN_DEBUG")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def _write_toml(tmp_path, text: str):
    path = tmp_path / "custom.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_default_toml_loads(self):
        config = load_config()
        assert isinstance(config, AppConfig)
        assert config.ledger.low_stock_floor == 20
        assert config.ledger.critical_quantity == 10
        assert config.forecast_service.period_days == 7
        assert config.forecast_service.historical_weeks == 4
        assert config.forecast_service.safety_buffer == 0.15
        assert config.recommendations.recent_limit == 50

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.toml")

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = _write_toml(tmp_path, "[ledger]\nlow_stock_floor = 30\n")
        config = load_config(path)
        assert config.ledger.low_stock_floor == 30
        assert config.ledger.critical_quantity == 10
        assert config.database.db_path == "data/db/stocktwin.db"

    def test_local_toml_overrides(self, tmp_path):
        path = _write_toml(tmp_path, "[ledger]\nlow_stock_floor = 30\ncritical_quantity = 5\n")
        (tmp_path / "local.toml").write_text("[ledger]\nlow_stock_floor = 25\n", encoding="utf-8")
        config = load_config(path)
        assert config.ledger.low_stock_floor == 25
        assert config.ledger.critical_quantity == 5

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = _write_toml(tmp_path, "[logging]\nlevel = \"INFO\"\n")
        monkeypatch.setenv("STOCKTWIN_DB_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("STOCKTWIN_LOG_LEVEL", "debug")
        monkeypatch.setenv("STOCKTWIN_FORECAST_URL", "http://tunnel.example/")
        monkeypatch.setenv("STOCKTWIN_DEBUG", "true")
        config = load_config(path)
        assert config.database.db_path == str(tmp_path / "env.db")
        assert config.logging.level == "DEBUG"
        assert config.forecast_service.base_url == "http://tunnel.example"
        assert config.debug is True

    def test_project_debug_flag(self, tmp_path):
        config = load_config(_write_toml(tmp_path, "[project]\ndebug = true\n"))
        assert config.debug is True


class TestValidation:
    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_negative_floor(self):
        with pytest.raises(ValidationError):
            LedgerConfig(low_stock_floor=-1)

    @pytest.mark.parametrize("buffer", [-0.1, 1.0])
    def test_safety_buffer_range(self, buffer):
        with pytest.raises(ValidationError):
            ForecastServiceConfig(safety_buffer=buffer)

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            ForecastServiceConfig(max_concurrency=0)

    def test_config_is_frozen(self):
        config = AppConfig()
        with pytest.raises(ValidationError):
            config.debug = True


class TestDeepMerge:
    def test_nested_merge(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        merged = _deep_merge(base, {"a": {"y": 3}, "c": 4})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
        assert base["a"]["y"] == 2
