"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``STOCKTWIN_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The ledger, detector, orchestrator, and CLI commands all receive an
``AppConfig`` (or one of its sections) — never raw dicts or individual env
var lookups scattered through the codebase.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/stocktwin.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class DataConfig(BaseModel):
    """Filesystem paths for seed files and exported reports."""

    model_config = ConfigDict(frozen=True)

    catalog_seed_file: str = "config/catalog/sample_store.json"
    output_dir: str = "data/outputs"


class LedgerConfig(BaseModel):
    """Stock ledger and low-stock detection parameters."""

    model_config = ConfigDict(frozen=True)

    low_stock_floor: int = 20
    critical_quantity: int = 10
    default_store_row_id: int = 1

    @field_validator("low_stock_floor", "critical_quantity")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Ledger thresholds must be >= 0, got {v}.")
        return v


class ForecastServiceConfig(BaseModel):
    """External demand-forecasting service settings.

    ``base_url`` may be left empty in ``default.toml`` and supplied through
    ``STOCKTWIN_FORECAST_URL`` — the server address usually changes per
    deployment (tunnels, staging hosts).
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    probe_timeout_s: float = 10.0
    forecast_timeout_s: float = 15.0
    period_days: int = 7
    historical_weeks: int = 4
    safety_buffer: float = 0.15
    max_concurrency: int = 4
    verify_tls: bool = True

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("max_concurrency", "period_days", "historical_weeks")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v

    @field_validator("safety_buffer")
    @classmethod
    def validate_buffer(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError(f"safety_buffer must be in [0.0, 1.0), got {v}.")
        return v


class RecommendationsConfig(BaseModel):
    """Recommendation store read-path settings."""

    model_config = ConfigDict(frozen=True)

    recent_limit: int = 50
    display_limit: int = 10


class SeedConfig(BaseModel):
    """Synthetic sales-history backfill parameters."""

    model_config = ConfigDict(frozen=True)

    history_days: int = 30
    weekday_base_sales: int = 5
    weekend_base_sales: int = 8
    random_seed: Optional[int] = None


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/stocktwin.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env + environment.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    data: DataConfig = DataConfig()
    ledger: LedgerConfig = LedgerConfig()
    forecast_service: ForecastServiceConfig = ForecastServiceConfig()
    recommendations: RecommendationsConfig = RecommendationsConfig()
    seed: SeedConfig = SeedConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply STOCKTWIN_* env vars to the raw config dict.

    Supported overrides:
      STOCKTWIN_DB_PATH       → raw["database"]["db_path"]
      STOCKTWIN_LOG_LEVEL     → raw["logging"]["level"]
      STOCKTWIN_FORECAST_URL  → raw["forecast_service"]["base_url"]
      STOCKTWIN_DEBUG         → raw["debug"]
    """
    if db_path := os.environ.get("STOCKTWIN_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("STOCKTWIN_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if forecast_url := os.environ.get("STOCKTWIN_FORECAST_URL"):
        raw.setdefault("forecast_service", {})["base_url"] = forecast_url

    if debug := os.environ.get("STOCKTWIN_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        data=DataConfig(**raw.get("data", {})),
        ledger=LedgerConfig(**raw.get("ledger", {})),
        forecast_service=ForecastServiceConfig(**raw.get("forecast_service", {})),
        recommendations=RecommendationsConfig(**raw.get("recommendations", {})),
        seed=SeedConfig(**raw.get("seed", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
