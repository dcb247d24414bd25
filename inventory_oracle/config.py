"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``: committed static defaults
  2. ``config/local.toml``: optional local overrides (gitignored)
  3. ``.env``: local secrets and env overrides (gitignored)
  4. Environment variables: ``INVENTORY_ORACLE_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Every service receives its own config section at construction. The heuristic
constants of the scoring and forecasting procedures (weights, multipliers,
confidence values, alert thresholds) live here as defaults so they can be
tuned without touching the algorithms.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings (backs the persistent cache)."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/inventory_oracle.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class CacheConfig(BaseModel):
    """Cache backend selection and per-record TTLs (hours)."""

    model_config = ConfigDict(frozen=True)

    backend: str = "sqlite"
    market_data_ttl_hours: float = 2.0
    price_history_ttl_hours: float = 24.0 * 30
    prediction_ttl_hours: float = 6.0
    stock_alerts_ttl_hours: float = 2.0
    price_alert_ttl_hours: float = 24.0 * 30

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in {"sqlite", "memory"}:
            raise ValueError(f"Cache backend must be 'sqlite' or 'memory', got '{v}'.")
        return v


class ErrorHandlingConfig(BaseModel):
    """Degradation policy and health thresholds for the error framework."""

    model_config = ConfigDict(frozen=True)

    max_log_size: int = 1000
    fallback_enabled: bool = True
    max_errors_per_hour: int = 10
    max_ai_service_errors: int = 5

    @field_validator("max_log_size")
    @classmethod
    def validate_log_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_log_size must be >= 1, got {v}.")
        return v


class CurrencyConfig(BaseModel):
    """Exchange-rate lookup settings."""

    model_config = ConfigDict(frozen=True)

    base_currency: str = "USD"
    common_currencies: list[str] = ["USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY"]
    rate_freshness_hours: float = 24.0
    request_timeout_s: float = 10.0
    max_retries: int = 3
    retry_wait_s: float = 0.5
    fixer_api_key: Optional[str] = None
    currencylayer_api_key: Optional[str] = None

    @field_validator("base_currency")
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"base_currency must be a 3-letter ISO code, got '{v}'.")
        return v.upper()


class MarketConfig(BaseModel):
    """Supplier list, price-fetch policy and trend-analysis constants."""

    model_config = ConfigDict(frozen=True)

    suppliers: list[str] = [
        "DigiKey", "Mouser", "Arrow", "Newark", "RS Components",
        "Farnell", "SparkFun", "Adafruit", "Amazon", "AliExpress",
    ]
    reliable_suppliers: list[str] = ["DigiKey", "Mouser", "Arrow"]
    supplier_currencies: dict[str, str] = {}
    default_supplier_currency: str = "USD"
    price_variation: float = 0.2
    api_timeout_s: float = 10.0
    max_retries: int = 3
    retry_wait_s: float = 0.5
    max_components_per_refresh: int = 10
    history_window_days: int = 90
    min_trend_points: int = 10
    trend_change_threshold: float = 0.05
    volatility_threshold: float = 0.2
    increasing_multiplier: float = 1.05
    decreasing_multiplier: float = 0.95
    projection_confidence: float = 0.7
    seasonality_threshold: float = 0.1
    min_seasonal_months: int = 3

    @field_validator("price_variation")
    @classmethod
    def validate_variation(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError(f"price_variation must be in [0.0, 1.0), got {v}.")
        return v


class WeightingsConfig(BaseModel):
    """Per-strategy weights of the compatibility score."""

    model_config = ConfigDict(frozen=True)

    category: float = 0.25
    manufacturer: float = 0.15
    availability: float = 0.20
    price: float = 0.15
    specifications: float = 0.20
    user_preference: float = 0.05

    @model_validator(mode="after")
    def validate_weights(self) -> "WeightingsConfig":
        weights = self.model_dump()
        negative = [name for name, w in weights.items() if w < 0]
        if negative:
            raise ValueError(f"Strategy weights must be non-negative: {negative}.")
        if sum(weights.values()) <= 0:
            raise ValueError("At least one strategy weight must be positive.")
        return self


class AlternativesConfig(BaseModel):
    """Compatibility scoring engine settings."""

    model_config = ConfigDict(frozen=True)

    max_alternatives: int = 5
    min_compatibility_score: int = 50
    name_similarity_threshold: float = 0.3
    current_tolerance: float = 0.8
    weightings: WeightingsConfig = WeightingsConfig()

    @field_validator("min_compatibility_score")
    @classmethod
    def validate_min_score(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"min_compatibility_score must be in [0, 100], got {v}.")
        return v


class AlertThresholdsConfig(BaseModel):
    """Days-until-depletion thresholds for stock alert urgency."""

    model_config = ConfigDict(frozen=True)

    critical: int = 7
    warning: int = 30
    info: int = 90

    @model_validator(mode="after")
    def validate_ascending(self) -> "AlertThresholdsConfig":
        if not 0 <= self.critical <= self.warning <= self.info:
            raise ValueError(
                "Alert thresholds must be ascending: "
                f"critical={self.critical}, warning={self.warning}, info={self.info}."
            )
        return self


class PredictionConfig(BaseModel):
    """Stock prediction engine constants."""

    model_config = ConfigDict(frozen=True)

    safety_stock_multiplier: float = 1.2
    reorder_cover_days: int = 90
    linear_confidence: float = 0.7
    max_depletion_days: int = 1000
    min_project_history: int = 3
    low_stock_threshold: int = 5
    alert_thresholds: AlertThresholdsConfig = AlertThresholdsConfig()
    demand_base_confidence: float = 0.8
    demand_confidence_decay: float = 0.05
    demand_min_confidence: float = 0.3
    max_forecast_periods: int = 12
    project_success_base: float = 0.7
    project_success_risk_threshold: float = 0.6
    missing_history_penalty: float = 0.9
    trend_score_threshold: float = 0.2

    @field_validator("safety_stock_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError(f"safety_stock_multiplier must be >= 1.0, got {v}.")
        return v


class SchedulerConfig(BaseModel):
    """Background refresh schedule."""

    model_config = ConfigDict(frozen=True)

    enable_price_monitoring: bool = True
    price_refresh_minutes: int = 60
    daily_rate_time: str = "02:00"

    @field_validator("daily_rate_time")
    @classmethod
    def validate_daily_time(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"daily_rate_time must be HH:MM, got '{v}'.")
        hour, minute = (int(p) for p in parts)
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"daily_rate_time out of range: '{v}'.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/inventory_oracle.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration; the single source of truth."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    cache: CacheConfig = CacheConfig()
    errors: ErrorHandlingConfig = ErrorHandlingConfig()
    currency: CurrencyConfig = CurrencyConfig()
    market: MarketConfig = MarketConfig()
    alternatives: AlternativesConfig = AlternativesConfig()
    prediction: PredictionConfig = PredictionConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
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
    """Apply INVENTORY_ORACLE_* env vars to the raw config dict.

    Supported overrides:
      INVENTORY_ORACLE_DB_PATH                → raw["database"]["db_path"]
      INVENTORY_ORACLE_LOG_LEVEL              → raw["logging"]["level"]
      INVENTORY_ORACLE_DEBUG                  → raw["debug"]
      INVENTORY_ORACLE_BASE_CURRENCY          → raw["currency"]["base_currency"]
      INVENTORY_ORACLE_FIXER_API_KEY          → raw["currency"]["fixer_api_key"]
      INVENTORY_ORACLE_CURRENCYLAYER_API_KEY  → raw["currency"]["currencylayer_api_key"]
    """
    if db_path := os.environ.get("INVENTORY_ORACLE_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("INVENTORY_ORACLE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("INVENTORY_ORACLE_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if base_currency := os.environ.get("INVENTORY_ORACLE_BASE_CURRENCY"):
        raw.setdefault("currency", {})["base_currency"] = base_currency

    if fixer_key := os.environ.get("INVENTORY_ORACLE_FIXER_API_KEY"):
        raw.setdefault("currency", {})["fixer_api_key"] = fixer_key

    if layer_key := os.environ.get("INVENTORY_ORACLE_CURRENCYLAYER_API_KEY"):
        raw.setdefault("currency", {})["currencylayer_api_key"] = layer_key

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        cache=CacheConfig(**raw.get("cache", {})),
        errors=ErrorHandlingConfig(**raw.get("errors", {})),
        currency=CurrencyConfig(**raw.get("currency", {})),
        market=MarketConfig(**raw.get("market", {})),
        alternatives=AlternativesConfig(**raw.get("alternatives", {})),
        prediction=PredictionConfig(**raw.get("prediction", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
