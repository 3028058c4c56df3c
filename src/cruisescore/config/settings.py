# src/cruisescore/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/cruisescore/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `SUPABASE_URL`, `DECISION_ENGINE_RESULT_LIMIT`)
- an external YAML file via `CRUISESCORE_CONFIG_PATH`

Design rule:
- Scoring policy (breakpoints, penalties, fallbacks) lives in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from cruisescore.core.env import load_dotenv_if_present
from cruisescore.domain.models import DecisionWeights


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `cruisescore.config`."""
    text = resources.files("cruisescore.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "CruiseScore"
    timezone: str = "America/Chicago"
    log_level: str = "INFO"


class ProviderTables(BaseModel):
    sailings: str = "sailings"
    ships: str = "ships"
    pricing: str = "pricing_latest"
    availability: str = "availability_latest"
    risk: str = "risk_latest"
    overrides: str = "decision_overrides"
    weights: str = "decision_weights"
    logs: str = "decision_logs"


class ProviderSettings(BaseModel):
    kind: Literal["memory", "postgrest"] = "memory"
    catalog_path: str = "data/catalogs/sailings.json"
    rest_url: str | None = None
    rest_key: str | None = None
    http_timeout_seconds: float = 15
    max_sailings: int = Field(240, ge=1)
    tables: ProviderTables = Field(default_factory=ProviderTables)


class PriceScoreSettings(BaseModel):
    neutral_score: float = Field(0.5, ge=0, le=1)
    missing_price_score: float = Field(0.4, ge=0, le=1)
    at_budget_score: float = Field(0.6, ge=0, le=1)
    full_score_discount: float = Field(0.4, gt=0, le=1)
    flexible_decay: float = Field(0.15, gt=0)
    strict_over_budget_score: float = Field(0.1, ge=0, le=1)
    strict_decay: float = Field(0.05, gt=0)
    under_budget_margin: float = Field(0.15, ge=0, le=1)


class CabinScoreSettings(BaseModel):
    neutral_score: float = Field(0.5, ge=0, le=1)
    type_scores: dict[str, float] = Field(
        default_factory=lambda: {
            "suite": 1.0,
            "balcony": 0.85,
            "ocean view": 0.65,
            "oceanview": 0.65,
            "interior": 0.45,
        }
    )
    preferred_type_bonus: float = Field(0.05, ge=0, le=1)


class PreferenceScoreSettings(BaseModel):
    neutral_score: float = Field(0.5, ge=0, le=1)
    mismatch_score: float = Field(0.1, ge=0, le=1)


class DemandScoreSettings(BaseModel):
    high_within_days: int = Field(30, ge=0)
    low_beyond_days: int = Field(120, ge=0)
    high_score: float = Field(0.85, ge=0, le=1)
    medium_score: float = Field(0.55, ge=0, le=1)
    low_score: float = Field(0.25, ge=0, le=1)
    tier_high_min: float = Field(0.7, ge=0, le=1)
    tier_medium_min: float = Field(0.45, ge=0, le=1)


class RiskScoreSettings(BaseModel):
    default_risk: float = Field(0.3, ge=0, le=1)
    force_review_penalty: float = Field(0.4, ge=0, le=1)
    high_risk_min: float = Field(0.75, ge=0, le=1)


class ConfidenceSettings(BaseModel):
    completeness_floor: float = Field(0.5, ge=0, le=1)
    signal_weights: dict[Literal["pricing", "availability", "risk"], float] = Field(
        default_factory=lambda: {"pricing": 0.5, "availability": 0.25, "risk": 0.25}
    )
    small_pool_size: int = Field(3, ge=1)
    small_pool_multiplier: float = Field(0.8, ge=0, le=1)
    tie_epsilon: float = Field(0.01, ge=0)
    tie_multiplier: float = Field(0.85, ge=0, le=1)
    wide_range_days: int = 60
    wide_range_multiplier: float = Field(0.85, ge=0, le=1)
    very_wide_range_days: int = 120
    very_wide_range_multiplier: float = Field(0.75, ge=0, le=1)
    unconstrained_multiplier: float = Field(0.8, ge=0, le=1)


class DecisionSettings(BaseModel):
    supported_port: str = "Galveston"
    result_limit_default: int = Field(8, ge=1)
    result_limit_max: int = Field(12, ge=1)
    max_reasons: int = Field(4, ge=1)
    weights: DecisionWeights = Field(default_factory=DecisionWeights)
    price: PriceScoreSettings = Field(default_factory=PriceScoreSettings)
    cabin: CabinScoreSettings = Field(default_factory=CabinScoreSettings)
    preference: PreferenceScoreSettings = Field(default_factory=PreferenceScoreSettings)
    demand: DemandScoreSettings = Field(default_factory=DemandScoreSettings)
    risk: RiskScoreSettings = Field(default_factory=RiskScoreSettings)
    confidence: ConfidenceSettings = Field(default_factory=ConfidenceSettings)


class CalendarSettings(BaseModel):
    default_window_months: int = Field(12, ge=1)
    default_adults: int = Field(2, ge=1)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    decision: DecisionSettings = Field(default_factory=DecisionSettings)
    calendar: CalendarSettings = Field(default_factory=CalendarSettings)


def _positive_int_env(name: str) -> int | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        value = int(float(raw))
    except ValueError:
        return None
    return value if value > 0 else None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("CRUISESCORE_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    provider = data.setdefault("provider", {})
    kind = os.getenv("CRUISESCORE_PROVIDER")
    if kind:
        provider["kind"] = kind
    catalog_path = os.getenv("CRUISESCORE_CATALOG_PATH")
    if catalog_path:
        provider["catalog_path"] = catalog_path

    rest_url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
    rest_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if rest_url:
        provider["rest_url"] = rest_url
    if rest_key:
        provider["rest_key"] = rest_key

    max_sailings = _positive_int_env("DECISION_ENGINE_MAX_SAILINGS")
    if max_sailings:
        provider["max_sailings"] = max_sailings

    result_limit = _positive_int_env("DECISION_ENGINE_RESULT_LIMIT")
    if result_limit:
        data.setdefault("decision", {})["result_limit_default"] = result_limit

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("CRUISESCORE_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
