"""Configuration loader -- reads config.yaml + .env, validates with Pydantic.

Resolves ${ENV_VAR} references in YAML values from environment variables.
Fails fast with clear errors if the config is malformed.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from core.duration import parse_duration_ms

logger = logging.getLogger(__name__)

# Default home directory for all state files
DEFAULT_HOME = Path.home() / ".tickerlens"


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} references in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{(\w+)\}")
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                logger.warning("Environment variable %s not set", var_name)
                return match.group(0)  # leave unresolved
            return env_value
        return pattern.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _check_duration(value: str) -> str:
    parse_duration_ms(value)
    return value


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, ImportError) as exc:
        raise ValueError(f"Unknown timezone: {value!r}") from exc
    return value


# ---------------------------------------------------------------------------
# Config models (Pydantic)
# ---------------------------------------------------------------------------

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8321


class ProviderConfig(BaseModel):
    name: str = "fmp"
    base_url: str = "https://financialmodelingprep.com/stable"
    api_key: str = ""
    timeout: str = "20s"

    _check_timeout = field_validator("timeout")(_check_duration)


class TierConfig(BaseModel):
    """Limits of one subscription tier."""

    daily_quota: int = Field(default=10, ge=0)
    requests_per_window: int = Field(default=30, ge=0)
    window: str = "60s"
    max_compare: int = Field(default=10, ge=1)

    _check_window = field_validator("window")(_check_duration)

    @property
    def window_ms(self) -> int:
        return parse_duration_ms(self.window)


def _default_tiers() -> dict[str, TierConfig]:
    return {
        "basico": TierConfig(daily_quota=10, requests_per_window=20, max_compare=3),
        "plus": TierConfig(daily_quota=50, requests_per_window=50, max_compare=5),
        "premium": TierConfig(daily_quota=200, requests_per_window=100, max_compare=10),
        "administrador": TierConfig(daily_quota=10_000, requests_per_window=1_000, max_compare=10),
    }


class PlansConfig(BaseModel):
    tiers: dict[str, TierConfig] = Field(default_factory=_default_tiers)
    default_tier: str = "basico"
    bypass_tiers: list[str] = Field(default_factory=lambda: ["administrador"])

    def tier(self, name: str | None) -> TierConfig:
        """Resolve a tier by name, falling back to the default tier."""
        if name and name in self.tiers:
            return self.tiers[name]
        if name:
            logger.warning("Unknown tier '%s', using '%s'", name, self.default_tier)
        return self.tiers.get(self.default_tier, TierConfig())


class QuotaConfig(BaseModel):
    # Day keys are computed in this zone, never in the caller's local zone.
    timezone: str = "UTC"

    _check_zone = field_validator("timezone")(_check_timezone)


class CacheConfig(BaseModel):
    ttl: str = "5m"
    endpoint_ttls: dict[str, str] = Field(default_factory=lambda: {"quote": "30s", "search": "10m"})
    sweep: bool = True

    _check_ttl = field_validator("ttl")(_check_duration)

    @property
    def ttl_ms(self) -> int:
        return parse_duration_ms(self.ttl)

    def ttl_for(self, operation: str) -> int:
        """TTL for an operation, using the per-endpoint override when one is configured."""
        raw = self.endpoint_ttls.get(operation)
        if raw is None:
            return self.ttl_ms
        try:
            return parse_duration_ms(raw)
        except ValueError:
            logger.warning("Invalid TTL %r for %s, using default %s", raw, operation, self.ttl)
            return self.ttl_ms


class RateLimitConfig(BaseModel):
    category: str = "fmp-proxy"
    retry_on_limit: bool = False
    max_retries: int = Field(default=3, ge=0)
    backoff: Literal["fixed", "exponential"] = "fixed"


class RadarRangeConfig(BaseModel):
    min: float
    max: float
    lower_is_better: bool = False


def _default_radar_ranges() -> dict[str, RadarRangeConfig]:
    return {
        "netDebtToEBITDA": RadarRangeConfig(min=0, max=5, lower_is_better=True),
        "evToEbitda": RadarRangeConfig(min=4, max=100, lower_is_better=True),
        "PER": RadarRangeConfig(min=5, max=40, lower_is_better=True),
        "beta": RadarRangeConfig(min=0.3, max=3.0, lower_is_better=True),
        "roic": RadarRangeConfig(min=0, max=50, lower_is_better=False),
        "fcfYield": RadarRangeConfig(min=0, max=4, lower_is_better=False),
    }


class AnalyticsConfig(BaseModel):
    trading_days: int = 252
    risk_free_rate: float = 0.0
    std_dev_window: int = 30
    correlation_alignment: Literal["date", "position"] = "date"
    min_correlation_overlap: int = Field(default=2, ge=2)
    radar_ranges: dict[str, RadarRangeConfig] = Field(default_factory=_default_radar_ranges)


class LoggingConfig(BaseModel):
    level: str = "INFO"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    home_dir: str = str(DEFAULT_HOME)
    server: ServerConfig = Field(default_factory=ServerConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    plans: PlansConfig = Field(default_factory=PlansConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    serve_stale_on_failure: bool = True
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def home_path(self) -> Path:
        """Resolved home directory as a Path."""
        return Path(self.home_dir).expanduser()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    env_path: str | Path | None = None,
) -> AppConfig:
    """Load configuration from YAML + .env files.

    1. Load .env into environment variables
    2. Load config.yaml and resolve ${ENV_VAR} references
    3. Validate against Pydantic models
    4. Create the home directory if needed
    """
    home = Path(os.environ.get("TICKERLENS_HOME", str(DEFAULT_HOME))).expanduser()

    if env_path is None:
        env_path = home / ".env"
    if config_path is None:
        config_path = home / "config.yaml"

    env_path = Path(env_path)
    config_path = Path(config_path)

    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)
    else:
        logger.debug("No .env file at %s", env_path)

    raw_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
        logger.info("Loaded config from %s", config_path)
    else:
        logger.warning("No config file at %s, using defaults", config_path)

    resolved = _resolve_env_vars(raw_config)

    if "TICKERLENS_HOME" in os.environ:
        resolved["home_dir"] = os.environ["TICKERLENS_HOME"]

    # The API key usually lives only in .env
    provider = resolved.setdefault("provider", {})
    if not provider.get("api_key") and os.environ.get("FMP_API_KEY"):
        provider["api_key"] = os.environ["FMP_API_KEY"]

    config = AppConfig(**resolved)

    config.home_path.mkdir(parents=True, exist_ok=True)

    return config
