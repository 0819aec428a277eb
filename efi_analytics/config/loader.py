"""Environment aware configuration loader for the analytics service."""

from __future__ import annotations

import copy
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SETTINGS: Dict[str, Any] = {
    "watchlists": {
        "default": ["SPY", "QQQ"],
    },
    "adapter": {
        "provider": "polygon",
    },
    "polygon": {
        "base_url": "https://api.polygon.io",
        "api_key": None,
        "requests_per_second": 10.0,
        "burst": 10,
        "max_retries": 3,
        "base_delay": 0.5,
        "max_delay": 8.0,
        "jitter": 0.25,
        "timeout_seconds": 10.0,
        "max_contracts": 5000,
        "page_limit": 250,
    },
    "flow": {
        "min_size": 10,
        "block_threshold": 50_000.0,
        "window_ms": 2000,
        "categorize_window_ms": 3000,
        "dark_pool_exchanges": ["DARK", "EDGX", "BATS"],
        "min_sweep_trades": 3,
        "min_sweep_exchanges": 2,
        "max_contracts": 50,
    },
    "exposure": {
        "gamma_ceiling": 1.0,
        "gamma_floor": 1e-6,
        "max_days_out": 45,
        "top_walls": 5,
    },
    "iv": {
        "risk_free_rate": 0.0408,
        "initial_guess": 0.30,
        "tolerance": 1e-5,
        "max_iterations": 100,
    },
    "cache": {
        "ttl_seconds": 900,
    },
    "fetcher": {
        "max_workers": 8,
        "item_timeout_seconds": 30.0,
        "max_runtime_seconds": 120.0,
    },
}

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
ENVIRONMENT_VARIABLE = "APP_ENV"
API_KEY_VARIABLE = "POLYGON_API_KEY"
BASE_URL_VARIABLE = "POLYGON_BASE_URL"


class AdapterSettings(BaseModel):
    provider: str = "polygon"


class PolygonSettings(BaseModel):
    """Connection, throttling and pagination settings for the Polygon REST API."""

    base_url: str = "https://api.polygon.io"
    api_key: Optional[str] = None
    requests_per_second: float = Field(default=10.0, gt=0)
    burst: int = Field(default=10, ge=1)
    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=8.0, ge=0)
    jitter: float = Field(default=0.25, ge=0)
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_contracts: int = Field(default=5000, ge=1)
    page_limit: int = Field(default=250, ge=1)

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")


class FlowSettings(BaseModel):
    min_size: int = 10
    block_threshold: float = 50_000.0
    window_ms: int = Field(default=2000, gt=0)
    categorize_window_ms: int = Field(default=3000, gt=0)
    dark_pool_exchanges: List[str] = Field(default_factory=lambda: ["DARK", "EDGX", "BATS"])
    min_sweep_trades: int = 3
    min_sweep_exchanges: int = 2
    max_contracts: int = Field(default=50, ge=1)

    @field_validator("dark_pool_exchanges", mode="before")
    @classmethod
    def _upper_codes(cls, value: Any) -> List[str]:
        return [str(code).upper() for code in value or []]


class ExposureSettings(BaseModel):
    gamma_ceiling: float = 1.0
    gamma_floor: float = 1e-6
    max_days_out: int = 45
    top_walls: int = 5


class IVSettings(BaseModel):
    risk_free_rate: float = 0.0408
    initial_guess: float = 0.30
    tolerance: float = 1e-5
    max_iterations: int = 100


class CacheSettings(BaseModel):
    ttl_seconds: int = 900


class FetcherSettings(BaseModel):
    max_workers: int = Field(default=8, ge=1)
    item_timeout_seconds: float = Field(default=30.0, gt=0)
    max_runtime_seconds: Optional[float] = 120.0


class AppSettings(BaseModel):
    """Fully resolved application settings loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    env: str
    watchlists: Dict[str, List[str]]
    adapter: AdapterSettings
    polygon: PolygonSettings
    flow: FlowSettings
    exposure: ExposureSettings
    iv: IVSettings
    cache: CacheSettings
    fetcher: FetcherSettings

    @field_validator("env")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        return value.lower()

    @field_validator("watchlists", mode="before")
    @classmethod
    def _coerce_watchlists(cls, value: Mapping[str, Any]) -> Dict[str, List[str]]:
        return {key: [str(item).upper() for item in items or []] for key, items in dict(value or {}).items()}

    def get_watchlist(self, name: str = "default") -> List[str]:
        return list(self.watchlists.get(name, []))


def default_settings(env: str = "dev", **overrides: Any) -> AppSettings:
    """Build settings from the in-code defaults only, optionally overridden."""

    merged = _deep_merge(copy.deepcopy(DEFAULT_SETTINGS), overrides)
    merged["env"] = env
    return AppSettings.model_validate(merged)


def _deep_merge(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping):
            existing = base.get(key)
            if isinstance(existing, MutableMapping):
                base[key] = _deep_merge(copy.deepcopy(existing), value)
            else:
                base[key] = copy.deepcopy(value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping at the root.")
    return data


def _apply_environment(merged: MutableMapping[str, Any]) -> None:
    polygon = merged.setdefault("polygon", {})
    api_key = os.getenv(API_KEY_VARIABLE)
    if api_key:
        polygon["api_key"] = api_key
    base_url = os.getenv(BASE_URL_VARIABLE)
    if base_url:
        polygon["base_url"] = base_url


def _build_settings(env: str) -> AppSettings:
    config_path = CONFIG_DIR / f"{env}.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file for environment '{env}' not found at {config_path}")

    merged = copy.deepcopy(DEFAULT_SETTINGS)
    merged = _deep_merge(merged, _load_yaml(config_path))
    _apply_environment(merged)
    merged["env"] = env
    return AppSettings.model_validate(merged)


@lru_cache(maxsize=None)
def _cached_settings(env: str) -> AppSettings:
    return _build_settings(env)


def get_settings(env: Optional[str] = None) -> AppSettings:
    """Load settings for the requested environment (default: APP_ENV or 'dev')."""

    resolved_env = (env or os.getenv(ENVIRONMENT_VARIABLE, "dev")).strip().lower()
    return _cached_settings(resolved_env)


def reset_settings_cache() -> None:
    """Clear the cached settings, primarily used during tests."""

    _cached_settings.cache_clear()


__all__ = [
    "AdapterSettings",
    "AppSettings",
    "CacheSettings",
    "ExposureSettings",
    "FetcherSettings",
    "FlowSettings",
    "IVSettings",
    "PolygonSettings",
    "default_settings",
    "get_settings",
    "reset_settings_cache",
]
