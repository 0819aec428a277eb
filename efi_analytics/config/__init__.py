"""Configuration helpers for the analytics service, API and CLI."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from efi_analytics.adapters import MarketDataAdapter, create_adapter

from .loader import AppSettings, default_settings, get_settings, reset_settings_cache

DEFAULT_DATA_PROVIDER = "polygon"
PROVIDER_VARIABLE = "OPTIONS_DATA_PROVIDER"


def build_market_data_adapter(settings: AppSettings, provider: Optional[str] = None) -> MarketDataAdapter:
    """Instantiate the adapter named by ``provider``, the environment or ``settings``."""

    name = provider or os.getenv(PROVIDER_VARIABLE) or settings.adapter.provider or DEFAULT_DATA_PROVIDER
    name = name.strip().lower()
    options = {"settings": settings.polygon} if name == "polygon" else {}
    try:
        return create_adapter(name, **options)
    except KeyError as exc:
        raise ValueError(f"Unsupported market data provider: {name}") from exc


@lru_cache(maxsize=None)
def _get_market_data_adapter(provider: Optional[str]) -> MarketDataAdapter:
    return build_market_data_adapter(get_settings(), provider)


def get_market_data_adapter(provider: Optional[str] = None) -> MarketDataAdapter:
    """Return a market data adapter instance based on configuration."""

    return _get_market_data_adapter(provider)


def reset_market_data_adapter_cache() -> None:
    """Clear the cached adapter instance (useful for tests)."""

    _get_market_data_adapter.cache_clear()


__all__ = [
    "AppSettings",
    "DEFAULT_DATA_PROVIDER",
    "build_market_data_adapter",
    "default_settings",
    "get_market_data_adapter",
    "get_settings",
    "reset_market_data_adapter_cache",
    "reset_settings_cache",
]
