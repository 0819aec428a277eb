"""Adapter implementations for external market data providers."""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Type

from .base import (
    AdapterError,
    ContractPage,
    DataNotAvailable,
    MarketDataAdapter,
    MissingCredentialsError,
    ProviderUnavailable,
    RateLimitError,
)
from .normalization import MalformedData

_ADAPTER_REGISTRY: Dict[str, str] = {
    "polygon": "efi_analytics.adapters.polygon:PolygonMarketDataAdapter",
}


def create_adapter(provider: str, **kwargs: Any) -> MarketDataAdapter:
    """Instantiate a market data adapter by name.

    Args:
        provider: The lowercase name of the provider to load.
        **kwargs: Forwarded to the adapter constructor.

    Returns:
        An instance of the requested adapter implementation.

    Raises:
        KeyError: If the provider name is unknown.
    """

    normalized = provider.lower()
    try:
        dotted_path = _ADAPTER_REGISTRY[normalized]
    except KeyError as exc:
        raise KeyError(f"Unknown market data provider: {provider}") from exc

    module_name, class_name = dotted_path.split(":", 1)
    module = import_module(module_name)
    adapter_cls: Type[MarketDataAdapter] = getattr(module, class_name)
    return adapter_cls(**kwargs)


__all__ = [
    "AdapterError",
    "ContractPage",
    "DataNotAvailable",
    "MalformedData",
    "MarketDataAdapter",
    "MissingCredentialsError",
    "ProviderUnavailable",
    "RateLimitError",
    "create_adapter",
]
