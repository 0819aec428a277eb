"""Options flow and dealer exposure analytics."""

from __future__ import annotations

from typing import Any


def get_market_data_adapter(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    """Lazily import the configured data adapter factory."""

    from .config import get_market_data_adapter as _impl

    return _impl(*args, **kwargs)


__version__ = "0.1.0"

__all__ = ["__version__", "get_market_data_adapter"]
