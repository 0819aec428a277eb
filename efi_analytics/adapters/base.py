"""Core abstractions for market data adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence, Union

import pandas as pd

from efi_analytics.models import ContractSnapshot, OptionContractKey, TradePrint


class AdapterError(Exception):
    """Base exception raised for adapter related failures."""


class ProviderUnavailable(AdapterError):
    """Raised when the provider cannot be reached or keeps answering 5xx."""


class RateLimitError(AdapterError):
    """Raised when a provider reports rate limiting errors."""


class MissingCredentialsError(AdapterError):
    """Raised when an adapter is used without the credentials it needs."""


class DataNotAvailable(AdapterError):
    """Raised when requested data is not available from a provider."""


@dataclass
class ContractPage:
    """Contracts gathered for one request, possibly cut short by a failure."""

    symbol: str
    contracts: List[ContractSnapshot] = field(default_factory=list)
    partial: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten the page into one row per contract."""

        rows = [
            {
                "symbol": self.symbol,
                "ticker": contract.key.ticker,
                "type": contract.key.option_type,
                "expiration": contract.expiration.isoformat(),
                "strike": contract.strike,
                "openInterest": contract.open_interest,
                "volume": contract.volume,
                "bid": contract.bid,
                "ask": contract.ask,
                "lastPrice": contract.last_price,
                "impliedVolatility": contract.implied_volatility,
                "delta": contract.greeks.delta,
                "gamma": contract.greeks.gamma,
                "theta": contract.greeks.theta,
                "vega": contract.greeks.vega,
            }
            for contract in self.contracts
        ]
        if not rows:
            return pd.DataFrame()
        return pd.DataFrame(rows)


class MarketDataAdapter(ABC):
    """Abstract base class for fetching option chains and prints from a provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable provider name."""

    @abstractmethod
    def get_contracts(self, symbol: str, expiration: Optional[date] = None) -> ContractPage:
        """Return contract snapshots for a symbol, optionally for one expiration."""

    @abstractmethod
    def get_trades(
        self,
        contract: Union[OptionContractKey, str],
        since: Optional[datetime] = None,
    ) -> List[TradePrint]:
        """Return prints for one contract at or after ``since``."""

    @abstractmethod
    def get_spot_price(self, symbol: str) -> float:
        """Return the latest traded price of the underlying."""

    def get_expirations(self, symbol: str) -> Sequence[date]:
        """Return available expirations for a symbol."""

        raise NotImplementedError


__all__ = [
    "AdapterError",
    "ContractPage",
    "DataNotAvailable",
    "MarketDataAdapter",
    "MissingCredentialsError",
    "ProviderUnavailable",
    "RateLimitError",
]
