from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

OptionType = Literal["call", "put"]

_OPTION_TICKER = re.compile(r"^(?:O:)?([A-Z.]+)(\d{6})([CP])(\d{8})$")


class OptionContractKey(BaseModel):
    """Identity of a single listed contract."""

    model_config = ConfigDict(frozen=True)

    underlying_symbol: str
    strike: float
    expiration: date
    option_type: OptionType

    @field_validator("underlying_symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, value: Any) -> str:
        return str(value or "").upper().strip()

    @field_validator("option_type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> str:
        lowered = str(value or "").lower().strip()
        if lowered in {"c", "call", "calls"}:
            return "call"
        if lowered in {"p", "put", "puts"}:
            return "put"
        raise ValueError(f"Unsupported option type: {value!r}")

    @field_validator("expiration", mode="before")
    @classmethod
    def parse_expiration(cls, value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return datetime.strptime(value[:10], "%Y-%m-%d").date()
        raise ValueError("Unsupported expiration format")

    @property
    def is_call(self) -> bool:
        return self.option_type == "call"

    @property
    def ticker(self) -> str:
        """OCC style provider ticker, e.g. ``O:SPY241025C00425000``."""

        type_char = "C" if self.is_call else "P"
        strike_part = f"{int(round(self.strike * 1000)):08d}"
        return f"O:{self.underlying_symbol}{self.expiration.strftime('%y%m%d')}{type_char}{strike_part}"

    @classmethod
    def from_ticker(cls, ticker: str) -> "OptionContractKey":
        match = _OPTION_TICKER.match(str(ticker).strip().upper())
        if match is None:
            raise ValueError(f"Unrecognized option ticker: {ticker!r}")
        underlying, date_part, type_char, strike_part = match.groups()
        return cls(
            underlying_symbol=underlying,
            strike=int(strike_part) / 1000,
            expiration=datetime.strptime(date_part, "%y%m%d").date(),
            option_type="call" if type_char == "C" else "put",
        )

    def days_to_expiration(self, as_of: Optional[date] = None) -> int:
        return (self.expiration - (as_of or date.today())).days


class OptionGreeks(BaseModel):
    """Provider Greeks; a component is ``None`` when absent or not finite."""

    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None

    @field_validator("delta", "gamma", "theta", "vega", mode="before")
    @classmethod
    def finite_or_none(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in ("delta", "gamma", "theta", "vega"))

    def value(self, name: str) -> float:
        """Greek value for aggregation purposes, 0.0 when missing."""

        component = getattr(self, name)
        return float(component) if component is not None else 0.0


class ContractSnapshot(BaseModel):
    """Point-in-time view of one contract as normalized from the provider."""

    model_config = ConfigDict(populate_by_name=True)

    key: OptionContractKey
    open_interest: int = Field(default=0, alias="openInterest")
    volume: int = 0
    greeks: OptionGreeks = Field(default_factory=OptionGreeks)
    bid: Optional[float] = None
    ask: Optional[float] = None
    last_price: Optional[float] = Field(default=None, alias="lastPrice")
    implied_volatility: Optional[float] = Field(default=None, alias="impliedVolatility")
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @field_validator("open_interest", "volume", mode="before")
    @classmethod
    def coerce_count(cls, value: Any) -> int:
        try:
            number = float(value or 0)
        except (TypeError, ValueError):
            return 0
        if not math.isfinite(number):
            return 0
        return max(0, int(number))

    @field_validator("bid", "ask", "last_price", mode="before")
    @classmethod
    def coerce_price(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        number = float(value)
        if not math.isfinite(number) or number < 0:
            return None
        return number

    @field_validator("implied_volatility", mode="before")
    @classmethod
    def coerce_iv(cls, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        number = float(value)
        if not math.isfinite(number) or number <= 0:
            return None
        return number

    @property
    def strike(self) -> float:
        return self.key.strike

    @property
    def expiration(self) -> date:
        return self.key.expiration

    @property
    def is_call(self) -> bool:
        return self.key.is_call

    @property
    def mid_price(self) -> Optional[float]:
        if self.bid and self.ask:
            return round((self.bid + self.ask) / 2, 4)
        return self.last_price

    def with_greeks(self, greeks: OptionGreeks) -> "ContractSnapshot":
        return self.model_copy(update={"greeks": greeks})
