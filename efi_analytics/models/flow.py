from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .option import OptionContractKey


class TradeLabel(str, Enum):
    """Classification tags attached to option prints."""

    SWEEP = "SWEEP"
    BLOCK = "BLOCK"
    MINI = "MINI"
    DARK_POOL = "DARK_POOL"


def epoch_to_datetime(number: float) -> datetime:
    """UTC datetime for an epoch in ns, µs, ms or seconds, picked by magnitude."""

    if not math.isfinite(number) or number <= 0:
        raise ValueError(f"Unparseable timestamp: {number!r}")
    if number > 1e17:
        seconds = number / 1e9
    elif number > 1e14:
        seconds = number / 1e6
    elif number > 1e11:
        seconds = number / 1e3
    else:
        seconds = number
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class TradePrint(BaseModel):
    """A single option trade print."""

    model_config = ConfigDict(frozen=True)

    key: OptionContractKey
    timestamp: datetime
    size: int = Field(gt=0)
    price: float = Field(gt=0)
    exchange: str = "UNKNOWN"
    conditions: tuple[int, ...] = ()

    @field_validator("timestamp", mode="before")
    @classmethod
    def ensure_utc(cls, value: Any) -> datetime:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return epoch_to_datetime(value)
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("exchange", mode="before")
    @classmethod
    def normalize_exchange(cls, value: Any) -> str:
        if value is None or value == "":
            return "UNKNOWN"
        return str(value).upper().strip()

    @computed_field  # type: ignore[misc]
    @property
    def total_premium(self) -> float:
        return self.size * self.price * 100


@dataclass
class TimeWindow:
    """Consecutive prints merged because they arrived within the window width."""

    start_time: datetime
    end_time: datetime
    trades: List[TradePrint] = field(default_factory=list)

    @property
    def exchanges(self) -> FrozenSet[str]:
        return frozenset(trade.exchange for trade in self.trades)

    @property
    def total_premium(self) -> float:
        return sum(trade.total_premium for trade in self.trades)

    def add(self, trade: TradePrint) -> None:
        self.trades.append(trade)
        self.end_time = max(self.end_time, trade.timestamp)


@dataclass
class SweepDetail:
    timestamp: datetime
    trades: int
    exchanges: int
    total_premium: float
    average_premium: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "trades": self.trades,
            "exchanges": self.exchanges,
            "total_premium": round(self.total_premium, 2),
            "average_premium": round(self.average_premium, 2),
        }


@dataclass
class BlockDetail:
    timestamp: datetime
    premium: float
    size: int
    strike: float
    expiration: date
    option_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "premium": round(self.premium, 2),
            "size": self.size,
            "strike": self.strike,
            "expiration": self.expiration.isoformat(),
            "option_type": self.option_type,
        }


@dataclass
class DarkPoolDetail:
    timestamp: datetime
    premium: float
    exchange: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "premium": round(self.premium, 2),
            "exchange": self.exchange,
        }


PREMIUM_BUCKETS = ("under_1k", "1k_10k", "10k_50k", "50k_100k", "over_100k")


@dataclass
class PremiumStats:
    total: float = 0.0
    average: float = 0.0
    max: float = 0.0
    buckets: Dict[str, int] = field(default_factory=lambda: {name: 0 for name in PREMIUM_BUCKETS})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": round(self.total, 2),
            "average": round(self.average, 2),
            "max": round(self.max, 2),
            "buckets": dict(self.buckets),
        }


@dataclass
class LabeledTrade:
    trade: TradePrint
    labels: FrozenSet[TradeLabel] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        payload = self.trade.model_dump(mode="json")
        payload["labels"] = sorted(label.value for label in self.labels)
        return payload


@dataclass
class FlowSummary:
    """Result of classifying one underlying's prints."""

    trades_processed: int = 0
    sweeps: List[SweepDetail] = field(default_factory=list)
    blocks: List[BlockDetail] = field(default_factory=list)
    dark_pool: List[DarkPoolDetail] = field(default_factory=list)
    premium: PremiumStats = field(default_factory=PremiumStats)
    labeled_trades: List[LabeledTrade] = field(default_factory=list)

    @property
    def sweep_count(self) -> int:
        return len(self.sweeps)

    @property
    def block_count(self) -> int:
        return len(self.blocks)

    @property
    def dark_pool_count(self) -> int:
        return len(self.dark_pool)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trades_processed": self.trades_processed,
            "sweeps": self.sweep_count,
            "blocks": self.block_count,
            "dark_pool_trades": self.dark_pool_count,
            "premium": self.premium.to_dict(),
            "sweep_details": [item.to_dict() for item in self.sweeps],
            "block_details": [item.to_dict() for item in self.blocks],
            "dark_pool_details": [item.to_dict() for item in self.dark_pool],
        }


@dataclass
class CategorizedPrint:
    """Prints of one contract inside one bucket, collapsed into a single order."""

    key: OptionContractKey
    label: TradeLabel
    timestamp: datetime
    size: int
    price: float
    total_premium: float
    fills: int
    exchanges: List[str]
    moneyness: Optional[str] = None
    days_to_expiry: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.key.ticker,
            "underlying": self.key.underlying_symbol,
            "strike": self.key.strike,
            "expiration": self.key.expiration.isoformat(),
            "type": self.key.option_type,
            "trade_type": self.label.value,
            "timestamp": self.timestamp.isoformat(),
            "size": self.size,
            "price": round(self.price, 4),
            "total_premium": round(self.total_premium, 2),
            "fills": self.fills,
            "exchanges": list(self.exchanges),
            "moneyness": self.moneyness,
            "days_to_expiry": self.days_to_expiry,
        }


def window_width(window_ms: float) -> timedelta:
    return timedelta(milliseconds=window_ms)


__all__ = [
    "BlockDetail",
    "CategorizedPrint",
    "DarkPoolDetail",
    "FlowSummary",
    "LabeledTrade",
    "PREMIUM_BUCKETS",
    "PremiumStats",
    "SweepDetail",
    "TimeWindow",
    "TradeLabel",
    "TradePrint",
    "epoch_to_datetime",
    "window_width",
]
