"""Trade flow classification for option prints.

Institutional activity leaves recognisable footprints in the tape:

1. Sweeps - one order split across several venues within a couple of seconds
2. Blocks - single prints carrying a large notional premium
3. Dark pool style prints - routed through venues associated with
   off-exchange liquidity

:func:`classify_flow` produces the aggregate view for one underlying, while
:func:`categorize_contract_flow` collapses the fills of each contract into
one combined order per fixed bucket for the print-by-print flow table.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from efi_analytics.models import (
    BlockDetail,
    CategorizedPrint,
    DarkPoolDetail,
    FlowSummary,
    LabeledTrade,
    OptionContractKey,
    PREMIUM_BUCKETS,
    PremiumStats,
    SweepDetail,
    TimeWindow,
    TradeLabel,
    TradePrint,
)
from efi_analytics.models.flow import window_width

LOGGER = logging.getLogger(__name__)

DEFAULT_DARK_POOL_EXCHANGES: Tuple[str, ...] = ("DARK", "EDGX", "BATS")
ATM_DISTANCE = 0.50


def premium_bucket(premium: float) -> str:
    """Return the histogram bucket a premium falls into."""

    if premium < 1_000:
        return PREMIUM_BUCKETS[0]
    if premium < 10_000:
        return PREMIUM_BUCKETS[1]
    if premium < 50_000:
        return PREMIUM_BUCKETS[2]
    if premium < 100_000:
        return PREMIUM_BUCKETS[3]
    return PREMIUM_BUCKETS[4]


def _sorted_by_time(trades: Iterable[TradePrint]) -> List[TradePrint]:
    return sorted(trades, key=lambda trade: trade.timestamp)


def group_trades_by_time_window(trades: Sequence[TradePrint], window_ms: float = 2000) -> List[TimeWindow]:
    """Partition time-ordered prints into non-overlapping windows.

    A window is anchored at its first print; a print more than ``window_ms``
    after the anchor starts the next window.
    """

    width = window_width(window_ms)
    windows: List[TimeWindow] = []
    current: Optional[TimeWindow] = None
    for trade in _sorted_by_time(trades):
        if current is None or trade.timestamp - current.start_time > width:
            current = TimeWindow(start_time=trade.timestamp, end_time=trade.timestamp + width, trades=[trade])
            windows.append(current)
        else:
            current.add(trade)
    return windows


def _is_sweep(window: TimeWindow, min_trades: int, min_exchanges: int) -> bool:
    return len(window.trades) >= min_trades and len(window.exchanges) >= min_exchanges


def _premium_stats(trades: Sequence[TradePrint]) -> PremiumStats:
    stats = PremiumStats()
    for trade in trades:
        premium = trade.total_premium
        stats.total += premium
        stats.max = max(stats.max, premium)
        stats.buckets[premium_bucket(premium)] += 1
    stats.average = stats.total / len(trades) if trades else 0.0
    return stats


def classify_flow(
    trades: Iterable[TradePrint],
    min_size: int = 10,
    block_threshold: float = 50_000,
    window_ms: float = 2000,
    dark_pool_exchanges: Iterable[str] = DEFAULT_DARK_POOL_EXCHANGES,
    min_sweep_trades: int = 3,
    min_sweep_exchanges: int = 2,
) -> FlowSummary:
    """Label sweeps, blocks and dark pool prints and summarise premium.

    Prints smaller than ``min_size`` contracts are dropped before any
    statistic is computed.
    """

    retained = _sorted_by_time(trade for trade in trades if trade.size >= min_size)
    summary = FlowSummary(trades_processed=len(retained))
    if not retained:
        return summary

    dark_codes = {code.upper() for code in dark_pool_exchanges}
    labels: Dict[int, Set[TradeLabel]] = defaultdict(set)

    for window in group_trades_by_time_window(retained, window_ms):
        if not _is_sweep(window, min_sweep_trades, min_sweep_exchanges):
            continue
        total = window.total_premium
        summary.sweeps.append(
            SweepDetail(
                timestamp=window.start_time,
                trades=len(window.trades),
                exchanges=len(window.exchanges),
                total_premium=total,
                average_premium=total / len(window.trades),
            )
        )
        for trade in window.trades:
            labels[id(trade)].add(TradeLabel.SWEEP)

    for trade in retained:
        premium = trade.total_premium
        if premium >= block_threshold:
            labels[id(trade)].add(TradeLabel.BLOCK)
            summary.blocks.append(
                BlockDetail(
                    timestamp=trade.timestamp,
                    premium=premium,
                    size=trade.size,
                    strike=trade.key.strike,
                    expiration=trade.key.expiration,
                    option_type=trade.key.option_type,
                )
            )
        if trade.exchange in dark_codes:
            labels[id(trade)].add(TradeLabel.DARK_POOL)
            summary.dark_pool.append(DarkPoolDetail(timestamp=trade.timestamp, premium=premium, exchange=trade.exchange))

    summary.premium = _premium_stats(retained)
    summary.labeled_trades = [LabeledTrade(trade=trade, labels=frozenset(labels.get(id(trade), ()))) for trade in retained]

    LOGGER.debug(
        "Classified %d prints: %d sweeps, %d blocks, %d dark pool",
        summary.trades_processed,
        summary.sweep_count,
        summary.block_count,
        summary.dark_pool_count,
    )
    return summary


def _bucket_index(timestamp: datetime, window_ms: float) -> int:
    return math.floor(timestamp.timestamp() * 1000 / window_ms)


def _collapse(key: OptionContractKey, fills: List[TradePrint], block_threshold: float) -> CategorizedPrint:
    total_size = sum(fill.size for fill in fills)
    total_premium = sum(fill.total_premium for fill in fills)
    exchanges = sorted({fill.exchange for fill in fills})

    if len(exchanges) >= 2:
        label = TradeLabel.SWEEP
    elif total_premium >= block_threshold:
        label = TradeLabel.BLOCK
    else:
        label = TradeLabel.MINI

    return CategorizedPrint(
        key=key,
        label=label,
        timestamp=min(fill.timestamp for fill in fills),
        size=total_size,
        price=sum(fill.price * fill.size for fill in fills) / total_size,
        total_premium=total_premium,
        fills=len(fills),
        exchanges=exchanges,
    )


def categorize_contract_flow(
    trades: Iterable[TradePrint],
    window_ms: float = 3000,
    block_threshold: float = 50_000,
) -> List[CategorizedPrint]:
    """Collapse each contract's fills per fixed bucket into one labelled print.

    Buckets are aligned to the epoch (``floor(t / window_ms)``) so the same
    fill always lands in the same bucket regardless of what else arrived.
    Results are ordered by total premium, largest first.
    """

    groups: Dict[Tuple[OptionContractKey, int], List[TradePrint]] = defaultdict(list)
    for trade in trades:
        groups[(trade.key, _bucket_index(trade.timestamp, window_ms))].append(trade)

    prints = [_collapse(key, fills, block_threshold) for (key, _), fills in groups.items()]
    prints.sort(key=lambda item: item.total_premium, reverse=True)
    return prints


def count_by_label(prints: Iterable[CategorizedPrint]) -> Dict[str, int]:
    counts = {label.value: 0 for label in (TradeLabel.SWEEP, TradeLabel.BLOCK, TradeLabel.MINI)}
    for item in prints:
        counts[item.label.value] = counts.get(item.label.value, 0) + 1
    return counts


def moneyness(strike: float, spot: float, option_type: str) -> str:
    """``ATM`` within fifty cents of spot, otherwise ``ITM``/``OTM``."""

    if abs(strike - spot) <= ATM_DISTANCE:
        return "ATM"
    if option_type == "call":
        return "ITM" if spot > strike else "OTM"
    return "ITM" if spot < strike else "OTM"


def days_to_expiry(expiration: date, as_of: Optional[datetime] = None) -> int:
    """Calendar days until expiration, counting a partial day as a full one."""

    now = as_of or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    expiry = datetime(expiration.year, expiration.month, expiration.day, tzinfo=timezone.utc)
    return math.ceil((expiry - now).total_seconds() / 86_400)


def annotate_prints(
    prints: Iterable[CategorizedPrint],
    spot: Optional[float] = None,
    as_of: Optional[datetime] = None,
) -> List[CategorizedPrint]:
    """Attach days to expiry, and moneyness when a spot price is known."""

    now = as_of or datetime.now(timezone.utc)
    annotated = []
    for item in prints:
        label = moneyness(item.key.strike, spot, item.key.option_type) if spot and spot > 0 else None
        annotated.append(
            replace(item, moneyness=label, days_to_expiry=days_to_expiry(item.key.expiration, now))
        )
    return annotated


class FlowClassifier:
    """Bind the classification thresholds from configuration."""

    def __init__(
        self,
        min_size: int = 10,
        block_threshold: float = 50_000,
        window_ms: float = 2000,
        categorize_window_ms: float = 3000,
        dark_pool_exchanges: Iterable[str] = DEFAULT_DARK_POOL_EXCHANGES,
        min_sweep_trades: int = 3,
        min_sweep_exchanges: int = 2,
    ) -> None:
        self.min_size = min_size
        self.block_threshold = block_threshold
        self.window_ms = window_ms
        self.categorize_window_ms = categorize_window_ms
        self.dark_pool_exchanges: FrozenSet[str] = frozenset(code.upper() for code in dark_pool_exchanges)
        self.min_sweep_trades = min_sweep_trades
        self.min_sweep_exchanges = min_sweep_exchanges

    @classmethod
    def from_settings(cls, settings) -> "FlowClassifier":
        return cls(
            min_size=settings.min_size,
            block_threshold=settings.block_threshold,
            window_ms=settings.window_ms,
            categorize_window_ms=settings.categorize_window_ms,
            dark_pool_exchanges=settings.dark_pool_exchanges,
            min_sweep_trades=settings.min_sweep_trades,
            min_sweep_exchanges=settings.min_sweep_exchanges,
        )

    def classify(self, trades: Iterable[TradePrint]) -> FlowSummary:
        return classify_flow(
            trades,
            min_size=self.min_size,
            block_threshold=self.block_threshold,
            window_ms=self.window_ms,
            dark_pool_exchanges=self.dark_pool_exchanges,
            min_sweep_trades=self.min_sweep_trades,
            min_sweep_exchanges=self.min_sweep_exchanges,
        )

    def categorize(self, trades: Iterable[TradePrint]) -> List[CategorizedPrint]:
        return categorize_contract_flow(
            trades, window_ms=self.categorize_window_ms, block_threshold=self.block_threshold
        )


__all__ = [
    "DEFAULT_DARK_POOL_EXCHANGES",
    "FlowClassifier",
    "annotate_prints",
    "categorize_contract_flow",
    "classify_flow",
    "count_by_label",
    "days_to_expiry",
    "group_trades_by_time_window",
    "moneyness",
    "premium_bucket",
]
