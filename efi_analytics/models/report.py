from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .exposure import ExposureResult, GammaLevels
from .flow import CategorizedPrint, FlowSummary


@dataclass(frozen=True)
class AnalyticsError:
    """Per-item failure reported alongside a batch result."""

    item: str
    kind: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"item": self.item, "kind": self.kind, "reason": self.reason}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExposureReport:
    symbol: str
    spot: float
    exposure: ExposureResult
    levels: Optional[GammaLevels]
    contracts_used: int = 0
    greeks_backfilled: int = 0
    partial: bool = False
    errors: List[AnalyticsError] = field(default_factory=list)
    generated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "spot": self.spot,
            "exposure": self.exposure.to_dict(),
            "levels": self.levels.to_dict() if self.levels is not None else None,
            "contracts_used": self.contracts_used,
            "greeks_backfilled": self.greeks_backfilled,
            "partial": self.partial,
            "errors": [error.to_dict() for error in self.errors],
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class FlowReport:
    symbol: str
    summary: FlowSummary
    categorized: List[CategorizedPrint] = field(default_factory=list)
    contracts_scanned: int = 0
    errors: List[AnalyticsError] = field(default_factory=list)
    generated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "summary": self.summary.to_dict(),
            "categorized": [item.to_dict() for item in self.categorized],
            "contracts_scanned": self.contracts_scanned,
            "errors": [error.to_dict() for error in self.errors],
            "generated_at": self.generated_at.isoformat(),
        }


__all__ = ["AnalyticsError", "ExposureReport", "FlowReport"]
