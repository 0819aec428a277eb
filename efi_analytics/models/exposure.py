from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd


@dataclass
class ExposureBucket:
    """Running GEX/DEX/VEX sums for one (expiration, strike)."""

    gex: float = 0.0
    dex: float = 0.0
    vex: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"gex": self.gex, "dex": self.dex, "vex": self.vex}


@dataclass
class ExposureResult:
    """Exposure aggregates for one underlying keyed by expiration then strike."""

    spot: float
    buckets: Dict[date, Dict[float, ExposureBucket]] = field(default_factory=dict)
    all_strikes: List[float] = field(default_factory=list)
    call_gex: Dict[float, float] = field(default_factory=dict)
    put_gex: Dict[float, float] = field(default_factory=dict)
    skipped_gamma: int = 0

    def _by(self, attribute: str) -> Dict[date, Dict[float, float]]:
        return {
            expiration: {strike: getattr(bucket, attribute) for strike, bucket in strikes.items()}
            for expiration, strikes in self.buckets.items()
        }

    @property
    def gex_by_strike_by_expiration(self) -> Dict[date, Dict[float, float]]:
        return self._by("gex")

    @property
    def dex_by_strike_by_expiration(self) -> Dict[date, Dict[float, float]]:
        return self._by("dex")

    @property
    def vex_by_strike_by_expiration(self) -> Dict[date, Dict[float, float]]:
        return self._by("vex")

    @property
    def is_empty(self) -> bool:
        return not self.buckets

    def bucket(self, expiration: date, strike: float) -> Optional[ExposureBucket]:
        return self.buckets.get(expiration, {}).get(strike)

    def to_frame(self) -> pd.DataFrame:
        """Flatten the buckets into one row per (expiration, strike)."""

        rows = [
            {
                "expiration": expiration,
                "strike": strike,
                "gex": bucket.gex,
                "dex": bucket.dex,
                "vex": bucket.vex,
            }
            for expiration, strikes in self.buckets.items()
            for strike, bucket in strikes.items()
        ]
        if not rows:
            return pd.DataFrame(columns=["expiration", "strike", "gex", "dex", "vex"])
        return pd.DataFrame(rows).sort_values(["expiration", "strike"], ignore_index=True)

    def to_dict(self) -> Dict[str, Any]:
        def _serialize(mapping: Dict[date, Dict[float, float]]) -> Dict[str, Dict[str, float]]:
            return {
                expiration.isoformat(): {str(strike): value for strike, value in strikes.items()}
                for expiration, strikes in mapping.items()
            }

        return {
            "spot": self.spot,
            "gex_by_strike_by_expiration": _serialize(self.gex_by_strike_by_expiration),
            "dex_by_strike_by_expiration": _serialize(self.dex_by_strike_by_expiration),
            "vex_by_strike_by_expiration": _serialize(self.vex_by_strike_by_expiration),
            "all_strikes": list(self.all_strikes),
        }


@dataclass
class GammaWall:
    strike: float
    gex: float

    def to_dict(self) -> Dict[str, float]:
        return {"strike": self.strike, "gex": self.gex}


@dataclass
class GammaLevels:
    """Key dealer gamma levels derived from an exposure result."""

    total_call_gex: float
    total_put_gex: float
    total_net_gex: float
    zero_gamma_level: float
    gex_flip_level: float
    gamma_environment: str
    call_walls: List[GammaWall] = field(default_factory=list)
    put_walls: List[GammaWall] = field(default_factory=list)
    net_gex_by_strike: Dict[float, float] = field(default_factory=dict)

    @property
    def is_positive_gamma(self) -> bool:
        return self.gamma_environment == "POSITIVE"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_call_gex": self.total_call_gex,
            "total_put_gex": self.total_put_gex,
            "total_net_gex": self.total_net_gex,
            "zero_gamma_level": self.zero_gamma_level,
            "gex_flip_level": self.gex_flip_level,
            "is_positive_gamma": self.is_positive_gamma,
            "gamma_environment": self.gamma_environment,
            "call_walls": [wall.to_dict() for wall in self.call_walls],
            "put_walls": [wall.to_dict() for wall in self.put_walls],
            "net_gex_by_strike": {str(strike): value for strike, value in self.net_gex_by_strike.items()},
        }


__all__ = ["ExposureBucket", "ExposureResult", "GammaLevels", "GammaWall"]
