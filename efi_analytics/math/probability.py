"""Risk-neutral probability helpers for option sellers.

All probabilities come from the log-normal terminal distribution implied by
Black-Scholes: ``P(S_T > K) = Φ(d2)``. The sell-side helpers return
percentages (0-100) to match how the terminal displays them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .black_scholes import d2 as _d2, normal_cdf


def calculate_d2(S: float, K: float, r: float, sigma: float, T: float) -> float:
    """d2 with the argument order used by the probability helpers."""

    return _d2(S, K, T, r, sigma)


def chance_of_profit_sell_call(S: float, K: float, r: float, sigma: float, T: float) -> float:
    """Probability (%) that a sold call expires out of the money, ``(1 − Φ(d2)) × 100``."""

    return (1 - normal_cdf(calculate_d2(S, K, r, sigma, T))) * 100


def chance_of_profit_sell_put(S: float, K: float, r: float, sigma: float, T: float) -> float:
    """Probability (%) that a sold put expires out of the money, ``Φ(d2) × 100``."""

    return normal_cdf(calculate_d2(S, K, r, sigma, T)) * 100


def probability_itm(option_type: str, S: float, K: float, r: float, sigma: float, T: float) -> float:
    """Probability (0-1) that the option finishes in the money."""

    if T <= 0 or sigma <= 0:
        if option_type.lower() == "call":
            return 1.0 if S > K else 0.0
        return 1.0 if S < K else 0.0

    d2 = calculate_d2(S, K, r, sigma, T)
    if option_type.lower() == "call":
        return normal_cdf(d2)
    return normal_cdf(-d2)


def find_strike_for_probability(
    S: float,
    r: float,
    sigma: float,
    T: float,
    target_probability: float,
    option_type: str,
    tolerance: float = 0.1,
    max_iterations: int = 50,
) -> float:
    """Bisect for the OTM strike whose sell-side probability equals the target (%).

    Calls are searched between spot and +50%, puts between -50% and spot.
    """

    if option_type.lower() == "call":
        low, high = S + 0.01, S * 1.50
        for _ in range(max_iterations):
            mid = (low + high) / 2
            probability = chance_of_profit_sell_call(S, mid, r, sigma, T)
            if abs(probability - target_probability) < tolerance:
                return mid
            if probability < target_probability:
                low = mid
            else:
                high = mid
        return (low + high) / 2

    low, high = S * 0.50, S - 0.01
    for _ in range(max_iterations):
        mid = (low + high) / 2
        probability = chance_of_profit_sell_put(S, mid, r, sigma, T)
        if abs(probability - target_probability) < tolerance:
            return mid
        if probability < target_probability:
            high = mid
        else:
            low = mid
    return (low + high) / 2


@dataclass
class ProbabilityStrikes:
    """Strikes at which a seller keeps the premium with 80% / 90% probability."""

    call_80: Optional[float]
    put_80: Optional[float]
    call_90: Optional[float]
    put_90: Optional[float]

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "call80": self.call_80,
            "put80": self.put_80,
            "call90": self.call_90,
            "put90": self.put_90,
        }


def probability_strikes(S: float, r: float, sigma: float, T: float) -> ProbabilityStrikes:
    if S <= 0 or sigma <= 0 or T <= 0:
        return ProbabilityStrikes(None, None, None, None)
    return ProbabilityStrikes(
        call_80=find_strike_for_probability(S, r, sigma, T, 80.0, "call"),
        put_80=find_strike_for_probability(S, r, sigma, T, 80.0, "put"),
        call_90=find_strike_for_probability(S, r, sigma, T, 90.0, "call"),
        put_90=find_strike_for_probability(S, r, sigma, T, 90.0, "put"),
    )


__all__ = [
    "ProbabilityStrikes",
    "calculate_d2",
    "chance_of_profit_sell_call",
    "chance_of_profit_sell_put",
    "find_strike_for_probability",
    "probability_itm",
    "probability_strikes",
]
