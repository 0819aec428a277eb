"""Closed-form Black-Scholes-Merton pricing primitives.

These helpers are deliberately scalar and side-effect free; the implied
volatility solver and the Greeks calculator are both built on top of them.
"""

from __future__ import annotations

import math

from scipy.stats import norm


def normal_cdf(x: float) -> float:
    """Standard normal cumulative distribution Φ(x)."""

    return float(norm.cdf(x))


def normal_pdf(x: float) -> float:
    """Standard normal density φ(x)."""

    return float(norm.pdf(x))


def d1(S: float, K: float, T: float, r: float, sigma: float, q: float = 0.0) -> float:
    return (math.log(S / K) + (r - q + 0.5 * sigma**2) * T) / (sigma * math.sqrt(T))


def d2(S: float, K: float, T: float, r: float, sigma: float, q: float = 0.0) -> float:
    return d1(S, K, T, r, sigma, q) - sigma * math.sqrt(T)


def _is_call(option_type: str) -> bool:
    lowered = option_type.lower()
    if lowered not in ("call", "put"):
        raise ValueError(f"option_type must be 'call' or 'put', got {option_type!r}")
    return lowered == "call"


def intrinsic_value(S: float, K: float, option_type: str) -> float:
    return max(0.0, S - K) if _is_call(option_type) else max(0.0, K - S)


def black_scholes_price(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    option_type: str,
    q: float = 0.0,
) -> float:
    """Theoretical European option price.

    At or after expiration (``T <= 0``) the intrinsic value is returned. A
    non-positive volatility collapses to the discounted forward payoff.
    """

    is_call = _is_call(option_type)
    if T <= 0:
        return intrinsic_value(S, K, option_type)

    discount = math.exp(-r * T)
    dividend_discount = math.exp(-q * T)
    if sigma <= 0:
        forward_payoff = S * dividend_discount - K * discount
        return max(0.0, forward_payoff if is_call else -forward_payoff)

    first = d1(S, K, T, r, sigma, q)
    second = first - sigma * math.sqrt(T)
    if is_call:
        return S * dividend_discount * normal_cdf(first) - K * discount * normal_cdf(second)
    return K * discount * normal_cdf(-second) - S * dividend_discount * normal_cdf(-first)


def black_scholes_vega(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    q: float = 0.0,
) -> float:
    """∂price/∂σ for a one unit (100 vol point) change in volatility."""

    if T <= 0 or sigma <= 0:
        return 0.0
    return S * math.exp(-q * T) * normal_pdf(d1(S, K, T, r, sigma, q)) * math.sqrt(T)


__all__ = [
    "black_scholes_price",
    "black_scholes_vega",
    "d1",
    "d2",
    "intrinsic_value",
    "normal_cdf",
    "normal_pdf",
]
