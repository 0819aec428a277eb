"""Black-Scholes-Merton Greeks used to back-fill contracts the provider left bare.

The provider normally ships delta/gamma/theta/vega on each snapshot, but deep
OTM strikes and freshly listed expirations frequently come back without them.
When an implied volatility is known (or can be solved from the mid price) the
calculator below produces the same per-share conventions the provider uses:
theta per calendar day and vega per 1% change in volatility.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from efi_analytics.models.option import OptionGreeks

from .black_scholes import d1 as _d1, normal_cdf, normal_pdf

LOGGER = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.0
MIN_VOLATILITY = 0.01
MAX_REASONABLE_VOLATILITY = 5.0


class BlackScholesGreeksCalculator:
    """Greeks for European options with an optional continuous dividend yield."""

    def __init__(self, risk_free_rate: float = 0.0408):
        """
        Args:
            risk_free_rate: Annualized rate used when ``calculate`` is not given one.
        """
        self.risk_free_rate = risk_free_rate

    def calculate(
        self,
        option_type: str,
        stock_price: float,
        strike_price: float,
        time_to_expiration: float,
        volatility: float,
        dividend_yield: float = 0.0,
        risk_free_rate: Optional[float] = None,
    ) -> OptionGreeks:
        """Return delta, gamma, theta (per day) and vega (per vol point).

        ``time_to_expiration`` is in years. Non-positive prices give empty
        Greeks; an expired contract keeps only its terminal delta.
        """

        self._log_suspicious_inputs(option_type, stock_price, strike_price, time_to_expiration, volatility)
        if stock_price <= 0 or strike_price <= 0:
            return OptionGreeks()

        is_call = option_type.lower() == "call"
        if time_to_expiration <= 0:
            return self._expired_greeks(is_call, stock_price, strike_price)

        rate = self.risk_free_rate if risk_free_rate is None else risk_free_rate
        sigma = max(volatility, MIN_VOLATILITY)
        years = time_to_expiration
        root_t = math.sqrt(years)

        first = _d1(stock_price, strike_price, years, rate, sigma, dividend_yield)
        second = first - sigma * root_t
        density = normal_pdf(first)
        carry = math.exp(-dividend_yield * years)
        discount = math.exp(-rate * years)

        sign = 1.0 if is_call else -1.0
        delta = sign * carry * normal_cdf(sign * first)
        gamma = carry * density / (stock_price * sigma * root_t)
        vega = stock_price * carry * density * root_t

        annual_theta = (
            -stock_price * density * sigma * carry / (2 * root_t)
            + sign * dividend_yield * stock_price * carry * normal_cdf(sign * first)
            - sign * rate * strike_price * discount * normal_cdf(sign * second)
        )

        return OptionGreeks(
            delta=round(delta, 6),
            gamma=round(gamma, 8),
            theta=round(annual_theta / DAYS_PER_YEAR, 6),
            vega=round(vega / 100, 6),
        )

    @staticmethod
    def _log_suspicious_inputs(
        option_type: str,
        stock_price: float,
        strike_price: float,
        time_to_expiration: float,
        volatility: float,
    ) -> None:
        problems = []
        if option_type.lower() not in ("call", "put"):
            problems.append(f"option type {option_type!r} priced as a put")
        if stock_price <= 0 or strike_price <= 0:
            problems.append(f"non-positive price (S={stock_price}, K={strike_price})")
        if time_to_expiration < 0:
            problems.append(f"expiration in the past ({time_to_expiration:.4f}y)")
        if volatility <= 0:
            problems.append(f"volatility {volatility} floored to {MIN_VOLATILITY}")
        elif volatility > MAX_REASONABLE_VOLATILITY:
            problems.append(f"volatility {volatility:.1%} is implausibly high")
        if problems:
            LOGGER.debug("Greeks inputs: %s", "; ".join(problems))

    @staticmethod
    def _expired_greeks(is_call: bool, stock_price: float, strike_price: float) -> OptionGreeks:
        # Only delta survives expiration: 1 if ITM, 0 otherwise.
        if is_call:
            delta = 1.0 if stock_price > strike_price else 0.0
        else:
            delta = -1.0 if stock_price < strike_price else 0.0
        return OptionGreeks(delta=delta, gamma=0.0, theta=0.0, vega=0.0)


__all__ = [
    "BlackScholesGreeksCalculator",
]
