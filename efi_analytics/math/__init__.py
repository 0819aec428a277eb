"""Pricing, implied volatility and probability primitives."""

from .black_scholes import black_scholes_price, black_scholes_vega, normal_cdf, normal_pdf
from .greeks import BlackScholesGreeksCalculator
from .implied_vol import NoSolution, SolverSettings, solve_implied_volatility, try_implied_volatility
from .probability import (
    chance_of_profit_sell_call,
    chance_of_profit_sell_put,
    find_strike_for_probability,
    probability_itm,
)

__all__ = [
    "BlackScholesGreeksCalculator",
    "NoSolution",
    "SolverSettings",
    "black_scholes_price",
    "black_scholes_vega",
    "chance_of_profit_sell_call",
    "chance_of_profit_sell_put",
    "find_strike_for_probability",
    "normal_cdf",
    "normal_pdf",
    "probability_itm",
    "solve_implied_volatility",
    "try_implied_volatility",
]
