"""Implied volatility recovery via Newton-Raphson on Black-Scholes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .black_scholes import black_scholes_price, black_scholes_vega

LOGGER = logging.getLogger(__name__)

VEGA_EPSILON = 1e-10


class NoSolution(ArithmeticError):
    """Raised when no physically meaningful implied volatility exists."""


@dataclass(frozen=True)
class SolverSettings:
    initial_guess: float = 0.30
    tolerance: float = 1e-5
    max_iterations: int = 100
    lower_clamp: float = 0.001
    upper_clamp: float = 5.0
    accept_min: float = 0.01
    accept_max: float = 5.0


DEFAULT_SOLVER_SETTINGS = SolverSettings()


def solve_implied_volatility(
    price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    option_type: str,
    settings: SolverSettings = DEFAULT_SOLVER_SETTINGS,
) -> float:
    """Return σ such that ``black_scholes_price(S, K, T, r, σ) ≈ price``.

    Args:
        price: Observed option price per share.
        S: Spot price of the underlying.
        K: Strike price.
        T: Time to expiration in years.
        r: Annualized risk-free rate.
        option_type: ``"call"`` or ``"put"``.
        settings: Iteration parameters and the accepted volatility range.

    Raises:
        NoSolution: Inputs are degenerate, vega vanishes during iteration, or
            the final volatility falls outside the accepted open interval.
    """

    if price <= 0 or S <= 0 or K <= 0 or T <= 0:
        raise NoSolution(f"Degenerate inputs: price={price}, S={S}, K={K}, T={T}")

    sigma = settings.initial_guess
    for iteration in range(settings.max_iterations):
        model_price = black_scholes_price(S, K, T, r, sigma, option_type)
        diff = price - model_price
        if abs(diff) < settings.tolerance:
            break

        vega = black_scholes_vega(S, K, T, r, sigma)
        if vega < VEGA_EPSILON:
            raise NoSolution(f"Vega vanished at sigma={sigma:.6f} after {iteration} iterations")

        sigma = sigma + diff / vega
        sigma = min(settings.upper_clamp, max(settings.lower_clamp, sigma))
    else:
        LOGGER.debug("IV solver hit %d iterations without converging (sigma=%.6f)", settings.max_iterations, sigma)

    if not settings.accept_min < sigma < settings.accept_max:
        raise NoSolution(f"Implied volatility {sigma:.6f} outside accepted range")
    return sigma


def try_implied_volatility(
    price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    option_type: str,
    settings: SolverSettings = DEFAULT_SOLVER_SETTINGS,
) -> Optional[float]:
    """Like :func:`solve_implied_volatility` but returns ``None`` on failure."""

    try:
        return solve_implied_volatility(price, S, K, T, r, option_type, settings)
    except NoSolution as exc:
        LOGGER.debug("No implied volatility for K=%s T=%.4f: %s", K, T, exc)
        return None


__all__ = [
    "DEFAULT_SOLVER_SETTINGS",
    "NoSolution",
    "SolverSettings",
    "solve_implied_volatility",
    "try_implied_volatility",
]
