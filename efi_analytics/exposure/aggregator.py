"""Dealer exposure aggregation (GEX / DEX / VEX) per expiration and strike.

Per contract with open interest, using the provider's per-share Greeks and
the 100-share contract multiplier:

* ``gex = ±gamma × OI × S² × 100`` (calls positive, puts negative)
* ``dex = delta × OI × S × 100``
* ``vex = vega × OI × 100``

Gamma values outside ``[gamma_floor, gamma_ceiling]`` are provider noise
(stale or mis-scaled quotes) and are left out of GEX only.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Mapping, Set

from efi_analytics.models import ContractSnapshot, ExposureBucket, ExposureResult

LOGGER = logging.getLogger(__name__)

ContractsByExpiration = Mapping[date, Mapping[str, Iterable[ContractSnapshot]]]


def _gamma_in_range(gamma: float, floor: float, ceiling: float) -> bool:
    magnitude = abs(gamma)
    return floor <= magnitude <= ceiling


def compute_exposure(
    contracts_by_expiration: ContractsByExpiration,
    spot: float,
    gamma_ceiling: float = 1.0,
    gamma_floor: float = 1e-6,
) -> ExposureResult:
    """Aggregate GEX, DEX and VEX for every touched ``(expiration, strike)``.

    ``contracts_by_expiration`` maps each expiration to ``{"calls": [...],
    "puts": [...]}``. A non-positive spot or an empty chain yields an empty
    result rather than an error.
    """

    result = ExposureResult(spot=spot)
    if spot is None or spot <= 0 or not contracts_by_expiration:
        return result

    strikes: Set[float] = set()
    spot_squared = spot * spot

    for expiration, sides in contracts_by_expiration.items():
        for side in ("calls", "puts"):
            for contract in sides.get(side) or ():
                if contract.open_interest <= 0:
                    continue

                oi = contract.open_interest
                strike = contract.strike
                greeks = contract.greeks
                sign = 1.0 if contract.is_call else -1.0

                bucket = result.buckets.setdefault(expiration, {}).setdefault(strike, ExposureBucket())
                strikes.add(strike)

                gamma = greeks.value("gamma")
                if gamma and _gamma_in_range(gamma, gamma_floor, gamma_ceiling):
                    gex = sign * gamma * oi * spot_squared * 100
                    bucket.gex += gex
                    target = result.call_gex if contract.is_call else result.put_gex
                    target[strike] = target.get(strike, 0.0) + gex
                elif gamma:
                    result.skipped_gamma += 1

                bucket.dex += greeks.value("delta") * oi * spot * 100
                bucket.vex += greeks.value("vega") * oi * 100

    result.all_strikes = sorted(strikes)
    if result.skipped_gamma:
        LOGGER.info("Ignored %d out-of-range gamma values", result.skipped_gamma)
    return result


class ExposureAggregator:
    """Bind the gamma sanity bounds from configuration."""

    def __init__(self, gamma_ceiling: float = 1.0, gamma_floor: float = 1e-6) -> None:
        self.gamma_ceiling = gamma_ceiling
        self.gamma_floor = gamma_floor

    def aggregate(self, contracts_by_expiration: ContractsByExpiration, spot: float) -> ExposureResult:
        return compute_exposure(
            contracts_by_expiration,
            spot,
            gamma_ceiling=self.gamma_ceiling,
            gamma_floor=self.gamma_floor,
        )


__all__ = ["ContractsByExpiration", "ExposureAggregator", "compute_exposure"]
