"""Key dealer gamma levels derived from an exposure result."""

from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd

from efi_analytics.models import ExposureResult, GammaLevels, GammaWall


def gex_profile(result: ExposureResult) -> pd.DataFrame:
    """Per-strike call/put/net GEX summed across expirations, ordered by strike."""

    strikes = sorted(set(result.call_gex) | set(result.put_gex))
    frame = pd.DataFrame(
        {
            "strike": np.array(strikes, dtype=float),
            "call_gex": np.array([result.call_gex.get(strike, 0.0) for strike in strikes], dtype=float),
            "put_gex": np.array([result.put_gex.get(strike, 0.0) for strike in strikes], dtype=float),
        }
    )
    frame["net_gex"] = frame["call_gex"] + frame["put_gex"]
    return frame


def _zero_gamma_level(profile: pd.DataFrame, spot: float) -> float:
    net = profile["net_gex"].to_numpy()
    signs = np.sign(net)
    # A crossing needs strictly opposite signs on adjacent strikes.
    crossings = np.nonzero(signs[:-1] * signs[1:] < 0)[0]
    if crossings.size == 0:
        return spot
    index = int(crossings[0])
    strikes = profile["strike"].to_numpy()
    return float((strikes[index] + strikes[index + 1]) / 2)


def _walls(profile: pd.DataFrame, column: str, top_n: int) -> List[GammaWall]:
    ordered = profile.reindex(profile["net_gex"].abs().sort_values(ascending=False, kind="mergesort").index)
    selected = ordered[ordered[column] > 0] if column == "call_gex" else ordered[ordered[column] < 0]
    return [
        GammaWall(strike=float(row.strike), gex=float(abs(getattr(row, column))))
        for row in selected.head(top_n).itertuples(index=False)
    ]


def summarize_gamma_levels(result: ExposureResult, spot: float | None = None, top_n: int = 5) -> GammaLevels:
    """Totals, walls, zero-gamma crossing and flip level for one underlying."""

    spot = result.spot if spot is None else spot
    profile = gex_profile(result)
    if profile.empty:
        return GammaLevels(
            total_call_gex=0.0,
            total_put_gex=0.0,
            total_net_gex=0.0,
            zero_gamma_level=spot,
            gex_flip_level=spot,
            gamma_environment="NEGATIVE",
        )

    total_call = float(profile["call_gex"].sum())
    total_put = float(profile["put_gex"].sum())
    total_net = total_call + total_put

    magnitude = profile["net_gex"].abs()
    flip_level = float(profile.loc[magnitude.idxmax(), "strike"]) if magnitude.max() > 0 else spot

    return GammaLevels(
        total_call_gex=total_call,
        total_put_gex=total_put,
        total_net_gex=total_net,
        zero_gamma_level=_zero_gamma_level(profile, spot),
        gex_flip_level=flip_level,
        gamma_environment="POSITIVE" if total_net > 0 else "NEGATIVE",
        call_walls=_walls(profile, "call_gex", top_n),
        put_walls=_walls(profile, "put_gex", top_n),
        net_gex_by_strike={float(row.strike): float(row.net_gex) for row in profile.itertuples(index=False)},
    )


__all__ = ["gex_profile", "summarize_gamma_levels"]
