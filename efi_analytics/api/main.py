"""FastAPI application exposing the flow and exposure analytics."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from efi_analytics.adapters import MissingCredentialsError
from efi_analytics.config import get_market_data_adapter, get_settings
from efi_analytics.config.loader import AppSettings
from efi_analytics.exposure import compute_exposure, summarize_gamma_levels
from efi_analytics.flow import FlowClassifier, count_by_label
from efi_analytics.math.greeks import BlackScholesGreeksCalculator
from efi_analytics.math.implied_vol import NoSolution, solve_implied_volatility
from efi_analytics.math.probability import (
    chance_of_profit_sell_call,
    chance_of_profit_sell_put,
    probability_itm,
    probability_strikes,
)
from efi_analytics.models import (
    ExposureRequest,
    ExposureResponse,
    FlowClassifyRequest,
    FlowClassifyResponse,
    ImpliedVolatilityRequest,
    ImpliedVolatilityResponse,
    ProbabilityRequest,
    ProbabilityResponse,
    serialize_exposure,
    serialize_flow_summary,
)
from efi_analytics.scanner.service import AnalyticsService, group_by_expiration

logger = logging.getLogger(__name__)

app = FastAPI(title="EFI Analytics API", version="0.1.0")


def get_app_settings() -> AppSettings:
    return get_settings()


@lru_cache(maxsize=None)
def _default_service() -> AnalyticsService:
    return AnalyticsService(get_market_data_adapter(), get_settings())


def get_service() -> AnalyticsService:
    try:
        return _default_service()
    except MissingCredentialsError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/flow/classify", response_model=FlowClassifyResponse)
def classify(payload: FlowClassifyRequest, settings: AppSettings = Depends(get_app_settings)) -> Dict[str, Any]:
    """Classify submitted prints into sweeps, blocks and dark pool activity."""

    if not payload.trades:
        raise HTTPException(status_code=400, detail="Request must include at least one trade")

    flow = settings.flow
    classifier = FlowClassifier(
        min_size=flow.min_size if payload.min_size is None else payload.min_size,
        block_threshold=flow.block_threshold if payload.block_threshold is None else payload.block_threshold,
        window_ms=flow.window_ms if payload.window_ms is None else payload.window_ms,
        categorize_window_ms=flow.categorize_window_ms,
        dark_pool_exchanges=flow.dark_pool_exchanges,
        min_sweep_trades=flow.min_sweep_trades,
        min_sweep_exchanges=flow.min_sweep_exchanges,
    )
    summary = classifier.classify(payload.trades)
    categorized = classifier.categorize(payload.trades) if payload.categorize else []

    return FlowClassifyResponse(
        summary=serialize_flow_summary(summary),
        labeled_trades=[item.to_dict() for item in summary.labeled_trades],
        categorized=[item.to_dict() for item in categorized],
        category_counts=count_by_label(categorized) if payload.categorize else {},
    ).model_dump()


@app.post("/exposure", response_model=ExposureResponse)
def exposure(payload: ExposureRequest, settings: AppSettings = Depends(get_app_settings)) -> Dict[str, Any]:
    """Aggregate GEX/DEX/VEX for submitted contract snapshots."""

    if not payload.contracts:
        raise HTTPException(status_code=400, detail="Request must include at least one contract")

    exposure_settings = settings.exposure
    result = compute_exposure(
        group_by_expiration(payload.contracts),
        payload.spot,
        gamma_ceiling=payload.gamma_ceiling if payload.gamma_ceiling is not None else exposure_settings.gamma_ceiling,
        gamma_floor=payload.gamma_floor if payload.gamma_floor is not None else exposure_settings.gamma_floor,
    )
    levels = None if result.is_empty else summarize_gamma_levels(result, payload.spot, payload.top_walls)
    serialized = serialize_exposure(result, levels)
    levels_payload = serialized.pop("levels")
    return ExposureResponse(exposure=serialized, levels=levels_payload).model_dump()


@app.post("/implied-volatility", response_model=ImpliedVolatilityResponse)
def implied_volatility(
    payload: ImpliedVolatilityRequest, settings: AppSettings = Depends(get_app_settings)
) -> Dict[str, Any]:
    """Solve implied volatility from an observed price and return matching Greeks."""

    rate = settings.iv.risk_free_rate if payload.risk_free_rate is None else payload.risk_free_rate
    try:
        sigma = solve_implied_volatility(
            payload.price,
            payload.spot,
            payload.strike,
            payload.time_to_expiration,
            rate,
            payload.option_type,
        )
    except NoSolution as exc:
        raise HTTPException(status_code=422, detail=f"No implied volatility solution: {exc}") from exc

    greeks = BlackScholesGreeksCalculator(rate).calculate(
        payload.option_type, payload.spot, payload.strike, payload.time_to_expiration, sigma
    )
    return ImpliedVolatilityResponse(implied_volatility=sigma, greeks=greeks).model_dump()


@app.post("/probability", response_model=ProbabilityResponse)
def probability(payload: ProbabilityRequest, settings: AppSettings = Depends(get_app_settings)) -> Dict[str, Any]:
    """Chance of profit for selling calls and puts at a strike."""

    rate = settings.iv.risk_free_rate if payload.risk_free_rate is None else payload.risk_free_rate
    args = (payload.spot, payload.strike, rate, payload.volatility, payload.time_to_expiration)
    return ProbabilityResponse(
        sell_call=chance_of_profit_sell_call(*args),
        sell_put=chance_of_profit_sell_put(*args),
        call_itm=probability_itm("call", *args),
        put_itm=probability_itm("put", *args),
        strikes=probability_strikes(payload.spot, rate, payload.volatility, payload.time_to_expiration).to_dict(),
    ).model_dump()


@app.get("/exposure/{symbol}")
def live_exposure(
    symbol: str,
    days: Optional[int] = Query(default=None, ge=0),
    service: AnalyticsService = Depends(get_service),
) -> Dict[str, Any]:
    """Fetch the chain for ``symbol`` and return its exposure report."""

    report = service.exposure_for_symbol(symbol, max_days_out=days)
    if report.spot <= 0 and report.errors:
        raise HTTPException(status_code=502, detail=[error.to_dict() for error in report.errors])
    return report.to_dict()


@app.get("/flow/{symbol}")
def live_flow(
    symbol: str,
    minutes: int = Query(default=60, ge=1),
    tickers: Optional[List[str]] = Query(default=None),
    service: AnalyticsService = Depends(get_service),
) -> Dict[str, Any]:
    """Fetch recent prints for the most active contracts and classify them."""

    since = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    report = service.flow_for_symbol(symbol, contracts=tickers, since=since)
    logger.info("Flow scan for %s returned %d errors", report.symbol, len(report.errors))
    return report.to_dict()


__all__ = ["app", "get_app_settings", "get_service"]
