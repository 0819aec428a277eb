"""Command line interface for the flow and exposure analytics."""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from efi_analytics.adapters import AdapterError
from efi_analytics.config import build_market_data_adapter, get_settings
from efi_analytics.math.greeks import BlackScholesGreeksCalculator
from efi_analytics.math.implied_vol import NoSolution, solve_implied_volatility
from efi_analytics.math.probability import chance_of_profit_sell_call, chance_of_profit_sell_put
from efi_analytics.scanner.service import AnalyticsService

LOGGER = logging.getLogger("efi_analytics.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="efi-analytics", description="Options flow and dealer exposure analytics")
    parser.add_argument("--env", default=None, help="Configuration environment (defaults to APP_ENV or 'dev')")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    gex = subparsers.add_parser("gex", help="Dealer gamma/delta/vega exposure for a symbol")
    gex.add_argument("symbol")
    gex.add_argument("--days", type=int, default=None, help="Maximum days to expiration to include")
    gex.add_argument("--top", type=int, default=10, help="Number of strikes to display")
    gex.add_argument("--json", action="store_true", help="Print the full report as JSON")

    flow = subparsers.add_parser("flow", help="Classify recent option prints for a symbol")
    flow.add_argument("symbol")
    flow.add_argument("--minutes", type=int, default=60, help="Look-back window in minutes")
    flow.add_argument(
        "--tickers",
        type=str,
        default="",
        help="Comma separated option tickers (defaults to the most active contracts)",
    )
    flow.add_argument("--top", type=int, default=10, help="Number of categorized prints to display")
    flow.add_argument("--json", action="store_true", help="Print the full report as JSON")

    iv = subparsers.add_parser("iv", help="Solve implied volatility for one option price")
    iv.add_argument("--price", type=float, required=True, help="Observed option price per share")
    iv.add_argument("--spot", type=float, required=True, help="Underlying price")
    iv.add_argument("--strike", type=float, required=True)
    iv.add_argument("--days", type=float, required=True, help="Calendar days to expiration")
    iv.add_argument("--type", dest="option_type", choices=["call", "put"], required=True)
    iv.add_argument("--rate", type=float, default=None, help="Risk-free rate (defaults to config)")

    chain = subparsers.add_parser("chain", help="Dump the normalized option chain for a symbol")
    chain.add_argument("symbol")
    chain.add_argument("--expiration", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    chain.add_argument("--output", type=Path, default=None, help="Write the chain to this CSV file")

    return parser


def _configure_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if log_file is None:
        return
    log_file.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger("efi_analytics")
    if not any(isinstance(existing, logging.FileHandler) for existing in root.handlers):
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def _tokenize_tickers(raw: str) -> Sequence[str]:
    if not raw:
        return []
    return [token.strip().upper() for token in raw.split(",") if token.strip()]


def _print_frame(frame: pd.DataFrame, empty_message: str) -> None:
    if frame.empty:
        print(empty_message)
        return
    with pd.option_context("display.max_columns", None, "display.width", 160):
        print(frame.to_string(index=False))


def _build_service(env: Optional[str]) -> AnalyticsService:
    settings = get_settings(env)
    return AnalyticsService(build_market_data_adapter(settings), settings)


def _run_gex(args: argparse.Namespace) -> int:
    service = _build_service(args.env)
    report = service.exposure_for_symbol(args.symbol, max_days_out=args.days)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
        return 0 if report.spot > 0 else 1

    for error in report.errors:
        print(f"! {error.item}: {error.kind} - {error.reason}")
    if report.spot <= 0:
        return 1

    print(f"{report.symbol} spot ${report.spot:,.2f} | {report.contracts_used} contracts | partial={report.partial}")
    levels = report.levels
    if levels is None:
        print("No open interest within the selected expirations.")
        return 0

    print(
        f"Net GEX {levels.total_net_gex:,.0f} ({levels.gamma_environment}) | "
        f"zero gamma ${levels.zero_gamma_level:,.2f} | flip ${levels.gex_flip_level:,.2f}"
    )
    frame = report.exposure.to_frame()
    by_strike = frame.groupby("strike", as_index=False)[["gex", "dex", "vex"]].sum()
    by_strike = by_strike.reindex(by_strike["gex"].abs().sort_values(ascending=False).index).head(args.top)
    _print_frame(by_strike, "No strikes to display.")
    return 0


def _run_flow(args: argparse.Namespace) -> int:
    service = _build_service(args.env)
    since = datetime.now(timezone.utc) - timedelta(minutes=args.minutes)
    tickers = _tokenize_tickers(args.tickers) or None
    report = service.flow_for_symbol(args.symbol, contracts=tickers, since=since)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
        return 0

    for error in report.errors:
        print(f"! {error.item}: {error.kind} - {error.reason}")
    summary = report.summary
    premium = summary.premium
    print(
        f"{report.symbol}: {summary.trades_processed} prints across {report.contracts_scanned} contracts | "
        f"{summary.sweep_count} sweeps, {summary.block_count} blocks, {summary.dark_pool_count} dark pool | "
        f"premium ${premium.total:,.0f} (avg ${premium.average:,.0f}, max ${premium.max:,.0f})"
    )
    rows = [item.to_dict() for item in report.categorized[: args.top]]
    columns = ["ticker", "trade_type", "moneyness", "days_to_expiry", "timestamp", "size", "price", "total_premium", "fills"]
    _print_frame(pd.DataFrame(rows, columns=columns), "No prints in the look-back window.")
    return 0


def _run_iv(args: argparse.Namespace) -> int:
    rate = args.rate if args.rate is not None else get_settings(args.env).iv.risk_free_rate
    years = args.days / 365.0
    try:
        sigma = solve_implied_volatility(args.price, args.spot, args.strike, years, rate, args.option_type)
    except NoSolution as exc:
        print(f"No implied volatility solution: {exc}")
        return 1

    greeks = BlackScholesGreeksCalculator(rate).calculate(args.option_type, args.spot, args.strike, years, sigma)
    print(f"Implied volatility: {sigma:.4%}")
    print(f"Delta {greeks.delta:.4f} | Gamma {greeks.gamma:.6f} | Theta {greeks.theta:.4f}/day | Vega {greeks.vega:.4f}")
    if args.option_type == "call":
        print(f"Chance of profit selling this call: {chance_of_profit_sell_call(args.spot, args.strike, rate, sigma, years):.2f}%")
    else:
        print(f"Chance of profit selling this put: {chance_of_profit_sell_put(args.spot, args.strike, rate, sigma, years):.2f}%")
    return 0


def _run_chain(args: argparse.Namespace) -> int:
    page = build_market_data_adapter(get_settings(args.env)).get_contracts(args.symbol, args.expiration)
    frame = page.to_dataframe()
    if page.partial:
        LOGGER.warning("Chain for %s is partial: %s", page.symbol, "; ".join(page.errors))
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(args.output, index=False)
        print(f"Saved {len(frame)} contracts to {args.output}")
        return 0
    _print_frame(frame, "No contracts returned.")
    return 0


COMMANDS = {
    "gex": _run_gex,
    "flow": _run_flow,
    "iv": _run_iv,
    "chain": _run_chain,
}


def _dispatch(args: argparse.Namespace) -> int:
    try:
        return COMMANDS[args.command](args)
    except AdapterError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}")
        return 2


def run_from_args(argv: Sequence[str] | None = None) -> int:
    return _dispatch(build_parser().parse_args(argv))


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_file, args.verbose)
    return _dispatch(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
