"""Analytics service reusable across the CLI and the API.

The service owns all I/O: it fetches spot prices, chains and prints through
a :class:`MarketDataAdapter`, fans independent fetches out over a bounded
thread pool, memoizes provider responses in an injected cache and hands
plain records to the pure aggregation and classification functions.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

from efi_analytics.adapters import AdapterError, ContractPage, MarketDataAdapter
from efi_analytics.config.loader import AppSettings, get_settings
from efi_analytics.exposure import compute_exposure, summarize_gamma_levels
from efi_analytics.flow import FlowClassifier, annotate_prints
from efi_analytics.math.greeks import BlackScholesGreeksCalculator
from efi_analytics.math.implied_vol import SolverSettings, try_implied_volatility
from efi_analytics.models import (
    AnalyticsError,
    ContractSnapshot,
    ExposureReport,
    FlowReport,
    OptionContractKey,
    OptionGreeks,
    TradePrint,
)
from efi_analytics.storage import Cache, InMemoryTTLCache

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DAYS_PER_YEAR = 365.0


def group_by_expiration(contracts: Iterable[ContractSnapshot]) -> Dict[date, Dict[str, List[ContractSnapshot]]]:
    grouped: Dict[date, Dict[str, List[ContractSnapshot]]] = {}
    for contract in contracts:
        sides = grouped.setdefault(contract.expiration, {"calls": [], "puts": []})
        sides["calls" if contract.is_call else "puts"].append(contract)
    return grouped


class AnalyticsService:
    """Orchestrates fetch, Greeks back-fill, aggregation and classification."""

    def __init__(
        self,
        adapter: MarketDataAdapter,
        settings: AppSettings | None = None,
        cache: Cache | None = None,
        greeks_calculator: BlackScholesGreeksCalculator | None = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else InMemoryTTLCache(self.settings.cache.ttl_seconds)
        iv_settings = self.settings.iv
        self.risk_free_rate = iv_settings.risk_free_rate
        self.solver_settings = SolverSettings(
            initial_guess=iv_settings.initial_guess,
            tolerance=iv_settings.tolerance,
            max_iterations=iv_settings.max_iterations,
        )
        self.greeks_calculator = greeks_calculator or BlackScholesGreeksCalculator(self.risk_free_rate)
        self.classifier = FlowClassifier.from_settings(self.settings.flow)

    # ------------------------------------------------------------------
    # Concurrency
    # ------------------------------------------------------------------
    def _run_parallel(
        self,
        tasks: Dict[str, Callable[[], T]],
        kind: str,
    ) -> Tuple[Dict[str, T], List[AnalyticsError]]:
        """Run ``tasks`` on a bounded pool, collecting failures instead of raising.

        Each task gets ``item_timeout_seconds`` measured from the moment a
        worker picks it up, so tasks still queued behind slow ones keep
        waiting. Tasks that overrun their own timeout, and anything left when
        the runtime budget is spent, are reported as timeouts and their
        results are discarded.
        """

        results: Dict[str, T] = {}
        errors: List[AnalyticsError] = []
        if not tasks:
            return results, errors

        fetcher = self.settings.fetcher
        item_timeout = fetcher.item_timeout_seconds
        deadline = time.monotonic() + fetcher.max_runtime_seconds if fetcher.max_runtime_seconds else None
        started: Dict[str, float] = {}

        def timed(item: str, task: Callable[[], T]) -> T:
            started[item] = time.monotonic()
            return task()

        def time_out(future: concurrent.futures.Future) -> None:
            future.cancel()
            item = future_to_item[future]
            LOGGER.warning("%s fetch for %s timed out", kind, item)
            errors.append(AnalyticsError(item=item, kind="Timeout", reason="did not complete in time"))

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=min(fetcher.max_workers, len(tasks)))
        future_to_item = {executor.submit(timed, item, task): item for item, task in tasks.items()}
        pending = set(future_to_item)

        try:
            while pending:
                now = time.monotonic()
                if deadline is not None and now >= deadline:
                    break

                # Wake up when the earliest running task would overrun.
                expiries = [
                    started[future_to_item[future]] + item_timeout
                    for future in pending
                    if future_to_item[future] in started
                ]
                timeout = max(min(expiries) - now, 0.0) if expiries else item_timeout
                if deadline is not None:
                    timeout = min(timeout, deadline - now)

                done, pending = concurrent.futures.wait(
                    pending,
                    timeout=timeout,
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )

                for future in done:
                    item = future_to_item[future]
                    try:
                        results[item] = future.result()
                    except AdapterError as exc:
                        LOGGER.warning("%s fetch for %s failed: %s", kind, item, exc)
                        errors.append(AnalyticsError(item=item, kind=type(exc).__name__, reason=str(exc)))
                    except Exception as exc:  # pragma: no cover - unexpected provider failures
                        LOGGER.exception("Unexpected error in %s fetch for %s", kind, item)
                        errors.append(AnalyticsError(item=item, kind=type(exc).__name__, reason=str(exc)))

                now = time.monotonic()
                overrun = {
                    future
                    for future in pending
                    if not future.done()
                    and future_to_item[future] in started
                    and now - started[future_to_item[future]] >= item_timeout
                }
                for future in overrun:
                    time_out(future)
                pending -= overrun
        finally:
            for future in pending:
                time_out(future)
            executor.shutdown(wait=False, cancel_futures=True)

        return results, errors

    # ------------------------------------------------------------------
    # Cached provider access
    # ------------------------------------------------------------------
    def spot_price(self, symbol: str) -> float:
        symbol = symbol.upper().strip()
        return self.cache.get_or_set(("spot", symbol), lambda: self.adapter.get_spot_price(symbol))

    def contract_page(self, symbol: str, expiration: Optional[date] = None) -> ContractPage:
        key = ("contracts", symbol.upper().strip(), expiration.isoformat() if expiration else None)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        page = self.adapter.get_contracts(symbol, expiration)
        if not page.partial:
            self.cache.set(key, page)
        return page

    def _target_expirations(self, symbol: str, max_days_out: int, as_of: date) -> Optional[List[date]]:
        try:
            available = self.adapter.get_expirations(symbol)
        except NotImplementedError:
            return None
        except AdapterError as exc:
            LOGGER.warning("Could not list expirations for %s: %s", symbol, exc)
            return None
        return [expiration for expiration in available if 0 <= (expiration - as_of).days <= max_days_out]

    # ------------------------------------------------------------------
    # Greeks back-fill
    # ------------------------------------------------------------------
    def backfill_greeks(
        self,
        contracts: Sequence[ContractSnapshot],
        spot: float,
        as_of: Optional[date] = None,
    ) -> Tuple[List[ContractSnapshot], int]:
        """Fill missing Greeks from the contract IV, solving IV from the mid when absent.

        Provider values always win; only missing components are replaced.
        """

        as_of = as_of or date.today()
        filled: List[ContractSnapshot] = []
        count = 0
        for contract in contracts:
            greeks = contract.greeks
            if greeks.gamma is not None and greeks.delta is not None and greeks.vega is not None:
                filled.append(contract)
                continue

            # Same-day expirations are priced with one day left.
            years = max(contract.key.days_to_expiration(as_of), 1) / DAYS_PER_YEAR
            volatility = contract.implied_volatility
            if volatility is None and contract.mid_price:
                volatility = try_implied_volatility(
                    contract.mid_price,
                    spot,
                    contract.strike,
                    years,
                    self.risk_free_rate,
                    contract.key.option_type,
                    self.solver_settings,
                )
            if volatility is None:
                filled.append(contract)
                continue

            computed = self.greeks_calculator.calculate(
                contract.key.option_type, spot, contract.strike, years, volatility
            )
            merged = OptionGreeks(
                delta=greeks.delta if greeks.delta is not None else computed.delta,
                gamma=greeks.gamma if greeks.gamma is not None else computed.gamma,
                theta=greeks.theta if greeks.theta is not None else computed.theta,
                vega=greeks.vega if greeks.vega is not None else computed.vega,
            )
            filled.append(contract.with_greeks(merged).model_copy(update={"implied_volatility": volatility}))
            count += 1
        return filled, count

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def exposure_for_symbol(
        self,
        symbol: str,
        expirations: Optional[Sequence[date]] = None,
        max_days_out: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> ExposureReport:
        """Dealer GEX/DEX/VEX and gamma levels for ``symbol``."""

        symbol = symbol.upper().strip()
        as_of = as_of or date.today()
        exposure_settings = self.settings.exposure
        horizon = exposure_settings.max_days_out if max_days_out is None else max_days_out
        errors: List[AnalyticsError] = []

        try:
            spot = self.spot_price(symbol)
        except AdapterError as exc:
            LOGGER.warning("No spot price for %s: %s", symbol, exc)
            errors.append(AnalyticsError(item=symbol, kind=type(exc).__name__, reason=str(exc)))
            return ExposureReport(
                symbol=symbol,
                spot=0.0,
                exposure=compute_exposure({}, 0.0),
                levels=None,
                errors=errors,
            )

        targets = list(expirations) if expirations is not None else self._target_expirations(symbol, horizon, as_of)
        if targets is None:
            tasks: Dict[str, Callable[[], ContractPage]] = {symbol: lambda: self.contract_page(symbol)}
        else:
            tasks = {
                expiration.isoformat(): (lambda expiration=expiration: self.contract_page(symbol, expiration))
                for expiration in targets
            }

        pages, fetch_errors = self._run_parallel(tasks, kind="chain")
        errors.extend(fetch_errors)

        contracts: List[ContractSnapshot] = []
        partial = bool(fetch_errors)
        for item, page in pages.items():
            if page.partial:
                partial = True
                errors.extend(AnalyticsError(item=item, kind="PartialPage", reason=reason) for reason in page.errors)
            for contract in page.contracts:
                days = contract.key.days_to_expiration(as_of)
                if days < 0 or (expirations is None and days > horizon):
                    continue
                contracts.append(contract)

        contracts, backfilled = self.backfill_greeks(contracts, spot, as_of)
        exposure = compute_exposure(
            group_by_expiration(contracts),
            spot,
            gamma_ceiling=exposure_settings.gamma_ceiling,
            gamma_floor=exposure_settings.gamma_floor,
        )
        levels = None if exposure.is_empty else summarize_gamma_levels(exposure, spot, exposure_settings.top_walls)

        LOGGER.info(
            "Exposure for %s: %d contracts, %d strikes, %d back-filled, %d errors",
            symbol,
            len(contracts),
            len(exposure.all_strikes),
            backfilled,
            len(errors),
        )
        return ExposureReport(
            symbol=symbol,
            spot=spot,
            exposure=exposure,
            levels=levels,
            contracts_used=len(contracts),
            greeks_backfilled=backfilled,
            partial=partial,
            errors=errors,
        )

    def _active_contracts(self, symbol: str, errors: List[AnalyticsError]) -> List[OptionContractKey]:
        try:
            page = self.contract_page(symbol)
        except AdapterError as exc:
            errors.append(AnalyticsError(item=symbol, kind=type(exc).__name__, reason=str(exc)))
            return []
        ranked = sorted((contract for contract in page.contracts if contract.volume > 0), key=lambda c: c.volume, reverse=True)
        return [contract.key for contract in ranked[: self.settings.flow.max_contracts]]

    def flow_for_symbol(
        self,
        symbol: str,
        contracts: Optional[Sequence[Union[OptionContractKey, str]]] = None,
        since: Optional[datetime] = None,
    ) -> FlowReport:
        """Fetch prints for each contract in parallel and classify the joined tape."""

        symbol = symbol.upper().strip()
        errors: List[AnalyticsError] = []

        if contracts is None:
            keys = self._active_contracts(symbol, errors)
        else:
            keys = []
            for contract in contracts:
                if isinstance(contract, OptionContractKey):
                    keys.append(contract)
                    continue
                try:
                    keys.append(OptionContractKey.from_ticker(contract))
                except ValueError as exc:
                    errors.append(AnalyticsError(item=str(contract), kind="InvalidTicker", reason=str(exc)))

        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

        tasks: Dict[str, Callable[[], List[TradePrint]]] = {
            key.ticker: (lambda key=key: self.adapter.get_trades(key, since)) for key in keys
        }
        results, fetch_errors = self._run_parallel(tasks, kind="trades")
        errors.extend(fetch_errors)

        trades: List[TradePrint] = [trade for ticker in sorted(results) for trade in results[ticker]]
        summary = self.classifier.classify(trades)
        categorized = self.classifier.categorize(trades)

        spot: Optional[float] = None
        if categorized:
            try:
                spot = self.spot_price(symbol)
            except AdapterError as exc:
                LOGGER.warning("No spot for %s; prints reported without moneyness: %s", symbol, exc)
                errors.append(AnalyticsError(item=symbol, kind=type(exc).__name__, reason=str(exc)))
        categorized = annotate_prints(categorized, spot)

        LOGGER.info(
            "Flow for %s: %d contracts, %d prints, %d sweeps, %d blocks",
            symbol,
            len(keys),
            len(trades),
            summary.sweep_count,
            summary.block_count,
        )
        return FlowReport(
            symbol=symbol,
            summary=summary,
            categorized=categorized,
            contracts_scanned=len(keys),
            errors=errors,
        )


__all__ = ["AnalyticsService", "group_by_expiration"]
