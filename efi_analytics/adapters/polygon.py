"""Adapter implementation backed by the Polygon.io REST API."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests

from efi_analytics.config.loader import PolygonSettings, get_settings
from efi_analytics.models import OptionContractKey, TradePrint

from .base import (
    AdapterError,
    ContractPage,
    DataNotAvailable,
    MarketDataAdapter,
    MissingCredentialsError,
    ProviderUnavailable,
    RateLimitError,
)
from .normalization import MalformedData, normalize_contract, normalize_trade
from .rate_limit import TokenBucket, backoff_delay

LOGGER = logging.getLogger(__name__)

RATE_LIMITED_STATUS = 429


def _with_api_key(url: str, api_key: str) -> str:
    """Return ``url`` with ``apiKey`` set; Polygon cursors omit the credential."""

    parsed = urlparse(url)
    query = [(name, value) for name, value in parse_qsl(parsed.query, keep_blank_values=True) if name.lower() != "apikey"]
    query.append(("apiKey", api_key))
    return urlunparse(parsed._replace(query=urlencode(query)))


class PolygonMarketDataAdapter(MarketDataAdapter):
    """Fetch option snapshots, prints and spot prices from Polygon.io.

    Expected environment variables:
        * ``POLYGON_API_KEY`` - API key used to authenticate requests.
        * ``POLYGON_BASE_URL`` - Optional override for the Polygon REST endpoint.
    """

    def __init__(
        self,
        settings: PolygonSettings | None = None,
        session: requests.Session | None = None,
        rate_limiter: TokenBucket | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or get_settings().polygon
        if not self._settings.api_key:
            raise MissingCredentialsError("POLYGON_API_KEY is not configured")
        self._api_key = self._settings.api_key
        self._base_url = self._settings.base_url
        self._session = session or requests.Session()
        self._limiter = rate_limiter or TokenBucket(self._settings.requests_per_second, self._settings.burst)
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "polygon"

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _request(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """GET ``url`` through the rate limiter, retrying transient failures."""

        attempts = self._settings.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            self._limiter.acquire()
            try:
                response = self._session.get(url, params=params, timeout=self._settings.timeout_seconds)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = ProviderUnavailable(f"Request to {urlparse(url).path} failed: {exc}")
                LOGGER.warning(
                    "Polygon request failed (attempt %d/%d): %s", attempt + 1, attempts, exc
                )
            else:
                status = response.status_code
                if status == RATE_LIMITED_STATUS:
                    last_error = RateLimitError(f"Rate limited by Polygon on {urlparse(url).path}")
                elif 500 <= status < 600:
                    last_error = ProviderUnavailable(f"Polygon returned HTTP {status} for {urlparse(url).path}")
                elif status == 404:
                    raise DataNotAvailable(f"No data at {urlparse(url).path}")
                elif status in (401, 403):
                    raise MissingCredentialsError(f"Polygon rejected the API key (HTTP {status})")
                elif status >= 400:
                    raise AdapterError(f"Polygon returned HTTP {status} for {urlparse(url).path}")
                else:
                    try:
                        payload = response.json()
                    except ValueError as exc:
                        raise AdapterError(f"Polygon returned invalid JSON for {urlparse(url).path}") from exc
                    if not isinstance(payload, dict):
                        raise AdapterError(f"Unexpected payload type {type(payload).__name__}")
                    return payload
                LOGGER.warning("%s (attempt %d/%d)", last_error, attempt + 1, attempts)

            if attempt < attempts - 1:
                self._sleep(
                    backoff_delay(attempt, self._settings.base_delay, self._settings.max_delay, self._settings.jitter)
                )

        if last_error is not None:
            raise last_error
        raise AdapterError(f"Request to {urlparse(url).path} failed: unknown error")

    def _paginate(self, path: str, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        """Yield each page of results, following ``next_url`` cursors."""

        url: Optional[str] = f"{self._base_url}{path}"
        query: Optional[Dict[str, Any]] = dict(params, apiKey=self._api_key)
        while url:
            payload = self._request(url, query)
            yield payload
            next_url = payload.get("next_url")
            url = _with_api_key(next_url, self._api_key) if next_url else None
            query = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_contracts(self, symbol: str, expiration: Optional[date] = None) -> ContractPage:
        symbol = symbol.upper().strip()
        params: Dict[str, Any] = {"limit": self._settings.page_limit}
        if expiration is not None:
            params["expiration_date"] = expiration.isoformat()

        page = ContractPage(symbol=symbol)
        cap = self._settings.max_contracts
        pages = self._paginate(f"/v3/snapshot/options/{symbol}", params)
        try:
            for payload in pages:
                for row in payload.get("results") or []:
                    try:
                        page.contracts.append(normalize_contract(row, underlying=symbol))
                    except MalformedData as exc:
                        LOGGER.warning("Skipping malformed contract for %s: %s", symbol, exc)
                if len(page.contracts) >= cap:
                    if payload.get("next_url"):
                        LOGGER.info("Stopping %s pagination at the %d contract cap", symbol, cap)
                        page.partial = True
                    del page.contracts[cap:]
                    break
        except MissingCredentialsError:
            raise
        except AdapterError as exc:
            LOGGER.warning(
                "Pagination for %s stopped after %d contracts: %s", symbol, len(page.contracts), exc
            )
            page.partial = True
            page.errors.append(str(exc))

        return page

    def get_trades(
        self,
        contract: Union[OptionContractKey, str],
        since: Optional[datetime] = None,
    ) -> List[TradePrint]:
        key = contract if isinstance(contract, OptionContractKey) else OptionContractKey.from_ticker(contract)
        params: Dict[str, Any] = {"limit": 50_000, "order": "asc", "sort": "timestamp"}
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            params["timestamp.gte"] = int(since.timestamp() * 1_000_000_000)

        trades: List[TradePrint] = []
        for payload in self._paginate(f"/v3/trades/{key.ticker}", params):
            for row in payload.get("results") or []:
                try:
                    trades.append(normalize_trade(row, key))
                except MalformedData as exc:
                    LOGGER.warning("Skipping malformed print for %s: %s", key.ticker, exc)
        return trades

    def get_spot_price(self, symbol: str) -> float:
        symbol = symbol.upper().strip()
        try:
            payload = self._request(f"{self._base_url}/v2/last/trade/{symbol}", {"apiKey": self._api_key})
            price = (payload.get("results") or {}).get("p")
            if price and float(price) > 0:
                return float(price)
        except (DataNotAvailable, MissingCredentialsError) as exc:
            # The last-trade endpoint needs a stocks entitlement; fall back to the previous close.
            LOGGER.info("Last trade unavailable for %s (%s); using previous close", symbol, exc)

        payload = self._request(f"{self._base_url}/v2/aggs/ticker/{symbol}/prev", {"apiKey": self._api_key})
        results = payload.get("results") or []
        if results and results[0].get("c"):
            return float(results[0]["c"])
        raise DataNotAvailable(f"No spot price available for {symbol}")

    def get_expirations(self, symbol: str) -> Sequence[date]:
        symbol = symbol.upper().strip()
        params = {
            "underlying_ticker": symbol,
            "expired": "false",
            "limit": 1000,
            "expiration_date.gte": date.today().isoformat(),
        }
        expirations = set()
        for payload in self._paginate("/v3/reference/options/contracts", params):
            for row in payload.get("results") or []:
                raw = row.get("expiration_date")
                try:
                    expirations.add(datetime.strptime(str(raw), "%Y-%m-%d").date())
                except ValueError:
                    LOGGER.debug("Ignoring unparseable expiration %r for %s", raw, symbol)
        return sorted(expirations)


__all__ = ["PolygonMarketDataAdapter"]
