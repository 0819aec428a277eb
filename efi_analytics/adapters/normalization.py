"""Map heterogeneous provider payloads onto canonical records.

Provider rows arrive in several shapes: the snapshot endpoint nests contract
terms under ``details`` and quotes under ``last_quote``, older endpoints and
cached payloads use flat camelCase keys, and trade prints carry nanosecond
``sip_timestamp`` values with integer exchange identifiers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from efi_analytics.models import ContractSnapshot, OptionContractKey, OptionGreeks, TradePrint
from efi_analytics.models.flow import epoch_to_datetime


class MalformedData(ValueError):
    """Raised when a provider row cannot be mapped onto a canonical record."""


# Polygon exchange identifiers for the options venues.
EXCHANGE_NAMES: Dict[int, str] = {
    1: "CBOE",
    2: "ISE",
    3: "NASDAQ",
    4: "NYSE",
    5: "MIAX",
    6: "PEARL",
    7: "EMERALD",
    8: "BOX",
    9: "GEMINI",
    300: "OPRA",
    302: "BATO",
    303: "BZX",
    304: "EDGX",
    309: "MIAX",
    313: "ISE",
    322: "NASDAQ",
}


def _first(mapping: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = mapping.get(name)
        if value is not None and value != "":
            return value
    return None


def _section(row: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = row.get(name)
    return value if isinstance(value, Mapping) else {}


def exchange_name(value: Any) -> str:
    """Translate a provider exchange id (or name) into a short venue code."""

    if value is None or value == "":
        return "UNKNOWN"
    if isinstance(value, bool):
        return "UNKNOWN"
    if isinstance(value, (int, float)):
        return EXCHANGE_NAMES.get(int(value), f"EX{int(value)}")
    text = str(value).strip().upper()
    if text.isdigit():
        return EXCHANGE_NAMES.get(int(text), f"EX{text}")
    return text


def parse_timestamp(value: Any) -> datetime:
    """Return a UTC datetime from nanosecond/millisecond/second epochs or ISO strings."""

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise MalformedData(f"Unparseable timestamp: {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedData(f"Unparseable timestamp: {value!r}") from exc
    try:
        return epoch_to_datetime(number)
    except ValueError as exc:
        raise MalformedData(f"Unparseable timestamp: {value!r}") from exc


def normalize_contract(row: Mapping[str, Any], underlying: Optional[str] = None) -> ContractSnapshot:
    """Build a :class:`ContractSnapshot` from a snapshot or flat contract row."""

    if not isinstance(row, Mapping):
        raise MalformedData(f"Contract row must be a mapping, got {type(row).__name__}")

    details = _section(row, "details")
    quote = _section(row, "last_quote")
    last_trade = _section(row, "last_trade")
    day = _section(row, "day")
    asset = _section(row, "underlying_asset")
    greeks_raw = _section(row, "greeks") or row

    ticker = _first(details, "ticker") or _first(row, "ticker", "contractSymbol")
    strike = _first(details, "strike_price") or _first(row, "strike_price", "strike")
    expiration = _first(details, "expiration_date") or _first(row, "expiration_date", "expiration")
    option_type = _first(details, "contract_type") or _first(row, "contract_type", "type", "option_type")
    symbol = underlying or _first(asset, "ticker") or _first(row, "underlying_symbol", "symbol")

    try:
        if strike is None or expiration is None or option_type is None:
            if ticker is None:
                raise MalformedData("Contract row has neither terms nor a ticker")
            key = OptionContractKey.from_ticker(str(ticker))
        else:
            key = OptionContractKey(
                underlying_symbol=symbol or OptionContractKey.from_ticker(str(ticker)).underlying_symbol,
                strike=float(strike),
                expiration=expiration,
                option_type=option_type,
            )

        return ContractSnapshot(
            key=key,
            open_interest=_first(row, "open_interest", "openInterest"),
            volume=_first(day, "volume") or _first(row, "volume"),
            greeks=OptionGreeks(
                delta=greeks_raw.get("delta"),
                gamma=greeks_raw.get("gamma"),
                theta=greeks_raw.get("theta"),
                vega=greeks_raw.get("vega"),
            ),
            bid=_first(quote, "bid") if quote else _first(row, "bid"),
            ask=_first(quote, "ask") if quote else _first(row, "ask"),
            last_price=_first(last_trade, "price") or _first(day, "close") or _first(row, "last_price", "lastPrice"),
            implied_volatility=_first(row, "implied_volatility", "impliedVolatility"),
            raw=dict(row),
        )
    except MalformedData:
        raise
    except (ValidationError, ValueError, TypeError) as exc:
        raise MalformedData(f"Invalid contract row {ticker or strike!r}: {exc}") from exc


def normalize_trade(row: Mapping[str, Any], key: OptionContractKey) -> TradePrint:
    """Build a :class:`TradePrint` for ``key`` from a raw print."""

    if not isinstance(row, Mapping):
        raise MalformedData(f"Trade row must be a mapping, got {type(row).__name__}")

    raw_timestamp = _first(row, "sip_timestamp", "participant_timestamp", "timestamp", "t")
    if raw_timestamp is None:
        raise MalformedData("Trade row has no timestamp")

    try:
        return TradePrint(
            key=key,
            timestamp=parse_timestamp(raw_timestamp),
            size=_first(row, "size", "s"),
            price=_first(row, "price", "p"),
            exchange=exchange_name(_first(row, "exchange", "x")),
            conditions=tuple(int(code) for code in row.get("conditions") or ()),
        )
    except MalformedData:
        raise
    except (ValidationError, TypeError, ValueError) as exc:
        raise MalformedData(f"Invalid trade row for {key.ticker}: {exc}") from exc


__all__ = [
    "EXCHANGE_NAMES",
    "MalformedData",
    "exchange_name",
    "normalize_contract",
    "normalize_trade",
    "parse_timestamp",
]
