from datetime import date, datetime, timezone

import pytest

from efi_analytics.adapters.normalization import (
    MalformedData,
    exchange_name,
    normalize_contract,
    normalize_trade,
    parse_timestamp,
)
from efi_analytics.models import OptionContractKey

SNAPSHOT_ROW = {
    "break_even_price": 455.2,
    "day": {"close": 5.1, "volume": 1520},
    "details": {
        "contract_type": "call",
        "exercise_style": "american",
        "expiration_date": "2024-01-19",
        "shares_per_contract": 100,
        "strike_price": 450,
        "ticker": "O:SPY240119C00450000",
    },
    "greeks": {"delta": 0.52, "gamma": 0.031, "theta": -0.21, "vega": 0.44},
    "implied_volatility": 0.142,
    "last_quote": {"ask": 5.2, "bid": 5.0},
    "last_trade": {"price": 5.15, "size": 3},
    "open_interest": 18234,
    "underlying_asset": {"price": 451.3, "ticker": "SPY"},
}


def test_snapshot_row_is_normalized():
    contract = normalize_contract(SNAPSHOT_ROW)

    assert contract.key == OptionContractKey(
        underlying_symbol="SPY", strike=450.0, expiration=date(2024, 1, 19), option_type="call"
    )
    assert contract.open_interest == 18234
    assert contract.volume == 1520
    assert contract.greeks.gamma == pytest.approx(0.031)
    assert contract.bid == 5.0 and contract.ask == 5.2
    assert contract.mid_price == pytest.approx(5.1)
    assert contract.last_price == 5.15
    assert contract.implied_volatility == pytest.approx(0.142)
    assert contract.key.ticker == "O:SPY240119C00450000"


def test_flat_camel_case_row_is_normalized():
    row = {
        "symbol": "aapl",
        "strike": "185",
        "expiration": "2024-02-16T00:00:00",
        "type": "P",
        "openInterest": "1200",
        "volume": None,
        "lastPrice": 2.35,
        "impliedVolatility": 0.27,
        "delta": "-0.41",
        "gamma": "nan",
    }

    contract = normalize_contract(row)

    assert contract.key.underlying_symbol == "AAPL"
    assert contract.key.option_type == "put"
    assert contract.open_interest == 1200
    assert contract.volume == 0
    assert contract.greeks.delta == pytest.approx(-0.41)
    assert contract.greeks.gamma is None
    assert contract.mid_price == 2.35


def test_ticker_alone_is_enough_to_identify_contract():
    contract = normalize_contract({"ticker": "O:TSLA240315P00175500", "open_interest": 10})

    assert contract.key.underlying_symbol == "TSLA"
    assert contract.strike == 175.5
    assert contract.key.option_type == "put"
    assert contract.greeks.is_empty


@pytest.mark.parametrize(
    "row",
    [
        {"open_interest": 10},
        {"strike": "abc", "expiration": "2024-01-19", "type": "call", "symbol": "SPY"},
        {"strike": 100, "expiration": "2024-01-19", "type": "straddle", "symbol": "SPY"},
        ["not", "a", "mapping"],
    ],
)
def test_malformed_contract_rows_raise(row):
    with pytest.raises(MalformedData):
        normalize_contract(row)


def test_trade_with_nanosecond_timestamp_and_exchange_id():
    key = OptionContractKey.from_ticker("O:SPY240119C00450000")
    row = {
        "conditions": [209],
        "exchange": 302,
        "price": 5.15,
        "sip_timestamp": 1_700_000_000_123_456_789,
        "size": 25,
    }

    trade = normalize_trade(row, key)

    assert trade.exchange == "BATO"
    assert trade.size == 25
    assert trade.total_premium == pytest.approx(25 * 5.15 * 100)
    assert trade.conditions == (209,)
    assert trade.timestamp == datetime(2023, 11, 14, 22, 13, 20, 123457, tzinfo=timezone.utc)


def test_trade_without_timestamp_or_size_is_malformed():
    key = OptionContractKey.from_ticker("O:SPY240119C00450000")

    with pytest.raises(MalformedData):
        normalize_trade({"price": 1.0, "size": 1}, key)
    with pytest.raises(MalformedData):
        normalize_trade({"t": 1_700_000_000_000, "p": 1.0, "s": 0}, key)


@pytest.mark.parametrize(
    "value, expected",
    [
        (1_700_000_000_000_000_000, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
        (1_700_000_000_000_000, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
        (1_700_000_000_000, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
        (1_700_000_000, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
        ("2023-11-14T22:13:20Z", datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp_units(value, expected):
    assert parse_timestamp(value) == expected


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(MalformedData):
        parse_timestamp("yesterday")
    with pytest.raises(MalformedData):
        parse_timestamp(-1)


def test_exchange_name_lookup():
    assert exchange_name(1) == "CBOE"
    assert exchange_name("304") == "EDGX"
    assert exchange_name(999) == "EX999"
    assert exchange_name("bats") == "BATS"
    assert exchange_name(None) == "UNKNOWN"
