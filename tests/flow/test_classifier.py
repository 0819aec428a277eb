from datetime import date, datetime, timezone

import pytest

from efi_analytics.config import default_settings
from efi_analytics.flow import (
    FlowClassifier,
    annotate_prints,
    categorize_contract_flow,
    classify_flow,
    count_by_label,
    days_to_expiry,
    group_trades_by_time_window,
    moneyness,
    premium_bucket,
)
from efi_analytics.models import OptionContractKey, TradeLabel, TradePrint

# Epoch milliseconds aligned to a 3 second bucket boundary.
BASE_MS = 1_700_000_001_000

SPY_CALL = OptionContractKey(underlying_symbol="SPY", strike=450.0, expiration=date(2024, 1, 19), option_type="call")
SPY_PUT = OptionContractKey(underlying_symbol="SPY", strike=440.0, expiration=date(2024, 1, 19), option_type="put")


def make_trade(offset_ms, size=20, price=1.0, exchange="CBOE", key=SPY_CALL):
    return TradePrint(key=key, timestamp=BASE_MS + offset_ms, size=size, price=price, exchange=exchange)


def test_sweep_requires_three_prints_across_two_venues():
    trades = [
        make_trade(0, exchange="CBOE"),
        make_trade(500, exchange="ISE"),
        make_trade(1500, exchange="CBOE"),
    ]

    summary = classify_flow(trades)

    assert summary.sweep_count == 1
    sweep = summary.sweeps[0]
    assert sweep.trades == 3
    assert sweep.exchanges == 2
    assert sweep.total_premium == pytest.approx(6_000.0)
    assert sweep.average_premium == pytest.approx(2_000.0)
    assert all(TradeLabel.SWEEP in item.labels for item in summary.labeled_trades)


def test_single_venue_burst_is_not_a_sweep():
    trades = [make_trade(offset, exchange="CBOE") for offset in (0, 100, 200, 300)]

    summary = classify_flow(trades)

    assert summary.sweep_count == 0
    assert all(not item.labels for item in summary.labeled_trades)


def test_window_is_anchored_on_first_print():
    trades = [make_trade(2001), make_trade(0), make_trade(2000)]

    windows = group_trades_by_time_window(trades, window_ms=2000)

    assert [len(window.trades) for window in windows] == [2, 1]
    assert windows[0].start_time == make_trade(0).timestamp
    assert (windows[0].end_time - windows[0].start_time).total_seconds() == 2.0


def test_block_threshold_is_inclusive():
    at_threshold = make_trade(0, size=100, price=5.0)
    below = make_trade(10_000, size=100, price=4.99)

    summary = classify_flow([at_threshold, below])

    assert summary.block_count == 1
    block = summary.blocks[0]
    assert block.premium == pytest.approx(50_000.0)
    assert block.size == 100
    assert block.strike == 450.0
    assert block.option_type == "call"


def test_dark_pool_venues_are_flagged():
    trades = [make_trade(0, exchange="EDGX"), make_trade(5_000, exchange="bats"), make_trade(9_000, exchange="CBOE")]

    summary = classify_flow(trades)

    assert summary.dark_pool_count == 2
    assert [item.exchange for item in summary.dark_pool] == ["EDGX", "BATS"]


def test_small_prints_are_dropped_before_statistics():
    trades = [make_trade(0, size=5, price=100.0), make_trade(1_000, size=10, price=2.0)]

    summary = classify_flow(trades, min_size=10)

    assert summary.trades_processed == 1
    assert summary.block_count == 0
    assert summary.premium.total == pytest.approx(2_000.0)
    assert summary.premium.max == pytest.approx(2_000.0)


def test_premium_histogram_and_average():
    trades = [
        make_trade(0, size=10, price=0.5),
        make_trade(10_000, size=10, price=5.0),
        make_trade(20_000, size=10, price=200.0),
    ]

    summary = classify_flow(trades)

    assert summary.premium.buckets == {
        "under_1k": 1,
        "1k_10k": 1,
        "10k_50k": 0,
        "50k_100k": 0,
        "over_100k": 1,
    }
    assert summary.premium.average == pytest.approx((500 + 5_000 + 200_000) / 3)


def test_one_print_in_every_premium_band():
    premiums = [500, 5_000, 20_000, 75_000, 150_000]
    trades = [make_trade(index * 10_000, size=10, price=premium / 1_000) for index, premium in enumerate(premiums)]

    summary = classify_flow(trades)

    assert summary.premium.buckets == {"under_1k": 1, "1k_10k": 1, "10k_50k": 1, "50k_100k": 1, "over_100k": 1}
    assert summary.premium.total == pytest.approx(250_500)
    assert summary.premium.average == pytest.approx(50_100)
    assert summary.premium.max == pytest.approx(150_000)
    assert summary.block_count == 2


@pytest.mark.parametrize(
    "premium, bucket",
    [
        (999.99, "under_1k"),
        (1_000, "1k_10k"),
        (10_000, "10k_50k"),
        (50_000, "50k_100k"),
        (100_000, "over_100k"),
    ],
)
def test_premium_bucket_edges(premium, bucket):
    assert premium_bucket(premium) == bucket


def test_empty_input_yields_zeroed_summary():
    summary = classify_flow([])

    assert summary.trades_processed == 0
    assert summary.to_dict()["premium"] == {
        "total": 0.0,
        "average": 0.0,
        "max": 0.0,
        "buckets": {"under_1k": 0, "1k_10k": 0, "10k_50k": 0, "50k_100k": 0, "over_100k": 0},
    }


def test_categorize_collapses_fills_per_contract_and_bucket():
    trades = [
        # Sweep: two venues in one bucket.
        make_trade(0, size=10, price=2.0, exchange="CBOE"),
        make_trade(1_000, size=30, price=3.0, exchange="ISE"),
        # Block: one venue, large premium.
        make_trade(0, size=200, price=3.0, exchange="CBOE", key=SPY_PUT),
        # Mini: the next bucket for the call.
        make_trade(3_000, size=1, price=1.0, exchange="CBOE"),
    ]

    prints = categorize_contract_flow(trades, window_ms=3000, block_threshold=50_000)

    assert [item.label for item in prints] == [TradeLabel.BLOCK, TradeLabel.SWEEP, TradeLabel.MINI]
    sweep = prints[1]
    assert sweep.key == SPY_CALL
    assert sweep.size == 40
    assert sweep.fills == 2
    assert sweep.price == pytest.approx((10 * 2.0 + 30 * 3.0) / 40)
    assert sweep.total_premium == pytest.approx(11_000.0)
    assert sweep.exchanges == ["CBOE", "ISE"]
    assert count_by_label(prints) == {"SWEEP": 1, "BLOCK": 1, "MINI": 1}


def test_bucket_boundaries_are_epoch_aligned():
    prints = categorize_contract_flow([make_trade(2_999), make_trade(3_000)], window_ms=3000)

    assert len(prints) == 2


def test_count_by_label_starts_at_zero():
    assert count_by_label([]) == {"SWEEP": 0, "BLOCK": 0, "MINI": 0}


@pytest.mark.parametrize(
    "strike, spot, option_type, expected",
    [
        (100.0, 100.4, "call", "ATM"),
        (95.0, 100.0, "call", "ITM"),
        (105.0, 100.0, "call", "OTM"),
        (105.0, 100.0, "put", "ITM"),
        (95.0, 100.0, "put", "OTM"),
    ],
)
def test_moneyness(strike, spot, option_type, expected):
    assert moneyness(strike, spot, option_type) == expected


def test_days_to_expiry_rounds_partial_days_up():
    as_of = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    assert days_to_expiry(date(2024, 1, 3), as_of) == 2
    assert days_to_expiry(date(2024, 1, 1), datetime(2024, 1, 1)) == 0


def test_classifier_binds_configured_thresholds():
    settings = default_settings(flow={"min_size": 1, "block_threshold": 1_000})
    classifier = FlowClassifier.from_settings(settings.flow)

    summary = classifier.classify([make_trade(0, size=5, price=2.0)])

    assert summary.trades_processed == 1
    assert summary.block_count == 1
    assert classifier.categorize([make_trade(0, size=5, price=2.0)])[0].label is TradeLabel.BLOCK


def test_annotate_prints_adds_moneyness_and_days_to_expiry():
    prints = categorize_contract_flow([make_trade(0, key=SPY_CALL), make_trade(0, key=SPY_PUT)])
    as_of = datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc)

    annotated = annotate_prints(prints, spot=452.0, as_of=as_of)

    by_type = {item.key.option_type: item for item in annotated}
    assert by_type["call"].moneyness == "ITM"
    assert by_type["put"].moneyness == "OTM"
    assert {item.days_to_expiry for item in annotated} == {9}
    assert by_type["call"].to_dict()["moneyness"] == "ITM"
    assert prints[0].moneyness is None


def test_annotate_prints_without_spot_leaves_moneyness_empty():
    prints = categorize_contract_flow([make_trade(0)])

    annotated = annotate_prints(prints, spot=None, as_of=datetime(2024, 1, 19, tzinfo=timezone.utc))

    assert annotated[0].moneyness is None
    assert annotated[0].days_to_expiry == 0
