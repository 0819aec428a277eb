from datetime import date

import pytest

from efi_analytics.exposure import compute_exposure, gex_profile, summarize_gamma_levels
from efi_analytics.models import ContractSnapshot, ExposureResult, OptionContractKey, OptionGreeks

EXPIRY = date(2024, 3, 15)


def contract(strike, option_type, oi, gamma):
    return ContractSnapshot(
        key=OptionContractKey(underlying_symbol="QQQ", strike=strike, expiration=EXPIRY, option_type=option_type),
        open_interest=oi,
        greeks=OptionGreeks(gamma=gamma),
    )


@pytest.fixture
def mixed_result():
    chain = {
        EXPIRY: {
            "calls": [
                contract(100.0, "call", 300, 0.05),
                contract(105.0, "call", 100, 0.04),
            ],
            "puts": [
                contract(90.0, "put", 400, 0.03),
                contract(95.0, "put", 200, 0.04),
                contract(100.0, "put", 100, 0.05),
            ],
        }
    }
    return compute_exposure(chain, spot=100.0)


def test_profile_nets_calls_and_puts_by_strike(mixed_result):
    profile = gex_profile(mixed_result)

    assert profile["strike"].tolist() == [90.0, 95.0, 100.0, 105.0]
    net = dict(zip(profile["strike"], profile["net_gex"]))
    assert net[100.0] == pytest.approx((300 - 100) * 0.05 * 100.0**2 * 100)
    assert net[90.0] < 0 and net[95.0] < 0


def test_levels_totals_and_environment(mixed_result):
    levels = summarize_gamma_levels(mixed_result)

    assert levels.total_call_gex == pytest.approx(sum(mixed_result.call_gex.values()))
    assert levels.total_put_gex == pytest.approx(sum(mixed_result.put_gex.values()))
    assert levels.total_net_gex == pytest.approx(levels.total_call_gex + levels.total_put_gex)
    assert levels.gamma_environment == ("POSITIVE" if levels.total_net_gex > 0 else "NEGATIVE")


def test_zero_gamma_is_midpoint_of_first_sign_change(mixed_result):
    levels = summarize_gamma_levels(mixed_result)

    # Net GEX turns positive between the 95 and 100 strikes.
    assert levels.zero_gamma_level == pytest.approx(97.5)


def test_flip_level_is_largest_absolute_net(mixed_result):
    levels = summarize_gamma_levels(mixed_result)

    # |net| at 90 = 400*0.03 = 12 units, above 100's 10 units.
    assert levels.gex_flip_level == 90.0


def test_walls_are_split_by_side_and_ranked(mixed_result):
    levels = summarize_gamma_levels(mixed_result, top_n=2)

    assert [wall.strike for wall in levels.call_walls] == [100.0, 105.0]
    assert [wall.strike for wall in levels.put_walls] == [90.0, 100.0]
    assert all(wall.gex > 0 for wall in levels.put_walls)


def test_no_sign_change_falls_back_to_spot():
    chain = {EXPIRY: {"calls": [contract(100.0, "call", 10, 0.05), contract(110.0, "call", 10, 0.02)], "puts": []}}

    levels = summarize_gamma_levels(compute_exposure(chain, spot=101.5))

    assert levels.zero_gamma_level == 101.5
    assert levels.gamma_environment == "POSITIVE"
    assert levels.to_dict()["is_positive_gamma"] is True


def test_empty_result_reports_spot_levels():
    levels = summarize_gamma_levels(ExposureResult(spot=412.0))

    assert levels.total_net_gex == 0.0
    assert levels.zero_gamma_level == 412.0
    assert levels.gex_flip_level == 412.0
    assert levels.gamma_environment == "NEGATIVE"
    assert levels.call_walls == [] and levels.put_walls == []
