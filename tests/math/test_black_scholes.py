import math

import pytest
from scipy.stats import norm

from efi_analytics.math.black_scholes import (
    black_scholes_price,
    black_scholes_vega,
    intrinsic_value,
    normal_cdf,
    normal_pdf,
)


def test_normal_helpers_match_reference_values():
    assert math.isclose(normal_cdf(0.0), 0.5, rel_tol=1e-12)
    assert math.isclose(normal_cdf(1.96), 0.9750021048, rel_tol=1e-9)
    assert math.isclose(normal_pdf(0.0), 0.3989422804, rel_tol=1e-9)


@pytest.mark.parametrize("x", [-3.0, -0.5, 1.0, 2.5])
def test_normal_pdf_comes_from_scipy(x):
    assert normal_pdf(x) == norm.pdf(x)
    assert normal_pdf(x) == normal_pdf(-x)


def test_textbook_call_and_put_prices():
    call = black_scholes_price(100.0, 100.0, 1.0, 0.05, 0.2, "call")
    put = black_scholes_price(100.0, 100.0, 1.0, 0.05, 0.2, "put")

    assert call == pytest.approx(10.4506, abs=1e-4)
    assert put == pytest.approx(5.5735, abs=1e-4)


def test_put_call_parity_holds():
    S, K, T, r, sigma = 250.0, 240.0, 0.35, 0.04, 0.31
    call = black_scholes_price(S, K, T, r, sigma, "call")
    put = black_scholes_price(S, K, T, r, sigma, "put")

    assert call - put == pytest.approx(S - K * math.exp(-r * T), abs=1e-9)


def test_expired_option_is_worth_intrinsic_value():
    assert black_scholes_price(105.0, 100.0, 0.0, 0.05, 0.2, "call") == 5.0
    assert black_scholes_price(105.0, 100.0, 0.0, 0.05, 0.2, "put") == 0.0
    assert intrinsic_value(95.0, 100.0, "put") == 5.0


def test_vega_is_zero_without_time_or_volatility():
    assert black_scholes_vega(100.0, 100.0, 0.0, 0.05, 0.2) == 0.0
    assert black_scholes_vega(100.0, 100.0, 1.0, 0.05, 0.0) == 0.0
    assert black_scholes_vega(100.0, 100.0, 1.0, 0.05, 0.2) > 0


def test_unknown_option_type_is_rejected():
    with pytest.raises(ValueError):
        black_scholes_price(100.0, 100.0, 1.0, 0.05, 0.2, "straddle")
