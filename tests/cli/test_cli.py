import json
import re
from datetime import date, timedelta
from types import SimpleNamespace

import pandas as pd
import pytest

from efi_analytics import cli
from efi_analytics.adapters import ContractPage, ProviderUnavailable
from efi_analytics.config import default_settings
from efi_analytics.math.black_scholes import black_scholes_price
from efi_analytics.models import (
    AnalyticsError,
    ContractSnapshot,
    ExposureReport,
    FlowReport,
    OptionContractKey,
    OptionGreeks,
)
from efi_analytics.exposure import compute_exposure, summarize_gamma_levels
from efi_analytics.flow import classify_flow

EXPIRY = date.today() + timedelta(days=10)


def make_contract(strike, option_type="call", gamma=0.02):
    return ContractSnapshot(
        key=OptionContractKey(underlying_symbol="SPY", strike=strike, expiration=EXPIRY, option_type=option_type),
        open_interest=250,
        volume=40,
        greeks=OptionGreeks(gamma=gamma, delta=0.5 if option_type == "call" else -0.5, vega=0.2),
    )


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_iv_command_prints_solution(capsys):
    price = black_scholes_price(100.0, 105.0, 30 / 365, 0.03, 0.25, "call")

    code = cli.run_from_args(
        ["iv", "--price", str(price), "--spot", "100", "--strike", "105", "--days", "30", "--type", "call", "--rate", "0.03"]
    )

    output = capsys.readouterr().out
    assert code == 0
    solved = float(re.search(r"Implied volatility: ([\d.]+)%", output).group(1))
    assert solved == pytest.approx(25.0, abs=1e-2)
    assert "Chance of profit selling this call" in output


def test_iv_command_reports_missing_solution(capsys):
    code = cli.run_from_args(
        ["iv", "--price", "150", "--spot", "100", "--strike", "105", "--days", "30", "--type", "call", "--rate", "0.03"]
    )

    assert code == 1
    assert "No implied volatility solution" in capsys.readouterr().out


def test_gex_command_prints_levels(monkeypatch, capsys):
    chain = {EXPIRY: {"calls": [make_contract(450.0)], "puts": [make_contract(440.0, "put", gamma=0.03)]}}
    exposure = compute_exposure(chain, spot=445.0)
    report = ExposureReport(
        symbol="SPY",
        spot=445.0,
        exposure=exposure,
        levels=summarize_gamma_levels(exposure),
        contracts_used=2,
    )
    calls = []
    service = SimpleNamespace(exposure_for_symbol=lambda symbol, max_days_out=None: calls.append((symbol, max_days_out)) or report)
    monkeypatch.setattr(cli, "_build_service", lambda env: service)

    code = cli.run_from_args(["gex", "SPY", "--days", "14", "--top", "5"])

    output = capsys.readouterr().out
    assert code == 0
    assert calls == [("SPY", 14)]
    assert "zero gamma $445.00" in output
    assert "450.0" in output and "440.0" in output


def test_gex_command_json_output(monkeypatch, capsys):
    report = ExposureReport(
        symbol="SPY",
        spot=0.0,
        exposure=compute_exposure({}, 0.0),
        levels=None,
        errors=[AnalyticsError(item="SPY", kind="DataNotAvailable", reason="no quote")],
    )
    monkeypatch.setattr(cli, "_build_service", lambda env: SimpleNamespace(exposure_for_symbol=lambda *a, **k: report))

    code = cli.run_from_args(["gex", "SPY", "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 1
    assert payload["errors"][0]["kind"] == "DataNotAvailable"


def test_flow_command_passes_tickers(monkeypatch, capsys):
    captured = {}

    def flow_for_symbol(symbol, contracts=None, since=None):
        captured.update(symbol=symbol, contracts=contracts, since=since)
        return FlowReport(symbol="SPY", summary=classify_flow([]), contracts_scanned=len(contracts or []))

    monkeypatch.setattr(cli, "_build_service", lambda env: SimpleNamespace(flow_for_symbol=flow_for_symbol))

    code = cli.run_from_args(["flow", "SPY", "--tickers", "o:spy240119c00450000, ,O:SPY240119P00440000"])

    output = capsys.readouterr().out
    assert code == 0
    assert captured["contracts"] == ["O:SPY240119C00450000", "O:SPY240119P00440000"]
    assert captured["since"].tzinfo is not None
    assert "0 prints across 2 contracts" in output
    assert "No prints in the look-back window." in output


def test_chain_command_writes_csv(monkeypatch, tmp_path, capsys):
    page = ContractPage(symbol="SPY", contracts=[make_contract(450.0), make_contract(440.0, "put")])
    monkeypatch.setattr(cli, "get_settings", lambda env=None: default_settings())
    monkeypatch.setattr(
        cli, "build_market_data_adapter", lambda settings: SimpleNamespace(get_contracts=lambda symbol, expiration: page)
    )
    target = tmp_path / "chains" / "spy.csv"

    code = cli.run_from_args(["chain", "SPY", "--output", str(target)])

    assert code == 0
    assert "Saved 2 contracts" in capsys.readouterr().out
    frame = pd.read_csv(target)
    assert frame["ticker"].tolist() == [make_contract(450.0).key.ticker, make_contract(440.0, "put").key.ticker]
    assert frame["openInterest"].tolist() == [250, 250]


def test_adapter_errors_exit_with_code_two(monkeypatch, capsys):
    def _fail(env):
        raise ProviderUnavailable("polygon is down")

    monkeypatch.setattr(cli, "_build_service", _fail)

    code = cli.run_from_args(["flow", "SPY"])

    assert code == 2
    assert "polygon is down" in capsys.readouterr().out
