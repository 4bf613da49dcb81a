import argparse
import json
import sys

import pytest

import run_backtest
from cci_trading.data.mock_provider import MockCandleSource
from cci_trading.utils.config import Config


@pytest.mark.parametrize("raw, expected", [
    ("entry_threshold=120", ("entry_threshold", 120)),
    ("profit_target=2.5", ("profit_target", 2.5)),
    ("stage_policy = seed_fraction", ("stage_policy", "seed_fraction")),
    ("flag=yes", ("flag", True)),
])
def test_parse_param(raw, expected):
    assert run_backtest.parse_param(raw) == expected


def test_build_settings_applies_cli_overrides():
    args = argparse.Namespace(symbol="ETHUSDT", timeframe="1h", period=None, count=300,
                              policy="current_size", param=["cci_length=14"])
    settings = run_backtest.build_settings(Config(), args)

    assert settings.symbol == "ETHUSDT"
    assert settings.timeframe == "1h"
    assert settings.candle_count == 300
    assert settings.stage_policy == "current_size"
    assert settings.cci_length == 14
    assert settings.test_period == "1년"


def run_cli(monkeypatch, tmp_path, *argv):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", ["run_backtest.py", "--config", "missing.yaml", *argv])
    return run_backtest.main()


def test_main_json_on_sample_data(monkeypatch, tmp_path, capsys):
    code = run_cli(monkeypatch, tmp_path, "--source", "sample", "--count", "400", "--json")

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["metrics"]["candle_count"] == 400
    assert report["metrics"]["synthetic_data"] is True
    assert len(report["equity_curve"]) == 400 - 20 + 1


def test_main_compare_policies(monkeypatch, tmp_path, capsys):
    code = run_cli(monkeypatch, tmp_path, "--source", "sample", "--count", "300",
                   "--compare", "doubling", "seed_fraction", "--json")

    assert code == 0
    assert set(json.loads(capsys.readouterr().out)) == {"doubling", "seed_fraction"}


def test_main_rejects_invalid_settings(monkeypatch, tmp_path, capsys):
    code = run_cli(monkeypatch, tmp_path, "--source", "sample", "-p", "exit_threshold=200")
    assert code == 2
    assert "exit_threshold" in capsys.readouterr().err


def test_main_lists_policies(monkeypatch, tmp_path, capsys):
    assert run_cli(monkeypatch, tmp_path, "--list-policies") == 0
    assert "doubling" in capsys.readouterr().out


def test_main_reports_zero_result_without_candles(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(run_backtest, "create_candle_source", lambda config, name=None: MockCandleSource())

    code = run_cli(monkeypatch, tmp_path, "--count", "100", "--json")

    captured = capsys.readouterr()
    assert code == 0
    metrics = json.loads(captured.out)["metrics"]
    assert metrics["total_trades"] == 0
    assert metrics["candle_count"] == 0
    assert metrics["final_capital"] == metrics["seed_money"]
    assert "캔들이 없습니다" in captured.err
