import pandas as pd

from tracker import mock_data, technical


def _frame(closes):
    n = len(closes)
    return pd.DataFrame({
        "date":   pd.bdate_range(end="2025-01-31", periods=n),
        "open":   closes,
        "high":   [c + 1 for c in closes],
        "low":    [c - 1 for c in closes],
        "close":  closes,
        "volume": [1000] * n,
    })


def test_short_history_returns_none():
    assert technical.compute_indicators(None) is None
    assert technical.compute_indicators(_frame([100.0] * 25)) is None


def test_rsi_without_losses_is_100():
    close = pd.Series([float(i) for i in range(1, 30)])
    assert technical.rsi(close) == 100.0


def test_rsi_simple_average():
    # 7 gains of +2 and 7 losses of -1 over the last 14 changes
    values = [100.0]
    for i in range(14):
        values.append(values[-1] + (2 if i % 2 == 0 else -1))
    assert technical.rsi(pd.Series(values)) == round(100 - 100 / (1 + 14 / 7), 2)


def test_fibonacci_levels_uptrend():
    df = _frame([float(c) for c in range(100, 130)])
    fib = technical.fibonacci_levels(df, price=128.0)
    assert fib["high"] == 130.0
    assert fib["low"] == 99.0
    assert fib["trend"] == "uptrend"
    assert fib["level0"] == 130.0
    assert fib["level100"] == 99.0
    assert fib["current_level"] == "level0"


def test_fibonacci_flat_series_has_no_levels():
    df = _frame([100.0] * 30)
    df["high"] = 100.0
    df["low"] = 100.0
    assert technical.fibonacci_levels(df, 100.0) is None


def test_indicators_on_mock_history():
    ind = technical.compute_indicators(mock_data.price_history("AAPL"))

    assert ind["current_price"] == 228.0
    assert ind["sma50"] is not None and ind["sma200"] is not None
    assert 0 <= ind["rsi14"] <= 100
    assert ind["rsi_signal"] in ("overbought", "oversold", "neutral")
    assert ind["macd_trend"] in ("bullish", "bearish", "neutral")
    assert ind["bollinger_lower"] < ind["bollinger_middle"] < ind["bollinger_upper"]
    assert ind["obv_trend"] in ("bullish", "bearish", "neutral")
    assert len(ind["historical_prices"]) == 260
    assert len(ind["sma200_history"]) == 260 - 199
    assert ind["fibonacci_levels"]["current_level"].startswith("level")


def test_batch_collects_errors(monkeypatch):
    monkeypatch.setattr(technical, "fetch_history", lambda t, r: mock_data.price_history(t) if t == "KO" else None)
    monkeypatch.setattr(technical.time, "sleep", lambda s: None)

    data, errors = technical.fetch_technical_data_batch(
        [{"ticker": "KO", "stock_name": "Coca-Cola"}, {"ticker": "ZZZ"}],
    )
    assert data[0]["ticker"] == "KO" and "error" not in data[0]
    assert data[1]["error"] == "Not enough price history"
    assert errors == ["ZZZ: Not enough price history"]
