"""
technical.py
------------
Technical indicators computed locally from daily OHLCV history (pandas).

compute_indicators(df) returns one flat dict per ticker:
  trend       sma50, sma200, price_vs_sma50, price_vs_sma200 (%)
  momentum    rsi14 (+ rsi_signal), macd / macd_signal / macd_histogram / macd_trend,
              stochastic_k / stochastic_d
  volatility  bollinger_upper / middle / lower / position, atr14, atr_percent
  volume      current_volume, avg_volume20, volume_change (%), obv, obv_trend
  trend power adx, plus_di, minus_di
  levels      fibonacci_levels {high, low, level0 … level100, trend, current_level}
plus chart series: historical_prices, sma50_history, sma200_history.

RSI uses the simple average of the last 14 daily changes (100 when there
were no losses). Values are rounded to 2 decimals.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any

import pandas as pd

from tracker.market_data import fetch_history

logger = logging.getLogger(__name__)

MIN_ROWS = 26   # enough for a 26-period MACD

_FIB_RATIOS = {
    "level0":   0.0,
    "level236": 0.236,
    "level382": 0.382,
    "level500": 0.5,
    "level618": 0.618,
    "level786": 0.786,
    "level100": 1.0,
}


def _r2(value: Any) -> float | None:
    if value is None:
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return round(value, 2)


def _last(series: pd.Series) -> float | None:
    series = series.dropna()
    return _r2(series.iloc[-1]) if not series.empty else None


# ---------------------------------------------------------------------------
# Indicator primitives
# ---------------------------------------------------------------------------

def sma(series: pd.Series, window: int) -> pd.Series:
    return series.rolling(window, min_periods=window).mean()


def ema(series: pd.Series, span: int) -> pd.Series:
    return series.ewm(span=span, adjust=False).mean()


def rsi(close: pd.Series, period: int = 14) -> float | None:
    """Simple-average RSI over the last `period` changes."""
    if len(close) < period + 1:
        return None
    delta = close.diff().iloc[-period:]
    avg_gain = delta.clip(lower=0).sum() / period
    avg_loss = (-delta).clip(lower=0).sum() / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return _r2(100 - 100 / (1 + rs))


def macd(close: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9):
    line = ema(close, fast) - ema(close, slow)
    signal_line = ema(line, signal)
    return line, signal_line, line - signal_line


def true_range(df: pd.DataFrame) -> pd.Series:
    prev_close = df["close"].shift(1)
    return pd.concat(
        [
            (df["high"] - df["low"]).abs(),
            (df["high"] - prev_close).abs(),
            (df["low"] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)


def adx(df: pd.DataFrame, period: int = 14):
    """Wilder's ADX with +DI / -DI (smoothed with alpha = 1/period)."""
    up = df["high"].diff()
    down = -df["low"].diff()
    plus_dm = up.where((up > down) & (up > 0), 0.0)
    minus_dm = down.where((down > up) & (down > 0), 0.0)

    atr_w = true_range(df).ewm(alpha=1 / period, adjust=False).mean()
    plus_di = 100 * plus_dm.ewm(alpha=1 / period, adjust=False).mean() / atr_w
    minus_di = 100 * minus_dm.ewm(alpha=1 / period, adjust=False).mean() / atr_w
    dx = 100 * (plus_di - minus_di).abs() / (plus_di + minus_di)
    return dx.ewm(alpha=1 / period, adjust=False).mean(), plus_di, minus_di


def obv(df: pd.DataFrame) -> pd.Series:
    direction = df["close"].diff().apply(lambda d: 1 if d > 0 else (-1 if d < 0 else 0))
    return (direction * df["volume"].fillna(0)).cumsum()


def fibonacci_levels(df: pd.DataFrame, price: float) -> dict[str, Any] | None:
    high_idx = df["high"].idxmax()
    low_idx = df["low"].idxmin()
    high = float(df["high"].loc[high_idx])
    low = float(df["low"].loc[low_idx])
    diff = high - low
    if diff <= 0:
        return None

    levels: dict[str, Any] = {"high": _r2(high), "low": _r2(low)}
    for name, ratio in _FIB_RATIOS.items():
        levels[name] = _r2(high - diff * ratio)
    levels["trend"] = "uptrend" if low_idx < high_idx else "downtrend"
    levels["current_level"] = min(_FIB_RATIOS, key=lambda name: abs(levels[name] - price))
    return levels


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compute_indicators(df: pd.DataFrame | None) -> dict[str, Any] | None:
    """All indicators for a chronological OHLCV frame. None when history is too short."""
    if df is None or len(df) < MIN_ROWS:
        return None

    df = df.reset_index(drop=True)
    close = df["close"].astype(float)
    price = float(close.iloc[-1])

    sma50_s = sma(close, 50)
    sma200_s = sma(close, 200)
    sma50 = _last(sma50_s)
    sma200 = _last(sma200_s)

    rsi14 = rsi(close, 14)
    if rsi14 is None:
        rsi_signal = None
    elif rsi14 > 70:
        rsi_signal = "overbought"
    elif rsi14 < 30:
        rsi_signal = "oversold"
    else:
        rsi_signal = "neutral"

    macd_line, signal_line, hist = macd(close)
    h_now, h_prev = float(hist.iloc[-1]), float(hist.iloc[-2])
    if h_now > 0 and h_now > h_prev:
        macd_trend = "bullish"
    elif h_now < 0 and h_now < h_prev:
        macd_trend = "bearish"
    else:
        macd_trend = "neutral"

    middle = sma(close, 20)
    std = close.rolling(20, min_periods=20).std()
    bb_upper = _last(middle + 2 * std)
    bb_lower = _last(middle - 2 * std)
    bb_middle = _last(middle)
    bb_position = None
    if bb_upper is not None and bb_lower is not None and bb_upper > bb_lower:
        bb_position = _r2((price - bb_lower) / (bb_upper - bb_lower) * 100)

    low14 = df["low"].rolling(14, min_periods=14).min()
    high14 = df["high"].rolling(14, min_periods=14).max()
    stoch_k = (close - low14) / (high14 - low14) * 100
    stoch_d = stoch_k.rolling(3, min_periods=3).mean()

    volume = df["volume"].astype(float)
    current_volume = _r2(volume.iloc[-1])
    avg_volume20 = _last(volume.rolling(20, min_periods=20).mean())
    volume_change = None
    if avg_volume20 and current_volume is not None:
        volume_change = _r2((current_volume - avg_volume20) / avg_volume20 * 100)

    atr14 = _last(true_range(df).rolling(14, min_periods=14).mean())
    obv_s = obv(df)
    obv_ref = obv_s.iloc[-21] if len(obv_s) > 20 else obv_s.iloc[0]
    obv_now = float(obv_s.iloc[-1])
    obv_trend = "bullish" if obv_now > obv_ref else "bearish" if obv_now < obv_ref else "neutral"

    adx_s, plus_di, minus_di = adx(df)
    dates = df["date"].dt.strftime("%Y-%m-%d") if "date" in df else pd.Series(df.index.astype(str))

    return {
        "current_price":    _r2(price),
        "sma50":            sma50,
        "sma200":           sma200,
        "price_vs_sma50":   _r2((price - sma50) / sma50 * 100) if sma50 else None,
        "price_vs_sma200":  _r2((price - sma200) / sma200 * 100) if sma200 else None,
        "rsi14":            rsi14,
        "rsi_signal":       rsi_signal,
        "macd":             _r2(macd_line.iloc[-1]),
        "macd_signal":      _r2(signal_line.iloc[-1]),
        "macd_histogram":   _r2(h_now),
        "macd_trend":       macd_trend,
        "bollinger_upper":  bb_upper,
        "bollinger_middle": bb_middle,
        "bollinger_lower":  bb_lower,
        "bollinger_position": bb_position,
        "stochastic_k":     _last(stoch_k),
        "stochastic_d":     _last(stoch_d),
        "current_volume":   current_volume,
        "avg_volume20":     avg_volume20,
        "volume_change":    volume_change,
        "atr14":            atr14,
        "atr_percent":      _r2(atr14 / price * 100) if atr14 and price else None,
        "obv":              _r2(obv_now),
        "obv_trend":        obv_trend,
        "adx":              _last(adx_s),
        "plus_di":          _last(plus_di),
        "minus_di":         _last(minus_di),
        "fibonacci_levels": fibonacci_levels(df, price),
        "historical_prices": [
            {"date": d, "close": _r2(c)} for d, c in zip(dates, close)
        ],
        "sma50_history": [
            {"date": d, "value": _r2(v)} for d, v in zip(dates, sma50_s) if not math.isnan(v)
        ],
        "sma200_history": [
            {"date": d, "value": _r2(v)} for d, v in zip(dates, sma200_s) if not math.isnan(v)
        ],
    }


def fetch_technical_data(ticker: str, stock_name: str | None = None) -> dict[str, Any]:
    """Fetch 1y history for `ticker` and compute its indicators.

    Always returns a dict with ticker / stock_name; `error` is set on failure.
    """
    base = {"ticker": ticker, "stock_name": stock_name or ticker}
    indicators = compute_indicators(fetch_history(ticker, "1y"))
    if indicators is None:
        return {**base, "error": "Not enough price history"}
    return {**base, **indicators}


def fetch_technical_data_batch(holdings: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[str]]:
    """Indicators for each unique ticker in `holdings`. Returns (data, errors)."""
    unique = {h["ticker"]: h for h in holdings}
    data, errors = [], []
    for ticker, h in unique.items():
        row = fetch_technical_data(ticker, h.get("stock_name"))
        if row.get("error"):
            errors.append(f"{ticker}: {row['error']}")
        data.append(row)
        time.sleep(0.1)
    return data, errors
