"""
market_data.py
--------------
Live quotes, FX rates and daily price history from the Yahoo Finance chart
endpoint (no API key needed).

  Quotes    /v8/finance/chart/{ticker}?interval=1d&range=1mo
  FX        /v8/finance/chart/{FROM}{TO}=X   (CZK → CZK is always 1)
  History   /v8/finance/chart/{ticker}?interval=1d&range=1y  → pandas OHLCV

Caching:
  - Quotes: 15-minute TTL (module-level dict)
  - FX rates: 1-hour TTL (module-level dict)
  Both caches survive for the lifetime of the process only.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import pandas as pd
import requests

from tracker import supabase_client as db

logger = logging.getLogger(__name__)

_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
_HEADERS   = {"User-Agent": "Mozilla/5.0 (portfolio-tracker)"}

# ── Caches ─────────────────────────────────────────────────────────────────────
_quote_cache: dict[str, tuple[dict[str, Any], datetime]] = {}   # ticker → (quote, fetched_at)
_fx_cache:    dict[str, tuple[float, datetime]]          = {}   # "USDCZK" → (rate, fetched_at)

_QUOTE_TTL = timedelta(minutes=15)
_FX_TTL    = timedelta(hours=1)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fetch_quote(ticker: str) -> dict[str, Any] | None:
    """Latest quote {ticker, price, currency, change, change_percent, volume, avg_volume20}.

    Returns None on failure. Results are cached for 15 minutes.
    """
    t = ticker.upper()
    now = datetime.now(timezone.utc)

    if t in _quote_cache:
        quote, fetched_at = _quote_cache[t]
        if now - fetched_at < _QUOTE_TTL:
            return quote

    quote = parse_chart_quote(_chart(t, "1mo"), t)
    if quote is not None:
        _quote_cache[t] = (quote, now)
    return quote


def fetch_live_price(ticker: str) -> float | None:
    quote = fetch_quote(ticker)
    return quote["price"] if quote else None


def fetch_live_prices(tickers: list[str]) -> dict[str, float]:
    """Batch-fetch prices for multiple tickers. Returns {ticker: price}."""
    result: dict[str, float] = {}
    for t in {tk.upper() for tk in tickers}:
        price = fetch_live_price(t)
        if price is not None:
            result[t] = price
    return result


def fetch_exchange_rate(from_ccy: str, to_ccy: str = "CZK") -> float | None:
    if from_ccy == to_ccy:
        return 1.0
    key = f"{from_ccy}{to_ccy}"
    now = datetime.now(timezone.utc)
    if key in _fx_cache:
        rate, fetched_at = _fx_cache[key]
        if now - fetched_at < _FX_TTL:
            return rate

    data = _chart(f"{key}=X", "1d")
    try:
        rate = data["chart"]["result"][0]["meta"]["regularMarketPrice"]
    except (KeyError, IndexError, TypeError):
        return None
    if rate:
        _fx_cache[key] = (float(rate), now)
        return float(rate)
    return None


def fetch_history(ticker: str, range_: str = "1y") -> pd.DataFrame | None:
    """Daily OHLCV history as a DataFrame (date, open, high, low, close, volume)."""
    data = _chart(ticker.upper(), range_)
    try:
        result = data["chart"]["result"][0]
        quote = result["indicators"]["quote"][0]
        df = pd.DataFrame({
            "date":   pd.to_datetime(result["timestamp"], unit="s"),
            "open":   quote["open"],
            "high":   quote["high"],
            "low":    quote["low"],
            "close":  quote["close"],
            "volume": quote["volume"],
        })
    except (KeyError, IndexError, TypeError) as exc:
        logger.debug("history %s unavailable: %s", ticker, exc)
        return None
    return df.dropna(subset=["close"]).reset_index(drop=True)


def refresh_all_prices() -> dict[str, Any]:
    """Fetch quotes for every held stock and upsert `current_prices`.

    Returns {updated, failed, errors}.
    """
    results: dict[str, Any] = {"updated": 0, "failed": 0, "errors": []}
    holdings = db.select("holdings", "stock_id,ticker,currency") or []
    if not holdings:
        logger.info("prices: no holdings to update")
        return results

    rates: dict[str, float] = {"CZK": 1.0}
    for ccy in {h.get("currency") or "USD" for h in holdings}:
        if ccy not in rates:
            rate = fetch_exchange_rate(ccy, "CZK")
            if rate:
                rates[ccy] = rate

    for h in holdings:
        quote = fetch_quote(h["ticker"])
        if not quote:
            results["failed"] += 1
            results["errors"].append(f"No quote for {h['ticker']}")
            continue
        try:
            db.insert(
                "current_prices",
                {
                    "stock_id":             h["stock_id"],
                    "price":                quote["price"],
                    "currency":             quote["currency"],
                    "exchange_rate_to_czk": rates.get(h.get("currency") or "USD", 1),
                    "price_change":         quote["change"],
                    "price_change_percent": quote["change_percent"],
                    "volume":               quote["volume"],
                    "avg_volume_20":        quote["avg_volume20"],
                    "updated_at":           datetime.now(timezone.utc).isoformat(),
                },
                upsert=True,
                on_conflict="stock_id",
            )
            results["updated"] += 1
        except db.SupabaseError as exc:
            results["failed"] += 1
            results["errors"].append(f"Update failed for {h['ticker']}: {exc}")

    logger.info("prices: updated %d, failed %d", results["updated"], results["failed"])
    return results


def parse_chart_quote(data: dict | None, ticker: str) -> dict[str, Any] | None:
    """Extract a quote from a Yahoo chart response; None when price data is missing."""
    try:
        result = data["chart"]["result"][0]
    except (KeyError, IndexError, TypeError):
        return None
    meta = result.get("meta") or {}
    price = meta.get("regularMarketPrice")

    series = ((result.get("indicators") or {}).get("quote") or [{}])[0]
    closes  = [v for v in series.get("close") or [] if isinstance(v, (int, float)) and v > 0]
    volumes = [v for v in series.get("volume") or [] if isinstance(v, (int, float)) and v > 0]

    prev_close = (
        meta.get("regularMarketPreviousClose")
        or (closes[-2] if len(closes) >= 2 else None)
        or meta.get("previousClose")
        or meta.get("chartPreviousClose")
    )
    if price is None or not prev_close:
        return None

    volume = meta.get("regularMarketVolume")
    if volume is None and volumes:
        volume = volumes[-1]
    last20 = volumes[-20:]

    return {
        "ticker":         meta.get("symbol") or ticker,
        "price":          float(price),
        "currency":       meta.get("currency") or "USD",
        "change":         price - prev_close,
        "change_percent": (price - prev_close) / prev_close * 100,
        "volume":         volume,
        "avg_volume20":   sum(last20) / len(last20) if last20 else None,
    }


# ---------------------------------------------------------------------------
# Private: Yahoo
# ---------------------------------------------------------------------------

def _chart(symbol: str, range_: str) -> dict | None:
    try:
        r = requests.get(
            _CHART_URL.format(symbol=symbol),
            params={"interval": "1d", "range": range_},
            headers=_HEADERS,
            timeout=10,
        )
        r.raise_for_status()
        return r.json()
    except Exception as exc:
        logger.debug("Yahoo chart %s failed: %s", symbol, exc)
    return None
