"""
analyst_data.py
---------------
Per-ticker analyst, fundamental and insider data from Finnhub.

Endpoints (free tier):
  /stock/recommendation       latest analyst buckets → consensus score + key
  /quote                      price / change (US listings only)
  /stock/earnings             last 4 quarterly surprises
  /stock/metric?metric=all    fundamentals + 52-week range
  /stock/profile2             industry
  /stock/insider-sentiment    monthly MSPR (last 12 months kept)
  /stock/price-target         analyst target (premium; skipped when denied)

Non-US listings (ticker with an exchange suffix) always take their price and
52-week range from Yahoo, since Finnhub may quote the ADR in USD.

DATA_MODE=mock (or no FINNHUB_API_KEY) returns deterministic rows from mock_data.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import date, timedelta
from typing import Any

import requests
from dotenv import load_dotenv

from tracker import market_data, mock_data

load_dotenv()

logger = logging.getLogger(__name__)

FINNHUB_API_KEY: str = os.getenv("FINNHUB_API_KEY", "")
DATA_MODE: str       = os.getenv("DATA_MODE", "mock")   # "mock" | "live"

_BASE_URL = "https://finnhub.io/api/v1"

# Yahoo exchange suffix → Finnhub suffix ("" strips it)
_SUFFIX_MAP = {
    ".DE": ".DE", ".L": ".L", ".PA": "", ".AS": "", ".SW": "",
    ".MI": "", ".MC": "", ".TO": "",
}


def is_configured() -> bool:
    return bool(FINNHUB_API_KEY)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fetch_analyst_data(holdings: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[str]]:
    """Analyst rows for every unique ticker in `holdings`.

    Each holding needs `ticker`; `stock_name` and `finnhub_ticker` are optional.
    Returns (rows, errors).
    """
    unique = {h["ticker"]: h for h in holdings}
    if DATA_MODE == "mock" or not is_configured():
        return mock_data.analyst_rows(list(unique)), []

    rows, errors = [], []
    for ticker, h in unique.items():
        row = fetch_ticker(ticker, h.get("stock_name"), h.get("finnhub_ticker"))
        if row.get("error"):
            errors.append(f"{ticker}: {row['error']}")
        rows.append(row)
        time.sleep(0.1)
    logger.info("analyst: fetched %d tickers, %d errors", len(rows), len(errors))
    return rows, errors


def fetch_ticker(ticker: str, stock_name: str | None = None,
                 finnhub_ticker: str | None = None) -> dict[str, Any]:
    symbol = finnhub_ticker or to_finnhub_ticker(ticker)
    today = date.today()

    recs     = _get("/stock/recommendation", symbol=symbol)
    quote    = _get("/quote", symbol=symbol)
    earnings = _get("/stock/earnings", symbol=symbol)
    metrics  = _get("/stock/metric", symbol=symbol, metric="all")
    profile  = _get("/stock/profile2", symbol=symbol)
    insider  = _get("/stock/insider-sentiment", symbol=symbol,
                    **{"from": (today - timedelta(days=365)).isoformat(), "to": today.isoformat()})
    target   = _get("/stock/price-target", symbol=symbol)

    if recs is None and quote is None and metrics is None:
        return {"ticker": ticker, "stock_name": stock_name or ticker, "error": "Finnhub unavailable"}

    return parse_analyst_payload(
        ticker, stock_name,
        recs=recs, quote=quote, earnings=earnings, metrics=metrics,
        profile=profile, insider=insider, target=target,
    )


def parse_analyst_payload(
    ticker: str,
    stock_name: str | None,
    *,
    recs: Any = None,
    quote: dict | None = None,
    earnings: Any = None,
    metrics: dict | None = None,
    profile: dict | None = None,
    insider: dict | None = None,
    target: dict | None = None,
) -> dict[str, Any]:
    """Combine raw Finnhub responses into one analyst row."""
    m = (metrics or {}).get("metric") or {}
    row: dict[str, Any] = {
        "ticker":     ticker,
        "stock_name": stock_name or (profile or {}).get("name") or ticker,
        "industry":   (profile or {}).get("finnhubIndustry"),
    }

    # ── Price ──
    price = change = change_pct = high52 = low52 = None
    if not is_non_us(ticker) and quote:
        price, change, change_pct = quote.get("c"), quote.get("d"), quote.get("dp")
        high52, low52 = m.get("52WeekHigh"), m.get("52WeekLow")
    if is_non_us(ticker) or not price:
        yq = market_data.fetch_quote(ticker)
        if yq:
            price, change, change_pct = yq["price"], yq["change"], yq["change_percent"]
        if high52 is None or low52 is None:
            hist = market_data.fetch_history(ticker, "1y")
            if hist is not None and not hist.empty:
                high52, low52 = float(hist["high"].max()), float(hist["low"].min())
    row.update({
        "current_price":        price,
        "price_change":         change,
        "price_change_percent": change_pct,
        "fifty_two_week_high":  high52,
        "fifty_two_week_low":   low52,
    })

    row.update(parse_recommendations(recs))

    row["earnings"] = [
        {
            "period":           e.get("period"),
            "actual":           e.get("actual"),
            "estimate":         e.get("estimate"),
            "surprise":         e.get("surprise"),
            "surprise_percent": e.get("surprisePercent"),
        }
        for e in (earnings if isinstance(earnings, list) else [])[:4]
    ]
    row["fundamentals"] = parse_fundamentals(m)
    row["insider_sentiment"] = parse_insider_sentiment(insider)
    row["analyst_target_price"] = (target or {}).get("targetMean") or None
    return row


def parse_recommendations(recs: Any) -> dict[str, Any]:
    """Latest recommendation buckets, consensus score (-2..+2) and majority key."""
    out: dict[str, Any] = {
        "strong_buy": None, "buy": None, "hold": None, "sell": None, "strong_sell": None,
        "number_of_analysts": None, "consensus_score": None,
        "recommendation_key": None, "recommendation_period": None,
    }
    if not isinstance(recs, list) or not recs:
        return out

    latest = recs[0]
    sb, b, h = latest.get("strongBuy") or 0, latest.get("buy") or 0, latest.get("hold") or 0
    s, ss = latest.get("sell") or 0, latest.get("strongSell") or 0
    n = sb + b + h + s + ss
    out.update({
        "strong_buy": sb, "buy": b, "hold": h, "sell": s, "strong_sell": ss,
        "number_of_analysts":    n,
        "recommendation_period": latest.get("period"),
    })
    if n == 0:
        return out

    out["consensus_score"] = round((2 * sb + b - s - 2 * ss) / n, 2)
    buys, sells = sb + b, s + ss
    if buys > sells and buys > h:
        out["recommendation_key"] = "strong_buy" if sb > b else "buy"
    elif sells > buys and sells > h:
        out["recommendation_key"] = "sell" if ss > s else "underperform"
    else:
        out["recommendation_key"] = "hold"
    return out


def parse_fundamentals(m: dict[str, Any]) -> dict[str, Any]:
    def first(*keys: str) -> Any:
        for k in keys:
            if m.get(k) is not None:
                return m[k]
        return None

    return {
        "pe_ratio":          first("peBasicExclExtraTTM", "peTTM"),
        "pb_ratio":          first("pbQuarterly", "pbAnnual"),
        "ps_ratio":          first("psTTM"),
        "peg_ratio":         first("pegTTM"),
        "dividend_yield":    first("dividendYieldIndicatedAnnual", "dividendYield5Y"),
        "beta":              first("beta"),
        "roe":               first("roeRfy", "roeTTM"),
        "roa":               first("roaRfy", "roaTTM"),
        "gross_margin":      first("grossMarginTTM", "grossMargin5Y"),
        "operating_margin":  first("operatingMarginTTM", "operatingMargin5Y"),
        "net_margin":        first("netProfitMarginTTM", "netProfitMargin5Y"),
        "debt_to_equity":    first("totalDebt/totalEquityQuarterly", "totalDebt/totalEquityAnnual"),
        "current_ratio":     first("currentRatioQuarterly", "currentRatioAnnual"),
        "quick_ratio":       first("quickRatioQuarterly", "quickRatioAnnual"),
        "revenue_growth":    first("revenueGrowthQuarterlyYoy", "revenueGrowth3Y"),
        "revenue_growth_5y": first("revenueGrowth5Y"),
        "eps_growth":        first("epsGrowthQuarterlyYoy", "epsGrowth3Y"),
        "market_cap":        first("marketCapitalization"),
    }


def parse_insider_sentiment(payload: dict | None) -> dict[str, Any] | None:
    """Aggregate (last 3 months) plus the monthly breakdown, newest first."""
    data = (payload or {}).get("data")
    if not isinstance(data, list) or not data:
        return None

    recent = data[-3:]
    monthly = [
        {"year": d.get("year"), "month": d.get("month"),
         "mspr": d.get("mspr"), "change": d.get("change")}
        for d in reversed(data)
        if d.get("year") and d.get("month")
    ]
    return {
        "mspr":         round(sum(d.get("mspr") or 0 for d in recent) / len(recent), 2),
        "change":       sum(d.get("change") or 0 for d in recent),
        "monthly_data": monthly,
    }


def is_non_us(ticker: str) -> bool:
    return "." in ticker


def to_finnhub_ticker(ticker: str) -> str:
    """Yahoo symbol → Finnhub symbol (SAP.DE stays, MC.PA → MC, 0005.HK → 5.HK)."""
    t = ticker.upper()
    if t.endswith(".HK"):
        return t[:-3].lstrip("0") + ".HK"
    for suffix, replacement in _SUFFIX_MAP.items():
        if t.endswith(suffix):
            return t[: -len(suffix)] + replacement
    return t


# ---------------------------------------------------------------------------
# Private: Finnhub
# ---------------------------------------------------------------------------

def _get(path: str, **params: Any) -> Any:
    try:
        r = requests.get(
            f"{_BASE_URL}{path}",
            params={**params, "token": FINNHUB_API_KEY},
            timeout=10,
        )
        if r.status_code in (401, 403):
            logger.debug("Finnhub %s not permitted for this key", path)
            return None
        r.raise_for_status()
        return r.json()
    except Exception as exc:
        logger.debug("Finnhub %s %s failed: %s", path, params.get("symbol"), exc)
    return None
