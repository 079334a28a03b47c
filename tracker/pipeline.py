"""
pipeline.py
-----------
Loads everything one screen needs and runs the recommendation engine.

  init_data_mode()          DATA_MODE=mock (or no Supabase config) → in-memory MockStore
  load_portfolio_data(id)   summary, totals, sectors, analyst, technical, news, recommendations
  load_recommendations(id)  just the recommendations (scheduler auto-log)
  load_research(ticker)     one non-held ticker scored without the portfolio component
  live_price / exchange_rate / price_history   mock-aware market data lookups
"""

from __future__ import annotations

import logging
import os
from typing import Any

from dotenv import load_dotenv

from tracker import analyst_data, market_data, mock_data, news_collector, technical
from tracker import supabase_client as db
from tracker.portfolio_manager import (
    enrich_analyst_data,
    fetch_portfolio_summary,
    get_portfolio_totals,
    get_sector_distribution,
)
from tracker.recommendation_engine import generate_all_recommendations, generate_recommendation

load_dotenv()

logger = logging.getLogger(__name__)

DATA_MODE: str = os.getenv("DATA_MODE", "mock")   # "mock" | "live"


def init_data_mode() -> str:
    """Select the data backend for this process. Returns "mock" or "live"."""
    if DATA_MODE == "mock" or not db.is_configured():
        db.use_local_store(mock_data.MockStore())
        db.set_access_token(None, mock_data.MOCK_USER)
        logger.info("pipeline: running on mock data")
        return "mock"
    db.use_local_store(None)
    logger.info("pipeline: running on live data")
    return "live"


def is_mock() -> bool:
    return db.using_local_store()


# ── Market data (mock-aware) ────────────────────────────────────────────────

def live_price(ticker: str) -> float | None:
    if is_mock():
        return mock_data.base_price(ticker.upper())
    return market_data.fetch_live_price(ticker)


def exchange_rate(currency: str | None) -> float | None:
    """Units of CZK per one unit of `currency`."""
    if not currency:
        return None
    if is_mock():
        return mock_data.FX_TO_CZK.get(currency)
    return market_data.fetch_exchange_rate(currency)


def price_history(ticker: str):
    """1y daily OHLCV DataFrame, or None when unavailable."""
    if is_mock():
        return mock_data.price_history(ticker.upper())
    return market_data.fetch_history(ticker, "1y")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_technical(holdings: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[str]]:
    """Indicator rows for the holdings' tickers. Rows with an `error` are dropped."""
    if is_mock():
        rows = []
        for h in {h["ticker"]: h for h in holdings}.values():
            ind = technical.compute_indicators(price_history(h["ticker"]))
            if ind:
                rows.append({"ticker": h["ticker"], "stock_name": h.get("stock_name"), **ind})
        return rows, []
    rows, errors = technical.fetch_technical_data_batch(holdings)
    return [r for r in rows if not r.get("error")], errors


def load_portfolio_data(portfolio_id: str | None, insider_months: int = 3) -> dict[str, Any]:
    summary = fetch_portfolio_summary(portfolio_id)
    data: dict[str, Any] = {
        "summary":         summary,
        "totals":          get_portfolio_totals(summary),
        "sectors":         get_sector_distribution(summary),
        "analyst":         [],
        "technical":       [],
        "news":            [],
        "recommendations": [],
        "errors":          [],
    }
    if not summary:
        return data

    analyst_rows, analyst_errors = analyst_data.fetch_analyst_data(summary)
    tech_rows, tech_errors = load_technical(summary)
    news = news_collector.fetch_portfolio_news(summary)

    enriched = enrich_analyst_data([r for r in analyst_rows if not r.get("error")], summary)
    data.update({
        "analyst":         enriched,
        "technical":       tech_rows,
        "news":            news["articles"],
        "recommendations": generate_all_recommendations(enriched, tech_rows, news["articles"], insider_months),
        "errors":          analyst_errors + tech_errors + news["errors"],
    })
    logger.info("pipeline: portfolio %s — %d holdings, %d recommendations",
                portfolio_id, len(summary), len(data["recommendations"]))
    return data


def load_recommendations(portfolio_id: str | None, insider_months: int = 3) -> list[dict[str, Any]]:
    return load_portfolio_data(portfolio_id, insider_months)["recommendations"]


def load_research(ticker: str, stock_name: str | None = None,
                  finnhub_ticker: str | None = None) -> dict[str, Any]:
    """Score a single ticker as a research candidate.

    Returns {ticker, analyst, technical, news, recommendation, error}.
    """
    ticker = ticker.strip().upper()
    holding = {"ticker": ticker, "stock_name": stock_name, "finnhub_ticker": finnhub_ticker}

    rows, errors = analyst_data.fetch_analyst_data([holding])
    item = rows[0] if rows else {"ticker": ticker}
    if item.get("error"):
        return {"ticker": ticker, "analyst": None, "technical": None, "news": [],
                "recommendation": None, "error": item["error"]}

    tech_rows, _ = load_technical([holding])
    tech = tech_rows[0] if tech_rows else None
    news = news_collector.fetch_portfolio_news([holding])["articles"]

    item = enrich_analyst_data([item], [])[0]
    return {
        "ticker":         ticker,
        "analyst":        item,
        "technical":      tech,
        "news":           news,
        "recommendation": generate_recommendation(item, tech, news, is_research=True),
        "error":          errors[0] if errors else None,
    }
