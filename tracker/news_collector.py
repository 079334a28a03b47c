"""
news_collector.py
-----------------
Company and market news with a simple keyword sentiment score.

Priority per ticker:
  1. Finnhub /company-news  (if FINNHUB_API_KEY is set — last 7 days)
  2. Yahoo Finance search   (no key needed)

Market news (portfolio-independent) comes from a fixed set of Yahoo search
topics, de-duplicated by URL, newest first, capped at 50.

Each article:
    {id, ticker, stock_name, title, summary, source, url, published_at,
     related_tickers, thumbnail, sentiment: {score, label, keywords}}

Cache TTL: 1 hour (module-level, per ticker and for market news).
"""

from __future__ import annotations

import logging
import os
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any

import requests
from dotenv import load_dotenv

from tracker import mock_data

load_dotenv()

logger           = logging.getLogger(__name__)
_FINNHUB_API_KEY = os.getenv("FINNHUB_API_KEY", "")
DATA_MODE: str   = os.getenv("DATA_MODE", "mock")

_YAHOO_SEARCH = "https://query1.finance.yahoo.com/v1/finance/search"
_FINNHUB_NEWS = "https://finnhub.io/api/v1/company-news"
_HEADERS = {"User-Agent": "Mozilla/5.0 (portfolio-tracker)"}

ARTICLES_PER_TICKER = 10
MARKET_NEWS_LIMIT   = 50
MOCK_MARKET_TOPICS  = 6

# ── Module-level cache ─────────────────────────────────────────────────────────
_cache: dict[str, tuple[list[dict[str, Any]], datetime]] = {}
_CACHE_TTL = timedelta(hours=1)

_MARKET_TOPICS = [
    ("S&P 500",      "S&P 500 stock market"),
    ("NASDAQ",       "nasdaq composite"),
    ("Dow Jones",    "dow jones industrial"),
    ("Fed",          "federal reserve interest rates"),
    ("Inflation",    "inflation CPI consumer prices"),
    ("GDP",          "GDP economic growth"),
    ("Jobs",         "jobs unemployment employment"),
    ("Earnings",     "earnings report quarterly"),
    ("IPO",          "IPO initial public offering"),
    ("M&A",          "merger acquisition M&A"),
    ("Dividends",    "dividend yield payout"),
    ("AI & Tech",    "artificial intelligence AI tech stocks"),
    ("Oil & Energy", "oil crude energy prices"),
    ("Banks",        "bank financial sector"),
    ("EV & Clean",   "electric vehicle EV clean energy"),
    ("China",        "China market stocks"),
    ("Europe",       "Europe market stocks"),
    ("Crypto",       "bitcoin crypto cryptocurrency"),
]

# ── Sentiment word lists ───────────────────────────────────────────────────────
POSITIVE_WORDS: tuple[str, ...] = (
    "surge", "jump", "soar", "rally", "gain", "rise", "profit", "growth",
    "beat", "exceed", "upgrade", "buy", "bullish", "record", "high",
    "success", "strong", "boost", "win", "outperform", "positive",
)
NEGATIVE_WORDS: tuple[str, ...] = (
    "fall", "drop", "plunge", "crash", "decline", "loss", "miss", "cut",
    "downgrade", "sell", "bearish", "low", "weak", "fail", "warning",
    "concern", "risk", "trouble", "layoff", "lawsuit", "negative",
)


def analyze_basic_sentiment(title: str, summary: str = "") -> dict[str, Any]:
    """Keyword sentiment for a headline + summary.

    score = (positive hits - negative hits) / max(total hits, 1), in [-1, 1].
    Words match as substrings of the lower-cased text.
    """
    text = f"{title} {summary}".lower()
    found_pos = [w for w in POSITIVE_WORDS if w in text]
    found_neg = [w for w in NEGATIVE_WORDS if w in text]

    score = (len(found_pos) - len(found_neg)) / max(len(found_pos) + len(found_neg), 1)
    if score > 0.2:
        label = "positive"
    elif score < -0.2:
        label = "negative"
    else:
        label = "neutral"
    return {"score": round(score, 2), "label": label, "keywords": found_pos + found_neg}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fetch_ticker_news(ticker: str, stock_name: str | None = None) -> list[dict[str, Any]]:
    """Recent articles for one ticker, sentiment attached. Never raises."""
    key = ticker.upper()
    now = datetime.now(timezone.utc)
    if key in _cache and now - _cache[key][1] < _CACHE_TTL:
        return _cache[key][0]

    items: list[dict[str, Any]] = []
    if _FINNHUB_API_KEY:
        items = _fetch_finnhub(key)
    if not items:
        items = _fetch_yahoo(key, ARTICLES_PER_TICKER)

    articles = [_finish(a, key, stock_name or key) for a in items[:ARTICLES_PER_TICKER]]
    _cache[key] = (articles, now)
    return articles


def fetch_portfolio_news(holdings: list[dict[str, Any]]) -> dict[str, Any]:
    """News for every unique ticker in `holdings`, merged newest first.

    Returns {articles, by_ticker: {ticker: count}, overall_sentiment, errors}.
    """
    unique = {h["ticker"]: h for h in holdings}
    if DATA_MODE == "mock":
        articles = mock_data.news_articles(list(unique))
        errors: list[str] = []
    else:
        articles, errors = [], []
        for ticker, h in unique.items():
            items = fetch_ticker_news(ticker, h.get("stock_name"))
            if not items:
                errors.append(f"{ticker}: no news")
            articles.extend(items)
            time.sleep(0.1)

    articles.sort(key=lambda a: a["published_at"], reverse=True)
    scores = [a["sentiment"]["score"] for a in articles]
    by_ticker: dict[str, int] = {}
    for a in articles:
        by_ticker[a["ticker"]] = by_ticker.get(a["ticker"], 0) + 1
    return {
        "articles":          articles,
        "by_ticker":         by_ticker,
        "overall_sentiment": sum(scores) / len(scores) if scores else None,
        "errors":            errors,
    }


def fetch_market_news() -> list[dict[str, Any]]:
    """General market headlines across the fixed topic list."""
    now = datetime.now(timezone.utc)
    if "__market__" in _cache and now - _cache["__market__"][1] < _CACHE_TTL:
        return _cache["__market__"][0]
    if DATA_MODE == "mock":
        mock = mock_data.news_articles([label for label, _ in _MARKET_TOPICS[:MOCK_MARKET_TOPICS]])
        mock.sort(key=lambda a: a["published_at"], reverse=True)
        return mock

    seen: set[str] = set()
    articles: list[dict[str, Any]] = []
    for label, query in _MARKET_TOPICS:
        for item in _fetch_yahoo(query, 5):
            if item["url"] in seen:
                continue
            seen.add(item["url"])
            articles.append(_finish(item, label, label))
        time.sleep(0.1)

    articles.sort(key=lambda a: a["published_at"], reverse=True)
    articles = articles[:MARKET_NEWS_LIMIT]
    _cache["__market__"] = (articles, now)
    return articles


def filter_articles(articles: list[dict[str, Any]], ticker: str | None = None,
                    sentiment: str = "all") -> list[dict[str, Any]]:
    """Articles for one ticker (or topic) and/or one sentiment label."""
    return [
        a for a in articles
        if (not ticker or ticker == "all" or a.get("ticker") == ticker)
        and (sentiment in (None, "", "all") or (a.get("sentiment") or {}).get("label") == sentiment)
    ]


def clear_cache() -> None:
    _cache.clear()


# ---------------------------------------------------------------------------
# Private: sources
# ---------------------------------------------------------------------------

def _fetch_finnhub(ticker: str) -> list[dict[str, Any]]:
    today = date.today()
    try:
        resp = requests.get(
            _FINNHUB_NEWS,
            params={
                "symbol": ticker,
                "from":   (today - timedelta(days=7)).isoformat(),
                "to":     today.isoformat(),
                "token":  _FINNHUB_API_KEY,
            },
            timeout=10,
        )
        resp.raise_for_status()
        rows = resp.json() or []
    except Exception as exc:
        logger.debug("Finnhub news %s failed: %s", ticker, exc)
        return []

    return [
        {
            "id":              f"{ticker}-{r.get('id')}",
            "title":           r.get("headline") or "No title",
            "summary":         r.get("summary") or "",
            "source":          r.get("source") or "Unknown",
            "url":             r.get("url") or "",
            "published_at":    _iso(r.get("datetime")),
            "related_tickers": [t for t in (r.get("related") or "").split(",") if t] or [ticker],
            "thumbnail":       r.get("image") or None,
        }
        for r in rows
        if isinstance(r, dict)
    ]


def _fetch_yahoo(query: str, count: int) -> list[dict[str, Any]]:
    try:
        resp = requests.get(
            _YAHOO_SEARCH,
            params={"q": query, "newsCount": count, "quotesCount": 0},
            headers=_HEADERS,
            timeout=10,
        )
        resp.raise_for_status()
        news = resp.json().get("news") or []
    except Exception as exc:
        logger.debug("Yahoo news %s failed: %s", query, exc)
        return []

    items = []
    for i, n in enumerate(news):
        resolutions = (n.get("thumbnail") or {}).get("resolutions") or []
        items.append({
            "id":              n.get("uuid") or f"{query}-{i}",
            "title":           n.get("title") or "No title",
            "summary":         n.get("summary") or "",
            "source":          n.get("publisher") or "Unknown",
            "url":             n.get("link") or "",
            "published_at":    _iso(n.get("providerPublishTime")),
            "related_tickers": n.get("relatedTickers") or [],
            "thumbnail":       resolutions[0].get("url") if resolutions else None,
        })
    return items


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _finish(item: dict[str, Any], ticker: str, stock_name: str) -> dict[str, Any]:
    out = dict(item)
    out["ticker"] = ticker
    out["stock_name"] = stock_name
    out["sentiment"] = analyze_basic_sentiment(item["title"], item["summary"])
    return out


def _iso(epoch: Any) -> str:
    """Unix seconds → ISO-8601 UTC; missing timestamps become now."""
    if not epoch:
        return datetime.now(timezone.utc).isoformat()
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc).isoformat()
