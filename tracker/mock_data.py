"""
mock_data.py
------------
Deterministic offline dataset for DATA_MODE=mock (and tests).

  - 2 portfolios, 6 stocks across 5 sectors, a dozen transactions (one linked SELL)
  - current prices + CZK exchange rates
  - analyst / fundamental / insider rows for any ticker
  - ~1 year of synthetic daily OHLCV (sine wave + drift, seeded by ticker)
  - a few news headlines per ticker
  - MockStore: in-memory tables behind the same select / insert / update /
    delete calls as supabase_client, including the holdings,
    portfolio_summary and signal_performance views

Nothing here is random: the same ticker always yields the same numbers.
"""

from __future__ import annotations

import copy
import logging
import math
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

import pandas as pd

from tracker import supabase_client as db

logger = logging.getLogger(__name__)

MOCK_USER = {"id": "mock-user", "email": "demo@example.com"}

FX_TO_CZK: dict[str, float] = {"CZK": 1.0, "USD": 23.2, "EUR": 25.1, "GBP": 29.4}

SECTORS = [
    {"id": "sec-tech",    "name": "Technology"},
    {"id": "sec-health",  "name": "Healthcare"},
    {"id": "sec-staples", "name": "Consumer Staples"},
    {"id": "sec-energy",  "name": "Energy"},
    {"id": "sec-util",    "name": "Utilities"},
]

PORTFOLIOS = [
    {"id": "pf-main",   "name": "Main",   "is_default": True,  "color": "#2563eb", "user_id": MOCK_USER["id"]},
    {"id": "pf-growth", "name": "Growth", "is_default": False, "color": "#16a34a", "user_id": MOCK_USER["id"]},
]

STOCKS = [
    {"id": "stk-aapl", "ticker": "AAPL",   "name": "Apple Inc.",             "sector_id": "sec-tech",    "currency": "USD", "exchange": "NASDAQ", "target_price": 240.0},
    {"id": "stk-msft", "ticker": "MSFT",   "name": "Microsoft Corp.",        "sector_id": "sec-tech",    "currency": "USD", "exchange": "NASDAQ", "target_price": 480.0},
    {"id": "stk-jnj",  "ticker": "JNJ",    "name": "Johnson & Johnson",      "sector_id": "sec-health",  "currency": "USD", "exchange": "NYSE",   "target_price": None},
    {"id": "stk-ko",   "ticker": "KO",     "name": "Coca-Cola Co.",          "sector_id": "sec-staples", "currency": "USD", "exchange": "NYSE",   "target_price": 70.0},
    {"id": "stk-xom",  "ticker": "XOM",    "name": "Exxon Mobil Corp.",      "sector_id": "sec-energy",  "currency": "USD", "exchange": "NYSE",   "target_price": None},
    {"id": "stk-sap",  "ticker": "SAP.DE", "name": "SAP SE",                 "sector_id": "sec-tech",    "currency": "EUR", "exchange": "XETRA",  "target_price": 260.0},
]

# (id, portfolio, stock, date, type, qty, price, fees, source lot)
_TX = [
    ("tx-01", "pf-main",   "stk-aapl", "2023-03-14", "BUY",  10, 150.00, 1.0, None),
    ("tx-02", "pf-main",   "stk-aapl", "2023-11-02", "BUY",   5, 175.50, 1.0, None),
    ("tx-03", "pf-main",   "stk-aapl", "2024-08-20", "SELL",  4, 225.00, 1.0, "tx-01"),
    ("tx-04", "pf-main",   "stk-msft", "2023-05-09", "BUY",   6, 305.00, 1.0, None),
    ("tx-05", "pf-main",   "stk-jnj",  "2023-06-21", "BUY",  12, 160.00, 1.0, None),
    ("tx-06", "pf-main",   "stk-ko",   "2022-09-12", "BUY",  30,  60.00, 1.0, None),
    ("tx-07", "pf-main",   "stk-ko",   "2024-02-05", "SELL", 10,  61.50, 1.0, None),
    ("tx-08", "pf-main",   "stk-xom",  "2024-01-15", "BUY",  15, 102.00, 1.0, None),
    ("tx-09", "pf-growth", "stk-msft", "2024-04-03", "BUY",   3, 420.00, 1.0, None),
    ("tx-10", "pf-growth", "stk-sap",  "2024-03-18", "BUY",   8, 175.00, 2.0, None),
    ("tx-11", "pf-growth", "stk-aapl", "2024-10-07", "BUY",   4, 226.00, 1.0, None),
]

_BASE_PRICES = {"AAPL": 228.0, "MSFT": 415.0, "JNJ": 155.0, "KO": 63.0, "XOM": 112.0, "SAP.DE": 232.0}

_HEADLINES = [
    ("{name} shares surge after strong quarterly earnings beat",
     "Revenue growth exceeded analyst expectations."),
    ("Analysts upgrade {ticker} on record demand",
     "Price target raised as momentum builds."),
    ("{name} faces lawsuit over product concerns",
     "Investors weigh the risk of a costly settlement."),
    ("{ticker} trades flat ahead of investor day",
     "Management is expected to outline its plans."),
]


def _seed(ticker: str) -> int:
    return sum(ord(c) for c in ticker)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------

def transactions() -> list[dict[str, Any]]:
    ccy = {s["id"]: s["currency"] for s in STOCKS}
    rows = []
    for tx_id, pf, stock_id, day, kind, qty, price, fees, src in _TX:
        rows.append({
            "id":                    tx_id,
            "portfolio_id":          pf,
            "stock_id":              stock_id,
            "date":                  day,
            "type":                  kind,
            "quantity":              qty,
            "price_per_share":       price,
            "currency":              ccy[stock_id],
            "exchange_rate_to_czk":  FX_TO_CZK[ccy[stock_id]],
            "fees":                  fees,
            "notes":                 None,
            "source_transaction_id": src,
            "created_at":            f"{day}T12:00:00+00:00",
        })
    return rows


def base_price(ticker: str) -> float:
    if ticker in _BASE_PRICES:
        return _BASE_PRICES[ticker]
    return 20.0 + _seed(ticker) % 180


def price_history(ticker: str, days: int = 260, end: date | None = None) -> pd.DataFrame:
    """Synthetic business-day OHLCV ending at `end`, finishing at base_price(ticker)."""
    seed = _seed(ticker)
    phase = seed % 7
    drift = ((seed % 5) - 2) * 0.0006
    end = end or date.today()
    dates = pd.bdate_range(end=end, periods=days)

    last = base_price(ticker)
    raw = [
        (1 + 0.08 * math.sin(i / 14 + phase) + 0.03 * math.sin(i / 3.3 + phase)) * (1 + drift * i)
        for i in range(days)
    ]
    scale = last / raw[-1]
    closes = [r * scale for r in raw]

    rows = []
    for i, (d, close) in enumerate(zip(dates, closes)):
        open_ = closes[i - 1] if i else close
        spread = close * (0.006 + 0.004 * abs(math.sin(i + phase)))
        rows.append({
            "date":   d,
            "open":   open_,
            "high":   max(open_, close) + spread,
            "low":    min(open_, close) - spread,
            "close":  close,
            "volume": 1_000_000 + (seed * 997 + i * 7919) % 900_000,
        })
    return pd.DataFrame(rows)


def quote(ticker: str) -> dict[str, Any]:
    hist = price_history(ticker, days=30)
    price, prev = float(hist["close"].iloc[-1]), float(hist["close"].iloc[-2])
    return {
        "ticker":         ticker,
        "price":          price,
        "currency":       "EUR" if ticker.endswith(".DE") else "USD",
        "change":         price - prev,
        "change_percent": (price - prev) / prev * 100,
        "volume":         int(hist["volume"].iloc[-1]),
        "avg_volume20":   float(hist["volume"].tail(20).mean()),
    }


def current_prices() -> list[dict[str, Any]]:
    rows = []
    for s in STOCKS:
        q = quote(s["ticker"])
        rows.append({
            "id":                   f"cp-{s['id']}",
            "stock_id":             s["id"],
            "price":                q["price"],
            "currency":             s["currency"],
            "exchange_rate_to_czk": FX_TO_CZK[s["currency"]],
            "price_change":         q["change"],
            "price_change_percent": q["change_percent"],
            "volume":               q["volume"],
            "avg_volume_20":        q["avg_volume20"],
            "updated_at":           _now_iso(),
        })
    return rows


def analyst_row(ticker: str, stock_name: str | None = None) -> dict[str, Any]:
    s = _seed(ticker)
    price = base_price(ticker)
    sb, b, h, sl, ss = 4 + s % 9, 6 + s % 11, 5 + s % 7, s % 3, s % 2
    n = sb + b + h + sl + ss

    today = date.today()
    monthly = []
    for k in range(6):
        month_index = today.year * 12 + today.month - 1 - k
        monthly.append({
            "year":   month_index // 12,
            "month":  month_index % 12 + 1,
            "mspr":   round(math.sin(s + k) * 40, 2),
            "change": int(math.cos(s + k) * 5000),
        })
    recent = monthly[:3]

    buys, sells = sb + b, sl + ss
    key = ("strong_buy" if sb > b else "buy") if buys > sells and buys > h else "hold"
    stock = next((x for x in STOCKS if x["ticker"] == ticker), None)

    return {
        "ticker":               ticker,
        "stock_name":           stock_name or (stock["name"] if stock else ticker),
        "industry":             None,
        "current_price":        price,
        "price_change":         price * 0.004 * math.sin(s),
        "price_change_percent": 0.4 * math.sin(s),
        "fifty_two_week_high":  round(price * (1.08 + (s % 10) / 100), 2),
        "fifty_two_week_low":   round(price * (0.72 + (s % 10) / 100), 2),
        "strong_buy": sb, "buy": b, "hold": h, "sell": sl, "strong_sell": ss,
        "number_of_analysts":    n,
        "consensus_score":       round((2 * sb + b - sl - 2 * ss) / n, 2),
        "recommendation_key":    key,
        "recommendation_period": today.replace(day=1).isoformat(),
        "analyst_target_price":  round(price * (1.05 + (s % 20) / 100), 2),
        "earnings": [
            {
                "period":           (today - timedelta(days=91 * (q + 1))).isoformat(),
                "actual":           round(1.2 + (s % 7) / 10 + q / 20, 2),
                "estimate":         round(1.2 + (s % 7) / 10, 2),
                "surprise":         round(q / 20 - (0.02 if (s + q) % 4 == 0 else 0), 2),
                "surprise_percent": round(((s + q) % 9) - 2.5, 2),
            }
            for q in range(4)
        ],
        "fundamentals": {
            "pe_ratio":          round(12 + s % 25, 2),
            "pb_ratio":          round(2 + (s % 9) / 2, 2),
            "ps_ratio":          round(1.5 + (s % 8) / 2, 2),
            "peg_ratio":         round(0.8 + (s % 15) / 10, 2),
            "dividend_yield":    round((s % 40) / 10, 2),
            "beta":              round(0.6 + (s % 9) / 10, 2),
            "roe":               round(8 + s % 30, 2),
            "roa":               round(4 + s % 12, 2),
            "gross_margin":      round(30 + s % 40, 2),
            "operating_margin":  round(12 + s % 25, 2),
            "net_margin":        round(6 + s % 22, 2),
            "debt_to_equity":    round(0.2 + (s % 15) / 10, 2),
            "current_ratio":     round(0.9 + (s % 12) / 10, 2),
            "quick_ratio":       round(0.7 + (s % 10) / 10, 2),
            "revenue_growth":    round((s % 25) - 4, 2),
            "revenue_growth_5y": round(3 + s % 12, 2),
            "eps_growth":        round((s % 30) - 6, 2),
            "market_cap":        float(50_000 + (s * 7919) % 2_500_000),
        },
        "insider_sentiment": {
            "mspr":         round(sum(m["mspr"] for m in recent) / 3, 2),
            "change":       sum(m["change"] for m in recent),
            "monthly_data": monthly,
        },
    }


def analyst_rows(tickers: Iterable[str]) -> list[dict[str, Any]]:
    return [analyst_row(t) for t in tickers]


def news_articles(tickers: Iterable[str], now: datetime | None = None) -> list[dict[str, Any]]:
    from tracker.news_collector import analyze_basic_sentiment

    now = now or datetime.now(timezone.utc)
    names = {s["ticker"]: s["name"] for s in STOCKS}
    articles = []
    for ticker in tickers:
        s = _seed(ticker)
        name = names.get(ticker, ticker)
        for k in range(3):
            title_tpl, summary = _HEADLINES[(s + k) % len(_HEADLINES)]
            title = title_tpl.format(name=name, ticker=ticker)
            articles.append({
                "id":              f"mock-{ticker}-{k}",
                "ticker":          ticker,
                "stock_name":      name,
                "title":           title,
                "summary":         summary,
                "source":          ("Reuters", "Bloomberg", "MarketWatch")[k],
                "url":             f"https://example.com/news/{ticker.lower()}-{k}",
                "published_at":    (now - timedelta(hours=6 + 19 * k + s % 11)).isoformat(),
                "related_tickers": [ticker],
                "thumbnail":       None,
                "sentiment":       analyze_basic_sentiment(title, summary),
            })
    return articles


def signal_history(now: datetime | None = None) -> list[dict[str, Any]]:
    """A handful of already-evaluated signals so the history tab is not empty."""
    now = now or datetime.now(timezone.utc)
    specs = [
        ("AAPL", "DIP_OPPORTUNITY", 40, 1.00, 1.012, 1.031, 1.054),
        ("MSFT", "MOMENTUM",        25, 1.00, 0.994, 1.018, None),
        ("KO",   "STEADY_HOLD",     12, 1.00, 1.003, 0.991, None),
        ("XOM",  "CONSIDER_TRIM",    9, 1.00, 0.985, 0.972, None),
        ("JNJ",  "QUALITY_CORE",     3, 1.00, 1.006, None,  None),
    ]
    rows = []
    for i, (ticker, kind, days_ago, p0, r1d, r1w, r1m) in enumerate(specs):
        created = now - timedelta(days=days_ago)
        price = base_price(ticker) * p0 * 0.97
        row = {
            "id":               f"sig-{i + 1}",
            "created_at":       created.isoformat(),
            "portfolio_id":     "pf-main",
            "ticker":           ticker,
            "stock_name":       next(s["name"] for s in STOCKS if s["ticker"] == ticker),
            "signal_type":      kind,
            "signal_strength":  60 + i * 5,
            "composite_score":  55 + i * 4,
            "fundamental_score": 60, "technical_score": 50, "analyst_score": 65,
            "news_score": 55, "conviction_score": 62, "dip_score": 20,
            "price_at_signal":  round(price, 2),
            "rsi_value":        45.0 + i, "macd_histogram": 0.3 - i * 0.1,
            "metadata":         {},
        }
        for period, ratio, days in (("1d", r1d, 1), ("1w", r1w, 7), ("1m", r1m, 30), ("3m", None, 90)):
            done = ratio is not None and days_ago >= days
            row[f"price_{period}"] = round(price * ratio, 2) if done else None
            row[f"evaluated_{period}_at"] = (created + timedelta(days=days)).isoformat() if done else None
        rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# MockStore
# ---------------------------------------------------------------------------

class MockStore:
    """In-memory tables with the supabase_client table API.

    Filters use the same (column, op, value) tuples; supported ops are
    eq, neq, gt, gte, lt, lte, in, is and ilike (with * wildcards).
    """

    VIEWS = ("holdings", "portfolio_summary", "signal_performance")

    def __init__(self, seed: bool = True):
        self.tables: dict[str, list[dict[str, Any]]] = {
            "portfolios": [], "sectors": [], "stocks": [], "transactions": [],
            "current_prices": [], "signal_log": [],
        }
        if seed:
            self.tables["portfolios"] = copy.deepcopy(PORTFOLIOS)
            self.tables["sectors"] = copy.deepcopy(SECTORS)
            self.tables["stocks"] = copy.deepcopy(STOCKS)
            self.tables["transactions"] = transactions()
            self.tables["current_prices"] = current_prices()
            self.tables["signal_log"] = signal_history()

    # ── Table API ──────────────────────────────────────────────────────────

    def select(self, table: str, columns: str = "*", filters: Iterable[db.Filter] | None = None,
               order: str | None = None, limit: int | None = None, single: bool = False,
               or_: str | None = None) -> Any:
        rows = [self._expand(table, r) for r in self._rows(table)]
        rows = [r for r in rows if all(_match(r.get(c), op, v) for c, op, v in filters or [])]
        if or_:
            clauses = [_parse_clause(c) for c in or_.strip("()").split(",")]
            rows = [r for r in rows if any(_match(r.get(c), op, v) for c, op, v in clauses)]
        for clause in reversed((order or "").split(",")):
            if clause:
                col, _, direction = clause.partition(".")
                rows = _sorted(rows, col, direction.startswith("desc"))
        if limit is not None:
            rows = rows[:limit]
        if single:
            if len(rows) != 1:
                raise db.SupabaseError("JSON object requested, multiple (or no) rows returned", db.NOT_FOUND)
            return rows[0]
        return rows

    def insert(self, table: str, rows: dict | list[dict], upsert: bool = False,
               on_conflict: str | None = None) -> list[dict]:
        stored = []
        for row in rows if isinstance(rows, list) else [rows]:
            row = dict(row)
            existing = None
            if upsert and on_conflict:
                existing = next((r for r in self.tables[table] if r.get(on_conflict) == row.get(on_conflict)), None)
            if existing is not None:
                existing.update(row)
                stored.append(dict(existing))
                continue
            row.setdefault("id", uuid.uuid4().hex)
            row.setdefault("created_at", _now_iso())
            if table == "signal_log":
                for p in ("1d", "1w", "1m", "3m"):
                    row.setdefault(f"price_{p}", None)
                    row.setdefault(f"evaluated_{p}_at", None)
            self.tables[table].append(row)
            stored.append(dict(row))
        return stored

    def update(self, table: str, values: dict, filters: Iterable[db.Filter]) -> list[dict]:
        filters = list(filters)
        changed = []
        for row in self.tables[table]:
            if all(_match(row.get(c), op, v) for c, op, v in filters):
                row.update(values)
                changed.append(dict(row))
        return changed

    def delete(self, table: str, filters: Iterable[db.Filter]) -> None:
        filters = list(filters)
        self.tables[table] = [
            r for r in self.tables[table]
            if not all(_match(r.get(c), op, v) for c, op, v in filters)
        ]

    # ── Views & joins ──────────────────────────────────────────────────────

    def _rows(self, table: str) -> list[dict[str, Any]]:
        if table not in self.VIEWS:
            return [dict(r) for r in self.tables[table]]

        from tracker.portfolio_manager import build_holdings, build_portfolio_summary
        from tracker.signal_log import summarize_performance

        if table == "signal_performance":
            return summarize_performance(self.tables["signal_log"])
        sectors = {s["id"]: s["name"] for s in self.tables["sectors"]}
        stocks = [{**s, "sector_name": sectors.get(s.get("sector_id"))} for s in self.tables["stocks"]]
        holdings = build_holdings(self.tables["transactions"], stocks)
        if table == "holdings":
            return holdings
        prices = {p["stock_id"]: p for p in self.tables["current_prices"]}
        return build_portfolio_summary(holdings, prices)

    def _expand(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        if table == "stocks":
            sector = next((s for s in self.tables["sectors"] if s["id"] == row.get("sector_id")), None)
            row["sectors"] = {"name": sector["name"]} if sector else None
        elif table == "transactions":
            row["stock"] = next((dict(s) for s in self.tables["stocks"] if s["id"] == row["stock_id"]), None)
            row["portfolio"] = next(
                (dict(p) for p in self.tables["portfolios"] if p["id"] == row.get("portfolio_id")), None)
            src = row.get("source_transaction_id")
            row["source_transaction"] = next(
                ({k: t[k] for k in ("id", "date", "price_per_share", "currency", "quantity")}
                 for t in self.tables["transactions"] if t["id"] == src),
                None,
            ) if src else None
        return row


def _parse_clause(clause: str) -> db.Filter:
    col, op, value = clause.split(".", 2)
    return col, op, value


def _match(actual: Any, op: str, expected: Any) -> bool:
    if op == "is":
        return actual is None if expected in (None, "null") else actual == expected
    if op == "in":
        return actual in expected or str(actual) in {str(v) for v in expected}
    if op == "ilike":
        if actual is None:
            return False
        needle = str(expected).strip("*").lower()
        return needle in str(actual).lower()
    if op in ("eq", "neq"):
        equal = actual == expected or (actual is not None and _text(actual) == _text(expected))
        return equal if op == "eq" else not equal
    if actual is None:
        return False
    a, e = (actual, expected) if _both_numbers(actual, expected) else (str(actual), str(expected))
    return {"gt": a > e, "gte": a >= e, "lt": a < e, "lte": a <= e}[op]


def _text(value: Any) -> str:
    # PostgREST renders booleans as true / false
    return str(value).lower() if isinstance(value, bool) else str(value)


def _both_numbers(a: Any, b: Any) -> bool:
    return isinstance(a, (int, float)) and isinstance(b, (int, float))


def _sorted(rows: list[dict[str, Any]], col: str, desc: bool) -> list[dict[str, Any]]:
    present = [r for r in rows if r.get(col) is not None]
    missing = [r for r in rows if r.get(col) is None]
    present.sort(key=lambda r: r[col], reverse=desc)
    return present + missing
