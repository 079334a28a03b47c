"""
recommendation_view.py
----------------------
State helpers behind the Recommendations and Signal History tabs.

All functions are pure (the Dash callbacks keep the state in dcc.Store),
except SignalAutoLogger, which writes to the signal log.

  filter     "all" or a filter key mapped to one primary signal type
  group by   none | signal | score (70+ / 50-69 / <50) | conviction level
  history    ticker + signal filters, 25 rows per page, 1-week stats
  sorting    clicking the active column flips direction; None sorts last
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Callable, Iterable

from tracker import signal_log
from tracker.recommendation_engine import SIGNAL_PRIORITIES

logger = logging.getLogger(__name__)

ITEMS_PER_PAGE = 25

# UI filter key → primary signal type
FILTERS: dict[str, str] = {
    "dips":        "DIP_OPPORTUNITY",
    "momentum":    "MOMENTUM",
    "conviction":  "CONVICTION_HOLD",
    "quality":     "QUALITY_CORE",
    "near_target": "NEAR_TARGET",
    "accumulate":  "ACCUMULATE",
    "hold":        "STEADY_HOLD",
    "watch":       "WATCH_CLOSELY",
    "trim":        "CONSIDER_TRIM",
    "neutral":     "NEUTRAL",
}

GROUP_OPTIONS = ("none", "signal", "score", "conviction")

# Fields whose first click sorts ascending; everything else starts descending
ASCENDING_FIELDS = frozenset({"ticker", "stock_name", "signal_type", "sector_name"})


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def filter_recommendations(recs: list[dict[str, Any]], filter_key: str = "all") -> list[dict[str, Any]]:
    """Keep recommendations whose primary signal matches `filter_key`.

    Accepts a key from FILTERS or a raw signal type; "all" (or unknown) keeps everything.
    """
    signal_type = FILTERS.get(filter_key, filter_key)
    if filter_key == "all" or signal_type not in SIGNAL_PRIORITIES:
        return list(recs)
    return [r for r in recs if r["primary_signal"]["type"] == signal_type]


def group_key(rec: dict[str, Any], group_by: str) -> str:
    if group_by == "signal":
        return rec["primary_signal"]["type"]
    if group_by == "score":
        score = rec["composite_score"]
        if score >= 70:
            return "High Score (70+)"
        if score >= 50:
            return "Medium Score (50-69)"
        return "Low Score (<50)"
    if group_by == "conviction":
        return f"{rec['conviction_level']} Conviction"
    return "all"


def group_recommendations(recs: list[dict[str, Any]], group_by: str = "none") -> dict[str, list[dict[str, Any]]]:
    """{group name: recs} preserving input order within and across groups."""
    if group_by not in GROUP_OPTIONS or group_by == "none":
        return {"all": list(recs)}
    groups: dict[str, list[dict[str, Any]]] = {}
    for rec in recs:
        groups.setdefault(group_key(rec, group_by), []).append(rec)
    return groups


def signal_stats(recs: list[dict[str, Any]]) -> dict[str, int]:
    """{"total": n, <filter key>: count of recs with that primary signal, ...}"""
    counts = {"total": len(recs)}
    for key, signal_type in FILTERS.items():
        counts[key] = sum(1 for r in recs if r["primary_signal"]["type"] == signal_type)
    return counts


class SignalAutoLogger:
    """Logs the non-NEUTRAL primary signals of a freshly loaded recommendation set.

    Only the latest load id per portfolio is remembered, so a repeated load
    id is skipped while an older one is logged again (the signal log dedups
    those rows itself). A run that finds another run in progress returns
    immediately instead of waiting.
    """

    def __init__(self, log_fn: Callable[..., dict[str, int]] = signal_log.log_multiple_signals):
        self._log_fn = log_fn
        self._lock = threading.Lock()
        self._last_load: dict[str, str] = {}

    def run(self, portfolio_id: str | None, recs: list[dict[str, Any]],
            load_id: str = "") -> dict[str, int] | None:
        """Returns {logged, skipped}, or None when nothing was attempted."""
        if not portfolio_id or not recs:
            return None
        if self._last_load.get(portfolio_id) == load_id:
            return None
        if not self._lock.acquire(blocking=False):
            logger.debug("auto-log: already running, skipped")
            return None
        try:
            to_log = [r for r in recs if r["primary_signal"]["type"] != "NEUTRAL"]
            self._last_load[portfolio_id] = load_id
            if not to_log:
                return {"logged": 0, "skipped": 0}
            return self._log_fn(portfolio_id, to_log)
        except Exception as exc:
            # auto-logging is best effort and never breaks the page
            logger.warning("auto-log: failed for portfolio %s: %s", portfolio_id, exc)
            return None
        finally:
            self._lock.release()


# ---------------------------------------------------------------------------
# Signal history
# ---------------------------------------------------------------------------

def unique_tickers(history: list[dict[str, Any]]) -> list[str]:
    return sorted({h["ticker"] for h in history})


def filter_history(history: list[dict[str, Any]], ticker: str | None = None,
                   signal_type: str = "all") -> list[dict[str, Any]]:
    return [
        h for h in history
        if (not ticker or h["ticker"] == ticker)
        and (signal_type in (None, "", "all") or h["signal_type"] == signal_type)
    ]


def total_pages(n_items: int, per_page: int = ITEMS_PER_PAGE) -> int:
    return math.ceil(n_items / per_page) if n_items else 0


def paginate(items: list[Any], page: int, per_page: int = ITEMS_PER_PAGE) -> list[Any]:
    """1-based page slice; out-of-range pages are clamped."""
    pages = total_pages(len(items), per_page)
    page = min(max(page, 1), max(pages, 1))
    start = (page - 1) * per_page
    return items[start:start + per_page]


def history_stats(history: list[dict[str, Any]]) -> dict[str, Any]:
    """{total, avg_return_1w, win_rate} over entries with a 1-week price."""
    evaluated = [
        h for h in history
        if h.get("price_1w") is not None and (h.get("price_at_signal") or 0) > 0
    ]
    if not evaluated:
        return {"total": len(history), "avg_return_1w": 0.0, "win_rate": 0.0}
    returns = [(h["price_1w"] - h["price_at_signal"]) / h["price_at_signal"] * 100 for h in evaluated]
    wins = sum(1 for h in evaluated if h["price_1w"] > h["price_at_signal"])
    return {
        "total":         len(history),
        "avg_return_1w": sum(returns) / len(returns),
        "win_rate":      wins / len(evaluated) * 100,
    }


# ---------------------------------------------------------------------------
# Sortable tables
# ---------------------------------------------------------------------------

def toggle_sort(state: dict[str, str] | None, field: str) -> dict[str, str]:
    """Next {field, direction} after clicking `field`."""
    if state and state.get("field") == field:
        return {"field": field, "direction": "desc" if state.get("direction") == "asc" else "asc"}
    return {"field": field, "direction": "asc" if field in ASCENDING_FIELDS else "desc"}


def sort_rows(rows: Iterable[dict[str, Any]], field: str, direction: str = "asc",
              key: Callable[[dict[str, Any], str], Any] | None = None) -> list[dict[str, Any]]:
    """Stable sort by `field`; None values always go last.

    Strings compare case-insensitively. A column mixing types orders numbers
    before strings instead of raising.
    """
    def value(row: dict[str, Any]) -> Any:
        return key(row, field) if key else row.get(field)

    def rank(row: dict[str, Any]) -> tuple:
        v = value(row)
        if isinstance(v, (int, float)):
            return (0, v, "")
        if isinstance(v, str):
            return (1, 0, v.lower())
        return (2, 0, str(v))

    rows = list(rows)
    present = [r for r in rows if value(r) is not None]
    missing = [r for r in rows if value(r) is None]
    present.sort(key=rank, reverse=direction == "desc")
    return present + missing
