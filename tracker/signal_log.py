"""
signal_log.py
-------------
Persists recommendation signals in `signal_log` so their later price moves
can be evaluated (see signal_evaluator).

Deduplication: a (portfolio, ticker, signal type) combination is logged at
most once per 7-day window.

Performance per signal type comes from the `signal_performance` view and
has the same shape as summarize_performance():
    {portfolio_id, signal_type, total_signals,
     evaluated_<p>, winners_<p>, avg_return_<p>   for p in 1d / 1w / 1m,
     avg_composite_score, avg_signal_strength}
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import pandas as pd

from tracker import supabase_client as db
from tracker.recommendation_engine import create_signal_log_entry

logger = logging.getLogger(__name__)

_TABLE = "signal_log"

DEDUP_DAYS = 7
PERFORMANCE_PERIODS = ("1d", "1w", "1m")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def signal_exists(portfolio_id: str, ticker: str, signal_type: str,
                  days_window: int = DEDUP_DAYS) -> bool:
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_window)
    try:
        rows = db.select(
            _TABLE, "id",
            filters=[
                ("portfolio_id", "eq", portfolio_id),
                ("ticker", "eq", ticker),
                ("signal_type", "eq", signal_type),
                ("created_at", "gte", cutoff.isoformat()),
            ],
            limit=1,
        )
    except db.SupabaseError as exc:
        # an unreadable log must not block logging
        logger.warning("signal_log: duplicate check failed for %s: %s", ticker, exc)
        return False
    return bool(rows)


def build_log_row(portfolio_id: str, rec: dict[str, Any], signal_type: str | None = None) -> dict[str, Any]:
    """signal_log row for a recommendation (primary signal unless `signal_type` is given)."""
    entry = create_signal_log_entry(rec)
    meta = rec.get("metadata") or {}
    signal_type = signal_type or entry["signal_type"]
    strength = next(
        (s["strength"] for s in rec.get("signals") or [] if s["type"] == signal_type),
        entry["signal_strength"],
    )
    return {
        **entry,
        "portfolio_id":      portfolio_id,
        "stock_name":        rec.get("stock_name"),
        "signal_type":       signal_type,
        "signal_strength":   strength,
        "fundamental_score": rec.get("fundamental_score"),
        "technical_score":   rec.get("technical_score"),
        "analyst_score":     rec.get("analyst_score"),
        "news_score":        rec.get("news_score"),
        "rsi_value":         meta.get("rsi_value"),
        "macd_histogram":    meta.get("macd_histogram"),
        "metadata": {
            **meta,
            "conviction_level":  rec.get("conviction_level"),
            "is_dip":            rec.get("is_dip"),
            "dip_quality_check": rec.get("dip_quality_check"),
            "technical_bias":    rec.get("technical_bias"),
            "target_price":      rec.get("target_price"),
            "target_upside":     rec.get("target_upside"),
            "weight":            rec.get("weight"),
            "gain_percentage":   rec.get("gain_percentage"),
        },
    }


def log_signal(portfolio_id: str, rec: dict[str, Any], signal_type: str | None = None) -> dict[str, Any] | None:
    """Insert one signal. Returns the stored row, or None when deduplicated."""
    row = build_log_row(portfolio_id, rec, signal_type)
    if not row["price_at_signal"]:
        logger.info("signal_log: %s has no price, not logged", rec["ticker"])
        return None
    if signal_exists(portfolio_id, row["ticker"], row["signal_type"]):
        logger.debug("signal_log: %s %s already logged (deduplicated)", row["signal_type"], row["ticker"])
        return None
    return db.insert(_TABLE, row)[0]


def log_multiple_signals(
    portfolio_id: str,
    recommendations: Iterable[dict[str, Any]],
    signal_types: Iterable[str] | None = None,
) -> dict[str, int]:
    """Log the primary signal of each recommendation (or every signal in `signal_types`).

    Returns {logged, skipped}; insert failures count as skipped.
    """
    wanted = set(signal_types) if signal_types is not None else None
    logged = skipped = 0
    for rec in recommendations:
        if wanted is None:
            types = [rec["primary_signal"]["type"]]
        else:
            types = [s["type"] for s in rec.get("signals") or [] if s["type"] in wanted]
        for t in types:
            try:
                if log_signal(portfolio_id, rec, t):
                    logged += 1
                else:
                    skipped += 1
            except db.SupabaseError as exc:
                logger.warning("signal_log: failed to log %s for %s: %s", t, rec["ticker"], exc)
                skipped += 1
    logger.info("signal_log: logged %d, skipped %d", logged, skipped)
    return {"logged": logged, "skipped": skipped}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_recent_signals(portfolio_id: str, limit: int = 50) -> list[dict[str, Any]]:
    return db.select(_TABLE, filters=[("portfolio_id", "eq", portfolio_id)],
                     order="created_at.desc", limit=limit) or []


def get_signals_for_ticker(portfolio_id: str, ticker: str, limit: int = 20) -> list[dict[str, Any]]:
    return db.select(
        _TABLE,
        filters=[("portfolio_id", "eq", portfolio_id), ("ticker", "eq", ticker)],
        order="created_at.desc", limit=limit,
    ) or []


def get_signals_by_type(portfolio_id: str, signal_type: str, limit: int = 50) -> list[dict[str, Any]]:
    return db.select(
        _TABLE,
        filters=[("portfolio_id", "eq", portfolio_id), ("signal_type", "eq", signal_type)],
        order="created_at.desc", limit=limit,
    ) or []


def get_signal_performance(portfolio_id: str) -> list[dict[str, Any]]:
    return db.select("signal_performance", filters=[("portfolio_id", "eq", portfolio_id)]) or []


def summarize_performance(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Per-(portfolio, signal type) performance rows computed from raw log entries."""
    if not entries:
        return []

    df = pd.DataFrame(entries)
    for col in ["price_at_signal", "composite_score", "signal_strength"] + [
        f"price_{p}" for p in PERFORMANCE_PERIODS
    ]:
        if col not in df:
            df[col] = None
        df[col] = pd.to_numeric(df[col], errors="coerce")

    rows = []
    for (portfolio_id, signal_type), g in df.groupby(["portfolio_id", "signal_type"], sort=True):
        row: dict[str, Any] = {
            "portfolio_id":  portfolio_id,
            "signal_type":   signal_type,
            "total_signals": int(len(g)),
        }
        for p in PERFORMANCE_PERIODS:
            evaluated = g[g[f"price_{p}"].notna() & (g["price_at_signal"] > 0)]
            returns = (evaluated[f"price_{p}"] - evaluated["price_at_signal"]) / evaluated["price_at_signal"] * 100
            row[f"evaluated_{p}"] = int(len(evaluated))
            row[f"winners_{p}"] = int((evaluated[f"price_{p}"] > evaluated["price_at_signal"]).sum())
            row[f"avg_return_{p}"] = round(float(returns.mean()), 2) if len(returns) else None
        row["avg_composite_score"] = _mean1(g["composite_score"])
        row["avg_signal_strength"] = _mean1(g["signal_strength"])
        rows.append(row)
    return rows


def calculate_win_rate(perf: dict[str, Any], period: str) -> int | None:
    """Winners / evaluated for `period` as a whole percent; None if nothing evaluated."""
    evaluated = perf.get(f"evaluated_{period}") or 0
    if evaluated == 0:
        return None
    return round((perf.get(f"winners_{period}") or 0) / evaluated * 100)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

def delete_signal(signal_id: str) -> None:
    db.delete(_TABLE, [("id", "eq", signal_id)])


def clear_all_signals(portfolio_id: str) -> None:
    db.delete(_TABLE, [("portfolio_id", "eq", portfolio_id)])
    logger.info("signal_log: cleared all signals for portfolio %s", portfolio_id)


def _mean1(series: pd.Series) -> float | None:
    series = series.dropna()
    return round(float(series.mean()), 1) if not series.empty else None
