"""
signal_evaluator.py
-------------------
Fills the follow-up prices of logged signals.

For each period (1d / 1w / 1m / 3m) signals older than the period with no
`price_<p>` yet get the current price and `evaluated_<p>_at = now`.
At most 50 signals per period per run; each ticker is priced once.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from tracker import supabase_client as db
from tracker.market_data import fetch_live_price

logger = logging.getLogger(__name__)

PERIODS: dict[str, int] = {"1d": 1, "1w": 7, "1m": 30, "3m": 90}   # period → days
BATCH_SIZE = 50
TICKER_DELAY_SEC = 0.2


def pending_signals(now: datetime | None = None) -> tuple[list[dict[str, Any]], list[str]]:
    """Signals due for evaluation, each tagged with its `period`. Returns (signals, errors)."""
    now = now or datetime.now(timezone.utc)
    pending, errors = [], []
    for period, days in PERIODS.items():
        cutoff = now - timedelta(days=days)
        try:
            rows = db.select(
                "signal_log", f"id,ticker,created_at,price_{period}",
                filters=[(f"price_{period}", "is", None), ("created_at", "lt", cutoff.isoformat())],
                limit=BATCH_SIZE,
            ) or []
        except db.SupabaseError as exc:
            errors.append(f"Error fetching {period} signals: {exc}")
            continue
        pending.extend({**r, "period": period} for r in rows)
    return pending, errors


def evaluate_signals(
    now: datetime | None = None,
    price_fetcher: Callable[[str], float | None] = fetch_live_price,
    delay: float = TICKER_DELAY_SEC,
) -> dict[str, Any]:
    """Run one evaluation pass.

    Returns {updated, failed, errors, details}; details holds one
    {signal_id, ticker, period, price, success, error} per signal.
    """
    now = now or datetime.now(timezone.utc)
    signals, errors = pending_signals(now)
    tickers = sorted({s["ticker"] for s in signals})
    logger.info("[evaluator] %d signals to update for %d tickers", len(signals), len(tickers))

    prices: dict[str, float | None] = {}
    for ticker in tickers:
        prices[ticker] = price_fetcher(ticker)
        if delay:
            time.sleep(delay)

    details = []
    for s in signals:
        result = {"signal_id": s["id"], "ticker": s["ticker"], "period": s["period"],
                  "price": prices.get(s["ticker"]), "success": False, "error": None}
        if result["price"] is None:
            result["error"] = "Could not fetch price"
            details.append(result)
            continue
        try:
            db.update(
                "signal_log",
                {f"price_{s['period']}": result["price"], f"evaluated_{s['period']}_at": now.isoformat()},
                [("id", "eq", s["id"])],
            )
            result["success"] = True
        except db.SupabaseError as exc:
            result["error"] = str(exc)
        details.append(result)

    updated = sum(1 for d in details if d["success"])
    failed = len(details) - updated
    logger.info("[evaluator] completed: %d updated, %d failed", updated, failed)
    return {"updated": updated, "failed": failed, "errors": errors, "details": details}
