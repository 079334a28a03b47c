"""
scheduler.py
------------
Background APScheduler jobs for the portfolio tracker.

  price_refresh     every PRICE_REFRESH_MINUTES — refresh current_prices
  signal_evaluation daily at SIGNAL_EVAL_HOUR:00 UTC — fill signal follow-up prices
  signal_autolog    daily at SIGNAL_EVAL_HOUR:30 UTC — log primary signals of
                    every portfolio (only when AUTO_LOG_SIGNALS=1)

Environment variables (all optional):
  PRICE_REFRESH_MINUTES — price refresh interval in minutes (default: 30)
  SIGNAL_EVAL_HOUR      — UTC hour for the daily signal evaluation (default: 22)
  AUTO_LOG_SIGNALS      — "1" enables the daily auto-log job
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PRICE_REFRESH_MINUTES = int(os.getenv("PRICE_REFRESH_MINUTES", "30"))
SIGNAL_EVAL_HOUR      = int(os.getenv("SIGNAL_EVAL_HOUR", "22"))
AUTO_LOG_SIGNALS      = os.getenv("AUTO_LOG_SIGNALS", "") == "1"

_scheduler = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def start(app_data: dict[str, Any]) -> None:
    """Initialise and start the APScheduler BackgroundScheduler.

    Args:
        app_data: shared dict; jobs record their last run summaries in it
                  (prices_updated_at, last_price_refresh, last_evaluation, last_autolog)
    """
    global _scheduler
    if _scheduler is not None:
        logger.warning("Scheduler already running — skipping start()")
        return

    try:
        from apscheduler.schedulers.background import BackgroundScheduler  # noqa: PLC0415
    except ImportError:
        logger.error(
            "apscheduler is not installed. "
            "Run: pip install 'apscheduler>=3.10,<4'"
        )
        return

    _scheduler = BackgroundScheduler(timezone="UTC")

    # ── Price refresh ───────────────────────────────────────────────────────
    _scheduler.add_job(
        _refresh_prices_job,
        trigger="interval",
        minutes=PRICE_REFRESH_MINUTES,
        id="price_refresh",
        replace_existing=True,
        kwargs={"app_data": app_data},
    )

    # ── Signal evaluation ───────────────────────────────────────────────────
    _scheduler.add_job(
        _evaluate_signals_job,
        trigger="cron",
        hour=SIGNAL_EVAL_HOUR,
        minute=0,
        id="signal_evaluation",
        replace_existing=True,
        kwargs={"app_data": app_data},
    )

    # ── Daily auto-log ──────────────────────────────────────────────────────
    if AUTO_LOG_SIGNALS:
        _scheduler.add_job(
            _autolog_job,
            trigger="cron",
            hour=SIGNAL_EVAL_HOUR,
            minute=30,
            id="signal_autolog",
            replace_existing=True,
            kwargs={"app_data": app_data},
        )

    _scheduler.start()
    logger.info(
        "Scheduler started — prices every %dmin, evaluation at %02d:00 UTC, auto-log %s",
        PRICE_REFRESH_MINUTES, SIGNAL_EVAL_HOUR, "on" if AUTO_LOG_SIGNALS else "off",
    )


def stop() -> None:
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")


def is_running() -> bool:
    return _scheduler is not None and _scheduler.running


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

def _refresh_prices_job(app_data: dict[str, Any]) -> None:
    logger.info("[scheduler] Refreshing prices at %s UTC",
                datetime.now(timezone.utc).strftime("%H:%M"))
    from tracker.market_data import refresh_all_prices  # noqa: PLC0415
    from tracker.pipeline import is_mock               # noqa: PLC0415

    if is_mock():
        logger.debug("[scheduler] Mock data — price refresh skipped")
        return
    try:
        result = refresh_all_prices()
    except Exception as exc:
        logger.error("[scheduler] Price refresh error: %s", exc)
        return
    app_data["last_price_refresh"] = result
    app_data["prices_updated_at"] = datetime.now(timezone.utc).isoformat()


def _evaluate_signals_job(app_data: dict[str, Any]) -> None:
    logger.info("[scheduler] Evaluating logged signals")
    from tracker.pipeline import live_price                # noqa: PLC0415
    from tracker.signal_evaluator import evaluate_signals  # noqa: PLC0415

    try:
        result = evaluate_signals(price_fetcher=live_price)
    except Exception as exc:
        logger.error("[scheduler] Signal evaluation error: %s", exc)
        return
    app_data["last_evaluation"] = {k: result[k] for k in ("updated", "failed", "errors")}


def _autolog_job(app_data: dict[str, Any]) -> None:
    """Log the primary signal of every holding in every portfolio."""
    try:
        from tracker import portfolios, signal_log          # noqa: PLC0415
        from tracker.pipeline import load_recommendations   # noqa: PLC0415
    except Exception as exc:
        logger.error("[scheduler] Auto-log import error: %s", exc)
        return

    totals = {"logged": 0, "skipped": 0}
    for pf in portfolios.get_all():
        try:
            recs = load_recommendations(pf["id"])
            to_log = [r for r in recs if r["primary_signal"]["type"] != "NEUTRAL"]
            result = signal_log.log_multiple_signals(pf["id"], to_log)
        except Exception as exc:
            logger.error("[scheduler] Auto-log failed for %s: %s", pf.get("name"), exc)
            continue
        totals["logged"] += result["logged"]
        totals["skipped"] += result["skipped"]

    app_data["last_autolog"] = totals
    logger.info("[scheduler] Auto-log complete — %d logged, %d skipped",
                totals["logged"], totals["skipped"])
