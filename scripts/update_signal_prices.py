#!/usr/bin/env python3
"""
scripts/update_signal_prices.py
-------------------------------
One evaluation pass over the signal log: every signal older than a period
(1d / 1w / 1m / 3m) whose follow-up price is still empty gets the current
price. Meant for cron when the web app and the daemon are not running:

    15 22 * * *  cd /path/to/tracker && python scripts/update_signal_prices.py

── Usage ────────────────────────────────────────────────────────────────────
  python scripts/update_signal_prices.py [--delay 0.2] [--verbose]

Exit code is 1 when any signal failed to update.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# ── Bootstrap: add project root to sys.path ──────────────────────────────────
_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(_ROOT))

load_dotenv(_ROOT / ".env")

from tracker import pipeline                              # noqa: E402
from tracker import supabase_client as db                 # noqa: E402
from tracker.signal_evaluator import evaluate_signals     # noqa: E402

# ── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("update_signal_prices")


def run(delay: float) -> int:
    mode = pipeline.init_data_mode()
    logger.info("Data mode: %s", mode)

    email = os.getenv("DAEMON_EMAIL", "")
    if mode == "live" and email:
        try:
            db.sign_in(email, os.getenv("DAEMON_PASSWORD", ""))
        except db.SupabaseError as exc:
            logger.error("Login failed: %s", exc)
            return 1

    result = evaluate_signals(price_fetcher=pipeline.live_price, delay=delay)

    for d in result["details"]:
        logger.debug("  %-8s %-3s %s", d["ticker"], d["period"],
                     d["price"] if d["success"] else f"FAILED: {d['error']}")
    for err in result["errors"]:
        logger.warning("  %s", err)

    logger.info("━" * 60)
    logger.info("  ✓ %d updated  |  %d failed", result["updated"], result["failed"])
    logger.info("━" * 60)
    return 1 if result["failed"] else 0


# ═══════════════════════════════════════════════════════════════════════════════
# CLI entry point
# ═══════════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Fill follow-up prices of logged portfolio signals.",
    )
    parser.add_argument(
        "--delay", type=float, default=0.2,
        help="Pause between tickers in seconds (default: 0.2)",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log every evaluated signal",
    )
    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(run(delay=args.delay))
