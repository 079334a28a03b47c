"""
signal_daemon.py — Portfolio Tracker | Standalone Scheduler Daemon
------------------------------------------------------------------
Runs the background jobs (price refresh, daily signal evaluation and the
optional daily auto-log) INDEPENDENTLY of the Dash web application.

Usage:
    python signal_daemon.py

    # Background (keep running after terminal closes):
    nohup python signal_daemon.py > logs/daemon.log 2>&1 &

    # Stop:
    kill $(cat logs/daemon.pid)

Requires:
    DATA_MODE=live, SUPABASE_URL, SUPABASE_ANON_KEY — otherwise it runs on mock data
    DAEMON_EMAIL / DAEMON_PASSWORD — account whose portfolios the jobs read
                                     (not needed with SUPABASE_SERVICE_KEY)
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import time
from pathlib import Path

# ── Bootstrap ──────────────────────────────────────────────────────────────────
# Load .env before importing project modules (they read env at import time)
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ],
)
logger = logging.getLogger("signal_daemon")

# ── PID file (optional, helps with process management) ────────────────────────
_PID_PATH = Path("logs/daemon.pid")
try:
    _PID_PATH.parent.mkdir(parents=True, exist_ok=True)
    _PID_PATH.write_text(str(os.getpid()))
except OSError:
    logger.debug("Could not write %s", _PID_PATH)


def _login() -> None:
    """Sign in as DAEMON_EMAIL so row-level security lets the jobs see its portfolios."""
    from tracker import supabase_client as db  # noqa: PLC0415

    email    = os.getenv("DAEMON_EMAIL", "")
    password = os.getenv("DAEMON_PASSWORD", "")
    if not email or not password:
        logger.warning("DAEMON_EMAIL / DAEMON_PASSWORD not set — jobs run with the configured API key only")
        return
    try:
        db.sign_in(email, password)
    except db.SupabaseError as exc:
        logger.error("Daemon login failed: %s", exc)
        sys.exit(1)
    logger.info("Signed in as %s", email)


# ── Main ───────────────────────────────────────────────────────────────────────
def main() -> None:
    from tracker.pipeline import init_data_mode              # noqa: PLC0415
    from tracker.scheduler import is_running, start, stop   # noqa: PLC0415

    logger.info("=== Portfolio Tracker Signal Daemon starting ===")
    mode = init_data_mode()
    logger.info("Data mode        : %s", mode)
    logger.info("Price refresh    : every %smin", os.getenv("PRICE_REFRESH_MINUTES", "30"))
    logger.info("Signal evaluation: %s:00 UTC", os.getenv("SIGNAL_EVAL_HOUR", "22"))
    logger.info("Auto-log         : %s", "on" if os.getenv("AUTO_LOG_SIGNALS") == "1" else "off")

    if mode == "live":
        _login()

    # Jobs keep their run summaries here
    state: dict = {}
    start(state)

    # Graceful shutdown on SIGINT (Ctrl+C) or SIGTERM (kill / systemd stop)
    def _shutdown(sig: int, _frame: object) -> None:
        logger.info("Received signal %d — shutting down daemon …", sig)
        stop()
        try:
            _PID_PATH.unlink(missing_ok=True)
        except OSError:
            logger.debug("Could not remove %s", _PID_PATH)
        logger.info("=== Signal Daemon stopped ===")
        sys.exit(0)

    signal.signal(signal.SIGINT,  _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info("=== Signal Daemon running — press Ctrl+C to stop ===")
    while is_running():
        time.sleep(30)

    logger.info("Scheduler stopped unexpectedly — exiting.")


if __name__ == "__main__":
    main()
