from datetime import datetime, timedelta, timezone

from tracker import signal_evaluator
from tracker import supabase_client as db

NOW = datetime.now(timezone.utc)


def _add_signal(store, days_ago, ticker="KO"):
    return db.insert("signal_log", {
        "portfolio_id":    "pf-growth",
        "ticker":          ticker,
        "signal_type":     "MOMENTUM",
        "price_at_signal": 60.0,
        "created_at":      (NOW - timedelta(days=days_ago)).isoformat(),
    })[0]


def test_seeded_history_has_nothing_pending(store):
    signals, errors = signal_evaluator.pending_signals(NOW)
    assert signals == []
    assert errors == []


def test_pending_periods_follow_signal_age(store):
    row = _add_signal(store, 10)
    signals, _ = signal_evaluator.pending_signals(NOW)
    assert sorted(s["period"] for s in signals if s["id"] == row["id"]) == ["1d", "1w"]


def test_evaluate_fills_prices_and_timestamps(store):
    row = _add_signal(store, 10)
    fetched = []

    def price_fetcher(ticker):
        fetched.append(ticker)
        return 66.0

    result = signal_evaluator.evaluate_signals(NOW, price_fetcher=price_fetcher, delay=0)

    assert result["updated"] == 2
    assert result["failed"] == 0
    assert fetched == ["KO"]
    stored = db.select("signal_log", filters=[("id", "eq", row["id"])], single=True)
    assert stored["price_1d"] == 66.0
    assert stored["price_1w"] == 66.0
    assert stored["evaluated_1w_at"] == NOW.isoformat()
    assert stored["price_1m"] is None


def test_missing_price_counts_as_failure(store):
    _add_signal(store, 2, ticker="ZZZ")
    result = signal_evaluator.evaluate_signals(NOW, price_fetcher=lambda t: None, delay=0)
    assert result["updated"] == 0
    assert result["failed"] == 1
    assert result["details"][0]["error"] == "Could not fetch price"
