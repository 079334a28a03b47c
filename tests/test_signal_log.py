from tracker import signal_log
from tracker import supabase_client as db


def _rec(ticker, signal_type="MOMENTUM", price=100.0, extra_signals=()):
    primary = {"type": signal_type, "strength": 70, "priority": 2}
    return {
        "ticker":           ticker,
        "stock_name":       f"{ticker} Corp",
        "primary_signal":   primary,
        "signals":          [primary, *extra_signals],
        "current_price":    price,
        "composite_score":  64,
        "dip_score":        10,
        "conviction_score": 55,
        "conviction_level": "MEDIUM",
        "fundamental_score": 60.0,
        "technical_score":  55.0,
        "analyst_score":    70.0,
        "news_score":       50.0,
        "metadata":         {"rsi_value": 48.5, "macd_histogram": 0.12},
    }


def test_build_log_row_flattens_scores():
    row = signal_log.build_log_row("pf-main", _rec("KO"))
    assert row["signal_type"] == "MOMENTUM"
    assert row["price_at_signal"] == 100.0
    assert row["rsi_value"] == 48.5
    assert row["macd_histogram"] == 0.12
    assert row["metadata"]["conviction_level"] == "MEDIUM"


def test_log_signal_inserts_then_deduplicates(store):
    first = signal_log.log_signal("pf-main", _rec("KO"))
    assert first["ticker"] == "KO"
    assert signal_log.log_signal("pf-main", _rec("KO")) is None
    # other portfolio is a separate window
    assert signal_log.log_signal("pf-growth", _rec("KO")) is not None


def test_recent_seed_signal_is_deduplicated(store):
    assert signal_log.signal_exists("pf-main", "JNJ", "QUALITY_CORE")
    assert not signal_log.signal_exists("pf-main", "AAPL", "DIP_OPPORTUNITY")


def test_signal_without_price_is_not_logged(store):
    assert signal_log.log_signal("pf-main", _rec("KO", price=0)) is None


def test_log_multiple_signals_with_type_filter(store):
    steady = {"type": "STEADY_HOLD", "strength": 60, "priority": 7}
    recs = [_rec("KO", extra_signals=[steady]), _rec("MSFT", "NEUTRAL")]

    result = signal_log.log_multiple_signals("pf-growth", recs, signal_types=["STEADY_HOLD"])
    assert result == {"logged": 1, "skipped": 0}
    row = signal_log.get_signals_for_ticker("pf-growth", "KO")[0]
    assert row["signal_type"] == "STEADY_HOLD"
    assert row["signal_strength"] == 60


def test_log_multiple_signals_counts_skips(store):
    recs = [_rec("KO"), _rec("KO")]
    assert signal_log.log_multiple_signals("pf-growth", recs) == {"logged": 1, "skipped": 1}


def test_summarize_performance():
    rows = signal_log.summarize_performance([
        {"portfolio_id": "p", "signal_type": "MOMENTUM", "price_at_signal": 100, "price_1d": 110,
         "price_1w": None, "composite_score": 60},
        {"portfolio_id": "p", "signal_type": "MOMENTUM", "price_at_signal": 100, "price_1d": 95,
         "price_1w": None, "composite_score": 70},
    ])
    assert len(rows) == 1
    perf = rows[0]
    assert perf["total_signals"] == 2
    assert (perf["evaluated_1d"], perf["winners_1d"], perf["avg_return_1d"]) == (2, 1, 2.5)
    assert perf["evaluated_1w"] == 0 and perf["avg_return_1w"] is None
    assert perf["avg_composite_score"] == 65.0
    assert perf["avg_signal_strength"] is None
    assert signal_log.calculate_win_rate(perf, "1d") == 50
    assert signal_log.calculate_win_rate(perf, "1w") is None


def test_performance_view(store):
    perf = {p["signal_type"]: p for p in signal_log.get_signal_performance("pf-main")}
    assert perf["DIP_OPPORTUNITY"]["evaluated_1m"] == 1
    assert perf["DIP_OPPORTUNITY"]["winners_1m"] == 1
    assert perf["QUALITY_CORE"]["evaluated_1w"] == 0


def test_queries_and_deletes(store):
    recent = signal_log.get_recent_signals("pf-main")
    assert recent[0]["ticker"] == "JNJ"
    assert len(signal_log.get_signals_by_type("pf-main", "MOMENTUM")) == 1

    signal_log.delete_signal("sig-1")
    assert len(signal_log.get_recent_signals("pf-main")) == 4

    signal_log.clear_all_signals("pf-main")
    assert signal_log.get_recent_signals("pf-main") == []
    assert db.select("signal_log") == []
