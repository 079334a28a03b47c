import pytest

from tracker import recommendation_view as view


def _rec(ticker, signal_type, score=60, level="MEDIUM"):
    return {"ticker": ticker, "primary_signal": {"type": signal_type},
            "composite_score": score, "conviction_level": level}


RECS = [
    _rec("AAPL", "DIP_OPPORTUNITY", 72, "HIGH"),
    _rec("KO", "STEADY_HOLD", 55),
    _rec("XOM", "NEUTRAL", 41, "LOW"),
    _rec("MSFT", "STEADY_HOLD", 64),
]


def test_filter_by_key_or_signal_type():
    assert [r["ticker"] for r in view.filter_recommendations(RECS, "hold")] == ["KO", "MSFT"]
    assert [r["ticker"] for r in view.filter_recommendations(RECS, "DIP_OPPORTUNITY")] == ["AAPL"]
    assert view.filter_recommendations(RECS, "all") == RECS
    assert view.filter_recommendations(RECS, "bogus") == RECS


def test_grouping():
    assert view.group_recommendations(RECS) == {"all": RECS}
    by_score = view.group_recommendations(RECS, "score")
    assert [r["ticker"] for r in by_score["High Score (70+)"]] == ["AAPL"]
    assert [r["ticker"] for r in by_score["Medium Score (50-69)"]] == ["KO", "MSFT"]
    assert [r["ticker"] for r in by_score["Low Score (<50)"]] == ["XOM"]
    assert list(view.group_recommendations(RECS, "conviction")) == [
        "HIGH Conviction", "MEDIUM Conviction", "LOW Conviction",
    ]


def test_signal_stats():
    stats = view.signal_stats(RECS)
    assert stats["total"] == 4
    assert stats["hold"] == 2
    assert stats["dips"] == 1
    assert stats["trim"] == 0


def test_auto_logger_runs_once_per_load():
    calls = []

    def log_fn(portfolio_id, recs):
        calls.append((portfolio_id, [r["ticker"] for r in recs]))
        return {"logged": len(recs), "skipped": 0}

    auto = view.SignalAutoLogger(log_fn)
    assert auto.run("pf", RECS, "load-1") == {"logged": 3, "skipped": 0}
    assert auto.run("pf", RECS, "load-1") is None
    assert auto.run("pf", RECS, "load-2") is not None
    assert calls[0] == ("pf", ["AAPL", "KO", "MSFT"])
    assert auto.run(None, RECS) is None
    assert auto.run("pf", []) is None


def test_auto_logger_swallows_log_errors():
    def log_fn(portfolio_id, recs):
        raise RuntimeError("backend down")

    assert view.SignalAutoLogger(log_fn).run("pf", RECS, "x") is None


HISTORY = [
    {"ticker": "KO", "signal_type": "MOMENTUM", "price_at_signal": 100, "price_1w": 110},
    {"ticker": "KO", "signal_type": "STEADY_HOLD", "price_at_signal": 100, "price_1w": 90},
    {"ticker": "AAPL", "signal_type": "MOMENTUM", "price_at_signal": 100, "price_1w": None},
]


def test_history_filters_and_stats():
    assert view.unique_tickers(HISTORY) == ["AAPL", "KO"]
    assert len(view.filter_history(HISTORY, "KO")) == 2
    assert len(view.filter_history(HISTORY, None, "MOMENTUM")) == 2
    assert len(view.filter_history(HISTORY, "KO", "MOMENTUM")) == 1

    stats = view.history_stats(HISTORY)
    assert stats == {"total": 3, "avg_return_1w": 0.0, "win_rate": 50.0}
    assert view.history_stats([])["win_rate"] == 0.0


@pytest.mark.parametrize("n, pages", [(0, 0), (1, 1), (25, 1), (26, 2), (60, 3)])
def test_total_pages(n, pages):
    assert view.total_pages(n) == pages


def test_paginate_clamps():
    items = list(range(60))
    assert view.paginate(items, 1) == list(range(25))
    assert view.paginate(items, 3) == list(range(50, 60))
    assert view.paginate(items, 99) == list(range(50, 60))
    assert view.paginate(items, 0) == list(range(25))
    assert view.paginate([], 1) == []


def test_toggle_sort():
    assert view.toggle_sort(None, "ticker") == {"field": "ticker", "direction": "asc"}
    assert view.toggle_sort(None, "gain") == {"field": "gain", "direction": "desc"}
    assert view.toggle_sort({"field": "gain", "direction": "desc"}, "gain")["direction"] == "asc"
    assert view.toggle_sort({"field": "gain", "direction": "asc"}, "gain")["direction"] == "desc"


def test_sort_rows_puts_missing_last():
    rows = [{"t": "b", "v": 2}, {"t": "A", "v": None}, {"t": "c", "v": 5}]
    assert [r["t"] for r in view.sort_rows(rows, "v", "desc")] == ["c", "b", "A"]
    assert [r["t"] for r in view.sort_rows(rows, "v", "asc")] == ["b", "c", "A"]
    assert [r["t"] for r in view.sort_rows(rows, "t")] == ["A", "b", "c"]
    by_key = view.sort_rows(rows, "double", key=lambda r, f: None if r["v"] is None else r["v"] * 2)
    assert by_key[-1]["t"] == "A"


def test_auto_logger_remembers_only_latest_load():
    calls = []
    auto = view.SignalAutoLogger(lambda pid, recs: calls.append(pid) or {"logged": 1, "skipped": 0})
    for i in range(50):
        auto.run("pf", RECS, f"load-{i}")
    auto.run("other", RECS, "load-0")
    assert len(calls) == 51
    assert auto._last_load == {"pf": "load-49", "other": "load-0"}
    assert auto.run("pf", RECS, "load-49") is None


def test_sort_rows_with_mixed_types():
    rows = [{"v": "n/a"}, {"v": 3}, {"v": "B"}, {"v": 1.5}, {"v": None}]
    assert [r["v"] for r in view.sort_rows(rows, "v")] == [1.5, 3, "B", "n/a", None]
    assert [r["v"] for r in view.sort_rows(rows, "v", "desc")] == ["n/a", "B", 3, 1.5, None]
