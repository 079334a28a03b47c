from tracker import mock_data, technical
from tracker.recommendation_engine import (
    SIGNAL_PRIORITIES,
    buy_strategy,
    create_signal_log_entry,
    exit_strategy,
    generate_all_recommendations,
    generate_recommendation,
    generate_signals,
)


def _types(signals):
    return [s["type"] for s in signals]


def test_nothing_fires_gives_neutral():
    signals = generate_signals(50, 50, 50, 50, 50, 0, True, 30, "LOW", None, 0, None)
    assert _types(signals) == ["NEUTRAL"]


def test_signals_sorted_by_priority():
    signals = generate_signals(70, 65, 60, 60, 60, 55, True, 75, "HIGH", 3.0, 5, {"rsi14": 55})
    assert _types(signals) == [
        "DIP_OPPORTUNITY", "MOMENTUM", "CONVICTION_HOLD", "QUALITY_CORE", "NEAR_TARGET", "STEADY_HOLD",
    ]
    assert [s["priority"] for s in signals] == sorted(s["priority"] for s in signals)
    near = next(s for s in signals if s["type"] == "NEAR_TARGET")
    assert near["strength"] == 85


def test_dip_needs_quality_gate():
    signals = generate_signals(70, 50, 60, 60, 60, 60, False, 50, "MEDIUM", None, 5, None)
    assert "DIP_OPPORTUNITY" not in _types(signals)


def test_consider_trim():
    signals = generate_signals(50, 30, 50, 60, 60, 0, True, 50, "MEDIUM", 2.0, 10, {"rsi14": 75})
    assert _types(signals) == ["NEAR_TARGET", "CONSIDER_TRIM"]


def test_watch_closely_on_weak_insiders():
    signals = generate_signals(50, 50, 50, 60, 30, 0, True, 30, "LOW", None, 5, None)
    assert _types(signals) == ["WATCH_CLOSELY"]


def test_buy_strategy_dca_by_weight():
    assert buy_strategy({"weight": 15}, None, True, True)["dca_recommendation"] == "NO_DCA"
    aggressive = buy_strategy({"weight": 1, "current_price": 100}, None, False, True)
    assert aggressive["dca_recommendation"] == "AGGRESSIVE"
    assert aggressive["max_add_percent"] == 2.0
    unsignalled = buy_strategy({"weight": 5, "current_price": 100}, None, False, False)
    assert unsignalled["dca_recommendation"] == "CAUTIOUS"
    assert unsignalled["dca_reason"] == "No strong buy signal"
    assert unsignalled["max_add_percent"] == 0.5


def test_buy_zone_and_risk_reward():
    item = {"current_price": 100, "avg_buy_price": 110, "weight": 5,
            "fifty_two_week_low": 80, "target_price": 130}
    result = buy_strategy(item, {"bollinger_lower": 90, "sma200": 95}, False, True)
    assert result["support_price"] == 90
    assert (result["buy_zone_low"], result["buy_zone_high"]) == (90, 100)
    assert result["in_buy_zone"]
    assert result["risk_reward_ratio"] == 3.0


def test_exit_strategy_high_conviction():
    result = exit_strategy({"current_price": 100, "avg_buy_price": 80}, None, "HIGH", "BULLISH")
    assert (result["take_profit1"], result["take_profit2"], result["take_profit3"]) == (112.0, 125.0, 150.0)
    assert result["stop_loss"] == 68.0
    assert result["trailing_stop_percent"] == 10
    assert result["holding_period"] == "LONG"


def test_exit_strategy_large_gain_swings():
    result = exit_strategy({"current_price": 100, "avg_buy_price": 50, "gain_percentage": 100},
                           None, "MEDIUM", "NEUTRAL")
    assert result["holding_period"] == "SWING"
    assert result["trailing_stop_percent"] == 6


def _held(ticker, weight):
    item = mock_data.analyst_row(ticker)
    item.update({"weight": weight, "avg_buy_price": item["current_price"] * 0.9,
                 "target_price": None, "gain_percentage": 11.0})
    return item


def test_recommendation_shape():
    item = _held("KO", 6.0)
    tech = technical.compute_indicators(mock_data.price_history("KO"))
    rec = generate_recommendation(item, tech, mock_data.news_articles(["KO"]))

    assert rec["ticker"] == "KO"
    assert 0 <= rec["composite_score"] <= 100
    assert rec["primary_signal"] == rec["signals"][0]
    assert rec["portfolio_score"] is not None
    assert [c["category"] for c in rec["breakdown"]] == [
        "Fundamentals", "Technical", "Analyst", "News", "Insider", "Portfolio",
    ]
    assert rec["metadata"]["rsi_value"] == tech["rsi14"]
    assert len(rec["strengths"]) <= 4 and len(rec["concerns"]) <= 4


def test_research_drops_portfolio_component():
    item = mock_data.analyst_row("NVDA")
    rec = generate_recommendation(item, None, [], is_research=True)
    assert rec["portfolio_score"] is None
    assert len(rec["breakdown"]) == 5
    assert rec["technical_score"] == 50


def test_all_recommendations_skip_unheld_and_sort():
    items = [_held("KO", 30.0), _held("AAPL", 70.0), _held("MSFT", 0)]
    recs = generate_all_recommendations(items, [])
    assert {r["ticker"] for r in recs} == {"KO", "AAPL"}
    keys = [(r["primary_signal"]["priority"], -r["composite_score"]) for r in recs]
    assert keys == sorted(keys)


def test_signal_log_entry():
    rec = generate_recommendation(_held("XOM", 5.0))
    entry = create_signal_log_entry(rec)
    assert entry["signal_type"] == rec["primary_signal"]["type"]
    assert entry["signal_type"] in SIGNAL_PRIORITIES
    assert entry["price_at_signal"] == rec["current_price"]
