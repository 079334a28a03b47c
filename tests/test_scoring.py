from datetime import date

from tracker import scoring


def test_round_half_up():
    assert scoring.round_half_up(2.5) == 3
    assert scoring.round_half_up(2.49) == 2
    assert scoring.round_half_up(-2.5) == -2


def test_get_sentiment_bands():
    assert scoring.get_sentiment(65, 100) == "bullish"
    assert scoring.get_sentiment(50, 100) == "neutral"
    assert scoring.get_sentiment(49, 140) == "bearish"


def test_missing_inputs_score_neutral():
    tech = scoring.technical_score(None)
    assert (tech["score"], tech["percent"], tech["sentiment"]) == (60, 50, "neutral")

    fund = scoring.fundamental_score(None)
    assert (fund["score"], fund["max_score"], fund["sentiment"]) == (0, 140, "neutral")

    assert scoring.news_score("KO", [])["score"] == 50
    assert scoring.insider_score({}, 3)["score"] == 50


def test_fundamental_score_totals():
    f = {
        "peg_ratio": 1.0, "pe_ratio": 15, "pb_ratio": 2, "ps_ratio": 2, "roe": 30, "roa": 15,
        "gross_margin": 60, "operating_margin": 30, "net_margin": 25, "debt_to_equity": 0.2,
        "current_ratio": 2.0, "quick_ratio": 1.5, "revenue_growth": 25, "eps_growth": 30,
        "dividend_yield": 2.0, "beta": 1.0,
    }
    result = scoring.fundamental_score(f)
    assert result["score"] == 128
    assert result["percent"] == result["score"] / 140 * 100
    assert result["sentiment"] == "bullish"


def test_insider_window_filters_months():
    item = {"insider_sentiment": {"monthly_data": [
        {"year": 2025, "month": 3, "mspr": 10, "change": 5},
        {"year": 2025, "month": 2, "mspr": 20, "change": 5},
        {"year": 2024, "month": 12, "mspr": -30, "change": 1},
    ]}}
    assert scoring.get_filtered_insider_sentiment(item, 2, date(2025, 3, 15)) == {"mspr": 15.0, "change": 10}
    # nothing in range: first `months` entries
    assert scoring.get_filtered_insider_sentiment(item, 1, date(2026, 1, 1))["mspr"] == 10.0


def test_insider_aggregate_fallback_and_clamp():
    assert scoring.insider_score({"insider_sentiment": {"mspr": 40, "change": 100}}, 3)["score"] == 70
    low = scoring.insider_score({"insider_sentiment": {"mspr": -120, "change": None}}, 3)
    assert low["score"] == 0
    assert low["sentiment"] == "bearish"


def test_news_score_averages_matching_articles():
    articles = [
        {"ticker": "KO", "sentiment": {"score": 1.0}},
        {"ticker": "PEP", "related_tickers": ["KO"], "sentiment": {"score": 0.0}},
        {"ticker": "XOM", "sentiment": {"score": -1.0}},
    ]
    result = scoring.news_score("KO", articles)
    assert result["score"] == 75
    assert result["sentiment"] == "bullish"
    assert scoring.news_score("MSFT", articles)["score"] == 50


def test_news_insider_defaults_normalise():
    result = scoring.news_insider_score("KO", [], {}, 3)
    assert result["raw_score"] == 29
    assert result["score"] == 48
    assert result["sentiment"] == "neutral"


def test_portfolio_score():
    result = scoring.portfolio_score({
        "current_price": 100, "target_price": 140, "avg_buy_price": 90,
        "weight": 5, "gain_percentage": 10,
    })
    assert result["score"] == 85
    assert result["sentiment"] == "bullish"


def test_dip_score_components():
    tech = {
        "current_price": 80, "rsi14": 22, "bollinger_lower": 85, "bollinger_middle": 100,
        "bollinger_upper": 115, "sma200": 100, "macd_histogram": 0.2, "macd": 0.1,
        "volume_change": 120,
    }
    result = scoring.dip_score(tech, {"fifty_two_week_high": 130, "current_price": 80})
    assert result["score"] == 95
    assert scoring.dip_score(None, {})["score"] == 0


def test_dip_quality_gate():
    assert scoring.check_dip_quality(60, 50, 50) == {"passes": True, "reasons": []}
    gate = scoring.check_dip_quality(30, 20, 10)
    assert not gate["passes"]
    assert gate["reasons"] == ["Weak fundamentals", "Analysts bearish", "Very negative news"]


def test_conviction_levels():
    assert scoring.conviction_score({}, None, 50)["level"] == "LOW"

    strong = {
        "fundamentals": {"roe": 25, "revenue_growth_5y": 20, "net_margin": 25, "debt_to_equity": 0.3},
        "consensus_score": 2.0,
        "current_price": 100, "target_price": 130,
        "earnings": [{"surprise_percent": 3.0}] * 4,
    }
    result = scoring.conviction_score(strong, None, 70)
    assert result["level"] == "HIGH"
    assert result["score"] >= scoring.CONVICTION_HIGH
