import pytest

from tracker import analyst_data, market_data


@pytest.mark.parametrize("ticker, expected", [
    ("AAPL", "AAPL"),
    ("SAP.DE", "SAP.DE"),
    ("MC.PA", "MC"),
    ("0005.HK", "5.HK"),
    ("shop.to", "SHOP"),
])
def test_to_finnhub_ticker(ticker, expected):
    assert analyst_data.to_finnhub_ticker(ticker) == expected


def test_parse_recommendations_consensus_and_key():
    out = analyst_data.parse_recommendations([
        {"strongBuy": 10, "buy": 5, "hold": 3, "sell": 1, "strongSell": 1, "period": "2025-01-01"},
        {"strongBuy": 0, "buy": 0, "hold": 20, "sell": 0, "strongSell": 0, "period": "2024-12-01"},
    ])
    assert out["number_of_analysts"] == 20
    assert out["consensus_score"] == round((20 + 5 - 1 - 2) / 20, 2)
    assert out["recommendation_key"] == "strong_buy"
    assert out["recommendation_period"] == "2025-01-01"


def test_parse_recommendations_empty():
    out = analyst_data.parse_recommendations([])
    assert out["consensus_score"] is None
    assert out["number_of_analysts"] is None


def test_parse_recommendations_sell_majority():
    out = analyst_data.parse_recommendations([{"strongBuy": 0, "buy": 1, "hold": 2, "sell": 5, "strongSell": 1}])
    assert out["recommendation_key"] == "underperform"


def test_parse_fundamentals_prefers_first_key():
    f = analyst_data.parse_fundamentals({"peTTM": 30.0, "peBasicExclExtraTTM": 28.0, "marketCapitalization": 1500.0})
    assert f["pe_ratio"] == 28.0
    assert f["market_cap"] == 1500.0
    assert f["roe"] is None


def test_parse_insider_sentiment_aggregates_last_three_months():
    payload = {"data": [
        {"year": 2024, "month": 1, "mspr": 10, "change": 100},
        {"year": 2024, "month": 2, "mspr": -20, "change": -50},
        {"year": 2024, "month": 3, "mspr": 40, "change": 10},
        {"year": 2024, "month": 4, "mspr": 10, "change": 0},
    ]}
    out = analyst_data.parse_insider_sentiment(payload)
    assert out["mspr"] == 10.0
    assert out["change"] == -40
    assert out["monthly_data"][0] == {"year": 2024, "month": 4, "mspr": 10, "change": 0}
    assert analyst_data.parse_insider_sentiment({"data": []}) is None


def test_us_payload_uses_finnhub_quote(monkeypatch):
    monkeypatch.setattr(market_data, "fetch_quote", lambda t: pytest.fail("Yahoo not expected"))
    row = analyst_data.parse_analyst_payload(
        "KO", None,
        quote={"c": 62.0, "d": 0.5, "dp": 0.81},
        metrics={"metric": {"52WeekHigh": 70.0, "52WeekLow": 55.0}},
        profile={"name": "Coca-Cola", "finnhubIndustry": "Beverages"},
        target={"targetMean": 72.0},
    )
    assert row["stock_name"] == "Coca-Cola"
    assert row["current_price"] == 62.0
    assert row["fifty_two_week_high"] == 70.0
    assert row["analyst_target_price"] == 72.0
    assert row["insider_sentiment"] is None


def test_non_us_payload_prices_from_yahoo(monkeypatch):
    monkeypatch.setattr(market_data, "fetch_quote", lambda t: {
        "price": 230.0, "change": 2.0, "change_percent": 0.9,
    })
    monkeypatch.setattr(market_data, "fetch_history", lambda t, r: None)
    row = analyst_data.parse_analyst_payload("SAP.DE", "SAP", quote={"c": 250.0})
    assert row["current_price"] == 230.0


def test_mock_mode_returns_one_row_per_ticker(monkeypatch):
    monkeypatch.setattr(analyst_data, "DATA_MODE", "mock")
    rows, errors = analyst_data.fetch_analyst_data([{"ticker": "AAPL"}, {"ticker": "AAPL"}, {"ticker": "KO"}])
    assert [r["ticker"] for r in rows] == ["AAPL", "KO"]
    assert errors == []


def test_live_mode_reports_unavailable_finnhub(monkeypatch):
    monkeypatch.setattr(analyst_data, "DATA_MODE", "live")
    monkeypatch.setattr(analyst_data, "FINNHUB_API_KEY", "key")
    monkeypatch.setattr(analyst_data, "_get", lambda path, **params: None)
    monkeypatch.setattr(analyst_data.time, "sleep", lambda s: None)

    rows, errors = analyst_data.fetch_analyst_data([{"ticker": "KO"}])
    assert rows[0]["error"] == "Finnhub unavailable"
    assert errors == ["KO: Finnhub unavailable"]
