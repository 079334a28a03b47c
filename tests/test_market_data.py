from tracker import market_data
from tracker import supabase_client as db


def _chart_payload(price=110.0, closes=(100.0, 105.0, 110.0), volumes=(10, 20, 30), currency="USD"):
    return {
        "chart": {
            "result": [{
                "meta": {"regularMarketPrice": price, "currency": currency, "symbol": "TEST"},
                "timestamp": [1_700_000_000 + i * 86_400 for i in range(len(closes))],
                "indicators": {"quote": [{
                    "open": list(closes), "high": [c + 1 for c in closes],
                    "low": [c - 1 for c in closes], "close": list(closes), "volume": list(volumes),
                }]},
            }],
        },
    }


def test_parse_chart_quote_uses_second_last_close():
    q = market_data.parse_chart_quote(_chart_payload(), "TEST")
    assert q["price"] == 110.0
    assert q["change"] == 5.0
    assert abs(q["change_percent"] - 5 / 105 * 100) < 1e-9
    assert q["volume"] == 30
    assert q["avg_volume20"] == 20


def test_parse_chart_quote_without_price_is_none():
    payload = _chart_payload()
    payload["chart"]["result"][0]["meta"].pop("regularMarketPrice")
    assert market_data.parse_chart_quote(payload, "TEST") is None
    assert market_data.parse_chart_quote(None, "TEST") is None


def test_fetch_quote_is_cached(monkeypatch):
    calls = []

    def fake_chart(symbol, range_):
        calls.append(symbol)
        return _chart_payload()

    monkeypatch.setattr(market_data, "_chart", fake_chart)
    assert market_data.fetch_live_price("test") == 110.0
    assert market_data.fetch_live_price("TEST") == 110.0
    assert calls == ["TEST"]


def test_exchange_rate_same_currency_skips_http(monkeypatch):
    def boom(*a):
        raise AssertionError("no HTTP expected")

    monkeypatch.setattr(market_data, "_chart", boom)
    assert market_data.fetch_exchange_rate("CZK", "CZK") == 1.0


def test_exchange_rate_reads_fx_symbol(monkeypatch):
    seen = []

    def fake_chart(symbol, range_):
        seen.append(symbol)
        return _chart_payload(price=23.4)

    monkeypatch.setattr(market_data, "_chart", fake_chart)
    assert market_data.fetch_exchange_rate("USD") == 23.4
    assert seen == ["USDCZK=X"]


def test_fetch_history_builds_frame(monkeypatch):
    monkeypatch.setattr(market_data, "_chart", lambda *a: _chart_payload())
    df = market_data.fetch_history("TEST")
    assert list(df.columns) == ["date", "open", "high", "low", "close", "volume"]
    assert df["close"].tolist() == [100.0, 105.0, 110.0]


def test_chart_failure_returns_none(monkeypatch):
    import requests

    def boom(*a, **kw):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(market_data.requests, "get", boom)
    assert market_data.fetch_quote("AAPL") is None
    assert market_data.fetch_history("AAPL") is None


def test_refresh_all_prices_upserts_current_prices(store, monkeypatch):
    monkeypatch.setattr(market_data, "fetch_exchange_rate", lambda ccy, to="CZK": {"USD": 23.0, "EUR": 25.0}[ccy])
    monkeypatch.setattr(market_data, "fetch_quote", lambda t: None if t == "XOM" else {
        "ticker": t, "price": 100.0, "currency": "USD", "change": 1.0,
        "change_percent": 1.0, "volume": 5, "avg_volume20": 4.0,
    })

    result = market_data.refresh_all_prices()

    assert result["failed"] == 1
    assert result["errors"] == ["No quote for XOM"]
    assert result["updated"] == len(db.select("holdings")) - 1
    ko = db.select("current_prices", filters=[("stock_id", "eq", "stk-ko")], single=True)
    assert ko["price"] == 100.0
    assert ko["exchange_rate_to_czk"] == 23.0
