from tracker import mock_data
from tracker import supabase_client as db


def test_price_history_is_deterministic_and_ends_at_base_price():
    a = mock_data.price_history("AAPL")
    b = mock_data.price_history("AAPL")
    assert len(a) == 260
    assert a["close"].tolist() == b["close"].tolist()
    assert abs(a["close"].iloc[-1] - 228.0) < 1e-6
    assert (a["high"] >= a["low"]).all()


def test_store_filters_and_order(store):
    rows = db.select("stocks", filters=[("currency", "eq", "USD")], order="ticker.desc")
    assert [r["ticker"] for r in rows] == ["XOM", "MSFT", "KO", "JNJ", "AAPL"]


def test_store_boolean_filter_matches_postgrest_text(store):
    row = db.select("portfolios", filters=[("is_default", "eq", "true")], single=True)
    assert row["id"] == "pf-main"


def test_store_ilike_or_clause(store):
    rows = db.select("stocks", or_="(ticker.ilike.*sap*,name.ilike.*sap*)")
    assert [r["ticker"] for r in rows] == ["SAP.DE"]


def test_store_single_without_match_raises_not_found(store):
    try:
        db.select("stocks", filters=[("id", "eq", "nope")], single=True)
    except db.SupabaseError as exc:
        assert exc.code == db.NOT_FOUND
    else:
        raise AssertionError("expected SupabaseError")


def test_holdings_view_applies_linked_and_fifo_sells(store):
    rows = db.select("holdings", filters=[("portfolio_id", "eq", "pf-main")])
    by_ticker = {r["ticker"]: r for r in rows}

    aapl = by_ticker["AAPL"]
    assert aapl["total_shares"] == 11
    assert abs(aapl["avg_buy_price"] - (6 * 150 + 5 * 175.5) / 11) < 1e-9
    assert aapl["sell_count"] == 1

    ko = by_ticker["KO"]
    assert ko["total_shares"] == 20
    assert ko["avg_buy_price"] == 60


def test_signal_log_insert_fills_follow_up_columns(empty_store):
    row = db.insert("signal_log", {"ticker": "KO", "portfolio_id": "p", "signal_type": "MOMENTUM"})[0]
    assert row["price_1d"] is None
    assert row["evaluated_3m_at"] is None
    assert row["id"]
