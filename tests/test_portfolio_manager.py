from tracker import portfolio_manager as pm
from tracker import transactions

STOCKS = [
    {"id": "s1", "ticker": "AAA", "name": "Alpha", "currency": "USD", "sector_name": "Technology", "target_price": 15},
    {"id": "s2", "ticker": "BBB", "name": "Beta", "currency": "USD", "sector_name": None, "target_price": None},
]


def _tx(tx_id, stock_id, kind, qty, price, day, src=None, fees=0):
    return {
        "id": tx_id, "portfolio_id": "p", "stock_id": stock_id, "type": kind, "quantity": qty,
        "price_per_share": price, "date": day, "exchange_rate_to_czk": 23.2, "fees": fees,
        "source_transaction_id": src,
    }


def test_fifo_sell_consumes_oldest_lot():
    holdings = pm.build_holdings([
        _tx("t1", "s1", "BUY", 10, 10.0, "2024-01-01"),
        _tx("t2", "s1", "BUY", 10, 20.0, "2024-02-01"),
        _tx("t3", "s1", "SELL", 15, 25.0, "2024-03-01"),
    ], STOCKS)
    h = holdings[0]
    assert h["total_shares"] == 5
    assert h["avg_buy_price"] == 20.0
    assert abs(h["total_invested_czk"] - 5 * 20.0 * 23.2) < 1e-9
    assert h["purchase_count"] == 1
    assert h["sell_count"] == 1


def test_linked_sell_reduces_its_lot_only():
    h = pm.build_holdings([
        _tx("t1", "s1", "BUY", 10, 10.0, "2024-01-01"),
        _tx("t2", "s1", "BUY", 10, 20.0, "2024-02-01"),
        _tx("t3", "s1", "SELL", 10, 25.0, "2024-03-01", src="t2"),
    ], STOCKS)[0]
    assert h["total_shares"] == 10
    assert h["avg_buy_price"] == 10.0


def test_fully_sold_position_is_dropped():
    assert pm.build_holdings([
        _tx("t1", "s1", "BUY", 5, 10.0, "2024-01-01"),
        _tx("t2", "s1", "SELL", 5, 12.0, "2024-02-01"),
    ], STOCKS) == []


def test_unknown_stock_is_skipped():
    assert pm.build_holdings([_tx("t1", "nope", "BUY", 5, 10.0, "2024-01-01")], STOCKS) == []


def _holdings():
    return pm.build_holdings([
        _tx("t1", "s1", "BUY", 10, 10.0, "2024-01-01"),
        _tx("t2", "s2", "BUY", 10, 5.0, "2024-01-01"),
    ], STOCKS)


def test_summary_values_holdings():
    summary = pm.build_portfolio_summary(_holdings(), {
        "s1": {"price": 12.0, "exchange_rate_to_czk": 23.2, "price_change": 0.5, "price_change_percent": 4.3},
    })
    aaa, bbb = summary
    assert aaa["current_value"] == 120.0
    assert abs(aaa["current_value_czk"] - 2784.0) < 1e-9
    assert abs(aaa["gain_percentage"] - 20.0) < 1e-9
    assert abs(aaa["distance_to_target_pct"] - 25.0) < 1e-9
    assert aaa["price_change"] == 0.5
    # no price: valuation left empty
    assert bbb["current_price"] is None
    assert bbb["unrealized_gain"] is None


def test_totals_and_sectors():
    summary = pm.build_portfolio_summary(_holdings(), {
        "s1": {"price": 12.0, "exchange_rate_to_czk": 23.2},
    })
    totals = pm.get_portfolio_totals(summary)
    assert totals["stock_count"] == 2
    assert abs(totals["total_invested_czk"] - 150 * 23.2) < 1e-9
    assert abs(totals["total_current_value_czk"] - 120 * 23.2) < 1e-9

    sectors = pm.get_sector_distribution(summary)
    assert [s["sector"] for s in sectors] == ["Technology", "Other"]
    assert abs(sum(s["percentage"] for s in sectors) - 100) < 1e-9


def test_totals_of_empty_portfolio():
    assert pm.get_portfolio_totals([])["total_gain_percentage"] == 0
    assert pm.get_sector_distribution([]) == []


def test_enrich_analyst_data():
    summary = pm.build_portfolio_summary(_holdings(), {"s1": {"price": 12.0, "exchange_rate_to_czk": 23.2}})
    rows = pm.enrich_analyst_data([{"ticker": "AAA"}, {"ticker": "ZZZ"}], summary)
    held, other = rows
    assert held["total_shares"] == 10
    assert held["target_price"] == 15
    assert 0 < held["weight"] < 100
    assert other["weight"] == 0
    assert other["target_price"] is None


def test_mock_views_per_portfolio(store):
    main = pm.fetch_portfolio_summary("pf-main")
    assert [r["ticker"] for r in main] == ["AAPL", "JNJ", "KO", "MSFT", "XOM"]
    assert all(r["current_price"] is not None for r in main)
    growth = pm.fetch_holdings("pf-growth")
    assert {r["ticker"] for r in growth} == {"AAPL", "MSFT", "SAP.DE"}


def test_sellable_shares_count_unlinked_sells(store):
    # KO: BUY 30, then an unlinked SELL 10
    assert pm.sellable_shares("pf-main", "stk-ko") == 20
    assert pm.sellable_shares("pf-main", "stk-ko", "tx-06") == 20
    assert pm.sellable_shares("pf-main", "stk-ko", exclude_id="tx-07") == 30
    # AAPL lots: tx-01 has 6 left after its linked SELL, tx-02 has 5
    assert pm.sellable_shares("pf-main", "stk-aapl", "tx-01") == 6
    assert pm.sellable_shares("pf-main", "stk-aapl", "tx-03") is None
    assert pm.sellable_shares("pf-main", "stk-aapl", "no-such-lot") is None
    assert pm.sellable_shares("pf-growth", "stk-ko") == 0


def test_sold_out_position_has_nothing_to_sell(empty_store):
    empty_store.tables["stocks"].append({"id": "s-ko", "ticker": "KO", "name": "Coca-Cola", "currency": "USD"})
    base = {"stock_id": "s-ko", "portfolio_id": "p", "price_per_share": 60.0}
    buy = transactions.create({**base, "type": "BUY", "date": "2024-01-02", "quantity": 10})
    sell = transactions.create({**base, "type": "SELL", "date": "2024-02-01", "quantity": 10})

    assert pm.sellable_shares("p", "s-ko") == 0
    assert pm.sellable_shares("p", "s-ko", buy["id"]) == 0
    assert pm.sellable_shares("p", "s-ko", exclude_id=sell["id"]) == 10
