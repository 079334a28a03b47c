import pytest

from tracker import analyst_data, news_collector, portfolios, stocks, transactions

import app


@pytest.fixture
def demo(store, monkeypatch):
    monkeypatch.setattr(analyst_data, "DATA_MODE", "mock")
    monkeypatch.setattr(news_collector, "DATA_MODE", "mock")
    app.invalidate()
    yield store
    app.invalidate()


def test_portfolio_data_is_cached(demo):
    first = app.portfolio_data("pf-main")
    assert app.portfolio_data("pf-main") is first
    app.invalidate("pf-main")
    assert app.portfolio_data("pf-main") is not first


def test_tab_builders_render(demo):
    data = app.portfolio_data("pf-main")
    assert app.build_dashboard_tab(data, None) is not None
    assert app.build_stocks_tab("pf-main", None) is not None
    assert app.build_transactions_tab("pf-main") is not None
    assert app.build_recommendations_tab(data, "pf-main") is not None
    assert app.build_history_tab("pf-main", {"history": {"field": "ticker", "direction": "asc"}}) is not None
    assert app.build_auth_modal() is not None


def test_stock_detail(demo):
    assert app.build_stock_detail("stk-aapl", "pf-main") is not None
    missing = app.build_stock_detail("stk-nope", "pf-main")
    assert missing.children == "Stock not found."


def test_research_tab(demo):
    assert app.build_research_tab("NVDA") is not None
    blank = app.build_research_tab(None)
    assert len(blank.children) == 2


def test_empty_portfolio_dashboard(demo):
    view = app.build_dashboard_tab(app.portfolio_data("pf-none"), None)
    assert "no holdings" in view.children


def test_history_body_pages(demo):
    history = app._history("pf-main")
    table, info, _ = app.history_body(history, None, "all", 99, None)
    assert info.startswith("Page ")
    assert f"{len(history)} signals" in info


def _edit_values(tx, **changes):
    values = {k: tx.get(k) for k in ("type", "date", "quantity", "price_per_share",
                                     "exchange_rate_to_czk", "fees", "notes")}
    values.update(changes)
    return values


def test_sell_after_unlinked_sell_is_rejected(empty_store):
    base = {"stock_id": "s-ko", "portfolio_id": "p", "price_per_share": 60.0, "date": "2024-03-01"}
    transactions.create({**base, "type": "BUY", "quantity": 10})
    transactions.create({**base, "type": "SELL", "quantity": 10})

    errors = app.transaction_errors({**base, "type": "SELL", "quantity": 10})
    assert errors == ["Cannot sell more than the 0 shares available."]


def test_sell_lot_must_be_open(demo):
    form = {"stock_id": "stk-aapl", "portfolio_id": "pf-main", "type": "SELL",
            "date": "2024-09-01", "quantity": 1, "price_per_share": 230.0}
    assert app.transaction_errors({**form, "source_transaction_id": "tx-03"}) == \
        ["The selected lot has no shares left."]
    assert app.transaction_errors({**form, "source_transaction_id": "tx-01"}) == []
    assert app.transaction_errors({**form, "quantity": 7, "source_transaction_id": "tx-01"}) == \
        ["Cannot sell more than the 6 shares available."]


def test_edit_unlinked_sell_respects_position(demo):
    tx = transactions.get_by_id("tx-07")
    assert app.save_transaction_edit("tx-07", _edit_values(tx, quantity=40)) == \
        ["Cannot sell more than the 30 shares available."]
    assert app.save_transaction_edit("tx-07", _edit_values(tx, quantity=30, notes="  all out ")) == []

    saved = transactions.get_by_id("tx-07")
    assert saved["quantity"] == 30
    assert saved["notes"] == "all out"
    assert not any(h["ticker"] == "KO" for h in app.portfolio_data("pf-main")["summary"])


def test_edit_buy_keeps_linked_sells_covered(demo):
    tx = transactions.get_by_id("tx-01")
    assert app.save_transaction_edit("tx-01", _edit_values(tx, quantity=3)) == \
        ["4 shares of this lot are already sold."]
    assert app.save_transaction_edit("tx-01", _edit_values(tx, type="SELL")) != []
    assert app.save_transaction_edit("tx-01", _edit_values(tx, price_per_share=155.0)) == []
    assert transactions.get_by_id("tx-01")["price_per_share"] == 155.0
    assert app.save_transaction_edit("tx-nope", _edit_values(tx)) == ["Transaction not found."]


def test_portfolio_actions(demo):
    assert app.apply_portfolio_action("create", name="  ") == "Name is required."
    assert app.apply_portfolio_action("create", name="Income", description="Dividends",
                                      color=portfolios.COLORS[2], make_default=True) is None
    income = portfolios.get_default()
    assert income["name"] == "Income"
    assert income["color"] == portfolios.COLORS[2]
    assert portfolios.get_by_id("pf-main")["is_default"] is False

    assert app.apply_portfolio_action("rename", "pf-growth", name="Growth II") is None
    assert portfolios.get_by_id("pf-growth")["name"] == "Growth II"

    assert app.apply_portfolio_action("default", "pf-main") is None
    assert portfolios.get_default()["id"] == "pf-main"

    assert app.apply_portfolio_action("delete", "pf-main") == "The default portfolio cannot be deleted."
    assert app.apply_portfolio_action("delete", "pf-growth") == "Delete the portfolio's transactions first."
    assert app.apply_portfolio_action("delete", income["id"]) is None
    assert portfolios.get_by_id(income["id"]) is None
    assert app.apply_portfolio_action("delete", income["id"]) == "Portfolio not found."


def test_portfolio_modal_renders(demo):
    assert app.build_portfolio_modal() is not None
    assert len(app.portfolio_rows(portfolios.get_all())) == 2
    assert app.portfolio_rows([]).children == "No portfolios yet."
    assert app.build_edit_transaction_modal() is not None


def test_resolve_sector(demo):
    assert app.resolve_sector("sec-tech", None) == "sec-tech"
    assert app.resolve_sector(None, " technology ") == "sec-tech"

    new_id = app.resolve_sector("sec-tech", "Semiconductors")
    assert new_id != "sec-tech"
    assert any(s["id"] == new_id and s["name"] == "Semiconductors" for s in stocks.get_sectors())
    assert app.resolve_sector(None, "semiconductors") == new_id


def test_delete_stock(demo):
    assert app.delete_stock("stk-aapl") == "Delete the stock's transactions first."
    assert stocks.get_by_id("stk-aapl") is not None

    nvda = stocks.create({"ticker": "NVDA", "name": "NVIDIA Corp.", "currency": "USD"})
    assert app.delete_stock(nvda["id"]) is None
    assert stocks.get_by_id(nvda["id"]) is None


def test_news_tab(demo):
    data = app.portfolio_data("pf-main")
    assert app.build_news_tab(data) is not None

    market = app.news_articles("market", "pf-main")
    assert {a["ticker"] for a in market} & {"S&P 500", "Fed"}
    assert app.news_articles("portfolio", "pf-main") == data["news"]

    negative = news_collector.filter_articles(data["news"], sentiment="negative")
    assert app.news_count(negative, data["news"]).startswith(f"{len(negative)} / {len(data['news'])} articles")
    assert app.news_list([])[0].children == "No articles match these filters."
