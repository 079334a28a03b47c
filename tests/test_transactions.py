from tracker import transactions

VALID = {
    "stock_id": "stk-ko", "portfolio_id": "pf-main", "type": "BUY", "date": "2025-01-10",
    "quantity": "5", "price_per_share": "61.2", "fees": "", "exchange_rate_to_czk": "23.1",
}


def test_valid_form_has_no_errors():
    assert transactions.validate_transaction(VALID) == []


def test_form_errors():
    form = {**VALID, "stock_id": None, "quantity": "0", "price_per_share": "-1",
            "fees": "-2", "exchange_rate_to_czk": "abc", "type": "HOLD"}
    errors = transactions.validate_transaction(form)
    assert errors == [
        "Select a stock.",
        "Type must be BUY or SELL.",
        "Quantity must be greater than 0.",
        "Price per share must be 0 or more.",
        "Fees cannot be negative.",
        "Exchange rate must be greater than 0.",
    ]


def test_sell_cannot_exceed_available_shares():
    form = {**VALID, "type": "SELL", "quantity": "7.5"}
    assert transactions.validate_transaction(form, available_shares=7.5) == []
    assert transactions.validate_transaction(form, available_shares=6) == [
        "Cannot sell more than the 6 shares available.",
    ]


def test_compute_totals_defaults_rate_to_one():
    out = transactions.compute_totals({"quantity": 3, "price_per_share": 10, "fees": 2})
    assert (out["total_amount"], out["total_amount_czk"], out["fees_czk"]) == (30.0, 30.0, 2.0)

    usd = transactions.compute_totals({"quantity": 2, "price_per_share": 5, "exchange_rate_to_czk": 23.0})
    assert usd["total_amount_czk"] == 230.0
    assert usd["fees_czk"] == 0.0


def test_available_lots_subtract_linked_sells():
    lots = transactions.available_lots([
        {"id": "b2", "type": "BUY", "date": "2024-02-01", "quantity": 4, "price_per_share": 12},
        {"id": "b1", "type": "BUY", "date": "2024-01-01", "quantity": 10, "price_per_share": 10},
        {"id": "s1", "type": "SELL", "date": "2024-03-01", "quantity": 10, "price_per_share": 15,
         "source_transaction_id": "b1"},
    ])
    assert [(lot["id"], lot["remaining_shares"]) for lot in lots] == [("b2", 4.0)]


def test_crud_against_store(store):
    before = len(transactions.get_all("pf-growth"))
    created = transactions.create({**VALID, "portfolio_id": "pf-growth", "quantity": 5, "price_per_share": 61.2})
    assert created["currency"] == "USD"
    assert created["source_transaction_id"] is None

    rows = transactions.get_all("pf-growth")
    assert len(rows) == before + 1
    assert rows[0]["date"] == "2025-01-10"
    assert rows[0]["stock"]["ticker"] == "KO"

    transactions.update(created["id"], {"notes": "dividend reinvest"})
    assert transactions.get_by_id(created["id"])["notes"] == "dividend reinvest"

    transactions.delete(created["id"])
    assert transactions.get_by_id(created["id"]) is None


def test_lot_queries_against_store(store):
    lots = transactions.get_available_lots("stk-aapl", "pf-main")
    assert [(lot["id"], lot["remaining_shares"]) for lot in lots] == [("tx-01", 6.0), ("tx-02", 5.0)]

    sell = transactions.get_by_id("tx-03")
    assert sell["source_transaction"]["id"] == "tx-01"


def test_filters_by_stock_and_dates(store):
    assert {t["id"] for t in transactions.get_by_stock("stk-ko")} == {"tx-06", "tx-07"}
    in_2024 = transactions.get_by_date_range("2024-01-01", "2024-12-31")
    assert all(t["date"].startswith("2024") for t in in_2024)
    assert len(transactions.get_recent(3)) == 3
