"""
transactions.py
---------------
CRUD for the `transactions` table, lot tracking and form validation.

A SELL may reference the BUY lot it sells from via `source_transaction_id`;
a lot's remaining shares are its quantity minus every SELL linked to it.
Sells without a lot reference are allocated FIFO by portfolio_manager.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from tracker import supabase_client as db

logger = logging.getLogger(__name__)

_TABLE   = "transactions"
_COLUMNS = (
    "*,stock:stocks(*),portfolio:portfolios(*),"
    "source_transaction:source_transaction_id(id,date,price_per_share,currency,quantity)"
)

TRANSACTION_TYPES = ("BUY", "SELL")
CURRENCIES = ("USD", "EUR", "CZK", "GBP")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def get_all(portfolio_id: str | None = None) -> list[dict[str, Any]]:
    filters = [("portfolio_id", "eq", portfolio_id)] if portfolio_id else None
    return db.select(_TABLE, _COLUMNS, filters=filters, order="date.desc") or []


def get_by_stock(stock_id: str, portfolio_id: str | None = None) -> list[dict[str, Any]]:
    filters = [("stock_id", "eq", stock_id)]
    if portfolio_id:
        filters.append(("portfolio_id", "eq", portfolio_id))
    return db.select(_TABLE, _COLUMNS, filters=filters, order="date.desc") or []


def get_by_portfolio(portfolio_id: str) -> list[dict[str, Any]]:
    return get_all(portfolio_id)


def get_by_id(transaction_id: str) -> dict[str, Any] | None:
    try:
        return db.select(_TABLE, _COLUMNS, filters=[("id", "eq", transaction_id)], single=True)
    except db.SupabaseError as exc:
        if exc.code == db.NOT_FOUND:
            return None
        raise


def get_by_date_range(start: str | date, end: str | date) -> list[dict[str, Any]]:
    return db.select(
        _TABLE, _COLUMNS,
        filters=[("date", "gte", str(start)), ("date", "lte", str(end))],
        order="date.desc",
    ) or []


def get_recent(limit: int = 10) -> list[dict[str, Any]]:
    return db.select(_TABLE, _COLUMNS, order="date.desc", limit=limit) or []


def create(values: dict[str, Any]) -> dict[str, Any]:
    """Insert a transaction. Totals are computed by the database."""
    row = {
        "stock_id":              values["stock_id"],
        "portfolio_id":          values["portfolio_id"],
        "date":                  str(values["date"]),
        "type":                  values["type"],
        "quantity":              values["quantity"],
        "price_per_share":       values["price_per_share"],
        "currency":              values.get("currency") or "USD",
        "exchange_rate_to_czk":  values.get("exchange_rate_to_czk"),
        "fees":                  values.get("fees") or 0,
        "notes":                 values.get("notes"),
        "source_transaction_id": values.get("source_transaction_id") or None,
    }
    created = db.insert(_TABLE, row)[0]
    logger.info("transactions: %s %s × %s", row["type"], row["quantity"], row["stock_id"])
    return created


def update(transaction_id: str, values: dict[str, Any]) -> dict[str, Any]:
    return db.update(_TABLE, values, [("id", "eq", transaction_id)])[0]


def delete(transaction_id: str) -> None:
    db.delete(_TABLE, [("id", "eq", transaction_id)])


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

def available_lots(transactions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """BUY lots with shares left after the SELLs that reference them.

    `transactions` should be the rows of one stock in one portfolio.
    """
    sold: dict[str, float] = {}
    for tx in transactions:
        src = tx.get("source_transaction_id")
        if tx.get("type") == "SELL" and src:
            sold[src] = sold.get(src, 0) + float(tx["quantity"])

    buys = sorted((t for t in transactions if t.get("type") == "BUY"), key=lambda t: str(t["date"]))
    lots = []
    for buy in buys:
        remaining = float(buy["quantity"]) - sold.get(buy["id"], 0)
        if remaining > 0:
            lots.append({
                "id":               buy["id"],
                "date":             buy["date"],
                "quantity":         buy["quantity"],
                "remaining_shares": remaining,
                "price_per_share":  buy["price_per_share"],
                "currency":         buy.get("currency"),
                "total_amount":     buy.get("total_amount"),
            })
    return lots


def get_available_lots(stock_id: str, portfolio_id: str) -> list[dict[str, Any]]:
    rows = db.select(
        _TABLE,
        "id,date,type,quantity,price_per_share,currency,total_amount,source_transaction_id",
        filters=[("stock_id", "eq", stock_id), ("portfolio_id", "eq", portfolio_id)],
        order="date.asc",
    ) or []
    return available_lots(rows)


# ---------------------------------------------------------------------------
# Totals & validation
# ---------------------------------------------------------------------------

def compute_totals(tx: dict[str, Any]) -> dict[str, Any]:
    """Return `tx` with total_amount, total_amount_czk and fees_czk filled in.

    Mirrors the generated columns of the transactions table; a missing
    exchange rate counts as 1 (amounts already in CZK).
    """
    out = dict(tx)
    rate  = float(tx.get("exchange_rate_to_czk") or 1)
    total = float(tx["quantity"]) * float(tx["price_per_share"])
    fees  = float(tx.get("fees") or 0)
    out["total_amount"]     = total
    out["total_amount_czk"] = total * rate
    out["fees_czk"]         = fees * rate
    return out


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_transaction(form: dict[str, Any], available_shares: float | None = None) -> list[str]:
    """Return a list of human-readable problems with a transaction form (empty = valid)."""
    errors: list[str] = []

    if not form.get("stock_id"):
        errors.append("Select a stock.")
    if not form.get("portfolio_id"):
        errors.append("Select a portfolio.")
    if form.get("type") not in TRANSACTION_TYPES:
        errors.append("Type must be BUY or SELL.")
    if not form.get("date"):
        errors.append("Date is required.")

    qty = _to_float(form.get("quantity"))
    if qty is None or qty <= 0:
        errors.append("Quantity must be greater than 0.")

    price = _to_float(form.get("price_per_share"))
    if price is None or price < 0:
        errors.append("Price per share must be 0 or more.")

    raw_fees = form.get("fees")
    if raw_fees not in (None, ""):
        fees = _to_float(raw_fees)
        if fees is None or fees < 0:
            errors.append("Fees cannot be negative.")

    raw_rate = form.get("exchange_rate_to_czk")
    if raw_rate not in (None, ""):
        rate = _to_float(raw_rate)
        if rate is None or rate <= 0:
            errors.append("Exchange rate must be greater than 0.")

    if (form.get("type") == "SELL" and qty is not None and available_shares is not None
            and qty > available_shares + 1e-9):
        errors.append(f"Cannot sell more than the {available_shares:g} shares available.")

    return errors
