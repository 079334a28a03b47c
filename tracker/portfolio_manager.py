"""
portfolio_manager.py
--------------------
Holdings, valuation and allocation math for a portfolio.

Live mode reads the backend `holdings` / `portfolio_summary` views; mock mode
(and tests) compute the same rows in Python from raw transactions with
`build_holdings` and `build_portfolio_summary`.

Lot accounting:
  - a SELL linked to a lot (source_transaction_id) reduces that lot only
  - unlinked SELLs are taken FIFO from the oldest lots (by date, then id)
  - avg_buy_price and total_invested_czk cover the remaining shares only
"""

from __future__ import annotations

import logging
from typing import Any

from tracker import supabase_client as db
from tracker import transactions as tx_repo
from tracker.transactions import compute_totals

logger = logging.getLogger(__name__)

DEFAULT_SECTOR = "Other"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fetch_holdings(portfolio_id: str | None = None) -> list[dict[str, Any]]:
    filters = [("portfolio_id", "eq", portfolio_id)] if portfolio_id else None
    return db.select("holdings", filters=filters, order="ticker.asc") or []


def fetch_portfolio_summary(portfolio_id: str | None = None) -> list[dict[str, Any]]:
    filters = [("portfolio_id", "eq", portfolio_id)] if portfolio_id else None
    return db.select("portfolio_summary", filters=filters, order="ticker.asc") or []


def sellable_shares(
    portfolio_id: str,
    stock_id: str,
    lot_id: str | None = None,
    exclude_id: str | None = None,
) -> float | None:
    """Shares a new (or edited) SELL of `stock_id` may take.

    Without a lot this is the open position after FIFO allocation of unlinked
    SELLs; with a lot it is that lot's remainder, capped by the position.
    `exclude_id` leaves one transaction out, for re-validating an edit.
    Returns None when `lot_id` is not an open lot.
    """
    txs = [t for t in tx_repo.get_by_stock(stock_id, portfolio_id) if t["id"] != exclude_id]
    held = _aggregate_lots([compute_totals(t) for t in txs])["total_shares"] if txs else 0.0
    if not lot_id:
        return held
    lot = next((row for row in tx_repo.available_lots(txs) if row["id"] == lot_id), None)
    if lot is None:
        return None
    return min(lot["remaining_shares"], held)


def build_holdings(
    transactions: list[dict[str, Any]],
    stocks: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Aggregate raw transactions into one holding row per (portfolio, stock).

    Returns only positions with shares left, sorted by ticker.
    """
    stock_by_id = {s["id"]: s for s in stocks}

    groups: dict[tuple[str, str], list[dict[str, Any]]] = {}
    for tx in transactions:
        key = (tx.get("portfolio_id"), tx["stock_id"])
        groups.setdefault(key, []).append(compute_totals(tx))

    holdings = []
    for (portfolio_id, stock_id), txs in groups.items():
        stock = stock_by_id.get(stock_id)
        if stock is None:
            logger.warning("portfolio: transaction references unknown stock %s", stock_id)
            continue
        row = _aggregate_lots(txs)
        if row["total_shares"] <= 0:
            continue
        row.update({
            "portfolio_id": portfolio_id,
            "stock_id":     stock_id,
            "ticker":       stock["ticker"],
            "stock_name":   stock.get("name", stock["ticker"]),
            "currency":     stock.get("currency"),
            "exchange":     stock.get("exchange"),
            "sector_name":  stock.get("sector_name"),
            "target_price": stock.get("target_price"),
            "price_scale":  stock.get("price_scale") or 1,
        })
        holdings.append(row)

    holdings.sort(key=lambda h: h["ticker"])
    return holdings


def build_portfolio_summary(
    holdings: list[dict[str, Any]],
    prices: dict[str, dict[str, Any]],
) -> list[dict[str, Any]]:
    """Value each holding at its current price.

    Args:
        prices: {stock_id: {price, exchange_rate_to_czk, price_change, price_change_percent}}
                Holdings without a price keep None for every valuation field.
    """
    summary = []
    for h in holdings:
        quote = prices.get(h["stock_id"]) or {}
        raw = quote.get("price")
        row = dict(h)
        row["current_price_raw"]     = raw
        row["current_exchange_rate"] = quote.get("exchange_rate_to_czk")
        row["price_change_percent"]  = quote.get("price_change_percent")

        if raw is None:
            row.update({
                "current_price":          None,
                "current_value":          None,
                "current_value_czk":      None,
                "unrealized_gain":        None,
                "gain_percentage":        None,
                "distance_to_target_pct": None,
                "price_change":           None,
            })
            summary.append(row)
            continue

        scale = h.get("price_scale") or 1
        price = raw * scale
        rate = quote.get("exchange_rate_to_czk") or 1
        value = h["total_shares"] * price
        value_czk = value * rate
        invested = h["total_invested_czk"]
        gain = value_czk - invested

        target = h.get("target_price")
        row.update({
            "current_price":     price,
            "current_value":     value,
            "current_value_czk": value_czk,
            "unrealized_gain":   gain,
            "gain_percentage":   gain / invested * 100 if invested > 0 else 0,
            "distance_to_target_pct": (
                (target - raw) / raw * 100 if target is not None and raw > 0 else None
            ),
            "price_change": (quote["price_change"] * scale
                             if quote.get("price_change") is not None else None),
        })
        summary.append(row)
    return summary


def get_portfolio_totals(summary: list[dict[str, Any]]) -> dict[str, Any]:
    """Portfolio-level KPIs in CZK."""
    invested = sum(r.get("total_invested_czk") or 0 for r in summary)
    value = sum(r.get("current_value_czk") or 0 for r in summary)
    gain = value - invested
    return {
        "total_invested_czk":       invested,
        "total_current_value_czk":  value,
        "total_unrealized_gain":    gain,
        "total_gain_percentage":    gain / invested * 100 if invested > 0 else 0,
        "stock_count":              len(summary),
    }


def get_sector_distribution(summary: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """[{sector, value, percentage}] by current value (invested value when unpriced)."""
    by_sector: dict[str, float] = {}
    for r in summary:
        sector = r.get("sector_name") or DEFAULT_SECTOR
        value = r.get("current_value_czk") or r.get("total_invested_czk") or 0
        by_sector[sector] = by_sector.get(sector, 0.0) + value

    total = sum(by_sector.values())
    rows = [
        {"sector": s, "value": v, "percentage": v / total * 100 if total > 0 else 0}
        for s, v in by_sector.items()
    ]
    rows.sort(key=lambda r: r["value"], reverse=True)
    return rows


def enrich_analyst_data(
    analyst_rows: list[dict[str, Any]],
    summary: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Attach portfolio context (weight, position, personal target) to analyst rows.

    Rows for tickers that are not held get zero weight and no personal target.
    """
    by_ticker = {r["ticker"]: r for r in summary}

    def _value(row: dict[str, Any]) -> float:
        return row.get("current_value_czk") or row.get("total_invested_czk") or 0

    total = sum(_value(r) for r in summary)

    enriched = []
    for a in analyst_rows:
        h = by_ticker.get(a["ticker"])
        item = dict(a)
        if h is None:
            item.update({
                "weight": 0, "current_value": 0, "total_shares": 0,
                "avg_buy_price": 0, "total_invested": 0, "unrealized_gain": 0,
                "gain_percentage": 0, "target_price": None, "distance_to_target": None,
            })
        else:
            value = _value(h)
            item.update({
                "weight":             value / total * 100 if total > 0 else 0,
                "current_value":      value,
                "total_shares":       h["total_shares"],
                "avg_buy_price":      h["avg_buy_price"],
                "total_invested":     h["total_invested_czk"],
                "unrealized_gain":    h.get("unrealized_gain") or 0,
                "gain_percentage":    h.get("gain_percentage") or 0,
                "target_price":       h.get("target_price"),
                "distance_to_target": h.get("distance_to_target_pct"),
            })
        enriched.append(item)
    return enriched


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _aggregate_lots(txs: list[dict[str, Any]]) -> dict[str, Any]:
    buys = sorted((t for t in txs if t["type"] == "BUY"), key=lambda t: (str(t["date"]), str(t["id"])))
    sells = [t for t in txs if t["type"] == "SELL"]

    sold_from: dict[str, float] = {}
    unallocated = 0.0
    for s in sells:
        src = s.get("source_transaction_id")
        if src:
            sold_from[src] = sold_from.get(src, 0.0) + float(s["quantity"])
        else:
            unallocated += float(s["quantity"])

    total_shares = cost = invested_czk = 0.0
    shares_before = 0.0
    live_lots = 0
    for buy in buys:
        qty = float(buy["quantity"])
        remaining = qty - sold_from.get(buy["id"], 0.0)
        final = max(0.0, remaining - max(0.0, unallocated - shares_before))
        shares_before += remaining

        total_shares += final
        cost += final * float(buy["price_per_share"])
        if qty > 0:
            invested_czk += final / qty * buy["total_amount_czk"]
        if final > 0:
            live_lots += 1

    dates = [str(b["date"]) for b in buys]
    return {
        "total_shares":       total_shares,
        "avg_buy_price":      cost / total_shares if total_shares > 0 else 0,
        "total_invested_czk": invested_czk,
        "total_fees":         sum(t.get("fees") or 0 for t in txs),
        "total_fees_czk":     sum(t["fees_czk"] for t in txs),
        "first_purchase":     min(dates) if dates else None,
        "last_purchase":      max(dates) if dates else None,
        "purchase_count":     live_lots,
        "sell_count":         len(sells),
    }
