"""
stocks.py
---------
CRUD for the `stocks` table (plus the small `sectors` lookup table).

Rows come back with the joined sector flattened into `sector_name`.
Tickers are always stored upper-case.
"""

from __future__ import annotations

import logging
from typing import Any

from tracker import supabase_client as db

logger = logging.getLogger(__name__)

_TABLE   = "stocks"
_COLUMNS = "*,sectors(name)"

SEARCH_LIMIT = 10


def _flatten(row: dict[str, Any]) -> dict[str, Any]:
    out = dict(row)
    sector = out.pop("sectors", None) or {}
    out["sector_name"] = sector.get("name")
    return out


def get_all() -> list[dict[str, Any]]:
    return [_flatten(r) for r in db.select(_TABLE, _COLUMNS, order="ticker.asc") or []]


def get_by_id(stock_id: str) -> dict[str, Any] | None:
    try:
        row = db.select(_TABLE, _COLUMNS, filters=[("id", "eq", stock_id)], single=True)
    except db.SupabaseError as exc:
        if exc.code == db.NOT_FOUND:
            return None
        raise
    return _flatten(row) if row else None


def get_by_ticker(ticker: str) -> dict[str, Any] | None:
    try:
        row = db.select(_TABLE, _COLUMNS, filters=[("ticker", "eq", ticker.upper())], single=True)
    except db.SupabaseError as exc:
        if exc.code == db.NOT_FOUND:
            return None
        raise
    return _flatten(row) if row else None


def create(values: dict[str, Any]) -> dict[str, Any]:
    row = dict(values)
    row["ticker"] = row["ticker"].strip().upper()
    user = db.current_user()
    if user and user.get("id"):
        row["user_id"] = user["id"]
    created = db.insert(_TABLE, row)[0]
    logger.info("stocks: created %s", created.get("ticker"))
    return created


def update(stock_id: str, values: dict[str, Any]) -> dict[str, Any]:
    row = dict(values)
    if row.get("ticker"):
        row["ticker"] = row["ticker"].strip().upper()
    return db.update(_TABLE, row, [("id", "eq", stock_id)])[0]


def delete(stock_id: str) -> None:
    db.delete(_TABLE, [("id", "eq", stock_id)])


def search(query: str) -> list[dict[str, Any]]:
    """Case-insensitive match on ticker or name, at most 10 rows."""
    q = query.strip().replace(",", " ")
    if not q:
        return []
    rows = db.select(
        _TABLE, _COLUMNS,
        or_=f"(ticker.ilike.*{q}*,name.ilike.*{q}*)",
        order="ticker.asc",
        limit=SEARCH_LIMIT,
    )
    return [_flatten(r) for r in rows or []]


# ── Sectors ────────────────────────────────────────────────────────────────────

def get_sectors() -> list[dict[str, Any]]:
    return db.select("sectors", order="name.asc") or []


def create_sector(name: str) -> dict[str, Any]:
    return db.insert("sectors", {"name": name.strip()})[0]
