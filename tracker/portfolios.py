"""
portfolios.py
-------------
CRUD for the `portfolios` table. Exactly one portfolio per user is the
default; creating or updating a default portfolio unsets the others.
"""

from __future__ import annotations

import logging
from typing import Any

from tracker import supabase_client as db

logger = logging.getLogger(__name__)

_TABLE = "portfolios"

COLORS = (
    "#646cff", "#22c55e", "#ef4444", "#f59e0b", "#3b82f6",
    "#8b5cf6", "#ec4899", "#14b8a6", "#f97316", "#6366f1",
)


def get_all() -> list[dict[str, Any]]:
    """All portfolios, default first, then by name."""
    return db.select(_TABLE, order="is_default.desc,name.asc") or []


def get_by_id(portfolio_id: str) -> dict[str, Any] | None:
    try:
        return db.select(_TABLE, filters=[("id", "eq", portfolio_id)], single=True)
    except db.SupabaseError as exc:
        if exc.code == db.NOT_FOUND:
            return None
        raise


def get_default() -> dict[str, Any] | None:
    try:
        return db.select(_TABLE, filters=[("is_default", "eq", "true")], single=True)
    except db.SupabaseError as exc:
        if exc.code == db.NOT_FOUND:
            return None
        raise


def create(values: dict[str, Any]) -> dict[str, Any]:
    """Insert a portfolio owned by the signed-in user."""
    if values.get("is_default"):
        db.update(_TABLE, {"is_default": False}, [("is_default", "eq", "true")])

    row = dict(values)
    user = db.current_user()
    if user and user.get("id"):
        row["user_id"] = user["id"]
    created = db.insert(_TABLE, row)[0]
    logger.info("portfolios: created %s", created.get("name"))
    return created


def update(portfolio_id: str, values: dict[str, Any]) -> dict[str, Any]:
    if values.get("is_default"):
        db.update(_TABLE, {"is_default": False}, [("id", "neq", portfolio_id)])
    return db.update(_TABLE, values, [("id", "eq", portfolio_id)])[0]


def delete(portfolio_id: str) -> None:
    """Delete a portfolio. The backend rejects this while transactions reference it."""
    db.delete(_TABLE, [("id", "eq", portfolio_id)])
