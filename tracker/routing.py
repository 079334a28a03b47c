"""
routing.py
----------
URL hash fragment ↔ view mapping, so tabs survive reloads and the browser
back/forward buttons work.

  #dashboard  #stocks  #transactions  #recommendations  #history  #news  #research
  #stock/<stock id>     stock detail
  #research/<TICKER>    research for one ticker

Anything else falls back to the dashboard.
"""

from __future__ import annotations

from urllib.parse import quote, unquote

DEFAULT_VIEW = "dashboard"

VIEWS: tuple[str, ...] = (
    "dashboard", "stocks", "transactions", "recommendations", "history", "news", "research",
)

# Detail views: view → (hash prefix, tab that hosts it)
DETAIL_VIEWS: dict[str, tuple[str, str]] = {
    "stock-detail": ("stock", "stocks"),
    "research":     ("research", "research"),
}


def parse_hash(hash_: str | None) -> dict[str, str | None]:
    """'#stock/abc' → {"view": "stock-detail", "param": "abc", "tab": "stocks"}."""
    raw = (hash_ or "").lstrip("#").strip("/")
    head, _, tail = raw.partition("/")
    param = unquote(tail) if tail else None

    if head == "stock" and param:
        return {"view": "stock-detail", "param": param, "tab": "stocks"}
    if head == "research" and param:
        return {"view": "research", "param": param.upper(), "tab": "research"}
    if head in VIEWS:
        return {"view": head, "param": None, "tab": head}
    return {"view": DEFAULT_VIEW, "param": None, "tab": DEFAULT_VIEW}


def build_hash(view: str, param: str | None = None) -> str:
    """Inverse of parse_hash. Unknown views build the dashboard hash."""
    if view in DETAIL_VIEWS and param:
        prefix, _ = DETAIL_VIEWS[view]
        value = param.upper() if view == "research" else param
        return f"#{prefix}/{quote(value, safe='')}"
    if view in VIEWS:
        return f"#{view}"
    return f"#{DEFAULT_VIEW}"
