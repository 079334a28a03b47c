"""
formatting.py
-------------
Display formatting helpers shared by every tab.

All helpers render missing values (None) as an em dash "—" so that table
cells never show "None" or "nan".
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

EMPTY = "—"


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def format_number(value: float | None, decimals: int = 2, force_decimals: bool = False) -> str:
    """Thousands-separated number; whole numbers drop their decimals unless forced."""
    if _missing(value):
        return EMPTY
    if force_decimals:
        return f"{value:,.{decimals}f}"
    if float(value).is_integer():
        return f"{value:,.0f}"
    text = f"{value:,.{decimals}f}"
    min_decimals = min(decimals, 2)
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0").ljust(min_decimals, "0")
    return f"{whole}.{frac}" if frac else whole


def format_currency(value: float | None, currency: str = "CZK", show_symbol: bool = True) -> str:
    if _missing(value):
        return EMPTY
    text = f"{abs(value):,.2f}"
    sign = "-" if value < 0 else ""
    if not show_symbol:
        return f"{sign}{text}"
    symbol = {"USD": "$", "EUR": "€", "GBP": "£"}.get(currency)
    if symbol:
        return f"{sign}{symbol}{text}"
    return f"{sign}{text} {currency}"


def format_percent(value: float | None, decimals: int = 1, show_sign: bool = False) -> str:
    if _missing(value):
        return EMPTY
    text = f"{abs(value):,.{decimals}f}"
    if value < 0:
        return f"-{text}%"
    return f"+{text}%" if show_sign else f"{text}%"


def format_shares(value: float | None) -> str:
    """Share counts with up to 4 decimals, trailing zeros trimmed."""
    if _missing(value):
        return EMPTY
    if float(value).is_integer():
        return f"{value:,.0f}"
    return f"{value:,.4f}".rstrip("0").rstrip(".")


def format_price(value: float | None, currency: str | None = None, show_currency: bool = True) -> str:
    if _missing(value):
        return EMPTY
    text = f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"
    if show_currency and currency:
        return f"{text} {currency}"
    return text


def format_large_number(value: float | None) -> str:
    """1_500_000_000 → '1.5B'."""
    if _missing(value):
        return EMPTY
    sign = "-" if value < 0 else ""
    v = abs(value)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if v >= threshold:
            return f"{sign}{v / threshold:.1f}{suffix}"
    return format_number(value, 0)


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

def format_indicator_value(value: float | None, config: dict[str, Any]) -> str:
    """Format a fundamentals-table value using its indicator definition.

    `config` keys: key, format_decimals, format_prefix, format_suffix.
    """
    if _missing(value):
        return EMPTY
    if config.get("key") in ("market_cap", "enterprise_value"):
        return format_large_number(value)
    decimals = config.get("format_decimals", 2)
    return f"{config.get('format_prefix', '')}{value:,.{decimals}f}{config.get('format_suffix', '')}"


def get_indicator_value_class(value: float | None, config: dict[str, Any]) -> str:
    """'positive' / 'negative' / '' depending on the indicator thresholds."""
    if _missing(value):
        return ""
    good = config.get("good_threshold")
    bad  = config.get("bad_threshold")
    if good is None and bad is None:
        return ""

    if config.get("higher_is_better", True):
        if good is not None and value >= good:
            return "positive"
        if bad is not None and value <= bad:
            return "negative"
    else:
        if good is not None and value <= good:
            return "positive"
        if bad is not None and value >= bad:
            return "negative"
    return ""


def get_insider_sentiment_label(mspr: float | None) -> tuple[str, str]:
    """(label, css class) for an MSPR value in the -100..100 range."""
    if mspr is None:
        return EMPTY, ""
    if mspr > 25:
        return "Strong Buying", "positive"
    if mspr > 0:
        return "Buying", "positive"
    if mspr > -25:
        return "Selling", "negative"
    return "Strong Selling", "negative"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_date(value: str | datetime | None) -> str:
    dt = parse_timestamp(value)
    return dt.strftime("%Y-%m-%d") if dt else EMPTY


def format_date_time(value: str | datetime | None) -> str:
    dt = parse_timestamp(value)
    return dt.strftime("%Y-%m-%d %H:%M") if dt else EMPTY


def format_date_short(value: str | datetime | None) -> str:
    dt = parse_timestamp(value)
    return f"{dt.day} {dt:%b %y}" if dt else EMPTY


def format_relative_time(value: str | datetime | None, now: datetime | None = None) -> str:
    """'5m ago', '3h ago', '2d ago', or 'Mar 4' for anything a week or older."""
    dt = parse_timestamp(value)
    if dt is None:
        return EMPTY
    now = now or datetime.now(timezone.utc)
    seconds = (now - dt).total_seconds()
    minutes = int(seconds // 60)
    hours   = int(seconds // 3600)
    days    = int(seconds // 86400)
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{dt:%b} {dt.day}"


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------

def format_return(price_at: float, price_now: float | None) -> str:
    if price_now is None or not price_at:
        return EMPTY
    ret = (price_now - price_at) / price_at * 100
    return f"{'+' if ret >= 0 else ''}{ret:.1f}%"


def get_return_class(price_at: float, price_now: float | None) -> str:
    if price_now is None:
        return ""
    return "positive" if price_now > price_at else "negative"
