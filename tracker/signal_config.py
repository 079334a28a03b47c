"""
signal_config.py
----------------
Display configuration for every signal type shown in the app.

ACTION signals describe what to do; QUALITY signals describe the stock.
The engine's own signal types (CONVICTION_HOLD, STEADY_HOLD, WATCH_CLOSELY,
CONSIDER_TRIM) are listed alongside their badge equivalents.
"""

from __future__ import annotations

SIGNAL_CONFIG: dict[str, dict[str, str]] = {
    # ── Action signals ──────────────────────────────────────────────────────
    "DIP_OPPORTUNITY": {
        "label": "Buy the Dip",
        "class": "dip",
        "description": "Oversold with solid fundamentals, a potential buying opportunity",
    },
    "BREAKOUT": {
        "label": "Buy Breakout",
        "class": "breakout",
        "description": "Price broke above the Bollinger band on high volume",
    },
    "REVERSAL": {
        "label": "Catch Reversal",
        "class": "reversal",
        "description": "MACD divergence hints at a potential trend reversal",
    },
    "MOMENTUM": {
        "label": "Ride the Trend",
        "class": "momentum",
        "description": "Technical indicators show bullish momentum",
    },
    "ACCUMULATE": {
        "label": "Accumulate",
        "class": "accumulate",
        "description": "Quality stock, keep buying gradually (DCA)",
    },
    "GOOD_ENTRY": {
        "label": "Enter",
        "class": "good-entry",
        "description": "Quality stock below the analyst target, suitable to buy",
    },
    "WAIT_FOR_DIP": {
        "label": "Wait for Dip",
        "class": "wait",
        "description": "Quality stock but the price is too high, wait for a pullback",
    },
    "NEAR_TARGET": {
        "label": "Prepare Exit",
        "class": "target",
        "description": "Approaching the target price, prepare an exit strategy",
    },
    "TAKE_PROFIT": {
        "label": "Take Profit",
        "class": "take-profit",
        "description": "Large gain (+50%), consider partial profit taking",
    },
    "TRIM": {
        "label": "Trim",
        "class": "trim",
        "description": "Overbought with a high weight, reduce the position",
    },
    "CONSIDER_TRIM": {
        "label": "Consider Trim",
        "class": "trim",
        "description": "Overbought, overweight and near target",
    },
    "WATCH": {
        "label": "Watch",
        "class": "watch",
        "description": "Some metrics are deteriorating, pay attention",
    },
    "WATCH_CLOSELY": {
        "label": "Watch Closely",
        "class": "watch",
        "description": "Some metrics are deteriorating, monitor the position",
    },
    "HOLD": {
        "label": "Hold",
        "class": "hold",
        "description": "Quality stock, keep holding",
    },
    "STEADY_HOLD": {
        "label": "Steady Hold",
        "class": "hold",
        "description": "Solid stock with no action needed",
    },

    # ── Quality signals ─────────────────────────────────────────────────────
    "CONVICTION": {
        "label": "Top Quality",
        "class": "conviction",
        "description": "Strong long-term fundamentals, hold through volatility",
    },
    "CONVICTION_HOLD": {
        "label": "Conviction Hold",
        "class": "conviction",
        "description": "Strong long-term fundamentals, hold through volatility",
    },
    "QUALITY_CORE": {
        "label": "Quality",
        "class": "quality",
        "description": "High fundamentals and positive analyst sentiment",
    },
    "UNDERVALUED": {
        "label": "Undervalued",
        "class": "undervalued",
        "description": "30%+ upside to the analyst target price",
    },
    "STRONG_TREND": {
        "label": "Strong Trend",
        "class": "strong-trend",
        "description": "Strong trend confirmed by a high ADX",
    },
    "STEADY": {
        "label": "Steady",
        "class": "steady",
        "description": "Solid stock without notable problems",
    },
    "FUNDAMENTALLY_WEAK": {
        "label": "Weak Fundamentals",
        "class": "fundamentally-weak",
        "description": "Weak fundamentals but technically fine",
    },
    "TECHNICALLY_WEAK": {
        "label": "Weak Technicals",
        "class": "technically-weak",
        "description": "Good fundamentals but poor timing",
    },
    "PROBLEMATIC": {
        "label": "Problematic",
        "class": "problematic",
        "description": "Weak fundamentals and technicals",
    },
    "WEAK": {
        "label": "Weak",
        "class": "weak",
        "description": "Weak fundamentals or trend",
    },
    "OVERBOUGHT": {
        "label": "Overbought",
        "class": "overbought",
        "description": "RSI and stochastic show an overbought zone",
    },
    "NEUTRAL": {
        "label": "Neutral",
        "class": "neutral",
        "description": "No strong signals",
    },
}

# Badge colours per signal class (hex without '#', like the app palette)
SIGNAL_CLASS_COLORS: dict[str, str] = {
    "dip":                "22c55e",
    "breakout":           "10b981",
    "reversal":           "14b8a6",
    "momentum":           "3b82f6",
    "accumulate":         "06b6d4",
    "good-entry":         "22c55e",
    "wait":               "f59e0b",
    "target":             "a855f7",
    "take-profit":        "f97316",
    "trim":               "ef4444",
    "watch":              "f59e0b",
    "hold":               "64748b",
    "conviction":         "8b5cf6",
    "quality":            "6366f1",
    "undervalued":        "22c55e",
    "strong-trend":       "3b82f6",
    "steady":             "64748b",
    "fundamentally-weak": "f97316",
    "technically-weak":   "f97316",
    "problematic":        "ef4444",
    "weak":               "ef4444",
    "overbought":         "f43f5e",
    "neutral":            "94a3b8",
}


def get_signal_config(signal_type: str | None) -> dict[str, str]:
    """Config for `signal_type`, or NEUTRAL for unknown / missing types."""
    return SIGNAL_CONFIG.get(signal_type or "", SIGNAL_CONFIG["NEUTRAL"])


def get_signal_color(signal_type: str | None) -> str:
    return SIGNAL_CLASS_COLORS.get(get_signal_config(signal_type)["class"], SIGNAL_CLASS_COLORS["neutral"])
