"""
sentiment.py
------------
Colour / label helpers for news-article sentiment (score in -1..1).
"""

from __future__ import annotations

POSITIVE_COLOR = "#22c55e"
NEGATIVE_COLOR = "#ef4444"
NEUTRAL_COLOR  = "#f59e0b"
UNKNOWN_COLOR  = "var(--text-secondary)"

_LABELS = {"positive": "Positive", "negative": "Negative", "neutral": "Neutral"}


def get_sentiment_color(score: float | None) -> str:
    if score is None:
        return UNKNOWN_COLOR
    if score > 0.2:
        return POSITIVE_COLOR
    if score < -0.2:
        return NEGATIVE_COLOR
    return NEUTRAL_COLOR


def get_sentiment_label(label: str | None) -> str:
    return _LABELS.get(label or "", "Unknown")


def get_sentiment_class(label: str | None) -> str:
    return label or ""
