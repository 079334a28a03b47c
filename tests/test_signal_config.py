from tracker import sentiment
from tracker.recommendation_engine import SIGNAL_PRIORITIES
from tracker.signal_config import SIGNAL_CLASS_COLORS, SIGNAL_CONFIG, get_signal_color, get_signal_config


def test_every_engine_signal_has_display_config():
    for signal_type in SIGNAL_PRIORITIES:
        assert signal_type in SIGNAL_CONFIG


def test_every_class_has_a_color():
    for cfg in SIGNAL_CONFIG.values():
        assert cfg["class"] in SIGNAL_CLASS_COLORS


def test_lookup_falls_back_to_neutral():
    assert get_signal_config("MOMENTUM")["label"] == "Ride the Trend"
    assert get_signal_config("UNKNOWN") is SIGNAL_CONFIG["NEUTRAL"]
    assert get_signal_config(None)["label"] == "Neutral"
    assert get_signal_color("CONSIDER_TRIM") == "ef4444"
    assert get_signal_color("bogus") == SIGNAL_CLASS_COLORS["neutral"]


def test_sentiment_colors_and_labels():
    assert sentiment.get_sentiment_color(0.5) == sentiment.POSITIVE_COLOR
    assert sentiment.get_sentiment_color(-0.5) == sentiment.NEGATIVE_COLOR
    assert sentiment.get_sentiment_color(0.2) == sentiment.NEUTRAL_COLOR
    assert sentiment.get_sentiment_color(None) == sentiment.UNKNOWN_COLOR
    assert sentiment.get_sentiment_label("positive") == "Positive"
    assert sentiment.get_sentiment_label(None) == "Unknown"
    assert sentiment.get_sentiment_class("negative") == "negative"
