from datetime import datetime, timedelta, timezone

import pytest

from tracker import formatting as fmt


def test_missing_values_render_as_dash():
    for fn in (fmt.format_number, fmt.format_currency, fmt.format_percent, fmt.format_shares,
               fmt.format_price, fmt.format_large_number, fmt.format_date, fmt.format_relative_time):
        assert fn(None) == "—"
    assert fmt.format_number(float("nan")) == "—"


def test_format_number():
    assert fmt.format_number(1000) == "1,000"
    assert fmt.format_number(1234.5) == "1,234.50"
    assert fmt.format_number(1.23456, 4) == "1.2346"
    assert fmt.format_number(7, force_decimals=True) == "7.00"


def test_format_currency():
    assert fmt.format_currency(-1234.5, "USD") == "-$1,234.50"
    assert fmt.format_currency(100, "EUR") == "€100.00"
    assert fmt.format_currency(100) == "100.00 CZK"
    assert fmt.format_currency(100, "USD", show_symbol=False) == "100.00"


def test_format_percent():
    assert fmt.format_percent(12.345) == "12.3%"
    assert fmt.format_percent(12.345, show_sign=True) == "+12.3%"
    assert fmt.format_percent(-5) == "-5.0%"


def test_shares_and_prices():
    assert fmt.format_shares(10.0) == "10"
    assert fmt.format_shares(2.5) == "2.5"
    assert fmt.format_shares(1.23456789) == "1.2346"
    assert fmt.format_price(228.0, "USD") == "228 USD"
    assert fmt.format_price(228.5, "USD", show_currency=False) == "228.50"


@pytest.mark.parametrize("value, expected", [
    (1_500_000_000, "1.5B"),
    (2_300_000_000_000, "2.3T"),
    (-2_000_000, "-2.0M"),
    (12_500, "12.5K"),
    (999, "999"),
])
def test_format_large_number(value, expected):
    assert fmt.format_large_number(value) == expected


def test_indicator_formatting_and_classes():
    roe = {"key": "roe", "format_decimals": 1, "format_suffix": "%", "good_threshold": 20, "bad_threshold": 5}
    assert fmt.format_indicator_value(25.123, roe) == "25.1%"
    assert fmt.format_indicator_value(2.5e9, {"key": "market_cap"}) == "2.5B"
    assert fmt.get_indicator_value_class(25, roe) == "positive"
    assert fmt.get_indicator_value_class(3, roe) == "negative"
    assert fmt.get_indicator_value_class(10, roe) == ""

    pe = {"key": "pe_ratio", "higher_is_better": False, "good_threshold": 15, "bad_threshold": 30}
    assert fmt.get_indicator_value_class(10, pe) == "positive"
    assert fmt.get_indicator_value_class(35, pe) == "negative"
    assert fmt.get_indicator_value_class(10, {"key": "beta"}) == ""


def test_insider_labels():
    assert fmt.get_insider_sentiment_label(30) == ("Strong Buying", "positive")
    assert fmt.get_insider_sentiment_label(10) == ("Buying", "positive")
    assert fmt.get_insider_sentiment_label(-10) == ("Selling", "negative")
    assert fmt.get_insider_sentiment_label(-30) == ("Strong Selling", "negative")
    assert fmt.get_insider_sentiment_label(None) == ("—", "")


def test_dates():
    ts = "2025-03-04T10:00:00Z"
    assert fmt.format_date(ts) == "2025-03-04"
    assert fmt.format_date_time(ts) == "2025-03-04 10:00"
    assert fmt.format_date_short(ts) == "4 Mar 25"
    assert fmt.parse_timestamp("2025-03-04T10:00:00").tzinfo == timezone.utc


def test_relative_time():
    now = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
    assert fmt.format_relative_time(now - timedelta(minutes=5), now) == "5m ago"
    assert fmt.format_relative_time(now - timedelta(hours=3), now) == "3h ago"
    assert fmt.format_relative_time(now - timedelta(days=2), now) == "2d ago"
    assert fmt.format_relative_time(now - timedelta(days=10), now) == "Mar 4"


def test_returns():
    assert fmt.format_return(100, 110) == "+10.0%"
    assert fmt.format_return(100, 95) == "-5.0%"
    assert fmt.format_return(100, None) == "—"
    assert fmt.get_return_class(100, 90) == "negative"
    assert fmt.get_return_class(100, 101) == "positive"
    assert fmt.get_return_class(100, None) == ""
