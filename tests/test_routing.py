import pytest

from tracker.routing import build_hash, parse_hash


@pytest.mark.parametrize("hash_, expected", [
    ("#stocks", {"view": "stocks", "param": None, "tab": "stocks"}),
    ("#stock/stk-aapl", {"view": "stock-detail", "param": "stk-aapl", "tab": "stocks"}),
    ("#research/sap.de", {"view": "research", "param": "SAP.DE", "tab": "research"}),
    ("#research", {"view": "research", "param": None, "tab": "research"}),
    ("#news", {"view": "news", "param": None, "tab": "news"}),
    ("#stock", {"view": "dashboard", "param": None, "tab": "dashboard"}),
    ("#nonsense", {"view": "dashboard", "param": None, "tab": "dashboard"}),
    ("", {"view": "dashboard", "param": None, "tab": "dashboard"}),
    (None, {"view": "dashboard", "param": None, "tab": "dashboard"}),
])
def test_parse_hash(hash_, expected):
    assert parse_hash(hash_) == expected


def test_build_hash():
    assert build_hash("history") == "#history"
    assert build_hash("stock-detail", "stk-ko") == "#stock/stk-ko"
    assert build_hash("research", "msft") == "#research/MSFT"
    assert build_hash("stock-detail") == "#dashboard"
    assert build_hash("nope") == "#dashboard"


def test_hash_round_trip_with_special_characters():
    h = build_hash("research", "BRK/B")
    assert h == "#research/BRK%2FB"
    assert parse_hash(h)["param"] == "BRK/B"
