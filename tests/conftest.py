import pytest

from tracker import market_data, mock_data, news_collector
from tracker import supabase_client as db


@pytest.fixture
def store():
    """Seeded in-memory backend with the demo user signed in."""
    s = mock_data.MockStore()
    db.use_local_store(s)
    db.set_access_token(None, mock_data.MOCK_USER)
    yield s
    db.use_local_store(None)
    db.set_access_token(None)


@pytest.fixture
def empty_store():
    s = mock_data.MockStore(seed=False)
    db.use_local_store(s)
    db.set_access_token(None, mock_data.MOCK_USER)
    yield s
    db.use_local_store(None)
    db.set_access_token(None)


@pytest.fixture(autouse=True)
def _clear_caches():
    market_data._quote_cache.clear()
    market_data._fx_cache.clear()
    news_collector.clear_cache()
    yield


class FakeResponse:
    """Just enough of requests.Response for the HTTP helpers."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))
        self.content = b"" if payload is None and not text else b"x"

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            import requests
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture
def fake_response():
    return FakeResponse
