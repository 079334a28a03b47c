import pytest

from tracker import analyst_data, mock_data, news_collector, pipeline, scheduler, signal_log
from tracker import supabase_client as db


@pytest.fixture
def mock_mode(monkeypatch):
    monkeypatch.setattr(pipeline, "DATA_MODE", "mock")
    monkeypatch.setattr(analyst_data, "DATA_MODE", "mock")
    monkeypatch.setattr(news_collector, "DATA_MODE", "mock")
    assert pipeline.init_data_mode() == "mock"
    yield
    db.use_local_store(None)
    db.set_access_token(None)


def test_mock_mode_uses_local_store(mock_mode):
    assert pipeline.is_mock()
    assert db.is_authenticated()
    assert db.current_user() == mock_data.MOCK_USER
    assert pipeline.live_price("ko") == 63.0
    assert pipeline.exchange_rate("EUR") == 25.1
    assert pipeline.exchange_rate(None) is None
    assert len(pipeline.price_history("KO")) == 260


def test_live_mode_needs_configuration(monkeypatch):
    monkeypatch.setattr(pipeline, "DATA_MODE", "live")
    monkeypatch.setattr(db, "_URL", "")
    assert pipeline.init_data_mode() == "mock"
    db.use_local_store(None)
    db.set_access_token(None)


def test_load_portfolio_data(mock_mode):
    data = pipeline.load_portfolio_data("pf-main")

    assert [r["ticker"] for r in data["summary"]] == ["AAPL", "JNJ", "KO", "MSFT", "XOM"]
    assert data["totals"]["stock_count"] == 5
    assert data["sectors"][0]["percentage"] > 0
    assert {r["ticker"] for r in data["technical"]} == {"AAPL", "JNJ", "KO", "MSFT", "XOM"}
    assert len(data["recommendations"]) == 5
    assert abs(sum(a["weight"] for a in data["analyst"]) - 100) < 1e-6
    assert data["news"] and data["errors"] == []
    priorities = [r["primary_signal"]["priority"] for r in data["recommendations"]]
    assert priorities == sorted(priorities)


def test_empty_portfolio(mock_mode):
    data = pipeline.load_portfolio_data("pf-none")
    assert data["summary"] == []
    assert data["recommendations"] == []
    assert data["totals"]["total_invested_czk"] == 0


def test_load_research(mock_mode):
    result = pipeline.load_research(" nvda ")
    assert result["ticker"] == "NVDA"
    assert result["error"] is None
    assert result["technical"]["current_price"] == mock_data.base_price("NVDA")
    assert result["recommendation"]["portfolio_score"] is None


def test_scheduler_jobs_record_results(mock_mode, monkeypatch):
    monkeypatch.setattr("tracker.signal_evaluator.time.sleep", lambda s: None)
    state = {}

    scheduler._refresh_prices_job(state)
    assert "last_price_refresh" not in state

    scheduler._evaluate_signals_job(state)
    assert state["last_evaluation"] == {"updated": 0, "failed": 0, "errors": []}

    scheduler._autolog_job(state)
    assert state["last_autolog"]["logged"] > 0
    assert signal_log.get_recent_signals("pf-growth")


def test_scheduler_start_and_stop(monkeypatch):
    monkeypatch.setattr(scheduler, "AUTO_LOG_SIGNALS", True)
    assert not scheduler.is_running()
    scheduler.start({})
    try:
        assert scheduler.is_running()
        job_ids = {job.id for job in scheduler._scheduler.get_jobs()}
        assert job_ids == {"price_refresh", "signal_evaluation", "signal_autolog"}
    finally:
        scheduler.stop()
    assert not scheduler.is_running()
