from tracker import news_collector


def test_positive_headline():
    s = news_collector.analyze_basic_sentiment("Shares surge after record profit")
    assert s["label"] == "positive"
    assert s["score"] == 1.0
    assert set(s["keywords"]) == {"surge", "record", "profit"}


def test_negative_headline():
    s = news_collector.analyze_basic_sentiment("Stock plunge on weak guidance", "analysts cut targets")
    assert s["label"] == "negative"
    assert s["score"] == -1.0


def test_mixed_headline_is_neutral():
    s = news_collector.analyze_basic_sentiment("Gain in sales offset by lawsuit")
    assert s["score"] == 0.0
    assert s["label"] == "neutral"


def test_no_keywords_scores_zero():
    s = news_collector.analyze_basic_sentiment("Company holds annual meeting")
    assert s == {"score": 0.0, "label": "neutral", "keywords": []}


def test_portfolio_news_mock_mode(monkeypatch):
    monkeypatch.setattr(news_collector, "DATA_MODE", "mock")
    result = news_collector.fetch_portfolio_news([{"ticker": "AAPL"}, {"ticker": "KO"}, {"ticker": "AAPL"}])

    assert result["by_ticker"] == {"AAPL": 3, "KO": 3}
    dates = [a["published_at"] for a in result["articles"]]
    assert dates == sorted(dates, reverse=True)
    assert result["overall_sentiment"] is not None
    assert result["errors"] == []


def test_ticker_news_falls_back_to_yahoo(monkeypatch, fake_response):
    monkeypatch.setattr(news_collector, "_FINNHUB_API_KEY", "key")
    urls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        urls.append(url)
        if "finnhub" in url:
            return fake_response(200, [])
        return fake_response(200, {"news": [{
            "uuid": "n1", "title": "KO shares jump", "summary": "", "publisher": "Reuters",
            "link": "https://example.com/ko", "providerPublishTime": 1_700_000_000,
        }]})

    monkeypatch.setattr(news_collector.requests, "get", fake_get)
    articles = news_collector.fetch_ticker_news("ko", "Coca-Cola")

    assert len(urls) == 2
    assert articles[0]["ticker"] == "KO"
    assert articles[0]["stock_name"] == "Coca-Cola"
    assert articles[0]["sentiment"]["label"] == "positive"
    assert articles[0]["published_at"].startswith("2023-11-14")

    # second call is served from the cache
    news_collector.fetch_ticker_news("KO")
    assert len(urls) == 2


def test_market_news_deduplicates_by_url(monkeypatch, fake_response):
    monkeypatch.setattr(news_collector, "DATA_MODE", "live")
    monkeypatch.setattr(news_collector.time, "sleep", lambda s: None)
    monkeypatch.setattr(news_collector.requests, "get", lambda *a, **kw: fake_response(200, {"news": [
        {"uuid": "same", "title": "Markets rally", "link": "https://example.com/a", "providerPublishTime": 1},
    ]}))
    articles = news_collector.fetch_market_news()
    assert len(articles) == 1


def test_market_news_mock_mode(monkeypatch):
    monkeypatch.setattr(news_collector, "DATA_MODE", "mock")
    articles = news_collector.fetch_market_news()

    assert len(articles) == news_collector.MOCK_MARKET_TOPICS * 3
    assert {a["ticker"] for a in articles} >= {"S&P 500", "Fed"}
    dates = [a["published_at"] for a in articles]
    assert dates == sorted(dates, reverse=True)


def test_filter_articles():
    articles = [
        {"ticker": "KO", "sentiment": {"label": "positive"}},
        {"ticker": "KO", "sentiment": {"label": "negative"}},
        {"ticker": "AAPL", "sentiment": {"label": "positive"}},
        {"ticker": "AAPL", "sentiment": None},
    ]
    assert len(news_collector.filter_articles(articles)) == 4
    assert len(news_collector.filter_articles(articles, "KO")) == 2
    assert len(news_collector.filter_articles(articles, "all", "positive")) == 2
    assert news_collector.filter_articles(articles, "AAPL", "negative") == []
