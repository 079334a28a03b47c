"""
scoring.py
----------
Component scores feeding the recommendation engine.

Every component is a plain dict:
    {category, score, max_score, percent, details, sentiment}
with optional raw_score / raw_max_score for normalised components.

Point budgets:
  Fundamentals   140  PEG 20 | P/E 20 | ROE 30 | margin 25 | growth 25 | D/E 10 | CR 10
  Technical      120  RSI 15 | MACD 35 | Bollinger 10 | ADX 25 | SMA200 25 | volume 10
  Analyst         80  consensus 50 | coverage 15 | target upside 10 | agreement 5
  News+Insider    60  news 35 | insider 25   (normalised to 0-100)
  Portfolio      100  target 35 | distance from avg 25 | weight 20 | gain 20

Plus the DIP score (0-100), the DIP quality gate and the long-term
conviction score (0-100, HIGH / MEDIUM / LOW).
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any

logger = logging.getLogger(__name__)

FUNDAMENTAL_MAX = 140
TECHNICAL_MAX   = 120
ANALYST_MAX     = 80
NEWS_INSIDER_RAW_MAX = 60

DIP_TRIGGER = 50

CONVICTION_HIGH   = 70
CONVICTION_MEDIUM = 45


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    """Round like a browser does (0.5 always goes up, also for negatives)."""
    return int(math.floor(value + 0.5))


def get_sentiment(score: float, max_score: float) -> str:
    percent = score / max_score * 100
    if percent >= 65:
        return "bullish"
    if percent <= 35:
        return "bearish"
    return "neutral"


def _component(category: str, score: float, max_score: float,
               details: list[str], sentiment: str | None = None) -> dict[str, Any]:
    return {
        "category":  category,
        "score":     score,
        "max_score": max_score,
        "percent":   score / max_score * 100,
        "details":   details,
        "sentiment": sentiment or get_sentiment(score, max_score),
    }


def get_filtered_insider_sentiment(
    item: dict[str, Any],
    months: int,
    today: date | None = None,
) -> dict[str, Any]:
    """Average MSPR and summed share change over the last `months` months.

    Falls back to the aggregate mspr / change when no monthly breakdown
    exists, and to the first `months` entries when none fall in range.
    """
    insider = item.get("insider_sentiment") or {}
    monthly = insider.get("monthly_data") or []

    if not monthly:
        if insider.get("mspr") is not None:
            return {"mspr": insider["mspr"], "change": insider.get("change")}
        return {"mspr": None, "change": None}

    today = today or date.today()
    in_range = [
        d for d in monthly
        if 0 <= (today.year - d["year"]) * 12 + (today.month - d["month"]) < months
    ]
    rows = in_range or monthly[:months]
    if not rows:
        return {"mspr": None, "change": None}

    avg_mspr = sum(d.get("mspr") or 0 for d in rows) / len(rows)
    return {
        "mspr":   round_half_up(avg_mspr * 100) / 100,
        "change": sum(d.get("change") or 0 for d in rows),
    }


def ticker_articles(ticker: str, articles: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Articles whose primary or related tickers include `ticker`."""
    return [
        a for a in (articles or [])
        if a.get("ticker") == ticker or ticker in (a.get("related_tickers") or [])
    ]


def _article_score(article: dict[str, Any]) -> float:
    return (article.get("sentiment") or {}).get("score") or 0


# ---------------------------------------------------------------------------
# Fundamentals (0-140)
# ---------------------------------------------------------------------------

def fundamental_score(f: dict[str, Any] | None) -> dict[str, Any]:
    if not f:
        return _component("Fundamentals", 0, FUNDAMENTAL_MAX,
                          ["No fundamental data available"], "neutral")

    details: list[str] = []
    score = 0

    peg = f.get("peg_ratio")
    if peg is not None and peg > 0:
        if 0.5 <= peg <= 1.2:
            score += 20
            details.append(f"PEG {peg:.2f} - ideal valuation")
        elif 1.2 < peg <= 2.0:
            score += 15
            details.append(f"PEG {peg:.2f} - slightly expensive vs growth")
        elif 0.3 <= peg < 0.5:
            score += 10
            details.append(f"PEG {peg:.2f} - very cheap")
        elif 2.0 < peg <= 3.0:
            score += 5
            details.append(f"PEG {peg:.2f} - expensive vs growth")
        elif peg < 0.3:
            details.append(f"PEG {peg:.2f} - extremely cheap (verify)")
        else:
            details.append(f"PEG {peg:.2f} - extremely expensive")

    pe = f.get("pe_ratio")
    if pe is not None:
        if 0 < pe < 5:
            score += 3
            details.append(f"P/E {pe:.1f} - extremely low")
        elif 5 <= pe < 7:
            score += 8
            details.append(f"P/E {pe:.1f} - very cheap")
        elif 7 <= pe < 10:
            score += 15
            details.append(f"P/E {pe:.1f} - cheap")
        elif 10 <= pe <= 20:
            score += 20
            details.append(f"P/E {pe:.1f} - fair valuation")
        elif 20 < pe <= 30:
            score += 15
            details.append(f"P/E {pe:.1f} - pricier")
        elif 30 < pe <= 40:
            score += 8
            details.append(f"P/E {pe:.1f} - very expensive")
        elif 40 < pe <= 60:
            score += 3
            details.append(f"P/E {pe:.1f} - extreme")
        elif pe > 60:
            details.append(f"P/E {pe:.1f} - speculative")
        else:
            details.append(f"P/E {pe:.1f} - loss-making")

    de = f.get("debt_to_equity")

    # ROE with a leverage penalty
    roe = f.get("roe")
    roe_points = 0
    penalty = 0
    if roe is not None:
        if roe > 25:
            roe_points = 30
            details.append(f"ROE {roe:.1f}% - excellent profitability")
        elif roe > 18:
            roe_points = 24
            details.append(f"ROE {roe:.1f}% - very good profitability")
        elif roe > 12:
            roe_points = 18
            details.append(f"ROE {roe:.1f}% - good profitability")
        elif roe > 5:
            roe_points = 9
            details.append(f"ROE {roe:.1f}% - average profitability")
        elif roe > 0:
            roe_points = 4
            details.append(f"ROE {roe:.1f}% - weak profitability")
        else:
            details.append(f"ROE {roe:.1f}% - negative profitability")

        if de is not None and de > 1.5:
            if roe > 25:
                penalty = -6
            elif roe > 18:
                penalty = -5
            elif roe > 12:
                penalty = -3
            if penalty < 0:
                details.append(f"ROE penalty {penalty} pts (high debt)")
    score += max(0, roe_points + penalty)

    margin = f.get("net_margin")
    if margin is not None:
        if margin > 25:
            score += 25
            details.append(f"Net margin {margin:.1f}% - excellent")
        elif margin > 15:
            score += 20
            details.append(f"Net margin {margin:.1f}% - very good")
        elif margin > 8:
            score += 13
            details.append(f"Net margin {margin:.1f}% - good")
        elif margin > 0:
            score += 6
            details.append(f"Net margin {margin:.1f}% - thin")
        else:
            details.append(f"Net margin {margin:.1f}% - loss-making")

    growth = f.get("revenue_growth")
    if growth is not None:
        if growth > 25:
            score += 25
            details.append(f"Revenue growth {growth:.1f}% - strong")
        elif growth > 15:
            score += 20
            details.append(f"Revenue growth {growth:.1f}% - good")
        elif growth > 5:
            score += 13
            details.append(f"Revenue growth {growth:.1f}% - moderate")
        elif growth > 0:
            score += 6
            details.append(f"Revenue growth {growth:.1f}% - minimal")
        else:
            details.append(f"Revenue growth {growth:.1f}% - shrinking sales")

    if de is not None:
        if de < 0.3:
            score += 10
            details.append(f"D/E {de:.2f} - minimal debt")
        elif de < 0.7:
            score += 8
            details.append(f"D/E {de:.2f} - low debt")
        elif de < 1.5:
            score += 5
            details.append(f"D/E {de:.2f} - moderate debt")
        elif de < 2.5:
            score += 2
            details.append(f"D/E {de:.2f} - high debt")
        else:
            details.append(f"D/E {de:.2f} - very high debt")

    cr = f.get("current_ratio")
    if cr is not None:
        if cr > 2.0:
            score += 10
            details.append(f"Current ratio {cr:.2f} - strong liquidity")
        elif cr > 1.5:
            score += 8
            details.append(f"Current ratio {cr:.2f} - good liquidity")
        elif cr > 1.0:
            score += 5
            details.append(f"Current ratio {cr:.2f} - adequate liquidity")
        elif cr > 0.5:
            score += 2
            details.append(f"Current ratio {cr:.2f} - low liquidity")
        else:
            details.append(f"Current ratio {cr:.2f} - critical liquidity")

    return _component("Fundamentals", min(FUNDAMENTAL_MAX, score), FUNDAMENTAL_MAX, details)


# ---------------------------------------------------------------------------
# Technical (0-120)
# ---------------------------------------------------------------------------

def technical_score(tech: dict[str, Any] | None) -> dict[str, Any]:
    if not tech:
        return {
            "category":  "Technical",
            "score":     60,
            "max_score": TECHNICAL_MAX,
            "percent":   50,
            "details":   ["No technical data available"],
            "sentiment": "neutral",
        }

    details: list[str] = []
    score = 0
    bull = bear = 0
    price = tech.get("current_price")

    rsi = tech.get("rsi14")
    if rsi is not None:
        if rsi < 20:
            pts, label = 15, "extremely oversold"
            bull += 1
        elif rsi < 30:
            pts, label = 13, "oversold"
            bull += 1
        elif rsi < 40:
            pts, label = 11, "weak"
        elif rsi < 50:
            pts, label = 9, "neutral-weak"
        elif rsi < 60:
            pts, label = 7, "neutral"
        elif rsi < 70:
            pts, label = 5, "strong"
        elif rsi < 80:
            pts, label = 3, "overbought"
            bear += 1
        else:
            pts, label = 1, "extremely overbought"
            bear += 1
        score += pts
        details.append(f"RSI {rsi:.0f} - {label}")

    hist = tech.get("macd_histogram")
    if hist is not None:
        trend = tech.get("macd_trend")
        if hist > 0 and trend == "bullish":
            pts = 28
            bull += 1
            details.append("MACD bullish, histogram rising")
        elif hist > 0:
            pts = 23
            bull += 1
            details.append("MACD above signal")
        elif -0.5 < hist <= 0:
            pts = 12
            details.append("MACD slightly below signal")
        elif trend == "bearish":
            pts = 3
            bear += 1
            details.append("MACD bearish, histogram falling")
        else:
            pts = 7
            bear += 1
            details.append("MACD below signal")
        score += min(35, pts)

    upper = tech.get("bollinger_upper")
    lower = tech.get("bollinger_lower")
    if upper is not None and lower is not None and price is not None:
        middle = tech.get("bollinger_middle")
        if middle is None:
            middle = (upper + lower) / 2
        band = upper - lower
        if price < lower - band * 0.5:
            pts = 9
            bull += 1
            details.append("Price far below lower Bollinger band")
        elif price < lower:
            pts = 7
            bull += 1
            details.append("Price below lower Bollinger band")
        elif price < middle:
            pts = 5
            details.append("Price in lower Bollinger zone")
        elif price < upper:
            pts = 4
            details.append("Price in upper Bollinger zone")
        elif price < upper + band * 0.5:
            pts = 2
            bear += 1
            details.append("Price above upper Bollinger band")
        else:
            pts = 1
            bear += 1
            details.append("Price far above upper Bollinger band")
        width_pct = band / middle * 100 if middle > 0 else 0
        if width_pct < 5:
            pts = min(10, pts + 1)
            details.append("Bollinger squeeze")
        score += pts

    adx      = tech.get("adx")
    plus_di  = tech.get("plus_di")
    minus_di = tech.get("minus_di")
    if adx is not None and plus_di is not None and minus_di is not None:
        up = plus_di > minus_di
        if adx > 40:
            pts = 25
            if up:
                bull += 1
            details.append(f"ADX {adx:.0f} - very strong trend")
        elif adx >= 30:
            if up:
                pts = 21
                bull += 1
            else:
                pts = 14
                bear += 1
            details.append(f"ADX {adx:.0f} - strong {'up' if up else 'down'}trend")
        elif adx >= 25:
            pts = 16 if up else 10
            details.append(f"ADX {adx:.0f} - developing trend")
        elif adx >= 20:
            pts = 6
            details.append(f"ADX {adx:.0f} - weak trend")
        else:
            pts = 3
            details.append(f"ADX {adx:.0f} - no trend")
        score += pts

    sma200 = tech.get("sma200")
    if sma200 is not None and price is not None:
        pvs = tech.get("price_vs_sma200")
        if pvs is None:
            pvs = (price - sma200) / sma200 * 100
        if price > sma200 and pvs > 5:
            pts = 25
            bull += 1
            details.append(f"Price {pvs:.1f}% above 200-day MA (uptrend)")
        elif price > sma200:
            pts = 19
            bull += 1
            details.append("Price above 200-day MA")
        elif -5 <= pvs <= 5:
            pts = 12
            details.append("Price near 200-day MA")
        elif pvs >= -15:
            pts = 6
            bear += 1
            details.append("Price below 200-day MA")
        else:
            pts = 0
            bear += 1
            details.append(f"Price {abs(pvs):.1f}% below 200-day MA (downtrend)")
        score += pts

    avg_vol = tech.get("avg_volume20")
    cur_vol = tech.get("current_volume")
    if avg_vol and cur_vol is not None:
        ratio = cur_vol / avg_vol
        pvs50 = tech.get("price_vs_sma50")
        price_up = pvs50 is not None and pvs50 > 0
        if ratio > 1.5 and price_up:
            pts = 10
            bull += 1
            details.append("High volume confirms rise")
        elif ratio > 1.5:
            pts = 8
            details.append("High volume")
        elif ratio > 1.0:
            pts = 7
            details.append("Above-average volume")
        elif ratio >= 0.7:
            pts = 5
            details.append("Normal volume")
        else:
            pts = 2
            details.append("Low volume")
        score += pts

    if bull >= 3:
        sentiment = "bullish"
    elif bear >= 3:
        sentiment = "bearish"
    elif bull > bear:
        sentiment = "bullish"
    elif bear > bull:
        sentiment = "bearish"
    else:
        sentiment = "neutral"

    return _component("Technical", min(TECHNICAL_MAX, score), TECHNICAL_MAX, details, sentiment)


# ---------------------------------------------------------------------------
# Analyst (0-80)
# ---------------------------------------------------------------------------

def analyst_score(item: dict[str, Any]) -> dict[str, Any]:
    details: list[str] = []
    score = 0

    cs = item.get("consensus_score")
    if cs is not None:
        if cs > 1.5:
            pts = 50
        elif cs > 1.0:
            pts = 40
        elif cs > 0.5:
            pts = 32
        elif cs > 0.0:
            pts = 25
        elif cs > -0.5:
            pts = 16
        elif cs > -1.0:
            pts = 8
        else:
            pts = 0
        score += pts
        details.append(f"Consensus {cs:+.2f}")

    count = item.get("number_of_analysts")
    if count is not None:
        if count >= 20:
            score += 15
        elif count >= 10:
            score += 12
        elif count >= 5:
            score += 8
        elif count >= 1:
            score += 4
        details.append(f"{count} analysts covering")

    target = item.get("analyst_target_price")
    price = item.get("current_price")
    if target and price and price > 0:
        upside = (target - price) / price * 100
        if upside > 30:
            score += 10
        elif upside > 15:
            score += 8
        elif upside > 5:
            score += 5
        elif upside > -5:
            score += 3
        else:
            score += 1
        details.append(f"Analyst target upside {upside:+.0f}%")

    sb, b, h = item.get("strong_buy") or 0, item.get("buy") or 0, item.get("hold") or 0
    s, ss = item.get("sell") or 0, item.get("strong_sell") or 0
    total = sb + b + h + s + ss
    if total > 0:
        bullish = (sb + b) / total * 100
        holding = h / total * 100
        selling = (s + ss) / total * 100
        if bullish > 60 or selling > 60 or holding > 60:
            score += 5
            details.append("Strong analyst agreement")
        elif bullish > 50 or selling > 50 or holding > 50:
            score += 4
        elif max(bullish, selling, holding) >= 30:
            score += 2
        else:
            score += 1
            details.append("Analysts divided")

    return _component("Analyst", min(ANALYST_MAX, score), ANALYST_MAX, details)


# ---------------------------------------------------------------------------
# News + insider (60 raw points, normalised to 0-100)
# ---------------------------------------------------------------------------

def news_insider_score(
    ticker: str,
    articles: list[dict[str, Any]] | None,
    item: dict[str, Any],
    months: int,
    today: date | None = None,
) -> dict[str, Any]:
    details: list[str] = []
    news_raw = 17
    insider_raw = 12
    avg = 0.0

    matched = ticker_articles(ticker, articles)
    if matched:
        avg = sum(_article_score(a) for a in matched) / len(matched)
        if avg > 0.5:
            news_raw = 35
            label = "very positive"
        elif avg >= 0.15:
            news_raw = 28
            label = "positive"
        elif avg >= -0.15:
            news_raw = 17
            label = "neutral"
        elif avg >= -0.5:
            news_raw = 8
            label = "negative"
        else:
            news_raw = 0
            label = "very negative"
        details.append(f"News sentiment {label} ({avg * 100:+.0f}%)")
        pos = sum(1 for a in matched if _article_score(a) > 0.2)
        neg = sum(1 for a in matched if _article_score(a) < -0.2)
        details.append(f"{len(matched)} articles ({pos}+ / {neg}-)")
    else:
        details.append("No news data (neutral)")

    insider = get_filtered_insider_sentiment(item, months, today)
    mspr = insider["mspr"]
    if mspr is not None:
        if mspr > 50:
            insider_raw = 25
        elif mspr >= 25:
            insider_raw = 21
        elif mspr >= 0:
            insider_raw = 16
        elif mspr >= -25:
            insider_raw = 12
        elif mspr >= -50:
            insider_raw = 6
        else:
            insider_raw = 0
        details.append(f"Insider MSPR {mspr:+.1f}")
        change = insider["change"]
        if change:
            details.append(f"Net change: {change:+,.0f} shares")
    else:
        details.append("No insider data (neutral)")

    total = news_raw + insider_raw
    normalised = round_half_up(total / NEWS_INSIDER_RAW_MAX * 100)

    mspr_or_zero = mspr if mspr is not None else 0
    if avg > 0.15 or mspr_or_zero > 15:
        sentiment = "bullish"
    elif avg < -0.15 or mspr_or_zero < -15:
        sentiment = "bearish"
    else:
        sentiment = "neutral"

    return {
        "category":      "News+Insider",
        "score":         normalised,
        "max_score":     100,
        "percent":       normalised,
        "details":       details,
        "sentiment":     sentiment,
        "raw_score":     total,
        "raw_max_score": NEWS_INSIDER_RAW_MAX,
    }


def news_score(ticker: str, articles: list[dict[str, Any]] | None) -> dict[str, Any]:
    """Standalone news score, 0-100 around a neutral 50."""
    if not articles:
        return _component("News", 50, 100, ["No recent news articles"], "neutral")

    matched = ticker_articles(ticker, articles)
    if not matched:
        return _component("News", 50, 100, ["No news for this stock"], "neutral")

    avg = sum(_article_score(a) for a in matched) / len(matched)
    score = round_half_up((avg + 1) * 50)

    pos = sum(1 for a in matched if _article_score(a) > 0.2)
    neg = sum(1 for a in matched if _article_score(a) < -0.2)
    details = [
        f"{len(matched)} articles: {pos} positive, {len(matched) - pos - neg} neutral, {neg} negative",
        f"Average sentiment: {avg * 100:+.0f}%",
    ]
    sentiment = "bullish" if avg > 0.15 else "bearish" if avg < -0.15 else "neutral"
    return _component("News", score, 100, details, sentiment)


def insider_score(item: dict[str, Any], months: int, today: date | None = None) -> dict[str, Any]:
    """Standalone insider score: 50 + MSPR / 2, clamped to 0-100."""
    insider = get_filtered_insider_sentiment(item, months, today)
    mspr = insider["mspr"]
    if mspr is None:
        return _component("Insider", 50, 100, ["No insider data available"], "neutral")

    score = max(0, min(100, round_half_up(50 + mspr / 2)))
    if mspr > 50:
        label = "strong insider buying"
    elif mspr > 25:
        label = "insider buying"
    elif mspr > 0:
        label = "mild insider buying"
    elif mspr > -25:
        label = "mild insider selling"
    elif mspr > -50:
        label = "insider selling"
    else:
        label = "strong insider selling"
    details = [f"MSPR {mspr:+.1f} - {label}"]
    if insider["change"] is not None:
        details.append(f"Net shares: {insider['change']:+,.0f}")

    sentiment = "bullish" if mspr > 15 else "bearish" if mspr < -15 else "neutral"
    return _component("Insider", score, 100, details, sentiment)


# ---------------------------------------------------------------------------
# Portfolio fit (0-100, holdings only)
# ---------------------------------------------------------------------------

def portfolio_score(item: dict[str, Any]) -> dict[str, Any]:
    details: list[str] = []
    score = 0
    price  = item.get("current_price")
    target = item.get("target_price")

    if target is not None and price is not None and price > 0:
        upside = (target - price) / price * 100
        if upside > 30:
            score += 35
        elif upside > 20:
            score += 28
        elif upside > 10:
            score += 21
        elif upside > 5:
            score += 14
        elif upside > 0:
            score += 7
        details.append(f"{upside:+.1f}% to personal target")
    else:
        score += 17
        details.append("No personal target set")

    avg = item.get("avg_buy_price") or 0
    if avg > 0 and price is not None:
        dist = (price - avg) / avg * 100
        if dist < -15:
            score += 25
        elif dist < -10:
            score += 20
        elif dist < 0:
            score += 15
        elif dist < 25:
            score += 10
        elif dist < 50:
            score += 5
        else:
            score += 2
        details.append(f"{dist:+.1f}% vs average buy price")

    weight = item.get("weight")
    if weight is not None:
        if weight > 12:
            score += 4
            details.append(f"Weight {weight:.1f}% - overweight")
        elif weight > 6:
            score += 12
        elif weight >= 3:
            score += 20
        else:
            score += 15

    gain = item.get("gain_percentage")
    if gain is not None:
        if gain > 75:
            score += 10
        elif gain > 40:
            score += 13
        elif gain > 15:
            score += 16
        elif gain > 0:
            score += 20
        elif gain > -15:
            score += 14
        elif gain > -30:
            score += 10
        else:
            score += 4

    score = min(100, score)
    sentiment = "bullish" if score >= 65 else "bearish" if score <= 35 else "neutral"
    component = _component("Portfolio", score, 100, details, sentiment)
    component["raw_score"] = score
    component["raw_max_score"] = 100
    return component


# ---------------------------------------------------------------------------
# DIP score (0-100) and quality gate
# ---------------------------------------------------------------------------

def dip_score(tech: dict[str, Any] | None, item: dict[str, Any]) -> dict[str, Any]:
    """Oversold-opportunity score.

    RSI 25 | Bollinger 20 | 200-day MA 20 | 52-week drop 15 | MACD 10 | volume 10
    """
    tech = tech or {}
    score = 0
    details: list[str] = []
    price = tech.get("current_price")

    rsi = tech.get("rsi14")
    if rsi is not None:
        if rsi < 25:
            score += 25
            details.append(f"RSI {rsi:.0f} - deeply oversold")
        elif rsi < 30:
            score += 20
            details.append(f"RSI {rsi:.0f} - oversold")
        elif rsi < 35:
            score += 15
            details.append(f"RSI {rsi:.0f} - nearly oversold")
        elif rsi < 40:
            score += 8

    lower, middle, upper = (tech.get("bollinger_lower"), tech.get("bollinger_middle"),
                            tech.get("bollinger_upper"))
    if None not in (lower, middle, upper, price):
        band = upper - lower
        if price < lower - band * 0.5:
            score += 20
            details.append("Far below lower Bollinger band")
        elif price < lower:
            score += 15
            details.append("Below lower Bollinger band")
        elif price < lower + band * 0.2:
            score += 8

    sma200 = tech.get("sma200")
    if price is not None and sma200 is not None:
        dist = (price - sma200) / sma200 * 100
        if dist < -15:
            score += 20
            details.append(f"{abs(dist):.1f}% below 200-day MA")
        elif dist < -10:
            score += 15
            details.append(f"{abs(dist):.1f}% below 200-day MA")
        elif dist < -5:
            score += 10
        elif dist < 0:
            score += 5

    high = item.get("fifty_two_week_high")
    cur = item.get("current_price")
    if high is not None and cur is not None and high:
        drop = (high - cur) / high * 100
        if drop > 35:
            score += 15
            details.append(f"{drop:.0f}% below 52-week high")
        elif drop > 25:
            score += 12
            details.append(f"{drop:.0f}% below 52-week high")
        elif drop > 15:
            score += 8
        elif drop > 10:
            score += 4

    hist = tech.get("macd_histogram")
    if hist is not None:
        if hist > 0 and tech.get("macd") is not None:
            if price is not None and sma200 is not None and price < sma200:
                score += 10
                details.append("MACD turning up in downtrend")
        elif -0.5 < hist <= 0:
            score += 5

    vol_change = tech.get("volume_change")
    if vol_change is not None:
        if vol_change > 100:
            score += 10
            details.append("Volume spike (possible capitulation)")
        elif vol_change > 50:
            score += 7
        elif vol_change > 0:
            score += 3

    return {"score": min(100, score), "details": details}


def check_dip_quality(fundamental_pct: float, analyst_pct: float, news_pct: float) -> dict[str, Any]:
    reasons: list[str] = []
    if fundamental_pct < 35:
        reasons.append("Weak fundamentals")
    if analyst_pct < 25:
        reasons.append("Analysts bearish")
    if news_pct < 20:
        reasons.append("Very negative news")
    return {"passes": not reasons, "reasons": reasons}


# ---------------------------------------------------------------------------
# Conviction (0-100)
# ---------------------------------------------------------------------------

def conviction_score(
    item: dict[str, Any],
    tech: dict[str, Any] | None,
    insider_pct: float,
) -> dict[str, Any]:
    """Long-term quality score.

    Fundamentals 40 | analysts 12 | target upside 10 | earnings 8 |
    insider 12 | 200-day MA 10 | volume 8
    """
    score = 0
    details: list[str] = []
    f = item.get("fundamentals") or {}
    tech = tech or {}

    roe = f.get("roe")
    if roe is not None:
        if roe > 20:
            score += 12
            details.append(f"Strong ROE: {roe:.1f}%")
        elif roe > 15:
            score += 9
        elif roe > 10:
            score += 5

    growth5y = f.get("revenue_growth_5y")
    if growth5y is not None:
        if growth5y > 15:
            score += 10
            details.append(f"5Y revenue CAGR: {growth5y:.1f}%")
        elif growth5y > 10:
            score += 7
        elif growth5y > 5:
            score += 4

    margin = f.get("net_margin")
    if margin is not None:
        if margin > 20:
            score += 10
            details.append(f"High margins: {margin:.1f}%")
        elif margin > 12:
            score += 7
        elif margin > 5:
            score += 3

    de = f.get("debt_to_equity")
    if de is not None:
        if de < 0.5:
            score += 8
            details.append("Low debt")
        elif de < 1:
            score += 5
        elif de < 2:
            score += 2

    cs = item.get("consensus_score")
    if cs is not None and cs > 0.5:
        score += min(12, round_half_up(cs * 6))
        details.append("Positive analyst consensus")

    price = item.get("current_price")
    upside = None
    source = None
    if item.get("target_price") is not None and price is not None and price > 0:
        upside = (item["target_price"] - price) / price * 100
        source = "personal"
    elif item.get("analyst_target_price") is not None and price is not None and price > 0:
        upside = (item["analyst_target_price"] - price) / price * 100
        source = "analyst"
    elif cs is not None:
        if cs >= 1.5:
            upside = 25
        elif cs >= 1.0:
            upside = 15
        elif cs >= 0.5:
            upside = 8
        source = "estimated"

    if upside is not None:
        if upside > 25:
            score += 10
            if source == "personal":
                details.append(f"{upside:.0f}% upside to target")
            elif source == "analyst":
                details.append(f"{upside:.0f}% upside to analyst target")
        elif upside > 15:
            score += 7
            if source == "analyst":
                details.append(f"{upside:.0f}% upside to analyst target")
        elif upside > 5:
            score += 3

    earnings = item.get("earnings") or []
    if len(earnings) >= 4:
        beats = sum(
            1 for e in earnings[:4]
            if e.get("surprise_percent") is not None and e["surprise_percent"] > 0
        )
        if beats >= 4:
            score += 8
            details.append("Beat earnings 4/4 quarters")
        elif beats >= 3:
            score += 6
            details.append(f"Beat earnings {beats}/4 quarters")
        elif beats >= 2:
            score += 3

    if insider_pct > 65:
        score += 12
        details.append("Strong insider buying")
    elif insider_pct > 55:
        score += 8
    elif insider_pct > 45:
        score += 4

    sma200 = tech.get("sma200")
    tprice = tech.get("current_price")
    if sma200 and tprice is not None:
        ratio = tprice / sma200
        if ratio > 1.05:
            score += 10
            details.append("Price solidly above 200-MA (uptrend)")
        elif ratio > 1.0:
            score += 7
            details.append("Price above 200-MA support")
        elif ratio > 0.95:
            score += 3
            details.append("Price near 200-MA")

    vol_change = tech.get("volume_change")
    if vol_change is not None:
        if vol_change > 20:
            score += 8
            details.append("Rising volume interest")
        elif vol_change > 0:
            score += 5
            details.append("Stable volume")
        elif vol_change > -30:
            score += 2

    if score >= CONVICTION_HIGH:
        level = "HIGH"
    elif score >= CONVICTION_MEDIUM:
        level = "MEDIUM"
    else:
        level = "LOW"

    return {"score": min(100, score), "level": level, "details": details}
