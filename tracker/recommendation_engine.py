"""
recommendation_engine.py
------------------------
Turns enriched analyst rows (analyst + fundamentals + portfolio context),
technical indicators and news into per-stock recommendations.

Composite score (all components on a 0-100 scale):
  Holdings   fundamentals 28% | technical 24% | analyst 16% | news+insider 12% | portfolio 20%
  Research   fundamentals 35% | technical 30% | analyst 20% | news+insider 15%

Signals (lower priority number wins the primary slot):
  1 DIP_OPPORTUNITY   DIP score ≥ 50 and quality gate passes
  2 MOMENTUM          technical ≥ 60 with RSI between 45 and 75
  3 CONVICTION_HOLD   conviction level HIGH
  4 QUALITY_CORE      fundamentals ≥ 60, analysts ≥ 55, conviction not LOW
  5 NEAR_TARGET       within 8% of the personal target
  6 ACCUMULATE        DIP score 15-49, fundamentals ≥ 50, conviction not LOW
  7 STEADY_HOLD       fundamentals ≥ 40, technical ≥ 35, conviction not LOW
  8 WATCH_CLOSELY     deteriorating fundamentals / insider / news
  9 CONSIDER_TRIM     overbought, overweight and near target
 10 NEUTRAL           nothing else fired
"""

from __future__ import annotations

import logging
from typing import Any

from tracker.scoring import (
    DIP_TRIGGER,
    analyst_score,
    check_dip_quality,
    conviction_score,
    dip_score,
    fundamental_score,
    get_filtered_insider_sentiment,
    insider_score,
    news_insider_score,
    news_score,
    portfolio_score,
    round_half_up,
    technical_score,
)

logger = logging.getLogger(__name__)

SCORE_WEIGHTS: dict[str, float] = {
    "fundamental":  0.28,
    "technical":    0.24,
    "analyst":      0.16,
    "news_insider": 0.12,
    "portfolio":    0.20,
}

SCORE_WEIGHTS_RESEARCH: dict[str, float] = {
    "fundamental":  0.35,
    "technical":    0.30,
    "analyst":      0.20,
    "news_insider": 0.15,
}

SIGNAL_PRIORITIES: dict[str, int] = {
    "DIP_OPPORTUNITY": 1,
    "MOMENTUM":        2,
    "CONVICTION_HOLD": 3,
    "QUALITY_CORE":    4,
    "NEAR_TARGET":     5,
    "ACCUMULATE":      6,
    "STEADY_HOLD":     7,
    "WATCH_CLOSELY":   8,
    "CONSIDER_TRIM":   9,
    "NEUTRAL":         10,
}

SIGNAL_THRESHOLDS: dict[str, float] = {
    "DIP_TRIGGER":        DIP_TRIGGER,
    "DIP_ACCUMULATE_MIN": 15,
    "DIP_ACCUMULATE_MAX": 50,
    "TECH_STRONG":        60,
    "TECH_MODERATE":      35,
    "TECH_WEAK":          40,
    "FUND_QUALITY":       60,
    "FUND_STRONG":        50,
    "FUND_MODERATE":      40,
    "FUND_WATCH_LOW":     20,
    "FUND_WATCH_HIGH":    35,
    "ANALYST_QUALITY":    55,
    "INSIDER_WEAK":       35,
    "NEWS_WATCH_LOW":     25,
    "NEWS_WATCH_HIGH":    50,
    "TARGET_NEAR":        8,
    "TARGET_LOW_UPSIDE":  5,
    "WEIGHT_OVERWEIGHT":  8,
}

BUYABLE_SIGNALS = {"DIP_OPPORTUNITY", "ACCUMULATE", "MOMENTUM"}


def _round2(value: float) -> float:
    return round_half_up(value * 100) / 100


# ---------------------------------------------------------------------------
# Buy / exit strategy
# ---------------------------------------------------------------------------

def buy_strategy(
    item: dict[str, Any],
    tech: dict[str, Any] | None,
    is_dip: bool,
    primary_buyable: bool,
) -> dict[str, Any]:
    tech = tech or {}
    price  = item.get("current_price") or 0
    avg    = item.get("avg_buy_price") or 0
    weight = item.get("weight") or 0
    target = item.get("target_price")

    levels = [
        v for v in (tech.get("bollinger_lower"), tech.get("sma200"), item.get("fifty_two_week_low"))
        if v is not None
    ]
    support = None
    if levels:
        levels.sort()
        support = levels[1] if len(levels) > 1 else levels[0]

    zone_low = zone_high = None
    if price > 0:
        zone_low = support if support and support < price else price * 0.9
        zone_high = min(avg * 1.05, price) if avg > 0 else price
        if zone_low >= zone_high:
            zone_low = zone_high * 0.9

    in_zone = zone_low is not None and zone_high is not None and zone_low <= price <= zone_high

    if weight > 12:
        dca, reason, max_add = "NO_DCA", "Position overweight (>12%)", 0.0
    elif weight > 8:
        dca, reason, max_add = "CAUTIOUS", "Position slightly overweight (8-12%), add every 2 months", 0.5
    elif weight >= 3:
        dca, reason, max_add = "NORMAL", "Balanced position (3-8%), add monthly", 1.0
    else:
        dca, reason, max_add = "AGGRESSIVE", "Underweight position (<3%), add every 2 weeks", 2.0

    if not primary_buyable and not is_dip and dca != "NO_DCA":
        dca = "CAUTIOUS"
        reason = "No strong buy signal"
        max_add = min(max_add, 0.5)

    risk_reward = None
    if target and price > 0 and support and support < price:
        downside = price - support
        if downside > 0:
            risk_reward = round_half_up((target - price) / downside * 10) / 10

    return {
        "buy_zone_low":       zone_low,
        "buy_zone_high":      zone_high,
        "in_buy_zone":        in_zone,
        "dca_recommendation": dca,
        "dca_reason":         reason,
        "max_add_percent":    max_add,
        "risk_reward_ratio":  risk_reward,
        "support_price":      support,
    }


def exit_strategy(
    item: dict[str, Any],
    tech: dict[str, Any] | None,
    conviction_level: str,
    technical_bias: str,
) -> dict[str, Any]:
    tech = tech or {}
    price = item.get("current_price") or 0
    avg   = item.get("avg_buy_price") or 0
    target = item.get("target_price")
    if target is None:
        target = item.get("analyst_target_price")
    high52 = item.get("fifty_two_week_high")
    fib = tech.get("fibonacci_levels")

    levels: list[float] = []
    if tech.get("bollinger_upper") is not None:
        levels.append(tech["bollinger_upper"])
    if high52 is not None:
        levels.append(high52)
    if fib and fib.get("trend") == "downtrend":
        levels.extend([fib["level382"], fib["level500"], fib["level618"]])
    above = [lvl for lvl in levels if lvl > price]
    resistance = min(above) if above else None

    tp1 = tp2 = tp3 = None
    if price > 0:
        bullish = technical_bias == "BULLISH"
        tp1 = _round2(price * (1.12 if bullish else 1.08))
        if resistance and resistance < tp1:
            tp1 = resistance
        tp2 = _round2(price * (1.25 if bullish else 1.18))

        if target and target > price:
            if target <= tp1 * 1.1:
                tp1 = target
                tp2 = _round2(target * 1.15)
            elif target <= tp2 * 1.1:
                tp2 = target

        tp3 = _round2(price * (1.5 if conviction_level == "HIGH" else 1.35))
        if target and target > tp2:
            tp3 = target
        if high52 and high52 > tp3:
            tp3 = high52

    stop = None
    if price > 0 and avg > 0:
        drawdown = {"HIGH": 0.15, "MEDIUM": 0.12}.get(conviction_level, 0.08)
        stop = _round2(avg * (1 - drawdown))
        if price < avg and tech.get("bollinger_lower"):
            stop = max(stop, tech["bollinger_lower"] * 0.97)

    gain = (price - avg) / avg * 100 if avg > 0 else 0
    if gain >= 50:
        trailing = 6
    elif gain >= 30:
        trailing = 8
    elif gain >= 20:
        trailing = 10
    else:
        trailing = {"HIGH": 15, "MEDIUM": 12}.get(conviction_level, 10)

    if conviction_level == "HIGH" and technical_bias != "BEARISH":
        period, reason = "LONG", "Strong fundamentals and positive outlook"
    elif conviction_level == "LOW" or technical_bias == "BEARISH":
        period = "SWING"
        reason = ("Bearish technicals - consider quick exit" if technical_bias == "BEARISH"
                  else "Weak fundamentals - trade momentum only")
    else:
        period, reason = "MEDIUM", "Hold for target, reassess quarterly"

    if (item.get("gain_percentage") or 0) > 50 and conviction_level != "HIGH":
        period, reason = "SWING", "Large unrealized gain - consider taking profits"

    return {
        "take_profit1":          tp1,
        "take_profit2":          tp2,
        "take_profit3":          tp3,
        "stop_loss":             stop,
        "trailing_stop_percent": trailing,
        "holding_period":        period,
        "holding_reason":        reason,
        "resistance_level":      resistance,
    }


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

def _signal(kind: str, strength: float, title: str, description: str) -> dict[str, Any]:
    return {
        "type":        kind,
        "strength":    strength,
        "title":       title,
        "description": description,
        "priority":    SIGNAL_PRIORITIES[kind],
    }


def generate_signals(
    fundamental: float,
    technical: float,
    analyst: float,
    news: float,
    insider: float,
    dip: float,
    dip_quality_passes: bool,
    conviction: float,
    conviction_level: str,
    target_upside: float | None,
    weight: float,
    tech: dict[str, Any] | None,
) -> list[dict[str, Any]]:
    """Evaluate every signal rule and return the fired ones sorted by priority."""
    th = SIGNAL_THRESHOLDS
    rsi = (tech or {}).get("rsi14")
    signals: list[dict[str, Any]] = []

    if dip >= th["DIP_TRIGGER"] and dip_quality_passes:
        signals.append(_signal(
            "DIP_OPPORTUNITY", dip, "DIP Opportunity",
            f"Oversold conditions (DIP score: {dip}). Fundamentals are fine.",
        ))

    if technical >= th["TECH_STRONG"] and rsi is not None and 45 < rsi < 75:
        signals.append(_signal(
            "MOMENTUM", technical, "Momentum",
            "Technical indicators are bullish with a confirmed trend.",
        ))

    if conviction_level == "HIGH":
        signals.append(_signal(
            "CONVICTION_HOLD", conviction, "Conviction Hold",
            "Strong long-term fundamentals. Hold through short-term noise.",
        ))

    if (fundamental >= th["FUND_QUALITY"] and analyst >= th["ANALYST_QUALITY"]
            and conviction_level != "LOW"):
        signals.append(_signal(
            "QUALITY_CORE", round_half_up((fundamental + analyst) / 2), "Quality Core",
            "Strong fundamentals and positive analyst sentiment.",
        ))

    if target_upside is not None and abs(target_upside) <= th["TARGET_NEAR"]:
        signals.append(_signal(
            "NEAR_TARGET", 100 - abs(target_upside) * 5, "Near Target",
            f"{abs(target_upside):.1f}% from target price.",
        ))

    if (conviction_level != "LOW"
            and th["DIP_ACCUMULATE_MIN"] <= dip < th["DIP_ACCUMULATE_MAX"]
            and fundamental >= th["FUND_STRONG"]):
        signals.append(_signal(
            "ACCUMULATE", 60, "Accumulate",
            "Quality stock. Wait for a better entry or DCA slowly.",
        ))

    if (fundamental >= th["FUND_MODERATE"] and technical >= th["TECH_MODERATE"]
            and conviction_level != "LOW"):
        signals.append(_signal(
            "STEADY_HOLD", round_half_up((fundamental + technical) / 2), "Steady Hold",
            "Solid stock with no action needed. Keep holding.",
        ))

    if ((th["FUND_WATCH_LOW"] < fundamental < th["FUND_WATCH_HIGH"])
            or insider < th["INSIDER_WEAK"]
            or (th["NEWS_WATCH_LOW"] < news < th["NEWS_WATCH_HIGH"])):
        signals.append(_signal(
            "WATCH_CLOSELY", 50, "Watch Closely",
            "Some metrics are deteriorating. Monitor the position.",
        ))

    if (technical < th["TECH_WEAK"]
            and (rsi if rsi is not None else 50) > 70
            and weight > th["WEIGHT_OVERWEIGHT"]
            and target_upside is not None
            and target_upside < th["TARGET_LOW_UPSIDE"]):
        signals.append(_signal(
            "CONSIDER_TRIM", 70, "Consider Trim",
            "Overbought, overweight and near target. Consider taking partial profits.",
        ))

    if not signals:
        signals.append(_signal(
            "NEUTRAL", 50, "No Strong Signal", "No actionable signals right now.",
        ))

    signals.sort(key=lambda s: s["priority"])
    return signals


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_recommendation(
    item: dict[str, Any],
    tech: dict[str, Any] | None = None,
    news: list[dict[str, Any]] | None = None,
    insider_months: int = 3,
    is_research: bool = False,
) -> dict[str, Any]:
    """Score a single stock and derive its signals and strategies.

    Args:
        item:           enriched analyst row (see portfolio_manager.enrich_analyst_data)
        tech:           indicator dict from technical.compute_indicators, or None
        news:           news articles with a `sentiment` dict each
        insider_months: insider-sentiment window (1, 2, 3, 6 or 12)
        is_research:    True for a stock not held; drops the portfolio component
    """
    ticker = item.get("ticker", "")

    fundamental  = fundamental_score(item.get("fundamentals"))
    technical    = technical_score(tech)
    analyst      = analyst_score(item)
    news_insider = news_insider_score(ticker, news, item, insider_months)
    news_comp    = news_score(ticker, news)
    insider_comp = insider_score(item, insider_months)
    portfolio    = None if is_research else portfolio_score(item)

    if is_research:
        w = SCORE_WEIGHTS_RESEARCH
        composite = round_half_up(
            fundamental["percent"] * w["fundamental"]
            + technical["percent"] * w["technical"]
            + analyst["percent"] * w["analyst"]
            + news_insider["percent"] * w["news_insider"]
        )
    else:
        w = SCORE_WEIGHTS
        composite = round_half_up(
            fundamental["percent"] * w["fundamental"]
            + technical["percent"] * w["technical"]
            + analyst["percent"] * w["analyst"]
            + news_insider["percent"] * w["news_insider"]
            + portfolio["percent"] * w["portfolio"]
        )

    dip = dip_score(tech, item)
    quality = check_dip_quality(fundamental["percent"], analyst["percent"], news_comp["percent"])
    conviction = conviction_score(item, tech, insider_comp["percent"])

    price = item.get("current_price")
    avg = item.get("avg_buy_price") or 0
    weight = item.get("weight") or 0

    target_upside = None
    if item.get("target_price") is not None and price is not None and price > 0:
        target_upside = (item["target_price"] - price) / price * 100

    distance_from_avg = (price - avg) / avg * 100 if avg > 0 and price is not None else 0

    bias = {"bullish": "BULLISH", "bearish": "BEARISH"}.get(technical["sentiment"], "NEUTRAL")

    signals = generate_signals(
        fundamental["percent"],
        technical["percent"],
        analyst["percent"],
        news_comp["percent"],
        insider_comp["percent"],
        dip["score"],
        quality["passes"],
        conviction["score"],
        conviction["level"],
        target_upside,
        weight,
        tech,
    )
    primary = signals[0]

    strengths: list[str] = []
    if fundamental["percent"] >= 65:
        strengths.append("Strong fundamentals")
    if technical["percent"] >= 65:
        strengths.append("Bullish technicals")
    if analyst["percent"] >= 65:
        strengths.append("Positive analyst sentiment")
    if insider_comp["percent"] >= 60:
        strengths.append("Insider buying")
    if conviction["level"] == "HIGH":
        strengths.append("High conviction quality")
    if dip["score"] >= DIP_TRIGGER and quality["passes"]:
        strengths.append("DIP opportunity")

    concerns: list[str] = []
    if fundamental["percent"] < 35:
        concerns.append("Weak fundamentals")
    if technical["percent"] < 35:
        concerns.append("Bearish technicals")
    if analyst["percent"] < 35:
        concerns.append("Negative analyst sentiment")
    if insider_comp["percent"] < 40:
        concerns.append("Insider selling")
    if news_comp["percent"] < 35:
        concerns.append("Negative news sentiment")
    if weight > 12:
        concerns.append("Overweight position")

    actions: list[str] = []
    if primary["type"] == "DIP_OPPORTUNITY":
        actions.append("Consider adding to position")
        if distance_from_avg < -10:
            actions.append("Good DCA opportunity")
    elif primary["type"] == "CONVICTION_HOLD":
        actions.append("Hold through short-term volatility")
    elif primary["type"] == "CONSIDER_TRIM":
        actions.append("Consider taking partial profits")
    elif primary["type"] == "WATCH_CLOSELY":
        actions.append("Monitor upcoming earnings")
        actions.append("Set price alerts")

    is_dip = dip["score"] >= DIP_TRIGGER
    buy = buy_strategy(item, tech, is_dip, primary["type"] in BUYABLE_SIGNALS)
    exit_ = exit_strategy(item, tech, conviction["level"], bias)

    breakdown = [fundamental, technical, analyst, news_comp, insider_comp]
    if portfolio is not None:
        breakdown.append(portfolio)

    high52 = item.get("fifty_two_week_high")
    dist_high = (high52 - price) / high52 * 100 if high52 and price else None

    return {
        "ticker":              ticker,
        "stock_name":          item.get("stock_name", ticker),
        "weight":              weight,
        "avg_buy_price":       avg,
        "current_price":       price or 0,
        "gain_percentage":     item.get("gain_percentage") or 0,
        "distance_from_avg":   distance_from_avg,
        "composite_score":     composite,
        "fundamental_score":   fundamental["percent"],
        "technical_score":     technical["percent"],
        "analyst_score":       analyst["percent"],
        "news_score":          news_comp["percent"],
        "insider_score":       insider_comp["percent"],
        "portfolio_score":     portfolio["percent"] if portfolio is not None else None,
        "conviction_score":    conviction["score"],
        "conviction_level":    conviction["level"],
        "dip_score":           dip["score"],
        "is_dip":              is_dip,
        "dip_quality_check":   quality["passes"],
        "breakdown":           breakdown,
        "signals":             signals,
        "primary_signal":      primary,
        "strengths":           strengths[:4],
        "concerns":            concerns[:4],
        "action_items":        actions[:3],
        "target_price":        item.get("target_price"),
        "target_upside":       target_upside,
        "fifty_two_week_high": high52,
        "fifty_two_week_low":  item.get("fifty_two_week_low"),
        "distance_from_52w_high": dist_high,
        "technical_bias":      bias,
        "buy_strategy":        buy,
        "exit_strategy":       exit_,
        "metadata":            _metadata(tech, news_comp["percent"],
                                         get_filtered_insider_sentiment(item, insider_months)["mspr"]),
    }


def generate_all_recommendations(
    analyst_data: list[dict[str, Any]],
    technical_data: list[dict[str, Any]],
    news: list[dict[str, Any]] | None = None,
    insider_months: int = 3,
) -> list[dict[str, Any]]:
    """Recommendations for every held stock (weight > 0).

    Sorted by primary-signal priority, then composite score descending.
    """
    tech_by_ticker = {t.get("ticker"): t for t in technical_data}
    recs = [
        generate_recommendation(item, tech_by_ticker.get(item.get("ticker")), news, insider_months)
        for item in analyst_data
        if (item.get("weight") or 0) > 0
    ]
    recs.sort(key=lambda r: (r["primary_signal"]["priority"], -r["composite_score"]))
    logger.info("recommendations: generated %d", len(recs))
    return recs


def create_signal_log_entry(rec: dict[str, Any]) -> dict[str, Any]:
    return {
        "ticker":           rec["ticker"],
        "signal_type":      rec["primary_signal"]["type"],
        "signal_strength":  rec["primary_signal"]["strength"],
        "price_at_signal":  rec["current_price"],
        "composite_score":  rec["composite_score"],
        "dip_score":        rec["dip_score"],
        "conviction_score": rec["conviction_score"],
        "metadata":         rec["metadata"],
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _metadata(tech: dict[str, Any] | None, news_pct: float, insider_mspr: float | None) -> dict[str, Any]:
    tech = tech or {}
    hist  = tech.get("macd_histogram")
    price = tech.get("current_price")
    lower = tech.get("bollinger_lower")
    upper = tech.get("bollinger_upper")

    position = None
    if lower is not None and upper is not None and price is not None:
        position = "below" if price < lower else "above" if price > upper else "within"

    return {
        "rsi_value":          tech.get("rsi14"),
        "macd_signal":        None if hist is None else ("bullish" if hist > 0 else "bearish"),
        "macd_histogram":     hist,
        "bollinger_position": position,
        "news_sentiment":     (news_pct - 50) / 50,
        "insider_mspr":       insider_mspr,
    }
