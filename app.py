"""
app.py — Portfolio Tracker | Dash Dashboard
-------------------------------------------
Run locally:  python app.py
Production:   gunicorn app:server --bind 0.0.0.0:$PORT
"""

import logging
import os
from datetime import date, datetime, timedelta, timezone

from dash import Dash, html, dcc, Input, Output, State, ctx, ALL, no_update
import plotly.graph_objects as go
from dotenv import load_dotenv

from tracker import news_collector, pipeline, portfolio_manager, portfolios, signal_log, stocks, transactions
from tracker.transactions import compute_totals
from tracker import supabase_client as db
from tracker.formatting import (
    EMPTY,
    format_currency,
    format_date,
    format_date_time,
    format_indicator_value,
    format_large_number,
    format_number,
    format_percent,
    format_price,
    format_relative_time,
    format_return,
    format_shares,
    get_indicator_value_class,
    get_insider_sentiment_label,
    get_return_class,
)
from tracker.recommendation_view import (
    FILTERS,
    SignalAutoLogger,
    filter_history,
    filter_recommendations,
    group_recommendations,
    history_stats,
    paginate,
    signal_stats,
    sort_rows,
    toggle_sort,
    total_pages,
    unique_tickers,
)
from tracker.news_collector import filter_articles
from tracker.routing import build_hash, parse_hash
from tracker.sentiment import get_sentiment_color, get_sentiment_label
from tracker.signal_config import get_signal_color, get_signal_config
from tracker.signal_evaluator import evaluate_signals

load_dotenv()
logger = logging.getLogger(__name__)

# ── DATA ───────────────────────────────────────────────────────────────────────
DATA_MODE = pipeline.init_data_mode()        # "mock" | "live"

HISTORY_LIMIT = 500
_DATA_TTL     = timedelta(minutes=10)

# portfolio id → (loaded at, pipeline.load_portfolio_data result)
_data_cache: dict = {}
_auto_logger = SignalAutoLogger()
_scheduler_state: dict = {}


def portfolio_data(portfolio_id: str | None) -> dict:
    """Everything the tabs show for one portfolio, cached for 10 minutes."""
    key = portfolio_id or ""
    now = datetime.now(timezone.utc)
    if key in _data_cache:
        loaded_at, data = _data_cache[key]
        if now - loaded_at < _DATA_TTL:
            return data
    data = pipeline.load_portfolio_data(portfolio_id)
    data["loaded_at"] = now.isoformat()
    _data_cache[key] = (now, data)
    return data


def invalidate(portfolio_id: str | None = None) -> None:
    if portfolio_id is None:
        _data_cache.clear()
    else:
        _data_cache.pop(portfolio_id, None)


def _history(portfolio_id: str | None) -> list:
    if not portfolio_id:
        return []
    try:
        return signal_log.get_recent_signals(portfolio_id, limit=HISTORY_LIMIT)
    except db.SupabaseError as exc:
        logger.warning("signal history unavailable: %s", exc)
        return []


mode_color = "FFB800" if DATA_MODE == "mock" else "00D09C"
mode_label = "MOCK DATA" if DATA_MODE == "mock" else "● LIVE"
timestamp  = datetime.now().strftime("%b %d, %Y · %H:%M")

# ── DESIGN TOKENS ──────────────────────────────────────────────────────────────
C = {
    "bg":     "0D0F14",  "card":   "161922",  "card2":  "1E2130",
    "text":   "E8ECF0",  "muted":  "8892A4",  "border": "ffffff12",
    "green":  "00D09C",  "red":    "FF4757",  "blue":   "4B7BE5",
    "amber":  "FFB800",  "purple": "A78BFA",
}

PALETTE = [f"#{C['blue']}", f"#{C['green']}", f"#{C['amber']}",
           f"#{C['purple']}", f"#{C['red']}", "#20B2AA", "#FF8C00", "#9B59B6"]

# formatting classes → colour
VALUE_COLORS = {"positive": f"#{C['green']}", "negative": f"#{C['red']}", "": f"#{C['text']}"}

CONVICTION_COLORS = {"HIGH": C["green"], "MEDIUM": C["amber"], "LOW": C["muted"]}

FUNDAMENTAL_INDICATORS = [
    {"key": "pe_ratio",         "label": "P/E",             "format_decimals": 1,
     "good_threshold": 15,  "bad_threshold": 30,  "higher_is_better": False},
    {"key": "pb_ratio",         "label": "P/B",             "format_decimals": 2,
     "good_threshold": 1.5, "bad_threshold": 5,   "higher_is_better": False},
    {"key": "ps_ratio",         "label": "P/S",             "format_decimals": 2,
     "good_threshold": 2,   "bad_threshold": 8,   "higher_is_better": False},
    {"key": "peg_ratio",        "label": "PEG",             "format_decimals": 2,
     "good_threshold": 1,   "bad_threshold": 2,   "higher_is_better": False},
    {"key": "dividend_yield",   "label": "Dividend Yield",  "format_decimals": 2, "format_suffix": "%",
     "good_threshold": 3,   "bad_threshold": None},
    {"key": "beta",             "label": "Beta",            "format_decimals": 2},
    {"key": "roe",              "label": "ROE",             "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 15,  "bad_threshold": 5},
    {"key": "roa",              "label": "ROA",             "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 7,   "bad_threshold": 2},
    {"key": "gross_margin",     "label": "Gross Margin",    "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 40,  "bad_threshold": 20},
    {"key": "operating_margin", "label": "Operating Margin", "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 15,  "bad_threshold": 5},
    {"key": "net_margin",       "label": "Net Margin",      "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 10,  "bad_threshold": 3},
    {"key": "debt_to_equity",   "label": "Debt / Equity",   "format_decimals": 2,
     "good_threshold": 0.5, "bad_threshold": 2,   "higher_is_better": False},
    {"key": "current_ratio",    "label": "Current Ratio",   "format_decimals": 2,
     "good_threshold": 1.5, "bad_threshold": 1},
    {"key": "revenue_growth",   "label": "Revenue Growth",  "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 10,  "bad_threshold": 0},
    {"key": "eps_growth",       "label": "EPS Growth",      "format_decimals": 1, "format_suffix": "%",
     "good_threshold": 10,  "bad_threshold": 0},
    {"key": "market_cap",       "label": "Market Cap"},
]

_inp_style = {
    "background": f"#{C['card2']}", "border": f"1px solid #{C['border']}",
    "borderRadius": "6px", "color": f"#{C['text']}",
    "padding": "5px 10px", "fontSize": "0.78rem", "outline": "none",
}


def _btn_style(accent: str) -> dict:
    return {
        "background": f"#{accent}22", "color": f"#{accent}",
        "border": f"1px solid #{accent}44", "borderRadius": "6px",
        "padding": "5px 14px", "fontSize": "0.75rem", "fontWeight": "700",
        "cursor": "pointer", "whiteSpace": "nowrap",
    }


_card_style = {
    "background": f"#{C['card']}", "borderRadius": "10px",
    "padding": "16px 20px", "marginBottom": "1.2rem",
    "border": f"1px solid #{C['border']}",
}


# ── PLOTLY HELPERS ─────────────────────────────────────────────────────────────
def plotly_base(**kwargs) -> dict:
    base = dict(
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0)",
        font=dict(family="Inter, sans-serif", color=f"#{C['text']}"),
        margin=dict(l=0, r=0, t=36, b=0),
        dragmode=False,
    )
    base.update(kwargs)
    return base


def sector_pie(sectors: list) -> go.Figure:
    fig = go.Figure(go.Pie(
        labels=[s["sector"] for s in sectors],
        values=[s["value"] for s in sectors],
        hole=0.62,
        marker=dict(colors=PALETTE),
        textinfo="percent",
        hovertemplate="%{label}<br>%{value:,.0f} CZK<extra></extra>",
    ))
    fig.update_layout(**plotly_base(
        height=300, title=dict(text="Sector allocation", font=dict(size=13)),
        legend=dict(orientation="v", font=dict(size=11, color=f"#{C['muted']}")),
    ))
    return fig


def gain_bars(summary: list) -> go.Figure:
    rows = [r for r in summary if r.get("gain_percentage") is not None]
    rows.sort(key=lambda r: r["gain_percentage"])
    fig = go.Figure(go.Bar(
        x=[r["gain_percentage"] for r in rows],
        y=[r["ticker"] for r in rows],
        orientation="h",
        marker_color=[f"#{C['green']}" if r["gain_percentage"] >= 0 else f"#{C['red']}" for r in rows],
        hovertemplate="%{y}: %{x:.1f}%<extra></extra>",
    ))
    fig.update_layout(**plotly_base(
        height=300, title=dict(text="Unrealized gain %", font=dict(size=13)),
        xaxis=dict(gridcolor=f"#{C['border']}", color=f"#{C['muted']}", ticksuffix="%"),
        yaxis=dict(color=f"#{C['muted']}"),
    ))
    return fig


def price_chart(tech: dict, ticker: str) -> go.Figure:
    """Close price with SMA 50/200 and the nearest Fibonacci level."""
    hist = tech.get("historical_prices") or []
    fig = go.Figure(go.Scatter(
        x=[p["date"] for p in hist], y=[p["close"] for p in hist],
        name=ticker, mode="lines", line=dict(color=f"#{C['blue']}", width=2),
    ))
    for key, name, color in (("sma50_history",  "SMA 50",  C["amber"]),
                             ("sma200_history", "SMA 200", C["purple"])):
        points = tech.get(key) or []
        if points:
            fig.add_trace(go.Scatter(
                x=[p["date"] for p in points], y=[p["value"] for p in points],
                name=name, mode="lines", line=dict(color=f"#{color}", width=1.3, dash="dot"),
            ))

    fib = tech.get("fibonacci_levels")
    if fib and fib.get("current_level"):
        level = fib["current_level"]
        fig.add_hline(y=fib[level], line_dash="dash", line_color=f"#{C['muted']}",
                      annotation_text=f"Fib {level.replace('level', '')}%",
                      annotation_font_color=f"#{C['muted']}")

    fig.update_layout(**plotly_base(
        height=340, hovermode="x unified",
        legend=dict(orientation="h", y=1.08, font=dict(size=11)),
        xaxis=dict(showgrid=False, color=f"#{C['muted']}"),
        yaxis=dict(gridcolor=f"#{C['border']}", color=f"#{C['muted']}"),
    ))
    return fig


# ── COMPONENT BUILDERS ─────────────────────────────────────────────────────────
def kpi_card(label, value, sub, accent):
    return html.Div([
        html.Div("◈", style={
            "position": "absolute", "right": "12px", "top": "50%",
            "transform": "translateY(-50%)", "fontSize": "2.8rem",
            "opacity": "0.04", "color": f"#{accent}", "fontWeight": "900",
        }),
        html.Div(label, className="kpi-label"),
        html.Div(value, className="kpi-value"),
        html.Div(sub,   className="kpi-sub"),
    ], className="kpi-card", style={"borderLeft": f"3px solid #{accent}"})


def signal_badge(signal_type: str):
    cfg   = get_signal_config(signal_type)
    color = f"#{get_signal_color(signal_type)}"
    return html.Span(cfg["label"], title=cfg["description"], style={
        "background": f"{color}18", "color": color,
        "border": f"1px solid {color}44", "borderRadius": "4px",
        "padding": "1px 7px", "fontSize": "0.6rem", "fontWeight": "700",
        "letterSpacing": "0.3px", "marginRight": "4px", "display": "inline-block",
    })


def colored(text: str, css_class: str):
    return html.Span(text, style={"color": VALUE_COLORS.get(css_class, VALUE_COLORS[""])})


def signed_class(value) -> str:
    if value is None:
        return ""
    return "positive" if value > 0 else "negative" if value < 0 else ""


def section_title(text: str):
    return html.Div(text, className="section-title", style={"marginBottom": "0.8rem"})


def empty_state(message: str):
    return html.Div(message, style={
        "color": f"#{C['muted']}", "fontSize": "0.85rem",
        "padding": "2rem", "textAlign": "center",
    })


def error_line(message: str):
    return html.Div(message, style={"color": f"#{C['red']}", "fontSize": "0.8rem"})


def score_bar(label: str, value, accent: str = C["blue"]):
    pct = max(0, min(100, value or 0))
    return html.Div([
        html.Div([
            html.Span(label, className="stat-label"),
            html.Span(format_number(value, 0), style={"fontSize": "0.65rem", "fontWeight": "700",
                                                      "color": f"#{accent}"}),
        ], className="conviction-row"),
        html.Div(html.Div(style={
            "width": f"{pct}%", "height": "100%",
            "background": f"linear-gradient(90deg,#{accent}88,#{accent})",
            "borderRadius": "3px",
        }), className="conviction-track"),
    ], style={"marginBottom": "0.45rem"})


def sort_header(table: str, columns: list, sort_state: dict | None):
    """Header row of clickable column buttons. columns: [(field, label)]."""
    state = sort_state or {}
    cells = []
    for field, label in columns:
        arrow = ""
        if field and state.get("field") == field:
            arrow = " ▲" if state.get("direction") == "asc" else " ▼"
        if field:
            cells.append(html.Th(html.Button(
                f"{label}{arrow}", id={"type": "sort-btn", "table": table, "field": field},
                n_clicks=0, className="sort-btn",
            )))
        else:
            cells.append(html.Th(label))
    return html.Thead(html.Tr(cells))


def rec_card(r: dict):
    primary = r["primary_signal"]
    accent  = get_signal_color(primary["type"])
    conv    = CONVICTION_COLORS.get(r["conviction_level"], C["muted"])
    buy     = r.get("buy_strategy") or {}
    exit_   = r.get("exit_strategy") or {}

    return html.Div([
        # Ticker + signal
        html.Div([
            html.Div([
                html.A(r["ticker"], href=build_hash("research", r["ticker"]), className="rec-ticker"),
                html.Div(r.get("stock_name", ""), className="rec-company"),
            ]),
            html.Div([
                html.Div(format_number(r["composite_score"], 0),
                         style={"fontSize": "1.1rem", "fontWeight": "800", "color": f"#{accent}"}),
                html.Div("score", style={"fontSize": "0.6rem", "color": f"#{C['muted']}"}),
            ], style={
                "background": f"#{accent}1A", "border": f"1px solid #{accent}55",
                "borderRadius": "9px", "padding": "5px 11px",
                "textAlign": "center", "minWidth": "64px",
            }),
        ], className="rec-header"),

        html.Div([signal_badge(s["type"]) for s in r["signals"][:3]], style={"marginBottom": "0.6rem"}),
        html.Div(primary["description"], style={"fontSize": "0.72rem", "color": f"#{C['muted']}",
                                                "marginBottom": "0.7rem"}),

        # Component scores
        score_bar("Fundamental", r["fundamental_score"]),
        score_bar("Technical",   r["technical_score"]),
        score_bar("Analyst",     r["analyst_score"]),
        score_bar("News",        r["news_score"]),
        score_bar("Insider",     r["insider_score"]),
        score_bar(f"Conviction · {r['conviction_level']}", r["conviction_score"], conv),
        score_bar("DIP", r["dip_score"], C["green"] if r["is_dip"] else C["muted"]),

        html.Div([
            html.Div([html.Div("Weight", className="stat-label"),
                      html.Div(format_percent(r["weight"]), className="stat-value")]),
            html.Div([html.Div("Gain", className="stat-label"),
                      colored(format_percent(r["gain_percentage"], show_sign=True),
                              signed_class(r["gain_percentage"]))]),
            html.Div([html.Div("Target upside", className="stat-label"),
                      colored(format_percent(r.get("target_upside"), show_sign=True),
                              signed_class(r.get("target_upside")))]),
        ], className="holding-stats"),

        html.Ul([html.Li(f"✓ {s}") for s in r["strengths"]]
                + [html.Li(f"⚠ {c}", style={"color": f"#{C['amber']}"}) for c in r["concerns"]],
                className="rec-points"),
        html.Div([html.Div(f"→ {a}") for a in r["action_items"]],
                 style={"fontSize": "0.7rem", "color": f"#{C['blue']}"}),

        html.Div([
            html.Span(f"Buy zone {format_number(buy.get('buy_zone_low'))}–{format_number(buy.get('buy_zone_high'))}"),
            html.Span(f" · R/R {format_number(buy.get('risk_reward_ratio'), 1)}"),
            html.Span(f" · Stop {format_number(exit_.get('stop_loss'))}"),
            html.Span(f" · TP {format_number(exit_.get('take_profit1'))}"),
            html.Span(f" · {exit_.get('holding_period') or EMPTY}"),
        ], className="rec-footer"),
    ], className="rec-card", style={"borderTop": f"2px solid #{accent}"})


def news_item(a: dict):
    sent  = a.get("sentiment") or {}
    color = get_sentiment_color(sent.get("score"))
    return html.Div([
        html.Div([
            html.Span(a.get("ticker") or "", style={"fontWeight": "700", "marginRight": "8px"}),
            html.A(a["title"], href=a.get("url"), target="_blank", className="news-link"),
        ]),
        html.Div([
            html.Span(a.get("source") or "", style={"marginRight": "8px"}),
            html.Span(format_relative_time(a.get("published_at")), style={"marginRight": "8px"}),
            html.Span(get_sentiment_label(sent.get("label")), style={"color": color, "fontWeight": "700"}),
        ], style={"fontSize": "0.68rem", "color": f"#{C['muted']}", "marginTop": "2px"}),
    ], className="news-item")


def indicator_grid(tech: dict):
    fib = tech.get("fibonacci_levels") or {}
    cells = [
        ("RSI 14",        format_number(tech.get("rsi14"), 1),
         {"overbought": "negative", "oversold": "positive"}.get(tech.get("rsi_signal"), "")),
        ("MACD hist.",    format_number(tech.get("macd_histogram"), 2), signed_class(tech.get("macd_histogram"))),
        ("MACD trend",    tech.get("macd_trend") or EMPTY, ""),
        ("vs SMA 50",     format_percent(tech.get("price_vs_sma50"), show_sign=True),
         signed_class(tech.get("price_vs_sma50"))),
        ("vs SMA 200",    format_percent(tech.get("price_vs_sma200"), show_sign=True),
         signed_class(tech.get("price_vs_sma200"))),
        ("Bollinger pos.", format_percent(tech.get("bollinger_position"), 0), ""),
        ("Stochastic %K", format_number(tech.get("stochastic_k"), 1), ""),
        ("ADX",           format_number(tech.get("adx"), 1), ""),
        ("+DI / −DI",     f"{format_number(tech.get('plus_di'), 1)} / {format_number(tech.get('minus_di'), 1)}", ""),
        ("ATR %",         format_percent(tech.get("atr_percent")), ""),
        ("Volume vs avg", format_percent(tech.get("volume_change"), show_sign=True),
         signed_class(tech.get("volume_change"))),
        ("OBV trend",     tech.get("obv_trend") or EMPTY,
         {"bullish": "positive", "bearish": "negative"}.get(tech.get("obv_trend"), "")),
        ("Fib trend",     fib.get("trend") or EMPTY, ""),
    ]
    return html.Div([
        html.Div([html.Div(label, className="stat-label"), colored(value, cls)], className="indicator-cell")
        for label, value, cls in cells
    ], className="indicator-grid")


def fundamentals_table(fundamentals: dict | None):
    if not fundamentals:
        return empty_state("No fundamental data.")
    rows = []
    for cfg in FUNDAMENTAL_INDICATORS:
        value = fundamentals.get(cfg["key"])
        if cfg["key"] == "market_cap" and value is not None:
            value = value * 1_000_000          # reported in millions
        rows.append(html.Tr([
            html.Td(cfg["label"]),
            html.Td(colored(format_indicator_value(value, cfg), get_indicator_value_class(value, cfg)),
                    style={"textAlign": "right"}),
        ]))
    return html.Table(html.Tbody(rows), className="data-table compact")


def analyst_panel(item: dict):
    insider = item.get("insider_sentiment") or {}
    label, cls = get_insider_sentiment_label(insider.get("mspr"))
    stats = [
        ("Price",             format_price(item.get("current_price"))),
        ("Day change",        colored(format_percent(item.get("price_change_percent"), 2, show_sign=True),
                                      signed_class(item.get("price_change_percent")))),
        ("52w range",         f"{format_number(item.get('fifty_two_week_low'))} – "
                              f"{format_number(item.get('fifty_two_week_high'))}"),
        ("Consensus",         f"{format_number(item.get('consensus_score'))} "
                              f"({(item.get('recommendation_key') or EMPTY).replace('_', ' ')})"),
        ("Analysts",          format_number(item.get("number_of_analysts"), 0)),
        ("Analyst target",    format_price(item.get("analyst_target_price"))),
        ("Insider MSPR",      colored(f"{format_number(insider.get('mspr'))} · {label}", cls)),
    ]
    earnings = item.get("earnings") or []
    return html.Div([
        html.Div([
            html.Div([html.Div(k, className="stat-label"), html.Div(v, className="stat-value")])
            for k, v in stats
        ], className="indicator-grid"),
        html.Div([
            html.Span("Last earnings surprises: ", className="stat-label"),
            *[colored(f"{format_percent(e.get('surprise_percent'), show_sign=True)}  ",
                      signed_class(e.get("surprise_percent"))) for e in earnings],
        ], style={"marginTop": "0.6rem"}) if earnings else None,
    ])


# ── TAB CONTENT BUILDERS ───────────────────────────────────────────────────────
HOLDING_COLUMNS = [
    ("ticker", "Ticker"), ("stock_name", "Name"), ("sector_name", "Sector"),
    ("total_shares", "Shares"), ("avg_buy_price", "Avg Price"), ("current_price", "Price"),
    ("current_value_czk", "Value (CZK)"), ("unrealized_gain", "Gain (CZK)"),
    ("gain_percentage", "Gain %"), ("distance_to_target_pct", "To Target"),
]

STOCK_COLUMNS = [
    ("ticker", "Ticker"), ("stock_name", "Name"), ("sector_name", "Sector"),
    ("currency", "Ccy"), ("exchange", "Exchange"), ("target_price", "Target"),
    ("total_shares", "Held"),
]

HISTORY_COLUMNS = [
    ("created_at", "Date"), ("ticker", "Ticker"), ("signal_type", "Signal"),
    ("composite_score", "Score"), ("price_at_signal", "Price"),
    ("return_1d", "1D"), ("return_1w", "1W"), ("return_1m", "1M"), ("return_3m", "3M"), (None, ""),
]

HISTORY_DEFAULT_SORT = {"field": "created_at", "direction": "desc"}


def holdings_table(summary: list, sort_state: dict | None):
    state = sort_state or {"field": "current_value_czk", "direction": "desc"}
    rows = sort_rows(summary, state["field"], state["direction"])
    body = [
        html.Tr([
            html.Td(html.A(r["ticker"], href=build_hash("stock-detail", r["stock_id"]))),
            html.Td(r["stock_name"]),
            html.Td(r.get("sector_name") or EMPTY),
            html.Td(format_shares(r["total_shares"])),
            html.Td(format_price(r["avg_buy_price"], r.get("currency"))),
            html.Td(format_price(r.get("current_price"), r.get("currency"))),
            html.Td(format_currency(r.get("current_value_czk"))),
            html.Td(colored(format_currency(r.get("unrealized_gain")), signed_class(r.get("unrealized_gain")))),
            html.Td(colored(format_percent(r.get("gain_percentage"), show_sign=True),
                            signed_class(r.get("gain_percentage")))),
            html.Td(format_percent(r.get("distance_to_target_pct"), show_sign=True)),
        ])
        for r in rows
    ]
    return html.Table([sort_header("holdings", HOLDING_COLUMNS, state), html.Tbody(body)],
                      className="data-table")


def build_dashboard_tab(data: dict, sort_state: dict | None):
    totals = data["totals"]
    if not data["summary"]:
        return empty_state("This portfolio has no holdings yet. Add a BUY transaction to get started.")

    top = data["recommendations"][0] if data["recommendations"] else None
    return html.Div([
        html.Div([
            kpi_card("PORTFOLIO VALUE", format_currency(totals["total_current_value_czk"]),
                     f"{totals['stock_count']} holdings", C["blue"]),
            kpi_card("INVESTED", format_currency(totals["total_invested_czk"]), "cost of open lots", C["purple"]),
            kpi_card("UNREALIZED GAIN", format_currency(totals["total_unrealized_gain"]),
                     format_percent(totals["total_gain_percentage"], show_sign=True),
                     C["green"] if totals["total_unrealized_gain"] >= 0 else C["red"]),
            kpi_card("TOP SIGNAL", top["ticker"] if top else EMPTY,
                     get_signal_config(top["primary_signal"]["type"])["label"] if top else EMPTY, C["amber"]),
        ], className="kpi-strip"),

        html.Div([
            html.Div(dcc.Graph(figure=sector_pie(data["sectors"]), config={"displayModeBar": False}),
                     style={**_card_style, "flex": "1", "minWidth": "320px"}),
            html.Div(dcc.Graph(figure=gain_bars(data["summary"]), config={"displayModeBar": False}),
                     style={**_card_style, "flex": "1", "minWidth": "320px"}),
        ], style={"display": "flex", "gap": "1.2rem", "flexWrap": "wrap"}),

        html.Div([
            section_title("Holdings"),
            html.Div(holdings_table(data["summary"], (sort_state or {}).get("holdings")), id="holdings-table"),
        ], style=_card_style),

        html.Div([
            section_title("Latest news"),
            *([news_item(a) for a in data["news"][:8]] or [empty_state("No recent news.")]),
        ], style=_card_style),

        html.Div([error_line(e) for e in data["errors"][:5]]) if data["errors"] else None,
    ])


def _stock_rows(rows: list, summary: list) -> list:
    shares = {s["stock_id"]: s["total_shares"] for s in summary}
    return [{**r, "stock_name": r.get("name"), "total_shares": shares.get(r["id"])} for r in rows]


def stocks_table(rows: list, sort_state: dict | None):
    state = sort_state or {"field": "ticker", "direction": "asc"}
    body = [
        html.Tr([
            html.Td(html.A(r["ticker"], href=build_hash("stock-detail", r["id"]))),
            html.Td(r.get("stock_name") or EMPTY),
            html.Td(r.get("sector_name") or EMPTY),
            html.Td(r.get("currency") or EMPTY),
            html.Td(r.get("exchange") or EMPTY),
            html.Td(format_price(r.get("target_price"), r.get("currency"))),
            html.Td(format_shares(r.get("total_shares"))),
        ])
        for r in sort_rows(rows, state["field"], state["direction"])
    ]
    return html.Table([sort_header("stocks", STOCK_COLUMNS, state), html.Tbody(body)], className="data-table")


def build_stocks_tab(portfolio_id: str, sort_state: dict | None):
    summary = portfolio_data(portfolio_id)["summary"]
    sectors = stocks.get_sectors()
    return html.Div([
        html.Div([
            section_title("Add stock"),
            html.Div([
                dcc.Input(id="stock-ticker", type="text", placeholder="Ticker", style={**_inp_style, "width": "100px"}),
                dcc.Input(id="stock-name", type="text", placeholder="Company name",
                          style={**_inp_style, "width": "220px"}),
                dcc.Dropdown(id="stock-currency", options=list(transactions.CURRENCIES), value="USD",
                             clearable=False, style={"width": "100px", "fontSize": "0.78rem", "color": "#000"}),
                dcc.Dropdown(id="stock-sector", options=[{"label": s["name"], "value": s["id"]} for s in sectors],
                             placeholder="Sector", style={"width": "190px", "fontSize": "0.78rem", "color": "#000"}),
                dcc.Input(id="stock-new-sector", type="text", placeholder="or new sector",
                          style={**_inp_style, "width": "130px"}),
                dcc.Input(id="stock-target", type="number", placeholder="Target price", min=0, step=0.01,
                          style={**_inp_style, "width": "120px"}),
                html.Button("＋ Add", id="stock-add-btn", n_clicks=0, style=_btn_style(C["green"])),
            ], style={"display": "flex", "gap": "8px", "flexWrap": "wrap", "alignItems": "center"}),
            html.Div(id="stock-add-msg", style={"marginTop": "6px", "minHeight": "18px"}),
        ], style=_card_style),

        html.Div([
            html.Div([
                section_title("Stocks"),
                dcc.Input(id="stock-search", type="text", placeholder="Search ticker or name…",
                          debounce=True, style={**_inp_style, "width": "220px", "marginLeft": "auto"}),
            ], style={"display": "flex", "alignItems": "center"}),
            html.Div(stocks_table(_stock_rows(stocks.get_all(), summary), (sort_state or {}).get("stocks")),
                     id="stocks-table"),
        ], style=_card_style),
    ])


def build_stock_detail(stock_id: str, portfolio_id: str):
    stock = stocks.get_by_id(stock_id)
    if stock is None:
        return empty_state("Stock not found.")

    data    = portfolio_data(portfolio_id)
    holding = next((h for h in data["summary"] if h["stock_id"] == stock_id), None)
    rec     = next((r for r in data["recommendations"] if r["ticker"] == stock["ticker"]), None)
    tech    = next((t for t in data["technical"] if t["ticker"] == stock["ticker"]), None)
    if tech is None:
        tech_rows, _ = pipeline.load_technical([{"ticker": stock["ticker"], "stock_name": stock["name"]}])
        tech = tech_rows[0] if tech_rows else None
    txs = transactions.get_by_stock(stock_id, portfolio_id)
    signals = signal_log.get_signals_for_ticker(portfolio_id, stock["ticker"])
    ccy = stock.get("currency")

    kpis = []
    if holding:
        kpis = [
            kpi_card("SHARES", format_shares(holding["total_shares"]),
                     f"{holding['purchase_count']} open lots", C["blue"]),
            kpi_card("AVG PRICE", format_price(holding["avg_buy_price"], ccy),
                     f"now {format_price(holding.get('current_price'), ccy)}", C["purple"]),
            kpi_card("VALUE", format_currency(holding.get("current_value_czk")),
                     f"invested {format_currency(holding['total_invested_czk'])}", C["amber"]),
            kpi_card("GAIN", format_percent(holding.get("gain_percentage"), show_sign=True),
                     format_currency(holding.get("unrealized_gain")),
                     C["green"] if (holding.get("unrealized_gain") or 0) >= 0 else C["red"]),
        ]

    return html.Div([
        html.A("← All stocks", href=build_hash("stocks"), className="back-link"),
        html.Div([
            html.Span(stock["ticker"], className="holding-ticker", style={"fontSize": "1.4rem"}),
            html.Span(f"  {stock['name']} · {stock.get('sector_name') or EMPTY} · {stock.get('exchange') or ''}",
                      style={"color": f"#{C['muted']}", "fontSize": "0.85rem"}),
            html.Span([signal_badge(rec["primary_signal"]["type"])] if rec else [], style={"marginLeft": "10px"}),
        ], style={"margin": "0.6rem 0 1rem"}),

        html.Div(kpis, className="kpi-strip") if kpis else None,

        html.Div([
            dcc.Graph(figure=price_chart(tech, stock["ticker"]), config={"displayModeBar": False})
            if tech else empty_state("Not enough price history for a chart."),
        ], style=_card_style),

        html.Div([section_title("Technical indicators"), indicator_grid(tech)], style=_card_style) if tech else None,

        html.Div([
            section_title("Personal target"),
            html.Div([
                dcc.Input(id="detail-target", type="number", value=stock.get("target_price"), min=0, step=0.01,
                          style={**_inp_style, "width": "140px"}),
                html.Button("Save", id="detail-target-save", n_clicks=0, style=_btn_style(C["blue"])),
                html.Span(id="detail-target-msg", style={"fontSize": "0.78rem"}),
                dcc.Store(id="detail-stock-id", data=stock_id),
            ], style={"display": "flex", "gap": "8px", "alignItems": "center"}),
            html.Div([
                html.Button("Delete stock", id="detail-delete", n_clicks=0, style=_btn_style(C["red"])),
                html.Span(id="detail-delete-msg", style={"fontSize": "0.78rem"}),
            ], style={"display": "flex", "gap": "8px", "alignItems": "center", "marginTop": "10px"}),
        ], style=_card_style),

        html.Div([section_title("Recommendation"), rec_card(rec)], style=_card_style) if rec else None,

        html.Div([
            section_title("Transactions"),
            transactions_table(txs) if txs else empty_state("No transactions."),
        ], style=_card_style),

        html.Div([
            section_title("Logged signals"),
            html.Div([
                html.Div([
                    html.Span(format_date(s["created_at"]), style={"marginRight": "10px"}),
                    signal_badge(s["signal_type"]),
                    html.Span(f"at {format_price(s['price_at_signal'])}", style={"marginRight": "10px"}),
                    colored(f"1W {format_return(s['price_at_signal'], s.get('price_1w'))}",
                            get_return_class(s["price_at_signal"], s.get("price_1w"))),
                ], className="news-item")
                for s in signals
            ] or [empty_state("No signals logged for this stock.")]),
        ], style=_card_style),
    ])


def transactions_table(rows: list):
    body = []
    for t in rows:
        stock = t.get("stock") or {}
        src   = t.get("source_transaction")
        body.append(html.Tr([
            html.Td(format_date(t["date"])),
            html.Td(colored(t["type"], "positive" if t["type"] == "BUY" else "negative")),
            html.Td(html.A(stock.get("ticker", EMPTY), href=build_hash("stock-detail", t["stock_id"]))),
            html.Td(format_shares(t["quantity"])),
            html.Td(format_price(t["price_per_share"], t.get("currency"))),
            html.Td(format_currency(compute_totals(t)["total_amount_czk"])),
            html.Td(format_currency(t.get("fees"), t.get("currency") or "CZK")),
            html.Td(f"lot {format_date(src['date'])} @ {format_number(src['price_per_share'])}" if src else ""),
            html.Td(t.get("notes") or ""),
            html.Td([
                html.Button("✎", id={"type": "tx-edit", "index": t["id"]}, n_clicks=0,
                            className="row-delete", title="Edit"),
                html.Button("✕", id={"type": "tx-delete", "index": t["id"]}, n_clicks=0,
                            className="row-delete", title="Delete"),
            ]),
        ]))
    head = html.Thead(html.Tr([html.Th(h) for h in
                               ("Date", "Type", "Ticker", "Qty", "Price", "Total (CZK)", "Fees", "Lot", "Notes", "")]))
    return html.Table([head, html.Tbody(body)], className="data-table")


def build_transactions_tab(portfolio_id: str):
    rows = transactions.get_all(portfolio_id)
    stock_options = [{"label": f"{s['ticker']} — {s['name']}", "value": s["id"]} for s in stocks.get_all()]
    label = {"fontSize": "0.7rem", "color": f"#{C['muted']}", "marginBottom": "3px"}

    def field(name, component):
        return html.Div([html.Div(name, style=label), component])

    return html.Div([
        html.Div([
            section_title("New transaction"),
            html.Div([
                field("Stock", dcc.Dropdown(id="tx-stock", options=stock_options, placeholder="Stock…",
                                            style={"width": "240px", "fontSize": "0.78rem", "color": "#000"})),
                field("Type", dcc.RadioItems(id="tx-type", options=list(transactions.TRANSACTION_TYPES),
                                             value="BUY", inline=True, className="rec-filter")),
                field("Date", dcc.DatePickerSingle(id="tx-date", date=date.today().isoformat(),
                                                   display_format="YYYY-MM-DD")),
                field("Quantity", dcc.Input(id="tx-quantity", type="number", min=0, step="any",
                                            style={**_inp_style, "width": "90px"})),
                field("Price / share", dcc.Input(id="tx-price", type="number", min=0, step="any",
                                                 style={**_inp_style, "width": "110px"})),
                field("Currency", dcc.Dropdown(id="tx-currency", options=list(transactions.CURRENCIES),
                                               value="USD", clearable=False,
                                               style={"width": "90px", "fontSize": "0.78rem", "color": "#000"})),
                field("Rate → CZK", dcc.Input(id="tx-rate", type="number", min=0, step="any",
                                              style={**_inp_style, "width": "90px"})),
                field("Fees", dcc.Input(id="tx-fees", type="number", min=0, step="any", value=0,
                                        style={**_inp_style, "width": "80px"})),
                field("Notes", dcc.Input(id="tx-notes", type="text", style={**_inp_style, "width": "180px"})),
            ], style={"display": "flex", "gap": "10px", "flexWrap": "wrap", "alignItems": "flex-end"}),

            # Lot picker (SELL only)
            html.Div([
                html.Div("Sell from lot", style=label),
                dcc.Dropdown(id="tx-lot", placeholder="FIFO (oldest lots first)",
                             style={"width": "360px", "fontSize": "0.78rem", "color": "#000"}),
                html.Div(id="tx-available", style={"fontSize": "0.72rem", "color": f"#{C['muted']}",
                                                   "marginTop": "3px"}),
            ], id="tx-lot-wrap", style={"display": "none", "marginTop": "10px"}),

            html.Div(id="tx-error", style={"marginTop": "8px", "minHeight": "18px"}),
            html.Button("＋ Add transaction", id="tx-submit", n_clicks=0,
                        style={**_btn_style(C["green"]), "marginTop": "6px"}),
        ], style=_card_style),

        html.Div([
            section_title("History"),
            html.Div(transactions_table(rows) if rows else empty_state("No transactions yet."), id="tx-list"),
        ], style=_card_style),
    ])


def build_rec_cards(recs: list, filter_key: str = "all", group_by: str = "none"):
    shown = filter_recommendations(recs, filter_key)
    if not shown:
        return empty_state("No recommendations match this filter.")
    groups = group_recommendations(shown, group_by)
    out = []
    for name, items in groups.items():
        if group_by != "none":
            label = get_signal_config(name)["label"] if group_by == "signal" else name
            out.append(html.Div(f"{label} · {len(items)}", className="section-title",
                                style={"margin": "1rem 0 0.6rem"}))
        out.append(html.Div([rec_card(r) for r in items], className="rec-grid"))
    return out


def build_recommendations_tab(data: dict, portfolio_id: str):
    recs = data["recommendations"]
    if not recs:
        return empty_state("No recommendations — the portfolio has no priced holdings.")

    logged = _auto_logger.run(portfolio_id, recs, load_id=data.get("loaded_at", ""))
    stats  = signal_stats(recs)
    options = [{"label": f"All ({stats['total']})", "value": "all"}] + [
        {"label": f"{get_signal_config(sig)['label']} ({stats[key]})", "value": key}
        for key, sig in FILTERS.items() if stats[key]
    ]
    return html.Div([
        html.Div([
            dcc.RadioItems(id="rec-filter", options=options, value="all", inline=True,
                           className="rec-filter", inputStyle={"display": "none"}),
            dcc.Dropdown(id="rec-group", value="none", clearable=False,
                         options=[{"label": "No grouping", "value": "none"},
                                  {"label": "Group by signal", "value": "signal"},
                                  {"label": "Group by score", "value": "score"},
                                  {"label": "Group by conviction", "value": "conviction"}],
                         style={"width": "190px", "fontSize": "0.78rem", "color": "#000"}),
            html.Div(
                f"{len(recs)} holdings · auto-logged {logged['logged']} new signals" if logged
                else f"{len(recs)} holdings",
                className="rec-count",
            ),
        ], className="rec-filter-row"),
        html.Div(id="rec-cards", children=build_rec_cards(recs)),
    ])


def _signal_return(row: dict, field: str):
    if field.startswith("return_"):
        price = row.get(f"price_{field[7:]}")
        base  = row.get("price_at_signal")
        return (price - base) / base * 100 if price is not None and base else None
    return row.get(field)


def history_table(rows: list, sort_state: dict | None):
    """Render an already sorted page of signal log rows."""
    state = sort_state or HISTORY_DEFAULT_SORT

    def ret_cell(h, period):
        price = h.get(f"price_{period}")
        return html.Td(colored(format_return(h["price_at_signal"], price),
                               get_return_class(h["price_at_signal"], price)))

    body = [
        html.Tr([
            html.Td(format_date_time(h["created_at"])),
            html.Td(h["ticker"]),
            html.Td(signal_badge(h["signal_type"])),
            html.Td(format_number(h.get("composite_score"), 0)),
            html.Td(format_price(h["price_at_signal"])),
            ret_cell(h, "1d"), ret_cell(h, "1w"), ret_cell(h, "1m"), ret_cell(h, "3m"),
            html.Td(html.Button("✕", id={"type": "signal-delete", "index": h["id"]}, n_clicks=0,
                                className="row-delete")),
        ])
        for h in rows
    ]
    return html.Table([sort_header("history", HISTORY_COLUMNS, state), html.Tbody(body)], className="data-table")


def performance_cards(portfolio_id: str):
    try:
        perf = signal_log.get_signal_performance(portfolio_id)
    except db.SupabaseError as exc:
        return error_line(str(exc))
    if not perf:
        return empty_state("No signal performance yet.")
    cards = []
    for p in sorted(perf, key=lambda p: -p["total_signals"]):
        win    = signal_log.calculate_win_rate(p, "1w")
        win_1m = signal_log.calculate_win_rate(p, "1m")
        cards.append(html.Div([
            signal_badge(p["signal_type"]),
            html.Div(f"{p['total_signals']} signals", className="kpi-sub"),
            html.Div([
                html.Span("1W win rate ", className="stat-label"),
                html.Span(f"{win}%" if win is not None else EMPTY, className="stat-value"),
            ]),
            html.Div([
                html.Span("1W avg return ", className="stat-label"),
                colored(format_percent(p.get("avg_return_1w"), show_sign=True), signed_class(p.get("avg_return_1w"))),
            ]),
            html.Div([
                html.Span("1M win rate ", className="stat-label"),
                html.Span(f"{win_1m}%" if win_1m is not None else EMPTY, className="stat-value"),
            ]),
        ], className="perf-card"))
    return html.Div(cards, className="rec-grid")


def history_body(history: list, ticker, signal_type, page: int, sort_state: dict | None):
    """(table, page info, stats strip) for the current filters and page."""
    rows  = filter_history(history, ticker, signal_type)
    pages = total_pages(len(rows))
    page  = min(max(page or 1, 1), max(pages, 1))
    state = (sort_state or {}).get("history") or HISTORY_DEFAULT_SORT
    rows  = sort_rows(rows, state["field"], state["direction"], key=_signal_return)
    stats = history_stats(rows)

    table = (history_table(paginate(rows, page), state)
             if rows else empty_state("No logged signals match these filters."))
    info  = f"Page {page} of {max(pages, 1)} · {len(rows)} signals"
    strip = html.Div([
        kpi_card("SIGNALS", str(stats["total"]), "matching filters", C["blue"]),
        kpi_card("AVG 1W RETURN", format_percent(stats["avg_return_1w"], show_sign=True), "evaluated signals",
                 C["green"] if stats["avg_return_1w"] >= 0 else C["red"]),
        kpi_card("1W WIN RATE", format_percent(stats["win_rate"], 0), "price up after a week", C["purple"]),
    ], className="kpi-strip")
    return table, info, strip


def build_history_tab(portfolio_id: str, sort_state: dict | None):
    history = _history(portfolio_id)
    table, info, strip = history_body(history, None, "all", 1, sort_state)
    signal_types = sorted({h["signal_type"] for h in history})
    return html.Div([
        html.Div(strip, id="history-stats"),
        html.Div([
            section_title("Performance by signal"),
            html.Div(performance_cards(portfolio_id), id="history-performance"),
        ], style=_card_style),
        html.Div([
            html.Div([
                dcc.Dropdown(id="history-ticker", options=unique_tickers(history), placeholder="All tickers",
                             style={"width": "160px", "fontSize": "0.78rem", "color": "#000"}),
                dcc.Dropdown(id="history-signal", value="all", clearable=False,
                             options=[{"label": "All signals", "value": "all"}] + [
                                 {"label": get_signal_config(s)["label"], "value": s} for s in signal_types],
                             style={"width": "200px", "fontSize": "0.78rem", "color": "#000"}),
                html.Button("⟳ Evaluate now", id="history-evaluate", n_clicks=0, style=_btn_style(C["blue"])),
                html.Button("🗑 Clear history", id="history-clear", n_clicks=0, style=_btn_style(C["red"])),
                html.Span(id="history-action-msg", style={"fontSize": "0.75rem", "color": f"#{C['muted']}"}),
            ], style={"display": "flex", "gap": "8px", "flexWrap": "wrap", "alignItems": "center",
                      "marginBottom": "0.8rem"}),
            html.Div(table, id="history-table"),
            html.Div([
                html.Button("‹ Prev", id="history-prev", n_clicks=0, style=_btn_style(C["muted"])),
                html.Span(info, id="history-page-info", style={"fontSize": "0.75rem", "color": f"#{C['muted']}"}),
                html.Button("Next ›", id="history-next", n_clicks=0, style=_btn_style(C["muted"])),
            ], style={"display": "flex", "gap": "10px", "alignItems": "center", "marginTop": "0.8rem"}),
        ], style=_card_style),
    ])


def build_research_tab(ticker: str | None):
    search = html.Div([
        dcc.Input(id="research-input", type="text", placeholder="Ticker (e.g. NVDA, SAP.DE)",
                  value=ticker or "", debounce=False, style={**_inp_style, "width": "220px"}),
        html.Button("🔍 Analyze", id="research-go", n_clicks=0, style=_btn_style(C["blue"])),
    ], style={"display": "flex", "gap": "8px", "marginBottom": "1rem"})

    if not ticker:
        return html.Div([search, empty_state("Enter a ticker to score it as a research candidate.")])

    result = pipeline.load_research(ticker)
    if result["error"] and not result["analyst"]:
        return html.Div([search, error_line(f"{ticker}: {result['error']}")])

    item, tech, rec = result["analyst"], result["technical"], result["recommendation"]
    return html.Div([
        search,
        html.Div([
            html.Span(ticker, className="holding-ticker", style={"fontSize": "1.4rem"}),
            html.Span(f"  {item.get('stock_name') or ''} · {item.get('industry') or ''}",
                      style={"color": f"#{C['muted']}", "fontSize": "0.85rem"}),
        ], style={"marginBottom": "1rem"}),
        html.Div([
            kpi_card("COMPOSITE", format_number(rec["composite_score"], 0), "research weighting", C["blue"]),
            kpi_card("SIGNAL", get_signal_config(rec["primary_signal"]["type"])["label"],
                     rec["primary_signal"]["title"], get_signal_color(rec["primary_signal"]["type"])),
            kpi_card("CONVICTION", rec["conviction_level"], format_number(rec["conviction_score"], 0),
                     CONVICTION_COLORS.get(rec["conviction_level"], C["muted"])),
            kpi_card("MARKET CAP", format_large_number(
                ((item.get("fundamentals") or {}).get("market_cap") or 0) * 1_000_000 or None),
                item.get("recommendation_key") or EMPTY, C["purple"]),
        ], className="kpi-strip"),
        html.Div([
            dcc.Graph(figure=price_chart(tech, ticker), config={"displayModeBar": False})
            if tech else empty_state("No price history."),
        ], style=_card_style),
        html.Div([
            html.Div([section_title("Analyst & insider"), analyst_panel(item)],
                     style={**_card_style, "flex": "1", "minWidth": "320px"}),
            html.Div([section_title("Fundamentals"), fundamentals_table(item.get("fundamentals"))],
                     style={**_card_style, "flex": "1", "minWidth": "280px"}),
        ], style={"display": "flex", "gap": "1.2rem", "flexWrap": "wrap"}),
        html.Div([section_title("Technical indicators"), indicator_grid(tech)], style=_card_style) if tech else None,
        html.Div([section_title("Recommendation"), rec_card(rec)], style=_card_style),
        html.Div([
            section_title("News"),
            *([news_item(a) for a in result["news"][:10]] or [empty_state("No recent news.")]),
        ], style=_card_style),
    ])


SENTIMENT_FILTERS = [
    {"label": "All sentiment", "value": "all"},
    {"label": "Positive",      "value": "positive"},
    {"label": "Neutral",       "value": "neutral"},
    {"label": "Negative",      "value": "negative"},
]


def news_articles(mode: str, portfolio_id: str | None) -> list:
    if mode == "market":
        return news_collector.fetch_market_news()
    return portfolio_data(portfolio_id)["news"]


def news_list(shown: list):
    return [news_item(a) for a in shown[:60]] or [empty_state("No articles match these filters.")]


def news_count(shown: list, articles: list) -> str:
    labels = [(a.get("sentiment") or {}).get("label") for a in shown]
    return (f"{len(shown)} / {len(articles)} articles · "
            f"{labels.count('positive')} positive · {labels.count('negative')} negative")


def build_news_tab(data: dict):
    articles = data["news"]
    return html.Div([
        html.Div([
            dcc.RadioItems(id="news-mode", value="portfolio", inline=True, className="rec-filter",
                           inputStyle={"display": "none"},
                           options=[{"label": "My portfolio", "value": "portfolio"},
                                    {"label": "Market",       "value": "market"}]),
            dcc.Dropdown(id="news-ticker", options=sorted({a["ticker"] for a in articles}),
                         placeholder="All tickers",
                         style={"width": "160px", "fontSize": "0.78rem", "color": "#000"}),
            dcc.Dropdown(id="news-sentiment", options=SENTIMENT_FILTERS, value="all", clearable=False,
                         style={"width": "160px", "fontSize": "0.78rem", "color": "#000"}),
            html.Div(news_count(articles, articles), id="news-count", className="rec-count"),
        ], className="rec-filter-row"),
        html.Div(news_list(articles), id="news-list", style=_card_style),
    ])


# ── EDITING HELPERS ────────────────────────────────────────────────────────────
def transaction_errors(form: dict, exclude_id: str | None = None) -> list:
    """Form problems, including the SELL limit for the chosen lot or the open position."""
    available = None
    if form.get("type") == "SELL" and form.get("stock_id") and form.get("portfolio_id"):
        available = portfolio_manager.sellable_shares(
            form["portfolio_id"], form["stock_id"], form.get("source_transaction_id"), exclude_id,
        )
        if available is None:
            return ["The selected lot has no shares left."]
    return transactions.validate_transaction(form, available)


def save_transaction_edit(tx_id: str, values: dict) -> list:
    """Validate and apply an edit of an existing transaction. Returns the errors (empty = saved)."""
    tx = transactions.get_by_id(tx_id)
    if tx is None:
        return ["Transaction not found."]

    form = {
        "stock_id": tx["stock_id"], "portfolio_id": tx["portfolio_id"],
        "type": values.get("type"), "date": values.get("date"),
        "quantity": values.get("quantity"), "price_per_share": values.get("price_per_share"),
        "exchange_rate_to_czk": values.get("exchange_rate_to_czk"), "fees": values.get("fees"),
        "notes": (values.get("notes") or "").strip() or None,
        "source_transaction_id": tx.get("source_transaction_id") if values.get("type") == "SELL" else None,
    }
    errors = transaction_errors(form, exclude_id=tx_id)
    if errors:
        return errors

    # SELLs linked to this lot must stay covered by it
    if tx["type"] == "BUY":
        linked = sum(float(t["quantity"]) for t in transactions.get_by_stock(tx["stock_id"], tx["portfolio_id"])
                     if t.get("source_transaction_id") == tx_id)
        if linked and (form["type"] != "BUY" or float(form["quantity"]) < linked):
            return [f"{linked:g} shares of this lot are already sold."]

    changes = {k: form[k] for k in ("type", "date", "quantity", "price_per_share",
                                    "exchange_rate_to_czk", "notes", "source_transaction_id")}
    changes["fees"] = form["fees"] or 0
    try:
        transactions.update(tx_id, changes)
    except db.SupabaseError as exc:
        return [str(exc)]
    invalidate(tx["portfolio_id"])
    return []


def apply_portfolio_action(action: str, portfolio_id: str | None = None, name: str | None = None,
                           description: str | None = None, color: str | None = None,
                           make_default: bool = False) -> str | None:
    """Run one portfolio-manager action. Returns an error message, or None on success."""
    name = (name or "").strip()
    try:
        if action == "create":
            if not name:
                return "Name is required."
            portfolios.create({"name": name, "description": (description or "").strip() or None,
                               "color": color or portfolios.COLORS[0], "is_default": bool(make_default)})
        elif action == "rename":
            if not name:
                return "Name is required."
            portfolios.update(portfolio_id, {"name": name})
        elif action == "default":
            portfolios.update(portfolio_id, {"is_default": True})
        elif action == "delete":
            portfolio = portfolios.get_by_id(portfolio_id)
            if portfolio is None:
                return "Portfolio not found."
            if portfolio.get("is_default"):
                return "The default portfolio cannot be deleted."
            if transactions.get_all(portfolio_id):
                return "Delete the portfolio's transactions first."
            portfolios.delete(portfolio_id)
        else:
            return f"Unknown action: {action}"
    except db.SupabaseError as exc:
        return str(exc)
    invalidate(portfolio_id)
    return None


def resolve_sector(sector_id: str | None, new_sector: str | None) -> str | None:
    """Sector id for the stock form; a typed name reuses a matching sector or creates one."""
    name = (new_sector or "").strip()
    if not name:
        return sector_id
    existing = next((s for s in stocks.get_sectors() if s["name"].lower() == name.lower()), None)
    return (existing or stocks.create_sector(name))["id"]


def delete_stock(stock_id: str) -> str | None:
    """Delete a stock nobody trades. Returns an error message, or None on success."""
    if transactions.get_by_stock(stock_id):
        return "Delete the stock's transactions first."
    try:
        stocks.delete(stock_id)
    except db.SupabaseError as exc:
        return str(exc)
    invalidate()
    return None


# ── MODALS ─────────────────────────────────────────────────────────────────────
def portfolio_rows(rows: list):
    if not rows:
        return empty_state("No portfolios yet.")
    out = []
    for p in rows:
        pid = p["id"]
        out.append(html.Div([
            html.Span(style={"background": p.get("color") or f"#{C['blue']}", "width": "12px",
                             "height": "12px", "borderRadius": "50%", "flexShrink": "0"}),
            dcc.Input(id={"type": "pm-name", "index": pid}, type="text", value=p["name"],
                      style={**_inp_style, "flex": "1"}),
            html.Button("Rename", id={"type": "pm-rename", "index": pid}, n_clicks=0, style=_btn_style(C["blue"])),
            html.Span("★ Default", style={"color": f"#{C['amber']}", "fontSize": "0.72rem", "fontWeight": "700"})
            if p.get("is_default") else
            html.Button("☆ Set default", id={"type": "pm-default", "index": pid}, n_clicks=0,
                        style=_btn_style(C["amber"])),
            html.Button("✕", id={"type": "pm-delete", "index": pid}, n_clicks=0, className="row-delete",
                        title="Delete portfolio"),
        ], className="pm-row"))
    return out


def build_portfolio_modal():
    """Create / rename / set default / delete portfolios."""
    return html.Div([
        html.Div([
            html.Div([
                html.Div("🗂 Portfolios", className="modal-title"),
                html.Button("✕", id="pm-modal-close", className="modal-close", n_clicks=0),
            ], className="modal-header"),
            html.Div(id="pm-list"),
            html.Div(id="pm-msg", style={"marginTop": "8px", "minHeight": "18px", "fontSize": "0.78rem"}),
            section_title("New portfolio"),
            html.Div([
                dcc.Input(id="pm-new-name", type="text", placeholder="Name",
                          style={**_inp_style, "width": "150px"}),
                dcc.Input(id="pm-new-desc", type="text", placeholder="Description",
                          style={**_inp_style, "width": "190px"}),
                dcc.Dropdown(id="pm-new-color", value=portfolios.COLORS[0], clearable=False,
                             options=[{"label": html.Span("●", style={"color": c, "fontSize": "1.1rem"}), "value": c}
                                      for c in portfolios.COLORS],
                             style={"width": "70px", "fontSize": "0.78rem"}),
                dcc.Checklist(id="pm-new-default", options=[{"label": " Default", "value": "default"}], value=[],
                              style={"fontSize": "0.78rem"}),
                html.Button("＋ Create", id="pm-create", n_clicks=0, style=_btn_style(C["green"])),
            ], style={"display": "flex", "gap": "8px", "flexWrap": "wrap", "alignItems": "center"}),
        ], className="modal-box", style={"maxWidth": "620px"}),
    ], id="pm-modal", className="modal-overlay", style={"display": "none"})


def build_edit_transaction_modal():
    label = {"fontSize": "0.7rem", "color": f"#{C['muted']}", "marginBottom": "3px", "marginTop": "10px"}
    return html.Div([
        html.Div([
            html.Div([
                html.Div("✎ Edit transaction", className="modal-title"),
                html.Button("✕", id="tx-edit-close", className="modal-close", n_clicks=0),
            ], className="modal-header"),
            dcc.Store(id="tx-edit-id"),
            dcc.RadioItems(id="tx-edit-type", options=list(transactions.TRANSACTION_TYPES), value="BUY",
                           inline=True, className="rec-filter"),
            html.Div("Date", style=label),
            dcc.DatePickerSingle(id="tx-edit-date", display_format="YYYY-MM-DD"),
            html.Div([
                html.Div([html.Div("Quantity", style=label),
                          dcc.Input(id="tx-edit-quantity", type="number", min=0, step="any",
                                    style={**_inp_style, "width": "100px"})]),
                html.Div([html.Div("Price / share", style=label),
                          dcc.Input(id="tx-edit-price", type="number", min=0, step="any",
                                    style={**_inp_style, "width": "110px"})]),
                html.Div([html.Div("Rate → CZK", style=label),
                          dcc.Input(id="tx-edit-rate", type="number", min=0, step="any",
                                    style={**_inp_style, "width": "90px"})]),
                html.Div([html.Div("Fees", style=label),
                          dcc.Input(id="tx-edit-fees", type="number", min=0, step="any",
                                    style={**_inp_style, "width": "80px"})]),
            ], style={"display": "flex", "gap": "10px", "flexWrap": "wrap"}),
            html.Div("Notes", style=label),
            dcc.Input(id="tx-edit-notes", type="text", style={**_inp_style, "width": "100%"}),
            html.Div(id="tx-edit-error", style={"marginTop": "8px", "minHeight": "18px"}),
            html.Button("Save", id="tx-edit-save", n_clicks=0, style={**_btn_style(C["green"]), "marginTop": "6px"}),
        ], className="modal-box", style={"maxWidth": "520px"}),
    ], id="tx-edit-modal", className="modal-overlay", style={"display": "none"})


def login_prompt():
    return html.Div([
        html.Span("🔑", style={"fontSize": "1.2rem", "marginRight": "8px"}),
        html.Span("Login to load your portfolios.",
                  style={"fontSize": "0.82rem", "color": f"#{C['muted']}"}),
        html.Span(" → Use the ", style={"fontSize": "0.82rem", "color": f"#{C['muted']}"}),
        html.Span("🔑 Login", style={"fontSize": "0.82rem", "fontWeight": "700", "color": f"#{C['amber']}"}),
        html.Span(" button in the top-right corner.", style={"fontSize": "0.82rem", "color": f"#{C['muted']}"}),
    ], style={**_card_style, "border": f"1px solid #{C['amber']}33",
              "display": "flex", "alignItems": "center", "flexWrap": "wrap", "gap": "2px"})


def build_auth_modal():
    """Login / Register modal."""
    inp_style = {
        "width": "100%", "boxSizing": "border-box",
        "background": f"#{C['card2']}", "border": f"1px solid #{C['border']}",
        "borderRadius": "7px", "color": f"#{C['text']}",
        "padding": "8px 12px", "fontSize": "0.85rem", "outline": "none",
    }
    label = {"fontSize": "0.75rem", "color": f"#{C['muted']}", "marginBottom": "4px", "marginTop": "12px"}
    return html.Div([
        html.Div([
            html.Div([
                html.Div("🔑 Account", className="modal-title"),
                html.Button("✕", id="auth-modal-close", className="modal-close", n_clicks=0),
            ], className="modal-header"),

            dcc.Tabs(id="auth-mode", value="login", className="lang-tabs", children=[
                dcc.Tab(label="Login",    value="login",
                        className="lang-tab", selected_className="lang-tab-active"),
                dcc.Tab(label="Register", value="register",
                        className="lang-tab", selected_className="lang-tab-active"),
            ]),

            html.Div([
                html.Div("Email", style={**label, "marginTop": "16px"}),
                dcc.Input(id="auth-email", type="email", placeholder="you@example.com",
                          debounce=False, style=inp_style),
                html.Div("Password", style=label),
                dcc.Input(id="auth-password", type="password", placeholder="Password",
                          debounce=False, style=inp_style),
                html.Div(id="auth-confirm-wrap", children=[
                    html.Div("Confirm Password", style=label),
                    dcc.Input(id="auth-confirm", type="password", placeholder="Repeat password",
                              debounce=False, style=inp_style),
                ], style={"display": "none"}),
                html.Div(id="auth-error-msg", style={
                    "color": f"#{C['red']}", "fontSize": "0.8rem",
                    "marginTop": "10px", "minHeight": "18px",
                }),
                html.Button(id="auth-submit-btn", n_clicks=0, children="Login", style={
                    "marginTop": "14px", "width": "100%",
                    "background": f"#{C['blue']}", "color": "#fff",
                    "border": "none", "borderRadius": "8px",
                    "padding": "10px", "fontSize": "0.9rem", "fontWeight": "700",
                    "cursor": "pointer",
                }),
            ], style={"padding": "0 4px 20px"}),
        ], className="modal-box", style={"maxWidth": "380px"}),
    ], id="auth-modal", className="modal-overlay", style={"display": "none"})


# ── APP ────────────────────────────────────────────────────────────────────────
app = Dash(
    __name__,
    external_stylesheets=[
        "https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700;800&display=swap"
    ],
    suppress_callback_exceptions=True,
    meta_tags=[{"name": "viewport", "content": "width=device-width, initial-scale=1"}],
    title="Portfolio Tracker",
)
server = app.server  # Gunicorn entry point

# ── LAYOUT ─────────────────────────────────────────────────────────────────────
app.layout = html.Div([

    dcc.Location(id="url", refresh=False),

    # Persistent stores
    dcc.Store(id="auth-store",      storage_type="session", data=None),
    dcc.Store(id="route-store",     storage_type="memory",  data=None),
    dcc.Store(id="sort-store",      storage_type="session", data={}),
    dcc.Store(id="data-version",    storage_type="memory",  data=0),
    dcc.Store(id="history-page",    storage_type="memory",  data=1),
    dcc.Store(id="history-version", storage_type="memory",  data=0),
    dcc.Store(id="portfolio-version", storage_type="memory", data=0),

    # Header
    html.Div([
        html.Div([
            html.Div("📈", className="logo-emoji"),
            html.Div([
                html.Div(["Portfolio ", html.Span("Tracker", className="logo-ai")], className="logo-title"),
                html.Div("Holdings · Signals · Research", className="logo-sub"),
            ]),
        ], className="header-left"),
        html.Div([
            dcc.Dropdown(id="portfolio-select", placeholder="Portfolio", clearable=False,
                         persistence=True, persistence_type="local",
                         style={"width": "170px", "fontSize": "0.78rem", "color": "#000"}),
            html.Button("⚙ Portfolios", id="pm-open-btn", n_clicks=0, className="guide-btn"),
            html.Button("↻ Refresh", id="refresh-btn", n_clicks=0, className="guide-btn"),
            html.Span(mode_label, className="mode-badge",
                      style={"background": f"#{mode_color}18", "color": f"#{mode_color}",
                             "border": f"1px solid #{mode_color}44"}),
            html.Span(timestamp, className="timestamp"),
            html.Div(id="auth-header-section"),
        ], className="header-right"),
    ], className="header"),

    # Tabs
    dcc.Tabs(id="main-tabs", value="dashboard", className="main-tabs", children=[
        dcc.Tab(label="📊  Dashboard",       value="dashboard",
                className="tab", selected_className="tab-active"),
        dcc.Tab(label="🏢  Stocks",          value="stocks",
                className="tab", selected_className="tab-active"),
        dcc.Tab(label="🧾  Transactions",    value="transactions",
                className="tab", selected_className="tab-active"),
        dcc.Tab(label="💡  Recommendations", value="recommendations",
                className="tab", selected_className="tab-active"),
        dcc.Tab(label="📜  Signal History",  value="history",
                className="tab", selected_className="tab-active"),
        dcc.Tab(label="📰  News",            value="news",
                className="tab", selected_className="tab-active"),
        dcc.Tab(label="🔍  Research",        value="research",
                className="tab", selected_className="tab-active"),
    ]),

    dcc.Loading(html.Div(id="tab-content", style={"paddingTop": "1.2rem"}),
                type="circle", color=f"#{C['blue']}"),

    # Auth Modal
    build_auth_modal(),

    # Portfolio manager + transaction edit
    build_portfolio_modal(),
    build_edit_transaction_modal(),

], className="app-shell")


# ── SESSION HELPERS ────────────────────────────────────────────────────────────
def _needs_login(auth_data) -> bool:
    return DATA_MODE == "live" and not auth_data and not db.is_authenticated()


def _ensure_session(auth_data) -> None:
    """Re-attach the browser session's token after a server restart."""
    if DATA_MODE == "live" and auth_data and auth_data.get("access_token") and not db.current_user():
        db.set_access_token(auth_data["access_token"], {"id": auth_data.get("uid"), "email": auth_data.get("email")})


# ── CALLBACKS ──────────────────────────────────────────────────────────────────
@app.callback(
    Output("main-tabs",   "value"),
    Output("url",         "hash"),
    Output("route-store", "data"),
    Input("url",          "hash"),
    Input("main-tabs",    "value"),
)
def sync_route(hash_, tab):
    """Keep the URL hash and the selected tab in step (back/forward + reload)."""
    if ctx.triggered_id == "main-tabs":
        return no_update, build_hash(tab), {"view": tab, "param": None, "tab": tab}
    route = parse_hash(hash_)
    return route["tab"], no_update, route


@app.callback(
    Output("tab-content",      "children"),
    Input("route-store",       "data"),
    Input("auth-store",        "data"),
    Input("portfolio-select",  "value"),
    Input("data-version",      "data"),
    State("sort-store",        "data"),
)
def render_tab(route, auth_data, portfolio_id, _version, sort_state):
    route = route or parse_hash(None)
    view  = route["view"]

    if view == "research":
        return build_research_tab(route.get("param"))
    if _needs_login(auth_data):
        return login_prompt()
    _ensure_session(auth_data)
    if not portfolio_id:
        return empty_state("Select a portfolio in the header.")

    try:
        if view == "stock-detail":
            return build_stock_detail(route["param"], portfolio_id)
        if view == "stocks":
            return build_stocks_tab(portfolio_id, sort_state)
        if view == "transactions":
            return build_transactions_tab(portfolio_id)
        if view == "recommendations":
            return build_recommendations_tab(portfolio_data(portfolio_id), portfolio_id)
        if view == "history":
            return build_history_tab(portfolio_id, sort_state)
        if view == "news":
            return build_news_tab(portfolio_data(portfolio_id))
        return build_dashboard_tab(portfolio_data(portfolio_id), sort_state)
    except db.SupabaseError as exc:
        logger.error("render_tab %s failed: %s", view, exc)
        return error_line(f"Could not load data: {exc}")


@app.callback(
    Output("portfolio-select", "options"),
    Output("portfolio-select", "value"),
    Input("auth-store",        "data"),
    Input("portfolio-version", "data"),
    State("portfolio-select",  "value"),
)
def load_portfolio_options(auth_data, _version, current):
    if _needs_login(auth_data):
        return [], None
    _ensure_session(auth_data)
    try:
        rows = portfolios.get_all()
    except db.SupabaseError as exc:
        logger.warning("portfolios unavailable: %s", exc)
        return [], None

    options = [{"label": p["name"], "value": p["id"]} for p in rows]
    if current in {p["id"] for p in rows}:
        return options, current
    default = next((p for p in rows if p.get("is_default")), rows[0] if rows else None)
    return options, default["id"] if default else None


@app.callback(
    Output("data-version", "data"),
    Input("refresh-btn",   "n_clicks"),
    State("data-version",  "data"),
    prevent_initial_call=True,
)
def refresh_data(n_clicks, version):
    if not n_clicks:
        return no_update
    invalidate()
    return (version or 0) + 1


# ── PORTFOLIO MANAGER CALLBACKS ────────────────────────────────────────────────
def _portfolio_list():
    try:
        return portfolio_rows(portfolios.get_all())
    except db.SupabaseError as exc:
        return error_line(f"Could not load portfolios: {exc}")


@app.callback(
    Output("pm-modal",       "style"),
    Output("pm-list",        "children"),
    Input("pm-open-btn",     "n_clicks"),
    Input("pm-modal-close",  "n_clicks"),
    prevent_initial_call=True,
)
def toggle_portfolio_modal(open_clicks, close_clicks):
    if ctx.triggered_id == "pm-open-btn" and open_clicks:
        return {"display": "flex"}, _portfolio_list()
    return {"display": "none"}, no_update


@app.callback(
    Output("pm-msg",            "children"),
    Output("pm-list",           "children", allow_duplicate=True),
    Output("portfolio-version", "data"),
    Input("pm-create",          "n_clicks"),
    Input({"type": "pm-rename",  "index": ALL}, "n_clicks"),
    Input({"type": "pm-default", "index": ALL}, "n_clicks"),
    Input({"type": "pm-delete",  "index": ALL}, "n_clicks"),
    State({"type": "pm-name",    "index": ALL}, "value"),
    State({"type": "pm-name",    "index": ALL}, "id"),
    State("pm-new-name",        "value"),
    State("pm-new-desc",        "value"),
    State("pm-new-color",       "value"),
    State("pm-new-default",     "value"),
    State("portfolio-version",  "data"),
    prevent_initial_call=True,
)
def portfolio_action(_create, _renames, _defaults, _deletes, names, name_ids,
                     new_name, new_desc, new_color, new_default, version):
    trig = ctx.triggered_id
    if not trig or not ctx.triggered[0]["value"]:
        return no_update, no_update, no_update
    if trig == "pm-create":
        error = apply_portfolio_action("create", name=new_name, description=new_desc, color=new_color,
                                       make_default="default" in (new_default or []))
    else:
        typed = {i["index"]: v for i, v in zip(name_ids, names)}
        error = apply_portfolio_action(trig["type"].removeprefix("pm-"), trig["index"],
                                       name=typed.get(trig["index"]))
    if error:
        return error_line(error), no_update, no_update
    return html.Span("Saved ✓", style={"color": f"#{C['green']}"}), _portfolio_list(), (version or 0) + 1


# ── SORTABLE TABLES ────────────────────────────────────────────────────────────
@app.callback(
    Output("sort-store", "data"),
    Input({"type": "sort-btn", "table": ALL, "field": ALL}, "n_clicks"),
    State("sort-store",  "data"),
    prevent_initial_call=True,
)
def update_sort(_clicks, sort_state):
    trig = ctx.triggered_id
    if not trig or not ctx.triggered[0]["value"]:
        return no_update
    state = dict(sort_state or {})
    state[trig["table"]] = toggle_sort(state.get(trig["table"]), trig["field"])
    return state


@app.callback(
    Output("holdings-table",  "children"),
    Input("sort-store",       "data"),
    State("portfolio-select", "value"),
    prevent_initial_call=True,
)
def update_holdings_table(sort_state, portfolio_id):
    return holdings_table(portfolio_data(portfolio_id)["summary"], (sort_state or {}).get("holdings"))


@app.callback(
    Output("stocks-table",    "children"),
    Input("stock-search",     "value"),
    Input("sort-store",       "data"),
    State("portfolio-select", "value"),
    prevent_initial_call=True,
)
def update_stocks_table(query, sort_state, portfolio_id):
    rows = stocks.search(query) if (query or "").strip() else stocks.get_all()
    return stocks_table(_stock_rows(rows, portfolio_data(portfolio_id)["summary"]),
                        (sort_state or {}).get("stocks"))


# ── STOCK CALLBACKS ────────────────────────────────────────────────────────────
@app.callback(
    Output("stock-add-msg",  "children"),
    Output("data-version",   "data", allow_duplicate=True),
    Input("stock-add-btn",   "n_clicks"),
    State("stock-ticker",    "value"),
    State("stock-name",      "value"),
    State("stock-currency",  "value"),
    State("stock-sector",    "value"),
    State("stock-new-sector", "value"),
    State("stock-target",    "value"),
    State("data-version",    "data"),
    prevent_initial_call=True,
)
def add_stock(n_clicks, ticker, name, currency, sector_id, new_sector, target, version):
    if not n_clicks:
        return no_update, no_update
    ticker = (ticker or "").strip().upper()
    if not ticker or not (name or "").strip():
        return error_line("Ticker and name are required."), no_update
    if stocks.get_by_ticker(ticker):
        return error_line(f"{ticker} already exists."), no_update
    try:
        stocks.create({"ticker": ticker, "name": name.strip(), "currency": currency,
                       "sector_id": resolve_sector(sector_id, new_sector), "target_price": target})
    except db.SupabaseError as exc:
        return error_line(str(exc)), no_update
    return "", (version or 0) + 1


@app.callback(
    Output("detail-target-msg",   "children"),
    Input("detail-target-save",   "n_clicks"),
    State("detail-target",        "value"),
    State("detail-stock-id",      "data"),
    State("portfolio-select",     "value"),
    prevent_initial_call=True,
)
def save_target_price(n_clicks, target, stock_id, portfolio_id):
    if not n_clicks:
        return no_update
    if target is not None and target < 0:
        return error_line("Target price cannot be negative.")
    try:
        stocks.update(stock_id, {"target_price": target})
    except db.SupabaseError as exc:
        return error_line(str(exc))
    invalidate(portfolio_id)
    return html.Span("Saved ✓", style={"color": f"#{C['green']}"})


@app.callback(
    Output("detail-delete-msg", "children"),
    Output("url",               "hash", allow_duplicate=True),
    Output("data-version",      "data", allow_duplicate=True),
    Input("detail-delete",      "n_clicks"),
    State("detail-stock-id",    "data"),
    State("data-version",       "data"),
    prevent_initial_call=True,
)
def delete_stock_from_detail(n_clicks, stock_id, version):
    if not n_clicks:
        return no_update, no_update, no_update
    error = delete_stock(stock_id)
    if error:
        return error_line(error), no_update, no_update
    return "", build_hash("stocks"), (version or 0) + 1


# ── TRANSACTION CALLBACKS ──────────────────────────────────────────────────────
@app.callback(
    Output("tx-lot",          "options"),
    Output("tx-lot",          "value"),
    Output("tx-lot-wrap",     "style"),
    Output("tx-available",    "children"),
    Input("tx-stock",         "value"),
    Input("tx-type",          "value"),
    State("portfolio-select", "value"),
    prevent_initial_call=True,
)
def update_lot_picker(stock_id, tx_type, portfolio_id):
    hidden = {"display": "none", "marginTop": "10px"}
    if tx_type != "SELL" or not stock_id or not portfolio_id:
        return [], None, hidden, ""
    lots = transactions.get_available_lots(stock_id, portfolio_id)
    options = [
        {"label": f"{format_date(lot['date'])} · {format_shares(lot['remaining_shares'])} left "
                  f"@ {format_price(lot['price_per_share'], lot.get('currency'))}",
         "value": lot["id"]}
        for lot in lots
    ]
    total = portfolio_manager.sellable_shares(portfolio_id, stock_id)
    return options, None, {"display": "block", "marginTop": "10px"}, f"{format_shares(total)} shares available"


@app.callback(
    Output("tx-currency", "value"),
    Input("tx-stock",     "value"),
    prevent_initial_call=True,
)
def autofill_currency(stock_id):
    if not stock_id:
        return no_update
    stock = stocks.get_by_id(stock_id)
    return (stock or {}).get("currency") or no_update


@app.callback(
    Output("tx-rate",     "value"),
    Input("tx-currency",  "value"),
)
def autofill_rate(currency):
    rate = pipeline.exchange_rate(currency)
    return round(rate, 4) if rate else None


@app.callback(
    Output("tx-error",        "children"),
    Output("data-version",    "data", allow_duplicate=True),
    Input("tx-submit",        "n_clicks"),
    State("tx-stock",         "value"),
    State("tx-type",          "value"),
    State("tx-date",          "date"),
    State("tx-quantity",      "value"),
    State("tx-price",         "value"),
    State("tx-currency",      "value"),
    State("tx-rate",          "value"),
    State("tx-fees",          "value"),
    State("tx-notes",         "value"),
    State("tx-lot",           "value"),
    State("portfolio-select", "value"),
    State("data-version",     "data"),
    prevent_initial_call=True,
)
def submit_transaction(n_clicks, stock_id, tx_type, tx_date, qty, price, currency, rate, fees, notes,
                       lot_id, portfolio_id, version):
    if not n_clicks:
        return no_update, no_update

    form = {
        "stock_id": stock_id, "portfolio_id": portfolio_id, "type": tx_type, "date": tx_date,
        "quantity": qty, "price_per_share": price, "currency": currency,
        "exchange_rate_to_czk": rate, "fees": fees, "notes": (notes or "").strip() or None,
        "source_transaction_id": lot_id if tx_type == "SELL" else None,
    }
    errors = transaction_errors(form)
    if errors:
        return html.Div([error_line(e) for e in errors]), no_update
    try:
        transactions.create(form)
    except db.SupabaseError as exc:
        return error_line(str(exc)), no_update

    invalidate(portfolio_id)
    return "", (version or 0) + 1


@app.callback(
    Output("data-version", "data", allow_duplicate=True),
    Input({"type": "tx-delete", "index": ALL}, "n_clicks"),
    State("portfolio-select", "value"),
    State("data-version",     "data"),
    prevent_initial_call=True,
)
def delete_transaction(_clicks, portfolio_id, version):
    trig = ctx.triggered_id
    if not trig or not ctx.triggered[0]["value"]:
        return no_update
    try:
        transactions.delete(trig["index"])
    except db.SupabaseError as exc:
        logger.error("delete transaction %s failed: %s", trig["index"], exc)
        return no_update
    invalidate(portfolio_id)
    return (version or 0) + 1


@app.callback(
    Output("tx-edit-modal",    "style"),
    Output("tx-edit-id",       "data"),
    Output("tx-edit-type",     "value"),
    Output("tx-edit-date",     "date"),
    Output("tx-edit-quantity", "value"),
    Output("tx-edit-price",    "value"),
    Output("tx-edit-rate",     "value"),
    Output("tx-edit-fees",     "value"),
    Output("tx-edit-notes",    "value"),
    Output("tx-edit-error",    "children"),
    Input({"type": "tx-edit", "index": ALL}, "n_clicks"),
    Input("tx-edit-close",     "n_clicks"),
    prevent_initial_call=True,
)
def open_edit_transaction(_clicks, _close):
    trig = ctx.triggered_id
    if trig == "tx-edit-close":
        return ({"display": "none"},) + (no_update,) * 9
    if not trig or not ctx.triggered[0]["value"]:
        return (no_update,) * 10
    tx = transactions.get_by_id(trig["index"])
    if tx is None:
        return ({"display": "none"},) + (no_update,) * 9
    return ({"display": "flex"}, tx["id"], tx["type"], str(tx["date"])[:10], tx["quantity"],
            tx["price_per_share"], tx.get("exchange_rate_to_czk"), tx.get("fees"), tx.get("notes"), "")


@app.callback(
    Output("tx-edit-error",    "children", allow_duplicate=True),
    Output("tx-edit-modal",    "style",    allow_duplicate=True),
    Output("data-version",     "data",     allow_duplicate=True),
    Input("tx-edit-save",      "n_clicks"),
    State("tx-edit-id",        "data"),
    State("tx-edit-type",      "value"),
    State("tx-edit-date",      "date"),
    State("tx-edit-quantity",  "value"),
    State("tx-edit-price",     "value"),
    State("tx-edit-rate",      "value"),
    State("tx-edit-fees",      "value"),
    State("tx-edit-notes",     "value"),
    State("data-version",      "data"),
    prevent_initial_call=True,
)
def save_edited_transaction(n_clicks, tx_id, tx_type, tx_date, qty, price, rate, fees, notes, version):
    if not n_clicks or not tx_id:
        return no_update, no_update, no_update
    errors = save_transaction_edit(tx_id, {
        "type": tx_type, "date": tx_date, "quantity": qty, "price_per_share": price,
        "exchange_rate_to_czk": rate, "fees": fees, "notes": notes,
    })
    if errors:
        return html.Div([error_line(e) for e in errors]), no_update, no_update
    return "", {"display": "none"}, (version or 0) + 1


# ── RECOMMENDATION CALLBACKS ───────────────────────────────────────────────────
@app.callback(
    Output("rec-cards",       "children"),
    Input("rec-filter",       "value"),
    Input("rec-group",        "value"),
    State("portfolio-select", "value"),
    prevent_initial_call=True,
)
def update_rec_cards(filter_key, group_by, portfolio_id):
    return build_rec_cards(portfolio_data(portfolio_id)["recommendations"], filter_key, group_by)


# ── SIGNAL HISTORY CALLBACKS ───────────────────────────────────────────────────
@app.callback(
    Output("history-page",    "data"),
    Input("history-prev",     "n_clicks"),
    Input("history-next",     "n_clicks"),
    Input("history-ticker",   "value"),
    Input("history-signal",   "value"),
    State("history-page",     "data"),
    State("portfolio-select", "value"),
    prevent_initial_call=True,
)
def change_history_page(_prev, _next, ticker, signal_type, page, portfolio_id):
    if ctx.triggered_id in ("history-ticker", "history-signal"):
        return 1
    pages = max(total_pages(len(filter_history(_history(portfolio_id), ticker, signal_type))), 1)
    page  = (page or 1) + (-1 if ctx.triggered_id == "history-prev" else 1)
    return min(max(page, 1), pages)


@app.callback(
    Output("history-table",       "children"),
    Output("history-page-info",   "children"),
    Output("history-stats",       "children"),
    Output("history-performance", "children"),
    Input("history-page",         "data"),
    Input("history-version",      "data"),
    Input("sort-store",           "data"),
    State("history-ticker",       "value"),
    State("history-signal",       "value"),
    State("portfolio-select",     "value"),
    prevent_initial_call=True,
)
def update_history_view(page, _version, sort_state, ticker, signal_type, portfolio_id):
    table, info, strip = history_body(_history(portfolio_id), ticker, signal_type, page, sort_state)
    return table, info, strip, performance_cards(portfolio_id)


@app.callback(
    Output("history-version",    "data"),
    Output("history-action-msg", "children"),
    Input("history-evaluate",    "n_clicks"),
    Input("history-clear",       "n_clicks"),
    Input({"type": "signal-delete", "index": ALL}, "n_clicks"),
    State("history-version",     "data"),
    State("portfolio-select",    "value"),
    prevent_initial_call=True,
)
def history_actions(_evaluate, _clear, _deletes, version, portfolio_id):
    trig = ctx.triggered_id
    if not trig or not ctx.triggered[0]["value"]:
        return no_update, no_update
    try:
        if trig == "history-evaluate":
            result = evaluate_signals(price_fetcher=pipeline.live_price, delay=0 if pipeline.is_mock() else 0.2)
            msg = f"Evaluated: {result['updated']} updated, {result['failed']} failed"
        elif trig == "history-clear":
            signal_log.clear_all_signals(portfolio_id)
            msg = "History cleared"
        else:
            signal_log.delete_signal(trig["index"])
            msg = "Signal deleted"
    except db.SupabaseError as exc:
        return no_update, str(exc)
    return (version or 0) + 1, msg


# ── RESEARCH CALLBACKS ─────────────────────────────────────────────────────────
@app.callback(
    Output("url",           "hash", allow_duplicate=True),
    Input("research-go",    "n_clicks"),
    Input("research-input", "n_submit"),
    State("research-input", "value"),
    prevent_initial_call=True,
)
def research_go(n_clicks, n_submit, ticker):
    ticker = (ticker or "").strip().upper()
    if not (n_clicks or n_submit) or not ticker:
        return no_update
    return build_hash("research", ticker)


# ── NEWS CALLBACKS ─────────────────────────────────────────────────────────────
@app.callback(
    Output("news-list",        "children"),
    Output("news-count",       "children"),
    Output("news-ticker",      "options"),
    Output("news-ticker",      "value"),
    Input("news-mode",         "value"),
    Input("news-ticker",       "value"),
    Input("news-sentiment",    "value"),
    State("portfolio-select",  "value"),
    prevent_initial_call=True,
)
def update_news(mode, ticker, sentiment, portfolio_id):
    if ctx.triggered_id == "news-mode":
        ticker = None
    articles = news_articles(mode, portfolio_id)
    shown = filter_articles(articles, ticker, sentiment)
    return news_list(shown), news_count(shown, articles), sorted({a["ticker"] for a in articles}), ticker


# ── AUTH CALLBACKS ─────────────────────────────────────────────────────────────

@app.callback(
    Output("auth-header-section", "children"),
    Input("auth-store", "data"),
)
def update_auth_header(auth_data):
    """Show Login button or user email in the header."""
    chip = {
        "fontSize": "0.75rem", "color": f"#{C['muted']}",
        "background": f"#{C['card2']}", "borderRadius": "6px",
        "padding": "4px 10px", "border": f"1px solid #{C['border']}",
        "cursor": "default",
    }
    if DATA_MODE == "mock":
        user = db.current_user() or {}
        return html.Span(f"👤 {(user.get('email') or 'demo').split('@')[0]}", style=chip)
    if not db.is_configured():
        return html.Div()

    if auth_data:
        short = (auth_data.get("email") or "").split("@")[0][:12]
        return html.Div([
            html.Span(f"👤 {short}", style=chip),
            html.Button("Logout", id="logout-btn", n_clicks=0, className="guide-btn"),
        ], style={"display": "flex", "gap": "6px", "alignItems": "center"})
    return html.Button("🔑 Login", id="auth-open-btn", n_clicks=0, className="guide-btn")


@app.callback(
    Output("auth-modal", "style"),
    Input("auth-open-btn",    "n_clicks"),
    Input("auth-modal-close", "n_clicks"),
    State("auth-store",       "data"),
    prevent_initial_call=True,
)
def toggle_auth_modal(open_clicks, close_clicks, auth_data):
    if auth_data:
        return {"display": "none"}  # Already logged in
    return {"display": "flex"} if ctx.triggered_id == "auth-open-btn" and open_clicks else {"display": "none"}


@app.callback(
    Output("auth-confirm-wrap", "style"),
    Output("auth-submit-btn",   "children"),
    Input("auth-mode",          "value"),
)
def update_auth_form(mode):
    if mode == "register":
        return {"display": "block"}, "Create Account"
    return {"display": "none"}, "Login"


@app.callback(
    Output("auth-store",     "data"),
    Output("auth-error-msg", "children"),
    Output("auth-modal",     "style", allow_duplicate=True),
    Input("auth-submit-btn", "n_clicks"),
    State("auth-mode",       "value"),
    State("auth-email",      "value"),
    State("auth-password",   "value"),
    State("auth-confirm",    "value"),
    prevent_initial_call=True,
)
def handle_auth_submit(n_clicks, mode, email, password, confirm):
    if not n_clicks:
        return no_update, no_update, no_update

    email    = (email    or "").strip()
    password = (password or "")
    confirm  = (confirm  or "")

    if not email or not password:
        return no_update, "Email and password are required.", no_update

    try:
        if mode == "register":
            if password != confirm:
                return no_update, "Passwords do not match.", no_update
            user = db.sign_up(email, password)
            if not user["access_token"]:
                return no_update, "Check your inbox to confirm your email, then log in.", no_update
        else:
            user = db.sign_in(email, password)
    except db.SupabaseError as exc:
        return no_update, str(exc), no_update

    invalidate()
    return user, "", {"display": "none"}


@app.callback(
    Output("auth-store", "data", allow_duplicate=True),
    Input("logout-btn",  "n_clicks"),
    prevent_initial_call=True,
)
def handle_logout(n_clicks):
    if not n_clicks:
        return no_update
    db.sign_out()
    invalidate()
    return None


# ── SCHEDULER ──────────────────────────────────────────────────────────────────
# Background price refresh / signal evaluation inside the web process.
# Use signal_daemon.py instead when running several gunicorn workers.
if os.getenv("ENABLE_SCHEDULER") == "1":
    try:
        from tracker.scheduler import start as _start_scheduler  # noqa: PLC0415
        _start_scheduler(_scheduler_state)
    except Exception as _sched_err:
        logger.warning("Scheduler could not start: %s", _sched_err)


if __name__ == "__main__":
    app.run(debug=False, host="0.0.0.0", port=int(os.getenv("PORT", 8050)))
