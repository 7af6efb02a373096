"""
Prompt construction for rolling price forecasts.

The prompt gives the provider the recent candles, the latest indicator
snapshot, sentiment, and the forecasts already in the forward window, then
asks for exactly N new sequential points starting at a fixed timestamp.
The response format is pinned to ``{"predictions": [{timestamp, price}]}``
so ResponseRepair knows what to look for.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from pricecast.constants import FORECAST_LIST_KEY
from pricecast.forecasting.models import (
    HistoricalBar,
    IndicatorSnapshot,
    PromptContext,
    SentimentView,
    WindowEntry,
)

_HISTORY_IN_PROMPT = 100
_CHANGE_LOOKBACK = 24

SYSTEM_INSTRUCTION = (
    "You are a cryptocurrency price prediction expert. "
    "Respond only with valid JSON containing exactly {count} predictions."
)

_PROMPT_TEMPLATE = """\
You are an expert financial analyst. Analyze the following data and predict \
the next {count} {granularity} price points for {asset}.

TECHNICAL INDICATORS (Latest):
{indicators}

MARKET SENTIMENT:
{sentiment}

ANALYSIS CONTEXT:
- Current price: ${current_price}
- 24-candle change: {change}%
- Interval: {granularity} ({interval_label})
- Existing future predictions: {existing_count}
- NEW predictions needed: {count} {granularity} candles (next {horizon_label})
- Starting timestamp for NEW predictions: {start_timestamp}

INSTRUCTIONS:
- Analyze the historical price patterns, volume trends, and technical indicators
- Identify support and resistance levels
- Factor in momentum and trend direction
- Generate realistic price predictions for the next {count} {granularity} periods
{continuation_instructions}
CRITICAL REQUIREMENTS:
- You MUST provide EXACTLY {count} NEW predictions
- Each prediction must have a timestamp and price
- Timestamps must be sequential, starting from {start_timestamp}
- Each timestamp must increment by exactly {step_ms} milliseconds
- All {count} predictions must be included in a single response

IMPORTANT: Return ONLY valid JSON in the following format, with no additional \
text or explanation:
{{
  "{list_key}": [
    {{
      "timestamp": <unix_timestamp_in_milliseconds>,
      "price": <predicted_close_price>
    }},
    ... (repeat for all {count} predictions)
  ]
}}

HISTORICAL DATA (Last {history_count} {granularity} candles):
{history}
{existing_section}"""

_CONTINUATION = """\
- Review the existing future predictions to understand the expected trend
- Ensure your NEW predictions logically continue from the existing predictions,
  pivoting only if the data requires it
"""


def price_change_pct(bars: Sequence[HistoricalBar], lookback: int = _CHANGE_LOOKBACK) -> str:
    """Percent change of the close over the last *lookback* candles.

    Returns ``"0.00"`` when fewer than *lookback* candles are available.
    """
    if len(bars) < lookback:
        return "0.00"
    current = bars[-1].close
    previous = bars[-lookback].close
    if previous == 0:
        return "0.00"
    return f"{(current - previous) / previous * 100:.2f}"


def _hours_label(ms: int) -> str:
    hours = ms // 3_600_000
    return f"{hours} hour{'s' if hours != 1 else ''}"


def sentiment_for_asset(snapshot: Optional[dict[str, Any]], asset: str) -> SentimentView:
    """Pull the asset entry and the market-wide entry out of a snapshot."""
    if not snapshot:
        return SentimentView()
    data = snapshot.get("data") or {}
    if not isinstance(data, dict):
        return SentimentView()
    return SentimentView(
        asset=data.get(asset),
        market=data.get("marketSentiment"),
    )


def build_prompt_context(
    asset: str,
    granularity: str,
    bars: Sequence[HistoricalBar],
    indicators: Sequence[IndicatorSnapshot],
    sentiment: Optional[dict[str, Any]],
    window: Sequence[WindowEntry],
    requested_count: int,
    start_timestamp: int,
    step_ms: int,
) -> PromptContext:
    """Assemble the prompt and system instruction for one generation attempt.

    Args:
        bars: Candles, oldest first. Must be non-empty.
        indicators: Indicator snapshots, newest first.
        sentiment: Raw sentiment snapshot or None.
        window: Forecasts already in the forward window.
        requested_count: Number of new forecasts to ask for.
        start_timestamp: First target instant (epoch ms).
        step_ms: Granularity interval in milliseconds.
    """
    latest = indicators[0] if indicators else None
    indicators_text = (
        json.dumps(latest.as_prompt_dict(), indent=2)
        if latest is not None
        else "No indicators available"
    )

    view = sentiment_for_asset(sentiment, asset)
    if view.is_empty:
        sentiment_text = "No sentiment data available"
    else:
        sentiment_text = json.dumps(
            {asset: view.asset, "market": view.market}, indent=2, default=str
        )

    history = [bar.model_dump() for bar in bars[-_HISTORY_IN_PROMPT:]]

    existing_section = ""
    if window:
        existing = [
            {"timestamp": e.target_time, "predicted_price": e.predicted_price}
            for e in window
        ]
        existing_section = (
            "\nEXISTING FUTURE PREDICTIONS (already generated):\n"
            + json.dumps(existing, indent=2)
            + "\n"
        )

    prompt = _PROMPT_TEMPLATE.format(
        asset=asset,
        granularity=granularity,
        count=requested_count,
        indicators=indicators_text,
        sentiment=sentiment_text,
        current_price=bars[-1].close,
        change=price_change_pct(bars),
        interval_label=_hours_label(step_ms),
        existing_count=len(window),
        horizon_label=_hours_label(step_ms * requested_count),
        start_timestamp=start_timestamp,
        step_ms=step_ms,
        continuation_instructions=_CONTINUATION if window else "",
        list_key=FORECAST_LIST_KEY,
        history_count=len(history),
        history=json.dumps(history, indent=2),
        existing_section=existing_section,
    )

    return PromptContext(
        asset=asset,
        granularity=granularity,
        prompt=prompt,
        system_instruction=SYSTEM_INSTRUCTION.format(count=requested_count),
        requested_count=requested_count,
        start_timestamp=start_timestamp,
        step_ms=step_ms,
    )
