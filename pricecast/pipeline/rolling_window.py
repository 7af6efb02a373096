"""
Rolling forward-window arithmetic.

Pure functions: how many forecasts are missing from a key's window and
which instant the next forecast should target.
"""

from __future__ import annotations

from typing import Sequence

from pricecast.constants import GRANULARITY_MS, WINDOW_SIZE
from pricecast.errors import ConfigurationError
from pricecast.forecasting.models import HistoricalBar, WindowEntry


def interval_duration(granularity: str) -> int:
    """Candle interval in milliseconds for a known granularity.

    Raises:
        ConfigurationError: Granularity outside the closed set.
    """
    try:
        return GRANULARITY_MS[granularity]
    except KeyError:
        raise ConfigurationError(
            f"Unknown granularity {granularity!r} "
            f"(expected one of {', '.join(GRANULARITY_MS)})"
        ) from None


def deficit(existing_future_count: int, window_size: int = WINDOW_SIZE) -> int:
    """Number of forecasts needed to bring the window back to *window_size*."""
    return max(0, window_size - existing_future_count)


def next_timestamp(
    granularity: str,
    window: Sequence[WindowEntry],
    bars: Sequence[HistoricalBar],
) -> int:
    """First target instant for new forecasts.

    Continues one interval after the furthest existing forecast, or one
    interval after the last observed candle when the window is empty.

    Raises:
        ConfigurationError: Unknown granularity, or nothing to anchor on.
    """
    step = interval_duration(granularity)
    if window:
        return max(entry.target_time for entry in window) + step
    if not bars:
        raise ConfigurationError(
            "No historical data and no existing forecasts to anchor the window"
        )
    return bars[-1].timestamp + step
