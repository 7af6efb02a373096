"""Tests for rolling forward-window arithmetic."""

from __future__ import annotations

import pytest

from pricecast.errors import ConfigurationError
from pricecast.forecasting.models import HistoricalBar, WindowEntry
from pricecast.pipeline.rolling_window import deficit, interval_duration, next_timestamp

HOUR = 3_600_000


def _bar(ts: int, close: float = 100.0) -> HistoricalBar:
    return HistoricalBar(timestamp=ts, open=close, high=close, low=close, close=close, volume=1.0)


class TestDeficit:
    @pytest.mark.parametrize("existing,expected", [(0, 24), (5, 19), (23, 1), (24, 0), (30, 0)])
    def test_deficit_never_negative(self, existing: int, expected: int) -> None:
        assert deficit(existing) == expected

    def test_custom_window_size(self) -> None:
        assert deficit(3, window_size=10) == 7


class TestIntervalDuration:
    def test_known_granularities(self) -> None:
        assert interval_duration("1h") == HOUR
        assert interval_duration("4h") == 4 * HOUR
        assert interval_duration("1d") == 24 * HOUR

    def test_unknown_granularity_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="15m"):
            interval_duration("15m")


class TestNextTimestamp:
    def test_continues_after_window(self) -> None:
        window = [
            WindowEntry(target_time=10 * HOUR, predicted_price=1.0),
            WindowEntry(target_time=12 * HOUR, predicted_price=1.0),
            WindowEntry(target_time=11 * HOUR, predicted_price=1.0),
        ]
        bars = [_bar(5 * HOUR)]
        assert next_timestamp("1h", window, bars) == 13 * HOUR

    def test_empty_window_uses_last_bar(self) -> None:
        bars = [_bar(1 * HOUR), _bar(2 * HOUR), _bar(3 * HOUR)]
        assert next_timestamp("4h", [], bars) == 3 * HOUR + 4 * HOUR

    def test_window_without_history_is_fine(self) -> None:
        window = [WindowEntry(target_time=48 * HOUR, predicted_price=5.0)]
        assert next_timestamp("1d", window, []) == 72 * HOUR

    def test_nothing_to_anchor_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            next_timestamp("1h", [], [])

    def test_unknown_granularity_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            next_timestamp("2w", [], [_bar(HOUR)])
