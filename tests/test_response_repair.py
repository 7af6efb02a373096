"""
Tests for forecast recovery from raw provider text.

Covers each strategy on its own, the chain ordering, and the advisory
truncation / completeness checks.
"""

from __future__ import annotations

import json

import pytest

from pricecast.forecasting.response_repair import (
    RepairChain,
    ScatteredEntriesStrategy,
    StrictObjectStrategy,
    TruncatedObjectStrategy,
    extract_forecasts,
    is_complete,
    looks_truncated,
)

START = 1_760_004_000_000
STEP = 3_600_000


def _entries(n: int) -> list[dict]:
    return [{"timestamp": START + i * STEP, "price": 60000.5 + i} for i in range(n)]


def _payload(n: int) -> str:
    return json.dumps({"predictions": _entries(n)}, indent=2)


def _truncated(n: int) -> str:
    """N complete entries followed by a cut-off (N+1)-th entry."""
    full = _payload(n + 1)
    cut_at = full.rfind('"price"')
    return full[:cut_at + 10]


class TestStrictObjectStrategy:
    def test_parses_clean_json(self) -> None:
        assert StrictObjectStrategy().extract(_payload(3)) == _entries(3)

    def test_ignores_surrounding_prose(self) -> None:
        text = "Here you go:\n" + _payload(2) + "\nGood luck!"
        assert StrictObjectStrategy().extract(text) == _entries(2)

    def test_braces_inside_strings_do_not_confuse(self) -> None:
        text = '{"note": "a } brace", "predictions": [{"timestamp": 1, "price": 2}]}'
        assert StrictObjectStrategy().extract(text) == [{"timestamp": 1, "price": 2}]

    def test_missing_key_fails(self) -> None:
        assert StrictObjectStrategy().extract('{"forecasts": [{"timestamp": 1, "price": 2}]}') is None

    def test_empty_list_fails(self) -> None:
        assert StrictObjectStrategy().extract('{"predictions": []}') is None

    def test_truncated_fails(self) -> None:
        assert StrictObjectStrategy().extract(_truncated(3)) is None


class TestTruncatedObjectStrategy:
    @pytest.mark.parametrize("n", [1, 3, 11])
    def test_recovers_complete_prefix(self, n: int) -> None:
        assert TruncatedObjectStrategy().extract(_truncated(n)) == _entries(n)

    def test_cut_inside_string_value(self) -> None:
        text = '{"predictions": [{"timestamp": 1, "price": 2}, {"timestamp": 3, "note": "hal'
        assert TruncatedObjectStrategy().extract(text) == [{"timestamp": 1, "price": 2}]

    def test_no_complete_entry(self) -> None:
        assert TruncatedObjectStrategy().extract('{"predictions": [{"timestamp": 1, "pri') is None

    def test_no_object(self) -> None:
        assert TruncatedObjectStrategy().extract("no json here") is None


class TestScatteredEntriesStrategy:
    def test_collects_entries_from_broken_structure(self) -> None:
        text = (
            'Prediction 1: {"timestamp": 1, "price": 10}\n'
            'Prediction 2: {"timestamp": 2, "price": 11}\n'
            'Prediction 3: {"timestamp": 3, price: bad}\n'
            '{"unrelated": true}'
        )
        assert ScatteredEntriesStrategy().extract(text) == [
            {"timestamp": 1, "price": 10},
            {"timestamp": 2, "price": 11},
        ]

    def test_nothing_found(self) -> None:
        assert ScatteredEntriesStrategy().extract('{"a": 1}') is None


class TestExtractForecasts:
    @pytest.mark.parametrize("raw", [None, "", "   ", "sorry, I cannot help", '{"predictions": []}'])
    def test_returns_none_without_entries(self, raw) -> None:
        assert extract_forecasts(raw) is None

    def test_strips_markdown_fence(self) -> None:
        raw = "```json\n" + _payload(4) + "\n```"
        assert extract_forecasts(raw) == _entries(4)

    def test_truncated_returns_exactly_complete_entries(self) -> None:
        result = extract_forecasts(_truncated(5))
        assert result == _entries(5)

    def test_chain_reports_strategy(self) -> None:
        chain = RepairChain()
        strict = chain.run(_payload(2))
        repaired = chain.run(_truncated(2))
        assert strict.strategy == "strict" and not strict.repaired
        assert repaired.strategy == "truncated" and repaired.repaired

    def test_scattered_is_last_resort(self) -> None:
        raw = 'junk {"timestamp": 7, "price": 8} more junk'
        outcome = RepairChain().run(raw)
        assert outcome.strategy == "scattered"
        assert outcome.forecasts == [{"timestamp": 7, "price": 8}]


class TestTruncationChecks:
    def test_complete_payload_not_truncated(self) -> None:
        text = _payload(12)
        assert not looks_truncated(text, expected_count=12)
        assert is_complete(text)

    def test_cut_text_is_truncated(self) -> None:
        assert looks_truncated('{"pred')
        assert not is_complete('{"pred')

    def test_short_for_expected_count(self) -> None:
        assert looks_truncated(_payload(1), expected_count=24)

    def test_not_ending_in_brace(self) -> None:
        assert looks_truncated(_truncated(4))

    def test_too_few_entries_incomplete(self) -> None:
        assert not is_complete(_payload(1))
        assert is_complete(_payload(1), min_entries=1)

    def test_missing_key_incomplete(self) -> None:
        text = json.dumps({"forecasts": _entries(12)})
        assert not is_complete(text)

    def test_empty_is_truncated(self) -> None:
        assert looks_truncated("")
        assert not is_complete(None)
