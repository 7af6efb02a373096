"""
Best-effort recovery of forecast lists from provider output.

LLM responses are frequently wrapped in prose, fenced in markdown, or cut
off mid-entry when the output token budget runs out. Recovery is an
ordered chain of strategies, most precise first:

1. StrictObjectStrategy     -- first top-level JSON object, strict parse.
2. TruncatedObjectStrategy  -- cut the object back to its last complete
                               forecast entry and close the open containers.
3. ScatteredEntriesStrategy -- every flat ``{timestamp, price}`` object found
                               anywhere in the text, parsed one by one.

The chain returns the raw entry dicts; type and range validation belong
to the caller.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from pricecast.constants import FORECAST_LIST_KEY

logger = logging.getLogger(__name__)

ForecastList = list[dict[str, Any]]

_CLOSERS = {"{": "}", "[": "]"}
_FLAT_OBJECT_RE = re.compile(r"\{[^{}]*\}")

_MIN_PLAUSIBLE_LENGTH = 50
_MIN_CHARS_PER_ENTRY = 30
_DEFAULT_MIN_ENTRIES = 10


def _strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1 :] if first_newline != -1 else ""
    if text.endswith("```"):
        text = text[:-3].rstrip()
    return text


def _is_entry(obj: Any) -> bool:
    return isinstance(obj, dict) and "timestamp" in obj and "price" in obj


def _forecast_list(data: Any) -> Optional[ForecastList]:
    if isinstance(data, dict):
        items = data.get(FORECAST_LIST_KEY)
        if isinstance(items, list) and items:
            return items
    return None


def _match_object_end(text: str, start: int) -> Optional[int]:
    """Index of the brace closing the object opened at *start*, if any.

    String literals (and escapes inside them) are skipped so braces in
    values don't count.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i
    return None


def _is_balanced(text: str) -> bool:
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack or _CLOSERS[stack.pop()] != ch:
                return False
    return not stack and not in_string


class RepairStrategy(ABC):
    """One way of pulling a forecast list out of raw text."""

    name: str = "base"

    @abstractmethod
    def extract(self, text: str) -> Optional[ForecastList]:
        """Return a non-empty forecast list, or None if this strategy fails."""


class StrictObjectStrategy(RepairStrategy):
    """Strict parse of the first top-level brace-delimited object."""

    name = "strict"

    def extract(self, text: str) -> Optional[ForecastList]:
        start = text.find("{")
        if start == -1:
            return None
        end = _match_object_end(text, start)
        if end is None:
            return None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None
        return _forecast_list(data)


class TruncatedObjectStrategy(RepairStrategy):
    """Longest prefix ending at a complete entry, containers closed synthetically.

    Every ``}`` that closes an object directly inside an array is a
    candidate cut point. Candidates are tried longest first; the first
    that parses and ends on a ``{timestamp, price}`` entry wins.
    """

    name = "truncated"

    def extract(self, text: str) -> Optional[ForecastList]:
        start = text.find("{")
        if start == -1:
            return None

        for end, closers in reversed(self._cut_points(text, start)):
            candidate = text[start : end + 1] + closers
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            items = _forecast_list(data)
            if items and _is_entry(items[-1]):
                return items
        return None

    @staticmethod
    def _cut_points(text: str, start: int) -> list[tuple[int, str]]:
        cuts: list[tuple[int, str]] = []
        stack: list[str] = []
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch in "{[":
                stack.append(ch)
            elif ch in "}]":
                if not stack or _CLOSERS[stack[-1]] != ch:
                    break
                stack.pop()
                if not stack:
                    break
                if ch == "}" and stack[-1] == "[":
                    closers = "".join(_CLOSERS[c] for c in reversed(stack))
                    cuts.append((i, closers))
        return cuts


class ScatteredEntriesStrategy(RepairStrategy):
    """Every flat ``{timestamp, price}`` object anywhere in the text.

    Least precise: it ignores structure entirely, so it runs last.
    Objects that fail to parse are skipped, not fatal.
    """

    name = "scattered"

    def extract(self, text: str) -> Optional[ForecastList]:
        entries: ForecastList = []
        for match in _FLAT_OBJECT_RE.finditer(text):
            try:
                obj = json.loads(match.group(0))
            except json.JSONDecodeError:
                continue
            if _is_entry(obj):
                entries.append(obj)
        return entries or None


@dataclass
class RepairOutcome:
    """Forecast entries plus the strategy that produced them."""

    forecasts: Optional[ForecastList]
    strategy: Optional[str] = None

    @property
    def repaired(self) -> bool:
        return self.strategy is not None and self.strategy != StrictObjectStrategy.name


class RepairChain:
    """Runs strategies in order and returns the first non-empty result."""

    def __init__(self, strategies: Optional[Sequence[RepairStrategy]] = None) -> None:
        self.strategies: list[RepairStrategy] = list(
            strategies
            or (
                StrictObjectStrategy(),
                TruncatedObjectStrategy(),
                ScatteredEntriesStrategy(),
            )
        )

    def run(self, raw_text: Optional[str]) -> RepairOutcome:
        if not raw_text or not raw_text.strip():
            return RepairOutcome(forecasts=None)

        text = _strip_code_fences(raw_text)
        for strategy in self.strategies:
            forecasts = strategy.extract(text)
            if forecasts:
                if strategy.name != StrictObjectStrategy.name:
                    logger.info(
                        "Recovered %d forecast entries via %s repair",
                        len(forecasts),
                        strategy.name,
                    )
                return RepairOutcome(forecasts=forecasts, strategy=strategy.name)

        logger.warning(
            "No forecast entries recoverable from %d chars of output", len(raw_text)
        )
        return RepairOutcome(forecasts=None)


_default_chain = RepairChain()


def extract_forecasts(raw_text: Optional[str]) -> Optional[ForecastList]:
    """Recover a forecast list from raw provider text, or None."""
    return _default_chain.run(raw_text).forecasts


def looks_truncated(text: Optional[str], expected_count: Optional[int] = None) -> bool:
    """Advisory: does *text* look cut off?

    True when the text is shorter than a plausible minimum for the
    requested count, or doesn't end in ``}`` / ``]``.
    """
    if not text or not text.strip():
        return True
    body = _strip_code_fences(text)
    if expected_count:
        min_length = _MIN_CHARS_PER_ENTRY * expected_count
    else:
        min_length = _MIN_PLAUSIBLE_LENGTH
    if len(body) < min_length:
        return True
    return body[-1] not in "}]"


def is_complete(text: Optional[str], min_entries: int = _DEFAULT_MIN_ENTRIES) -> bool:
    """Acceptance gate: balanced, keyed, strictly parseable, enough entries."""
    if not text or not text.strip():
        return False
    body = _strip_code_fences(text)
    start = body.find("{")
    if start == -1:
        return False
    if not _is_balanced(body[start:]):
        return False
    if f'"{FORECAST_LIST_KEY}"' not in body:
        return False
    end = _match_object_end(body, start)
    if end is None:
        return False
    try:
        data = json.loads(body[start : end + 1])
    except json.JSONDecodeError:
        return False
    items = _forecast_list(data)
    return items is not None and len(items) >= min_entries
