"""Tests for settings loading and log formatting."""

from __future__ import annotations

import json
import logging

import pytest

from pricecast.logging_config import _JSONFormatter
from pricecast.settings import Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.window_size == 24
        assert settings.min_acceptable_ratio == 0.8
        assert settings.granularities == ["1h", "4h", "1d"]
        assert settings.providers == ["gemini", "gpt", "claude"]

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WINDOW_SIZE", "12")
        monkeypatch.setenv("ASSETS", '["BTC"]')
        monkeypatch.setenv("ENVIRONMENT", "testing")
        settings = Settings(_env_file=None)
        assert settings.window_size == 12
        assert settings.assets == ["BTC"]
        assert settings.is_testing


class TestJSONFormatter:
    def test_includes_extra_fields(self) -> None:
        record = logging.LogRecord(
            name="pricecast.pipeline",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="stored %d forecasts",
            args=(19,),
            exc_info=None,
        )
        record.asset = "BTC"

        payload = json.loads(_JSONFormatter().format(record))

        assert payload["severity"] == "WARNING"
        assert payload["module"] == "pricecast.pipeline"
        assert payload["message"] == "stored 19 forecasts"
        assert payload["asset"] == "BTC"
        assert "args" not in payload
