"""Tests for QueueSettings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stepline.core.settings import QueueSettings, get_settings


class TestQueueSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STEPLINE_DEFERRAL", raising=False)
        settings = QueueSettings()
        assert settings.deferral == "auto"
        assert settings.timer_delay == 0.0
        assert settings.log_level == "INFO"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("STEPLINE_DEFERRAL", "timer")
        monkeypatch.setenv("STEPLINE_TIMER_DELAY", "0.05")

        settings = QueueSettings()

        assert settings.deferral == "timer"
        assert settings.timer_delay == 0.05

    def test_invalid_strategy_rejected(self):
        with pytest.raises(ValidationError):
            QueueSettings(deferral="threads")

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            QueueSettings(timer_delay=-1)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
