"""Unit tests for runtime settings."""

from __future__ import annotations

import pytest

from aries_exchange_runtime.config import (
    MATCH_POLICY_MOST_RECENT,
    ONE_WEEK_SECONDS,
    RuntimeSettings,
)


class TestRuntimeSettings:
    def test_defaults(self):
        settings = RuntimeSettings()

        assert settings.admin_url == "http://localhost:4457"
        assert settings.webhook_port == 4455
        assert settings.lookback_seconds == ONE_WEEK_SECONDS
        assert settings.lookahead_seconds == ONE_WEEK_SECONDS

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ARIES_ADMIN_URL", "http://agent:8021")
        monkeypatch.setenv("ARIES_WEBHOOK_PORT", "9000")
        monkeypatch.setenv("ARIES_MATCH_POLICY", MATCH_POLICY_MOST_RECENT)
        monkeypatch.setenv("ARIES_LOOKBACK_SECONDS", "60")

        settings = RuntimeSettings.from_env()

        assert settings.admin_url == "http://agent:8021"
        assert settings.webhook_port == 9000
        assert settings.match_policy == MATCH_POLICY_MOST_RECENT
        assert settings.lookback_seconds == 60

    def test_overrides_win_over_env(self, monkeypatch):
        monkeypatch.setenv("ARIES_LABEL", "Faber")

        settings = RuntimeSettings.from_env(label="Bob", webhook_port=None)

        assert settings.label == "Bob"
        assert settings.webhook_port == 4455

    def test_unknown_match_policy(self):
        with pytest.raises(ValueError):
            RuntimeSettings(match_policy="random")

    def test_negative_window(self):
        with pytest.raises(ValueError):
            RuntimeSettings(lookahead_seconds=-1)

    def test_api_key_redacted(self):
        settings = RuntimeSettings(admin_api_key="secret")

        assert settings.to_dict()["admin_api_key"] == "***"
        assert settings.to_dict(redact=False)["admin_api_key"] == "secret"
        assert "secret" not in repr(settings)
