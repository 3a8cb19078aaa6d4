from __future__ import annotations

import logging

import config.settings as settings_module
from config import Settings, get_settings, setup_logging


class TestSettings:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PRICE_DEVIATION_WARNING_PCT", raising=False)
        settings = Settings(_env_file=None)
        assert settings.database_url == "sqlite+aiosqlite:///orders.db"
        assert settings.order_book_depth == 20
        assert settings.price_deviation_warning_pct == 5.0
        assert settings.high_slippage_warning_pct == 1.0
        assert settings.exchange_sandbox is False

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("PRICE_DEVIATION_WARNING_PCT", "7.5")
        monkeypatch.setenv("EXCHANGE_SANDBOX", "true")
        settings = Settings(_env_file=None)
        assert settings.price_deviation_warning_pct == 7.5
        assert settings.exchange_sandbox is True

    def test_get_settings_is_cached(self, monkeypatch):
        monkeypatch.setattr(settings_module, "_settings", None)
        assert get_settings() is get_settings()


def test_setup_logging_sets_root_level(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    setup_logging("debug")
    assert root.level == logging.DEBUG
