"""
Unit tests for the environment-backed configuration getters.
"""

import pytest

from warehouse_assignment.core import config


@pytest.mark.unit
class TestConfigGetters:
    def test_defaults(self, monkeypatch):
        for name in (
            "CATALOG_API_URL",
            "CATALOG_TIMEOUT_SECONDS",
            "DEFAULT_EXCLUDED_WAREHOUSE_IDS",
            "RESET_CONFIRMATION_PHRASE",
            "CLEAR_STALE_ASSIGNMENTS",
        ):
            monkeypatch.delenv(name, raising=False)

        assert config.get_catalog_api_url() == "http://localhost:3000"
        assert config.get_catalog_timeout() == 30
        assert config.get_default_excluded_ids() == frozenset({1})
        assert config.get_reset_confirmation_phrase() == "RESTABLECER"
        assert config.get_clear_stale_assignments() is False

    def test_catalog_url_trailing_slash_is_dropped(self, monkeypatch):
        monkeypatch.setenv("CATALOG_API_URL", "https://api.example.com/v1/")

        assert config.get_catalog_api_url() == "https://api.example.com/v1"

    def test_invalid_integers_fall_back(self, monkeypatch):
        monkeypatch.setenv("CATALOG_TIMEOUT_SECONDS", "soon")

        assert config.get_catalog_timeout() == 30

    def test_excluded_ids_parse_and_skip_garbage(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_EXCLUDED_WAREHOUSE_IDS", "1, 4,,x, 9")

        assert config.get_default_excluded_ids() == frozenset({1, 4, 9})

    def test_testing_forces_inline_writes(self, monkeypatch):
        monkeypatch.delenv("SYNC_WRITES_INLINE", raising=False)
        monkeypatch.setenv("TESTING", "true")
        assert config.get_sync_writes_inline() is True

        monkeypatch.setenv("TESTING", "false")
        assert config.get_sync_writes_inline() is False

        monkeypatch.setenv("SYNC_WRITES_INLINE", "1")
        assert config.get_sync_writes_inline() is True

    def test_stale_clearing_flag(self, monkeypatch):
        monkeypatch.setenv("CLEAR_STALE_ASSIGNMENTS", "Yes")

        assert config.get_clear_stale_assignments() is True
