# =============================================================================
# tests/unit/test_settings.py
# Unit Tests for SyncSettings / load_settings
# =============================================================================

from pathlib import Path
from unittest.mock import patch

import pytest

from shop_core.config import DEFAULT_DB_PATH, SyncSettings, load_settings
from shop_core.errors import ConfigurationError


@pytest.fixture
def no_secrets():
    """Pretend .streamlit/secrets.toml is absent"""
    with patch("shop_core.config.settings._read_secrets", return_value={}):
        yield


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "SHOP_DB_PATH",
        "SHOP_SYNC_MODE",
        "SHOP_REMOTE_TIMEOUT",
        "SHOP_PENDING_POLL_INTERVAL",
        "SHOP_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Test default values"""

    def test_defaults(self, no_secrets, clean_env):
        settings = load_settings()
        assert settings.mode == "offline_tolerant"
        assert settings.db_path == DEFAULT_DB_PATH
        assert settings.remote_timeout == 10.0
        assert settings.pending_poll_interval == 30.0
        assert not settings.has_remote


class TestOverrides:
    """Precedence: overrides > environment > secrets"""

    def test_secrets_are_read(self, clean_env):
        secrets = {"supabase_url": "https://x.supabase.co", "supabase_key": "k", "mode": "remote_authoritative"}
        with patch("shop_core.config.settings._read_secrets", return_value=secrets):
            settings = load_settings()
        assert settings.has_remote
        assert settings.mode == "remote_authoritative"

    def test_environment_beats_secrets(self, clean_env):
        clean_env.setenv("SHOP_SYNC_MODE", "offline_tolerant")
        clean_env.setenv("SHOP_REMOTE_TIMEOUT", "2.5")
        clean_env.setenv("SHOP_DB_PATH", "/tmp/shop.db")
        with patch(
            "shop_core.config.settings._read_secrets",
            return_value={"mode": "remote_authoritative"},
        ):
            settings = load_settings()
        assert settings.mode == "offline_tolerant"
        assert settings.remote_timeout == 2.5
        assert settings.db_path == Path("/tmp/shop.db")

    def test_explicit_overrides_win(self, no_secrets, clean_env):
        clean_env.setenv("SHOP_SYNC_MODE", "remote_authoritative")
        settings = load_settings(mode="offline_tolerant", pending_poll_interval=5)
        assert settings.mode == "offline_tolerant"
        assert settings.pending_poll_interval == 5.0


class TestValidation:
    """Invalid values raise ConfigurationError"""

    def test_unknown_mode(self, no_secrets, clean_env):
        with pytest.raises(ConfigurationError) as exc:
            load_settings(mode="sometimes_online")
        assert exc.value.details["config_key"] == "mode"

    def test_non_positive_interval(self):
        with pytest.raises(ConfigurationError):
            SyncSettings(pending_poll_interval=0).validate()

    def test_non_numeric_timeout(self):
        with pytest.raises(ConfigurationError):
            SyncSettings(remote_timeout="fast").validate()

    def test_unknown_setting(self, no_secrets, clean_env):
        with pytest.raises(ConfigurationError):
            load_settings(colour="blue")
