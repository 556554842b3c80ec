"""Tests for environment-driven configuration."""

import pytest
from pydantic import ValidationError

from greenhost.core.config import (
    ProvisioningConfig,
    RelayConfig,
    Settings,
    configuration_summary,
    get_settings,
    reset_settings,
    validate_required_settings,
)

RELAY_ENV = (
    "GREENHOST_RELAY_URLS",
    "GREENHOST_RELAY_KEY",
    "GREENHOST_POLL_TIMEOUT",
    "GREENHOST_POLL_INTERVAL",
    "GREENHOST_RELAY_DISPATCHER",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in RELAY_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestRelayConfig:
    def test_defaults(self, clean_env):
        """Validate defaults when nothing is configured."""
        config = RelayConfig(_env_file=None)

        assert config.base_urls == []
        assert config.encryption_key is None
        assert config.send_path == "/api/secure"
        assert config.response_path == "/api/secure"
        assert config.status_path == "/api/status"
        assert config.poll_timeout == 45.0
        assert config.poll_interval == 2.0
        assert config.use_dispatcher is False

    def test_urls_parsed_in_order(self, clean_env):
        """Ensure relay URLs keep their failover order and lose stray slashes."""
        clean_env.setenv("GREENHOST_RELAY_URLS", " https://a.test/ ,https://b.test,, ")

        config = RelayConfig(_env_file=None)

        assert config.base_urls == ["https://a.test", "https://b.test"]

    def test_timing_and_flags_from_env(self, clean_env):
        """Validate timing values and the dispatcher flag are read from the environment."""
        clean_env.setenv("GREENHOST_POLL_TIMEOUT", "5")
        clean_env.setenv("GREENHOST_POLL_INTERVAL", "0.5")
        clean_env.setenv("GREENHOST_RELAY_DISPATCHER", "yes")

        config = RelayConfig(_env_file=None)

        assert config.poll_timeout == 5.0
        assert config.poll_interval == 0.5
        assert config.use_dispatcher is True

    def test_non_positive_timing_is_rejected(self, clean_env):
        """Ensure a zero poll interval is refused."""
        clean_env.setenv("GREENHOST_POLL_INTERVAL", "0")

        with pytest.raises(ValidationError):
            RelayConfig(_env_file=None)

    def test_key_is_secret(self, clean_env, relay_key):
        """Ensure the relay key never appears in the config repr."""
        clean_env.setenv("GREENHOST_RELAY_KEY", relay_key)

        config = RelayConfig(_env_file=None)

        assert relay_key not in repr(config)
        assert config.encryption_key.get_secret_value() == relay_key


class TestProvisioningConfig:
    def test_short_admin_passwords_rejected(self):
        """Ensure admin passwords cannot be configured shorter than 12 characters."""
        with pytest.raises(ValidationError):
            ProvisioningConfig(admin_password_length=8)


class TestValidation:
    def test_missing_everything(self, clean_env):
        """Validate both required settings are reported when absent."""
        missing = validate_required_settings(Settings(_env_file=None))

        assert missing == ["GREENHOST_RELAY_URLS", "GREENHOST_RELAY_KEY"]

    def test_bad_key_length(self, clean_env):
        """Ensure a key of the wrong length is reported."""
        clean_env.setenv("GREENHOST_RELAY_URLS", "https://a.test")
        clean_env.setenv("GREENHOST_RELAY_KEY", "too-short")

        missing = validate_required_settings(Settings(_env_file=None))

        assert missing == ["GREENHOST_RELAY_KEY (must be 16, 24 or 32 bytes)"]

    def test_complete_configuration(self, clean_env, relay_key):
        """Validate a complete configuration reports nothing missing."""
        clean_env.setenv("GREENHOST_RELAY_URLS", "https://a.test")
        clean_env.setenv("GREENHOST_RELAY_KEY", relay_key)

        assert validate_required_settings(Settings(_env_file=None)) == []


class TestSummary:
    def test_key_is_masked(self, clean_env, relay_key):
        """Ensure the summary masks the key and shows the URLs."""
        clean_env.setenv("GREENHOST_RELAY_URLS", "https://a.test")
        clean_env.setenv("GREENHOST_RELAY_KEY", relay_key)

        summary = configuration_summary(Settings(_env_file=None))

        assert summary["Encryption Key"] == "✓ set (32 chars)"
        assert relay_key not in "".join(summary.values())
        assert summary["Relay URLs"] == "https://a.test"


class TestGlobalSettings:
    def test_cached_until_reset(self, clean_env):
        """Ensure settings are cached until explicitly reset."""
        first = get_settings()

        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
