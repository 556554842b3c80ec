"""Tests for the greenhost command line."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from greenhost.main import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep structlog off CliRunner's temporary streams."""
    with patch("greenhost.main.setup_logging"):
        yield


@pytest.fixture
def configured_env(monkeypatch, relay_key):
    monkeypatch.setenv("GREENHOST_RELAY_URLS", "https://primary.relay.test")
    monkeypatch.setenv("GREENHOST_RELAY_KEY", relay_key)
    return monkeypatch


@pytest.fixture
def empty_env(monkeypatch):
    monkeypatch.delenv("GREENHOST_RELAY_URLS", raising=False)
    monkeypatch.delenv("GREENHOST_RELAY_KEY", raising=False)
    return monkeypatch


class TestConfigCommand:
    def test_complete_configuration(self, runner, configured_env, relay_key):
        """Ensure a complete configuration reports success without printing the key."""
        result = runner.invoke(main, ["config"])

        assert result.exit_code == 0
        assert "Relay configuration complete" in result.output
        assert relay_key not in result.output

    def test_missing_configuration_exits_nonzero(self, runner, empty_env):
        """Ensure missing relay settings are listed and fail the command."""
        result = runner.invoke(main, ["config"])

        assert result.exit_code == 1
        assert "GREENHOST_RELAY_URLS" in result.output


class TestDryRun:
    """--dry-run prints the envelope with secrets masked and sends nothing."""

    def test_create_company_masks_password(self, runner, empty_env):
        """Validate the dry run shows the envelope but never the admin password."""
        result = runner.invoke(
            main,
            [
                "relay",
                "create-company",
                "acme@example.com",
                "--quota-gb",
                "10",
                "--admin-password",
                "hunter2-secret",
                "--dry-run",
            ],
        )

        assert result.exit_code == 0
        assert "DRY RUN" in result.output
        assert "/api/create-company" in result.output
        assert "hunter2-secret" not in result.output
        assert "********" in result.output

    def test_update_quota_masks_api_key(self, runner, empty_env):
        """Validate the dry run masks the company API key."""
        result = runner.invoke(
            main,
            [
                "relay",
                "update-quota",
                "acme@example.com",
                "50",
                "--api-key",
                "very-secret-key",
                "--dry-run",
            ],
        )

        assert result.exit_code == 0
        assert "very-secret-key" not in result.output
        assert "PUT" in result.output


class TestRelayCommands:
    def test_status_without_urls_is_offline(self, runner, empty_env):
        """Ensure the status command reports offline when no relay is configured."""
        result = runner.invoke(main, ["relay", "status"])

        assert result.exit_code == 1
        assert "No relay URLs configured" in result.output

    def test_operation_without_configuration(self, runner, empty_env):
        """Ensure relay operations refuse to run without configuration."""
        result = runner.invoke(main, ["relay", "health"])

        assert result.exit_code == 1
        assert "Configuration Error" in result.output
