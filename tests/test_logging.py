"""Tests for correlation ids, secret masking and per-call log context."""

import structlog

from greenhost.core import logging as gh_logging
from greenhost.services.sftpgo_service import SFTPGoService


class TestCorrelationId:
    """Validate the invocation-wide correlation id."""

    def teardown_method(self):
        """Clear the global id between tests."""
        gh_logging._correlation_id = None

    def test_explicit_id(self):
        """Validate an explicit correlation id is kept."""
        assert gh_logging.set_correlation_id("abc123") == "abc123"
        assert gh_logging.get_correlation_id() == "abc123"

    def test_generated_id(self):
        """Validate a short id is generated when none is given."""
        generated = gh_logging.set_correlation_id()

        assert len(generated) == 8
        assert gh_logging.get_correlation_id() == generated

    def test_processor_adds_id_when_set(self):
        """Ensure log events carry the correlation id once set."""
        gh_logging.set_correlation_id("run-1")

        event = gh_logging.add_correlation_id(None, "info", {"event": "hello"})

        assert event["correlation_id"] == "run-1"

    def test_processor_leaves_event_alone_without_id(self):
        """Ensure events are untouched when no correlation id is set."""
        event = gh_logging.add_correlation_id(None, "info", {"event": "hello"})

        assert "correlation_id" not in event


class TestSecretMasking:
    """Validate credentials never reach a log renderer."""

    def test_top_level_secrets_are_masked(self):
        """Ensure credential keys on the event are replaced."""
        event = gh_logging.mask_secrets(
            None, "info", {"event": "x", "api_key": "k-1", "username": "alice"}
        )

        assert event["api_key"] == gh_logging.MASK
        assert event["username"] == "alice"

    def test_payload_secrets_are_masked(self):
        """Ensure credentials inside a logged payload are replaced without mutating it."""
        payload = {"company_email": "acme@example.com", "admin_password": "hunter2"}

        event = gh_logging.mask_secrets(None, "info", {"event": "x", "payload": payload})

        assert event["payload"]["admin_password"] == gh_logging.MASK
        assert event["payload"]["company_email"] == "acme@example.com"
        assert payload["admin_password"] == "hunter2"


class TestRelayCallContext:
    """Validate per-call context binding."""

    def test_request_id_bound_only_inside_call(self):
        """Ensure request_id and endpoint are bound for the call and cleared after."""
        with gh_logging.relay_call_context("req_1", endpoint="/api/health"):
            bound = structlog.contextvars.get_contextvars()

        assert bound["request_id"] == "req_1"
        assert bound["endpoint"] == "/api/health"
        assert "request_id" not in structlog.contextvars.get_contextvars()

    def test_logged_path_drops_query_credentials(self):
        """Ensure the loggable endpoint of get_customer omits its api_key query."""
        envelope = SFTPGoService.get_customer_request("acme@example.com", "secret-key")

        assert envelope.path == "/api/get-customer"
        assert "secret-key" in envelope.endpoint
