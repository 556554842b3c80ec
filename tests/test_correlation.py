"""Tests for request ids, response matching and poll body parsing."""

import re

import pytest
from pydantic import ValidationError

from greenhost.relay.correlation import (
    build_envelope,
    is_pending_marker,
    iter_envelopes,
    matches,
    new_request_id,
)

REQUEST_ID_PATTERN = re.compile(r"^req_\d{13}_[0-9a-z]{9}$")


class TestRequestIds:
    def test_format(self):
        """Validate the request id layout."""
        assert REQUEST_ID_PATTERN.match(new_request_id())

    def test_unique_within_a_burst(self):
        """Ensure ids generated in the same millisecond stay unique."""
        ids = {new_request_id() for _ in range(2000)}
        assert len(ids) == 2000


class TestMatching:
    def test_equal_ids_match(self):
        """Validate identical ids match."""
        assert matches("req_1_a", "req_1_a")

    def test_different_ids_do_not_match(self):
        """Ensure another caller's id never matches."""
        assert not matches("req_1_b", "req_1_a")

    def test_missing_id_never_matches(self):
        """Ensure a response without an id never matches."""
        assert not matches(None, "req_1_a")


class TestEnvelopes:
    def test_build_envelope_assigns_fresh_id(self):
        """Validate each envelope gets its own request id."""
        first = build_envelope("/api/health", "GET")
        second = build_envelope("/api/health", "GET")

        assert first.request_id != second.request_id
        assert first.payload == {}
        assert first.method == "GET"

    def test_envelope_is_immutable(self):
        """Ensure envelopes cannot be changed once built."""
        envelope = build_envelope("/api/health", "GET")
        with pytest.raises(ValidationError):
            envelope.request_id = "req_other"

    def test_unknown_method_rejected(self):
        """Ensure only the supported HTTP methods are accepted."""
        with pytest.raises(ValidationError):
            build_envelope("/api/health", "PATCH")


class TestPollBodies:
    @pytest.mark.parametrize(
        "body",
        [{"timeout": True}, {"status": "processing"}, {"status": "Pending"}],
    )
    def test_pending_markers(self, body):
        """Validate the relay's "not ready yet" bodies are recognised."""
        assert is_pending_marker(body)

    @pytest.mark.parametrize(
        "body",
        [{"timeout": False}, {"data": "x", "iv": "y"}, [], "text", {"status": {"online": True}}],
    )
    def test_not_pending(self, body):
        """Ensure ordinary bodies are not treated as pending."""
        assert not is_pending_marker(body)

    def test_iter_envelopes_single_and_list(self):
        """Validate single and batched poll bodies both yield envelopes."""
        single = {"data": "a", "iv": "b"}
        assert list(iter_envelopes(single)) == [single]
        assert list(iter_envelopes([single, {"other": 1}, "junk", single])) == [single, single]

    def test_iter_envelopes_ignores_non_envelopes(self):
        """Ensure entries without data and iv are skipped."""
        assert list(iter_envelopes({"queued": True})) == []
