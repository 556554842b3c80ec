"""Request ids and response matching for the shared relay response stream."""

from __future__ import annotations

import secrets
import time
from typing import Any, Optional

from pydantic import ValidationError

from greenhost.core.exceptions import DecryptionError
from greenhost.core.models import HttpMethod, RequestEnvelope

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 9


def new_request_id() -> str:
    """Return ``req_<epoch-millis>_<9 random base36 chars>``."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def matches(response_request_id: Optional[str], expected_request_id: str) -> bool:
    """True only when a response carries exactly the id we are waiting for."""
    return response_request_id is not None and response_request_id == expected_request_id


def build_envelope(endpoint: str, method: HttpMethod | str, payload: Any = None) -> RequestEnvelope:
    """Build a fresh request envelope with a new request id."""
    return RequestEnvelope(
        endpoint=endpoint,
        method=method,
        payload={} if payload is None else payload,
        request_id=new_request_id(),
    )


PENDING_STATUSES = ("processing", "pending", "queued")


def is_pending_marker(body: Any) -> bool:
    """
    Whether a poll body is the relay saying "not ready yet".

    A ``timeout`` flag in the server's body is its own wait expiring, not ours.
    """
    if not isinstance(body, dict):
        return False
    if body.get("timeout"):
        return True
    status = body.get("status")
    return isinstance(status, str) and status.lower() in PENDING_STATUSES


def iter_envelopes(body: Any):
    """Yield wire envelopes from a poll body holding one envelope or a list of them."""
    items = body if isinstance(body, list) else [body]
    for item in items:
        if isinstance(item, dict) and "data" in item and "iv" in item:
            yield item


def malformed_response(request_id: str, error: ValidationError) -> DecryptionError:
    """A reply that decrypted and carries our id but does not fit the response schema."""
    return DecryptionError(
        f"Response for {request_id} is malformed",
        details={"request_id": request_id, "errors": error.errors(include_url=False, include_input=False)},
    )
