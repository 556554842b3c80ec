"""
Custom exceptions for the GreenHost relay client.

Provides a hierarchy of exceptions for relay, provisioning and configuration errors.
"""

from typing import Any, Dict, Optional


class GreenHostError(Exception):
    """Base exception for all GreenHost errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(GreenHostError):
    """Raised when there are configuration issues."""

    pass


class RelayError(GreenHostError):
    """Base class for encrypted relay errors."""

    pass


class TransportError(RelayError):
    """Network or HTTP failure reaching a relay or status URL."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.url = url
        self.status_code = status_code


class DecryptionError(RelayError):
    """Payload could not be decrypted with our key (corrupt or foreign)."""

    pass


class PollTimeoutError(RelayError):
    """No matching response arrived within the client-side budget."""

    def __init__(self, request_id: str, attempts: int, elapsed: float, **kwargs):
        super().__init__(
            f"Timeout waiting for response to request {request_id} "
            f"after {attempts} attempts ({elapsed:.1f}s)",
            **kwargs,
        )
        self.request_id = request_id
        self.attempts = attempts
        self.elapsed = elapsed


class Cancelled(RelayError):
    """The caller cancelled an in-flight relay call."""

    def __init__(self, request_id: str, **kwargs):
        super().__init__(f"Request {request_id} was cancelled", **kwargs)
        self.request_id = request_id


class ResponsePending(RelayError):
    """A poll attempt produced nothing for us yet. Never surfaced to callers."""

    pass


class ServerReportedTimeout(ResponsePending):
    """Relay reported it is still processing (or timed out on its side)."""

    pass


class CorrelationMismatch(ResponsePending):
    """Decrypted a response belonging to a different request."""

    def __init__(self, expected: str, received: Optional[str], **kwargs):
        super().__init__(
            f"Received response for {received} (waiting for {expected})", **kwargs
        )
        self.expected = expected
        self.received = received


class ProvisioningError(GreenHostError):
    """Relay answered but the provisioning operation did not succeed."""

    pass
