"""Ordered relay failover: primary tunnel first, fallbacks after."""

from __future__ import annotations

from typing import List, Optional, Sequence

import structlog

from greenhost.core.exceptions import ConfigurationError, TransportError
from greenhost.core.models import RequestEnvelope, ResponseEnvelope
from greenhost.relay.cancellation import CancellationToken
from greenhost.relay.transport import RelayTransport, StateCallback

logger = structlog.get_logger(__name__)


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class FailoverOrchestrator:
    """
    Runs a relay call against each base URL in priority order.

    Only a TransportError from the send step moves on to the next URL. A poll
    timeout is end-to-end for the request and is surfaced as-is.
    """

    def __init__(
        self,
        transport: RelayTransport,
        base_urls: Sequence[str],
        send_path: str = "/api/secure",
        response_path: str = "/api/secure",
    ):
        if not base_urls:
            raise ConfigurationError("At least one relay base URL is required")
        self.transport = transport
        self.base_urls: List[str] = [u.rstrip("/") for u in base_urls]
        self.send_path = send_path
        self.response_path = response_path

    async def send_with_failover(
        self,
        envelope: RequestEnvelope,
        cancel_token: Optional[CancellationToken] = None,
        on_state: Optional[StateCallback] = None,
    ) -> ResponseEnvelope:
        """
        Send ``envelope`` through the first relay that accepts it.

        Raises:
            TransportError: Every base URL failed at the send step (last error)
            PollTimeoutError: A relay accepted the request but never answered
            Cancelled: The caller cancelled
        """
        last_error: Optional[TransportError] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                return await self.transport.exchange(
                    envelope,
                    send_url=join_url(base_url, self.send_path),
                    response_url=join_url(base_url, self.response_path),
                    cancel_token=cancel_token,
                    on_state=on_state,
                )
            except TransportError as e:
                last_error = e
                remaining = len(self.base_urls) - index - 1
                logger.warning(
                    "Relay endpoint failed, trying next" if remaining else "Relay endpoint failed",
                    base_url=base_url,
                    request_id=envelope.request_id,
                    status_code=e.status_code,
                    remaining=remaining,
                    error=e.message,
                )

        logger.error(
            "All relay endpoints failed",
            request_id=envelope.request_id,
            tried=len(self.base_urls),
        )
        raise last_error
