"""
Encrypted transport over the tunnel relay.

A call POSTs an encrypted envelope, receives an acknowledgment, then polls the
shared response endpoint until a response carrying our request id decrypts.
The relay multiplexes every caller onto one response stream, so anything that
fails to decrypt or carries another id is skipped rather than treated as an
error.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_before_delay,
    wait_fixed,
)

from greenhost.core.exceptions import (
    Cancelled,
    CorrelationMismatch,
    DecryptionError,
    PollTimeoutError,
    ResponsePending,
    ServerReportedTimeout,
    TransportError,
)
from greenhost.core.logging import relay_call_context
from greenhost.core.models import PollState, RequestEnvelope, ResponseEnvelope
from greenhost.relay.cancellation import CancellationToken
from greenhost.relay.correlation import (
    is_pending_marker,
    iter_envelopes,
    malformed_response,
    matches,
)
from greenhost.relay.crypto import EnvelopeCipher
from greenhost.relay.dispatcher import ResponseDispatcher

logger = structlog.get_logger(__name__)

StateCallback = Callable[[PollState], None]

# Outcomes of one poll attempt that mean "not my answer yet"
POLL_RETRY_EXCEPTIONS = (ResponsePending, DecryptionError, TransportError)


def _http_failure(url: str, error: httpx.HTTPError) -> TransportError:
    if isinstance(error, httpx.HTTPStatusError):
        code = error.response.status_code
        return TransportError(
            f"Relay returned HTTP {code}",
            url=url,
            status_code=code,
            details={"response_text": error.response.text[:500]},
        )
    return TransportError(f"Relay unreachable: {error}", url=url)


class RelayTransport:
    """
    Send/poll client for the encrypted relay.

    Holds no per-call state, so one instance serves any number of concurrent
    calls; each call has its own request id and its own poll loop.
    """

    def __init__(
        self,
        cipher: EnvelopeCipher,
        client: Optional[httpx.AsyncClient] = None,
        request_timeout: float = 30.0,
        poll_timeout: float = 45.0,
        poll_interval: float = 2.0,
        use_dispatcher: bool = False,
    ):
        self.cipher = cipher
        self.poll_timeout = poll_timeout
        self.poll_interval = poll_interval
        self.use_dispatcher = use_dispatcher

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            follow_redirects=True,
        )
        self._dispatchers: Dict[str, ResponseDispatcher] = {}

    async def __aenter__(self) -> "RelayTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop dispatcher readers and close the HTTP client if we created it."""
        for dispatcher in self._dispatchers.values():
            await dispatcher.close()
        self._dispatchers.clear()
        if self._owns_client:
            await self.client.aclose()

    async def send(self, envelope: RequestEnvelope, send_url: str) -> Dict[str, Any]:
        """
        Encrypt and POST an envelope to the relay.

        Returns:
            The relay's acknowledgment body

        Raises:
            TransportError: On network failure or non-2xx status
        """
        encrypted = self.cipher.encrypt(envelope)

        try:
            logger.debug("Sending encrypted request", url=send_url, endpoint=envelope.path)
            response = await self.client.post(send_url, json=encrypted.to_wire())
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = _http_failure(send_url, e)
            logger.warning(
                "Relay send failed", url=send_url, status_code=error.status_code, error=str(e)
            )
            raise error from e

        try:
            ack = response.json()
        except ValueError:
            ack = {"raw": response.text}
        if not isinstance(ack, dict):
            ack = {"raw": ack}

        logger.debug("Relay acknowledged request", url=send_url)
        return ack

    def match_response(self, body: Any, request_id: str) -> ResponseEnvelope:
        """
        Find the response for ``request_id`` in a poll body.

        Raises:
            ResponsePending: Server still processing, or only other callers' responses
            DecryptionError: Every candidate failed to decrypt, or ours was malformed
        """
        if is_pending_marker(body):
            raise ServerReportedTimeout("Relay still processing")

        last_error: Exception = ResponsePending("Relay returned no envelopes")
        for item in iter_envelopes(body):
            try:
                decrypted = self.cipher.decrypt_envelope(item)
            except DecryptionError as e:
                last_error = e
                continue

            received = decrypted.get("request_id") if isinstance(decrypted, dict) else None
            if not matches(received, request_id):
                last_error = CorrelationMismatch(request_id, received)
                continue
            try:
                return ResponseEnvelope.model_validate(decrypted)
            except ValidationError as e:
                last_error = malformed_response(request_id, e)

        raise last_error

    async def _poll_once(
        self, request_id: str, response_url: str, budget: float
    ) -> ResponseEnvelope:
        try:
            response = await asyncio.wait_for(self.client.get(response_url), timeout=budget)
            response.raise_for_status()
        except asyncio.TimeoutError:
            raise TransportError(
                "Poll request outlived the remaining poll budget", url=response_url
            ) from None
        except httpx.HTTPError as e:
            raise _http_failure(response_url, e) from e

        try:
            body = response.json()
        except ValueError:
            raise ResponsePending("Poll body is not JSON")

        return self.match_response(body, request_id)

    async def poll(
        self,
        request_id: str,
        response_url: str,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        """
        Poll the response endpoint until our response arrives.

        Args:
            request_id: Id of the request we are waiting on
            response_url: Shared response endpoint
            timeout: Client-side budget in seconds (defaults to poll_timeout); it also
                bounds each poll request, and the timeout is raised only once it is spent
            interval: Seconds between attempts (defaults to poll_interval)
            cancel_token: Optional token; cancelling ends the loop at once

        Raises:
            PollTimeoutError: Budget exhausted without a matching response
            Cancelled: The token was cancelled
        """
        timeout = self.poll_timeout if timeout is None else timeout
        interval = self.poll_interval if interval is None else interval
        token = cancel_token or CancellationToken()

        started = time.monotonic()
        deadline = started + timeout
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_before_delay(timeout),
            wait=wait_fixed(interval),
            retry=retry_if_exception_type(POLL_RETRY_EXCEPTIONS),
            sleep=token.sleep,
            before_sleep=_log_poll_retry,
        )

        logger.info("Polling for response", request_id=request_id, timeout=timeout)
        try:
            async for attempt in retrying:
                with attempt:
                    if token.cancelled:
                        raise Cancelled(request_id)
                    attempts += 1
                    result = await self._poll_once(
                        request_id, response_url, budget=max(0.0, deadline - time.monotonic())
                    )
                    logger.info(
                        "Received matching response", request_id=request_id, attempts=attempts
                    )
                    return result
        except RetryError as e:
            last = e.last_attempt.exception()
            # No further attempt fits in the budget; the timeout is reported once it is spent
            await token.sleep(max(0.0, deadline - time.monotonic()))
            if token.cancelled:
                raise Cancelled(request_id) from None
            elapsed = time.monotonic() - started
            logger.warning(
                "Timed out waiting for response",
                request_id=request_id,
                attempts=attempts,
                elapsed=round(elapsed, 2),
            )
            raise PollTimeoutError(
                request_id, attempts, elapsed, details={"last_error": str(last)}
            ) from None

    def _dispatcher_for(self, response_url: str) -> ResponseDispatcher:
        dispatcher = self._dispatchers.get(response_url)
        if dispatcher is None:
            dispatcher = ResponseDispatcher(
                self.cipher, self.client, response_url, interval=self.poll_interval
            )
            self._dispatchers[response_url] = dispatcher
        return dispatcher

    def _match_ack(self, ack: Dict[str, Any], request_id: str) -> Optional[ResponseEnvelope]:
        # Some relay builds answer synchronously with the encrypted result in the ack
        try:
            return self.match_response(ack, request_id)
        except (ResponsePending, DecryptionError):
            return None

    async def exchange(
        self,
        envelope: RequestEnvelope,
        send_url: str,
        response_url: str,
        cancel_token: Optional[CancellationToken] = None,
        on_state: Optional[StateCallback] = None,
    ) -> ResponseEnvelope:
        """
        Run one full call: SENDING -> ACK_RECEIVED -> POLLING -> MATCHED.

        ``on_state`` is told about every transition, including TIMED_OUT and
        CANCELLED on the failure paths.

        Raises:
            TransportError: The send step failed
            PollTimeoutError: No matching response within the budget
            Cancelled: The token was cancelled
        """
        notify = on_state or (lambda state: None)
        request_id = envelope.request_id

        with relay_call_context(request_id, endpoint=envelope.path):
            if cancel_token is not None and cancel_token.cancelled:
                notify(PollState.CANCELLED)
                raise Cancelled(request_id)

            dispatcher = self._dispatcher_for(response_url) if self.use_dispatcher else None
            if dispatcher is not None:
                # Register before sending so a fast reply is not dropped
                dispatcher.register(request_id)

            notify(PollState.SENDING)
            try:
                ack = await self.send(envelope, send_url)
            except TransportError:
                if dispatcher is not None:
                    dispatcher.discard(request_id)
                raise
            notify(PollState.ACK_RECEIVED)

            notify(PollState.POLLING)
            try:
                result = self._match_ack(ack, request_id)
                if result is not None:
                    if dispatcher is not None:
                        dispatcher.discard(request_id)
                elif dispatcher is not None:
                    result = await dispatcher.wait_for(
                        request_id, timeout=self.poll_timeout, cancel_token=cancel_token
                    )
                else:
                    result = await self.poll(request_id, response_url, cancel_token=cancel_token)
            except PollTimeoutError:
                notify(PollState.TIMED_OUT)
                raise
            except Cancelled:
                notify(PollState.CANCELLED)
                raise

            notify(PollState.MATCHED)
            return result


def _log_poll_retry(retry_state) -> None:
    """Log why the previous poll attempt did not produce our response."""
    error = retry_state.outcome.exception()
    fields = dict(
        attempt=retry_state.attempt_number,
        reason=str(error),
        error_type=type(error).__name__,
    )
    if isinstance(error, TransportError):
        logger.warning("Poll error, retrying", status_code=error.status_code, **fields)
    elif isinstance(error, ServerReportedTimeout):
        logger.info("Server still processing, continuing to poll", **fields)
    else:
        logger.debug("No matching response yet", **fields)
