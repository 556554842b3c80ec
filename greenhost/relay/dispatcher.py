"""
Shared response reader for the multiplexed relay stream.

Instead of every caller polling and decrypting the whole stream on its own,
one reader task per response URL fetches the stream, decrypts each message
once and resolves the future registered for its request id.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError

from greenhost.core.exceptions import Cancelled, DecryptionError, PollTimeoutError
from greenhost.core.models import ResponseEnvelope
from greenhost.relay.cancellation import CancellationToken
from greenhost.relay.correlation import is_pending_marker, iter_envelopes, malformed_response
from greenhost.relay.crypto import EnvelopeCipher

logger = structlog.get_logger(__name__)


class ResponseDispatcher:
    """Registry of request id -> pending future, fed by a single background reader."""

    def __init__(
        self,
        cipher: EnvelopeCipher,
        client: httpx.AsyncClient,
        response_url: str,
        interval: float = 2.0,
    ):
        self.cipher = cipher
        self.client = client
        self.response_url = response_url
        self.interval = interval

        self._pending: Dict[str, asyncio.Future] = {}
        self._reader: Optional[asyncio.Task] = None
        self.reads = 0

    @property
    def pending_count(self) -> int:
        return sum(1 for f in self._pending.values() if not f.done())

    def register(self, request_id: str) -> asyncio.Future:
        """Create the result slot for a request and make sure the reader runs."""
        future = self._pending.get(request_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._pending[request_id] = future
        self._ensure_reader()
        return future

    def discard(self, request_id: str) -> None:
        future = self._pending.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()

    async def wait_for(
        self,
        request_id: str,
        timeout: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        """
        Wait for the reader to deliver the response for ``request_id``.

        Raises:
            PollTimeoutError: Nothing arrived within ``timeout`` seconds
            Cancelled: The token was cancelled first
        """
        future = self.register(request_id)
        started = time.monotonic()
        reads_before = self.reads

        waiters = {future}
        cancel_task = None
        if cancel_token is not None:
            cancel_task = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if future in done:
                return future.result()
            if cancel_task is not None and cancel_task in done:
                raise Cancelled(request_id)
            raise PollTimeoutError(
                request_id, self.reads - reads_before, time.monotonic() - started
            )
        finally:
            if cancel_task is not None:
                cancel_task.cancel()
            self.discard(request_id)

    def route(self, body: Any) -> int:
        """
        Decrypt every envelope in a poll body once and resolve matching slots.

        Returns:
            Number of pending requests resolved
        """
        if is_pending_marker(body):
            return 0

        routed = 0
        for item in iter_envelopes(body):
            try:
                decrypted = self.cipher.decrypt_envelope(item)
            except DecryptionError as e:
                logger.debug("Skipping undecryptable message", reason=str(e))
                continue
            if not isinstance(decrypted, dict):
                continue

            request_id = decrypted.get("request_id")
            future = self._pending.get(request_id) if isinstance(request_id, str) else None
            if future is None or future.done():
                logger.debug("Dropping response for unknown request", request_id=request_id)
                continue

            try:
                response = ResponseEnvelope.model_validate(decrypted)
            except ValidationError as e:
                error = malformed_response(request_id, e)
                logger.warning(
                    "Skipping malformed response",
                    request_id=request_id,
                    errors=error.details["errors"],
                )
                continue

            future.set_result(response)
            routed += 1
        return routed

    def _ensure_reader(self) -> None:
        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        while self.pending_count:
            try:
                response = await self.client.get(self.response_url)
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPError as e:
                logger.warning("Dispatcher poll error, retrying", url=self.response_url, error=str(e))
            except ValueError:
                logger.debug("Dispatcher poll body is not JSON", url=self.response_url)
            else:
                self.route(body)
            finally:
                self.reads += 1

            if self.pending_count:
                await asyncio.sleep(self.interval)

    async def close(self) -> None:
        """Stop the reader and cancel every outstanding slot."""
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        self._reader = None
        for request_id in list(self._pending):
            self.discard(request_id)
