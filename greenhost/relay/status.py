"""Unauthenticated relay status probe with failover."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import httpx
import structlog
from pydantic import ValidationError

from greenhost.core.models import ServerStatus, StatusResult
from greenhost.relay.failover import join_url

logger = structlog.get_logger(__name__)


def parse_status_body(body: Any) -> ServerStatus:
    """Read a status body, unwrapping one level of nested ``status`` object."""
    if not isinstance(body, dict):
        raise ValueError("Status body is not a JSON object")
    nested = body.get("status")
    if isinstance(nested, dict):
        body = nested
    return ServerStatus.model_validate(body)


def describe_status(status: ServerStatus) -> str:
    if status.online:
        if status.queue_size is not None:
            return f"Server online - queue size: {status.queue_size}"
        return status.message or "Server online"
    return status.message or "Server reported offline"


class StatusProber:
    """Probes the relay's plain status endpoint. Never raises."""

    def __init__(
        self,
        base_urls: Sequence[str],
        status_path: str = "/api/status",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_urls: List[str] = [u.rstrip("/") for u in base_urls]
        self.status_path = status_path
        self.timeout = timeout
        self.client = client

    async def check_status(self) -> StatusResult:
        """
        Ask each relay for its status, primary first.

        Returns:
            StatusResult; any failure on every URL yields status="offline"
        """
        if not self.base_urls:
            return StatusResult(status="offline", message="No relay URLs configured")

        reasons = []
        for base_url in self.base_urls:
            url = join_url(base_url, self.status_path)
            try:
                status = await self._probe(url)
            except Exception as e:
                reason = _describe_failure(e)
                reasons.append(f"{base_url}: {reason}")
                logger.warning("Status probe failed", url=url, reason=reason)
                continue

            result = StatusResult(
                status="online" if status.online else "offline",
                message=describe_status(status),
                queue_size=status.queue_size,
                base_url=base_url,
            )
            logger.info("Relay status", base_url=base_url, status=result.status)
            return result

        return StatusResult(status="offline", message="Relay unreachable: " + "; ".join(reasons))

    async def _probe(self, url: str) -> ServerStatus:
        if self.client is not None:
            response = await self.client.get(url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
        response.raise_for_status()
        return parse_status_body(response.json())


def _describe_failure(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    if isinstance(error, httpx.TimeoutException):
        return "timed out"
    if isinstance(error, httpx.HTTPError):
        return f"connection failed ({error})"
    if isinstance(error, ValidationError):
        return "unexpected status payload"
    return f"invalid response ({error})"
