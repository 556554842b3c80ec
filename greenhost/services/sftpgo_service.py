"""
SFTPGo provisioning operations over the encrypted relay.

Each operation builds a request envelope for a fixed backend route and hands it
to the failover orchestrator. Results and errors are passed through unchanged;
business rules live in the backend and in the calling code.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import structlog

from greenhost.core.config import Settings, validate_required_settings
from greenhost.core.exceptions import ConfigurationError
from greenhost.core.models import HttpMethod, RequestEnvelope, ResponseEnvelope, StatusResult
from greenhost.relay.cancellation import CancellationToken
from greenhost.relay.correlation import build_envelope
from greenhost.relay.crypto import EnvelopeCipher
from greenhost.relay.failover import FailoverOrchestrator
from greenhost.relay.status import StatusProber
from greenhost.relay.transport import RelayTransport
from greenhost.utils.reliability import track_operation

logger = structlog.get_logger(__name__)

CREATE_COMPANY = "/api/create-company"
ADD_USER = "/api/add-user"
GET_CUSTOMER = "/api/get-customer"
DELETE_USER = "/api/delete-user"
UPDATE_QUOTA = "/api/update-quota"
HEALTH = "/api/health"


class SFTPGoService:
    """Typed façade over the relay for the SFTPGo provisioning backend."""

    def __init__(
        self,
        orchestrator: FailoverOrchestrator,
        prober: Optional[StatusProber] = None,
    ):
        self.orchestrator = orchestrator
        self.prober = prober

    @classmethod
    def from_settings(cls, settings: Settings) -> "SFTPGoService":
        """Wire cipher, transport, failover and status probe from configuration."""
        missing = validate_required_settings(settings)
        if missing:
            raise ConfigurationError(
                f"Missing relay configuration: {', '.join(missing)}",
                details={"missing": missing},
            )

        relay = settings.relay
        cipher = EnvelopeCipher(relay.encryption_key.get_secret_value())
        transport = RelayTransport(
            cipher,
            request_timeout=relay.request_timeout,
            poll_timeout=relay.poll_timeout,
            poll_interval=relay.poll_interval,
            use_dispatcher=relay.use_dispatcher,
        )
        orchestrator = FailoverOrchestrator(
            transport,
            relay.base_urls,
            send_path=relay.send_path,
            response_path=relay.response_path,
        )
        prober = StatusProber(
            relay.base_urls, status_path=relay.status_path, timeout=relay.status_timeout
        )
        return cls(orchestrator, prober)

    async def aclose(self) -> None:
        await self.orchestrator.transport.aclose()

    async def __aenter__(self) -> "SFTPGoService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _call(
        self, envelope: RequestEnvelope, cancel_token: Optional[CancellationToken]
    ) -> ResponseEnvelope:
        logger.debug(
            "Dispatching relay request",
            endpoint=envelope.path,
            method=envelope.method,
            request_id=envelope.request_id,
        )
        return await self.orchestrator.send_with_failover(envelope, cancel_token=cancel_token)

    # ------------------------------------------------------------------ #
    # Request builders (also used for dry runs)
    # ------------------------------------------------------------------ #

    @staticmethod
    def create_company_request(
        company_email: str, quota_gb: int, admin_password: str
    ) -> RequestEnvelope:
        payload = {
            "company_email": company_email,
            "quota_gb": quota_gb,
            "admin_password": admin_password,
        }
        return build_envelope(CREATE_COMPANY, HttpMethod.POST, payload)

    @staticmethod
    def add_user_request(
        company_email: str, api_key: str, username: str, password: str
    ) -> RequestEnvelope:
        payload = {
            "company_email": company_email,
            "api_key": api_key,
            "username": username,
            "password": password,
        }
        return build_envelope(ADD_USER, HttpMethod.POST, payload)

    @staticmethod
    def get_customer_request(email: str, api_key: str) -> RequestEnvelope:
        query = urlencode({"email": email, "api_key": api_key})
        return build_envelope(f"{GET_CUSTOMER}?{query}", HttpMethod.GET, {})

    @staticmethod
    def delete_user_request(company_email: str, api_key: str, username: str) -> RequestEnvelope:
        payload = {"company_email": company_email, "api_key": api_key, "username": username}
        return build_envelope(DELETE_USER, HttpMethod.DELETE, payload)

    @staticmethod
    def update_quota_request(
        company_email: str, api_key: str, new_quota_gb: int
    ) -> RequestEnvelope:
        payload = {
            "company_email": company_email,
            "api_key": api_key,
            "new_quota_gb": new_quota_gb,
        }
        return build_envelope(UPDATE_QUOTA, HttpMethod.PUT, payload)

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    @track_operation("create_company")
    async def create_company(
        self,
        company_email: str,
        quota_gb: int,
        admin_password: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        """Create the company account and its quota on the SFTPGo backend."""
        envelope = self.create_company_request(company_email, quota_gb, admin_password)
        return await self._call(envelope, cancel_token)

    @track_operation("add_user")
    async def add_user(
        self,
        company_email: str,
        api_key: str,
        username: str,
        password: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        """Add an SFTP login under an existing company."""
        envelope = self.add_user_request(company_email, api_key, username, password)
        return await self._call(envelope, cancel_token)

    @track_operation("get_customer")
    async def get_customer(
        self, email: str, api_key: str, cancel_token: Optional[CancellationToken] = None
    ) -> ResponseEnvelope:
        envelope = self.get_customer_request(email, api_key)
        return await self._call(envelope, cancel_token)

    @track_operation("delete_user")
    async def delete_user(
        self,
        company_email: str,
        api_key: str,
        username: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        envelope = self.delete_user_request(company_email, api_key, username)
        return await self._call(envelope, cancel_token)

    @track_operation("update_quota")
    async def update_quota(
        self,
        company_email: str,
        api_key: str,
        new_quota_gb: int,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResponseEnvelope:
        envelope = self.update_quota_request(company_email, api_key, new_quota_gb)
        return await self._call(envelope, cancel_token)

    @track_operation("health_check")
    async def health_check(
        self, cancel_token: Optional[CancellationToken] = None
    ) -> ResponseEnvelope:
        """Encrypted health check routed through the relay to the backend."""
        envelope = build_envelope(HEALTH, HttpMethod.GET, {})
        return await self._call(envelope, cancel_token)

    async def check_status(self) -> StatusResult:
        """Plain relay status probe. Never raises."""
        if self.prober is None:
            return StatusResult(status="offline", message="Status probe not configured")
        return await self.prober.check_status()


def response_data(result: ResponseEnvelope) -> Dict[str, Any]:
    """
    Return the useful data of a backend result.

    The relay wraps the backend's own ``{success, message, data}`` reply, so the
    payload is sometimes nested one level deeper under ``data.data``.
    """
    data = result.data
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        return data["data"]
    return data if isinstance(data, dict) else {}
