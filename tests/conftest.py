"""Configure pytest fixtures and environment for GreenHost relay tests."""

import json
from typing import Any, Dict, List, Optional, Set

import httpx
import pytest
from dotenv import load_dotenv

from greenhost.core.config import reset_settings
from greenhost.relay.crypto import EnvelopeCipher

TEST_KEY = "0123456789abcdef0123456789abcdef"
PRIMARY = "https://primary.relay.test"
FALLBACK = "https://fallback.relay.test"


def pytest_sessionstart(session):
    """Load environment variables from a local .env if present."""
    load_dotenv()


class FakeRelay:
    """
    In-memory relay behind httpx.MockTransport.

    POSTs are decrypted and recorded; GETs pop the next queued poll body, or
    answer with the relay's "still waiting" marker when the queue is empty.
    """

    def __init__(self, cipher: EnvelopeCipher):
        self.cipher = cipher
        self.sent: List[Dict[str, Any]] = []
        self.sent_hosts: List[str] = []
        self.poll_bodies: List[Any] = []
        self.gets = 0
        self.failing_hosts: Set[str] = set()
        self.unreachable_hosts: Set[str] = set()
        self.auto_reply: Optional[Dict[str, Any]] = None

    def reply(self, request_id, success=True, data=None, message="ok", **extra) -> Dict[str, str]:
        body = {"request_id": request_id, "success": success, "data": data, "message": message}
        body.update(extra)
        return self.cipher.encrypt(body).to_wire()

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host in self.unreachable_hosts:
            raise httpx.ConnectError("tunnel closed", request=request)

        if request.method == "POST":
            wire = json.loads(request.content)
            decrypted = self.cipher.decrypt(wire["data"], wire["iv"])
            self.sent.append(decrypted)
            self.sent_hosts.append(host)
            if host in self.failing_hosts:
                return httpx.Response(502, json={"error": "bad gateway"})
            if self.auto_reply is not None:
                self.poll_bodies.append(self.reply(decrypted["request_id"], **self.auto_reply))
            return httpx.Response(202, json={"queued": True})

        self.gets += 1
        body = self.poll_bodies.pop(0) if self.poll_bodies else {"timeout": True}
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def cipher():
    return EnvelopeCipher(TEST_KEY)


@pytest.fixture
def fake_relay(cipher):
    return FakeRelay(cipher)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Each test reads configuration from its own environment."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def relay_key():
    return TEST_KEY


@pytest.fixture
def relay_urls():
    """Primary and fallback relay base URLs."""
    return [PRIMARY, FALLBACK]
