"""
Encrypted request/response relay to the SFTPGo provisioning backend.

Codec, correlation, transport, failover and status probing.
"""

from .cancellation import CancellationToken
from .crypto import EnvelopeCipher
from .failover import FailoverOrchestrator
from .status import StatusProber
from .transport import RelayTransport

__all__ = [
    "CancellationToken",
    "EnvelopeCipher",
    "FailoverOrchestrator",
    "RelayTransport",
    "StatusProber",
]
