"""
Data models and type definitions for the GreenHost relay client.

Provides type-safe envelopes for the encrypted relay protocol and the plain
records the storefront writes into its hosted database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PollState(str, Enum):
    """States of a single relay call."""

    SENDING = "sending"
    ACK_RECEIVED = "ack_received"
    POLLING = "polling"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class HttpMethod(str, Enum):
    """Verb tags carried inside request envelopes."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class PaymentStatus(str, Enum):
    """Manual bank-transfer payment states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


# Relay envelopes


class RequestEnvelope(BaseModel):
    """Plaintext request sent through the relay. Immutable once built."""

    endpoint: str = Field(..., min_length=1)
    method: HttpMethod
    payload: Any = Field(default_factory=dict)
    request_id: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    @property
    def path(self) -> str:
        """Endpoint without its query string, safe to log."""
        return self.endpoint.partition("?")[0]


class EncryptedEnvelope(BaseModel):
    """Ciphertext and IV, both base64. Serialised as ``{"data", "iv"}`` on the wire."""

    ciphertext: str = Field(..., alias="data")
    iv: str

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> Dict[str, str]:
        return {"data": self.ciphertext, "iv": self.iv}


class ResponseEnvelope(BaseModel):
    """Decrypted relay response. Unknown keys are preserved."""

    request_id: str
    success: bool = False
    data: Any = None
    message: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, v):
        return None if v is None else str(v)

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class ServerStatus(BaseModel):
    """Body of the unauthenticated status endpoint."""

    online: bool = False
    queue_size: Optional[int] = None
    message: str = ""

    model_config = ConfigDict(extra="ignore")

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, v):
        return "" if v is None else str(v)


class StatusResult(BaseModel):
    """Outcome of a status probe. Always produced, never raised."""

    status: str
    message: str
    queue_size: Optional[int] = None
    base_url: Optional[str] = None

    @property
    def online(self) -> bool:
        return self.status == "online"


def utc_now() -> datetime:
    """Naive UTC timestamp, the form the storefront database stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Storefront records owned by the hosted database


class StoragePlan(BaseModel):
    """A purchasable storage plan."""

    id: str
    name: str
    storage_gb: int = Field(..., gt=0)
    plan_type: Optional[str] = None
    price: Optional[float] = None


class UserPurchase(BaseModel):
    """A customer's plan purchase awaiting or past admin confirmation."""

    id: str
    user_id: str
    plan_id: str
    payment_status: PaymentStatus = PaymentStatus.PENDING
    sftpgo_api_key: Optional[str] = None
    storage_setup_completed: bool = False

    model_config = ConfigDict(use_enum_values=True)


class PurchaseUpdate(BaseModel):
    """Columns to update on ``user_purchases`` after provisioning."""

    purchase_id: str
    sftpgo_api_key: str
    storage_setup_completed: bool = True


class StorageAccount(BaseModel):
    """Row for ``storage_accounts`` created once the company exists remotely."""

    id: Optional[str] = None
    user_id: str
    purchase_id: str
    account_email: str
    account_password: str
    storage_quota_gb: int
    setup_completed: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class StorageUser(BaseModel):
    """Row for ``storage_users``, one per SFTP login under an account."""

    storage_account_id: Optional[str] = None
    username: str
    password: str
    sftp_link: str
    web_link: str
    created_at: datetime = Field(default_factory=utc_now)


class ProvisioningResult(BaseModel):
    """Everything the caller needs to persist after setting up storage."""

    purchase_update: PurchaseUpdate
    storage_account: StorageAccount
    admin_password: str
    data: Dict[str, Any] = Field(default_factory=dict)
