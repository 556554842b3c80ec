"""
Storage provisioning on top of the SFTPGo façade.

Turns relay results into the records the storefront writes to its database
once an admin has confirmed a purchase: the purchase update, the storage
account and the per-login storage users.
"""

from __future__ import annotations

import re
import secrets
import string
from typing import Optional

import structlog

from greenhost.core.config import ProvisioningConfig
from greenhost.core.exceptions import ProvisioningError
from greenhost.core.models import (
    PaymentStatus,
    ProvisioningResult,
    PurchaseUpdate,
    ResponseEnvelope,
    StorageAccount,
    StoragePlan,
    StorageUser,
    UserPurchase,
)
from greenhost.services.sftpgo_service import SFTPGoService, response_data

logger = structlog.get_logger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"


def generate_password(length: int = 24) -> str:
    """Random password from the OS CSPRNG."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def credentials_filename(company_email: str) -> str:
    return f"your_data_from_{re.sub(r'[^a-zA-Z0-9]', '_', company_email)}.txt"


def credentials_text(user: StorageUser, company_email: str) -> str:
    """Plain-text credential sheet handed to the customer after adding a login."""
    return (
        "Company Storage Access Details\n"
        "====================================\n"
        "\n"
        f"Company Email: {company_email}\n"
        f"Username: {user.username}\n"
        f"Password: {user.password}\n"
        "\n"
        "Login Instructions:\n"
        "------------------\n"
        "1. To access your company storage dashboard, visit our website and login with "
        "these credentials\n"
        f"2. For direct SFTP access, use: {user.sftp_link}\n"
        f"3. For web interface access, visit: {user.web_link}\n"
        "\n"
        "Important Security Notice:\n"
        "-------------------------\n"
        "- Keep these credentials secure and do not share them\n"
        "- You must be connected to our ZeroTier network to access storage\n"
        "- Contact your administrator if you need assistance\n"
        "\n"
        f"Generated on: {user.created_at.isoformat(sep=' ', timespec='seconds')}\n"
    )


def _require_success(result: ResponseEnvelope, action: str) -> None:
    if not result.success:
        raise ProvisioningError(
            result.message or f"Failed to {action}",
            details={"request_id": result.request_id, "action": action},
        )


class StorageProvisioningService:
    """Provisioning workflows for confirmed purchases."""

    def __init__(self, sftpgo: SFTPGoService, config: Optional[ProvisioningConfig] = None):
        self.sftpgo = sftpgo
        self.config = config or ProvisioningConfig()

    async def setup_storage(
        self, purchase: UserPurchase, plan: StoragePlan, user_email: str
    ) -> ProvisioningResult:
        """
        Create the company on the backend for a confirmed purchase.

        Args:
            purchase: The confirmed purchase
            plan: Plan bought, provides the quota
            user_email: Email used as the company account

        Returns:
            ProvisioningResult with the records to persist

        Raises:
            ProvisioningError: Unconfirmed purchase, or the backend did not return an API key
        """
        if purchase.payment_status != PaymentStatus.CONFIRMED.value:
            raise ProvisioningError(
                "Purchase payment has not been confirmed",
                details={"purchase_id": purchase.id, "payment_status": purchase.payment_status},
            )

        admin_password = generate_password(self.config.admin_password_length)
        logger.info(
            "Setting up storage",
            purchase_id=purchase.id,
            plan=plan.name,
            quota_gb=plan.storage_gb,
        )

        result = await self.sftpgo.create_company(user_email, plan.storage_gb, admin_password)
        _require_success(result, "create company")

        data = response_data(result)
        api_key = data.get("api_key")
        if not api_key:
            raise ProvisioningError(
                "Backend did not return an API key",
                details={"request_id": result.request_id, "purchase_id": purchase.id},
            )

        account = StorageAccount(
            user_id=purchase.user_id,
            purchase_id=purchase.id,
            account_email=user_email,
            account_password=admin_password,
            storage_quota_gb=plan.storage_gb,
        )
        logger.info("Storage setup completed", purchase_id=purchase.id)

        return ProvisioningResult(
            purchase_update=PurchaseUpdate(purchase_id=purchase.id, sftpgo_api_key=api_key),
            storage_account=account,
            admin_password=admin_password,
            data=data,
        )

    async def add_storage_user(
        self, account: StorageAccount, api_key: str, username: str, password: str
    ) -> StorageUser:
        """Add a login to the account, filling in default links the backend omits."""
        result = await self.sftpgo.add_user(account.account_email, api_key, username, password)
        _require_success(result, "create user")

        data = response_data(result)
        return StorageUser(
            storage_account_id=account.id,
            username=username,
            password=password,
            sftp_link=data.get("sftp_link")
            or f"sftp://{username}@{self.config.sftp_host}:{self.config.sftp_port}",
            web_link=data.get("web_link") or self.config.web_client_url,
        )

    async def remove_storage_user(
        self, account: StorageAccount, api_key: str, username: str
    ) -> ResponseEnvelope:
        result = await self.sftpgo.delete_user(account.account_email, api_key, username)
        _require_success(result, "delete user")
        return result

    async def change_quota(
        self, account: StorageAccount, api_key: str, new_quota_gb: int
    ) -> StorageAccount:
        """Resize the account quota and return the updated record."""
        if new_quota_gb <= 0:
            raise ProvisioningError("Quota must be a positive number of gigabytes")
        result = await self.sftpgo.update_quota(account.account_email, api_key, new_quota_gb)
        _require_success(result, "update quota")
        return account.model_copy(update={"storage_quota_gb": new_quota_gb})
