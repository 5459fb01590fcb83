"""
Tenant and identity resolution for Magic Wizards.

Maps direct tenant ids and chat-platform identities to tenant
configuration and an internal user.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from magicwizards.errors import WizardError
from magicwizards.schemas import Channel, Provider, TenantConfig, TenantIdentity
from magicwizards.storage import StorageBackend
from magicwizards.validation import SANDBOX_TENANT_ID


logger = logging.getLogger(__name__)


class TenantNotFoundError(WizardError):
    """Raised when a tenant id has no configuration row."""
    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class TenantInactiveError(WizardError):
    """Raised when a tenant exists but is not active."""
    def __init__(self, tenant_id: str, status: str):
        self.tenant_id = tenant_id
        self.status = status
        super().__init__(f"Tenant not active: {tenant_id} (status: {status})")


SANDBOX_TENANT = TenantConfig(
    id=SANDBOX_TENANT_ID,
    plan="starter",
    status="active",
    wizard_provider=Provider.MOCK.value,
    wizard_model="mock-model",
    wizard_budget_usd=1.0,
)


@dataclass(frozen=True)
class ResolvedIdentity:
    """Tenant and user an inbound chat message belongs to."""
    tenant_id: str
    user_id: Optional[str]
    identity_id: str


class TenantDirectory:
    """Tenant configuration lookups."""

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def get(self, tenant_id: str) -> Optional[TenantConfig]:
        if tenant_id == SANDBOX_TENANT_ID:
            return SANDBOX_TENANT
        return await self._storage.get_tenant(tenant_id)

    async def require_active(self, tenant_id: str) -> TenantConfig:
        """
        Get an active tenant.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            TenantInactiveError: If its status is not active.
        """
        tenant = await self.get(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        if not tenant.is_active:
            raise TenantInactiveError(tenant_id, tenant.status)
        return tenant


class IdentityResolver:
    """
    Resolves an external chat identity to a tenant and user.

    Only active identity rows are considered. When an external user id is
    given, a row for that exact user wins over a chat-wide row (one with
    no external user id). More than one equally specific match is treated
    as unlinked.
    """

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    async def resolve(
        self,
        channel: Channel,
        external_chat_id: str,
        external_user_id: Optional[str] = None,
    ) -> Optional[ResolvedIdentity]:
        identities = await self._storage.find_identities(channel, external_chat_id)

        candidates: list[TenantIdentity] = []
        if external_user_id:
            candidates = [i for i in identities if i.external_user_id == external_user_id]
        if not candidates:
            candidates = [i for i in identities if not i.external_user_id]

        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                "identity_ambiguous channel=%s chat_id=%s user_id=%s matches=%d",
                Channel(channel).value,
                external_chat_id,
                external_user_id,
                len(candidates),
            )
            return None

        identity = candidates[0]
        return ResolvedIdentity(
            tenant_id=identity.tenant_id,
            user_id=identity.user_id,
            identity_id=identity.id,
        )
