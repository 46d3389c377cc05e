"""
Maps a channel address to the organization it belongs to.

Lookups fail closed: an unbound address, a binding without an organization,
or a storage error all resolve to ``Unregistered``. There is no fallback
organization.
"""
from typing import Optional, Union

from fleetdesk.core.exceptions import BusinessRuleException, DocumentStoreError
from fleetdesk.core.logging import get_logger, log_business_event, mask_address
from fleetdesk.models.session import ResolvedTenant, TenantBinding, Unregistered
from fleetdesk.services.document_store import DocumentStore
from fleetdesk.utils.identity import canonicalize_address

logger = get_logger(__name__)

BINDINGS = "whatsapp_users"
USERS = "users"

# Identifiers older deployments used as catch-all tenants; never valid bindings
SENTINEL_TENANT_IDS = frozenset({"", "default", "demo", "shared", "unknown", "null", "none"})


class TenantResolver:
    """Resolve channel identities to organizations."""

    def __init__(self, store: DocumentStore, country_code: str = "234"):
        self.store = store
        self.country_code = country_code

    def canonicalize(self, raw_address: str) -> str:
        return canonicalize_address(raw_address, self.country_code)

    async def resolve(self, raw_address: str) -> Union[ResolvedTenant, Unregistered]:
        """Resolve ``raw_address`` to its organization, or ``Unregistered``."""
        canonical = self.canonicalize(raw_address)

        try:
            binding = await self.store.get(BINDINGS, canonical)
            if binding is None:
                binding = await self._binding_from_user_record(canonical)
        except DocumentStoreError as e:
            logger.error("Tenant lookup failed, treating sender as unregistered",
                         phone=mask_address(canonical), error=str(e))
            return Unregistered(canonical=canonical, reason="lookup_failed")

        if binding is None:
            return Unregistered(canonical=canonical)

        tenant_id = binding.get("organizationId")
        user_id = binding.get("userId")
        if not self._is_usable_tenant(tenant_id) or not user_id:
            logger.warning("Ignoring incomplete tenant binding", phone=mask_address(canonical))
            return Unregistered(canonical=canonical, reason="invalid_binding")

        return ResolvedTenant(canonical=canonical, tenant_id=tenant_id, user_id=user_id)

    async def _binding_from_user_record(self, canonical: str) -> Optional[dict]:
        """Accounts created outside the channel carry the phone on the user record."""
        users = await self.store.query(USERS, {"phoneNumber": canonical}, limit=2)
        if len(users) != 1:
            if len(users) > 1:
                logger.warning("Several users share a phone number, refusing to guess",
                               phone=mask_address(canonical))
            return None
        user = users[0]
        return {"organizationId": user.get("organizationId"), "userId": user.get("id")}

    @staticmethod
    def _is_usable_tenant(tenant_id: Optional[str]) -> bool:
        return bool(tenant_id) and tenant_id.strip().lower() not in SENTINEL_TENANT_IDS

    async def bind(self, canonical: str, tenant_id: str, user_id: str) -> TenantBinding:
        """
        Record the binding for ``canonical``.

        Raises:
            BusinessRuleException: If the address is already bound to a different
                organization, or the tenant id is not usable
        """
        if not self._is_usable_tenant(tenant_id):
            raise BusinessRuleException("Refusing to bind to an unusable organization id", rule_name="tenant_binding")

        existing = await self.store.get(BINDINGS, canonical)
        if existing:
            if existing.get("organizationId") != tenant_id:
                raise BusinessRuleException(
                    "This number is already linked to another organization", rule_name="tenant_binding"
                )
            return TenantBinding.model_validate(existing)

        binding = TenantBinding(canonical_address=canonical, tenant_id=tenant_id, user_id=user_id)
        await self.store.set(BINDINGS, canonical, binding.model_dump(mode="json", by_alias=True))
        log_business_event("tenant_bound", phone=mask_address(canonical), organization_id=tenant_id)
        return binding

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        users = await self.store.query(USERS, {"email": email.strip().lower()}, limit=2)
        return users[0] if len(users) == 1 else None
