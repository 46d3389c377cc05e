"""
Tests for tenant resolution.
"""
import pytest
from unittest.mock import AsyncMock

from fleetdesk.core.exceptions import BusinessRuleException, DocumentStoreError
from fleetdesk.models.session import ResolvedTenant, Unregistered
from fleetdesk.services.tenant_resolver import TenantResolver
from factories import OTHER_PHONE, OWNER_PHONE, seed_organization


class TestResolve:
    """Resolution always yields the bound organization or Unregistered."""

    @pytest.mark.asyncio
    async def test_bound_number_resolves(self, resolver, tenant):
        result = await resolver.resolve("08012345678")

        assert isinstance(result, ResolvedTenant)
        assert result.tenant_id == "org-1"
        assert result.user_id == "user-org-1"
        assert result.canonical == OWNER_PHONE

    @pytest.mark.asyncio
    async def test_every_spelling_resolves_to_same_tenant(self, resolver, tenant):
        results = [await resolver.resolve(raw) for raw in ("08012345678", "2348012345678", "+234 801 234 5678")]
        assert {r.tenant_id for r in results} == {"org-1"}

    @pytest.mark.asyncio
    async def test_unknown_number_is_unregistered(self, resolver, tenant):
        result = await resolver.resolve(OTHER_PHONE)

        assert isinstance(result, Unregistered)
        assert result.reason == "no_binding"

    @pytest.mark.asyncio
    async def test_falls_back_to_user_phone_number(self, resolver, store):
        await store.set("users", "user-9", {"organizationId": "org-9", "phoneNumber": OTHER_PHONE})

        result = await resolver.resolve(OTHER_PHONE)
        assert isinstance(result, ResolvedTenant)
        assert result.tenant_id == "org-9"

    @pytest.mark.asyncio
    async def test_shared_user_phone_is_not_guessed(self, resolver, store):
        await store.set("users", "u1", {"organizationId": "org-1", "phoneNumber": OTHER_PHONE})
        await store.set("users", "u2", {"organizationId": "org-2", "phoneNumber": OTHER_PHONE})

        assert isinstance(await resolver.resolve(OTHER_PHONE), Unregistered)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tenant_id", ["default", "demo", "", None, "  Shared "])
    async def test_sentinel_tenant_ids_fail_closed(self, resolver, store, tenant_id):
        await store.set("whatsapp_users", OTHER_PHONE, {"organizationId": tenant_id, "userId": "u1"})

        result = await resolver.resolve(OTHER_PHONE)
        assert isinstance(result, Unregistered)
        assert result.reason == "invalid_binding"

    @pytest.mark.asyncio
    async def test_binding_without_user_fails_closed(self, resolver, store):
        await store.set("whatsapp_users", OTHER_PHONE, {"organizationId": "org-1"})
        assert isinstance(await resolver.resolve(OTHER_PHONE), Unregistered)

    @pytest.mark.asyncio
    async def test_store_error_fails_closed(self):
        store = AsyncMock()
        store.get.side_effect = DocumentStoreError("timeout", operation="get")

        result = await TenantResolver(store).resolve(OWNER_PHONE)
        assert isinstance(result, Unregistered)
        assert result.reason == "lookup_failed"


class TestBind:
    """Test binding creation."""

    @pytest.mark.asyncio
    async def test_bind_creates_record(self, resolver, store):
        binding = await resolver.bind(OTHER_PHONE, "org-2", "user-2")

        record = await store.get("whatsapp_users", OTHER_PHONE)
        assert record["organizationId"] == "org-2"
        assert record["userId"] == "user-2"
        assert record["canonicalAddress"] == OTHER_PHONE
        assert binding.tenant_id == "org-2"

    @pytest.mark.asyncio
    async def test_rebinding_same_organization_is_noop(self, resolver, tenant):
        binding = await resolver.bind(OWNER_PHONE, "org-1", "user-org-1")
        assert binding.tenant_id == "org-1"

    @pytest.mark.asyncio
    async def test_rebinding_other_organization_refused(self, resolver, tenant):
        with pytest.raises(BusinessRuleException):
            await resolver.bind(OWNER_PHONE, "org-2", "user-2")

    @pytest.mark.asyncio
    async def test_sentinel_organization_refused(self, resolver):
        with pytest.raises(BusinessRuleException):
            await resolver.bind(OTHER_PHONE, "default", "user-2")


class TestFindUserByEmail:
    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, resolver, store):
        await seed_organization(store, "org-7", OTHER_PHONE)
        user = await resolver.find_user_by_email("  OWNER@org-7.ng ")
        assert user["id"] == "user-org-7"

    @pytest.mark.asyncio
    async def test_missing(self, resolver):
        assert await resolver.find_user_by_email("nobody@example.com") is None
