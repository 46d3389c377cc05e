"""
Tests for the document store implementations.
"""
import pytest
from unittest.mock import MagicMock, patch

from fleetdesk.core.config import Settings
from fleetdesk.core.exceptions import DocumentStoreError
from fleetdesk.services.document_store import (
    InMemoryDocumentStore,
    SupabaseDocumentStore,
    create_document_store,
)


class TestInMemoryDocumentStore:
    """Test the dictionary-backed store."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        await store.set("routes", "RTE-1", {"organizationId": "org-1", "status": "pending"})

        doc = await store.get("routes", "RTE-1")
        assert doc == {"organizationId": "org-1", "status": "pending", "id": "RTE-1"}

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get("routes", "nope") is None

    @pytest.mark.asyncio
    async def test_query_equality_filters_and_limit(self, store):
        await store.set("routes", "a", {"organizationId": "org-1", "status": "pending"})
        await store.set("routes", "b", {"organizationId": "org-1", "status": "completed"})
        await store.set("routes", "c", {"organizationId": "org-2", "status": "pending"})

        pending = await store.query("routes", {"organizationId": "org-1", "status": "pending"})
        assert [doc["id"] for doc in pending] == ["a"]
        assert len(await store.query("routes", {"status": "pending"}, limit=1)) == 1
        assert len(await store.query("routes")) == 3

    @pytest.mark.asyncio
    async def test_add_generates_id(self, store):
        doc_id = await store.add("notifications", {"organizationId": "org-1"})
        assert (await store.get("notifications", doc_id))["organizationId"] == "org-1"

    @pytest.mark.asyncio
    async def test_update_is_field_level(self, store):
        await store.set("drivers", "DRV-1", {"name": "Musa", "status": "available"})
        await store.update("drivers", "DRV-1", {"status": "on_route"})

        assert await store.get("drivers", "DRV-1") == {"name": "Musa", "status": "on_route", "id": "DRV-1"}

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        with pytest.raises(DocumentStoreError) as exc_info:
            await store.update("drivers", "ghost", {"status": "on_route"})
        assert exc_info.value.operation == "update"

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store):
        await store.set("clients", "CLT-1", {"tags": ["vip"]})
        doc = await store.get("clients", "CLT-1")
        doc["tags"].append("mutated")

        assert (await store.get("clients", "CLT-1"))["tags"] == ["vip"]

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set("invoices", "INV-1", {"status": "draft"})
        await store.delete("invoices", "INV-1")
        await store.delete("invoices", "INV-1")

        assert await store.get("invoices", "INV-1") is None


class TestSupabaseDocumentStore:
    """Test the Supabase-backed store against a mocked client."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.mark.asyncio
    async def test_get(self, client):
        table = client.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{"id": "org-1", "name": "Swift"}]
        )

        doc = await SupabaseDocumentStore(client).get("organizations", "org-1")

        assert doc["name"] == "Swift"
        client.table.assert_called_with("organizations")
        table.select.return_value.eq.assert_called_with("id", "org-1")

    @pytest.mark.asyncio
    async def test_query_chains_equality_filters(self, client):
        builder = client.table.return_value.select.return_value
        builder.eq.return_value = builder
        builder.execute.return_value = MagicMock(data=[])

        assert await SupabaseDocumentStore(client).query("routes", {"organizationId": "org-1", "status": "pending"}) == []
        assert builder.eq.call_count == 2

    @pytest.mark.asyncio
    async def test_update_missing_row_raises(self, client):
        client.table.return_value.update.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(DocumentStoreError):
            await SupabaseDocumentStore(client).update("drivers", "ghost", {"status": "on_route"})

    @pytest.mark.asyncio
    async def test_client_errors_become_document_store_errors(self, client):
        client.table.return_value.upsert.return_value.execute.side_effect = RuntimeError("connection reset")

        with pytest.raises(DocumentStoreError) as exc_info:
            await SupabaseDocumentStore(client).set("routes", "RTE-1", {"status": "pending"})
        assert exc_info.value.operation == "set"

    @pytest.mark.asyncio
    async def test_health_check_failure(self, client):
        client.table.return_value.select.return_value.limit.return_value.execute.side_effect = RuntimeError("down")
        assert await SupabaseDocumentStore(client).health_check() is False


class TestCreateDocumentStore:
    def test_unconfigured_uses_memory(self):
        store = create_document_store(Settings(supabase_url=None, supabase_key=None))
        assert isinstance(store, InMemoryDocumentStore)

    @patch("fleetdesk.services.document_store.create_client")
    def test_configured_uses_supabase(self, mock_create_client):
        store = create_document_store(Settings(supabase_url="https://x.supabase.co", supabase_key="key"))

        assert isinstance(store, SupabaseDocumentStore)
        mock_create_client.assert_called_once_with("https://x.supabase.co", "key")

    @patch("fleetdesk.services.document_store.create_client", side_effect=Exception("bad url"))
    def test_connection_failure_falls_back_to_memory(self, mock_create_client):
        store = create_document_store(Settings(supabase_url="https://x.supabase.co", supabase_key="key"))
        assert store.mode == "memory"
