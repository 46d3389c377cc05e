"""
Pytest configuration and fixtures for FleetDesk.
"""
from datetime import datetime
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

from fastapi.testclient import TestClient

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.dependencies import get_conversation_service, get_document_store, get_messaging_client
from fleetdesk.flows.engine import FlowContext
from fleetdesk.flows.registry import build_flow_engine
from fleetdesk.main import app
from fleetdesk.services.action_executor import ActionExecutor
from fleetdesk.services.document_store import InMemoryDocumentStore
from fleetdesk.services.messaging import MessagingClient
from fleetdesk.services.session_store import SessionStore
from fleetdesk.services.tenant_resolver import TenantResolver

from factories import OWNER_PHONE, FakeClock, seed_organization


@pytest.fixture
def settings() -> Settings:
    return Settings(
        whatsapp_verify_token="verify-me",
        whatsapp_access_token="test-token",
        whatsapp_phone_number_id="1234567890",
        openai_api_key="sk-test",
        paystack_secret_key="sk_test_paystack",
        notifications_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 9, 0, 0))


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def bank_verifier() -> AsyncMock:
    verifier = AsyncMock()
    verifier.verify_account = AsyncMock(return_value=None)
    return verifier


@pytest.fixture
def executor(store, bank_verifier, settings, clock) -> ActionExecutor:
    return ActionExecutor(store, bank_verifier=bank_verifier, settings=settings, clock=clock)


@pytest.fixture
def resolver(store) -> TenantResolver:
    return TenantResolver(store)


@pytest.fixture
def session_store(store, clock) -> SessionStore:
    return SessionStore(store, clock=clock)


@pytest.fixture
def flow_engine():
    return build_flow_engine()


@pytest.fixture
def messaging() -> MagicMock:
    client = MagicMock()
    client.send_text = AsyncMock(return_value="wamid.out")
    client.mark_as_read = AsyncMock(return_value=True)
    client.download_media = AsyncMock(return_value=(b"audio", "audio/ogg"))
    return client


@pytest.fixture
async def tenant(store) -> dict:
    return await seed_organization(store, "org-1", OWNER_PHONE)


@pytest.fixture
def flow_context(executor) -> FlowContext:
    return FlowContext(canonical=OWNER_PHONE, executor=executor, tenant_id="org-1", message_id="wamid.1")


@pytest.fixture
def sample_headers() -> dict:
    """Sample request headers with correlation ID."""
    return {
        "X-Correlation-ID": "test-correlation-123",
        "Content-Type": "application/json",
    }


@pytest.fixture
def text_event() -> Generator[dict, None, None]:
    """A channel webhook body carrying one text message."""
    yield {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA-1",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "contacts": [{"wa_id": "2348012345678", "profile": {"name": "Ada"}}],
                    "messages": [{
                        "from": "2348012345678",
                        "id": "wamid.abc",
                        "timestamp": "1760778000",
                        "type": "text",
                        "text": {"body": "show my routes"},
                    }],
                },
            }],
        }],
    }


@pytest.fixture
def conversation_service() -> MagicMock:
    service = MagicMock()
    service.handle_message = AsyncMock(return_value="ok")
    return service


@pytest.fixture
def client(settings, store, conversation_service) -> Generator[TestClient, None, None]:
    """Test client with settings, store and conversation handling replaced."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_messaging_client] = lambda: MessagingClient(settings)
    app.dependency_overrides[get_conversation_service] = lambda: conversation_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_prefix() -> str:
    return "/api/v1"
