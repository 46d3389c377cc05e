"""
Dependency injection for FastAPI application.

Every collaborator is built once per process and shared, so the webhook
handler and the notification scheduler see the same store, session locks
and circuit breakers.
"""
from datetime import timedelta
from functools import lru_cache

from fleetdesk.core.config import get_settings
from fleetdesk.flows.engine import FlowEngine
from fleetdesk.flows.registry import build_flow_engine
from fleetdesk.services.action_executor import ActionExecutor
from fleetdesk.services.bank_verification import BankVerificationClient
from fleetdesk.services.conversation import ConversationService
from fleetdesk.services.document_store import DocumentStore, create_document_store
from fleetdesk.services.messaging import MessagingClient
from fleetdesk.services.notification_scheduler import NotificationScheduler
from fleetdesk.services.reasoning import ReasoningClient
from fleetdesk.services.session_store import SessionStore
from fleetdesk.services.tenant_resolver import TenantResolver
from fleetdesk.services.tool_orchestrator import ToolOrchestrator
from fleetdesk.services.transcription import TranscriptionService


@lru_cache()
def get_document_store() -> DocumentStore:
    return create_document_store(get_settings())


@lru_cache()
def get_messaging_client() -> MessagingClient:
    return MessagingClient(get_settings())


@lru_cache()
def get_reasoning_client() -> ReasoningClient:
    return ReasoningClient(settings=get_settings())


@lru_cache()
def get_transcription_service() -> TranscriptionService:
    reasoning = get_reasoning_client()
    return TranscriptionService(get_messaging_client(), client=reasoning.client, settings=get_settings())


@lru_cache()
def get_action_executor() -> ActionExecutor:
    settings = get_settings()
    return ActionExecutor(get_document_store(), BankVerificationClient(settings), settings)


@lru_cache()
def get_tenant_resolver() -> TenantResolver:
    return TenantResolver(get_document_store(), get_settings().country_calling_code)


@lru_cache()
def get_session_store() -> SessionStore:
    settings = get_settings()
    return SessionStore(
        get_document_store(),
        reasoning_idle=timedelta(minutes=settings.reasoning_session_idle_minutes),
        registration_idle=timedelta(minutes=settings.registration_session_idle_minutes),
        max_turns=settings.history_max_turns,
    )


@lru_cache()
def get_flow_engine() -> FlowEngine:
    return build_flow_engine()


@lru_cache()
def get_tool_orchestrator() -> ToolOrchestrator:
    return ToolOrchestrator(get_reasoning_client(), get_action_executor(), get_settings())


@lru_cache()
def get_conversation_service() -> ConversationService:
    """Get the conversation service with all collaborators wired."""
    return ConversationService(
        store=get_document_store(),
        resolver=get_tenant_resolver(),
        sessions=get_session_store(),
        flows=get_flow_engine(),
        orchestrator=get_tool_orchestrator(),
        executor=get_action_executor(),
        messaging=get_messaging_client(),
        transcription=get_transcription_service(),
        settings=get_settings(),
    )


@lru_cache()
def get_notification_scheduler() -> NotificationScheduler:
    return NotificationScheduler(
        get_document_store(), get_action_executor(), get_messaging_client(), get_settings()
    )
