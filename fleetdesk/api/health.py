"""
Health check endpoint.
"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.dependencies import get_document_store, get_messaging_client
from fleetdesk.core.logging import get_logger
from fleetdesk.services.document_store import DocumentStore
from fleetdesk.services.messaging import MessagingClient

router = APIRouter()
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    service_name: str
    uptime_seconds: float
    timestamp: datetime
    store_mode: str
    store_healthy: bool
    circuit_breakers: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_document_store),
    messaging: MessagingClient = Depends(get_messaging_client),
):
    """
    Basic health check endpoint.

    Reports ``degraded`` when the document store is unreachable or the
    channel circuit is open.
    """
    start_time = getattr(request.app.state, "start_time", time.time())
    store_healthy = await store.health_check()
    channel_breaker = messaging.circuit_breaker.get_status()

    healthy = store_healthy and channel_breaker["state"] != "open"
    response = HealthResponse(
        status="healthy" if healthy else "degraded",
        version=settings.service_version,
        service_name=settings.service_name,
        uptime_seconds=time.time() - start_time,
        timestamp=datetime.utcnow(),
        store_mode=store.mode,
        store_healthy=store_healthy,
        circuit_breakers={messaging.service_name: channel_breaker},
    )
    logger.info("Health check completed", status=response.status, store_mode=store.mode)
    return response
