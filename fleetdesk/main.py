"""Main FastAPI application for the FleetDesk conversational service."""

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fleetdesk.api.health import router as health_router
from fleetdesk.api.webhook import router as webhook_router
from fleetdesk.core.config import get_settings
from fleetdesk.core.dependencies import get_document_store, get_notification_scheduler
from fleetdesk.core.exceptions import BaseAPIException
from fleetdesk.core.logging import get_logger, setup_logging
from fleetdesk.core.middleware import CorrelationIDMiddleware

# Get settings
settings = get_settings()

# Initialize logging
setup_logging(settings.log_level)
logger = get_logger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="FleetDesk",
    description="WhatsApp assistant for logistics businesses: onboarding, fleet records, invoices and analytics",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(CorrelationIDMiddleware)

# CORS middleware
if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include API routers
app.include_router(webhook_router, tags=["webhook"])
app.include_router(health_router, prefix="/api/v1", tags=["health"])


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    logger.warning("API error", path=request.url.path, status_code=exc.status_code, error_code=exc.error_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    app.state.start_time = time.time()
    logger.info("Starting FleetDesk", version=settings.service_version, environment=settings.environment)

    store = get_document_store()
    store_healthy = await store.health_check()
    if not store_healthy:
        logger.warning("Document store health check failed on startup", store_mode=store.mode)

    if settings.notifications_enabled:
        await get_notification_scheduler().start()

    logger.info("Service startup complete", store_mode=store.mode, store_healthy=store_healthy)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down FleetDesk")
    await get_notification_scheduler().stop()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fleetdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
