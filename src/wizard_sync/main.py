"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan wiring of the sync engine, the health routes and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.wizard_sync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.wizard_sync.api.v1 import health
from src.wizard_sync.api.v1.router import router as v1_router
from src.wizard_sync.config import Settings, get_settings
from src.wizard_sync.core.database import close_db, get_session, init_db
from src.wizard_sync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.wizard_sync.credentials.refresher import CredentialRefresher
from src.wizard_sync.onboarding.repository import (
    ConnectionRepository,
    SyncRunRepository,
    WizardRepository,
)
from src.wizard_sync.storage.client import SupabaseStorageClient
from src.wizard_sync.sync.executor import SyncExecutor
from src.wizard_sync.sync.queue import SyncQueue
from src.wizard_sync.sync.recorder import RunRecorder
from src.wizard_sync.sync.service import WizardSyncService


def build_sync_queue(app: FastAPI, settings: Settings) -> SyncQueue:
    """Wire repositories, storage, refresher and service into a SyncQueue.

    Everything is stored on ``app.state`` for the route dependencies.
    """
    wizards = WizardRepository(get_session)
    connections = ConnectionRepository(get_session)
    runs = SyncRunRepository(get_session)

    storage = SupabaseStorageClient(
        url=settings.SUPABASE_URL,
        service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        bucket=settings.STORAGE_BUCKET,
    )
    service = WizardSyncService(
        wizards=wizards,
        connections=connections,
        recorder=RunRecorder(runs, wizards),
        executor=SyncExecutor(storage),
        refresher=CredentialRefresher(),
        settings=settings,
    )
    queue = SyncQueue(service.run_sync, coalesce=settings.SYNC_COALESCE_DUPLICATES)

    app.state.wizard_repository = wizards
    app.state.sync_run_repository = runs
    app.state.sync_service = service
    app.state.sync_queue = queue
    return queue


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and the sync queue; close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    queue = build_sync_queue(app, settings)
    if not settings.oauth_refresh_configured:
        log.warning("startup.oauth_refresh_disabled")
    log.info("startup.sync_queue_initialized", coalesce=settings.SYNC_COALESCE_DUPLICATES)

    yield

    await queue.close()
    log.info("shutdown.sync_queue_closed")
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Wizard Sync API",
        version="0.1.0",
        description="Onboarding wizard to CRM synchronisation service",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(health.router)
    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
