from __future__ import annotations

import logging
import sys
from datetime import timedelta
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sqlalchemy.orm import Session, sessionmaker

from . import __version__
from .config import Settings, get_settings
from .db.session import build_engine, build_session_factory
from .middleware import ACCESS_LOGGER_NAME, RequestLoggingMiddleware
from .routers import documents, health, waitlist
from .services.documents import DocumentRecordStore
from .services.storage import StorageGateway
from .services.uploads import UploadOrchestrator
from .services.waitlist import WaitlistService

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])
    logging.getLogger(ACCESS_LOGGER_NAME).setLevel(logging.INFO)


def configure_sentry(settings: Settings) -> None:
    dsn = str(settings.sentry_dsn or "").strip()
    if not dsn.lower().startswith(("http://", "https://")):
        return
    sentry_sdk.init(
        dsn=dsn,
        environment=settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[StorageGateway] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> FastAPI:
    """Build the API with explicitly constructed components.

    Storage configuration problems surface here, at start-up, rather than on
    the first upload request.
    """
    settings = settings or get_settings()
    configure_logging()
    configure_sentry(settings)

    if session_factory is None:
        session_factory = build_session_factory(build_engine(settings.database_url))
    if storage is None:
        storage = StorageGateway(settings.aws, url_ttl=timedelta(seconds=settings.upload_url_ttl_seconds))

    record_store = DocumentRecordStore(session_factory)

    app = FastAPI(title="Document Intake API", version=__version__)
    app.state.settings = settings
    app.state.record_store = record_store
    app.state.waitlist = WaitlistService(session_factory)
    app.state.orchestrator = UploadOrchestrator(
        storage,
        record_store,
        max_workers=settings.upload_fanout_workers,
    )

    app.add_middleware(RequestLoggingMiddleware)

    if settings.metrics_enabled:
        instrumentator = Instrumentator(should_group_status_codes=True, should_ignore_untemplated=True)
        instrumentator.instrument(app).expose(app, include_in_schema=False)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(health.router, tags=["health"])
    app.include_router(documents.router, prefix=settings.api_prefix, tags=["documents"])
    app.include_router(waitlist.router, prefix=settings.api_prefix, tags=["waitlist"])

    logger.info("Document intake API configured for %s", settings.environment)
    return app
