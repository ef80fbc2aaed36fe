"""
Complaint Service - FastAPI Application

Records customer complaints about products, deduplicated per complainant and
product, with the submitter's country resolved from their IP address.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from complaints.core.config import Settings, get_settings
from complaints.core.database import init_db, close_db, get_session_factory
from complaints.core.errors import setup_exception_handlers
from complaints.core.logging_config import request_id_var
from complaints.routers.complaints import router as complaints_router
from complaints.services.complaint_service import ComplaintService
from complaints.services.complaint_store import ComplaintStore, create_store
from complaints.services.geolocation import GeoLocationClient

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    from complaints.core.logging_config import setup_logging as configure_logging
    configure_logging(
        level=settings.log_level.upper(),
        json_format=settings.log_json_format,
        log_file=Path(settings.log_file) if settings.log_file else None,
    )


# =============================================================================
# Service Wiring
# =============================================================================

def build_complaint_service(
    settings: Settings,
    store: Optional[ComplaintStore] = None,
    geolocation: Optional[GeoLocationClient] = None,
) -> ComplaintService:
    """Assemble the complaint service from settings, with optional overrides."""
    if store is None:
        store = create_store(
            settings.store_backend,
            get_session_factory() if settings.store_backend == "sql" else None,
        )
    if geolocation is None:
        geolocation = GeoLocationClient(settings)
    return ComplaintService(store, geolocation, settings)


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    if settings.store_backend == "sql":
        await init_db()
        logger.info("Database ready")

    service = build_complaint_service(settings)
    app.state.complaint_service = service
    logger.info("%s v%s started", settings.app_name, settings.app_version)

    try:
        yield
    finally:
        await service.geolocation.aclose()
        if settings.store_backend == "sql":
            await close_db()
        logger.info("%s stopped", settings.app_name)


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.
    Creates and configures the FastAPI application.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.enable_docs else None,
        redoc_url="/api/redoc" if settings.enable_docs else None,
        openapi_url="/api/openapi.json" if settings.enable_docs else None,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware: tags every log record of the request
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    setup_exception_handlers(app)

    app.include_router(complaints_router)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.app_name}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("complaints.main:app", host=settings.host, port=settings.port, reload=settings.debug)
