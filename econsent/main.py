"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from econsent import __version__
from econsent.api.v1.router import api_router
from econsent.core.config import settings
from econsent.core.logging import setup_logging
from econsent.db.init_db import create_tables
from econsent.protocols.loader import load_protocol
from econsent.services.workflow import WorkflowRegistry
from econsent.workflow.clock import AsyncioClock

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting eConsent API (env={settings.env})")

    if settings.init_db_on_startup and not settings.is_prod:
        logger.info("Initializing database...")
        await create_tables()

    protocol = load_protocol(settings.protocol_file)
    logger.info(
        f"Loaded protocol {protocol.id} "
        f"({protocol.total_pages} pages, {len(protocol.checklist)} statements)"
    )
    app.state.registry = WorkflowRegistry(AsyncioClock(), protocol, settings)

    yield

    # Shutdown
    app.state.registry.close_all()
    logger.info("Shutting down eConsent API")


app = FastAPI(
    title="eConsent API",
    description="Electronic informed consent workflow for clinical studies",
    version=__version__,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# CORS middleware (configure appropriately for production)
if settings.is_dev:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "service": "eConsent API",
        "version": __version__,
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
