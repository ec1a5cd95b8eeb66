"""
FastAPI Application Entry Point.

This is the main application file for the Trip Dispatch Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from backend.app.core.config import settings
from backend.app.core.logging_config import configure_logging
from backend.app.core.observability import ObservabilityMiddleware
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, AsyncSessionLocal
from backend.app.db.base import Base
from backend.app.domain.dispatch.status_reconciler import TripStatusReconciler, TripStatusWorker
from backend.app.services.fiscal_documents import FacturapiClient
from backend.app.services.object_storage import LocalObjectStorage
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Opens the fiscal service client and the document storage.
    3. Starts the trip status worker when enabled.
    4. Stops the worker and closes the client on shutdown.
    """
    configure_logging()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.fiscal_service = FacturapiClient.from_settings()
    app.state.object_storage = LocalObjectStorage.from_settings()

    worker = None
    if settings.reconciler_enabled:
        worker = TripStatusWorker(
            TripStatusReconciler(AsyncSessionLocal),
            interval_seconds=settings.reconciler_interval_seconds,
        )
        worker.start()
    else:
        logger.info("Trip status worker disabled, run the cron entrypoint instead")

    yield

    if worker is not None:
        await worker.stop()
    await app.state.fiscal_service.aclose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Trip dispatch and invoicing backend",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")

# Stored invoice PDFs and XMLs
app.mount("/files", StaticFiles(directory=settings.storage_root, check_dir=False), name="files")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Trip Dispatch Backend API",
        "docs": "/docs",
        "health": "/health",
    }
