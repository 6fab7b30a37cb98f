"""Main FastAPI application for the Clinical Gateway.

This module sets up the FastAPI application with all routes, middleware,
and exception handlers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinical_gateway.api.dependencies import close_platform_clients
from clinical_gateway.api.errors import register_exception_handlers
from clinical_gateway.api.logging_config import setup_logging
from clinical_gateway.api.middleware import CORRELATION_HEADER, setup_middleware
from clinical_gateway.api.routes import clinical, health, patient
from clinical_gateway.infrastructure.settings import settings

# Configure structured logging
setup_logging(use_json=settings.json_logs, log_level=settings.log_level, service=settings.app_name)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    logger.info(f"{settings.app_name} {settings.version} starting up ({settings.environment})...")
    logger.info("API documentation available at /docs")
    logger.info(f"Logging level: {settings.log_level}, JSON logs: {settings.json_logs}")
    yield
    # Shutdown
    await close_platform_clients()
    logger.info(f"{settings.app_name} shutting down...")


# Create FastAPI application
app = FastAPI(
    title="Clinical Gateway API",
    description="Identity-resolving gateway for patient clinical records held on the data platform",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_HEADER, "X-Process-Time", "Retry-After"],
)

# Setup custom middleware
setup_middleware(app)
register_exception_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(clinical.router)
app.include_router(patient.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Clinical Gateway API",
        "version": settings.version,
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinical_gateway.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
