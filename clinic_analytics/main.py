"""
FastAPI application entry point for the Clinic Analytics API.

Configures logging and CORS, registers the analytics router and starts the
ASGI server when run directly. The engine itself is synchronous and
stateless; there are no connections to open or close at startup.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinic_analytics import __version__
from clinic_analytics.api import api_router
from clinic_analytics.core.config import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    Logs the effective configuration on startup and a message on shutdown.
    """
    # Startup
    logger.info(f"{settings.app_name} starting")
    logger.info(
        f"Clinic timezone {settings.clinic_timezone}, "
        f"consultation rooms {settings.consultation_room_names}, "
        f"extended validation {'on' if settings.extended_validation else 'off'}"
    )

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description=(
        "Revenue and behavior analytics for multi-clinic cosmetic treatment data. "
        "Provides endpoints for period revenue reports, cross-sell transitions, "
        "holiday detection, repeat analysis and record validation."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinic_analytics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
