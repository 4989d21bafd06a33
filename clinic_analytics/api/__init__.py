"""
Clinic analytics API package initialization.

This package contains the FastAPI router modules:
- analytics: reports, cross-sell, holidays, repeat analysis, validation and taxonomy
"""

from fastapi import APIRouter

# Import router modules
from clinic_analytics.api.analytics import router as analytics_router

# Create main API router
api_router = APIRouter()

# analytics router has its own prefix
api_router.include_router(analytics_router)

__all__ = [
    "api_router",
    "analytics_router",
]
