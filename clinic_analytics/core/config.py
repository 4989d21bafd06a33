"""
Settings and environment management module for the clinic analytics service.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development
- Singleton pattern via @lru_cache for efficient access

Environment Variables:
- APP_NAME: Display name used by the FastAPI application
- CLINIC_TIMEZONE: Time zone that naive clinic timestamps are expressed in (default: Asia/Tokyo)
- CONSULTATION_ROOM_NAMES: JSON list of room names that denote consultation-only slots
- EXCLUDE_ZERO_AGE_RECORDS: Drop records whose patient age resolves to 0 (cancelled bookings)
- EXCLUDE_CANCELLED_RECORDS: Drop records flagged as cancelled
- TRANSITION_TOP_N: Number of top cross-sell combinations to report
- EXTENDED_VALIDATION: Add the data-audit checks (age, staff, route) to record validation
- LOG_LEVEL: Root logging level

Usage:
    from clinic_analytics.core.config import get_settings

    settings = get_settings()
    tz = settings.clinic_timezone
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Name reported by the API root endpoint.
        clinic_timezone: IANA zone used to convert offset-aware timestamps to
            the clinic-local naive timestamps used for all date comparisons.
        consultation_room_names: Rooms that only ever host consultations.
        exclude_zero_age_records: Whether age-0 records are dropped before analysis.
        exclude_cancelled_records: Whether cancelled records are dropped before analysis.
        transition_top_n: How many cross-sell combinations to list per matrix.
        extended_validation: Whether validation adds the data-audit checks.
        cors_origins: Origins allowed by the CORS middleware.
        log_level: Root logging level.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    app_name: str = 'Clinic Analytics API'

    # =========================================================================
    # Record interpretation
    # =========================================================================

    # Offset-aware API timestamps (e.g. 2024-01-10T01:00:00Z) are shifted into
    # this zone and then made naive so they compare with CSV dates.
    clinic_timezone: str = 'Asia/Tokyo'

    # Reservation rooms used exclusively for consultations
    consultation_room_names: List[str] = ['診察予約1', '診察予約2']

    # Age 0 marks bookings that never turned into a visit (cancellations etc.)
    exclude_zero_age_records: bool = False

    exclude_cancelled_records: bool = False

    # =========================================================================
    # Report shaping
    # =========================================================================

    transition_top_n: int = 12

    extended_validation: bool = False

    # =========================================================================
    # Service
    # =========================================================================

    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]

    log_level: str = 'INFO'


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The application settings instance with all configuration values.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
