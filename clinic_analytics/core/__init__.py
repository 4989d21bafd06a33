"""
Core infrastructure package.

Provides configuration management via pydantic-settings. Re-exported here so
other modules can write:

    from clinic_analytics.core import get_settings
"""

from clinic_analytics.core.config import Settings, get_settings

__all__ = [
    'Settings',
    'get_settings',
]
