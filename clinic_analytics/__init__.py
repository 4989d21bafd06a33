"""
Clinic Analytics Package.

Revenue and patient-behavior analytics engine for a multi-clinic
cosmetic-treatment business, with a thin FastAPI surface.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration
    - models: Pydantic schemas and enums
    - services: Normalization, classification and aggregation services
"""

__version__ = "1.0.0"
