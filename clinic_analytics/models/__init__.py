"""
Package initialization file for clinic analytics models.

Exports all Pydantic schemas and enumerations from schemas.py and enums.py so
other modules can import data models without knowing the internal layout.

Usage:
    from clinic_analytics.models import (
        CanonicalVisitRecord,
        ClassifiedVisit,
        PatientType,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from clinic_analytics.models.enums import (
    MainCategory,
    Specialty,
    PatientType,
    ErrorSeverity,
    TransitionAxis,
    BreakdownDimension,
)

# =============================================================================
# Schemas
# =============================================================================

from clinic_analytics.models.schemas import (
    # Canonical records
    PaymentLineItem,
    CanonicalVisitRecord,
    AccountingEntry,
    # Classification
    ConsultationMapping,
    TreatmentCategory,
    ClassifiedVisit,
    # Revenue metrics
    PatientRevenue,
    CategoryRevenue,
    DailyMetrics,
    PeriodMetrics,
    AnnualRevenueCell,
    # Cross-sell
    TransitionMatrix,
    TransitionCombo,
    CrossSellTransitions,
    # Calendar
    HolidayEntry,
    HolidayStatistics,
    HolidayCalendar,
    # Validation and ingestion
    RecordError,
    ValidationError,
    IngestionResult,
    # Reports
    RepeatAnalysis,
    AnalyticsReport,
)

__all__ = [
    # =========================================================================
    # Enums
    # =========================================================================
    "MainCategory",
    "Specialty",
    "PatientType",
    "ErrorSeverity",
    "TransitionAxis",
    "BreakdownDimension",

    # =========================================================================
    # Schemas - Canonical Records
    # =========================================================================
    "PaymentLineItem",
    "CanonicalVisitRecord",
    "AccountingEntry",

    # =========================================================================
    # Schemas - Classification
    # =========================================================================
    "ConsultationMapping",
    "TreatmentCategory",
    "ClassifiedVisit",

    # =========================================================================
    # Schemas - Revenue Metrics
    # =========================================================================
    "PatientRevenue",
    "CategoryRevenue",
    "DailyMetrics",
    "PeriodMetrics",
    "AnnualRevenueCell",

    # =========================================================================
    # Schemas - Cross-Sell
    # =========================================================================
    "TransitionMatrix",
    "TransitionCombo",
    "CrossSellTransitions",

    # =========================================================================
    # Schemas - Calendar
    # =========================================================================
    "HolidayEntry",
    "HolidayStatistics",
    "HolidayCalendar",

    # =========================================================================
    # Schemas - Validation and Ingestion
    # =========================================================================
    "RecordError",
    "ValidationError",
    "IngestionResult",

    # =========================================================================
    # Schemas - Reports
    # =========================================================================
    "RepeatAnalysis",
    "AnalyticsReport",
]
