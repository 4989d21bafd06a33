"""
Clinic Analytics Services Module

Business logic for the revenue and behavior analytics engine. Each service is
stateless: explicit values in, immutable result models out.

Services:
- normalizer: raw record shapes -> CanonicalVisitRecord, accounting entries
- consultation: consultation mapping table and consultation helpers
- treatment_classifier: (main, sub, procedure) taxonomy classification
- patient_type: New / Existing / Other cohort classification
- revenue_metrics: daily, period and annual revenue aggregation
- cross_sell: first-visit category transition matrices
- holidays: operating calendar inferred from record presence
- validation: record-level data quality findings
- ingestion: CSV and clinic API batch reading
- repeat_analysis: repeat behaviour of New patients
- analytics: the end-to-end pipeline used by the API layer
"""

# =============================================================================
# Normalizer Exports
# =============================================================================

from clinic_analytics.services.normalizer import (
    normalize_record,
    normalize_batch,
    normalize_accounting_entry,
    build_accounting_entries,
    FIELD_ALIASES,
    DATE_FIELD_GROUPS,
)

# =============================================================================
# Classification Exports
# =============================================================================

from clinic_analytics.services.consultation import (
    CONSULTATION_MAPPINGS,
    find_consultation_mapping,
    is_consultation_room,
    is_consultation_only,
    is_consultation_to_treatment,
    should_exclude_record,
)

from clinic_analytics.services.treatment_classifier import (
    TREATMENT_TAXONOMY,
    classify_treatment,
    get_taxonomy_hierarchy,
)

from clinic_analytics.services.patient_type import (
    classify_patient_type,
    classify_visits,
)

# =============================================================================
# Aggregation Exports
# =============================================================================

from clinic_analytics.services.revenue_metrics import (
    compute_daily_metrics,
    compute_period_metrics,
    compute_annual_breakdown,
    annual_breakdown_as_dict,
)

from clinic_analytics.services.cross_sell import build_transitions

from clinic_analytics.services.holidays import (
    detect_holidays,
    get_holiday_statistics,
)

from clinic_analytics.services.repeat_analysis import compute_repeat_analysis

# =============================================================================
# Validation and Ingestion Exports
# =============================================================================

from clinic_analytics.services.validation import (
    validate_record,
    validate_batch,
)

from clinic_analytics.services.ingestion import (
    parse_csv_records,
    parse_accounting_csv,
    extract_api_records,
    build_ingestion_result,
)

# =============================================================================
# Pipeline Exports
# =============================================================================

from clinic_analytics.services.analytics import (
    PreparedBatch,
    prepare_batch,
    build_analytics_report,
)

__all__ = [
    # Normalizer
    'normalize_record',
    'normalize_batch',
    'normalize_accounting_entry',
    'build_accounting_entries',
    'FIELD_ALIASES',
    'DATE_FIELD_GROUPS',
    # Classification
    'CONSULTATION_MAPPINGS',
    'find_consultation_mapping',
    'is_consultation_room',
    'is_consultation_only',
    'is_consultation_to_treatment',
    'should_exclude_record',
    'TREATMENT_TAXONOMY',
    'classify_treatment',
    'get_taxonomy_hierarchy',
    'classify_patient_type',
    'classify_visits',
    # Aggregation
    'compute_daily_metrics',
    'compute_period_metrics',
    'compute_annual_breakdown',
    'annual_breakdown_as_dict',
    'build_transitions',
    'detect_holidays',
    'get_holiday_statistics',
    'compute_repeat_analysis',
    # Validation and ingestion
    'validate_record',
    'validate_batch',
    'parse_csv_records',
    'parse_accounting_csv',
    'extract_api_records',
    'build_ingestion_result',
    # Pipeline
    'PreparedBatch',
    'prepare_batch',
    'build_analytics_report',
]
