"""
Record Validation Service

Flags records that are structurally incomplete or unclassifiable. Findings
are returned alongside computed metrics; they never stop a batch.

Core checks (always run, each independent, all severity error):
- patientCode: no patient identifier
- patientType: neither a first/repeat visit label nor a first-visit flag
- referralSource: no referral source
- treatmentCategory: a name containing ご相談 that no consultation mapping
  entry matches

Extended data-audit checks (opt-in via settings.extended_validation):
- patientAge: age 0 (warning; usually a cancelled booking)
- appointmentRoute, treatmentCategoryRaw, staff: missing (error)
"""

import logging
from typing import Iterable, List, Optional

from clinic_analytics.core.config import get_settings
from clinic_analytics.models.enums import ErrorSeverity
from clinic_analytics.models.schemas import CanonicalVisitRecord, RecordError
from clinic_analytics.services.consultation import (
    CONSULTATION_KEYWORD,
    find_consultation_mapping,
)

# Configure module logger
logger = logging.getLogger(__name__)

# =============================================================================
# Messages
# =============================================================================

MISSING_PATIENT_ID_MESSAGE: str = '患者コードまたはカルテNoが必須です'
MISSING_PATIENT_TYPE_MESSAGE: str = '初診再診の区分が必須です'
MISSING_REFERRAL_SOURCE_MESSAGE: str = '知ったきっかけが必須です'
UNMAPPED_CONSULTATION_MESSAGE: str = 'どの分類にも属さない施術が登録されました'

ZERO_AGE_MESSAGE: str = '年齢が0または空欄です（予約キャンセル等）'
MISSING_APPOINTMENT_ROUTE_MESSAGE: str = '予約経路（来院区分）が空欄です'
MISSING_TREATMENT_CATEGORY_MESSAGE: str = '施術カテゴリーが空欄です'
MISSING_STAFF_MESSAGE: str = '担当者が空欄です'


def _error(field: str, message: str, severity: ErrorSeverity = ErrorSeverity.ERROR) -> RecordError:
    return RecordError(field=field, message=message, severity=severity)


def validate_record(
    record: CanonicalVisitRecord,
    extended: bool = False
) -> List[RecordError]:
    """
    Validate a single normalized record.

    Args:
        record: The record to check
        extended: Also run the data-audit checks

    Returns:
        List of RecordError (empty when the record is valid). Never raises.
    """
    errors: List[RecordError] = []

    if not record.recordId:
        errors.append(_error('patientCode', MISSING_PATIENT_ID_MESSAGE))

    if not record.patientTypeRaw and record.isFirstVisit is None:
        errors.append(_error('patientType', MISSING_PATIENT_TYPE_MESSAGE))

    if not record.referralSource:
        errors.append(_error('referralSource', MISSING_REFERRAL_SOURCE_MESSAGE))

    consultation_name = record.treatmentNameRaw or record.treatmentCategoryRaw or ''
    if CONSULTATION_KEYWORD in consultation_name and find_consultation_mapping(consultation_name) is None:
        errors.append(_error('treatmentCategory', UNMAPPED_CONSULTATION_MESSAGE))

    if extended:
        if record.patientAge == 0:
            errors.append(_error('patientAge', ZERO_AGE_MESSAGE, ErrorSeverity.WARNING))
        if not record.appointmentRoute:
            errors.append(_error('appointmentRoute', MISSING_APPOINTMENT_ROUTE_MESSAGE))
        if not record.treatmentCategoryRaw:
            errors.append(_error('treatmentCategoryRaw', MISSING_TREATMENT_CATEGORY_MESSAGE))
        if not record.staff:
            errors.append(_error('staff', MISSING_STAFF_MESSAGE))

    return errors


def validate_batch(
    records: Iterable[CanonicalVisitRecord],
    extended: Optional[bool] = None
) -> List[RecordError]:
    """
    Validate every record, tagging findings with row number and patient id.

    Args:
        records: Normalized records
        extended: Run the data-audit checks (defaults to settings.extended_validation)

    Returns:
        All findings in record order
    """
    use_extended = get_settings().extended_validation if extended is None else extended

    errors: List[RecordError] = []
    checked = 0
    for record in records:
        checked += 1
        for error in validate_record(record, extended=use_extended):
            errors.append(error.model_copy(update={
                'rowNumber': record.rowNumber,
                'recordId': record.recordId,
            }))

    logger.info(f"Validated {checked} records: {len(errors)} findings")
    return errors
