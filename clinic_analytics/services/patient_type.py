"""
Patient-Type Classification Service

Decides whether a visit belongs to the New (新規), Existing (既存) or Other
(その他) cohort.

Rules:
- A visit classified under the その他 main category is Other, whatever the
  patient's history. Piercing, product and anesthesia sales never count
  toward new/existing cohorts.
- Otherwise the visit is Existing when the same patient has at least one
  accounting entry paid strictly before the visit timestamp, and New when
  there is none. A first payment at the same instant as the visit (or later)
  keeps the visit New.
- A visit without a patient id cannot be joined to any history and is New.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from clinic_analytics.models.enums import MainCategory, PatientType
from clinic_analytics.models.schemas import (
    AccountingEntry,
    CanonicalVisitRecord,
    ClassifiedVisit,
    TreatmentCategory,
)
from clinic_analytics.services.treatment_classifier import classify_treatment

# Configure module logger
logger = logging.getLogger(__name__)


def classify_patient_type(
    record: CanonicalVisitRecord,
    category: TreatmentCategory,
    prior_accounting: Iterable[AccountingEntry]
) -> PatientType:
    """
    Classify a single visit.

    Args:
        record: The normalized visit
        category: Its treatment category
        prior_accounting: Accounting entries to search for earlier payments;
            entries for other patients are ignored

    Returns:
        PatientType
    """
    if category.main == MainCategory.OTHER:
        return PatientType.OTHER

    if not record.recordId:
        return PatientType.NEW

    for entry in prior_accounting:
        if entry.patientId == record.recordId and entry.paidAt < record.visitedAt:
            return PatientType.EXISTING
    return PatientType.NEW


def _earliest_payment_by_patient(
    accounting: Iterable[AccountingEntry]
) -> Dict[str, datetime]:
    earliest: Dict[str, datetime] = {}
    for entry in accounting:
        if not entry.patientId:
            continue
        current = earliest.get(entry.patientId)
        if current is None or entry.paidAt < current:
            earliest[entry.patientId] = entry.paidAt
    return earliest


def classify_visits(
    records: Iterable[CanonicalVisitRecord],
    accounting: Iterable[AccountingEntry]
) -> List[ClassifiedVisit]:
    """
    Run the single classification pass over a batch.

    Treatment category and patient type are computed once per record. Since
    a visit is Existing iff some payment precedes it, only each patient's
    earliest payment needs to be compared.

    Args:
        records: Normalized visits
        accounting: Every known accounting entry

    Returns:
        ClassifiedVisit list in input order
    """
    earliest = _earliest_payment_by_patient(accounting)
    counts: Dict[PatientType, int] = defaultdict(int)

    visits: List[ClassifiedVisit] = []
    for record in records:
        category = classify_treatment(record.treatmentCategoryRaw, record.treatmentNameRaw)

        if category.main == MainCategory.OTHER:
            patient_type = PatientType.OTHER
        else:
            first_paid: Optional[datetime] = earliest.get(record.recordId) if record.recordId else None
            if first_paid is not None and first_paid < record.visitedAt:
                patient_type = PatientType.EXISTING
            else:
                patient_type = PatientType.NEW

        counts[patient_type] += 1
        visits.append(ClassifiedVisit(record=record, category=category, patientType=patient_type))

    logger.info(
        f"Classified {len(visits)} visits: "
        f"{counts[PatientType.NEW]} new, {counts[PatientType.EXISTING]} existing, "
        f"{counts[PatientType.OTHER]} other"
    )
    return visits
