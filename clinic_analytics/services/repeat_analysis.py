"""
Repeat analysis for New patients.

Looks at New visits inside a trailing window of `months` months ending at
`as_of` and measures how many of those patients came back:

- totalPatients: New visits in the window (visits without a patient id are
  left out, as they cannot be followed)
- repeatPatients: those with a later visit on or before `as_of`
- repeatRate: repeatPatients / totalPatients in percent
- averageDaysToRepeat: mean whole days to the first later visit; same-day
  returns (0 days) are not counted
- repeatRevenue: lifetime payments of the repeat patients
"""

import logging
from datetime import date
from typing import Iterable, List

import pandas as pd

from clinic_analytics.models.enums import PatientType
from clinic_analytics.models.schemas import AccountingEntry, ClassifiedVisit, RepeatAnalysis
from clinic_analytics.services.revenue_metrics import AccountingIndex

# Configure module logger
logger = logging.getLogger(__name__)

SECONDS_PER_DAY: int = 24 * 60 * 60


def window_start(as_of: date, months: int) -> date:
    """First day of the trailing window (calendar-month arithmetic)."""
    return (pd.Timestamp(as_of) - pd.DateOffset(months=months)).date()


def compute_repeat_analysis(
    visits: Iterable[ClassifiedVisit],
    accounting: Iterable[AccountingEntry],
    as_of: date,
    months: int = 6
) -> RepeatAnalysis:
    """
    Compute repeat statistics.

    Args:
        visits: Classified visits (all history, not only the window)
        accounting: Every known accounting entry
        as_of: Last day considered
        months: Window length, typically 6 or 12

    Returns:
        RepeatAnalysis

    Raises:
        ValueError: If months is not positive
    """
    if months < 1:
        raise ValueError(f"months must be positive, got {months}")

    visit_list = [visit for visit in visits if visit.visit_date <= as_of]
    cutoff = window_start(as_of, months)
    index = AccountingIndex.build(accounting)

    cohort = [
        visit for visit in visit_list
        if visit.patientType == PatientType.NEW
        and visit.patient_id
        and visit.visit_date >= cutoff
    ]

    repeat_count = 0
    repeat_revenue = 0.0
    days_to_repeat: List[int] = []

    for visit in cohort:
        later = [
            other for other in visit_list
            if other.patient_id == visit.patient_id
            and other.record.visitedAt > visit.record.visitedAt
        ]
        if not later:
            continue

        repeat_count += 1
        repeat_revenue += index.ledger(visit.patient_id).total

        first_repeat = min(later, key=lambda other: other.record.visitedAt)
        elapsed = first_repeat.record.visitedAt - visit.record.visitedAt
        days = int(elapsed.total_seconds() // SECONDS_PER_DAY)
        if days > 0:
            days_to_repeat.append(days)

    total = len(cohort)
    logger.info(f"Repeat analysis ({months} months to {as_of}): {repeat_count}/{total} returned")

    return RepeatAnalysis(
        months=months,
        totalPatients=total,
        repeatPatients=repeat_count,
        repeatRate=(repeat_count / total) * 100 if total > 0 else 0.0,
        averageDaysToRepeat=sum(days_to_repeat) / len(days_to_repeat) if days_to_repeat else 0.0,
        repeatRevenue=repeat_revenue,
        averageRepeatRevenue=repeat_revenue / repeat_count if repeat_count > 0 else 0.0,
    )
