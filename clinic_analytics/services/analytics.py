"""
Analytics pipeline.

Runs the full engine over one request's raw batch:

    raw records -> normalize -> exclusions -> accounting -> classify
        -> period metrics, cross-sell transitions, holiday calendar
        -> record errors (dropped rows + validation findings)

Every request owns its own values; nothing is cached between requests.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, List, Optional, Sequence

from clinic_analytics.core.config import Settings, get_settings
from clinic_analytics.models.enums import ErrorSeverity, TransitionAxis
from clinic_analytics.models.schemas import (
    AccountingEntry,
    AnalyticsReport,
    CanonicalVisitRecord,
    ClassifiedVisit,
    RecordError,
)
from clinic_analytics.services.consultation import should_exclude_record
from clinic_analytics.services.cross_sell import build_transitions
from clinic_analytics.services.holidays import detect_holidays
from clinic_analytics.services.normalizer import (
    build_accounting_entries,
    normalize_accounting_entry,
    normalize_batch,
)
from clinic_analytics.services.patient_type import classify_visits
from clinic_analytics.services.revenue_metrics import compute_period_metrics
from clinic_analytics.services.validation import validate_batch

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class PreparedBatch:
    """
    A raw batch after normalization and classification.

    Attributes:
        raw_count: Raw records received
        records: Records that normalized and survived the exclusion switches
        accounting: Accounting entries (supplied or derived from line items)
        visits: Classified visits, one per record
        errors: Dropped-row warnings and validation findings
        normalized_count: Records that normalized, before exclusions
        normalized: Every record that normalized, before exclusions
    """
    raw_count: int
    records: List[CanonicalVisitRecord]
    accounting: List[AccountingEntry]
    visits: List[ClassifiedVisit]
    errors: List[RecordError] = field(default_factory=list)
    normalized_count: int = 0
    normalized: List[CanonicalVisitRecord] = field(default_factory=list)

    def visits_between(self, start: date, end: date) -> List[ClassifiedVisit]:
        return [visit for visit in self.visits if start <= visit.visit_date <= end]

    def records_between(self, start: date, end: date) -> List[CanonicalVisitRecord]:
        return [record for record in self.records if start <= record.recordDate <= end]


def filter_records(
    records: Iterable[CanonicalVisitRecord],
    settings: Optional[Settings] = None
) -> List[CanonicalVisitRecord]:
    """Apply the zero-age and cancelled exclusion switches."""
    settings = settings or get_settings()
    kept: List[CanonicalVisitRecord] = []
    for record in records:
        if settings.exclude_zero_age_records and should_exclude_record(record):
            continue
        if settings.exclude_cancelled_records and record.isCancelled:
            continue
        kept.append(record)
    return kept


def _normalize_accounting(
    raw_accounting: Sequence[Any],
    timezone: str
) -> List[AccountingEntry]:
    entries: List[AccountingEntry] = []
    for raw in raw_accounting:
        entry = normalize_accounting_entry(raw, timezone=timezone)
        if entry is not None:
            entries.append(entry)
    skipped = len(raw_accounting) - len(entries)
    if skipped:
        logger.warning(f"Skipped {skipped} accounting rows without a parseable payment date")
    return entries


def prepare_batch(
    raw_records: Sequence[Any],
    raw_accounting: Optional[Sequence[Any]] = None,
    settings: Optional[Settings] = None,
    first_row_number: int = 1,
    validate: bool = True
) -> PreparedBatch:
    """
    Normalize, filter and classify a raw batch.

    Args:
        raw_records: Raw visit records
        raw_accounting: Raw accounting rows; when omitted, accounting entries
            are derived from the visits' payment line items
        settings: Settings to use (defaults to get_settings())
        first_row_number: Row number of the first raw record
        validate: Run the record validator

    Returns:
        PreparedBatch
    """
    settings = settings or get_settings()
    timezone = settings.clinic_timezone

    normalized, errors = normalize_batch(raw_records, timezone=timezone, first_row_number=first_row_number)
    records = filter_records(normalized, settings)
    if len(records) != len(normalized):
        logger.info(f"Excluded {len(normalized) - len(records)} records (zero age / cancelled)")

    if raw_accounting is not None:
        accounting = _normalize_accounting(raw_accounting, timezone)
    else:
        accounting = build_accounting_entries(records)

    visits = classify_visits(records, accounting)

    if validate:
        errors = errors + validate_batch(normalized, extended=settings.extended_validation)

    return PreparedBatch(
        raw_count=len(raw_records),
        records=records,
        accounting=accounting,
        visits=visits,
        errors=errors,
        normalized_count=len(normalized),
        normalized=normalized,
    )


def build_analytics_report(
    raw_records: Sequence[Any],
    start: date,
    end: date,
    raw_accounting: Optional[Sequence[Any]] = None,
    axis: TransitionAxis = TransitionAxis.SUB,
    settings: Optional[Settings] = None,
    first_row_number: int = 1
) -> AnalyticsReport:
    """
    Run the whole pipeline for the inclusive range [start, end].

    Revenue uses every accounting entry (lifetime totals reach outside the
    range); transitions and the holiday calendar only use visits inside it.

    Raises:
        ValueError: If start is after end
    """
    if start > end:
        raise ValueError(f"start date {start} is after end date {end}")

    settings = settings or get_settings()
    batch = prepare_batch(
        raw_records,
        raw_accounting=raw_accounting,
        settings=settings,
        first_row_number=first_row_number,
    )

    period = compute_period_metrics(batch.visits, batch.accounting, start, end)
    transitions = build_transitions(
        batch.visits_between(start, end),
        axis=axis,
        top_n=settings.transition_top_n,
    )
    calendar = detect_holidays(batch.records_between(start, end))

    warnings = sum(1 for error in batch.errors if error.severity == ErrorSeverity.WARNING)
    logger.info(
        f"Report {start}..{end}: {batch.raw_count} raw, {batch.normalized_count} normalized, "
        f"{len(batch.errors) - warnings} errors, {warnings} warnings"
    )

    return AnalyticsReport(
        startDate=start,
        endDate=end,
        rawRecordCount=batch.raw_count,
        recordCount=batch.normalized_count,
        droppedRecordCount=batch.raw_count - batch.normalized_count,
        periodMetrics=period,
        transitions=transitions,
        holidays=calendar,
        errors=batch.errors,
    )
