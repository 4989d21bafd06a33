"""
Revenue metrics aggregation service.

Computes per-day and per-period revenue for classified visits from the
linked accounting entries.

Three per-patient averages are produced and must not be conflated:
- sameDayNewAverage = Σ same-day payments of New visits / #New visits
- newAverage = Σ all payments ever linked to New patients / #New visits
  (advance payments plus remaining balances, including future ones)
- existingAverage = Σ all payments ever linked to Existing patients / #Existing visits

Denominators only count visits in the day/period being computed. A visit
whose patient has no accounting entries contributes 0 to the numerator but
still counts in the denominator. Empty denominators yield 0.

Category breakdown:
- New/Existing visits contribute their totalAmount
- Other visits contribute their sameDayAmount
- Keyed by the structured (main, sub) tuple

Period aggregation walks every calendar day of [start, end] inclusive,
concatenates the daily lists and sums the totals, then recomputes the
averages over the full period lists instead of averaging daily averages.

Annual breakdown:
- Sums amountWithTax per (group, year) for the clinic, category or referral
  source dimension with a pandas group-by
- Exposed as AnnualRevenueCell values; the flat dict form keys each cell as
  "{group}|{year}"
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from clinic_analytics.models.enums import BreakdownDimension, MainCategory, PatientType
from clinic_analytics.models.schemas import (
    AccountingEntry,
    AnnualRevenueCell,
    CategoryRevenue,
    ClassifiedVisit,
    DailyMetrics,
    PatientRevenue,
    PeriodMetrics,
)

# Configure module logger
logger = logging.getLogger(__name__)

UNKNOWN_GROUP: str = '不明'

CategoryKey = Tuple[MainCategory, str]


# =============================================================================
# Accounting Index
# =============================================================================


@dataclass
class PatientLedger:
    """
    Lifetime payment totals for one patient.

    Attributes:
        total: Sum of every linked entry (advance + remaining)
        advance: Sum of advance-payment entries
        remaining: Sum of non-advance entries
    """
    total: float = 0.0
    advance: float = 0.0
    remaining: float = 0.0


@dataclass
class AccountingIndex:
    """Accounting entries indexed for per-visit lookups."""
    ledgers: Dict[str, PatientLedger]
    by_day: Dict[date, float]
    by_patient_day: Dict[Tuple[str, date], float]

    @classmethod
    def build(cls, accounting: Iterable[AccountingEntry]) -> 'AccountingIndex':
        ledgers: Dict[str, PatientLedger] = defaultdict(PatientLedger)
        by_day: Dict[date, float] = defaultdict(float)
        by_patient_day: Dict[Tuple[str, date], float] = defaultdict(float)

        for entry in accounting:
            paid_day = entry.paidAt.date()
            by_day[paid_day] += entry.amount
            if not entry.patientId:
                continue
            ledger = ledgers[entry.patientId]
            ledger.total += entry.amount
            if entry.isAdvancePayment:
                ledger.advance += entry.amount
            else:
                ledger.remaining += entry.amount
            by_patient_day[(entry.patientId, paid_day)] += entry.amount

        return cls(ledgers=dict(ledgers), by_day=dict(by_day), by_patient_day=dict(by_patient_day))

    def ledger(self, patient_id: Optional[str]) -> PatientLedger:
        if not patient_id:
            return PatientLedger()
        return self.ledgers.get(patient_id, PatientLedger())

    def same_day(self, patient_id: Optional[str], day: date) -> float:
        if not patient_id:
            return 0.0
        return self.by_patient_day.get((patient_id, day), 0.0)


# =============================================================================
# Helpers
# =============================================================================

def _safe_average(total: float, count: int) -> float:
    return total / count if count > 0 else 0.0


def _category_breakdown(
    new_patients: Sequence[PatientRevenue],
    existing_patients: Sequence[PatientRevenue],
    other_patients: Sequence[PatientRevenue]
) -> List[CategoryRevenue]:
    amounts: Dict[CategoryKey, float] = defaultdict(float)
    counts: Dict[CategoryKey, int] = defaultdict(int)

    for revenue in list(new_patients) + list(existing_patients):
        key = (revenue.visit.category.main, revenue.visit.category.sub)
        amounts[key] += revenue.totalAmount
        counts[key] += 1

    for revenue in other_patients:
        key = (revenue.visit.category.main, revenue.visit.category.sub)
        amounts[key] += revenue.sameDayAmount
        counts[key] += 1

    breakdown = [
        CategoryRevenue(main=main, sub=sub, amount=amounts[(main, sub)], patientCount=counts[(main, sub)])
        for main, sub in amounts
    ]
    # Highest revenue first, ties by label for stable output
    breakdown.sort(key=lambda item: (-item.amount, item.main.value, item.sub))
    return breakdown


def _averages(
    new_patients: Sequence[PatientRevenue],
    existing_patients: Sequence[PatientRevenue],
    total_revenue: float,
    total_count: int
) -> Dict[str, float]:
    return {
        'sameDayNewAverage': _safe_average(
            sum(p.sameDayAmount for p in new_patients), len(new_patients)
        ),
        'newAverage': _safe_average(
            sum(p.totalAmount for p in new_patients), len(new_patients)
        ),
        'existingAverage': _safe_average(
            sum(p.totalAmount for p in existing_patients), len(existing_patients)
        ),
        'dailyAverage': _safe_average(total_revenue, total_count),
    }


def _daily_metrics(
    visits: Sequence[ClassifiedVisit],
    index: AccountingIndex,
    day: date
) -> DailyMetrics:
    new_patients: List[PatientRevenue] = []
    existing_patients: List[PatientRevenue] = []
    other_patients: List[PatientRevenue] = []

    day_visits = [visit for visit in visits if visit.visit_date == day]
    for visit in day_visits:
        ledger = index.ledger(visit.patient_id)
        revenue = PatientRevenue(
            visit=visit,
            patientType=visit.patientType,
            sameDayAmount=index.same_day(visit.patient_id, day),
            totalAmount=ledger.total,
            advancePayment=ledger.advance,
            remainingPayment=ledger.remaining,
        )
        if visit.patientType == PatientType.NEW:
            new_patients.append(revenue)
        elif visit.patientType == PatientType.EXISTING:
            existing_patients.append(revenue)
        else:
            other_patients.append(revenue)

    total_revenue = index.by_day.get(day, 0.0)
    total_count = len(day_visits)

    return DailyMetrics(
        date=day,
        totalRevenue=total_revenue,
        totalCount=total_count,
        newPatients=new_patients,
        existingPatients=existing_patients,
        otherPatients=other_patients,
        categoryBreakdown=_category_breakdown(new_patients, existing_patients, other_patients),
        **_averages(new_patients, existing_patients, total_revenue, total_count),
    )


# =============================================================================
# Public API
# =============================================================================

def compute_daily_metrics(
    visits: Iterable[ClassifiedVisit],
    accounting: Iterable[AccountingEntry],
    day: date
) -> DailyMetrics:
    """
    Compute revenue metrics for one calendar day.

    Args:
        visits: Classified visits (any dates; only `day` is used)
        accounting: Every known accounting entry; lifetime totals use all of
            them, same-day amounts only those paid on `day`
        day: The calendar day

    Returns:
        DailyMetrics. With no visits every list is empty and every average 0.
    """
    return _daily_metrics(list(visits), AccountingIndex.build(accounting), day)


def compute_period_metrics(
    visits: Iterable[ClassifiedVisit],
    accounting: Iterable[AccountingEntry],
    start: date,
    end: date
) -> PeriodMetrics:
    """
    Compute revenue metrics for the inclusive range [start, end].

    Args:
        visits: Classified visits
        accounting: Every known accounting entry
        start: First day (inclusive)
        end: Last day (inclusive)

    Returns:
        PeriodMetrics with one DailyMetrics per calendar day

    Raises:
        ValueError: If start is after end
    """
    if start > end:
        raise ValueError(f"start date {start} is after end date {end}")

    visit_list = [visit for visit in visits if start <= visit.visit_date <= end]
    index = AccountingIndex.build(accounting)

    days: List[DailyMetrics] = []
    current = start
    while current <= end:
        days.append(_daily_metrics(visit_list, index, current))
        current += timedelta(days=1)

    new_patients = [p for day in days for p in day.newPatients]
    existing_patients = [p for day in days for p in day.existingPatients]
    other_patients = [p for day in days for p in day.otherPatients]
    total_revenue = sum(day.totalRevenue for day in days)
    total_count = sum(day.totalCount for day in days)

    logger.info(
        f"Computed period metrics {start}..{end}: {len(days)} days, "
        f"{total_count} visits, revenue {total_revenue:.0f}"
    )

    return PeriodMetrics(
        startDate=start,
        endDate=end,
        totalRevenue=total_revenue,
        totalCount=total_count,
        newPatients=new_patients,
        existingPatients=existing_patients,
        otherPatients=other_patients,
        categoryBreakdown=_category_breakdown(new_patients, existing_patients, other_patients),
        days=days,
        **_averages(new_patients, existing_patients, total_revenue, total_count),
    )


def _group_label(visit: ClassifiedVisit, dimension: BreakdownDimension) -> str:
    record = visit.record
    if dimension == BreakdownDimension.CLINIC:
        return record.clinicName or record.clinicId or UNKNOWN_GROUP
    if dimension == BreakdownDimension.CATEGORY:
        return visit.category.sub
    return record.referralSource or UNKNOWN_GROUP


def compute_annual_breakdown(
    visits: Iterable[ClassifiedVisit],
    dimension: BreakdownDimension
) -> List[AnnualRevenueCell]:
    """
    Sum visit totals (amountWithTax) per group and calendar year.

    Args:
        visits: Classified visits
        dimension: clinic, category (subcategory) or referral_source

    Returns:
        Cells sorted by group then year
    """
    rows = [
        {
            'group': _group_label(visit, dimension),
            'year': visit.visit_date.year,
            'amount': visit.record.amountWithTax,
        }
        for visit in visits
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    grouped = df.groupby(['group', 'year'], sort=True)['amount'].sum().reset_index()

    return [
        AnnualRevenueCell(
            dimension=dimension,
            group=str(row['group']),
            year=int(row['year']),
            amount=float(row['amount']),
        )
        for _, row in grouped.iterrows()
    ]


def annual_breakdown_as_dict(cells: Iterable[AnnualRevenueCell]) -> Dict[str, float]:
    """Flatten annual cells to {"{group}|{year}": amount}."""
    return {cell.key: cell.amount for cell in cells}
