"""
Holiday detection from record presence.

A clinic publishes no closing calendar, so closed days are inferred: every
calendar day between the earliest and latest record date is enumerated, and
a day with zero records is a holiday.
"""

from collections import Counter
from datetime import timedelta
from typing import Iterable, Sequence

from clinic_analytics.models.schemas import (
    CanonicalVisitRecord,
    HolidayCalendar,
    HolidayEntry,
    HolidayStatistics,
)


def _statistics(entries: Sequence[HolidayEntry]) -> HolidayStatistics:
    total_days = len(entries)
    holiday_days = sum(1 for entry in entries if entry.isHoliday)
    return HolidayStatistics(
        totalDays=total_days,
        holidayDays=holiday_days,
        workingDays=total_days - holiday_days,
        holidayRate=(holiday_days / total_days) * 100 if total_days > 0 else 0.0,
    )


def get_holiday_statistics(calendar: HolidayCalendar) -> HolidayStatistics:
    """Summarize a calendar; holidayRate is a percentage of total days."""
    return _statistics(calendar.entries)


def detect_holidays(records: Iterable[CanonicalVisitRecord]) -> HolidayCalendar:
    """
    Build the operating calendar for a set of records.

    Args:
        records: Normalized records (each carries a valid recordDate)

    Returns:
        HolidayCalendar with (max - min).days + 1 entries, or an empty
        calendar when there are no records
    """
    counts = Counter(record.recordDate for record in records)
    if not counts:
        return HolidayCalendar()

    first, last = min(counts), max(counts)
    entries = []
    current = first
    while current <= last:
        count = counts.get(current, 0)
        entries.append(HolidayEntry(date=current, appointmentCount=count, isHoliday=count == 0))
        current += timedelta(days=1)

    return HolidayCalendar(entries=entries, statistics=_statistics(entries))
