"""
Tests for repeat analysis of New patients.
"""

from datetime import date, datetime

import pytest

from clinic_analytics.models import PatientType
from clinic_analytics.services.repeat_analysis import compute_repeat_analysis, window_start
from clinic_analytics.tests.conftest import assert_close, make_entry, make_visit

AS_OF = date(2024, 6, 30)


@pytest.fixture
def repeat_visits():
    existing = PatientType.EXISTING
    return [
        # Returns after 10 days
        make_visit('P1', datetime(2024, 1, 10, 10, 0)),
        make_visit('P1', datetime(2024, 1, 20, 10, 0), patient_type=existing),
        # Never returns
        make_visit('P2', datetime(2024, 2, 1, 10, 0)),
        # First seen before the window
        make_visit('P3', datetime(2023, 11, 1, 10, 0)),
        make_visit('P3', datetime(2024, 1, 1, 10, 0), patient_type=existing),
        # Returns the same day
        make_visit('P4', datetime(2024, 3, 1, 10, 0)),
        make_visit('P4', datetime(2024, 3, 1, 15, 0), patient_type=existing),
        # Existing patients are not part of the cohort
        make_visit('P5', datetime(2024, 3, 1, 10, 0), patient_type=existing),
        make_visit('P5', datetime(2024, 4, 1, 10, 0), patient_type=existing),
        # Returns only after the as-of day
        make_visit('P6', datetime(2024, 5, 1, 10, 0)),
        make_visit('P6', datetime(2024, 7, 5, 10, 0), patient_type=existing),
        # Cannot be followed without an id
        make_visit(None, datetime(2024, 2, 2, 10, 0)),
    ]


@pytest.fixture
def repeat_accounting():
    return [
        make_entry('P1', datetime(2024, 1, 10, 11, 0), 20000.0),
        make_entry('P1', datetime(2024, 1, 20, 11, 0), 10000.0),
        make_entry('P4', datetime(2024, 3, 1, 16, 0), 5000.0),
        make_entry('P2', datetime(2024, 2, 1, 11, 0), 8000.0),
    ]


class TestWindowStart:
    """Calendar-month window arithmetic."""

    def test_six_months(self):
        assert window_start(AS_OF, 6) == date(2023, 12, 30)

    def test_month_end_is_clipped(self):
        assert window_start(date(2024, 3, 31), 1) == date(2024, 2, 29)


class TestComputeRepeatAnalysis:
    """Cohort, repeat rate, days to repeat and repeat revenue."""

    def test_cohort_and_rate(self, repeat_visits, repeat_accounting):
        result = compute_repeat_analysis(repeat_visits, repeat_accounting, AS_OF, months=6)

        assert result.months == 6
        assert result.totalPatients == 4
        assert result.repeatPatients == 2
        assert_close(result.repeatRate, 50.0)

    def test_same_day_return_is_not_averaged(self, repeat_visits, repeat_accounting):
        result = compute_repeat_analysis(repeat_visits, repeat_accounting, AS_OF, months=6)

        assert result.averageDaysToRepeat == 10.0

    def test_repeat_revenue(self, repeat_visits, repeat_accounting):
        result = compute_repeat_analysis(repeat_visits, repeat_accounting, AS_OF, months=6)

        assert result.repeatRevenue == 35000.0
        assert result.averageRepeatRevenue == 17500.0

    def test_longer_window_includes_older_patients(self, repeat_visits, repeat_accounting):
        result = compute_repeat_analysis(repeat_visits, repeat_accounting, AS_OF, months=12)

        assert result.totalPatients == 5
        assert result.repeatPatients == 3

    def test_empty_input(self):
        result = compute_repeat_analysis([], [], AS_OF)

        assert result.totalPatients == 0
        assert result.repeatRate == 0.0
        assert result.averageDaysToRepeat == 0.0
        assert result.averageRepeatRevenue == 0.0

    def test_non_positive_months_raises(self):
        with pytest.raises(ValueError):
            compute_repeat_analysis([], [], AS_OF, months=0)
