"""
Tests for patient-type classification (新規 / 既存 / その他).
"""

from datetime import datetime

from clinic_analytics.models import MainCategory, PatientType, TreatmentCategory
from clinic_analytics.services.patient_type import classify_patient_type, classify_visits
from clinic_analytics.tests.conftest import make_entry, make_record

BEAUTY_CATEGORY = TreatmentCategory(main=MainCategory.BEAUTY, sub='脱毛', procedure='脱毛')
OTHER_CATEGORY = TreatmentCategory(main=MainCategory.OTHER, sub='物販', procedure='物販')


class TestClassifyPatientType:
    """Single-visit classification against prior accounting."""

    def test_no_history_is_new(self):
        record = make_record('P1', datetime(2024, 1, 10, 10, 0))

        assert classify_patient_type(record, BEAUTY_CATEGORY, []) == PatientType.NEW

    def test_earlier_payment_is_existing(self):
        record = make_record('P1', datetime(2024, 1, 10, 10, 0))
        history = [make_entry('P1', datetime(2023, 12, 1, 15, 0), 10000.0)]

        assert classify_patient_type(record, BEAUTY_CATEGORY, history) == PatientType.EXISTING

    def test_payment_at_same_instant_stays_new(self):
        record = make_record('P1', datetime(2024, 1, 10, 10, 0))
        history = [make_entry('P1', datetime(2024, 1, 10, 10, 0), 10000.0)]

        assert classify_patient_type(record, BEAUTY_CATEGORY, history) == PatientType.NEW

    def test_later_payment_stays_new(self):
        record = make_record('P1', datetime(2024, 1, 10, 10, 0))
        history = [make_entry('P1', datetime(2024, 1, 10, 12, 0), 10000.0)]

        assert classify_patient_type(record, BEAUTY_CATEGORY, history) == PatientType.NEW

    def test_other_patients_history_is_ignored(self):
        record = make_record('P1', datetime(2024, 1, 10, 10, 0))
        history = [make_entry('P2', datetime(2023, 1, 1), 10000.0)]

        assert classify_patient_type(record, BEAUTY_CATEGORY, history) == PatientType.NEW

    def test_other_main_category_wins_over_history(self):
        record = make_record('P1', datetime(2024, 1, 10, 10, 0))
        history = [make_entry('P1', datetime(2023, 1, 1), 10000.0)]

        assert classify_patient_type(record, OTHER_CATEGORY, history) == PatientType.OTHER

    def test_missing_id_is_new(self):
        record = make_record(None, datetime(2024, 1, 10, 10, 0))
        history = [make_entry(None, datetime(2023, 1, 1), 10000.0)]

        assert classify_patient_type(record, BEAUTY_CATEGORY, history) == PatientType.NEW


class TestClassifyVisits:
    """Batch classification keeps input order and agrees with the single-visit rule."""

    def test_batch_matches_single_visit_rule(self):
        records = [
            make_record('P1', datetime(2024, 1, 10, 10, 0), name_raw='脱毛'),
            make_record('P2', datetime(2024, 1, 10, 11, 0), name_raw='ボトックスのご相談'),
            make_record('P3', datetime(2024, 1, 10, 12, 0), name_raw='物販'),
            make_record(None, datetime(2024, 1, 10, 13, 0), name_raw='脱毛'),
        ]
        accounting = [
            make_entry('P2', datetime(2023, 6, 1), 20000.0),
            make_entry('P2', datetime(2024, 2, 1), 5000.0),
            make_entry('P3', datetime(2023, 6, 1), 3000.0),
        ]

        visits = classify_visits(records, accounting)

        assert [v.patientType for v in visits] == [
            PatientType.NEW,
            PatientType.EXISTING,
            PatientType.OTHER,
            PatientType.NEW,
        ]
        for visit in visits:
            expected = classify_patient_type(visit.record, visit.category, accounting)
            assert visit.patientType == expected

    def test_categories_are_attached(self):
        visits = classify_visits([make_record('P1', name_raw='ボトックスのご相談')], [])

        assert visits[0].category.sub == '注入'
        assert visits[0].patient_id == 'P1'
        assert visits[0].visit_date == visits[0].record.recordDate

    def test_empty_batch(self):
        assert classify_visits([], []) == []
