"""
Cross-sell transition tests.

Checks per-patient sequencing (same-day collapse, id filtering), both
matrices, the category axes and the top-combination lists.
"""

from datetime import datetime

import pytest

from clinic_analytics.models import MainCategory, PatientType, TransitionAxis
from clinic_analytics.services.cross_sell import (
    UNCATEGORIZED_LABEL,
    build_transitions,
    category_label,
    patient_visit_sequences,
)
from clinic_analytics.services.normalizer import build_accounting_entries, normalize_batch
from clinic_analytics.services.patient_type import classify_visits
from clinic_analytics.tests.conftest import make_line_item, make_visit


@pytest.fixture
def history():
    return [
        make_visit('P1', datetime(2024, 1, 10, 10, 0), sub='脱毛'),
        make_visit('P1', datetime(2024, 1, 20, 10, 0), sub='注入'),
        make_visit('P1', datetime(2024, 2, 1, 10, 0), sub='脱毛'),
        make_visit('P2', datetime(2024, 1, 12, 10, 0), sub='注入'),
        make_visit('P2', datetime(2024, 1, 11, 10, 0), sub='脱毛'),
        make_visit('P3', datetime(2024, 1, 15, 10, 0), sub='物販', main=MainCategory.OTHER),
        # Same day: the 09:00 visit sorts first and is the one kept
        make_visit('P4', datetime(2024, 1, 16, 10, 0), sub='注入'),
        make_visit('P4', datetime(2024, 1, 16, 9, 0), sub='脱毛'),
        make_visit('P4', datetime(2024, 2, 5, 10, 0), sub='注入'),
    ]


class TestPatientSequences:
    """Grouping, ordering and same-day collapse."""

    def test_visits_are_sorted_and_collapsed(self, history):
        sequences = patient_visit_sequences(history)

        assert list(sequences) == ['P1', 'P2', 'P3', 'P4']
        assert [v.category.sub for v in sequences['P2']] == ['脱毛', '注入']
        assert [v.category.sub for v in sequences['P4']] == ['脱毛', '注入']

    def test_visits_without_id_are_skipped(self):
        visits = [
            make_visit(None, datetime(2024, 1, 10)),
            make_visit('', datetime(2024, 1, 11)),
        ]

        assert len(patient_visit_sequences(visits)) == 0


class TestBuildTransitions:
    """Immediate-next and any-later matrices."""

    def test_immediate_next(self, history):
        result = build_transitions(history)

        matrix = result.immediateNext
        assert matrix.categories == ['脱毛', '注入', '物販']
        assert matrix.get('脱毛', '注入') == 3
        assert matrix.get('脱毛', '脱毛') == 0
        assert matrix.total == 3
        assert matrix.maxCount == 3

    def test_any_later(self, history):
        result = build_transitions(history)

        matrix = result.anyLater
        assert matrix.get('脱毛', '注入') == 3
        assert matrix.get('脱毛', '脱毛') == 1
        assert matrix.total == 4
        assert matrix.maxCount == 3

    def test_single_visit_patients_are_not_analyzed(self, history):
        result = build_transitions(history)

        assert result.patientsAnalyzed == 3
        assert result.immediateNext.get('物販', '物販') == 0

    def test_matrix_is_square(self, history):
        matrix = build_transitions(history).anyLater

        assert len(matrix.counts) == len(matrix.categories)
        assert all(len(row) == len(matrix.categories) for row in matrix.counts)
        assert matrix.as_dict()['脱毛']['注入'] == 3

    def test_unknown_category_reads_zero(self, history):
        assert build_transitions(history).immediateNext.get('存在しない', '脱毛') == 0

    def test_empty_input(self):
        result = build_transitions([])

        assert result.immediateNext.categories == []
        assert result.immediateNext.total == 0
        assert result.immediateNext.maxCount == 0
        assert result.topImmediateNext == []
        assert result.patientsAnalyzed == 0

    def test_same_day_only_patient_contributes_nothing(self):
        visits = [
            make_visit('P1', datetime(2024, 1, 10, 10, 0), sub='脱毛'),
            make_visit('P1', datetime(2024, 1, 10, 15, 0), sub='注入'),
        ]

        result = build_transitions(visits)

        assert result.patientsAnalyzed == 0
        assert result.anyLater.total == 0


class TestAxesAndCombos:
    """Axis selection and the ranked combination lists."""

    def test_main_axis(self, history):
        result = build_transitions(history, axis=TransitionAxis.MAIN)

        assert result.axis == TransitionAxis.MAIN
        assert result.immediateNext.categories == ['美容', 'その他']
        assert result.immediateNext.get('美容', '美容') == 3

    def test_raw_axis_prefers_first_line_item(self):
        with_items = make_visit(
            'P1',
            datetime(2024, 1, 10),
            category_raw='スキン',
            paymentLineItems=[make_line_item('ピーリング', 8000.0, category='ピーリング')],
        )
        raw_only = make_visit('P1', datetime(2024, 1, 11), category_raw='スキン')
        bare = make_visit('P1', datetime(2024, 1, 12))

        assert category_label(with_items, TransitionAxis.RAW) == 'ピーリング'
        assert category_label(raw_only, TransitionAxis.RAW) == 'スキン'
        assert category_label(bare, TransitionAxis.RAW) == UNCATEGORIZED_LABEL

    def test_top_combos_ranked_by_count(self, history):
        result = build_transitions(history)

        top = [(c.fromCategory, c.toCategory, c.count) for c in result.topAnyLater]
        assert top == [('脱毛', '注入', 3), ('脱毛', '脱毛', 1)]

    def test_top_n_limits_combos(self, history):
        result = build_transitions(history, top_n=1)

        assert len(result.topAnyLater) == 1
        assert result.topAnyLater[0].count == 3

    def test_ties_keep_first_observed_order(self):
        visits = [
            make_visit('P1', datetime(2024, 1, 10), sub='脱毛'),
            make_visit('P1', datetime(2024, 1, 11), sub='注入'),
            make_visit('P2', datetime(2024, 1, 10), sub='物販', main=MainCategory.OTHER),
            make_visit('P2', datetime(2024, 1, 11), sub='ピアス', main=MainCategory.OTHER),
        ]

        top = build_transitions(visits).topImmediateNext

        assert [(c.fromCategory, c.toCategory) for c in top] == [('脱毛', '注入'), ('物販', 'ピアス')]


@pytest.mark.scenario
class TestTransitionsFromRawRecords:
    """Raw rows through normalization, derived accounting and classification."""

    def test_new_then_existing_patient(self):
        raws = [
            {'patient_id': 'P2', 'visit_date': '2024-01-01', 'treatment_name': '脱毛', 'amount': '10000'},
            {'patient_id': 'P2', 'visit_date': '2024-01-05', 'treatment_name': 'ボトックスのご相談', 'amount': '20000'},
        ]

        records, errors = normalize_batch(raws, timezone='Asia/Tokyo')
        visits = classify_visits(records, build_accounting_entries(records))
        transitions = build_transitions(visits)

        assert errors == []
        assert [v.patientType for v in visits] == [PatientType.NEW, PatientType.EXISTING]
        assert [v.category.sub for v in visits] == ['脱毛', '注入']
        assert transitions.immediateNext.get('脱毛', '注入') == 1
        assert transitions.anyLater.get('脱毛', '注入') == 1
        assert transitions.patientsAnalyzed == 1
