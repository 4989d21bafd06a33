"""
Cross-sell transition analysis.

Builds two patient-count matrices from each patient's visit history:
- immediateNext[first][second]: category of the first visit day to the
  category of the second visit day
- anyLater[first][later]: category of the first visit day to the category of
  every later visit day

Per patient:
1. Visits are grouped by patient id; visits without an id are skipped.
2. Visits are stably sorted by timestamp and collapsed to one per calendar
   day (the first after sorting), so several line items on the same day do
   not inflate the counts.
3. Patients with fewer than two distinct visit days contribute nothing.

The axis is the set of categories actually observed, in first-seen order, so
matrix shape depends on the data window.
"""

import logging
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from clinic_analytics.core.config import get_settings
from clinic_analytics.models.enums import TransitionAxis
from clinic_analytics.models.schemas import (
    ClassifiedVisit,
    CrossSellTransitions,
    TransitionCombo,
    TransitionMatrix,
)

# Configure module logger
logger = logging.getLogger(__name__)

UNCATEGORIZED_LABEL: str = '未分類'

Transition = Tuple[str, str]


def category_label(visit: ClassifiedVisit, axis: TransitionAxis = TransitionAxis.SUB) -> str:
    """Label a visit on the requested axis."""
    if axis == TransitionAxis.MAIN:
        return visit.category.main.value
    if axis == TransitionAxis.RAW:
        items = visit.record.paymentLineItems
        if items and items[0].category:
            return items[0].category
        return visit.record.treatmentCategoryRaw or UNCATEGORIZED_LABEL
    return visit.category.sub


def patient_visit_sequences(
    visits: Iterable[ClassifiedVisit]
) -> "OrderedDict[str, List[ClassifiedVisit]]":
    """
    Group visits per patient and collapse same-day visits.

    Returns:
        Patient id -> chronologically ordered visits, one per calendar day.
        Patients appear in order of first appearance in the input.
    """
    grouped: "OrderedDict[str, List[ClassifiedVisit]]" = OrderedDict()
    for visit in visits:
        if not visit.patient_id:
            continue
        grouped.setdefault(visit.patient_id, []).append(visit)

    for patient_id, patient_visits in grouped.items():
        # sorted() is stable, so same-timestamp visits keep input order
        ordered = sorted(patient_visits, key=lambda v: v.record.visitedAt)
        seen_days = set()
        collapsed: List[ClassifiedVisit] = []
        for visit in ordered:
            day: date = visit.visit_date
            if day in seen_days:
                continue
            seen_days.add(day)
            collapsed.append(visit)
        grouped[patient_id] = collapsed

    return grouped


def _to_matrix(categories: List[str], counts: Dict[Transition, int]) -> TransitionMatrix:
    rows = [[counts.get((row, col), 0) for col in categories] for row in categories]
    return TransitionMatrix(
        categories=list(categories),
        counts=rows,
        total=sum(counts.values()),
        maxCount=max(counts.values(), default=0),
    )


def _top_combos(counts: Dict[Transition, int], limit: int) -> List[TransitionCombo]:
    # Stable: equal counts keep the order the transition was first observed
    ranked = sorted(counts.items(), key=lambda item: -item[1])[:limit]
    return [
        TransitionCombo(fromCategory=source, toCategory=target, count=count)
        for (source, target), count in ranked
    ]


def build_transitions(
    visits: Iterable[ClassifiedVisit],
    axis: TransitionAxis = TransitionAxis.SUB,
    top_n: Optional[int] = None
) -> CrossSellTransitions:
    """
    Build the immediate-next and any-later transition matrices.

    Args:
        visits: Classified visits in any order
        axis: Category label to use (subcategory by default)
        top_n: Number of top combinations to list (defaults to
            settings.transition_top_n)

    Returns:
        CrossSellTransitions
    """
    limit = top_n if top_n is not None else get_settings().transition_top_n
    sequences = patient_visit_sequences(visits)

    categories: List[str] = []
    for patient_visits in sequences.values():
        for visit in patient_visits:
            label = category_label(visit, axis)
            if label not in categories:
                categories.append(label)

    immediate: Dict[Transition, int] = {}
    any_later: Dict[Transition, int] = {}
    analyzed = 0

    for patient_visits in sequences.values():
        if len(patient_visits) < 2:
            continue
        analyzed += 1
        first = category_label(patient_visits[0], axis)

        key = (first, category_label(patient_visits[1], axis))
        immediate[key] = immediate.get(key, 0) + 1

        for later in patient_visits[1:]:
            key = (first, category_label(later, axis))
            any_later[key] = any_later.get(key, 0) + 1

    logger.info(
        f"Built transitions over {len(sequences)} patients "
        f"({analyzed} with repeat visits, {len(categories)} categories)"
    )

    return CrossSellTransitions(
        axis=axis,
        immediateNext=_to_matrix(categories, immediate),
        anyLater=_to_matrix(categories, any_later),
        topImmediateNext=_top_combos(immediate, limit),
        topAnyLater=_top_combos(any_later, limit),
        patientsAnalyzed=analyzed,
    )
