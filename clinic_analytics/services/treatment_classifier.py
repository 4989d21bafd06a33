"""
Treatment Classification Service

Assigns every record a canonical (main, sub, procedure) category from its raw
treatment fields. The classifier is an explicit ordered rule table evaluated
as a total function:

1. Consultation mapping lookup on the name (see services/consultation.py).
   Main is 美容 for surgery/dermatology/hair removal, その他 for "other".
2. Membership of the name in a taxonomy node's procedure list. Nodes are
   checked in declaration order and the first node containing the name wins.
   The matched procedure is the subcategory, so a treatment and the
   consultation routed to it share one (main, sub) key; the node only names
   the specialty group (外科, 皮膚科, ...).
3. Default {main: その他, sub: その他, procedure: name}.

Matching is case-sensitive and exact apart from the substring step of the
consultation lookup. When the treatment name is blank the category text is
used as the name.
"""

from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from clinic_analytics.models.enums import MainCategory, Specialty
from clinic_analytics.models.schemas import TreatmentCategory
from clinic_analytics.services.consultation import (
    CONSULTATION_MAPPINGS,
    find_consultation_mapping,
)


# =============================================================================
# Treatment Taxonomy
# =============================================================================

class TaxonomyNode(NamedTuple):
    """A specialty group and the subcategories (procedures) that belong to it."""
    main: MainCategory
    group: str
    procedures: Tuple[str, ...]


# Declaration order is the match priority.
TREATMENT_TAXONOMY: Tuple[TaxonomyNode, ...] = (
    TaxonomyNode(
        MainCategory.BEAUTY,
        '外科',
        ('二重', 'くま治療', '糸リフト', '小顔（S,BF)', '鼻・人中手術', 'ボディー脂肪吸引', '豊胸', 'その他外科'),
    ),
    TaxonomyNode(MainCategory.BEAUTY, '皮膚科', ('注入', 'スキン')),
    TaxonomyNode(MainCategory.BEAUTY, '脱毛', ('脱毛',)),
    TaxonomyNode(MainCategory.OTHER, 'ピアス', ('ピアス',)),
    TaxonomyNode(MainCategory.OTHER, '物販', ('物販',)),
    TaxonomyNode(MainCategory.OTHER, '麻酔・針・パック', ('麻酔・針・パック',)),
)

SPECIALTY_MAIN_CATEGORY: Dict[Specialty, MainCategory] = {
    Specialty.SURGERY: MainCategory.BEAUTY,
    Specialty.DERMATOLOGY: MainCategory.BEAUTY,
    Specialty.HAIR_REMOVAL: MainCategory.BEAUTY,
    Specialty.OTHER: MainCategory.OTHER,
}

FALLBACK_SUBCATEGORY: str = 'その他'


# =============================================================================
# Classification
# =============================================================================

def _resolve_name(category_raw: Optional[str], name_raw: Optional[str]) -> str:
    name = (name_raw or '').strip()
    if name:
        return name
    return (category_raw or '').strip()


def classify_treatment(
    category_raw: Optional[str],
    name_raw: Optional[str]
) -> TreatmentCategory:
    """
    Classify a treatment into the fixed taxonomy.

    Args:
        category_raw: Raw treatment category text
        name_raw: Raw treatment name text

    Returns:
        TreatmentCategory; never raises and always returns a value.

    Example:
        >>> classify_treatment(None, 'ボトックスのご相談')
        TreatmentCategory(main=<MainCategory.BEAUTY: '美容'>, sub='注入', procedure='ボトックスのご相談')
    """
    name = _resolve_name(category_raw, name_raw)

    # Rule 1: consultation mapping
    mapping = find_consultation_mapping(name)
    if mapping is not None:
        return TreatmentCategory(
            main=SPECIALTY_MAIN_CATEGORY[mapping.specialty],
            sub=mapping.subcategory,
            procedure=name,
        )

    # Rule 2: taxonomy membership
    for node in TREATMENT_TAXONOMY:
        if name in node.procedures:
            return TreatmentCategory(main=node.main, sub=name, procedure=name)

    # Rule 3: fallback
    return TreatmentCategory(
        main=MainCategory.OTHER,
        sub=FALLBACK_SUBCATEGORY,
        procedure=name,
    )


def get_taxonomy_hierarchy() -> List[Dict[str, Any]]:
    """
    Describe the taxonomy and consultation table for display.

    Returns:
        One dict per main category, each listing its subcategory nodes with
        their procedures and the consultation menus routed into them.
    """
    hierarchy: List[Dict[str, Any]] = []
    for main in MainCategory:
        subcategories = []
        for node in TREATMENT_TAXONOMY:
            if node.main != main:
                continue
            subcategories.append({
                'name': node.group,
                'procedures': list(node.procedures),
            })
        consultations = [
            {
                'consultationName': mapping.consultationName,
                'subcategory': mapping.subcategory,
                'categoryId': mapping.categoryId,
                'requiresManualClassification': mapping.requiresManualClassification,
            }
            for mapping in CONSULTATION_MAPPINGS
            if SPECIALTY_MAIN_CATEGORY[mapping.specialty] == main
        ]
        hierarchy.append({
            'main': main.value,
            'subcategories': subcategories,
            'consultations': consultations,
        })
    return hierarchy
