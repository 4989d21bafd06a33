"""
Consultation Mapping Service

This module holds the fixed consultation-menu mapping table and the helpers
that decide whether a visit was a consultation.

Clinics book pre-treatment counselling under menu names such as
"ボトックスのご相談". Each known menu routes to a specialty and a target
subcategory of the treatment taxonomy, so consultation visits can be counted
in the same category as the treatment they lead to.

Lookup rules:
- Exact match on the trimmed name first
- Then bidirectional substring containment (name in entry, or entry in name)
- Case-sensitive; the first table entry that matches wins
- Entries flagged requiresManualClassification still resolve to their listed
  subcategory (the flag is informational only)
"""

from typing import Iterable, List, Optional

from clinic_analytics.core.config import get_settings
from clinic_analytics.models.enums import Specialty
from clinic_analytics.models.schemas import CanonicalVisitRecord, ConsultationMapping


# =============================================================================
# Consultation Mapping Table
# Order matters: the first matching entry wins for substring lookups.
# =============================================================================

CONSULTATION_KEYWORD: str = 'ご相談'
COUNSELING_KEYWORD: str = 'カウンセリング'


def _mapping(
    name: str,
    specialty: Specialty,
    subcategory: str,
    category_id: str,
    manual: bool = False
) -> ConsultationMapping:
    return ConsultationMapping(
        consultationName=name,
        specialty=specialty,
        subcategory=subcategory,
        categoryId=category_id,
        requiresManualClassification=manual,
    )


CONSULTATION_MAPPINGS: List[ConsultationMapping] = [
    # Surgery
    _mapping('二重のご相談', Specialty.SURGERY, '二重', 'surgery_double_eyelid'),
    _mapping('小顔のご相談（脂肪吸引・バッカルファット）', Specialty.SURGERY, '小顔（S,BF)', 'surgery_face_slimming'),
    _mapping('リフトアップのご相談', Specialty.SURGERY, '糸リフト', 'surgery_thread_lift'),
    _mapping('クマ取りのご相談', Specialty.SURGERY, 'くま治療', 'surgery_dark_circles'),
    _mapping('鼻のご相談', Specialty.SURGERY, '鼻・人中手術', 'surgery_nose_philtrum'),
    _mapping('ボディ脂肪吸引のご相談', Specialty.SURGERY, 'ボディー脂肪吸引', 'surgery_body_liposuction'),
    _mapping('脂肪豊胸のご相談', Specialty.SURGERY, '豊胸', 'surgery_breast_augmentation'),
    _mapping('ハイブリッド豊胸のご相談', Specialty.SURGERY, '豊胸', 'surgery_breast_augmentation'),
    _mapping('シリコンバック豊胸のご相談', Specialty.SURGERY, '豊胸', 'surgery_breast_augmentation'),
    _mapping('手術でのタトゥー除去のご相談', Specialty.SURGERY, 'その他外科', 'surgery_other'),
    _mapping('トータル外科施術のお悩み相談', Specialty.SURGERY, 'その他外科', 'surgery_other', manual=True),
    _mapping('その他外科手術のご相談', Specialty.SURGERY, 'その他外科', 'surgery_other', manual=True),
    _mapping('婦人科形成のご相談', Specialty.SURGERY, 'その他外科', 'surgery_other', manual=True),
    _mapping('乳頭縮小・乳輪縮小・陥没乳頭のご相談', Specialty.SURGERY, 'その他外科', 'surgery_other', manual=True),
    # Dermatology
    _mapping('ボトックスのご相談', Specialty.DERMATOLOGY, '注入', 'dermatology_injection'),
    _mapping('ヒアルロン酸のご相談', Specialty.DERMATOLOGY, '注入', 'dermatology_injection'),
    _mapping('脂肪溶解注射のご相談', Specialty.DERMATOLOGY, '注入', 'dermatology_injection'),
    _mapping('しみ取りのご相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin'),
    _mapping('ピコトーニング・ピコフラクショナルのご相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin'),
    _mapping('ピーリングのご相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin'),
    _mapping('ダーマペン・ヴェルベットスキンのご相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin'),
    _mapping('フォトフェイシャル（ライムライト）のご相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin'),
    _mapping('インモードのご相談', Specialty.DERMATOLOGY, 'スキン（インモード/HIFU）', 'dermatology_skin_inmode_hifu'),
    _mapping('HIFU（ウルトラフォーマーMPT）のご相談', Specialty.DERMATOLOGY, 'スキン（インモード/HIFU）', 'dermatology_skin_inmode_hifu'),
    _mapping('ルメッカのご相談', Specialty.DERMATOLOGY, 'スキン（インモード/HIFU）', 'dermatology_skin_inmode_hifu'),
    _mapping('トータルお肌のお悩み相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin', manual=True),
    # Other
    _mapping('美容内服/美容点滴のご相談', Specialty.OTHER, '物販', 'other_products'),
    # Hair removal
    _mapping('医療脱毛のご相談', Specialty.HAIR_REMOVAL, '脱毛', 'hair_removal'),
    # Laser tattoo removal is handled by dermatology
    _mapping('レーザーでのタトゥー除去のご相談', Specialty.DERMATOLOGY, 'スキン', 'dermatology_skin'),
]


# =============================================================================
# Lookup
# =============================================================================

def find_consultation_mapping(
    consultation_name: Optional[str],
    mappings: Optional[Iterable[ConsultationMapping]] = None
) -> Optional[ConsultationMapping]:
    """
    Find the mapping entry for a consultation menu name.

    Args:
        consultation_name: Menu or treatment name as recorded
        mappings: Table to search (defaults to CONSULTATION_MAPPINGS)

    Returns:
        The first matching ConsultationMapping, or None. A blank name never
        matches, since the empty string is contained in every entry.
    """
    name = (consultation_name or '').strip()
    if not name:
        return None

    table = list(mappings) if mappings is not None else CONSULTATION_MAPPINGS

    for mapping in table:
        if mapping.consultationName == name:
            return mapping

    for mapping in table:
        if mapping.consultationName in name or name in mapping.consultationName:
            return mapping

    return None


# =============================================================================
# Consultation Helpers
# =============================================================================

def _line_items_total(record: CanonicalVisitRecord) -> float:
    return sum(item.priceWithTax for item in record.paymentLineItems)


def is_consultation_room(
    room_name: Optional[str],
    room_names: Optional[Iterable[str]] = None
) -> bool:
    """Whether the reservation room is one reserved for consultations."""
    if not room_name:
        return False
    names = room_names if room_names is not None else get_settings().consultation_room_names
    return room_name.strip() in set(names)


def is_consultation_only(
    record: CanonicalVisitRecord,
    room_names: Optional[Iterable[str]] = None
) -> bool:
    """
    Whether a visit was a consultation with no treatment billed.

    True when neither the total nor the line items carry an amount, or when
    the visit took place in a consultation room.
    """
    no_accounting = record.amountWithTax == 0 and _line_items_total(record) == 0
    return no_accounting or is_consultation_room(record.roomName, room_names)


def is_consultation_to_treatment(
    record: CanonicalVisitRecord,
    room_names: Optional[Iterable[str]] = None
) -> bool:
    """
    Whether a consultation converted into a billed treatment.

    Requires some accounting on the visit and at least one consultation
    marker: a consultation room, a name containing ご相談, or a category
    containing カウンセリング.
    """
    has_accounting = record.amountWithTax > 0 or _line_items_total(record) > 0
    if not has_accounting:
        return False

    name = record.treatmentNameRaw or ''
    category = record.treatmentCategoryRaw or ''
    return (
        is_consultation_room(record.roomName, room_names)
        or CONSULTATION_KEYWORD in name
        or COUNSELING_KEYWORD in category
    )


def should_exclude_record(record: CanonicalVisitRecord) -> bool:
    """Age 0 marks bookings that never became visits (cancellations etc.)."""
    return record.patientAge == 0
