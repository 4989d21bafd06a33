"""
Enumeration definitions for the clinic analytics engine.

All enums inherit from both `str` and `Enum` so they serialize as their plain
values in Pydantic models and API responses.
"""

from enum import Enum


class MainCategory(str, Enum):
    """
    Top-level treatment grouping.

    - BEAUTY (美容): surgery, dermatology and hair removal; counted in
      new/existing cohorts
    - OTHER (その他): piercing, products, anesthesia and anything unmatched;
      never counted in cohorts
    """
    BEAUTY = "美容"
    OTHER = "その他"


class Specialty(str, Enum):
    """
    Clinical specialty a consultation menu is routed to.

    Surgery, dermatology and hair removal resolve to the 美容 main category;
    OTHER resolves to その他.
    """
    SURGERY = "surgery"
    DERMATOLOGY = "dermatology"
    HAIR_REMOVAL = "hair_removal"
    OTHER = "other"


class PatientType(str, Enum):
    """
    Cohort of a single visit.

    - NEW (新規): no accounting entry for the patient before the visit
    - EXISTING (既存): at least one accounting entry before the visit
    - OTHER (その他): visit in the その他 main category; excluded from
      new/existing averages
    """
    NEW = "新規"
    EXISTING = "既存"
    OTHER = "その他"


class ErrorSeverity(str, Enum):
    """Severity attached to a record validation finding."""
    ERROR = "error"
    WARNING = "warning"


class TransitionAxis(str, Enum):
    """
    Category label used as the cross-sell matrix axis.

    - SUB: classified subcategory (default)
    - MAIN: classified main category
    - RAW: the record's own treatment category text
    """
    SUB = "sub"
    MAIN = "main"
    RAW = "raw"


class BreakdownDimension(str, Enum):
    """Grouping dimension for the annual revenue breakdown."""
    CLINIC = "clinic"
    CATEGORY = "category"
    REFERRAL_SOURCE = "referral_source"
