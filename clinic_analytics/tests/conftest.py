"""
Pytest Configuration and Shared Fixtures for Clinic Analytics Tests.

Provides:
- Custom markers for test organization
- Settings fixtures (fresh cache per test, explicit Settings instances)
- Raw record builders in the three supported shapes (API daily accounts,
  Japanese CSV headers, English CSV headers)
- Classified visit and accounting entry builders for aggregation tests
- CSV helpers and float comparison helpers

All engine functions are pure, so no external services are mocked.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, Generator, List, Optional

import pandas as pd
import pytest

from clinic_analytics.core.config import Settings, get_settings
from clinic_analytics.models import (
    AccountingEntry,
    CanonicalVisitRecord,
    ClassifiedVisit,
    MainCategory,
    PatientType,
    PaymentLineItem,
    TreatmentCategory,
)


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - scenario: end-to-end behaviour scenarios over small record sets
    - api: tests calling the FastAPI endpoint functions directly
    """
    config.addinivalue_line(
        'markers',
        'scenario: marks end-to-end behaviour scenarios'
    )
    config.addinivalue_line(
        'markers',
        'api: marks tests calling the FastAPI endpoint functions'
    )


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Make every test start from freshly loaded settings."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def strict_settings() -> Settings:
    """Settings with both exclusion switches and extended validation on."""
    return Settings(
        _env_file=None,
        exclude_zero_age_records=True,
        exclude_cancelled_records=True,
        extended_validation=True,
    )


# ============================================================
# RAW RECORD FIXTURES
# ============================================================

@pytest.fixture
def api_daily_account() -> Dict[str, Any]:
    """A single clinic API daily-accounts value with two payment items."""
    return {
        'visitorId': 'V001',
        'visitorCode': 'C001',
        'visitorName': '山田 花子',
        'visitorAge': 32,
        'visitorInflowSourceName': 'Instagram',
        'reservationInflowPathLabel': 'WEB予約',
        'reservationId': 'R001',
        'isFirst': True,
        'recordDate': '2024-03-05',
        'confirmedAt': '2024-03-05T03:30:00Z',
        'totalWithTax': 88000,
        'paymentItems': [
            {
                'category': 'スキン',
                'name': 'ボトックスのご相談',
                'mainStaffName': '佐藤',
                'priceWithTax': 55000,
                'advancePaymentPriceWithTax': 0,
            },
            {
                'category': '物販',
                'name': 'ビタミンC',
                'mainStaffName': '佐藤',
                'priceWithTax': 33000,
                'advancePaymentPriceWithTax': 10000,
            },
        ],
    }


@pytest.fixture
def japanese_csv_row() -> Dict[str, Any]:
    """A row as exported with Japanese headers (all values are text)."""
    return {
        '来院日': '2024-01-10',
        '年齢': '25',
        '患者コード': 'P1',
        '施術名': '脱毛',
        '合計': '¥12,000',
        '知ったきっかけ': '紹介',
        '初診再診': '初診',
        '担当者': '田中',
        '来院区分': '電話',
        '施術カテゴリー': '脱毛',
    }


@pytest.fixture
def english_csv_row() -> Dict[str, Any]:
    """A row as exported with English/legacy headers."""
    return {
        'patient_id': 'E100',
        'visit_date': '2024/02/01',
        'treatment_name': '注入',
        'treatment_category': '皮膚科',
        'amount': '30000',
        'clinic_name': '渋谷院',
    }


# ============================================================
# MODEL BUILDERS
# ============================================================

def make_record(
    record_id: Optional[str] = 'P1',
    visited_at: Any = datetime(2024, 1, 10, 10, 0),
    amount: float = 0.0,
    category_raw: Optional[str] = None,
    name_raw: Optional[str] = None,
    **extra: Any
) -> CanonicalVisitRecord:
    """
    Build a CanonicalVisitRecord directly, bypassing the normalizer.

    Args:
        record_id: Patient id
        visited_at: datetime or date of the visit
        amount: amountWithTax
        category_raw: Raw treatment category
        name_raw: Raw treatment name
        **extra: Any other CanonicalVisitRecord field
    """
    if not isinstance(visited_at, datetime):
        visited_at = datetime(visited_at.year, visited_at.month, visited_at.day)
    return CanonicalVisitRecord(
        recordId=record_id,
        recordDate=visited_at.date(),
        visitedAt=visited_at,
        amountWithTax=amount,
        treatmentCategoryRaw=category_raw,
        treatmentNameRaw=name_raw,
        **extra
    )


def make_visit(
    record_id: Optional[str] = 'P1',
    visited_at: Any = datetime(2024, 1, 10, 10, 0),
    sub: str = '脱毛',
    main: MainCategory = MainCategory.BEAUTY,
    patient_type: Optional[PatientType] = None,
    amount: float = 0.0,
    **extra: Any
) -> ClassifiedVisit:
    """
    Build a ClassifiedVisit with an explicit category.

    The patient type defaults to New for 美容 and Other for その他.
    """
    record = make_record(record_id, visited_at, amount=amount, name_raw=sub, **extra)
    if patient_type is None:
        patient_type = PatientType.OTHER if main == MainCategory.OTHER else PatientType.NEW
    return ClassifiedVisit(
        record=record,
        category=TreatmentCategory(main=main, sub=sub, procedure=sub),
        patientType=patient_type,
    )


def make_entry(
    patient_id: Optional[str],
    paid_at: Any,
    amount: float,
    advance: bool = False
) -> AccountingEntry:
    """Build an AccountingEntry; a date paid_at means midnight."""
    if not isinstance(paid_at, datetime):
        paid_at = datetime(paid_at.year, paid_at.month, paid_at.day)
    return AccountingEntry(
        patientId=patient_id,
        amount=amount,
        paidAt=paid_at,
        isAdvancePayment=advance,
    )


def make_line_item(name: str, price: float, category: Optional[str] = None) -> PaymentLineItem:
    return PaymentLineItem(name=name, category=category, priceWithTax=price)


@pytest.fixture
def base_day() -> date:
    """Reference day used across aggregation tests."""
    return date(2024, 1, 10)


@pytest.fixture
def week_dates(base_day: date) -> List[date]:
    """Seven consecutive days starting at base_day."""
    return [base_day + timedelta(days=offset) for offset in range(7)]


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def create_csv_text(rows: List[Dict[str, Any]]) -> str:
    """
    Render record dicts as CSV text with a header row.

    Args:
        rows: Records sharing the same keys

    Returns:
        str: CSV content without an index column
    """
    return pd.DataFrame(rows).to_csv(index=False)


def create_csv_bytes(rows: List[Dict[str, Any]], bom: bool = False) -> bytes:
    """UTF-8 encoded CSV, optionally with a leading byte order mark."""
    content = create_csv_text(rows).encode('utf-8')
    return b'\xef\xbb\xbf' + content if bom else content


def assert_close(
    actual: float,
    expected: float,
    tolerance: float = 0.001
) -> None:
    """
    Assert two floats are close within tolerance.

    Raises:
        AssertionError: If values differ by more than tolerance
    """
    if abs(actual - expected) >= tolerance:
        raise AssertionError(
            f'{actual} not close to {expected} within tolerance {tolerance}'
        )
