"""
Record Normalizer Service

Maps raw visit/accounting records of any supported shape into
CanonicalVisitRecord. Raw records arrive from the clinic API daily-accounts
feed (camelCase keys), from Japanese CSV exports, or from English/legacy CSV
headers; every logical field is therefore resolved through an explicit,
ordered tuple of candidate keys (FIELD_ALIASES). The first candidate holding
a non-blank value wins.

Parsing rules:
- Dates: candidate groups are tried in priority order (record date, visit
  date, treatment date, accounting date). The first value pandas can parse
  wins. Offset-aware timestamps are shifted into the clinic time zone and
  made naive. No parseable date means the record is dropped.
- Numbers: currency decoration (¥, commas, 円) is stripped; anything that
  still fails to parse becomes 0. Amounts are clamped to >= 0.
- Booleans: only True, "1" or "true" are truthy.

normalize_record() is a pure function and never raises.
"""

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from clinic_analytics.core.config import get_settings
from clinic_analytics.models.enums import ErrorSeverity
from clinic_analytics.models.schemas import (
    AccountingEntry,
    CanonicalVisitRecord,
    PaymentLineItem,
    RecordError,
)

# Configure module logger
logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]


# =============================================================================
# Field Aliases
# Ordered candidate keys per logical field; earlier keys take priority.
# =============================================================================

DATE_FIELD_GROUPS: Tuple[Tuple[str, ...], ...] = (
    # explicit record date
    ('recordDate', '記録日'),
    # visit date
    ('visitDate', '来院日', 'visit_date', 'date'),
    # treatment date
    ('treatmentDate', '施術日', 'treatment_date'),
    # accounting date
    ('accountingDate', '会計日', 'payment_date', '支払い日'),
)

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    'recordId': (
        'visitorId', 'patientCode', '患者コード', 'patient_code', 'patient_id', '患者ID',
        'visitorCode', 'visitorKarteNumber', 'karteNumber', 'カルテNo', 'id',
    ),
    'clinicId': ('clinicId', 'clinic_id', 'クリニックID'),
    'clinicName': ('clinicName', 'clinic_name', 'クリニック名', '院名', '医院名'),
    'amountWithTax': ('totalWithTax', '合計', 'amount', '金額'),
    'treatmentCategory': ('treatmentCategory', '施術カテゴリー', 'treatment_category', 'category'),
    'treatmentName': ('treatmentName', '施術名', 'treatment_name', '処置内容', 'treatmentContent'),
    'roomName': ('roomName', '部屋名'),
    'referralSource': (
        'referralSource', '流入元', '知ったきっかけ',
        'visitorInflowSourceName', 'visitorInflowSourceLabel',
    ),
    'appointmentRoute': ('appointmentRoute', '予約経路', '来院区分', 'reservationInflowPathLabel'),
    'staff': ('staff', '担当者', 'mainStaffName', 'reservationStaffName'),
    'patientAge': ('age', '年齢', 'visitorAge'),
    'patientName': ('patientName', '氏名', 'visitorName', '名前'),
    'appointmentId': ('reservationId', '予約ID', 'appointmentId'),
    'patientTypeRaw': ('patientType', '初診再診', 'U/C'),
    'isFirstVisit': ('isFirst', 'isFirstVisit'),
    'isCancelled': ('isCancelled', 'キャンセル有無', 'is_cancelled'),
    'confirmedAt': ('confirmedAt', 'confirmed_at'),
    'paymentItems': ('paymentItems', 'payment_items'),
}

ACCOUNTING_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    'entryId': ('会計ID', 'accounting_id', 'id'),
    'patientId': ('患者ID', 'patient_id', '患者コード'),
    'amount': ('金額', 'amount', 'price'),
    'paidAt': ('支払い日', 'payment_date', 'date'),
    'isAdvancePayment': ('前受金', 'is_advance_payment'),
    'visitDate': ('来院日', 'visit_date'),
    'treatmentName': ('処置内容', 'treatment_name'),
}

_CURRENCY_DECORATION = re.compile(r'[¥￥,円\s]')
_JAPANESE_DATE = re.compile(r'^(\d{4})年(\d{1,2})月(\d{1,2})日')
_TRUTHY_STRINGS = ('1', 'true')


# =============================================================================
# Value Parsers
# =============================================================================

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def first_present(raw: RawRecord, aliases: Iterable[str]) -> Any:
    """Return the value of the first alias holding a non-blank value, else None."""
    for key in aliases:
        value = raw.get(key)
        if not _is_blank(value):
            return value
    return None


def _text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    return str(value).strip()


def parse_float(value: Any) -> float:
    """Parse a number, stripping currency decoration. Falls back to 0.0."""
    if _is_blank(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        try:
            parsed = float(_CURRENCY_DECORATION.sub('', str(value)))
        except ValueError:
            return 0.0
    if math.isnan(parsed) or math.isinf(parsed):
        return 0.0
    return parsed


def parse_int(value: Any) -> int:
    return int(parse_float(value))


def parse_bool(value: Any) -> bool:
    """Only a real True or the strings "1" / "true" count as true."""
    if value is True:
        return True
    if isinstance(value, str):
        return value.strip() in _TRUTHY_STRINGS
    return False


def parse_timestamp(value: Any, timezone: Optional[str] = None) -> Optional[datetime]:
    """
    Parse a date or timestamp into a naive clinic-local datetime.

    Args:
        value: String, date, datetime or pandas Timestamp
        timezone: Zone offset-aware values are converted into before the
            offset is dropped (defaults to settings.clinic_timezone)

    Returns:
        Naive datetime, or None when the value is blank or unparseable
    """
    if _is_blank(value):
        return None
    if not isinstance(value, (str, date, datetime, pd.Timestamp)):
        return None

    if isinstance(value, str):
        value = value.strip()
        match = _JAPANESE_DATE.match(value)
        if match:
            value = '{}-{}-{}'.format(*match.groups())

    try:
        ts = pd.to_datetime(value, errors='coerce')
    except (TypeError, ValueError, OverflowError):
        return None
    if pd.isna(ts):
        return None

    if ts.tzinfo is not None:
        zone = timezone or get_settings().clinic_timezone
        ts = ts.tz_convert(zone).tz_localize(None)
    return ts.to_pydatetime()


def resolve_visit_timestamp(raw: RawRecord, timezone: Optional[str] = None) -> Optional[datetime]:
    """Try every date candidate in priority order; first parseable wins."""
    for group in DATE_FIELD_GROUPS:
        for key in group:
            parsed = parse_timestamp(raw.get(key), timezone)
            if parsed is not None:
                return parsed
    return None


def _parse_line_items(value: Any) -> List[PaymentLineItem]:
    if not isinstance(value, (list, tuple)):
        return []

    items: List[PaymentLineItem] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        items.append(PaymentLineItem(
            category=_text(item.get('category')),
            name=_text(item.get('name')),
            priceWithTax=max(0.0, parse_float(item.get('priceWithTax'))),
            staff=_text(item.get('mainStaffName') or item.get('staff')),
            isAdvancePayment=(
                parse_float(item.get('advancePaymentPriceWithTax')) > 0
                or parse_bool(item.get('isAdvancePayment'))
            ),
        ))
    return items


# =============================================================================
# Normalization
# =============================================================================

def normalize_record(
    raw: RawRecord,
    timezone: Optional[str] = None,
    row_number: Optional[int] = None
) -> Optional[CanonicalVisitRecord]:
    """
    Normalize one raw record.

    Args:
        raw: Raw record mapping (API, Japanese CSV or English CSV keys)
        timezone: Clinic time zone for offset-aware timestamps
        row_number: Source row number to carry on the record

    Returns:
        CanonicalVisitRecord, or None when no date field parses
    """
    if not isinstance(raw, Mapping):
        return None

    visited_at = resolve_visit_timestamp(raw, timezone)
    if visited_at is None:
        return None

    def field(name: str) -> Any:
        return first_present(raw, FIELD_ALIASES[name])

    line_items = _parse_line_items(field('paymentItems'))
    first_item = line_items[0] if line_items else None

    category = _text(field('treatmentCategory'))
    if category is None and first_item is not None:
        category = first_item.category

    name = _text(field('treatmentName'))
    if name is None and first_item is not None:
        name = first_item.name

    staff = _text(field('staff'))
    if staff is None and first_item is not None:
        staff = first_item.staff

    first_visit_value = field('isFirstVisit')

    return CanonicalVisitRecord(
        recordId=_text(field('recordId')),
        recordDate=visited_at.date(),
        visitedAt=visited_at,
        clinicId=_text(field('clinicId')),
        clinicName=_text(field('clinicName')),
        amountWithTax=max(0.0, parse_float(field('amountWithTax'))),
        paymentLineItems=line_items,
        treatmentCategoryRaw=category,
        treatmentNameRaw=name,
        roomName=_text(field('roomName')),
        referralSource=_text(field('referralSource')),
        appointmentRoute=_text(field('appointmentRoute')),
        staff=staff,
        patientAge=max(0, parse_int(field('patientAge'))),
        patientName=_text(field('patientName')),
        appointmentId=_text(field('appointmentId')),
        patientTypeRaw=_text(field('patientTypeRaw')),
        isFirstVisit=None if first_visit_value is None else parse_bool(first_visit_value),
        isCancelled=parse_bool(field('isCancelled')),
        confirmedAt=parse_timestamp(field('confirmedAt'), timezone),
        rowNumber=row_number,
    )


def normalize_batch(
    raws: Iterable[RawRecord],
    timezone: Optional[str] = None,
    first_row_number: int = 1
) -> Tuple[List[CanonicalVisitRecord], List[RecordError]]:
    """
    Normalize a batch of raw records.

    Records without a resolvable date are dropped and reported as warnings;
    a bad record never aborts the batch.

    Args:
        raws: Raw records in source order
        timezone: Clinic time zone for offset-aware timestamps
        first_row_number: Row number of the first raw record (2 for CSV
            files, whose row 1 is the header)

    Returns:
        Tuple of (normalized records, dropped-record warnings)
    """
    records: List[CanonicalVisitRecord] = []
    errors: List[RecordError] = []

    for offset, raw in enumerate(raws):
        row_number = first_row_number + offset
        record = normalize_record(raw, timezone=timezone, row_number=row_number)
        if record is None:
            raw_id = first_present(raw, FIELD_ALIASES['recordId']) if isinstance(raw, Mapping) else None
            errors.append(RecordError(
                field='recordDate',
                message='有効な日付がないためレコードを除外しました',
                severity=ErrorSeverity.WARNING,
                rowNumber=row_number,
                recordId=_text(raw_id),
            ))
            continue
        records.append(record)

    if errors:
        logger.warning(f"Dropped {len(errors)} records without a parseable date")
    logger.info(f"Normalized {len(records)} records")
    return records, errors


# =============================================================================
# Accounting Entries
# =============================================================================

def build_accounting_entries(records: Iterable[CanonicalVisitRecord]) -> List[AccountingEntry]:
    """
    Derive accounting entries from visit records.

    One entry per payment line item (amount = priceWithTax), paid at the
    record's confirmedAt or, when unconfirmed, at the visit timestamp. A
    record without line items yields a single entry for amountWithTax when
    that amount is positive.
    """
    entries: List[AccountingEntry] = []
    for record in records:
        paid_at = record.confirmedAt or record.visitedAt
        base_id = record.appointmentId or record.recordId or f"row{record.rowNumber}"

        if not record.paymentLineItems:
            if record.amountWithTax > 0:
                entries.append(AccountingEntry(
                    entryId=f"{base_id}-1",
                    patientId=record.recordId,
                    amount=record.amountWithTax,
                    paidAt=paid_at,
                    visitDate=record.recordDate,
                    treatmentName=record.treatmentNameRaw,
                ))
            continue

        for index, item in enumerate(record.paymentLineItems, start=1):
            entries.append(AccountingEntry(
                entryId=f"{base_id}-{index}",
                patientId=record.recordId,
                amount=item.priceWithTax,
                paidAt=paid_at,
                visitDate=record.recordDate,
                treatmentName=item.name,
                isAdvancePayment=item.isAdvancePayment,
            ))
    return entries


def normalize_accounting_entry(
    raw: RawRecord,
    timezone: Optional[str] = None
) -> Optional[AccountingEntry]:
    """
    Map a row of a dedicated accounting export to an AccountingEntry.

    Returns:
        AccountingEntry, or None when the payment date does not parse
    """
    if not isinstance(raw, Mapping):
        return None

    def field(name: str) -> Any:
        return first_present(raw, ACCOUNTING_FIELD_ALIASES[name])

    paid_at = parse_timestamp(field('paidAt'), timezone)
    if paid_at is None:
        return None

    visit_at = parse_timestamp(field('visitDate'), timezone)

    return AccountingEntry(
        entryId=_text(field('entryId')),
        patientId=_text(field('patientId')),
        amount=max(0.0, parse_float(field('amount'))),
        paidAt=paid_at,
        visitDate=visit_at.date() if visit_at is not None else None,
        treatmentName=_text(field('treatmentName')),
        isAdvancePayment=parse_bool(field('isAdvancePayment')),
    )
