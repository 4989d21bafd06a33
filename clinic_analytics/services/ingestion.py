"""
Record Ingestion Service

Reads raw record batches for the analytics pipeline from the two supported
sources:

- CSV uploads: comma-delimited, double-quote escaping, UTF-8 (a leading BOM
  is tolerated), header row required. Parsed with pandas with every column
  read as text so the normalizer sees the values exactly as exported.
- Clinic API batches: a daily-accounts response ({"values": [...]}), a list
  of such responses (one per clinic or page), or a plain list of records.

File-level problems (unreadable or empty input) are reported as
ValidationError values rather than raised, so an upload never aborts the
request that carried it.
"""

import io
import logging
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, TextIO, Tuple, Union

import pandas as pd

from clinic_analytics.models.schemas import (
    AccountingEntry,
    IngestionResult,
    ValidationError,
)
from clinic_analytics.services.normalizer import normalize_accounting_entry

# Configure module logger
logger = logging.getLogger(__name__)

CsvSource = Union[str, bytes, BinaryIO, TextIO]

# Row 1 of a CSV file is the header
CSV_FIRST_DATA_ROW: int = 2

# Batch-level keys copied onto API records that lack them
API_BATCH_FIELDS: Tuple[str, ...] = ('clinicId', 'clinicName')


# =============================================================================
# CSV
# =============================================================================

def _to_text_buffer(source: CsvSource) -> io.StringIO:
    if hasattr(source, 'read'):
        source = source.read()
    if isinstance(source, bytes):
        text = source.decode('utf-8-sig')
    else:
        text = str(source)
    return io.StringIO(text.lstrip('\ufeff'))


def parse_csv_records(source: CsvSource) -> Tuple[List[Dict[str, Any]], List[ValidationError]]:
    """
    Parse a CSV export into raw record dicts.

    Args:
        source: CSV text, bytes, or a readable file object

    Returns:
        Tuple of (raw records keyed by header, file-level errors). Blank cells
        come through as empty strings.
    """
    errors: List[ValidationError] = []

    try:
        buffer = _to_text_buffer(source)
        df = pd.read_csv(buffer, dtype=str, keep_default_na=False, skipinitialspace=False)
    except UnicodeDecodeError as e:
        errors.append(ValidationError(
            field='file',
            message=f'CSV file is not valid UTF-8: {str(e)}',
            row_number=None
        ))
        return [], errors
    except Exception as e:
        errors.append(ValidationError(
            field='file',
            message=f'Failed to parse CSV file: {str(e)}',
            row_number=None
        ))
        return [], errors

    if df.empty:
        errors.append(ValidationError(
            field='file',
            message='CSV file is empty or contains no data rows',
            row_number=None
        ))
        return [], errors

    df.columns = [str(column).strip() for column in df.columns]
    logger.info(f"Parsed CSV with {len(df)} rows and {len(df.columns)} columns")

    return df.to_dict(orient='records'), errors


def parse_accounting_csv(
    source: CsvSource,
    timezone: Optional[str] = None
) -> Tuple[List[AccountingEntry], List[ValidationError]]:
    """
    Parse a dedicated accounting export (会計ID, 患者ID, 金額, 支払い日, 前受金, ...).

    Rows whose payment date does not parse are skipped and reported.

    Returns:
        Tuple of (accounting entries, errors)
    """
    rows, errors = parse_csv_records(source)

    entries: List[AccountingEntry] = []
    for offset, row in enumerate(rows):
        entry = normalize_accounting_entry(row, timezone=timezone)
        if entry is None:
            errors.append(ValidationError(
                field='paidAt',
                message='Payment date is missing or invalid',
                row_number=CSV_FIRST_DATA_ROW + offset
            ))
            continue
        entries.append(entry)

    logger.info(f"Parsed {len(entries)} accounting entries ({len(rows) - len(entries)} skipped)")
    return entries, errors


# =============================================================================
# API batches
# =============================================================================

def _records_from_response(response: Mapping[str, Any]) -> List[Dict[str, Any]]:
    values = response.get('values')
    if not isinstance(values, list):
        return []

    defaults = {key: response[key] for key in API_BATCH_FIELDS if response.get(key) is not None}
    records: List[Dict[str, Any]] = []
    for value in values:
        if not isinstance(value, Mapping):
            continue
        record = dict(defaults)
        record.update({key: item for key, item in value.items() if item is not None})
        records.append(record)
    return records


def extract_api_records(payload: Any) -> List[Dict[str, Any]]:
    """
    Flatten a clinic API payload into raw record dicts.

    Args:
        payload: A daily-accounts response, a list of responses, or a list of
            plain records

    Returns:
        Raw records; anything unrecognized yields an empty list
    """
    if isinstance(payload, Mapping):
        return _records_from_response(payload)

    if not isinstance(payload, list):
        return []

    records: List[Dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, Mapping):
            continue
        if isinstance(item.get('values'), list):
            records.extend(_records_from_response(item))
        else:
            records.append(dict(item))
    return records


def build_ingestion_result(
    rows_processed: int,
    rows_accepted: int,
    errors: List[ValidationError]
) -> IngestionResult:
    """Summarize a read; the batch fails only when nothing could be read."""
    return IngestionResult(
        success=rows_processed > 0 or not errors,
        rows_processed=rows_processed,
        rows_accepted=rows_accepted,
        errors=errors,
    )
