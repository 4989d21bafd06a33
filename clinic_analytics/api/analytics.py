"""
FastAPI router module for the clinic analytics endpoints.

Implements:
- POST /analytics/report: full report (period metrics, transitions, holidays,
  record errors) for raw API/JSON records
- POST /analytics/csv: the same report for an uploaded CSV export
- POST /analytics/cross-sell: transition matrices only
- POST /analytics/holidays: operating calendar and holiday statistics
- POST /analytics/validate: record validation findings
- POST /analytics/repeat: repeat analysis of New patients
- GET /analytics/taxonomy: treatment taxonomy and consultation table

Records are accepted in any supported raw shape: plain record dicts or
daily-accounts responses ({"values": [...]}). Empty batches are valid and
produce zeroed results.

Error mapping:
- ValueError from the engine (e.g. start after end) -> HTTP 400
- Anything unexpected is logged with its traceback -> HTTP 500
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query
from pydantic import BaseModel, Field

from clinic_analytics.core.config import get_settings
from clinic_analytics.models import (
    AnalyticsReport,
    CrossSellTransitions,
    HolidayCalendar,
    IngestionResult,
    RecordError,
    RepeatAnalysis,
    TransitionAxis,
)
from clinic_analytics.services.analytics import build_analytics_report, prepare_batch
from clinic_analytics.services.cross_sell import build_transitions
from clinic_analytics.services.holidays import detect_holidays
from clinic_analytics.services.ingestion import (
    CSV_FIRST_DATA_ROW,
    build_ingestion_result,
    extract_api_records,
    parse_csv_records,
)
from clinic_analytics.services.repeat_analysis import compute_repeat_analysis
from clinic_analytics.services.treatment_classifier import get_taxonomy_hierarchy
from clinic_analytics.services.validation import validate_batch

# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags for OpenAPI documentation
router = APIRouter(prefix="/analytics", tags=["analytics"])


# =============================================================================
# Request / Response Models
# =============================================================================


class RecordBatchRequest(BaseModel):
    """Raw records plus optional dedicated accounting rows."""
    records: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Raw visit records or daily-accounts responses"
    )
    accounting: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Optional accounting export rows; derived from line items when omitted"
    )


class ReportRequest(RecordBatchRequest):
    """Request model for the full analytics report."""
    startDate: date = Field(..., description="First day of the period (inclusive)")
    endDate: date = Field(..., description="Last day of the period (inclusive)")
    axis: TransitionAxis = Field(
        default=TransitionAxis.SUB,
        description="Category label used for the transition matrices"
    )


class CsvReportRequest(BaseModel):
    """Request model for a report built from CSV text."""
    csvText: str = Field(..., description="CSV export including the header row")
    accountingCsvText: Optional[str] = Field(
        default=None,
        description="Optional accounting CSV export"
    )
    startDate: date = Field(..., description="First day of the period (inclusive)")
    endDate: date = Field(..., description="Last day of the period (inclusive)")
    axis: TransitionAxis = Field(default=TransitionAxis.SUB)


class CsvReportResponse(BaseModel):
    """Response model for the CSV report endpoint."""
    ingestion: IngestionResult = Field(..., description="How the CSV read went")
    report: AnalyticsReport = Field(..., description="Report over the rows that were read")


class CrossSellRequest(RecordBatchRequest):
    """Request model for the transition matrices."""
    startDate: Optional[date] = Field(default=None, description="Optional first day filter")
    endDate: Optional[date] = Field(default=None, description="Optional last day filter")
    axis: TransitionAxis = Field(default=TransitionAxis.SUB)
    topN: Optional[int] = Field(default=None, ge=1, description="Top combinations to list")


class RepeatRequest(RecordBatchRequest):
    """Request model for repeat analysis."""
    asOf: date = Field(..., description="Last day considered")
    months: int = Field(default=6, ge=1, le=120, description="Trailing window in months")


class ValidateRequest(RecordBatchRequest):
    """Request model for record validation."""
    extended: Optional[bool] = Field(
        default=None,
        description="Run the data-audit checks (defaults to the server setting)"
    )


class ValidateResponse(BaseModel):
    """Response model for record validation."""
    totalRecords: int = Field(default=0, description="Records that normalized")
    invalidRecords: int = Field(default=0, description="Records with at least one finding")
    errors: List[RecordError] = Field(default_factory=list)


class TaxonomyResponse(BaseModel):
    """Response model for the taxonomy endpoint."""
    taxonomy: List[Dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Helper Functions
# =============================================================================


def _raise_for_unexpected(action: str, error: Exception) -> None:
    logger.error(f"Error {action}: {error}", exc_info=True)
    raise HTTPException(
        status_code=500,
        detail=f"Failed {action}: {str(error)}"
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/report", response_model=AnalyticsReport)
async def generate_report(
    request: ReportRequest = Body(...),
) -> AnalyticsReport:
    """
    Build the full analytics report for raw records.

    Args:
        request: Records, optional accounting rows and the date range

    Returns:
        AnalyticsReport

    Raises:
        HTTPException 400: If startDate is after endDate
    """
    try:
        raw_records = extract_api_records(request.records)
        return build_analytics_report(
            raw_records,
            request.startDate,
            request.endDate,
            raw_accounting=request.accounting,
            axis=request.axis,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        _raise_for_unexpected("building analytics report", e)


@router.post("/csv", response_model=CsvReportResponse)
async def generate_csv_report(
    request: CsvReportRequest = Body(...),
) -> CsvReportResponse:
    """
    Build the analytics report from CSV text.

    Unreadable or empty CSV input is reported in `ingestion.errors` and the
    report is computed over zero rows.

    Raises:
        HTTPException 400: If startDate is after endDate
    """
    if request.startDate > request.endDate:
        raise HTTPException(
            status_code=400,
            detail=f"startDate {request.startDate} is after endDate {request.endDate}"
        )

    try:
        rows, errors = parse_csv_records(request.csvText)

        accounting_rows = None
        if request.accountingCsvText is not None:
            accounting_rows, accounting_errors = parse_csv_records(request.accountingCsvText)
            errors.extend(accounting_errors)

        report = build_analytics_report(
            rows,
            request.startDate,
            request.endDate,
            raw_accounting=accounting_rows,
            axis=request.axis,
            first_row_number=CSV_FIRST_DATA_ROW,
        )

        return CsvReportResponse(
            ingestion=build_ingestion_result(len(rows), report.recordCount, errors),
            report=report,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        _raise_for_unexpected("building CSV analytics report", e)


@router.post("/cross-sell", response_model=CrossSellTransitions)
async def get_cross_sell(
    request: CrossSellRequest = Body(...),
) -> CrossSellTransitions:
    """
    Build the immediate-next and any-later transition matrices.

    When startDate/endDate are given only visits inside the range are used.
    """
    if request.startDate and request.endDate and request.startDate > request.endDate:
        raise HTTPException(
            status_code=400,
            detail=f"startDate {request.startDate} is after endDate {request.endDate}"
        )

    try:
        batch = prepare_batch(
            extract_api_records(request.records),
            raw_accounting=request.accounting,
            validate=False,
        )
        visits = [
            visit for visit in batch.visits
            if (request.startDate is None or visit.visit_date >= request.startDate)
            and (request.endDate is None or visit.visit_date <= request.endDate)
        ]
        return build_transitions(visits, axis=request.axis, top_n=request.topN)
    except HTTPException:
        raise
    except Exception as e:
        _raise_for_unexpected("building cross-sell transitions", e)


@router.post("/holidays", response_model=HolidayCalendar)
async def get_holidays(
    request: RecordBatchRequest = Body(...),
) -> HolidayCalendar:
    """Infer the operating calendar from the dates records fall on."""
    try:
        batch = prepare_batch(extract_api_records(request.records), validate=False)
        return detect_holidays(batch.records)
    except HTTPException:
        raise
    except Exception as e:
        _raise_for_unexpected("detecting holidays", e)


@router.post("/repeat", response_model=RepeatAnalysis)
async def get_repeat_analysis(
    request: RepeatRequest = Body(...),
) -> RepeatAnalysis:
    """Repeat rate of New patients first seen in the trailing window."""
    try:
        batch = prepare_batch(
            extract_api_records(request.records),
            raw_accounting=request.accounting,
            validate=False,
        )
        return compute_repeat_analysis(batch.visits, batch.accounting, request.asOf, request.months)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        _raise_for_unexpected("computing repeat analysis", e)


@router.post("/validate", response_model=ValidateResponse)
async def validate_records(
    request: ValidateRequest = Body(...),
) -> ValidateResponse:
    """
    Validate raw records.

    Rows that do not normalize are reported as warnings next to the
    validation findings of the rows that did. Records the exclusion switches
    keep out of the metrics are validated too.
    """
    try:
        batch = prepare_batch(extract_api_records(request.records), validate=False)
        extended = get_settings().extended_validation if request.extended is None else request.extended
        findings = validate_batch(batch.normalized, extended=extended)

        invalid_rows = {error.rowNumber for error in findings}
        logger.info(f"Validated {len(batch.normalized)} records, {len(invalid_rows)} with findings")

        return ValidateResponse(
            totalRecords=len(batch.normalized),
            invalidRecords=len(invalid_rows),
            errors=batch.errors + findings,
        )
    except HTTPException:
        raise
    except Exception as e:
        _raise_for_unexpected("validating records", e)


@router.get("/taxonomy", response_model=TaxonomyResponse)
async def get_taxonomy(
    main: Optional[str] = Query(default=None, description="Filter by main category (美容 / その他)"),
) -> TaxonomyResponse:
    """Return the treatment taxonomy and the consultation mapping table."""
    hierarchy = get_taxonomy_hierarchy()
    if main:
        hierarchy = [node for node in hierarchy if node['main'] == main]
    return TaxonomyResponse(taxonomy=hierarchy)
