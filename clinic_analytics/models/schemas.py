"""
Pydantic models for the clinic analytics engine.

Every computed value in the pipeline is one of these models. They are frozen
(immutable once built), request-scoped, and serialize directly to JSON via
``model_dump(mode="json")`` for API responses.

Model groups:
- Canonical records: PaymentLineItem, CanonicalVisitRecord, AccountingEntry
- Classification: ConsultationMapping, TreatmentCategory, ClassifiedVisit
- Revenue metrics: PatientRevenue, CategoryRevenue, DailyMetrics, PeriodMetrics,
  AnnualRevenueCell
- Cross-sell: TransitionMatrix, TransitionCombo, CrossSellTransitions
- Calendar: HolidayEntry, HolidayStatistics, HolidayCalendar
- Validation and ingestion: RecordError, ValidationError, IngestionResult
- Reports: RepeatAnalysis, AnalyticsReport

All models use Pydantic v2 syntax.
"""

from datetime import datetime, date as DateType
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict

from clinic_analytics.models.enums import (
    BreakdownDimension,
    ErrorSeverity,
    MainCategory,
    PatientType,
    Specialty,
    TransitionAxis,
)


# =============================================================================
# Canonical Records
# =============================================================================


class PaymentLineItem(BaseModel):
    """A single priced line on a visit's bill."""
    model_config = ConfigDict(frozen=True)

    category: Optional[str] = Field(default=None, description="Line item category text")
    name: Optional[str] = Field(default=None, description="Line item (menu) name")
    priceWithTax: float = Field(default=0.0, ge=0.0, description="Price including tax")
    staff: Optional[str] = Field(default=None, description="Main staff member on the line")
    isAdvancePayment: bool = Field(
        default=False,
        description="Whether the line was settled as an advance payment"
    )


class CanonicalVisitRecord(BaseModel):
    """
    Normalized visit/accounting record.

    Produced by the record normalizer from any supported raw shape (API daily
    accounts, Japanese or English CSV headers, legacy aliases). A record only
    exists when a valid date could be resolved.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "recordId": "P1",
                "recordDate": "2024-01-10",
                "visitedAt": "2024-01-10T00:00:00",
                "clinicName": "新宿院",
                "amountWithTax": 55000,
                "paymentLineItems": [],
                "treatmentCategoryRaw": "脱毛",
                "treatmentNameRaw": "脱毛",
                "referralSource": "Instagram",
                "patientAge": 25,
            }
        }
    )

    recordId: Optional[str] = Field(
        default=None,
        description="Patient/visitor identifier used for history joins"
    )
    recordDate: DateType = Field(..., description="Resolved calendar date of the record")
    visitedAt: datetime = Field(
        ...,
        description="Full clinic-local timestamp of the resolved date field"
    )
    clinicId: Optional[str] = Field(default=None, description="Clinic identifier")
    clinicName: Optional[str] = Field(default=None, description="Clinic display name")
    amountWithTax: float = Field(default=0.0, ge=0.0, description="Visit total including tax")
    paymentLineItems: List[PaymentLineItem] = Field(
        default_factory=list,
        description="Ordered bill lines"
    )
    treatmentCategoryRaw: Optional[str] = Field(default=None, description="Unclassified category text")
    treatmentNameRaw: Optional[str] = Field(default=None, description="Unclassified treatment name")
    roomName: Optional[str] = Field(default=None, description="Reservation room name")
    referralSource: Optional[str] = Field(default=None, description="How the patient found the clinic")
    appointmentRoute: Optional[str] = Field(default=None, description="Reservation route")
    staff: Optional[str] = Field(default=None, description="Responsible staff member")
    patientAge: int = Field(default=0, ge=0, description="Patient age; 0 when unknown")
    patientName: Optional[str] = Field(default=None, description="Patient name")
    appointmentId: Optional[str] = Field(default=None, description="Reservation identifier")
    patientTypeRaw: Optional[str] = Field(
        default=None,
        description="Source-supplied first/repeat visit label (初診/再診, U/C)"
    )
    isFirstVisit: Optional[bool] = Field(
        default=None,
        description="Source-supplied first-visit flag; None when the source has none"
    )
    isCancelled: bool = Field(default=False, description="Whether the booking was cancelled")
    confirmedAt: Optional[datetime] = Field(
        default=None,
        description="When the bill was confirmed (payment timestamp)"
    )
    rowNumber: Optional[int] = Field(default=None, ge=1, description="Source row number when known")


class AccountingEntry(BaseModel):
    """
    A single payment linked to a patient.

    Derived from visit line items or read from a dedicated accounting export.
    """
    model_config = ConfigDict(frozen=True)

    entryId: Optional[str] = Field(default=None, description="Accounting entry identifier")
    patientId: Optional[str] = Field(default=None, description="Patient the payment belongs to")
    amount: float = Field(default=0.0, ge=0.0, description="Amount received")
    paidAt: datetime = Field(..., description="When the money was received")
    visitDate: Optional[DateType] = Field(default=None, description="Visit the payment relates to")
    treatmentName: Optional[str] = Field(default=None, description="Treatment paid for")
    isAdvancePayment: bool = Field(default=False, description="Advance (deposit) payment")


# =============================================================================
# Classification
# =============================================================================


class ConsultationMapping(BaseModel):
    """One row of the consultation-menu mapping table."""
    model_config = ConfigDict(frozen=True)

    consultationName: str = Field(..., description="Consultation menu name as booked")
    specialty: Specialty = Field(..., description="Specialty the consultation is routed to")
    subcategory: str = Field(..., description="Target subcategory")
    categoryId: str = Field(..., description="Stable category identifier")
    requiresManualClassification: bool = Field(
        default=False,
        description="Informational flag; the listed subcategory is still used"
    )


class TreatmentCategory(BaseModel):
    """Canonical (main, sub, procedure) classification of a record."""
    model_config = ConfigDict(frozen=True)

    main: MainCategory = Field(..., description="Main category (美容 / その他)")
    sub: str = Field(..., description="Subcategory")
    procedure: str = Field(default="", description="Procedure name the category was derived from")


class ClassifiedVisit(BaseModel):
    """A canonical record with its treatment category and patient type."""
    model_config = ConfigDict(frozen=True)

    record: CanonicalVisitRecord = Field(..., description="Normalized record")
    category: TreatmentCategory = Field(..., description="Treatment classification")
    patientType: PatientType = Field(..., description="New / Existing / Other")

    @property
    def patient_id(self) -> Optional[str]:
        return self.record.recordId

    @property
    def visit_date(self) -> DateType:
        return self.record.recordDate


# =============================================================================
# Revenue Metrics
# =============================================================================


class PatientRevenue(BaseModel):
    """Revenue attributed to one visit inside a day or period."""
    model_config = ConfigDict(frozen=True)

    visit: ClassifiedVisit = Field(..., description="The classified visit")
    patientType: PatientType = Field(..., description="Cohort of the visit")
    sameDayAmount: float = Field(default=0.0, ge=0.0, description="Payments received on the visit day")
    totalAmount: float = Field(
        default=0.0,
        ge=0.0,
        description="All payments ever linked to the patient (advance + remaining)"
    )
    advancePayment: float = Field(default=0.0, ge=0.0, description="Advance payments linked to the patient")
    remainingPayment: float = Field(default=0.0, ge=0.0, description="Non-advance payments linked to the patient")


class CategoryRevenue(BaseModel):
    """Revenue total for one (main, sub) category."""
    model_config = ConfigDict(frozen=True)

    main: MainCategory = Field(..., description="Main category")
    sub: str = Field(..., description="Subcategory")
    amount: float = Field(default=0.0, ge=0.0, description="Summed revenue")
    patientCount: int = Field(default=0, ge=0, description="Visits contributing to the amount")


class DailyMetrics(BaseModel):
    """
    Revenue metrics for a single calendar day.

    The three averages are deliberately distinct:
    - sameDayNewAverage: same-day payments of New patients / #New
    - newAverage: lifetime payments of New patients / #New
    - existingAverage: lifetime payments of Existing patients / #Existing
    """
    model_config = ConfigDict(frozen=True)

    date: DateType = Field(..., description="Calendar day")
    totalRevenue: float = Field(default=0.0, ge=0.0, description="Payments received on the day")
    totalCount: int = Field(default=0, ge=0, description="Visits on the day")
    newPatients: List[PatientRevenue] = Field(default_factory=list)
    existingPatients: List[PatientRevenue] = Field(default_factory=list)
    otherPatients: List[PatientRevenue] = Field(default_factory=list)
    sameDayNewAverage: float = Field(default=0.0, description="当日単価（新規）")
    newAverage: float = Field(default=0.0, description="新規単価（予約金+残金）")
    existingAverage: float = Field(default=0.0, description="既存単価")
    dailyAverage: float = Field(default=0.0, description="当日単価（全体）")
    categoryBreakdown: List[CategoryRevenue] = Field(default_factory=list)


class PeriodMetrics(BaseModel):
    """
    Revenue metrics for an inclusive date range.

    Lists are the concatenation of the daily lists; averages are recomputed
    over the whole period rather than averaged across days.
    """
    model_config = ConfigDict(frozen=True)

    startDate: DateType = Field(..., description="First day (inclusive)")
    endDate: DateType = Field(..., description="Last day (inclusive)")
    totalRevenue: float = Field(default=0.0, ge=0.0)
    totalCount: int = Field(default=0, ge=0)
    newPatients: List[PatientRevenue] = Field(default_factory=list)
    existingPatients: List[PatientRevenue] = Field(default_factory=list)
    otherPatients: List[PatientRevenue] = Field(default_factory=list)
    sameDayNewAverage: float = Field(default=0.0)
    newAverage: float = Field(default=0.0)
    existingAverage: float = Field(default=0.0)
    dailyAverage: float = Field(default=0.0)
    categoryBreakdown: List[CategoryRevenue] = Field(default_factory=list)
    days: List[DailyMetrics] = Field(default_factory=list, description="Per-day results")


class AnnualRevenueCell(BaseModel):
    """Revenue for one group in one year; `key` is formatted "{group}|{year}"."""
    model_config = ConfigDict(frozen=True)

    dimension: BreakdownDimension = Field(..., description="Grouping dimension")
    group: str = Field(..., description="Group label")
    year: int = Field(..., description="Calendar year")
    amount: float = Field(default=0.0, description="Summed amountWithTax")

    @property
    def key(self) -> str:
        return f"{self.group}|{self.year}"


# =============================================================================
# Cross-Sell
# =============================================================================


class TransitionMatrix(BaseModel):
    """
    Square count matrix over the observed categories.

    ``counts[i][j]`` is the number of patients whose first-visit category was
    ``categories[i]`` and whose later visit category was ``categories[j]``.
    The category set and ordering depend on the data.
    """
    model_config = ConfigDict(frozen=True)

    categories: List[str] = Field(default_factory=list, description="Row/column labels")
    counts: List[List[int]] = Field(default_factory=list, description="Square count matrix")
    total: int = Field(default=0, ge=0, description="Sum of all cells")
    maxCount: int = Field(default=0, ge=0, description="Largest single cell")

    def get(self, from_category: str, to_category: str) -> int:
        """Return the count for a transition, 0 when either category is absent."""
        if from_category not in self.categories or to_category not in self.categories:
            return 0
        return self.counts[self.categories.index(from_category)][self.categories.index(to_category)]

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            row: dict(zip(self.categories, self.counts[i]))
            for i, row in enumerate(self.categories)
        }


class TransitionCombo(BaseModel):
    """A single (from, to) pair with its patient count."""
    model_config = ConfigDict(frozen=True)

    fromCategory: str
    toCategory: str
    count: int = Field(default=0, ge=0)


class CrossSellTransitions(BaseModel):
    """Both transition matrices plus their most frequent combinations."""
    model_config = ConfigDict(frozen=True)

    axis: TransitionAxis = Field(default=TransitionAxis.SUB, description="Category label used")
    immediateNext: TransitionMatrix = Field(default_factory=TransitionMatrix)
    anyLater: TransitionMatrix = Field(default_factory=TransitionMatrix)
    topImmediateNext: List[TransitionCombo] = Field(default_factory=list)
    topAnyLater: List[TransitionCombo] = Field(default_factory=list)
    patientsAnalyzed: int = Field(default=0, ge=0, description="Patients with >= 2 distinct visit days")


# =============================================================================
# Holiday Calendar
# =============================================================================


class HolidayEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: DateType
    appointmentCount: int = Field(default=0, ge=0)
    isHoliday: bool = Field(default=False, description="True when no record falls on the day")


class HolidayStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    totalDays: int = Field(default=0, ge=0)
    holidayDays: int = Field(default=0, ge=0)
    workingDays: int = Field(default=0, ge=0)
    holidayRate: float = Field(default=0.0, ge=0.0, le=100.0, description="Holiday share in percent")


class HolidayCalendar(BaseModel):
    """One entry per calendar day between the earliest and latest record."""
    model_config = ConfigDict(frozen=True)

    entries: List[HolidayEntry] = Field(default_factory=list)
    statistics: HolidayStatistics = Field(default_factory=HolidayStatistics)

    @property
    def holidays(self) -> List[DateType]:
        return [entry.date for entry in self.entries if entry.isHoliday]


# =============================================================================
# Validation and Ingestion
# =============================================================================


class RecordError(BaseModel):
    """Non-fatal finding about a single record."""
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Logical field the finding is about")
    message: str = Field(..., description="Human-readable message")
    severity: ErrorSeverity = Field(default=ErrorSeverity.ERROR)
    rowNumber: Optional[int] = Field(default=None, ge=1, description="Source row number")
    recordId: Optional[str] = Field(default=None, description="Patient identifier of the record")


class ValidationError(BaseModel):
    """
    Validation error detail.

    Used for reporting file-level issues during ingestion.
    """
    field: str = Field(..., description="Field with validation error")
    message: str = Field(..., description="Error message")
    row_number: Optional[int] = Field(default=None, ge=1, description="Row number where error occurred")


class IngestionResult(BaseModel):
    """Result of reading a raw batch."""
    success: bool = Field(..., description="Whether the batch could be read")
    rows_processed: int = Field(default=0, ge=0, description="Raw rows read")
    rows_accepted: int = Field(default=0, ge=0, description="Rows that normalized to a record")
    errors: List[ValidationError] = Field(default_factory=list)


# =============================================================================
# Reports
# =============================================================================


class RepeatAnalysis(BaseModel):
    """Repeat behaviour of New patients first seen in a trailing window."""
    model_config = ConfigDict(frozen=True)

    months: int = Field(..., ge=1, description="Window length in months")
    totalPatients: int = Field(default=0, ge=0)
    repeatPatients: int = Field(default=0, ge=0)
    repeatRate: float = Field(default=0.0, ge=0.0, description="Percent of patients that returned")
    averageDaysToRepeat: float = Field(default=0.0, ge=0.0)
    repeatRevenue: float = Field(default=0.0, ge=0.0)
    averageRepeatRevenue: float = Field(default=0.0, ge=0.0)


class AnalyticsReport(BaseModel):
    """Everything one analytics request produces for a date range."""
    model_config = ConfigDict(frozen=True)

    startDate: DateType
    endDate: DateType
    rawRecordCount: int = Field(default=0, ge=0)
    recordCount: int = Field(default=0, ge=0, description="Records that normalized successfully")
    droppedRecordCount: int = Field(default=0, ge=0)
    periodMetrics: PeriodMetrics
    transitions: CrossSellTransitions
    holidays: HolidayCalendar
    errors: List[RecordError] = Field(default_factory=list)
