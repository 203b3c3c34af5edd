"""Report request and result schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from attendance_engine.exceptions import DomainValidationError
from attendance_engine.schemas.attendance import AttendanceStatus, coerce_enum, require_date_iso
from attendance_engine.schemas.common import PaginationMeta
from attendance_engine.utils.dates import RelativePeriod


class SortField(str, Enum):
    """Row fields a report can be sorted by."""

    DATE = "date"
    NAME = "name"
    STATUS = "status"
    STUDENT_ID = "student_id"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class QueryComplexity(str, Enum):
    """Coarse cost tag of a report request."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


# ============== Request Schemas ==============


class ReportFilters(BaseModel):
    """Fixed filter dimensions of a report."""

    last_name: str | None = None
    status: AttendanceStatus | None = None
    date_iso: str | None = None
    relative_period: RelativePeriod | None = None

    @field_validator("last_name", mode="before")
    @classmethod
    def _blank_name_is_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return coerce_enum(AttendanceStatus, value, "filters.status")

    @field_validator("date_iso", mode="before")
    @classmethod
    def _check_date(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return require_date_iso(value)

    @field_validator("relative_period", mode="before")
    @classmethod
    def _coerce_period(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, RelativePeriod):
            return value
        try:
            return RelativePeriod(str(value).strip().lower())
        except ValueError:
            raise DomainValidationError(
                f"filters.relative_period must be one of {[p.value for p in RelativePeriod]}, "
                f"got {value!r}"
            ) from None


class ReportAggregations(BaseModel):
    """Which aggregations to compute."""

    include_count: bool = True
    include_percentage: bool = True
    include_streaks: bool = False
    include_trends: bool = False


class ReportPagination(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=1000)


class ReportSorting(BaseModel):
    field: SortField = SortField.DATE
    direction: SortDirection = SortDirection.ASC


class ReportRequest(BaseModel):
    """A structured report request."""

    report_type: str = "attendance-report"
    filters: ReportFilters = Field(default_factory=ReportFilters)
    aggregations: ReportAggregations = Field(default_factory=ReportAggregations)
    pagination: ReportPagination | None = None
    sorting: ReportSorting | None = None
    use_cache: bool = True


# ============== Result Schemas ==============


class ReportSummary(BaseModel):
    """Aggregate figures over every row matched by the filters."""

    total_records: int
    total_students: int
    date_from: str | None = None
    date_to: str | None = None
    counts: dict[str, int] | None = None
    percentages: dict[str, str] | None = None
    attendance_rate: str | None = None


class RecordRow(BaseModel):
    student_id: str
    student_name: str
    date_iso: str
    status: AttendanceStatus
    late: bool
    early_dismissal: bool
    day_off: bool = False


class StudentRow(BaseModel):
    student_id: str
    student_name: str
    total_records: int
    present: int
    late: int
    absent: int
    excused: int
    attendance_rate: str


class StreakRow(BaseModel):
    """Absence streaks counted in school days."""

    student_id: str
    student_name: str
    longest_absence_streak: int
    current_absence_streak: int


class TrendPeriod(BaseModel):
    date_from: str
    date_to: str
    total_records: int
    attendance_rate: float


class TrendSummary(BaseModel):
    """Attendance rate of the current period against the preceding one."""

    current: TrendPeriod
    previous: TrendPeriod
    delta: float
    direction: TrendDirection


class ReportData(BaseModel):
    summary: ReportSummary
    records: list[RecordRow] = []
    students: list[StudentRow] = []
    streaks: list[StreakRow] | None = None
    trends: TrendSummary | None = None
    pagination: PaginationMeta | None = None


class ReportMetrics(BaseModel):
    execution_time_ms: float
    cache_hit: bool
    query_complexity: QueryComplexity


class ReportResult(BaseModel):
    """A generated report.

    ``data`` depends only on the request fingerprint and the stored facts;
    ``generated_at`` and ``metrics`` describe the particular call.
    """

    report_type: str
    generated_at: datetime
    data: ReportData
    metrics: ReportMetrics
