"""Attendance facts: validated domain records and request/response schemas."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from attendance_engine.exceptions import DomainValidationError, InvalidDateError
from attendance_engine.utils.dates import is_date_iso


class AttendanceStatus(str, Enum):
    """Attendance status options."""

    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    EXCUSED = "EXCUSED"


class DayOffReason(str, Enum):
    """Reasons for a scheduled day off."""

    HOLIDAY = "HOLIDAY"
    PROFESSIONAL_DEVELOPMENT = "PROFESSIONAL_DEVELOPMENT"
    REPORT_CARD_CONFERENCES = "REPORT_CARD_CONFERENCES"
    OTHER = "OTHER"


class DayOffScope(str, Enum):
    """Who a scheduled day off applies to."""

    ALL_STUDENTS = "ALL_STUDENTS"


def coerce_enum(enum_cls: type[Enum], value: Any, field: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value.strip().upper() if isinstance(value, str) else value)
    except ValueError:
        raise DomainValidationError(
            f"{field} must be one of {[m.value for m in enum_cls]}, got {value!r}"
        ) from None


def require_date_iso(value: Any) -> str:
    if not is_date_iso(value):
        raise InvalidDateError(value)
    return value


class Student(BaseModel):
    """A student known to the engine."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class AttendanceRecord(BaseModel):
    """One student's attendance for one calendar day.

    Records are immutable; a correction is a new record that replaces the old
    one for the same (student, date). Invariants are enforced on construction
    and a violation raises DomainValidationError (InvalidDateError for the
    date), never a pydantic ValidationError:

    - EXCUSED and ABSENT records cannot be late or dismissed early.
    - LATE always sets ``late``; PRESENT keeps the caller's flags.
    - ``early_dismissal`` is kept only for PRESENT and LATE.
    - ``on_time`` and ``excused`` are derived and cannot be supplied.
    """

    model_config = ConfigDict(frozen=True)

    student_id: str
    date_iso: str
    status: AttendanceStatus
    late: bool = False
    early_dismissal: bool = False
    on_time: bool = False
    excused: bool = False

    @model_validator(mode="before")
    @classmethod
    def _enforce_invariants(cls, data: Any) -> Any:
        if isinstance(data, AttendanceRecord):
            return data
        if not isinstance(data, dict):
            raise DomainValidationError("AttendanceRecord requires a mapping of fields")

        student_id = str(data.get("student_id") or "").strip()
        if not student_id:
            raise DomainValidationError("AttendanceRecord.student_id must be non-empty")
        date_iso = require_date_iso(data.get("date_iso"))
        if data.get("status") is None:
            raise DomainValidationError("AttendanceRecord.status is required")
        status = coerce_enum(AttendanceStatus, data["status"], "AttendanceRecord.status")

        late = bool(data.get("late", False))
        early = bool(data.get("early_dismissal", False))

        match status:
            case AttendanceStatus.EXCUSED | AttendanceStatus.ABSENT:
                if late or early:
                    raise DomainValidationError(f"{status.value} cannot be late or early dismissal")
                normalized_late, normalized_early = False, False
            case AttendanceStatus.LATE:
                normalized_late, normalized_early = True, early
            case AttendanceStatus.PRESENT:
                normalized_late, normalized_early = late, early

        attended = status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE)
        return {
            "student_id": student_id,
            "date_iso": date_iso,
            "status": status,
            "late": normalized_late,
            "early_dismissal": normalized_early,
            "on_time": attended and not normalized_late,
            "excused": status == AttendanceStatus.EXCUSED,
        }

    @property
    def is_present(self) -> bool:
        """Check if student was present (including late)."""
        return self.status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


class ScheduledDayOff(BaseModel):
    """A planned day off for every student."""

    model_config = ConfigDict(frozen=True)

    date_iso: str
    reason: DayOffReason
    scope: DayOffScope = DayOffScope.ALL_STUDENTS

    @model_validator(mode="before")
    @classmethod
    def _validate_fields(cls, data: Any) -> Any:
        if isinstance(data, ScheduledDayOff):
            return data
        if not isinstance(data, dict):
            raise DomainValidationError("ScheduledDayOff requires a mapping of fields")
        return {
            "date_iso": require_date_iso(data.get("date_iso")),
            "reason": coerce_enum(DayOffReason, data.get("reason"), "ScheduledDayOff.reason"),
            "scope": coerce_enum(
                DayOffScope, data.get("scope", DayOffScope.ALL_STUDENTS), "ScheduledDayOff.scope"
            ),
        }


# ============== Request / Response Schemas ==============


class AttendanceRecordCreate(BaseModel):
    """Schema for recording attendance.

    Field values are checked by AttendanceRecord itself so that invalid input
    surfaces as DomainValidationError.
    """

    student_id: str
    date_iso: str
    status: str
    late: bool = False
    early_dismissal: bool = False


class AttendanceRecordCorrection(BaseModel):
    """Schema for replacing the record of a (student, date)."""

    status: str
    late: bool = False
    early_dismissal: bool = False


class BulkAttendanceRecord(BaseModel):
    """Single record for bulk attendance submission."""

    student_id: str
    status: str
    late: bool = False
    early_dismissal: bool = False


class BulkAttendanceCreate(BaseModel):
    """Schema for bulk attendance submission."""

    date_iso: str
    records: list[BulkAttendanceRecord]


class BulkAttendanceResponse(BaseModel):
    """Response for bulk attendance submission."""

    success_count: int
    error_count: int
    errors: list[dict] = []


class ScheduledDayOffCreate(BaseModel):
    """Schema for scheduling a day off."""

    date_iso: str
    reason: str
    apply_to_all_students: bool = False


class DayOffExcuseResponse(BaseModel):
    """Result of bulk-excusing every student for a day off."""

    date_iso: str
    excused_count: int
