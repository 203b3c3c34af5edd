"""Pydantic schemas for domain objects and request/response validation."""

from attendance_engine.schemas.alert import (
    AlertPeriod,
    AlertStatus,
    AlertThreshold,
    AlertType,
    AttendanceAlert,
    ConflictSeverity,
    ConflictType,
    ThresholdConflict,
    ThresholdEffectiveness,
)
from attendance_engine.schemas.attendance import (
    AttendanceRecord,
    AttendanceRecordCreate,
    AttendanceStatus,
    BulkAttendanceCreate,
    BulkAttendanceRecord,
    BulkAttendanceResponse,
    DayOffReason,
    DayOffScope,
    ScheduledDayOff,
    Student,
)
from attendance_engine.schemas.common import APIResponse, PaginationMeta
from attendance_engine.schemas.export import ExportedReport, ExportFormat, ExportOptions
from attendance_engine.schemas.query import InterpreterResponse, ParsedQuery, QueryIntent
from attendance_engine.schemas.report import ReportRequest, ReportResult

__all__ = [
    # Common
    "APIResponse",
    "PaginationMeta",
    # Attendance
    "Student",
    "AttendanceStatus",
    "AttendanceRecord",
    "AttendanceRecordCreate",
    "BulkAttendanceRecord",
    "BulkAttendanceCreate",
    "BulkAttendanceResponse",
    "DayOffReason",
    "DayOffScope",
    "ScheduledDayOff",
    # Reports
    "ReportRequest",
    "ReportResult",
    "ExportFormat",
    "ExportOptions",
    "ExportedReport",
    # Alerts
    "AlertType",
    "AlertPeriod",
    "AlertStatus",
    "AlertThreshold",
    "AttendanceAlert",
    "ConflictType",
    "ConflictSeverity",
    "ThresholdConflict",
    "ThresholdEffectiveness",
    # Queries
    "QueryIntent",
    "ParsedQuery",
    "InterpreterResponse",
]
