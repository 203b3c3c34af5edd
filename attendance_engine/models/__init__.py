"""SQLAlchemy models for the attendance engine."""

from attendance_engine.models.base import Base, TimestampMixin
from attendance_engine.models.student import StudentEntity
from attendance_engine.models.attendance import AttendanceRecordEntity, ScheduledDayOffEntity
from attendance_engine.models.alert import AlertThresholdEntity, AttendanceAlertEntity

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Attendance
    "StudentEntity",
    "AttendanceRecordEntity",
    "ScheduledDayOffEntity",
    # Alerts
    "AlertThresholdEntity",
    "AttendanceAlertEntity",
]
