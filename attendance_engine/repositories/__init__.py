"""Storage backends for attendance facts, thresholds and alerts."""

from attendance_engine.repositories.base import AlertRepository, AttendanceRepository
from attendance_engine.repositories.memory import InMemoryAlertRepository, InMemoryAttendanceRepository
from attendance_engine.repositories.sql import SQLAlertRepository, SQLAttendanceRepository

__all__ = [
    "AttendanceRepository",
    "AlertRepository",
    "InMemoryAttendanceRepository",
    "InMemoryAlertRepository",
    "SQLAttendanceRepository",
    "SQLAlertRepository",
]
