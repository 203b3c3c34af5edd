"""Repository interfaces shared by the services."""

from typing import Protocol

from attendance_engine.schemas.alert import AlertStatus, AlertThreshold, AttendanceAlert
from attendance_engine.schemas.attendance import AttendanceRecord, ScheduledDayOff, Student


class AttendanceRepository(Protocol):
    """Students, attendance records and scheduled days off."""

    async def list_students(self) -> list[Student]: ...

    async def get_student(self, student_id: str) -> Student | None: ...

    async def save_student(self, student: Student) -> Student: ...

    async def list_records(
        self,
        student_ids: list[str] | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[AttendanceRecord]:
        """List records, optionally limited to students and an inclusive date range."""
        ...

    async def get_record(self, student_id: str, date_iso: str) -> AttendanceRecord | None: ...

    async def save_record(self, record: AttendanceRecord) -> AttendanceRecord:
        """Insert a record, replacing any existing one for the same (student, date)."""
        ...

    async def list_days_off(self) -> list[ScheduledDayOff]: ...

    async def save_day_off(self, day_off: ScheduledDayOff) -> ScheduledDayOff: ...


class AlertRepository(Protocol):
    """Alert thresholds and the alerts they raise."""

    async def list_thresholds(self) -> list[AlertThreshold]: ...

    async def get_threshold(self, threshold_id: str) -> AlertThreshold | None: ...

    async def save_threshold(self, threshold: AlertThreshold) -> AlertThreshold: ...

    async def list_alerts(
        self,
        threshold_id: str | None = None,
        student_id: str | None = None,
        status: AlertStatus | None = None,
    ) -> list[AttendanceAlert]: ...

    async def get_alert(self, alert_id: str) -> AttendanceAlert | None: ...

    async def save_alert(self, alert: AttendanceAlert) -> AttendanceAlert: ...
