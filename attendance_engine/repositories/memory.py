"""In-memory repositories.

Used by the ``memory`` storage backend and as fakes in tests. Mutable alert
objects are copied on the way in and out so callers never share state with
the store.
"""

from attendance_engine.schemas.alert import AlertStatus, AlertThreshold, AttendanceAlert
from attendance_engine.schemas.attendance import AttendanceRecord, ScheduledDayOff, Student


class InMemoryAttendanceRepository:
    """Dictionary-backed attendance store."""

    def __init__(self):
        self._students: dict[str, Student] = {}
        self._records: dict[tuple[str, str], AttendanceRecord] = {}
        self._days_off: dict[str, ScheduledDayOff] = {}

    async def list_students(self) -> list[Student]:
        return sorted(self._students.values(), key=lambda s: s.id)

    async def get_student(self, student_id: str) -> Student | None:
        return self._students.get(student_id)

    async def save_student(self, student: Student) -> Student:
        self._students[student.id] = student
        return student

    async def list_records(
        self,
        student_ids: list[str] | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[AttendanceRecord]:
        wanted = set(student_ids) if student_ids is not None else None
        records = [
            record
            for record in self._records.values()
            if (wanted is None or record.student_id in wanted)
            and (date_from is None or record.date_iso >= date_from)
            and (date_to is None or record.date_iso <= date_to)
        ]
        return sorted(records, key=lambda r: (r.date_iso, r.student_id))

    async def get_record(self, student_id: str, date_iso: str) -> AttendanceRecord | None:
        return self._records.get((student_id, date_iso))

    async def save_record(self, record: AttendanceRecord) -> AttendanceRecord:
        self._records[(record.student_id, record.date_iso)] = record
        return record

    async def list_days_off(self) -> list[ScheduledDayOff]:
        return sorted(self._days_off.values(), key=lambda d: d.date_iso)

    async def save_day_off(self, day_off: ScheduledDayOff) -> ScheduledDayOff:
        self._days_off[day_off.date_iso] = day_off
        return day_off


class InMemoryAlertRepository:
    """Dictionary-backed threshold and alert store."""

    def __init__(self):
        self._thresholds: dict[str, AlertThreshold] = {}
        self._alerts: dict[str, AttendanceAlert] = {}

    async def list_thresholds(self) -> list[AlertThreshold]:
        thresholds = sorted(self._thresholds.values(), key=lambda t: (t.created_at, t.id))
        return [t.model_copy(deep=True) for t in thresholds]

    async def get_threshold(self, threshold_id: str) -> AlertThreshold | None:
        threshold = self._thresholds.get(threshold_id)
        return threshold.model_copy(deep=True) if threshold else None

    async def save_threshold(self, threshold: AlertThreshold) -> AlertThreshold:
        self._thresholds[threshold.id] = threshold.model_copy(deep=True)
        return threshold

    async def list_alerts(
        self,
        threshold_id: str | None = None,
        student_id: str | None = None,
        status: AlertStatus | None = None,
    ) -> list[AttendanceAlert]:
        alerts = [
            alert
            for alert in self._alerts.values()
            if (threshold_id is None or alert.threshold_id == threshold_id)
            and (student_id is None or alert.student_id == student_id)
            and (status is None or alert.status == status)
        ]
        alerts.sort(key=lambda a: (a.created_at, a.id))
        return [a.model_copy(deep=True) for a in alerts]

    async def get_alert(self, alert_id: str) -> AttendanceAlert | None:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    async def save_alert(self, alert: AttendanceAlert) -> AttendanceAlert:
        self._alerts[alert.id] = alert.model_copy(deep=True)
        return alert
