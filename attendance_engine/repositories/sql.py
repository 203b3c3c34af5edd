"""SQLAlchemy-backed repositories."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendance_engine.models.alert import AlertThresholdEntity, AttendanceAlertEntity
from attendance_engine.models.attendance import AttendanceRecordEntity, ScheduledDayOffEntity
from attendance_engine.models.student import StudentEntity
from attendance_engine.schemas.alert import AlertStatus, AlertThreshold, AttendanceAlert
from attendance_engine.schemas.attendance import AttendanceRecord, ScheduledDayOff, Student

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands timezone-aware columns back as naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAttendanceRepository:
    """Attendance store on top of an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_students(self) -> list[Student]:
        async with self.session_factory() as session:
            result = await session.execute(select(StudentEntity).order_by(StudentEntity.id))
            return [self._to_student(row) for row in result.scalars().all()]

    async def get_student(self, student_id: str) -> Student | None:
        async with self.session_factory() as session:
            entity = await session.get(StudentEntity, student_id)
            return self._to_student(entity) if entity else None

    async def save_student(self, student: Student) -> Student:
        async with self.session_factory() as session:
            await session.merge(
                StudentEntity(
                    id=student.id,
                    first_name=student.first_name,
                    last_name=student.last_name,
                )
            )
            await session.commit()
        return student

    async def list_records(
        self,
        student_ids: list[str] | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[AttendanceRecord]:
        query = select(AttendanceRecordEntity)
        if student_ids is not None:
            query = query.where(AttendanceRecordEntity.student_id.in_(student_ids))
        # ISO date strings order the same way as the dates they name
        if date_from is not None:
            query = query.where(AttendanceRecordEntity.date_iso >= date_from)
        if date_to is not None:
            query = query.where(AttendanceRecordEntity.date_iso <= date_to)
        query = query.order_by(AttendanceRecordEntity.date_iso, AttendanceRecordEntity.student_id)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [self._to_record(row) for row in result.scalars().all()]

    async def get_record(self, student_id: str, date_iso: str) -> AttendanceRecord | None:
        async with self.session_factory() as session:
            entity = await session.get(AttendanceRecordEntity, (student_id, date_iso))
            return self._to_record(entity) if entity else None

    async def save_record(self, record: AttendanceRecord) -> AttendanceRecord:
        async with self.session_factory() as session:
            await session.merge(
                AttendanceRecordEntity(
                    student_id=record.student_id,
                    date_iso=record.date_iso,
                    status=record.status.value,
                    late=record.late,
                    early_dismissal=record.early_dismissal,
                )
            )
            await session.commit()
        return record

    async def list_days_off(self) -> list[ScheduledDayOff]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ScheduledDayOffEntity).order_by(ScheduledDayOffEntity.date_iso)
            )
            return [
                ScheduledDayOff(date_iso=row.date_iso, reason=row.reason, scope=row.scope)
                for row in result.scalars().all()
            ]

    async def save_day_off(self, day_off: ScheduledDayOff) -> ScheduledDayOff:
        async with self.session_factory() as session:
            await session.merge(
                ScheduledDayOffEntity(
                    date_iso=day_off.date_iso,
                    reason=day_off.reason.value,
                    scope=day_off.scope.value,
                )
            )
            await session.commit()
        return day_off

    @staticmethod
    def _to_student(entity: StudentEntity) -> Student:
        return Student(id=entity.id, first_name=entity.first_name, last_name=entity.last_name)

    @staticmethod
    def _to_record(entity: AttendanceRecordEntity) -> AttendanceRecord:
        # Rows were validated on the way in, so re-validation cannot fail
        return AttendanceRecord(
            student_id=entity.student_id,
            date_iso=entity.date_iso,
            status=entity.status,
            late=entity.late,
            early_dismissal=entity.early_dismissal,
        )


class SQLAlertRepository:
    """Threshold and alert store on top of an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_thresholds(self) -> list[AlertThreshold]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AlertThresholdEntity).order_by(
                    AlertThresholdEntity.created_at, AlertThresholdEntity.id
                )
            )
            return [self._to_threshold(row) for row in result.scalars().all()]

    async def get_threshold(self, threshold_id: str) -> AlertThreshold | None:
        async with self.session_factory() as session:
            entity = await session.get(AlertThresholdEntity, threshold_id)
            return self._to_threshold(entity) if entity else None

    async def save_threshold(self, threshold: AlertThreshold) -> AlertThreshold:
        async with self.session_factory() as session:
            await session.merge(
                AlertThresholdEntity(
                    id=threshold.id,
                    type=threshold.type.value,
                    count=threshold.count,
                    period=threshold.period.value,
                    student_id=threshold.student_id,
                    notify_parents=threshold.notify_parents,
                    created_at=threshold.created_at,
                    updated_at=threshold.updated_at,
                )
            )
            await session.commit()
        return threshold

    async def list_alerts(
        self,
        threshold_id: str | None = None,
        student_id: str | None = None,
        status: AlertStatus | None = None,
    ) -> list[AttendanceAlert]:
        query = select(AttendanceAlertEntity)
        if threshold_id is not None:
            query = query.where(AttendanceAlertEntity.threshold_id == threshold_id)
        if student_id is not None:
            query = query.where(AttendanceAlertEntity.student_id == student_id)
        if status is not None:
            query = query.where(AttendanceAlertEntity.status == status.value)
        query = query.order_by(AttendanceAlertEntity.created_at, AttendanceAlertEntity.id)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [self._to_alert(row) for row in result.scalars().all()]

    async def get_alert(self, alert_id: str) -> AttendanceAlert | None:
        async with self.session_factory() as session:
            entity = await session.get(AttendanceAlertEntity, alert_id)
            return self._to_alert(entity) if entity else None

    async def save_alert(self, alert: AttendanceAlert) -> AttendanceAlert:
        async with self.session_factory() as session:
            await session.merge(
                AttendanceAlertEntity(
                    id=alert.id,
                    student_id=alert.student_id,
                    threshold_id=alert.threshold_id,
                    type=alert.type.value,
                    current_count=alert.current_count,
                    threshold_count=alert.threshold_count,
                    period=alert.period.value,
                    status=alert.status.value,
                    dismissable=alert.dismissable,
                    notification_sent=alert.notification_sent,
                    created_at=alert.created_at,
                    updated_at=alert.updated_at,
                    dismissed_at=alert.dismissed_at,
                    intervention_successful=alert.intervention_successful,
                )
            )
            await session.commit()
        logger.debug(f"Saved alert {alert.id} ({alert.status.value})")
        return alert

    @staticmethod
    def _to_threshold(entity: AlertThresholdEntity) -> AlertThreshold:
        return AlertThreshold(
            id=entity.id,
            type=entity.type,
            count=entity.count,
            period=entity.period,
            student_id=entity.student_id,
            notify_parents=entity.notify_parents,
            created_at=_as_utc(entity.created_at),
            updated_at=_as_utc(entity.updated_at),
        )

    @staticmethod
    def _to_alert(entity: AttendanceAlertEntity) -> AttendanceAlert:
        return AttendanceAlert(
            id=entity.id,
            student_id=entity.student_id,
            threshold_id=entity.threshold_id,
            type=entity.type,
            current_count=entity.current_count,
            threshold_count=entity.threshold_count,
            period=entity.period,
            status=entity.status,
            dismissable=entity.dismissable,
            notification_sent=entity.notification_sent,
            created_at=_as_utc(entity.created_at),
            updated_at=_as_utc(entity.updated_at),
            dismissed_at=_as_utc(entity.dismissed_at),
            intervention_successful=entity.intervention_successful,
        )
