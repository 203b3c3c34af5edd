"""Attendance service for recording attendance facts and scheduled days off."""

import logging

from attendance_engine.exceptions import (
    AttendanceEngineException,
    ConflictException,
    NotFoundException,
)
from attendance_engine.repositories.base import AttendanceRepository
from attendance_engine.schemas.attendance import (
    AttendanceRecord,
    AttendanceRecordCorrection,
    AttendanceRecordCreate,
    AttendanceStatus,
    BulkAttendanceCreate,
    BulkAttendanceResponse,
    DayOffExcuseResponse,
    ScheduledDayOff,
    ScheduledDayOffCreate,
    Student,
)
from attendance_engine.services.report_cache import ReportCache
from attendance_engine.utils.dates import parse_date_iso

logger = logging.getLogger(__name__)


class AttendanceService:
    """Service for managing attendance records.

    Every write flushes the report cache, since any cached report may cover
    the changed (student, date).
    """

    def __init__(self, repository: AttendanceRepository, cache: ReportCache):
        self.repository = repository
        self.cache = cache

    async def register_student(self, student: Student) -> Student:
        """Add or rename a student."""
        saved = await self.repository.save_student(student)
        self.cache.invalidate()
        return saved

    async def list_students(self) -> list[Student]:
        return await self.repository.list_students()

    async def record_attendance(
        self,
        data: AttendanceRecordCreate,
        replace: bool = False,
    ) -> AttendanceRecord:
        """Record attendance for one student on one day.

        Raises:
            NotFoundException: If the student is unknown
            ConflictException: If a record exists and ``replace`` is False
        """
        record = AttendanceRecord(
            student_id=data.student_id,
            date_iso=data.date_iso,
            status=data.status,
            late=data.late,
            early_dismissal=data.early_dismissal,
        )
        await self._get_student(record.student_id)

        if not replace:
            existing = await self.repository.get_record(record.student_id, record.date_iso)
            if existing:
                raise ConflictException(
                    "Attendance record already exists for this student on this date"
                )

        saved = await self.repository.save_record(record)
        self.cache.invalidate()
        logger.info(f"Recorded {record.status.value} for {record.student_id} on {record.date_iso}")
        return saved

    async def correct_attendance(
        self,
        student_id: str,
        date_iso: str,
        data: AttendanceRecordCorrection,
    ) -> AttendanceRecord:
        """Replace the record for (student, date) with a corrected one."""
        parse_date_iso(date_iso)
        existing = await self.repository.get_record(student_id, date_iso)
        if not existing:
            raise NotFoundException("Attendance record")

        corrected = AttendanceRecord(
            student_id=student_id,
            date_iso=date_iso,
            status=data.status,
            late=data.late,
            early_dismissal=data.early_dismissal,
        )
        saved = await self.repository.save_record(corrected)
        self.cache.invalidate()
        logger.info(
            f"Corrected {student_id} on {date_iso}: "
            f"{existing.status.value} -> {corrected.status.value}"
        )
        return saved

    async def record_bulk_attendance(self, data: BulkAttendanceCreate) -> BulkAttendanceResponse:
        """Record attendance for multiple students at once.

        Existing records for the date are replaced. Invalid rows are reported
        back without stopping the rest of the batch.
        """
        parse_date_iso(data.date_iso)

        success_count = 0
        error_count = 0
        errors = []

        for record_data in data.records:
            try:
                record = AttendanceRecord(
                    student_id=record_data.student_id,
                    date_iso=data.date_iso,
                    status=record_data.status,
                    late=record_data.late,
                    early_dismissal=record_data.early_dismissal,
                )
                await self._get_student(record.student_id)
                await self.repository.save_record(record)
                success_count += 1

            except AttendanceEngineException as e:
                error_count += 1
                errors.append({
                    "student_id": record_data.student_id,
                    "error": e.message,
                })

        if success_count:
            self.cache.invalidate()
        logger.info(
            f"Bulk attendance for {data.date_iso}: {success_count} saved, {error_count} rejected"
        )

        return BulkAttendanceResponse(
            success_count=success_count,
            error_count=error_count,
            errors=errors,
        )

    async def list_attendance(
        self,
        student_id: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        status: AttendanceStatus | None = None,
    ) -> list[AttendanceRecord]:
        """Get attendance records with optional filters."""
        if date_from is not None:
            parse_date_iso(date_from)
        if date_to is not None:
            parse_date_iso(date_to)

        records = await self.repository.list_records(
            student_ids=[student_id] if student_id else None,
            date_from=date_from,
            date_to=date_to,
        )
        if status:
            records = [r for r in records if r.status == status]
        return records

    async def schedule_day_off(self, data: ScheduledDayOffCreate) -> ScheduledDayOff:
        """Schedule a day off, optionally excusing every student for it."""
        day_off = ScheduledDayOff(date_iso=data.date_iso, reason=data.reason)
        saved = await self.repository.save_day_off(day_off)
        self.cache.invalidate()
        logger.info(f"Scheduled day off on {day_off.date_iso} ({day_off.reason.value})")

        if data.apply_to_all_students:
            await self.apply_day_off_to_all_students(day_off.date_iso)
        return saved

    async def list_days_off(self) -> list[ScheduledDayOff]:
        return await self.repository.list_days_off()

    async def apply_day_off_to_all_students(self, date_iso: str) -> DayOffExcuseResponse:
        """Write an EXCUSED record for every student on a scheduled day off."""
        parse_date_iso(date_iso)
        days_off = {d.date_iso for d in await self.repository.list_days_off()}
        if date_iso not in days_off:
            raise NotFoundException("Scheduled day off")

        students = await self.repository.list_students()
        for student in students:
            await self.repository.save_record(
                AttendanceRecord(
                    student_id=student.id,
                    date_iso=date_iso,
                    status=AttendanceStatus.EXCUSED,
                )
            )

        self.cache.invalidate()
        logger.info(f"Excused {len(students)} students for day off on {date_iso}")
        return DayOffExcuseResponse(date_iso=date_iso, excused_count=len(students))

    async def _get_student(self, student_id: str) -> Student:
        student = await self.repository.get_student(student_id)
        if not student:
            raise NotFoundException("Student")
        return student
