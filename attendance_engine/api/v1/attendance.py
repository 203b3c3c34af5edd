"""Attendance API endpoints."""

from fastapi import APIRouter, Depends, Query

from attendance_engine.api.deps import get_attendance_service
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
    coerce_enum,
)
from attendance_engine.schemas.common import APIResponse
from attendance_engine.services.attendance_service import AttendanceService

router = APIRouter()


@router.get("", response_model=APIResponse[list[AttendanceRecord]])
async def list_attendance(
    student_id: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    status: str | None = Query(None, description="PRESENT, LATE, ABSENT or EXCUSED"),
    service: AttendanceService = Depends(get_attendance_service),
):
    """List attendance records with optional filters."""
    status_filter = coerce_enum(AttendanceStatus, status, "status") if status else None
    records = await service.list_attendance(
        student_id=student_id,
        date_from=date_from,
        date_to=date_to,
        status=status_filter,
    )
    return APIResponse(data=records)


@router.post("", response_model=APIResponse[AttendanceRecord], status_code=201)
async def create_attendance(
    data: AttendanceRecordCreate,
    replace: bool = False,
    service: AttendanceService = Depends(get_attendance_service),
):
    """Record attendance for a single student."""
    record = await service.record_attendance(data, replace=replace)
    return APIResponse(data=record, message="Attendance recorded successfully")


@router.post("/bulk", response_model=APIResponse[BulkAttendanceResponse])
async def bulk_attendance(
    data: BulkAttendanceCreate,
    service: AttendanceService = Depends(get_attendance_service),
):
    """Record attendance for multiple students at once.

    If a record already exists for a student on the given date, it is replaced.
    """
    result = await service.record_bulk_attendance(data)
    return APIResponse(
        data=result,
        message=f"Attendance recorded: {result.success_count} successful, {result.error_count} errors",
    )


@router.get("/days-off", response_model=APIResponse[list[ScheduledDayOff]])
async def list_days_off(service: AttendanceService = Depends(get_attendance_service)):
    """List scheduled days off."""
    return APIResponse(data=await service.list_days_off())


@router.post("/days-off", response_model=APIResponse[ScheduledDayOff], status_code=201)
async def schedule_day_off(
    data: ScheduledDayOffCreate,
    service: AttendanceService = Depends(get_attendance_service),
):
    """Schedule a day off, optionally excusing every student for it."""
    day_off = await service.schedule_day_off(data)
    return APIResponse(data=day_off, message="Day off scheduled")


@router.post("/days-off/{date_iso}/excuse", response_model=APIResponse[DayOffExcuseResponse])
async def excuse_day_off(
    date_iso: str,
    service: AttendanceService = Depends(get_attendance_service),
):
    """Mark every student EXCUSED on a scheduled day off."""
    result = await service.apply_day_off_to_all_students(date_iso)
    return APIResponse(data=result, message=f"{result.excused_count} students excused")


@router.put("/{student_id}/{date_iso}", response_model=APIResponse[AttendanceRecord])
async def correct_attendance(
    student_id: str,
    date_iso: str,
    data: AttendanceRecordCorrection,
    service: AttendanceService = Depends(get_attendance_service),
):
    """Replace the attendance record for a student on a date."""
    record = await service.correct_attendance(student_id, date_iso, data)
    return APIResponse(data=record, message="Attendance corrected successfully")
