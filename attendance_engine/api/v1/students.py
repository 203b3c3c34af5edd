"""Student API endpoints."""

from fastapi import APIRouter, Depends

from attendance_engine.api.deps import get_attendance_service
from attendance_engine.schemas.attendance import Student
from attendance_engine.schemas.common import APIResponse
from attendance_engine.services.attendance_service import AttendanceService

router = APIRouter()


@router.get("", response_model=APIResponse[list[Student]])
async def list_students(service: AttendanceService = Depends(get_attendance_service)):
    """List all students."""
    return APIResponse(data=await service.list_students())


@router.post("", response_model=APIResponse[Student], status_code=201)
async def create_student(
    data: Student,
    service: AttendanceService = Depends(get_attendance_service),
):
    """Add a student, or rename one with the same ID."""
    student = await service.register_student(data)
    return APIResponse(data=student, message="Student saved")
