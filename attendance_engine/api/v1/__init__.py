"""API v1 router aggregator."""

from fastapi import APIRouter

from attendance_engine.api.v1 import alerts, attendance, reports, students

api_router = APIRouter(tags=["API v1"])

# Include all API routers
api_router.include_router(students.router, prefix="/students", tags=["Students"])
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["Alerts"])
