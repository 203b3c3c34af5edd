"""Report API endpoints."""

import time

from fastapi import APIRouter, Depends

from attendance_engine.api.deps import get_export_service, get_query_service, get_report_service
from attendance_engine.config import settings
from attendance_engine.schemas.common import APIResponse
from attendance_engine.schemas.export import ExportedReport, ExportRequest
from attendance_engine.schemas.query import InterpreterResponse, NaturalLanguageQuery
from attendance_engine.schemas.report import ReportRequest, ReportResult
from attendance_engine.services.export_service import ExportService
from attendance_engine.services.query_service import QueryService
from attendance_engine.services.report_service import ReportService

router = APIRouter()


@router.post("", response_model=APIResponse[ReportResult])
async def generate_report(
    data: ReportRequest,
    service: ReportService = Depends(get_report_service),
):
    """Generate an attendance report."""
    result = await service.generate_report(data)
    return APIResponse(data=result)


@router.post("/export", response_model=APIResponse[ExportedReport])
async def export_report(
    data: ExportRequest,
    service: ExportService = Depends(get_export_service),
):
    """Generate a report and render it as CSV, JSON or PDF-ready text."""
    exported = await service.export_report(data.request, data.format, data.options)
    return APIResponse(data=exported)


@router.post("/natural-language", response_model=APIResponse[InterpreterResponse])
async def natural_language_query(
    data: NaturalLanguageQuery,
    service: QueryService = Depends(get_query_service),
):
    """Answer a free-text question about attendance.

    Failures still return 200 with ``success`` false and a generic answer.
    """
    deadline = time.monotonic() + settings.query_service_timeout_seconds * settings.query_retry_attempts
    response = await service.interpret(data.query, deadline=deadline)
    return APIResponse(
        status="success" if response.success else "error",
        data=response,
    )
