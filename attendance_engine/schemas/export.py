"""Report export schemas."""

from enum import Enum

from pydantic import BaseModel

from attendance_engine.schemas.report import ReportRequest


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    PDF = "pdf"


class ExportOptions(BaseModel):
    """Export options. ``summary_only`` drops per-record rows in every format."""

    summary_only: bool = False


class ExportRequest(BaseModel):
    """Schema for exporting a freshly generated report."""

    request: ReportRequest = ReportRequest()
    format: ExportFormat
    options: ExportOptions = ExportOptions()


class ExportedReport(BaseModel):
    filename: str
    mime_type: str
    data: str
