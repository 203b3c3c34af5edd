"""Service layer for business logic."""

from attendance_engine.services.alert_service import AlertService
from attendance_engine.services.attendance_service import AttendanceService
from attendance_engine.services.export_service import ExportService
from attendance_engine.services.notification_service import ParentNotifier, WebhookParentNotifier
from attendance_engine.services.query_client import QueryAnsweringClient
from attendance_engine.services.query_service import QueryService
from attendance_engine.services.report_cache import InMemoryReportCache, ReportCache
from attendance_engine.services.report_service import ReportService

__all__ = [
    "AttendanceService",
    "ReportService",
    "ReportCache",
    "InMemoryReportCache",
    "AlertService",
    "ParentNotifier",
    "WebhookParentNotifier",
    "QueryService",
    "QueryAnsweringClient",
    "ExportService",
]
