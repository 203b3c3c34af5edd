"""Service wiring for the API.

Services holding shared state (the report cache, in-flight report
computations, per-threshold locks) are process-wide singletons.
"""

from functools import lru_cache

from attendance_engine.config import settings
from attendance_engine.repositories import (
    InMemoryAlertRepository,
    InMemoryAttendanceRepository,
    SQLAlertRepository,
    SQLAttendanceRepository,
)
from attendance_engine.services.alert_service import AlertService
from attendance_engine.services.attendance_service import AttendanceService
from attendance_engine.services.export_service import ExportService
from attendance_engine.services.notification_service import WebhookParentNotifier
from attendance_engine.services.query_client import QueryAnsweringClient
from attendance_engine.services.query_service import QueryService
from attendance_engine.services.report_cache import InMemoryReportCache
from attendance_engine.services.report_service import ReportService


@lru_cache
def get_report_cache() -> InMemoryReportCache:
    return InMemoryReportCache(max_entries=settings.report_cache_max_entries)


@lru_cache
def get_attendance_repository():
    if settings.storage_backend == "memory":
        return InMemoryAttendanceRepository()
    from attendance_engine.database import async_session_factory

    return SQLAttendanceRepository(async_session_factory)


@lru_cache
def get_alert_repository():
    if settings.storage_backend == "memory":
        return InMemoryAlertRepository()
    from attendance_engine.database import async_session_factory

    return SQLAlertRepository(async_session_factory)


def get_attendance_service() -> AttendanceService:
    """Get attendance service instance."""
    return AttendanceService(get_attendance_repository(), get_report_cache())


@lru_cache
def get_report_service() -> ReportService:
    """Get report service instance."""
    return ReportService(get_attendance_repository(), get_report_cache())


@lru_cache
def get_alert_service() -> AlertService:
    """Get alert service instance."""
    notifier = None
    if settings.parent_notification_webhook_url:
        notifier = WebhookParentNotifier(
            settings.parent_notification_webhook_url,
            secret=settings.parent_notification_webhook_secret,
        )
    return AlertService(get_alert_repository(), get_attendance_repository(), notifier=notifier)


def get_query_service() -> QueryService:
    """Get query service instance."""
    client = None
    if settings.query_service_configured:
        client = QueryAnsweringClient.from_settings(settings)
    return QueryService(get_report_service(), alerts=get_alert_service(), client=client)


def get_export_service() -> ExportService:
    """Get export service instance."""
    return ExportService(get_report_service())
