import os

import pytest

os.environ.setdefault("STORAGE_BACKEND", "memory")

from attendance_engine.repositories import InMemoryAlertRepository, InMemoryAttendanceRepository
from attendance_engine.services.alert_service import AlertService
from attendance_engine.services.attendance_service import AttendanceService
from attendance_engine.services.export_service import ExportService
from attendance_engine.services.query_service import QueryService
from attendance_engine.services.report_cache import InMemoryReportCache
from attendance_engine.services.report_service import ReportService

from tests.helpers import TODAY, record, seed


@pytest.fixture
def attendance_repo():
    return InMemoryAttendanceRepository()


@pytest.fixture
def alert_repo():
    return InMemoryAlertRepository()


@pytest.fixture
def cache():
    return InMemoryReportCache()


@pytest.fixture
def report_service(attendance_repo, cache):
    return ReportService(attendance_repo, cache, today=lambda: TODAY)


@pytest.fixture
def attendance_service(attendance_repo, cache):
    return AttendanceService(attendance_repo, cache)


@pytest.fixture
def alert_service(alert_repo, attendance_repo):
    return AlertService(alert_repo, attendance_repo, today=lambda: TODAY)


@pytest.fixture
def query_service(report_service, alert_service):
    return QueryService(report_service, alerts=alert_service)


@pytest.fixture
def export_service(report_service):
    return ExportService(report_service)


@pytest.fixture
async def week_of_records(attendance_repo):
    """Mon-Fri of the current week for every student."""
    records = [
        record("s1", "2025-03-10", "PRESENT"),
        record("s1", "2025-03-11", "ABSENT"),
        record("s1", "2025-03-12", "ABSENT"),
        record("s1", "2025-03-13", "ABSENT"),
        record("s1", "2025-03-14", "PRESENT"),
        record("s2", "2025-03-10", "LATE"),
        record("s2", "2025-03-11", "PRESENT"),
        record("s2", "2025-03-12", "PRESENT", early_dismissal=True),
        record("s2", "2025-03-13", "EXCUSED"),
        record("s2", "2025-03-14", "ABSENT"),
        record("s3", "2025-03-10", "PRESENT"),
        record("s3", "2025-03-11", "PRESENT"),
        record("s3", "2025-03-12", "PRESENT"),
        record("s3", "2025-03-13", "PRESENT"),
        record("s3", "2025-03-14", "LATE"),
    ]
    await seed(attendance_repo, records)
    return records
