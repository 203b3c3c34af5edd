from datetime import datetime, timezone

import pytest

from attendance_engine.database import create_engine, create_session_factory, init_db
from attendance_engine.repositories.sql import SQLAlertRepository, SQLAttendanceRepository
from attendance_engine.schemas.alert import AlertStatus, AlertThreshold, AttendanceAlert
from attendance_engine.schemas.attendance import AttendanceStatus, Student
from attendance_engine.schemas.report import ReportRequest
from attendance_engine.services.alert_service import AlertService
from attendance_engine.services.report_cache import InMemoryReportCache
from attendance_engine.services.report_service import ReportService

from tests.helpers import TODAY, record, seed


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sql_attendance(session_factory):
    return SQLAttendanceRepository(session_factory)


@pytest.fixture
def sql_alerts(session_factory):
    return SQLAlertRepository(session_factory)


# ============== Attendance ==============


async def test_students_round_trip(sql_attendance):
    await seed(sql_attendance)

    students = await sql_attendance.list_students()

    assert [s.id for s in students] == ["s1", "s2", "s3"]
    assert (await sql_attendance.get_student("s2")).full_name == "Alan Turing"
    assert await sql_attendance.get_student("missing") is None


async def test_saving_a_student_again_updates_it(sql_attendance):
    await sql_attendance.save_student(Student(id="s1", first_name="Ada", last_name="Byron"))
    await sql_attendance.save_student(Student(id="s1", first_name="Ada", last_name="Lovelace"))

    assert [s.last_name for s in await sql_attendance.list_students()] == ["Lovelace"]


async def test_record_is_replaced_per_student_and_day(sql_attendance):
    await seed(sql_attendance, [record("s1", "2025-03-10", "ABSENT")])
    await sql_attendance.save_record(record("s1", "2025-03-10", "EXCUSED", late=False))

    records = await sql_attendance.list_records()

    assert len(records) == 1
    assert records[0].status == AttendanceStatus.EXCUSED
    fetched = await sql_attendance.get_record("s1", "2025-03-10")
    assert fetched == records[0]
    assert await sql_attendance.get_record("s1", "2025-03-11") is None


async def test_record_flags_survive(sql_attendance):
    await seed(sql_attendance, [record("s2", "2025-03-12", "PRESENT", early_dismissal=True)])

    fetched = await sql_attendance.get_record("s2", "2025-03-12")

    assert fetched.early_dismissal
    assert not fetched.late


async def test_list_records_filters(sql_attendance):
    await seed(
        sql_attendance,
        [
            record("s2", "2025-03-12", "PRESENT"),
            record("s1", "2025-03-10", "PRESENT"),
            record("s1", "2025-03-12", "ABSENT"),
            record("s1", "2025-03-14", "LATE"),
        ],
    )

    in_range = await sql_attendance.list_records(date_from="2025-03-11", date_to="2025-03-13")
    assert [(r.student_id, r.date_iso) for r in in_range] == [
        ("s1", "2025-03-12"),
        ("s2", "2025-03-12"),
    ]

    for_s1 = await sql_attendance.list_records(student_ids=["s1"], date_from="2025-03-12")
    assert [r.date_iso for r in for_s1] == ["2025-03-12", "2025-03-14"]

    assert await sql_attendance.list_records(student_ids=[]) == []


async def test_days_off_round_trip(sql_attendance):
    await seed(sql_attendance, days_off=["2025-03-17", "2025-03-03"])

    days_off = await sql_attendance.list_days_off()

    assert [d.date_iso for d in days_off] == ["2025-03-03", "2025-03-17"]
    assert days_off[0].reason.value == "HOLIDAY"
    assert days_off[0].scope.value == "ALL_STUDENTS"


# ============== Alerts ==============


async def test_threshold_round_trip_keeps_timezone(sql_alerts):
    threshold = AlertThreshold.create_new("ABSENCE", 3, "THIRTY_DAYS", notify_parents=True)
    await sql_alerts.save_threshold(threshold)

    fetched = await sql_alerts.get_threshold(threshold.id)

    assert fetched.id.startswith("thresh_")
    assert fetched.notify_parents
    assert fetched.created_at.tzinfo is not None
    assert fetched.created_at == threshold.created_at
    assert await sql_alerts.get_threshold("thresh_missing") is None


async def test_threshold_update_is_saved(sql_alerts):
    threshold = AlertThreshold.create_new("LATENESS", 5, "CUMULATIVE")
    await sql_alerts.save_threshold(threshold)

    threshold.update(count=7)
    await sql_alerts.save_threshold(threshold)

    thresholds = await sql_alerts.list_thresholds()
    assert [(t.id, t.count) for t in thresholds] == [(threshold.id, 7)]


async def test_alert_filters(sql_alerts):
    first = AttendanceAlert(
        student_id="s1",
        threshold_id="thresh_a",
        type="ABSENCE",
        current_count=3,
        threshold_count=3,
        period="THIRTY_DAYS",
    )
    second = AttendanceAlert(
        student_id="s2",
        threshold_id="thresh_a",
        type="ABSENCE",
        current_count=4,
        threshold_count=3,
        period="THIRTY_DAYS",
    )
    second.dismiss(intervention_successful=True, at=datetime(2025, 3, 20, tzinfo=timezone.utc))
    await sql_alerts.save_alert(first)
    await sql_alerts.save_alert(second)

    active = await sql_alerts.list_alerts(status=AlertStatus.ACTIVE)
    assert [a.id for a in active] == [first.id]

    dismissed = await sql_alerts.get_alert(second.id)
    assert dismissed.status == AlertStatus.DISMISSED
    assert dismissed.intervention_successful
    assert dismissed.dismissed_at == datetime(2025, 3, 20, tzinfo=timezone.utc)

    assert len(await sql_alerts.list_alerts(threshold_id="thresh_a")) == 2
    assert [a.id for a in await sql_alerts.list_alerts(student_id="s2")] == [second.id]


# ============== Services on SQL ==============


async def test_report_over_sql_repository(sql_attendance):
    await seed(
        sql_attendance,
        [
            record("s1", "2025-03-10", "PRESENT"),
            record("s1", "2025-03-11", "ABSENT"),
            record("s2", "2025-03-10", "LATE"),
            record("s2", "2025-03-11", "PRESENT"),
        ],
    )
    service = ReportService(sql_attendance, InMemoryReportCache(), today=lambda: TODAY)

    result = await service.generate_report(ReportRequest(filters={"last_name": "Lovelace"}))

    assert result.data.summary.total_records == 2
    assert result.data.summary.attendance_rate == "50%"
    assert [s.student_name for s in result.data.students] == ["Ada Lovelace"]


async def test_alert_evaluation_over_sql_repositories(sql_attendance, sql_alerts):
    await seed(
        sql_attendance,
        [record("s1", f"2025-03-1{day}", "ABSENT") for day in range(4)],
    )
    service = AlertService(sql_alerts, sql_attendance, today=lambda: TODAY)
    await service.create_threshold("ABSENCE", 3, "THIRTY_DAYS")

    result = await service.evaluate_thresholds()

    alerts = await sql_alerts.list_alerts()
    assert [(a.student_id, a.current_count) for a in alerts] == [("s1", 4)]
    assert len(result.alerts_created) == 1
