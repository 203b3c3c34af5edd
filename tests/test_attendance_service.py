import pytest

from attendance_engine.exceptions import (
    ConflictException,
    DomainValidationError,
    InvalidDateError,
    NotFoundException,
)
from attendance_engine.schemas.attendance import (
    AttendanceRecordCorrection,
    AttendanceRecordCreate,
    AttendanceStatus,
    BulkAttendanceCreate,
    ScheduledDayOffCreate,
    Student,
)
from attendance_engine.schemas.report import ReportRequest

from tests.helpers import seed


@pytest.fixture
async def students(attendance_repo):
    await seed(attendance_repo)


async def test_record_attendance(attendance_service, students):
    record = await attendance_service.record_attendance(
        AttendanceRecordCreate(student_id="s1", date_iso="2025-03-14", status="LATE")
    )

    assert record.late
    assert await attendance_service.list_attendance(student_id="s1") == [record]


async def test_record_attendance_for_unknown_student(attendance_service, students):
    with pytest.raises(NotFoundException):
        await attendance_service.record_attendance(
            AttendanceRecordCreate(student_id="s9", date_iso="2025-03-14", status="PRESENT")
        )


async def test_record_attendance_rejects_invalid_records(attendance_service, students):
    with pytest.raises(DomainValidationError):
        await attendance_service.record_attendance(
            AttendanceRecordCreate(
                student_id="s1", date_iso="2025-03-14", status="ABSENT", early_dismissal=True
            )
        )
    assert await attendance_service.list_attendance() == []


async def test_second_record_for_same_day_needs_replace(attendance_service, students):
    data = AttendanceRecordCreate(student_id="s1", date_iso="2025-03-14", status="PRESENT")
    await attendance_service.record_attendance(data)

    with pytest.raises(ConflictException):
        await attendance_service.record_attendance(data)

    replaced = await attendance_service.record_attendance(
        data.model_copy(update={"status": "ABSENT"}), replace=True
    )
    assert replaced.status == AttendanceStatus.ABSENT
    assert len(await attendance_service.list_attendance()) == 1


async def test_correct_attendance(attendance_service, students):
    await attendance_service.record_attendance(
        AttendanceRecordCreate(student_id="s1", date_iso="2025-03-14", status="ABSENT")
    )

    corrected = await attendance_service.correct_attendance(
        "s1", "2025-03-14", AttendanceRecordCorrection(status="EXCUSED")
    )

    assert corrected.excused
    stored = await attendance_service.list_attendance(student_id="s1")
    assert [r.status for r in stored] == [AttendanceStatus.EXCUSED]


async def test_correct_missing_record(attendance_service, students):
    with pytest.raises(NotFoundException):
        await attendance_service.correct_attendance(
            "s1", "2025-03-14", AttendanceRecordCorrection(status="PRESENT")
        )
    with pytest.raises(InvalidDateError):
        await attendance_service.correct_attendance(
            "s1", "2025-14-03", AttendanceRecordCorrection(status="PRESENT")
        )


async def test_bulk_attendance_reports_rejected_rows(attendance_service, students):
    result = await attendance_service.record_bulk_attendance(
        BulkAttendanceCreate(
            date_iso="2025-03-14",
            records=[
                {"student_id": "s1", "status": "PRESENT"},
                {"student_id": "s2", "status": "ABSENT", "late": True},
                {"student_id": "s9", "status": "PRESENT"},
                {"student_id": "s3", "status": "LATE"},
            ],
        )
    )

    assert (result.success_count, result.error_count) == (2, 2)
    assert [e["student_id"] for e in result.errors] == ["s2", "s9"]
    assert {r.student_id for r in await attendance_service.list_attendance()} == {"s1", "s3"}


async def test_bulk_attendance_replaces_existing(attendance_service, students):
    await attendance_service.record_attendance(
        AttendanceRecordCreate(student_id="s1", date_iso="2025-03-14", status="ABSENT")
    )
    await attendance_service.record_bulk_attendance(
        BulkAttendanceCreate(date_iso="2025-03-14", records=[{"student_id": "s1", "status": "PRESENT"}])
    )

    records = await attendance_service.list_attendance(student_id="s1")
    assert [r.status for r in records] == [AttendanceStatus.PRESENT]


async def test_list_attendance_filters(attendance_service, students):
    for date_iso, status in [("2025-03-10", "ABSENT"), ("2025-03-11", "PRESENT"), ("2025-03-12", "ABSENT")]:
        await attendance_service.record_attendance(
            AttendanceRecordCreate(student_id="s1", date_iso=date_iso, status=status)
        )

    absent = await attendance_service.list_attendance(status=AttendanceStatus.ABSENT)
    assert [r.date_iso for r in absent] == ["2025-03-10", "2025-03-12"]

    ranged = await attendance_service.list_attendance(date_from="2025-03-11", date_to="2025-03-12")
    assert [r.date_iso for r in ranged] == ["2025-03-11", "2025-03-12"]

    with pytest.raises(InvalidDateError):
        await attendance_service.list_attendance(date_from="March 11")


async def test_schedule_day_off_excusing_everyone(attendance_service, students):
    day_off = await attendance_service.schedule_day_off(
        ScheduledDayOffCreate(date_iso="2025-04-18", reason="HOLIDAY", apply_to_all_students=True)
    )

    assert day_off.reason.value == "HOLIDAY"
    assert await attendance_service.list_days_off() == [day_off]
    records = await attendance_service.list_attendance(date_from="2025-04-18", date_to="2025-04-18")
    assert len(records) == 3
    assert all(r.status == AttendanceStatus.EXCUSED for r in records)


async def test_excusing_requires_a_scheduled_day_off(attendance_service, students):
    with pytest.raises(NotFoundException):
        await attendance_service.apply_day_off_to_all_students("2025-04-18")

    await attendance_service.schedule_day_off(
        ScheduledDayOffCreate(date_iso="2025-04-18", reason="PROFESSIONAL_DEVELOPMENT")
    )
    assert await attendance_service.list_attendance() == []

    result = await attendance_service.apply_day_off_to_all_students("2025-04-18")
    assert result.excused_count == 3


async def test_register_student_renames(attendance_service, students):
    await attendance_service.register_student(Student(id="s1", first_name="Augusta", last_name="King"))

    names = {s.id: s.full_name for s in await attendance_service.list_students()}
    assert names["s1"] == "Augusta King"


async def test_every_write_flushes_the_report_cache(
    attendance_service, report_service, cache, students
):
    writes = [
        lambda: attendance_service.record_attendance(
            AttendanceRecordCreate(student_id="s1", date_iso="2025-03-14", status="PRESENT")
        ),
        lambda: attendance_service.correct_attendance(
            "s1", "2025-03-14", AttendanceRecordCorrection(status="LATE")
        ),
        lambda: attendance_service.record_bulk_attendance(
            BulkAttendanceCreate(date_iso="2025-03-13", records=[{"student_id": "s2", "status": "ABSENT"}])
        ),
        lambda: attendance_service.schedule_day_off(
            ScheduledDayOffCreate(date_iso="2025-04-18", reason="HOLIDAY")
        ),
        lambda: attendance_service.register_student(Student(id="s4", first_name="Katherine", last_name="Johnson")),
    ]

    for write in writes:
        await report_service.generate_report(ReportRequest())
        assert len(cache) == 1
        await write()
        assert len(cache) == 0
