import pytest
from pydantic import ValidationError

from attendance_engine.exceptions import DomainValidationError, InvalidDateError
from attendance_engine.schemas.attendance import AttendanceRecord, AttendanceStatus, ScheduledDayOff


def make(status, **kwargs):
    return AttendanceRecord(student_id="s1", date_iso="2025-03-14", status=status, **kwargs)


def test_present_is_on_time_unless_late():
    record = make("PRESENT")
    assert record.on_time and not record.late and not record.excused

    late_present = make("PRESENT", late=True)
    assert late_present.late
    assert not late_present.on_time


def test_late_status_always_sets_late():
    record = make("LATE")
    assert record.status == AttendanceStatus.LATE
    assert record.late
    assert not record.on_time
    assert record.is_present


def test_late_keeps_early_dismissal():
    record = make("LATE", early_dismissal=True)
    assert record.late and record.early_dismissal


def test_excused_is_derived():
    record = make("EXCUSED")
    assert record.excused
    assert not record.on_time
    assert not record.is_present


@pytest.mark.parametrize("status", ["ABSENT", "EXCUSED"])
@pytest.mark.parametrize("flag", ["late", "early_dismissal"])
def test_absent_and_excused_reject_late_and_early(status, flag):
    with pytest.raises(DomainValidationError):
        make(status, **{flag: True})


def test_derived_flags_cannot_be_supplied():
    record = make("ABSENT", on_time=True, excused=True)
    assert not record.on_time
    assert not record.excused


def test_status_is_case_insensitive():
    assert make("late").status == AttendanceStatus.LATE


def test_unknown_status_is_rejected():
    with pytest.raises(DomainValidationError):
        make("SICK")
    with pytest.raises(DomainValidationError):
        AttendanceRecord(student_id="s1", date_iso="2025-03-14")


def test_invalid_date_is_rejected():
    with pytest.raises(InvalidDateError):
        AttendanceRecord(student_id="s1", date_iso="2025-02-30", status="PRESENT")


def test_blank_student_id_is_rejected():
    with pytest.raises(DomainValidationError):
        AttendanceRecord(student_id="  ", date_iso="2025-03-14", status="PRESENT")


def test_records_are_immutable():
    record = make("PRESENT")
    with pytest.raises(ValidationError):
        record.status = AttendanceStatus.ABSENT


def test_scheduled_day_off_validates_reason_and_date():
    day_off = ScheduledDayOff(date_iso="2025-04-18", reason="holiday")
    assert day_off.reason.value == "HOLIDAY"
    assert day_off.scope.value == "ALL_STUDENTS"

    with pytest.raises(DomainValidationError):
        ScheduledDayOff(date_iso="2025-04-18", reason="SNOW_DAY")
    with pytest.raises(InvalidDateError):
        ScheduledDayOff(date_iso="18-04-2025", reason="HOLIDAY")
