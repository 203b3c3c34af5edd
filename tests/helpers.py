from datetime import date

from attendance_engine.schemas.attendance import AttendanceRecord, ScheduledDayOff, Student

# A Friday; its ISO week runs 2025-03-10 to 2025-03-16
TODAY = date(2025, 3, 14)

STUDENTS = [
    Student(id="s1", first_name="Ada", last_name="Lovelace"),
    Student(id="s2", first_name="Alan", last_name="Turing"),
    Student(id="s3", first_name="Grace", last_name="Hopper"),
]


def record(student_id, date_iso, status, **flags):
    return AttendanceRecord(student_id=student_id, date_iso=date_iso, status=status, **flags)


async def seed(repository, records=(), days_off=(), students=STUDENTS):
    for student in students:
        await repository.save_student(student)
    for item in records:
        await repository.save_record(item)
    for day_off in days_off:
        if not isinstance(day_off, ScheduledDayOff):
            day_off = ScheduledDayOff(date_iso=day_off, reason="HOLIDAY")
        await repository.save_day_off(day_off)
