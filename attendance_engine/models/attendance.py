"""Attendance tracking models."""

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from attendance_engine.models.base import Base, TimestampMixin
from attendance_engine.schemas.attendance import AttendanceStatus, DayOffScope


class AttendanceRecordEntity(Base, TimestampMixin):
    """Daily attendance record for a student.

    At most one row exists per (student, date); a correction overwrites it.
    """

    __tablename__ = "attendance_records"
    __table_args__ = (Index("idx_attendance_date", "date_iso"),)

    student_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("students.id", ondelete="CASCADE"),
        primary_key=True,
    )
    date_iso: Mapped[str] = mapped_column(String(10), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AttendanceStatus.ABSENT.value,
    )
    late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    early_dismissal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ScheduledDayOffEntity(Base, TimestampMixin):
    """A planned day off."""

    __tablename__ = "scheduled_days_off"

    date_iso: Mapped[str] = mapped_column(String(10), primary_key=True)
    reason: Mapped[str] = mapped_column(String(40), nullable=False)
    scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DayOffScope.ALL_STUDENTS.value,
    )
