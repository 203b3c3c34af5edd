"""Alert threshold and alert models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from attendance_engine.models.base import Base


class AlertThresholdEntity(Base):
    """A configured alert rule."""

    __tablename__ = "alert_thresholds"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    notify_parents: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AttendanceAlertEntity(Base):
    """An alert raised against a threshold. Rows are never deleted."""

    __tablename__ = "attendance_alerts"
    __table_args__ = (
        Index("idx_alert_threshold_student", "threshold_id", "student_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    threshold_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("alert_thresholds.id"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, nullable=False)
    threshold_count: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    dismissable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    dismissed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    intervention_successful: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
