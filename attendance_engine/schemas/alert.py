"""Alert thresholds, triggered alerts and threshold analysis schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator
from uuid_extensions import uuid7

from attendance_engine.exceptions import DomainValidationError
from attendance_engine.schemas.attendance import coerce_enum


class AlertType(str, Enum):
    """Kinds of attendance issue a threshold monitors."""

    ABSENCE = "ABSENCE"
    LATENESS = "LATENESS"
    CUMULATIVE = "CUMULATIVE"  # absences and lateness together


class AlertPeriod(str, Enum):
    """Window a threshold counts over."""

    THIRTY_DAYS = "THIRTY_DAYS"  # rolling window ending today
    CUMULATIVE = "CUMULATIVE"  # all time


class AlertStatus(str, Enum):
    """Alert lifecycle state."""

    ACTIVE = "ACTIVE"
    DISMISSED = "DISMISSED"


class ConflictType(str, Enum):
    """How two thresholds conflict."""

    DUPLICATE = "duplicate"
    OVERLAPPING = "overlapping"
    CONTRADICTORY = "contradictory"


class ConflictSeverity(str, Enum):
    """Whether a conflict blocks the write."""

    WARNING = "warning"
    ERROR = "error"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid7()}"


def validate_threshold_count(count: Any) -> int:
    """Check a threshold count is a positive whole number."""
    if isinstance(count, bool) or not isinstance(count, int):
        raise DomainValidationError(f"Threshold count must be a whole number, got {count!r}")
    if count <= 0:
        raise DomainValidationError("Threshold count must be greater than zero")
    return count


class AlertThreshold(BaseModel):
    """A configurable rule that raises alerts.

    A ``student_id`` of None makes the rule apply to every student. Only
    ``count`` and ``notify_parents`` change after creation, through update().
    """

    id: str = Field(default_factory=lambda: new_id("thresh"))
    type: AlertType
    count: int
    period: AlertPeriod
    student_id: str | None = None
    notify_parents: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _validate_rule(cls, data: Any) -> Any:
        if isinstance(data, AlertThreshold):
            return data
        if not isinstance(data, dict):
            raise DomainValidationError("AlertThreshold requires a mapping of fields")

        data = dict(data)
        data["type"] = coerce_enum(AlertType, data.get("type"), "AlertThreshold.type")
        data["period"] = coerce_enum(AlertPeriod, data.get("period"), "AlertThreshold.period")
        data["count"] = validate_threshold_count(data.get("count"))

        student_id = data.get("student_id")
        if student_id is not None:
            student_id = str(student_id).strip()
            if not student_id:
                raise DomainValidationError("AlertThreshold.student_id must be non-empty when set")
        data["student_id"] = student_id
        data["notify_parents"] = bool(data.get("notify_parents", False))
        return data

    @classmethod
    def create_new(
        cls,
        type: AlertType | str,
        count: int,
        period: AlertPeriod | str,
        student_id: str | None = None,
        notify_parents: bool = False,
    ) -> "AlertThreshold":
        """Create a new threshold with a generated ID."""
        return cls(
            type=type,
            count=count,
            period=period,
            student_id=student_id,
            notify_parents=notify_parents,
        )

    @property
    def is_global(self) -> bool:
        return self.student_id is None

    def update(self, count: int | None = None, notify_parents: bool | None = None) -> None:
        """Update the threshold settings and refresh ``updated_at``."""
        if count is not None:
            self.count = validate_threshold_count(count)
        if notify_parents is not None:
            self.notify_parents = bool(notify_parents)
        self.updated_at = utcnow()


class AttendanceAlert(BaseModel):
    """An alert raised when a student crosses a threshold."""

    id: str = Field(default_factory=lambda: new_id("alert"))
    student_id: str
    threshold_id: str
    type: AlertType
    current_count: int
    threshold_count: int
    period: AlertPeriod
    status: AlertStatus = AlertStatus.ACTIVE
    dismissable: bool = True
    notification_sent: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    dismissed_at: datetime | None = None
    intervention_successful: bool | None = None

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    def dismiss(self, intervention_successful: bool = False, at: datetime | None = None) -> None:
        """Mark the alert as dismissed by school staff."""
        if not self.dismissable:
            raise DomainValidationError(f"Alert {self.id} cannot be dismissed")
        if self.status == AlertStatus.DISMISSED:
            raise DomainValidationError(f"Alert {self.id} is already dismissed")
        now = at or utcnow()
        self.status = AlertStatus.DISMISSED
        self.intervention_successful = intervention_successful
        self.dismissed_at = now
        self.updated_at = now

    def mark_parent_notified(self) -> None:
        self.notification_sent = True
        self.updated_at = utcnow()

    @property
    def resolution_days(self) -> float | None:
        """Days between creation and dismissal, if dismissed."""
        if self.dismissed_at is None:
            return None
        return (self.dismissed_at - self.created_at).total_seconds() / 86400


class ThresholdConflict(BaseModel):
    """A conflict between a candidate threshold and an existing one."""

    threshold_id: str
    conflict_type: ConflictType
    conflicting_threshold_id: str
    severity: ConflictSeverity
    resolution: str


class ThresholdEffectiveness(BaseModel):
    """How well a threshold's alerts have led to interventions."""

    threshold_id: str
    alerts_triggered: int = 0
    false_positives: int = 0
    interventions_successful: int = 0
    average_resolution_days: float = 0.0
    last_evaluated: datetime = Field(default_factory=utcnow)


class ThresholdChange(BaseModel):
    """Candidate settings for a threshold."""

    count: int | None = None
    period: AlertPeriod | None = None
    notify_parents: bool | None = None


class ExpectedImpact(BaseModel):
    """Alerts gained/lost by replaying current counts against a candidate."""

    alerts_reduced: int
    alerts_increased: int
    effectiveness_score: float


class ThresholdComparison(BaseModel):
    """A proposed threshold change and its expected impact."""

    original_threshold: AlertThreshold
    proposed_changes: ThresholdChange
    expected_impact: ExpectedImpact


# ============== Request / Response Schemas ==============


class ThresholdCreate(BaseModel):
    """Schema for creating a threshold."""

    type: str
    count: int
    period: str
    student_id: str | None = None
    notify_parents: bool = False


class ThresholdUpdate(BaseModel):
    """Schema for updating a threshold."""

    count: int | None = None
    notify_parents: bool | None = None


class ThresholdSaveResult(BaseModel):
    """A saved threshold plus any warning-level conflicts."""

    threshold: AlertThreshold
    warnings: list[ThresholdConflict] = []


class AlertDismiss(BaseModel):
    """Schema for dismissing an alert."""

    intervention_successful: bool = False


class EvaluationResult(BaseModel):
    """Outcome of one threshold evaluation pass."""

    thresholds_evaluated: int
    students_checked: int
    alerts_created: list[AttendanceAlert]
    already_active: int
    notifications_sent: int = 0
