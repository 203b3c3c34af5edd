"""Alert service for threshold management, evaluation and analysis."""

import asyncio
import logging
from collections import Counter, defaultdict
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

from attendance_engine.config import settings
from attendance_engine.exceptions import NotFoundException, ThresholdConflictError
from attendance_engine.repositories.base import AlertRepository, AttendanceRepository
from attendance_engine.schemas.alert import (
    AlertPeriod,
    AlertStatus,
    AlertThreshold,
    AlertType,
    AttendanceAlert,
    ConflictSeverity,
    ConflictType,
    EvaluationResult,
    ExpectedImpact,
    ThresholdChange,
    ThresholdComparison,
    ThresholdConflict,
    ThresholdEffectiveness,
    ThresholdSaveResult,
    validate_threshold_count,
)
from attendance_engine.schemas.attendance import AttendanceRecord, AttendanceStatus
from attendance_engine.services.notification_service import ParentNotifier

logger = logging.getLogger(__name__)


def counts_toward(alert_type: AlertType, record: AttendanceRecord) -> bool:
    """Check whether a record counts toward an alert type."""
    match alert_type:
        case AlertType.ABSENCE:
            return record.status == AttendanceStatus.ABSENT
        case AlertType.LATENESS:
            return record.status == AttendanceStatus.LATE or record.late
        case AlertType.CUMULATIVE:
            return record.status in (AttendanceStatus.ABSENT, AttendanceStatus.LATE)


def count_by_student(
    alert_type: AlertType,
    records: list[AttendanceRecord],
    days_off: set[str],
) -> Counter:
    """Tally qualifying records per student, skipping scheduled days off."""
    return Counter(
        r.student_id
        for r in records
        if r.date_iso not in days_off and counts_toward(alert_type, r)
    )


def detect_conflicts(
    candidate: AlertThreshold,
    others: list[AlertThreshold],
) -> list[ThresholdConflict]:
    """Find conflicts between a candidate threshold and existing ones.

    Only thresholds with the same type and student scope can conflict:

    - same period: duplicate (error)
    - different periods where the cumulative count is not above the 30-day
      count, so the cumulative rule always fires first: overlapping (warning)
    - different periods with opposite parent notification: contradictory
      (warning)
    """
    conflicts = []
    for other in others:
        if other.id == candidate.id:
            continue
        if other.type != candidate.type or other.student_id != candidate.student_id:
            continue

        if other.period == candidate.period:
            conflicts.append(
                ThresholdConflict(
                    threshold_id=candidate.id,
                    conflict_type=ConflictType.DUPLICATE,
                    conflicting_threshold_id=other.id,
                    severity=ConflictSeverity.ERROR,
                    resolution=(
                        f"Update threshold {other.id} instead of adding another "
                        f"{candidate.type.value} rule for the same period"
                    ),
                )
            )
            continue

        if candidate.period == AlertPeriod.CUMULATIVE:
            cumulative, rolling = candidate, other
        else:
            cumulative, rolling = other, candidate

        if cumulative.count <= rolling.count:
            conflicts.append(
                ThresholdConflict(
                    threshold_id=candidate.id,
                    conflict_type=ConflictType.OVERLAPPING,
                    conflicting_threshold_id=other.id,
                    severity=ConflictSeverity.WARNING,
                    resolution=(
                        f"The cumulative rule (count {cumulative.count}) fires before the "
                        f"30-day rule (count {rolling.count}); raise the cumulative count "
                        f"above {rolling.count} or remove one of the rules"
                    ),
                )
            )

        if candidate.notify_parents != other.notify_parents:
            conflicts.append(
                ThresholdConflict(
                    threshold_id=candidate.id,
                    conflict_type=ConflictType.CONTRADICTORY,
                    conflicting_threshold_id=other.id,
                    severity=ConflictSeverity.WARNING,
                    resolution=(
                        f"Use the same parent notification setting for both "
                        f"{candidate.type.value} rules"
                    ),
                )
            )

    return conflicts


class AlertService:
    """Service for managing alert thresholds and the alerts they raise.

    Writes to a threshold, including evaluating it, hold that threshold's
    lock so concurrent updates are never lost.
    """

    def __init__(
        self,
        alerts: AlertRepository,
        attendance: AttendanceRepository,
        notifier: ParentNotifier | None = None,
        today: Callable[[], date] | None = None,
        window_days: int | None = None,
    ):
        self.alerts = alerts
        self.attendance = attendance
        self.notifier = notifier
        self.today = today or date.today
        self.window_days = window_days or settings.alert_window_days
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_evaluated: dict[str, datetime] = {}

    # ============== Threshold Methods ==============

    async def list_thresholds(self) -> list[AlertThreshold]:
        return await self.alerts.list_thresholds()

    async def get_threshold(self, threshold_id: str) -> AlertThreshold:
        """Get a threshold by ID.

        Raises:
            NotFoundException: If no threshold has the ID
        """
        threshold = await self.alerts.get_threshold(threshold_id)
        if not threshold:
            raise NotFoundException("Alert threshold")
        return threshold

    async def create_threshold(
        self,
        type: AlertType | str,
        count: int,
        period: AlertPeriod | str,
        student_id: str | None = None,
        notify_parents: bool = False,
    ) -> ThresholdSaveResult:
        """Create a threshold.

        Raises:
            DomainValidationError: If the settings are invalid
            ThresholdConflictError: If the threshold duplicates an existing one
        """
        threshold = AlertThreshold.create_new(
            type=type,
            count=count,
            period=period,
            student_id=student_id,
            notify_parents=notify_parents,
        )

        # Creates are serialized per (type, student) scope
        scope = f"{threshold.type.value}:{threshold.student_id or '*'}"
        async with self._locks[scope]:
            warnings = self._check_conflicts(threshold, await self.alerts.list_thresholds())
            await self.alerts.save_threshold(threshold)

        logger.info(
            f"Created threshold {threshold.id}: {threshold.type.value} >= {threshold.count} "
            f"over {threshold.period.value}"
        )
        return ThresholdSaveResult(threshold=threshold, warnings=warnings)

    async def update_threshold(
        self,
        threshold_id: str,
        count: int | None = None,
        notify_parents: bool | None = None,
    ) -> ThresholdSaveResult:
        """Change a threshold's count and/or parent notification setting."""
        async with self._locks[threshold_id]:
            threshold = await self.get_threshold(threshold_id)
            threshold.update(count=count, notify_parents=notify_parents)

            warnings = self._check_conflicts(threshold, await self.alerts.list_thresholds())
            await self.alerts.save_threshold(threshold)

        logger.info(f"Updated threshold {threshold_id}")
        return ThresholdSaveResult(threshold=threshold, warnings=warnings)

    def _check_conflicts(
        self,
        threshold: AlertThreshold,
        others: list[AlertThreshold],
    ) -> list[ThresholdConflict]:
        """Raise on error-level conflicts and return the warnings."""
        conflicts = detect_conflicts(threshold, others)
        errors = [c for c in conflicts if c.severity == ConflictSeverity.ERROR]
        if errors:
            logger.warning(
                f"Threshold {threshold.id} rejected: conflicts with "
                f"{', '.join(c.conflicting_threshold_id for c in errors)}"
            )
            raise ThresholdConflictError(errors)

        warnings = [c for c in conflicts if c.severity == ConflictSeverity.WARNING]
        for warning in warnings:
            logger.info(
                f"Threshold {threshold.id} {warning.conflict_type.value} with "
                f"{warning.conflicting_threshold_id}"
            )
        return warnings

    async def find_conflicts(self) -> list[ThresholdConflict]:
        """Report every conflict among stored thresholds, each pair once."""
        thresholds = await self.alerts.list_thresholds()
        conflicts = []
        for index, threshold in enumerate(thresholds):
            conflicts.extend(detect_conflicts(threshold, thresholds[:index]))
        return conflicts

    # ============== Evaluation ==============

    async def evaluate_thresholds(self) -> EvaluationResult:
        """Raise alerts for every student at or above a threshold.

        A student who already has an active alert for a threshold gets no
        second one; the existing alert is left as it is.
        """
        thresholds = await self.alerts.list_thresholds()
        all_students = [s.id for s in await self.attendance.list_students()]
        days_off = {d.date_iso for d in await self.attendance.list_days_off()}

        created: list[AttendanceAlert] = []
        already_active = 0
        notifications_sent = 0
        checked: set[str] = set()

        for threshold in thresholds:
            async with self._locks[threshold.id]:
                student_ids = [threshold.student_id] if threshold.student_id else all_students
                checked.update(student_ids)
                counts = await self._current_counts(
                    threshold.type, threshold.period, student_ids, days_off
                )
                active = {
                    a.student_id
                    for a in await self.alerts.list_alerts(
                        threshold_id=threshold.id, status=AlertStatus.ACTIVE
                    )
                }

                for student_id in student_ids:
                    count = counts.get(student_id, 0)
                    if count < threshold.count:
                        continue
                    if student_id in active:
                        already_active += 1
                        continue

                    alert = AttendanceAlert(
                        student_id=student_id,
                        threshold_id=threshold.id,
                        type=threshold.type,
                        current_count=count,
                        threshold_count=threshold.count,
                        period=threshold.period,
                    )
                    await self.alerts.save_alert(alert)
                    logger.info(
                        f"Alert {alert.id} raised for {student_id}: {threshold.type.value} "
                        f"{count} >= {threshold.count}"
                    )

                    if threshold.notify_parents and self.notifier:
                        if await self.notifier.notify(alert, threshold):
                            alert.mark_parent_notified()
                            await self.alerts.save_alert(alert)
                            notifications_sent += 1

                    created.append(alert)

                self._last_evaluated[threshold.id] = datetime.now(timezone.utc)

        return EvaluationResult(
            thresholds_evaluated=len(thresholds),
            students_checked=len(checked),
            alerts_created=created,
            already_active=already_active,
            notifications_sent=notifications_sent,
        )

    async def _current_counts(
        self,
        alert_type: AlertType,
        period: AlertPeriod,
        student_ids: list[str],
        days_off: set[str],
    ) -> Counter:
        date_from = date_to = None
        if period == AlertPeriod.THIRTY_DAYS:
            today = self.today()
            date_from = (today - timedelta(days=self.window_days - 1)).isoformat()
            date_to = today.isoformat()

        records = await self.attendance.list_records(
            student_ids=student_ids, date_from=date_from, date_to=date_to
        )
        return count_by_student(alert_type, records, days_off)

    # ============== Alert Methods ==============

    async def list_alerts(
        self,
        student_id: str | None = None,
        status: AlertStatus | None = None,
        type: AlertType | None = None,
        period: AlertPeriod | None = None,
        threshold_id: str | None = None,
    ) -> list[AttendanceAlert]:
        """Get alerts with optional filters."""
        alerts = await self.alerts.list_alerts(
            threshold_id=threshold_id, student_id=student_id, status=status
        )
        if type:
            alerts = [a for a in alerts if a.type == type]
        if period:
            alerts = [a for a in alerts if a.period == period]
        return alerts

    async def dismiss_alert(
        self,
        alert_id: str,
        intervention_successful: bool = False,
    ) -> AttendanceAlert:
        """Dismiss an alert, recording whether the intervention worked."""
        alert = await self.alerts.get_alert(alert_id)
        if not alert:
            raise NotFoundException("Alert")

        async with self._locks[alert.threshold_id]:
            alert = await self.alerts.get_alert(alert_id)
            alert.dismiss(intervention_successful=intervention_successful)
            await self.alerts.save_alert(alert)

        logger.info(f"Alert {alert_id} dismissed (intervention_successful={intervention_successful})")
        return alert

    # ============== Analysis ==============

    async def assess_effectiveness(self, threshold_id: str) -> ThresholdEffectiveness:
        """Summarize how a threshold's alerts were resolved.

        A dismissal without a successful intervention counts as a false
        positive.
        """
        await self.get_threshold(threshold_id)
        alerts = await self.alerts.list_alerts(threshold_id=threshold_id)
        dismissed = [a for a in alerts if a.status == AlertStatus.DISMISSED]

        resolution_days = [a.resolution_days for a in dismissed if a.resolution_days is not None]
        average = round(sum(resolution_days) / len(resolution_days), 2) if resolution_days else 0.0

        return ThresholdEffectiveness(
            threshold_id=threshold_id,
            alerts_triggered=len(alerts),
            false_positives=sum(1 for a in dismissed if not a.intervention_successful),
            interventions_successful=sum(1 for a in alerts if a.intervention_successful),
            average_resolution_days=average,
            last_evaluated=self._last_evaluated.get(threshold_id, datetime.now(timezone.utc)),
        )

    async def compare_threshold(
        self,
        threshold_id: str,
        changes: ThresholdChange,
    ) -> ThresholdComparison:
        """Estimate the effect of changing a threshold.

        Current counts are replayed against the existing and the proposed
        settings; the difference in alerted students is the expected impact.
        """
        threshold = await self.get_threshold(threshold_id)
        proposed_count = threshold.count
        if changes.count is not None:
            proposed_count = validate_threshold_count(changes.count)
        proposed_period = changes.period or threshold.period

        student_ids = (
            [threshold.student_id]
            if threshold.student_id
            else [s.id for s in await self.attendance.list_students()]
        )
        days_off = {d.date_iso for d in await self.attendance.list_days_off()}

        current_counts = await self._current_counts(
            threshold.type, threshold.period, student_ids, days_off
        )
        proposed_counts = current_counts
        if proposed_period != threshold.period:
            proposed_counts = await self._current_counts(
                threshold.type, proposed_period, student_ids, days_off
            )

        currently_alerted = {s for s in student_ids if current_counts.get(s, 0) >= threshold.count}
        proposed_alerted = {s for s in student_ids if proposed_counts.get(s, 0) >= proposed_count}

        helped = {
            a.student_id
            for a in await self.alerts.list_alerts(threshold_id=threshold_id)
            if a.intervention_successful
        }
        score = 0.0
        if proposed_alerted:
            score = round(len(proposed_alerted & helped) / len(proposed_alerted), 2)

        return ThresholdComparison(
            original_threshold=threshold,
            proposed_changes=changes,
            expected_impact=ExpectedImpact(
                alerts_reduced=len(currently_alerted - proposed_alerted),
                alerts_increased=len(proposed_alerted - currently_alerted),
                effectiveness_score=score,
            ),
        )

    async def recommend_adjustment(self, threshold_id: str) -> ThresholdComparison:
        """Propose a count change from the threshold's effectiveness.

        Mostly false positives: raise the count by one. Mostly successful
        interventions: lower it by one, never below one.
        """
        threshold = await self.get_threshold(threshold_id)
        effectiveness = await self.assess_effectiveness(threshold_id)

        changes = ThresholdChange()
        if effectiveness.alerts_triggered:
            false_positive_rate = effectiveness.false_positives / effectiveness.alerts_triggered
            success_rate = effectiveness.interventions_successful / effectiveness.alerts_triggered
            if false_positive_rate > 0.5:
                changes = ThresholdChange(count=threshold.count + 1)
            elif success_rate >= 0.8 and threshold.count > 1:
                changes = ThresholdChange(count=threshold.count - 1)

        return await self.compare_threshold(threshold_id, changes)
