import asyncio

import pytest

from attendance_engine.exceptions import (
    DomainValidationError,
    NotFoundException,
    ThresholdConflictError,
)
from attendance_engine.schemas.alert import (
    AlertPeriod,
    AlertStatus,
    AlertType,
    ConflictType,
    ThresholdChange,
    ThresholdSaveResult,
)
from attendance_engine.services.alert_service import AlertService

from tests.helpers import TODAY, record, seed

SIX_ABSENCES = [
    record("s1", date_iso, "ABSENT")
    for date_iso in ["2025-03-03", "2025-03-04", "2025-03-05", "2025-03-06", "2025-03-07", "2025-03-10"]
]
TWO_ABSENCES = [record("s2", "2025-03-11", "ABSENT"), record("s2", "2025-03-12", "ABSENT")]


class FakeNotifier:
    def __init__(self, succeeds=True):
        self.succeeds = succeeds
        self.sent = []

    async def notify(self, alert, threshold):
        self.sent.append((alert.id, threshold.id))
        return self.succeeds


async def test_six_absences_against_count_five_raise_one_alert(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES)
    saved = await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    result = await alert_service.evaluate_thresholds()

    assert result.thresholds_evaluated == 1
    assert result.students_checked == 3
    assert len(result.alerts_created) == 1
    alert = result.alerts_created[0]
    assert alert.student_id == "s1"
    assert alert.threshold_id == saved.threshold.id
    assert (alert.current_count, alert.threshold_count) == (6, 5)
    assert alert.status == AlertStatus.ACTIVE
    assert not alert.notification_sent


async def test_active_alert_is_not_raised_twice(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES)
    await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    await alert_service.evaluate_thresholds()
    again = await alert_service.evaluate_thresholds()

    assert again.alerts_created == []
    assert again.already_active == 1
    assert len(await alert_service.list_alerts(status=AlertStatus.ACTIVE)) == 1


async def test_dismissed_alert_can_be_raised_again(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES)
    await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")
    first = (await alert_service.evaluate_thresholds()).alerts_created[0]

    dismissed = await alert_service.dismiss_alert(first.id, intervention_successful=True)
    assert dismissed.status == AlertStatus.DISMISSED
    assert dismissed.intervention_successful
    assert dismissed.dismissed_at is not None

    again = await alert_service.evaluate_thresholds()
    assert len(again.alerts_created) == 1
    assert len(await alert_service.list_alerts(student_id="s1")) == 2


async def test_dismissing_twice_or_unknown_alert(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES)
    await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")
    alert = (await alert_service.evaluate_thresholds()).alerts_created[0]
    await alert_service.dismiss_alert(alert.id)

    with pytest.raises(DomainValidationError):
        await alert_service.dismiss_alert(alert.id)
    with pytest.raises(NotFoundException):
        await alert_service.dismiss_alert("alert_missing")


async def test_thirty_day_window_ignores_older_absences(alert_service, attendance_repo):
    old = [record("s1", f"2025-01-{day:02d}", "ABSENT") for day in (6, 7, 8, 9, 10)]
    await seed(attendance_repo, old)
    await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")
    cumulative = await alert_service.create_threshold("ABSENCE", 6, "CUMULATIVE")
    assert cumulative.warnings == []

    result = await alert_service.evaluate_thresholds()
    assert result.alerts_created == []

    await alert_service.update_threshold(cumulative.threshold.id, count=5)
    result = await alert_service.evaluate_thresholds()
    assert [a.period for a in result.alerts_created] == [AlertPeriod.CUMULATIVE]


async def test_days_off_are_not_counted(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES, days_off=["2025-03-10"])
    await alert_service.create_threshold("ABSENCE", 6, "THIRTY_DAYS")

    result = await alert_service.evaluate_thresholds()

    assert result.alerts_created == []


async def test_lateness_and_cumulative_counts(alert_service, attendance_repo):
    await seed(
        attendance_repo,
        [
            record("s1", "2025-03-10", "LATE"),
            record("s1", "2025-03-11", "LATE"),
            record("s1", "2025-03-12", "PRESENT", late=True),
            record("s1", "2025-03-13", "ABSENT"),
        ],
    )
    await alert_service.create_threshold("LATENESS", 3, "THIRTY_DAYS")
    await alert_service.create_threshold("CUMULATIVE", 3, "THIRTY_DAYS")

    result = await alert_service.evaluate_thresholds()
    counts = {a.type: a.current_count for a in result.alerts_created}

    assert counts == {AlertType.LATENESS: 3, AlertType.CUMULATIVE: 3}


async def test_student_threshold_only_checks_that_student(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES + TWO_ABSENCES)
    await alert_service.create_threshold("ABSENCE", 2, "THIRTY_DAYS", student_id="s2")

    result = await alert_service.evaluate_thresholds()

    assert result.students_checked == 1
    assert [a.student_id for a in result.alerts_created] == ["s2"]


# ============== Threshold Management ==============


async def test_duplicate_threshold_is_rejected(alert_service):
    existing = await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    with pytest.raises(ThresholdConflictError) as exc_info:
        await alert_service.create_threshold("absence", 3, "thirty_days")

    conflict = exc_info.value.conflicts[0]
    assert conflict.conflict_type == ConflictType.DUPLICATE
    assert conflict.conflicting_threshold_id == existing.threshold.id
    assert exc_info.value.status_code == 409
    assert len(await alert_service.list_thresholds()) == 1


async def test_overlapping_threshold_is_saved_with_warning(alert_service):
    await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    result = await alert_service.create_threshold("ABSENCE", 4, "CUMULATIVE")

    assert [w.conflict_type for w in result.warnings] == [ConflictType.OVERLAPPING]
    assert len(await alert_service.list_thresholds()) == 2
    assert len(await alert_service.find_conflicts()) == 1


async def test_concurrent_duplicates_admit_only_one(alert_service):
    results = await asyncio.gather(
        alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS"),
        alert_service.create_threshold("ABSENCE", 6, "THIRTY_DAYS"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ThresholdSaveResult) for r in results) == 1
    assert sum(isinstance(r, ThresholdConflictError) for r in results) == 1
    assert len(await alert_service.list_thresholds()) == 1


async def test_invalid_threshold_settings(alert_service):
    with pytest.raises(DomainValidationError):
        await alert_service.create_threshold("ABSENCE", 0, "THIRTY_DAYS")
    with pytest.raises(DomainValidationError):
        await alert_service.create_threshold("TRUANCY", 3, "THIRTY_DAYS")
    assert await alert_service.list_thresholds() == []


async def test_update_threshold(alert_service):
    saved = await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    updated = await alert_service.update_threshold(saved.threshold.id, count=7, notify_parents=True)

    assert updated.threshold.count == 7
    assert updated.threshold.notify_parents
    assert updated.threshold.updated_at >= saved.threshold.updated_at
    assert (await alert_service.get_threshold(saved.threshold.id)).count == 7


async def test_failed_update_leaves_threshold_unchanged(alert_service):
    saved = await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    with pytest.raises(DomainValidationError):
        await alert_service.update_threshold(saved.threshold.id, count=-2)
    with pytest.raises(NotFoundException):
        await alert_service.update_threshold("thresh_missing", count=2)

    assert (await alert_service.get_threshold(saved.threshold.id)).count == 5


async def test_list_alerts_filters(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES + [record("s2", "2025-03-12", "LATE")])
    await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")
    await alert_service.create_threshold("LATENESS", 1, "CUMULATIVE")
    await alert_service.evaluate_thresholds()

    assert len(await alert_service.list_alerts()) == 2
    lateness = await alert_service.list_alerts(type=AlertType.LATENESS)
    assert [a.student_id for a in lateness] == ["s2"]
    assert [a.type for a in await alert_service.list_alerts(period=AlertPeriod.THIRTY_DAYS)] == [
        AlertType.ABSENCE
    ]
    assert await alert_service.list_alerts(status=AlertStatus.DISMISSED) == []


# ============== Parent Notification ==============


async def test_parents_are_notified_when_requested(alert_repo, attendance_repo):
    notifier = FakeNotifier()
    service = AlertService(alert_repo, attendance_repo, notifier=notifier, today=lambda: TODAY)
    await seed(attendance_repo, SIX_ABSENCES + TWO_ABSENCES)
    notified = await service.create_threshold("ABSENCE", 5, "THIRTY_DAYS", notify_parents=True)
    await service.create_threshold("ABSENCE", 2, "THIRTY_DAYS", student_id="s2")

    result = await service.evaluate_thresholds()

    assert result.notifications_sent == 1
    assert notifier.sent == [(result.alerts_created[0].id, notified.threshold.id)]
    stored = await service.list_alerts(student_id="s1")
    assert stored[0].notification_sent
    s2_alert = (await service.list_alerts(student_id="s2"))[0]
    assert not s2_alert.notification_sent


async def test_failed_notification_is_not_marked_sent(alert_repo, attendance_repo):
    service = AlertService(
        alert_repo, attendance_repo, notifier=FakeNotifier(succeeds=False), today=lambda: TODAY
    )
    await seed(attendance_repo, SIX_ABSENCES)
    await service.create_threshold("ABSENCE", 5, "THIRTY_DAYS", notify_parents=True)

    result = await service.evaluate_thresholds()

    assert result.notifications_sent == 0
    assert len(result.alerts_created) == 1
    assert not (await service.list_alerts())[0].notification_sent


# ============== Analysis ==============


async def _two_alerts(alert_service, attendance_repo, successes):
    await seed(attendance_repo, SIX_ABSENCES + TWO_ABSENCES)
    saved = await alert_service.create_threshold("ABSENCE", 2, "THIRTY_DAYS")
    alerts = (await alert_service.evaluate_thresholds()).alerts_created
    for alert, successful in zip(alerts, successes):
        await alert_service.dismiss_alert(alert.id, intervention_successful=successful)
    return saved.threshold


async def test_effectiveness(alert_service, attendance_repo):
    threshold = await _two_alerts(alert_service, attendance_repo, [True, False])

    effectiveness = await alert_service.assess_effectiveness(threshold.id)

    assert effectiveness.threshold_id == threshold.id
    assert effectiveness.alerts_triggered == 2
    assert effectiveness.interventions_successful == 1
    assert effectiveness.false_positives == 1
    assert effectiveness.average_resolution_days >= 0


async def test_effectiveness_of_unknown_threshold(alert_service):
    with pytest.raises(NotFoundException):
        await alert_service.assess_effectiveness("thresh_missing")


async def test_compare_threshold(alert_service, attendance_repo):
    await seed(attendance_repo, SIX_ABSENCES + TWO_ABSENCES)
    saved = await alert_service.create_threshold("ABSENCE", 2, "THIRTY_DAYS")

    raised = await alert_service.compare_threshold(saved.threshold.id, ThresholdChange(count=3))
    assert raised.original_threshold.count == 2
    assert raised.proposed_changes.count == 3
    assert (raised.expected_impact.alerts_reduced, raised.expected_impact.alerts_increased) == (1, 0)

    lowered = await alert_service.compare_threshold(saved.threshold.id, ThresholdChange(count=1))
    assert (lowered.expected_impact.alerts_reduced, lowered.expected_impact.alerts_increased) == (0, 0)

    with pytest.raises(DomainValidationError):
        await alert_service.compare_threshold(saved.threshold.id, ThresholdChange(count=0))


async def test_compare_period_change(alert_service, attendance_repo):
    old = [record("s3", f"2025-01-{day:02d}", "ABSENT") for day in (6, 7, 8)]
    await seed(attendance_repo, TWO_ABSENCES + old)
    saved = await alert_service.create_threshold("ABSENCE", 2, "THIRTY_DAYS")

    comparison = await alert_service.compare_threshold(
        saved.threshold.id, ThresholdChange(period=AlertPeriod.CUMULATIVE)
    )

    assert comparison.expected_impact.alerts_increased == 1
    assert comparison.expected_impact.alerts_reduced == 0


async def test_recommendation_raises_count_after_false_positives(alert_service, attendance_repo):
    threshold = await _two_alerts(alert_service, attendance_repo, [False, False])

    recommendation = await alert_service.recommend_adjustment(threshold.id)

    assert recommendation.proposed_changes.count == 3
    assert recommendation.expected_impact.alerts_reduced == 1
    assert recommendation.expected_impact.effectiveness_score == 0.0


async def test_recommendation_lowers_count_after_successes(alert_service, attendance_repo):
    threshold = await _two_alerts(alert_service, attendance_repo, [True, True])

    recommendation = await alert_service.recommend_adjustment(threshold.id)

    assert recommendation.proposed_changes.count == 1
    assert recommendation.expected_impact.effectiveness_score == 1.0


async def test_no_recommendation_without_alerts(alert_service):
    saved = await alert_service.create_threshold("ABSENCE", 5, "THIRTY_DAYS")

    recommendation = await alert_service.recommend_adjustment(saved.threshold.id)

    assert recommendation.proposed_changes.count is None
    assert recommendation.expected_impact.alerts_reduced == 0
