"""Alert and threshold API endpoints."""

from fastapi import APIRouter, Depends

from attendance_engine.api.deps import get_alert_service
from attendance_engine.schemas.alert import (
    AlertDismiss,
    AlertPeriod,
    AlertStatus,
    AlertThreshold,
    AlertType,
    AttendanceAlert,
    EvaluationResult,
    ThresholdChange,
    ThresholdComparison,
    ThresholdConflict,
    ThresholdCreate,
    ThresholdEffectiveness,
    ThresholdSaveResult,
    ThresholdUpdate,
)
from attendance_engine.schemas.attendance import coerce_enum
from attendance_engine.schemas.common import APIResponse
from attendance_engine.services.alert_service import AlertService

router = APIRouter()


# ============== Threshold Endpoints ==============


@router.get("/thresholds", response_model=APIResponse[list[AlertThreshold]])
async def list_thresholds(service: AlertService = Depends(get_alert_service)):
    """List all alert thresholds."""
    return APIResponse(data=await service.list_thresholds())


@router.post("/thresholds", response_model=APIResponse[ThresholdSaveResult], status_code=201)
async def create_threshold(
    data: ThresholdCreate,
    service: AlertService = Depends(get_alert_service),
):
    """Create an alert threshold.

    Duplicates are rejected with 409; other conflicts come back as warnings.
    """
    result = await service.create_threshold(
        type=data.type,
        count=data.count,
        period=data.period,
        student_id=data.student_id,
        notify_parents=data.notify_parents,
    )
    return APIResponse(data=result, message="Threshold created")


@router.get("/thresholds/conflicts", response_model=APIResponse[list[ThresholdConflict]])
async def list_conflicts(service: AlertService = Depends(get_alert_service)):
    """List conflicts among the stored thresholds."""
    return APIResponse(data=await service.find_conflicts())


@router.get("/thresholds/{threshold_id}", response_model=APIResponse[AlertThreshold])
async def get_threshold(
    threshold_id: str,
    service: AlertService = Depends(get_alert_service),
):
    """Get a threshold."""
    return APIResponse(data=await service.get_threshold(threshold_id))


@router.patch("/thresholds/{threshold_id}", response_model=APIResponse[ThresholdSaveResult])
async def update_threshold(
    threshold_id: str,
    data: ThresholdUpdate,
    service: AlertService = Depends(get_alert_service),
):
    """Update a threshold's count or parent notification setting."""
    result = await service.update_threshold(
        threshold_id, count=data.count, notify_parents=data.notify_parents
    )
    return APIResponse(data=result, message="Threshold updated")


@router.get(
    "/thresholds/{threshold_id}/effectiveness",
    response_model=APIResponse[ThresholdEffectiveness],
)
async def threshold_effectiveness(
    threshold_id: str,
    service: AlertService = Depends(get_alert_service),
):
    """Summarize how a threshold's alerts were resolved."""
    return APIResponse(data=await service.assess_effectiveness(threshold_id))


@router.post(
    "/thresholds/{threshold_id}/compare",
    response_model=APIResponse[ThresholdComparison],
)
async def compare_threshold(
    threshold_id: str,
    data: ThresholdChange,
    service: AlertService = Depends(get_alert_service),
):
    """Estimate the impact of changing a threshold."""
    return APIResponse(data=await service.compare_threshold(threshold_id, data))


@router.get(
    "/thresholds/{threshold_id}/recommendation",
    response_model=APIResponse[ThresholdComparison],
)
async def recommend_adjustment(
    threshold_id: str,
    service: AlertService = Depends(get_alert_service),
):
    """Suggest a threshold change based on its effectiveness."""
    return APIResponse(data=await service.recommend_adjustment(threshold_id))


# ============== Alert Endpoints ==============


@router.post("/evaluate", response_model=APIResponse[EvaluationResult])
async def evaluate_thresholds(service: AlertService = Depends(get_alert_service)):
    """Evaluate every threshold and raise new alerts."""
    result = await service.evaluate_thresholds()
    return APIResponse(
        data=result,
        message=f"{len(result.alerts_created)} alerts created",
    )


@router.get("", response_model=APIResponse[list[AttendanceAlert]])
async def list_alerts(
    student_id: str | None = None,
    status: str | None = None,
    type: str | None = None,
    period: str | None = None,
    service: AlertService = Depends(get_alert_service),
):
    """List alerts with optional filters."""
    alerts = await service.list_alerts(
        student_id=student_id,
        status=coerce_enum(AlertStatus, status, "status") if status else None,
        type=coerce_enum(AlertType, type, "type") if type else None,
        period=coerce_enum(AlertPeriod, period, "period") if period else None,
    )
    return APIResponse(data=alerts)


@router.post("/{alert_id}/dismiss", response_model=APIResponse[AttendanceAlert])
async def dismiss_alert(
    alert_id: str,
    data: AlertDismiss,
    service: AlertService = Depends(get_alert_service),
):
    """Dismiss an alert."""
    alert = await service.dismiss_alert(alert_id, data.intervention_successful)
    return APIResponse(data=alert, message="Alert dismissed")
