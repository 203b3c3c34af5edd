"""Parent notification delivery for triggered alerts."""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Protocol

import httpx

from attendance_engine.schemas.alert import AlertThreshold, AttendanceAlert

logger = logging.getLogger(__name__)


class ParentNotifier(Protocol):
    """Delivers an alert to a student's parents. Returns True on success."""

    async def notify(self, alert: AttendanceAlert, threshold: AlertThreshold) -> bool: ...


class WebhookParentNotifier:
    """Posts signed alert events to a webhook that handles parent messaging."""

    def __init__(
        self,
        url: str,
        secret: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    def _sign_payload(self, payload: str) -> str:
        """Sign a payload with HMAC-SHA256."""
        signature = hmac.new(
            self.secret.encode(),
            payload.encode(),
            hashlib.sha256,
        ).hexdigest()
        return f"sha256={signature}"

    async def notify(self, alert: AttendanceAlert, threshold: AlertThreshold) -> bool:
        """Deliver an alert event to the webhook."""
        body = json.dumps(
            {
                "event": "attendance.alert.created",
                "data": {
                    "alert_id": alert.id,
                    "student_id": alert.student_id,
                    "type": alert.type.value,
                    "period": alert.period.value,
                    "current_count": alert.current_count,
                    "threshold_count": threshold.count,
                },
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

        headers = {
            "Content-Type": "application/json",
            "X-Attendance-Event": "attendance.alert.created",
            "X-Attendance-Delivery": alert.id,
        }
        if self.secret:
            headers["X-Attendance-Signature"] = self._sign_payload(body)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, content=body, headers=headers)

            if 200 <= response.status_code < 300:
                logger.info(f"Parent notification for alert {alert.id} delivered")
                return True
            logger.warning(
                f"Parent notification for alert {alert.id} failed with status {response.status_code}"
            )

        except httpx.HTTPError as e:
            logger.error(f"Parent notification for alert {alert.id} delivery error: {e}")

        return False
