"""Client for the external query-answering service."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from attendance_engine.config import Settings
from attendance_engine.exceptions import ResponseValidationError, ResponseValidationErrorType
from attendance_engine.utils.retry import retry_async

logger = logging.getLogger(__name__)


class QueryAnsweringClient:
    """Asks an external service to phrase the answer to a question.

    The service receives the question and the locally computed draft answer
    and returns ``{"answer", "confidence", "data"?, "suggested_actions"?}``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.attempts = attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.transport = transport
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryAnsweringClient":
        return cls(
            base_url=settings.query_service_url,
            api_key=settings.query_service_api_key,
            timeout=settings.query_service_timeout_seconds,
            attempts=settings.query_retry_attempts,
            base_delay=settings.query_retry_base_delay_seconds,
            max_delay=settings.query_retry_max_delay_seconds,
        )

    async def answer(
        self,
        question: str,
        draft: dict[str, Any],
        deadline: float | None = None,
    ) -> dict[str, Any]:
        """Get the service's answer for a question.

        Args:
            question: Sanitized question text
            draft: Locally computed answer the service may rephrase
            deadline: Absolute ``time.monotonic()`` deadline for all attempts

        Raises:
            ResponseValidationError: TIMEOUT, API_ERROR or PARSING_ERROR
        """
        payload = {"query": question, "draft": draft}

        try:
            return await retry_async(
                lambda: self._send_request(payload),
                attempts=self.attempts,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                deadline=deadline,
                sleep=self.sleep,
            )
        except (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ResponseValidationError(
                ResponseValidationErrorType.TIMEOUT,
                f"Query service timed out: {e}",
            ) from e
        except httpx.HTTPStatusError as e:
            raise ResponseValidationError(
                ResponseValidationErrorType.API_ERROR,
                f"Query service error: {e.response.status_code} - {e.response.text[:200]}",
            ) from e
        except httpx.HTTPError as e:
            raise ResponseValidationError(
                ResponseValidationErrorType.API_ERROR,
                f"Query service request failed: {type(e).__name__}: {e}",
            ) from e

    async def _send_request(self, payload: dict) -> dict[str, Any]:
        """Send one request to the query service."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(f"{self.base_url}/answer", json=payload, headers=headers)
            response.raise_for_status()

        try:
            result = response.json()
        except json.JSONDecodeError as e:
            raise ResponseValidationError(
                ResponseValidationErrorType.PARSING_ERROR,
                f"Query service returned invalid JSON: {e}",
            ) from e

        logger.debug(f"Query service answered with {len(response.content)} bytes")
        return result
