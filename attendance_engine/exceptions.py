"""Custom exception classes and global exception handlers."""

import logging
import traceback
from enum import Enum
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AttendanceEngineException(Exception):
    """Base exception for all engine-specific errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class DomainValidationError(AttendanceEngineException):
    """A domain object was built from values that break its invariants."""

    def __init__(self, message: str):
        super().__init__(message, 422)


class InvalidDateError(DomainValidationError):
    """A date string is malformed or names a day that does not exist."""

    def __init__(self, date_iso: Any):
        super().__init__(f'Invalid ISO date (YYYY-MM-DD): "{date_iso}"')
        self.date_iso = date_iso


class NotFoundException(AttendanceEngineException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", 404)


class ConflictException(AttendanceEngineException):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, 409)


class ThresholdConflictError(ConflictException):
    """A threshold write was blocked by an error-severity conflict."""

    def __init__(self, conflicts: list):
        super().__init__("Threshold conflicts with an existing threshold")
        self.conflicts = conflicts
        self.errors = [
            {"field": conflict.conflicting_threshold_id, "message": conflict.resolution}
            for conflict in conflicts
        ]


class ResponseValidationErrorType(str, Enum):
    """Failure categories of the natural-language query pipeline."""

    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"
    PARSING_ERROR = "PARSING_ERROR"
    TIMEOUT = "TIMEOUT"
    API_ERROR = "API_ERROR"


class ResponseValidationError(AttendanceEngineException):
    """Query pipeline failure; always recovered into the sanitized answer."""

    def __init__(
        self,
        error_type: ResponseValidationErrorType,
        message: str,
        field: str | None = None,
    ):
        super().__init__(message, 502)
        self.error_type = error_type
        self.field = field


def create_exception_handlers():
    """Create exception handlers for the JSON API."""

    async def engine_exception_handler(request: Request, exc: AttendanceEngineException):
        """Handle engine custom exceptions."""
        logger.warning(
            f"{type(exc).__name__} on {request.method} {request.url.path}: "
            f"{exc.message} (status={exc.status_code})"
        )

        content = {
            "status": "error",
            "message": exc.message,
        }
        if hasattr(exc, "errors"):
            content["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=content)

    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error("".join(tb_lines))

        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "An unexpected error occurred",
            },
        )

    return {
        AttendanceEngineException: engine_exception_handler,
        Exception: generic_exception_handler,
    }
