"""Natural-language query schemas."""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from attendance_engine.schemas.attendance import AttendanceStatus
from attendance_engine.utils.dates import RelativePeriod

FAILURE_ANSWER = "I'm sorry, but I couldn't process that request properly."


class QueryIntent(str, Enum):
    """What a question asks for."""

    ATTENDANCE_LOOKUP = "attendance-lookup"
    TREND_REQUEST = "trend-request"
    SUMMARY_REQUEST = "summary-request"
    ALERT_LOOKUP = "alert-lookup"


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ============== Extracted Entities ==============


class StudentNameEntity(BaseModel):
    kind: Literal["student-name"] = "student-name"
    text: str
    last_name: str


class DateRangeEntity(BaseModel):
    kind: Literal["date-range"] = "date-range"
    text: str
    period: RelativePeriod


class StatusEntity(BaseModel):
    kind: Literal["status"] = "status"
    text: str
    status: AttendanceStatus


class CountEntity(BaseModel):
    kind: Literal["count"] = "count"
    text: str
    value: int


QueryEntity = Annotated[
    StudentNameEntity | DateRangeEntity | StatusEntity | CountEntity,
    Field(discriminator="kind"),
]


class ParsedQuery(BaseModel):
    """Intent and entities extracted from a question."""

    text: str
    intent: QueryIntent
    entities: list[QueryEntity] = []
    ambiguous_slots: list[str] = []


# ============== Request / Response Schemas ==============


class SuggestedAction(BaseModel):
    """A follow-up the user can take."""

    type: str
    label: str
    params: dict[str, Any] | None = None


class NaturalLanguageQuery(BaseModel):
    """Schema for asking a question."""

    query: str


class InterpreterResponse(BaseModel):
    """Answer to a natural-language question.

    On failure ``success`` is False, ``confidence`` is 0 and the answer is a
    fixed apology; the technical error is only logged.
    """

    success: bool
    answer: str
    data: dict[str, Any] | None = None
    suggested_actions: list[SuggestedAction] | None = None
    confidence: float | None = None
    confidence_level: ConfidenceLevel | None = None
    error: str | None = None
