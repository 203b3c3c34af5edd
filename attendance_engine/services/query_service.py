"""Natural-language query interpretation over the report engine."""

import logging
import re
from typing import Any

from pydantic import ValidationError

from attendance_engine.config import settings
from attendance_engine.exceptions import (
    DomainValidationError,
    ResponseValidationError,
    ResponseValidationErrorType,
)
from attendance_engine.schemas.alert import AlertStatus, AttendanceAlert
from attendance_engine.schemas.attendance import AttendanceStatus, Student
from attendance_engine.schemas.query import (
    FAILURE_ANSWER,
    CountEntity,
    DateRangeEntity,
    InterpreterResponse,
    ParsedQuery,
    QueryIntent,
    StatusEntity,
    StudentNameEntity,
    SuggestedAction,
)
from attendance_engine.schemas.report import (
    ReportAggregations,
    ReportFilters,
    ReportRequest,
    ReportResult,
    StudentRow,
    TrendDirection,
)
from attendance_engine.services.alert_service import AlertService
from attendance_engine.services.query_client import QueryAnsweringClient
from attendance_engine.services.report_service import ReportService
from attendance_engine.utils.dates import RelativePeriod
from attendance_engine.utils.response_validation import interpret_confidence, validate_answer

logger = logging.getLogger(__name__)

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
HTML_TAGS = re.compile(r"<[^>]*>")
SQL_FRAGMENTS = re.compile(
    r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|ALTER|CREATE)\b|--|;|/\*|\*/",
    re.IGNORECASE,
)

# First match wins
INTENT_PATTERNS = [
    (
        QueryIntent.ALERT_LOOKUP,
        re.compile(r"\b(alerts?|interventions?|needs? attention|parent meetings?|flagged)\b", re.I),
    ),
    (
        QueryIntent.TREND_REQUEST,
        re.compile(
            r"\b(trends?|trending|improv\w*|wors\w*|compared?|getting (better|worse))\b", re.I
        ),
    ),
    (
        QueryIntent.SUMMARY_REQUEST,
        re.compile(r"\b(summary|summari[sz]e|overview|overall|rate|percentage|how many|total)\b", re.I),
    ),
    (
        QueryIntent.ATTENDANCE_LOOKUP,
        re.compile(
            r"\b(attendance|absent|absences?|late|tardy|present|excused|missed|attended|who)\b",
            re.I,
        ),
    ),
]

PERIOD_PATTERNS = [
    (RelativePeriod.TODAY, re.compile(r"\btoday\b", re.I)),
    (RelativePeriod.YESTERDAY, re.compile(r"\byesterday\b", re.I)),
    (RelativePeriod.LAST_30_DAYS, re.compile(r"\b(last|past)?\s*30 days\b", re.I)),
    (RelativePeriod.WEEK, re.compile(r"\b(this|current)?\s*week\b", re.I)),
    (RelativePeriod.MONTH, re.compile(r"\b(this|current)?\s*month\b", re.I)),
    (RelativePeriod.YEAR, re.compile(r"\b((this|current)\s+)?(year|annual)\b", re.I)),
]

STATUS_PATTERNS = [
    (AttendanceStatus.ABSENT, re.compile(r"\b(absent|absences?|missed|missing)\b", re.I)),
    (AttendanceStatus.LATE, re.compile(r"\b(late|lateness|tardy|tardies)\b", re.I)),
    (AttendanceStatus.EXCUSED, re.compile(r"\bexcused\b", re.I)),
    (AttendanceStatus.PRESENT, re.compile(r"\b(present|attended)\b", re.I)),
]

# Overlapping so "Show Ada Lovelace" still yields "Ada Lovelace"
NAME_PATTERN = re.compile(r"(?=\b([A-Z][a-z]+(?:[-'][A-Z][a-z]+)?) ([A-Z][a-z]+(?:[-'][A-Z][a-z]+)?)\b)")

NAME_STOPWORDS = {
    "How", "What", "Who", "Which", "When", "Show", "List", "Give", "Tell", "Find",
    "Is", "Was", "Were", "Did", "Does", "Do", "Has", "Have", "Are", "Any", "The",
    "This", "Last", "Past", "Today", "Yesterday", "Please", "Summarize", "Summarise",
    "January", "February", "March", "April", "May", "June", "July", "August",
    "September", "October", "November", "December",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
}

COUNT_PATTERNS = [
    re.compile(r"\b(?:more than|at least|over|above)\s+(\d{1,3})\b", re.I),
    re.compile(r"\b(\d{1,3})\s+(?:or more\s+)?(?:times|days|absences|lates|tardies)\b", re.I),
]

# Slots that sharpen each intent; confidence grows with how many are filled
EXPECTED_SLOTS = {
    QueryIntent.ATTENDANCE_LOOKUP: ("student", "period", "status"),
    QueryIntent.TREND_REQUEST: ("period", "student"),
    QueryIntent.SUMMARY_REQUEST: ("period",),
    QueryIntent.ALERT_LOOKUP: ("student",),
}

PERIOD_PHRASES = {
    RelativePeriod.TODAY: "today",
    RelativePeriod.YESTERDAY: "yesterday",
    RelativePeriod.WEEK: "this week",
    RelativePeriod.MONTH: "this month",
    RelativePeriod.LAST_30_DAYS: "in the last 30 days",
    RelativePeriod.YEAR: "this year",
}

STATUS_WORDS = {
    AttendanceStatus.PRESENT: "present",
    AttendanceStatus.LATE: "late",
    AttendanceStatus.ABSENT: "absent",
    AttendanceStatus.EXCUSED: "excused",
}

NAMES_IN_ANSWER = 5


def sanitize_query(text: Any, max_length: int) -> str:
    """Strip control characters, markup and SQL fragments, then truncate."""
    if not isinstance(text, str):
        raise ResponseValidationError(
            ResponseValidationErrorType.PARSING_ERROR, "Query must be a string"
        )
    text = CONTROL_CHARS.sub(" ", text)
    text = HTML_TAGS.sub("", text)
    text = SQL_FRAGMENTS.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_length]


def parse_query(text: str) -> ParsedQuery:
    """Classify the intent and extract entities.

    A slot with two different candidate values is ambiguous and left empty.

    Raises:
        ResponseValidationError: PARSING_ERROR if no intent is recognised
    """
    intent = next((i for i, pattern in INTENT_PATTERNS if pattern.search(text)), None)
    if intent is None:
        raise ResponseValidationError(
            ResponseValidationErrorType.PARSING_ERROR,
            f"No known intent in query: {text!r}",
        )

    entities = []
    ambiguous = []

    names = []
    for match in NAME_PATTERN.finditer(text):
        first, last = match.group(1), match.group(2)
        if first in NAME_STOPWORDS or last in NAME_STOPWORDS:
            continue
        if (first, last) not in names:
            names.append((first, last))
    if len(names) == 1:
        first, last = names[0]
        entities.append(StudentNameEntity(text=f"{first} {last}", last_name=last))
    elif len(names) > 1:
        ambiguous.append("student")

    periods = []
    for period, pattern in PERIOD_PATTERNS:
        match = pattern.search(text)
        if match:
            periods.append((period, match.group(0).strip()))
            # "30 days" also reads as a day count, not a separate week/month
            if period == RelativePeriod.LAST_30_DAYS:
                break
    if len(periods) == 1:
        period, phrase = periods[0]
        entities.append(DateRangeEntity(text=phrase, period=period))
    elif len(periods) > 1:
        ambiguous.append("period")

    statuses = [(s, p.search(text)) for s, p in STATUS_PATTERNS]
    statuses = [(s, m.group(0)) for s, m in statuses if m]
    if len(statuses) == 1:
        status, phrase = statuses[0]
        entities.append(StatusEntity(text=phrase, status=status))
    elif len(statuses) > 1:
        ambiguous.append("status")

    if not any(isinstance(e, DateRangeEntity) and e.period == RelativePeriod.LAST_30_DAYS
               for e in entities):
        for pattern in COUNT_PATTERNS:
            match = pattern.search(text)
            if match:
                entities.append(CountEntity(text=match.group(0), value=int(match.group(1))))
                break

    return ParsedQuery(text=text, intent=intent, entities=entities, ambiguous_slots=ambiguous)


def _entity(parsed: ParsedQuery, kind: type):
    return next((e for e in parsed.entities if isinstance(e, kind)), None)


def score_confidence(parsed: ParsedQuery) -> float:
    """0.4 for a recognised intent plus 0.6 times the share of expected slots filled."""
    slot_kinds = {
        "student": StudentNameEntity,
        "period": DateRangeEntity,
        "status": StatusEntity,
    }
    expected = EXPECTED_SLOTS[parsed.intent]
    filled = sum(1 for slot in expected if _entity(parsed, slot_kinds[slot]) is not None)
    return round(0.4 + 0.6 * filled / len(expected), 2)


def build_report_request(parsed: ParsedQuery) -> ReportRequest:
    """Map a parsed query onto a report request."""
    name = _entity(parsed, StudentNameEntity)
    date_range = _entity(parsed, DateRangeEntity)
    status = _entity(parsed, StatusEntity)

    period = date_range.period if date_range else None
    if parsed.intent == QueryIntent.TREND_REQUEST and period is None:
        period = RelativePeriod.LAST_30_DAYS

    # A trend compares attendance rates, which a status filter would flatten
    status_filter = status.status if status and parsed.intent != QueryIntent.TREND_REQUEST else None

    return ReportRequest(
        report_type="nl-query",
        filters=ReportFilters(
            last_name=name.last_name if name else None,
            status=status_filter,
            relative_period=period,
        ),
        aggregations=ReportAggregations(
            include_count=True,
            include_percentage=True,
            include_streaks=parsed.intent == QueryIntent.ALERT_LOOKUP,
            include_trends=parsed.intent == QueryIntent.TREND_REQUEST,
        ),
    )


class QueryService:
    """Answers free-text questions about attendance.

    Questions are parsed into a report request, run through the report
    engine and rendered as a short answer with follow-up actions. When an
    outbound query-answering client is configured it may rephrase the answer.
    Any failure yields the fixed apology with zero confidence.
    """

    def __init__(
        self,
        reports: ReportService,
        alerts: AlertService | None = None,
        client: QueryAnsweringClient | None = None,
        max_length: int | None = None,
    ):
        self.reports = reports
        self.alerts = alerts
        self.client = client
        self.max_length = max_length or settings.query_max_length

    async def interpret(self, query_text: Any, deadline: float | None = None) -> InterpreterResponse:
        """Answer a question.

        Args:
            query_text: Raw question text
            deadline: Absolute ``time.monotonic()`` deadline for outbound calls
        """
        try:
            text = sanitize_query(query_text, self.max_length)
            if not text:
                raise ResponseValidationError(
                    ResponseValidationErrorType.PARSING_ERROR, "Query is empty"
                )

            parsed = parse_query(text)
            request = build_report_request(parsed)
            result = await self.reports.generate_report(request)
            response = await self._render(parsed, request, result)

            if self.client:
                response = await self.client.answer(text, response, deadline=deadline)

            validate_answer(response)

            confidence = float(response["confidence"])
            return InterpreterResponse(
                success=True,
                answer=response["answer"],
                data=response.get("data"),
                suggested_actions=response.get("suggested_actions"),
                confidence=confidence,
                confidence_level=interpret_confidence(confidence),
            )

        except ResponseValidationError as e:
            return self._failure(e.error_type, e.message, query_text)
        except DomainValidationError as e:
            return self._failure(ResponseValidationErrorType.PARSING_ERROR, e.message, query_text)
        except ValidationError as e:
            return self._failure(ResponseValidationErrorType.INVALID_FORMAT, str(e), query_text)
        except Exception as e:
            logger.exception(f"Unexpected error answering query: {type(e).__name__}")
            return self._failure(
                ResponseValidationErrorType.API_ERROR, f"{type(e).__name__}: {e}", query_text
            )

    def _failure(
        self,
        error_type: ResponseValidationErrorType,
        message: str,
        query_text: Any,
    ) -> InterpreterResponse:
        logger.error(f"Query interpretation failed ({error_type.value}): {message} | query={query_text!r}")
        return InterpreterResponse(
            success=False,
            answer=FAILURE_ANSWER,
            confidence=0.0,
            error=error_type.value,
        )

    # ============== Rendering ==============

    async def _render(
        self,
        parsed: ParsedQuery,
        request: ReportRequest,
        result: ReportResult,
    ) -> dict[str, Any]:
        student = await self._resolve_student(parsed)
        period = request.filters.relative_period
        when = PERIOD_PHRASES.get(period, "overall")
        count = _entity(parsed, CountEntity)
        actions: list[SuggestedAction] = []

        match parsed.intent:
            case QueryIntent.ATTENDANCE_LOOKUP:
                answer = self._render_lookup(request, result, student, when, count)
                actions.append(
                    SuggestedAction(
                        type="view_trends",
                        label="Compare with the previous period",
                        params={"relative_period": (period or RelativePeriod.LAST_30_DAYS).value},
                    )
                )
            case QueryIntent.SUMMARY_REQUEST:
                answer = self._render_summary(request, result, when)
                actions.append(
                    SuggestedAction(
                        type="view_trends",
                        label="Compare with the previous period",
                        params={"relative_period": (period or RelativePeriod.LAST_30_DAYS).value},
                    )
                )
            case QueryIntent.TREND_REQUEST:
                answer = self._render_trend(result, when)
                actions.append(
                    SuggestedAction(
                        type="view_streaks",
                        label="Show absence streaks",
                        params={"relative_period": period.value},
                    )
                )
            case QueryIntent.ALERT_LOOKUP:
                answer = await self._render_alerts(result, student, count)
                actions.append(SuggestedAction(type="review_alerts", label="Review active alerts"))

        if student:
            actions.append(
                SuggestedAction(
                    type="view_student",
                    label=f"Open {student.full_name}'s attendance",
                    params={"student_id": student.id},
                )
            )
        actions.append(
            SuggestedAction(
                type="export_report",
                label="Export this report as CSV",
                params={"format": "csv"},
            )
        )

        data = {
            "intent": parsed.intent.value,
            "entities": [e.model_dump(mode="json") for e in parsed.entities],
            "report_request": request.model_dump(mode="json"),
            "summary": result.data.summary.model_dump(mode="json"),
        }
        if result.data.trends:
            data["trends"] = result.data.trends.model_dump(mode="json")

        return {
            "answer": answer,
            "confidence": score_confidence(parsed),
            "data": data,
            "suggested_actions": [a.model_dump(mode="json", exclude_none=True) for a in actions],
        }

    def _render_lookup(
        self,
        request: ReportRequest,
        result: ReportResult,
        student: Student | None,
        when: str,
        count: CountEntity | None,
    ) -> str:
        status = request.filters.status
        rows = result.data.students

        if student:
            row = next((r for r in rows if r.student_id == student.id), None)
            if row is None:
                return f"There are no matching attendance records for {student.full_name} {when}."
            if status:
                n = _status_count(row, status)
                return f"{student.full_name} was {STATUS_WORDS[status]} {_times(n)} {when}."
            return (
                f"{student.full_name} has {row.total_records} attendance records {when}: "
                f"{row.present} present, {row.late} late, {row.absent} absent, "
                f"{row.excused} excused ({row.attendance_rate} attendance)."
            )

        if status:
            if count:
                rows = [r for r in rows if _status_count(r, status) >= count.value]
            if not rows:
                return f"No students were {STATUS_WORDS[status]} {when}."
            names = ", ".join(r.student_name for r in rows[:NAMES_IN_ANSWER])
            more = f" and {len(rows) - NAMES_IN_ANSWER} more" if len(rows) > NAMES_IN_ANSWER else ""
            noun = "student was" if len(rows) == 1 else "students were"
            return f"{len(rows)} {noun} {STATUS_WORDS[status]} {when}: {names}{more}."

        return self._render_summary(request, result, when)

    @staticmethod
    def _render_summary(request: ReportRequest, result: ReportResult, when: str) -> str:
        summary = result.data.summary
        if summary.total_records == 0:
            return f"There are no attendance records {when}."
        answer = (
            f"Attendance {when} was {summary.attendance_rate} across "
            f"{summary.total_records} records for {summary.total_students} students."
        )
        status = request.filters.status
        if status and summary.counts:
            answer = (
                f"{summary.counts[status.value]} records were {STATUS_WORDS[status]} {when} "
                f"across {summary.total_students} students."
            )
        return answer

    @staticmethod
    def _render_trend(result: ReportResult, when: str) -> str:
        trends = result.data.trends
        if trends is None or trends.current.total_records == 0:
            return f"There is not enough attendance data {when} to show a trend."
        words = {
            TrendDirection.UP: "improved",
            TrendDirection.DOWN: "declined",
            TrendDirection.FLAT: "held steady",
        }
        return (
            f"Attendance {words[trends.direction]} {when}: {trends.current.attendance_rate:g}% "
            f"compared with {trends.previous.attendance_rate:g}% in the previous period "
            f"({trends.delta:+g} points)."
        )

    async def _render_alerts(
        self,
        result: ReportResult,
        student: Student | None,
        count: CountEntity | None,
    ) -> str:
        if self.alerts is None:
            streaks = [s for s in result.data.streaks or [] if s.current_absence_streak > 0]
            if not streaks:
                return "No students are currently on an absence streak."
            listed = ", ".join(
                f"{s.student_name} ({s.current_absence_streak} days)"
                for s in streaks[:NAMES_IN_ANSWER]
            )
            return f"{len(streaks)} students are currently on an absence streak: {listed}."

        alerts: list[AttendanceAlert] = await self.alerts.list_alerts(
            student_id=student.id if student else None,
            status=AlertStatus.ACTIVE,
        )
        if count:
            alerts = [a for a in alerts if a.current_count >= count.value]
        if not alerts:
            subject = f" for {student.full_name}" if student else ""
            return f"There are no active attendance alerts{subject}."

        names = {s.id: s.full_name for s in await self.reports.repository.list_students()}
        listed = ", ".join(
            f"{names.get(a.student_id, a.student_id)} ({a.type.value.lower()}, {a.current_count})"
            for a in alerts[:NAMES_IN_ANSWER]
        )
        noun = "alert" if len(alerts) == 1 else "alerts"
        return f"{len(alerts)} active {noun}: {listed}."

    async def _resolve_student(self, parsed: ParsedQuery) -> Student | None:
        name = _entity(parsed, StudentNameEntity)
        if name is None:
            return None
        wanted = name.text.lower()
        for student in await self.reports.repository.list_students():
            if student.full_name.lower() == wanted:
                return student
        return None


def _status_count(row: StudentRow, status: AttendanceStatus) -> int:
    return {
        AttendanceStatus.PRESENT: row.present,
        AttendanceStatus.LATE: row.late,
        AttendanceStatus.ABSENT: row.absent,
        AttendanceStatus.EXCUSED: row.excused,
    }[status]


def _times(n: int) -> str:
    return "once" if n == 1 else f"{n} times"
