"""Report service for generating cached, aggregated attendance reports."""

import logging
import time
from collections import Counter, defaultdict
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from attendance_engine.config import settings
from attendance_engine.repositories.base import AttendanceRepository
from attendance_engine.schemas.attendance import AttendanceRecord, AttendanceStatus, Student
from attendance_engine.schemas.common import PaginationMeta
from attendance_engine.schemas.report import (
    QueryComplexity,
    RecordRow,
    ReportAggregations,
    ReportData,
    ReportMetrics,
    ReportRequest,
    ReportResult,
    ReportSummary,
    SortDirection,
    SortField,
    StreakRow,
    StudentRow,
    TrendDirection,
    TrendPeriod,
    TrendSummary,
)
from attendance_engine.services.report_cache import InFlightRequests, ReportCache, fingerprint
from attendance_engine.utils.dates import (
    is_weekend,
    iter_days,
    parse_date_iso,
    previous_period,
    resolve_relative_period,
)
from attendance_engine.utils.formatting import attendance_rate, format_attendance_percentage

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def query_complexity(request: ReportRequest) -> QueryComplexity:
    """Tag a request by how many filters and heavy operations it asks for."""
    filters = request.filters
    score = sum(
        value is not None
        for value in (filters.last_name, filters.status, filters.date_iso, filters.relative_period)
    )
    score += int(request.aggregations.include_streaks) + int(request.aggregations.include_trends)
    score += int(request.sorting is not None) + int(request.pagination is not None)

    if score <= 1:
        return QueryComplexity.SIMPLE
    if score <= 3:
        return QueryComplexity.MODERATE
    return QueryComplexity.COMPLEX


def absence_streaks(records: list[AttendanceRecord], days_off: set[str]) -> tuple[int, int]:
    """Longest and current run of ABSENT records over consecutive school days.

    ``records`` belong to one student. Weekends and scheduled days off between
    two records do not break a run; a missing school day or a non-absent
    record does. Records falling on a day off are ignored.

    Returns:
        Tuple of (longest, current) where current is the run ending at the
        student's latest record
    """
    longest = 0
    run = 0
    previous: date | None = None

    for record in sorted(records, key=lambda r: r.date_iso):
        if record.date_iso in days_off:
            continue
        day = parse_date_iso(record.date_iso)
        if previous is not None and not _adjacent_school_days(previous, day, days_off):
            run = 0
        run = run + 1 if record.status == AttendanceStatus.ABSENT else 0
        longest = max(longest, run)
        previous = day

    return longest, run


def _adjacent_school_days(earlier: date, later: date, days_off: set[str]) -> bool:
    """Check that every day strictly between two dates is a weekend or day off."""
    if (later - earlier).days <= 1:
        return True
    return all(
        is_weekend(day) or day.isoformat() in days_off
        for day in iter_days(earlier + timedelta(days=1), later - timedelta(days=1))
    )


def _present_count(records: list[AttendanceRecord]) -> int:
    return sum(1 for r in records if r.is_present)


class ReportService:
    """Service for generating attendance reports.

    Results are cached per request fingerprint for the process lifetime.
    Concurrent requests for the same uncached fingerprint share one
    computation.
    """

    def __init__(
        self,
        repository: AttendanceRepository,
        cache: ReportCache,
        today: Callable[[], date] | None = None,
        flat_band: float | None = None,
    ):
        self.repository = repository
        self.cache = cache
        self.today = today or date.today
        self.flat_band = settings.trend_flat_band if flat_band is None else flat_band
        self._in_flight = InFlightRequests()

    # ============== Request Normalization ==============

    def normalize(self, request: ReportRequest) -> dict[str, Any]:
        """Fill defaults and resolve the relative period to concrete dates.

        ``use_cache`` only controls lookup and is left out.
        """
        filters = request.filters
        date_from = date_to = None
        if filters.relative_period is not None:
            start, end = resolve_relative_period(filters.relative_period, self.today())
            date_from, date_to = start.isoformat(), end.isoformat()

        return {
            "report_type": request.report_type,
            "filters": {
                "last_name": filters.last_name.lower() if filters.last_name else None,
                "status": filters.status.value if filters.status else None,
                "date_iso": filters.date_iso,
                "date_from": date_from,
                "date_to": date_to,
            },
            "aggregations": request.aggregations.model_dump(),
            "pagination": request.pagination.model_dump() if request.pagination else None,
            "sorting": (
                {
                    "field": request.sorting.field.value,
                    "direction": request.sorting.direction.value,
                }
                if request.sorting
                else None
            ),
        }

    def fingerprint(self, request: ReportRequest) -> str:
        return fingerprint(self.normalize(request))

    # ============== Generation ==============

    async def generate_report(self, request: ReportRequest) -> ReportResult:
        """Generate a report, serving it from the cache when allowed."""
        started = time.perf_counter()
        normalized = self.normalize(request)
        key = fingerprint(normalized)
        generation = self.cache.generation

        if not request.use_cache:
            return await self._compute(request, normalized, key, generation, started)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Report cache hit {key[:12]}")
            return self._as_cache_hit(cached, started)

        logger.debug(f"Report cache miss {key[:12]}")
        # Callers only share a computation started since the last invalidation
        result, shared = await self._in_flight.run(
            f"{generation}:{key}",
            lambda: self._compute(request, normalized, key, generation, started),
        )
        if shared:
            return self._as_cache_hit(result, started)
        return result

    def _as_cache_hit(self, result: ReportResult, started: float) -> ReportResult:
        metrics = result.metrics.model_copy(
            update={"cache_hit": True, "execution_time_ms": _elapsed_ms(started)}
        )
        return result.model_copy(update={"metrics": metrics})

    async def _compute(
        self,
        request: ReportRequest,
        normalized: dict[str, Any],
        key: str,
        generation: int,
        started: float,
    ) -> ReportResult:
        filters = normalized["filters"]
        aggregations = request.aggregations

        students = {s.id: s for s in await self.repository.list_students()}
        days_off = {d.date_iso for d in await self.repository.list_days_off()}

        records = await self._load_records(
            students,
            last_name=filters["last_name"],
            date_from=filters["date_from"],
            date_to=filters["date_to"],
        )
        if filters["date_iso"] is not None:
            records = [r for r in records if r.date_iso == filters["date_iso"]]
        if filters["status"] is not None:
            records = [r for r in records if r.status.value == filters["status"]]

        date_from, date_to = self._effective_range(filters, records)
        summary = self._summarize(records, days_off, aggregations, date_from, date_to)

        record_rows = [
            RecordRow(
                student_id=r.student_id,
                student_name=self._student_name(students, r.student_id),
                date_iso=r.date_iso,
                status=r.status,
                late=r.late,
                early_dismissal=r.early_dismissal,
                day_off=r.date_iso in days_off,
            )
            for r in records
        ]
        student_rows = self._student_rows(records, days_off, students)

        streaks = None
        if aggregations.include_streaks:
            streaks = self._streak_rows(records, days_off, students)

        trends = None
        if aggregations.include_trends and date_from is not None:
            trends = await self._trends(
                students, days_off, filters["last_name"], date_from, date_to
            )

        record_rows, student_rows = self._sort_rows(request, record_rows, student_rows, students)

        pagination = None
        if request.pagination is not None:
            page, limit = request.pagination.page, request.pagination.limit
            pagination = PaginationMeta.build(page, limit, len(record_rows))
            record_rows = record_rows[(page - 1) * limit : page * limit]

        result = ReportResult(
            report_type=request.report_type,
            generated_at=datetime.now(timezone.utc),
            data=ReportData(
                summary=summary,
                records=record_rows,
                students=student_rows,
                streaks=streaks,
                trends=trends,
                pagination=pagination,
            ),
            metrics=ReportMetrics(
                execution_time_ms=_elapsed_ms(started),
                cache_hit=False,
                query_complexity=query_complexity(request),
            ),
        )
        self.cache.set(key, result, generation)
        logger.info(
            f"Generated {request.report_type} with {summary.total_records} records "
            f"in {result.metrics.execution_time_ms}ms"
        )
        return result

    async def _load_records(
        self,
        students: dict[str, Student],
        last_name: str | None,
        date_from: str | None,
        date_to: str | None,
    ) -> list[AttendanceRecord]:
        student_ids = None
        if last_name is not None:
            student_ids = [s.id for s in students.values() if s.last_name.lower() == last_name]
            if not student_ids:
                return []
        return await self.repository.list_records(
            student_ids=student_ids, date_from=date_from, date_to=date_to
        )

    @staticmethod
    def _effective_range(
        filters: dict[str, Any],
        records: list[AttendanceRecord],
    ) -> tuple[str | None, str | None]:
        if filters["date_iso"] is not None:
            return filters["date_iso"], filters["date_iso"]
        if filters["date_from"] is not None:
            return filters["date_from"], filters["date_to"]
        if records:
            dates = [r.date_iso for r in records]
            return min(dates), max(dates)
        return None, None

    # ============== Aggregations ==============

    @staticmethod
    def _summarize(
        records: list[AttendanceRecord],
        days_off: set[str],
        aggregations: ReportAggregations,
        date_from: str | None,
        date_to: str | None,
    ) -> ReportSummary:
        summary = ReportSummary(
            total_records=len(records),
            total_students=len({r.student_id for r in records}),
            date_from=date_from,
            date_to=date_to,
        )

        if aggregations.include_count:
            tally = Counter(r.status for r in records)
            summary.counts = {status.value: tally.get(status, 0) for status in AttendanceStatus}

        if aggregations.include_percentage:
            # Scheduled days off do not count against attendance
            counted = [r for r in records if r.date_iso not in days_off]
            tally = Counter(r.status for r in counted)
            summary.percentages = {
                status.value: format_attendance_percentage(tally.get(status, 0), len(counted))
                for status in AttendanceStatus
            }
            summary.attendance_rate = format_attendance_percentage(
                _present_count(counted), len(counted)
            )

        return summary

    def _student_rows(
        self,
        records: list[AttendanceRecord],
        days_off: set[str],
        students: dict[str, Student],
    ) -> list[StudentRow]:
        by_student: dict[str, list[AttendanceRecord]] = defaultdict(list)
        for record in records:
            by_student[record.student_id].append(record)

        rows = []
        for student_id, student_records in by_student.items():
            tally = Counter(r.status for r in student_records)
            counted = [r for r in student_records if r.date_iso not in days_off]
            rows.append(
                StudentRow(
                    student_id=student_id,
                    student_name=self._student_name(students, student_id),
                    total_records=len(student_records),
                    present=tally.get(AttendanceStatus.PRESENT, 0),
                    late=tally.get(AttendanceStatus.LATE, 0),
                    absent=tally.get(AttendanceStatus.ABSENT, 0),
                    excused=tally.get(AttendanceStatus.EXCUSED, 0),
                    attendance_rate=format_attendance_percentage(
                        _present_count(counted), len(counted)
                    ),
                )
            )
        return rows

    def _streak_rows(
        self,
        records: list[AttendanceRecord],
        days_off: set[str],
        students: dict[str, Student],
    ) -> list[StreakRow]:
        by_student: dict[str, list[AttendanceRecord]] = defaultdict(list)
        for record in records:
            by_student[record.student_id].append(record)

        rows = []
        for student_id in sorted(by_student, key=lambda sid: self._name_key(students, sid)):
            longest, current = absence_streaks(by_student[student_id], days_off)
            rows.append(
                StreakRow(
                    student_id=student_id,
                    student_name=self._student_name(students, student_id),
                    longest_absence_streak=longest,
                    current_absence_streak=current,
                )
            )
        return rows

    async def _trends(
        self,
        students: dict[str, Student],
        days_off: set[str],
        last_name: str | None,
        date_from: str,
        date_to: str,
    ) -> TrendSummary:
        """Compare the attendance rate of a range with the range just before it.

        Only the name filter applies; a status filter would make the rate
        meaningless.
        """
        current_start, current_end = parse_date_iso(date_from), parse_date_iso(date_to)
        previous_start, previous_end = previous_period(current_start, current_end)

        current = await self._trend_period(
            students, days_off, last_name, current_start, current_end
        )
        previous = await self._trend_period(
            students, days_off, last_name, previous_start, previous_end
        )

        delta = round(current.attendance_rate - previous.attendance_rate, 1)
        if abs(delta) <= self.flat_band:
            direction = TrendDirection.FLAT
        elif delta > 0:
            direction = TrendDirection.UP
        else:
            direction = TrendDirection.DOWN

        return TrendSummary(current=current, previous=previous, delta=delta, direction=direction)

    async def _trend_period(
        self,
        students: dict[str, Student],
        days_off: set[str],
        last_name: str | None,
        start: date,
        end: date,
    ) -> TrendPeriod:
        records = await self._load_records(
            students, last_name, start.isoformat(), end.isoformat()
        )
        counted = [r for r in records if r.date_iso not in days_off]
        return TrendPeriod(
            date_from=start.isoformat(),
            date_to=end.isoformat(),
            total_records=len(counted),
            attendance_rate=attendance_rate(_present_count(counted), len(counted)),
        )

    # ============== Sorting ==============

    def _sort_rows(
        self,
        request: ReportRequest,
        record_rows: list[RecordRow],
        student_rows: list[StudentRow],
        students: dict[str, Student],
    ) -> tuple[list[RecordRow], list[StudentRow]]:
        """Order both row lists.

        Student rows have no date or status, so those fields order them by
        student ID.
        """
        field = request.sorting.field if request.sorting else None
        reverse = bool(request.sorting and request.sorting.direction == SortDirection.DESC)

        match field:
            case SortField.NAME:
                record_key = lambda r: (*self._name_key(students, r.student_id), r.date_iso)
                student_key = lambda s: self._name_key(students, s.student_id)
            case SortField.STATUS:
                record_key = lambda r: (r.status.value, r.date_iso, r.student_id)
                student_key = lambda s: s.student_id
            case SortField.STUDENT_ID:
                record_key = lambda r: (r.student_id, r.date_iso)
                student_key = lambda s: s.student_id
            case SortField.DATE:
                record_key = lambda r: (r.date_iso, r.student_id)
                student_key = lambda s: s.student_id
            case None:
                record_key = lambda r: (r.date_iso, r.student_id)
                student_key = lambda s: self._name_key(students, s.student_id)

        return (
            sorted(record_rows, key=record_key, reverse=reverse),
            sorted(student_rows, key=student_key, reverse=reverse),
        )

    @staticmethod
    def _name_key(students: dict[str, Student], student_id: str) -> tuple[str, str, str]:
        student = students.get(student_id)
        if student is None:
            return ("", "", student_id)
        return (student.last_name.lower(), student.first_name.lower(), student_id)

    @staticmethod
    def _student_name(students: dict[str, Student], student_id: str) -> str:
        student = students.get(student_id)
        return student.full_name if student else student_id
