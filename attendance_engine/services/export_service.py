"""Export encoders for generated reports."""

import csv
import io
import json
import logging

from attendance_engine.schemas.export import ExportedReport, ExportFormat, ExportOptions
from attendance_engine.schemas.report import ReportRequest, ReportResult
from attendance_engine.services.report_service import ReportService

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
    # PDF-ready plain text
    ExportFormat.PDF: "text/plain",
}

RECORD_COLUMNS = ["student_id", "student_name", "date_iso", "status", "late", "early_dismissal"]


def export_filename(result: ReportResult, format: ExportFormat) -> str:
    """``<report_type>-<YYYY-MM-DD of generation>.<ext>``."""
    return f"{result.report_type}-{result.generated_at.date().isoformat()}.{format.value}"


class ExportService:
    """Service for rendering report results as CSV, JSON or PDF-ready text."""

    def __init__(self, reports: ReportService):
        self.reports = reports

    def export(
        self,
        result: ReportResult,
        format: ExportFormat | str,
        options: ExportOptions | None = None,
    ) -> ExportedReport:
        """Render a report result."""
        format = ExportFormat(format)
        options = options or ExportOptions()

        match format:
            case ExportFormat.CSV:
                data = self._to_csv(result, options)
            case ExportFormat.JSON:
                data = self._to_json(result, options)
            case ExportFormat.PDF:
                data = self._to_pdf_text(result)

        filename = export_filename(result, format)
        logger.info(f"Exported {filename} ({len(data)} chars)")
        return ExportedReport(filename=filename, mime_type=MIME_TYPES[format], data=data)

    async def export_report(
        self,
        request: ReportRequest,
        format: ExportFormat | str,
        options: ExportOptions | None = None,
    ) -> ExportedReport:
        """Generate a report and render it."""
        result = await self.reports.generate_report(request)
        return self.export(result, format, options)

    @staticmethod
    def _summary_pairs(result: ReportResult) -> list[tuple[str, str]]:
        summary = result.data.summary
        pairs = [
            ("Report Type", result.report_type),
            ("Generated At", result.generated_at.isoformat()),
            ("Date From", summary.date_from or ""),
            ("Date To", summary.date_to or ""),
            ("Total Records", str(summary.total_records)),
            ("Total Students", str(summary.total_students)),
        ]
        if summary.attendance_rate is not None:
            pairs.append(("Attendance Rate", summary.attendance_rate))
        for status, count in (summary.counts or {}).items():
            pairs.append((f"{status.title()} Count", str(count)))
        for status, percentage in (summary.percentages or {}).items():
            pairs.append((f"{status.title()} Percentage", percentage))
        return pairs

    def _to_csv(self, result: ReportResult, options: ExportOptions) -> str:
        """Summary as Metric/Value rows, then a blank line and per-record rows."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")

        writer.writerow(["Metric", "Value"])
        writer.writerows(self._summary_pairs(result))

        if not options.summary_only:
            writer.writerow([])
            writer.writerow(RECORD_COLUMNS)
            for row in result.data.records:
                writer.writerow([
                    row.student_id,
                    row.student_name,
                    row.date_iso,
                    row.status.value,
                    str(row.late).lower(),
                    str(row.early_dismissal).lower(),
                ])

        return buffer.getvalue()

    @staticmethod
    def _to_json(result: ReportResult, options: ExportOptions) -> str:
        payload = result.model_dump(mode="json")
        if options.summary_only:
            payload["data"] = {"summary": payload["data"]["summary"]}
        return json.dumps(payload, indent=2)

    def _to_pdf_text(self, result: ReportResult) -> str:
        """Summary-only plain text for a PDF renderer."""
        lines = ["ATTENDANCE REPORT", ""]
        lines.extend(f"{label}: {value}" for label, value in self._summary_pairs(result))
        return "\n".join(lines) + "\n"
