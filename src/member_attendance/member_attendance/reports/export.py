from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from reportlab.lib.pagesizes import landscape, letter
from reportlab.pdfgen import canvas

from ..core.enums import ExportFormat, ReportType
from ..core.exceptions import ArtifactGenerationError, ValidationError
from .service import ReportingEngine

logger = logging.getLogger(__name__)

ATTENDANCE_COLUMNS = ["memberId", "fullName", "email", "checkIn", "checkOut", "duration", "status"]
MEMBERS_COLUMNS = ["memberId", "fullName", "email", "membershipType", "status", "totalVisits", "lastVisit"]

_PDF_HEADERS = {
    "memberId": "Member ID",
    "fullName": "Full Name",
    "email": "Email",
    "checkIn": "Check In",
    "checkOut": "Check Out",
    "duration": "Duration",
    "status": "Status",
    "membershipType": "Membership Type",
    "totalVisits": "Total Visits",
    "lastVisit": "Last Visit",
    "date": "Date",
    "total": "Total",
    "department": "Department",
    "count": "Count",
}


@dataclass(frozen=True)
class ExportSection:
    title: str
    columns: list[str]
    rows: list[dict]


@dataclass(frozen=True)
class ExportResult:
    """Rendered export: either a JSON-able ``data`` payload or file ``content``."""

    report_type: ReportType
    export_format: ExportFormat
    data: Any = None
    content: Optional[bytes] = None
    mimetype: Optional[str] = None
    filename: Optional[str] = None


def parse_report_type(value: Any) -> ReportType:
    try:
        return ReportType(value)
    except ValueError:
        raise ValidationError("Invalid report type", fields=["type"])


def parse_export_format(value: Any) -> ExportFormat:
    if value is None:
        return ExportFormat.JSON
    try:
        return ExportFormat(value)
    except ValueError:
        allowed = ", ".join(f.value for f in ExportFormat)
        raise ValidationError(f"format must be one of: {allowed}", fields=["format"])


def render_csv(sections: Sequence[ExportSection]) -> bytes:
    """One CSV table per section, separated by a blank line."""
    out = io.StringIO()
    for index, section in enumerate(sections):
        if index:
            out.write("\r\n")
        writer = csv.DictWriter(out, fieldnames=section.columns, extrasaction="ignore")
        writer.writeheader()
        for row in section.rows:
            writer.writerow(row)
    # BOM so spreadsheet tools detect UTF-8 names.
    return out.getvalue().encode("utf-8-sig")


def render_pdf(title: str, sections: Sequence[ExportSection]) -> bytes:
    """Draw each section as a plain text table, breaking pages as needed."""
    buffer = io.BytesIO()
    page_size = landscape(letter)
    width, height = page_size
    margin = 36
    line_height = 14

    pdf = canvas.Canvas(buffer, pagesize=page_size)
    pdf.setTitle(title)
    y = height - margin

    def new_page():
        nonlocal y
        pdf.showPage()
        y = height - margin

    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawString(margin, y, title)
    y -= line_height * 2

    for section in sections:
        if len(sections) > 1:
            if y < margin + line_height * 3:
                new_page()
            pdf.setFont("Helvetica-Bold", 14)
            pdf.drawString(margin, y, section.title)
            y -= line_height * 1.5

        col_width = (width - 2 * margin) / max(len(section.columns), 1)
        header = [_PDF_HEADERS.get(c, c) for c in section.columns]
        body = [[_cell(row.get(c)) for c in section.columns] for row in section.rows]
        if not body:
            body = [["No data available"] + [""] * (len(section.columns) - 1)]

        for index, cells in enumerate([header] + body):
            if y < margin:
                new_page()
            pdf.setFont("Helvetica-Bold" if index == 0 else "Helvetica", 9)
            for col, text in enumerate(cells):
                pdf.drawString(margin + col * col_width, y, text[:40])
            y -= line_height
        y -= line_height

    pdf.save()
    return buffer.getvalue()


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


class ReportExporter:
    """Render one of the admin reports as JSON data, CSV or PDF."""

    def __init__(self, engine: ReportingEngine):
        self._engine = engine

    def _sections(
        self,
        report_type: ReportType,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> tuple[Any, list[ExportSection]]:
        if report_type == ReportType.ATTENDANCE:
            rows = self._engine.attendance_rows(start, end)
            return rows, [ExportSection("Attendance", ATTENDANCE_COLUMNS, rows)]

        if report_type == ReportType.MEMBERS:
            rows = [r.to_dict() for r in self._engine.members_report()]
            return rows, [ExportSection("Members", MEMBERS_COLUMNS, rows)]

        report = self._engine.analytics_report(start, end)
        data = report.to_dict()
        trends = [{"date": d.date, "total": d.total} for d in report.daily_trends]
        departments = [d.to_dict() for d in report.department_distribution]
        return data, [
            ExportSection("Daily Trends", ["date", "total"], trends),
            ExportSection("Department Distribution", ["department", "count"], departments),
        ]

    def export(
        self,
        report_type: Any,
        export_format: Any = None,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ExportResult:
        kind = parse_report_type(report_type)
        fmt = parse_export_format(export_format)
        data, sections = self._sections(kind, start, end)

        if fmt == ExportFormat.JSON:
            return ExportResult(report_type=kind, export_format=fmt, data=data)

        if fmt == ExportFormat.CSV:
            content = render_csv(sections)
            return ExportResult(
                report_type=kind,
                export_format=fmt,
                content=content,
                mimetype="text/csv",
                filename=f"{kind.value}-report.csv",
            )

        title = f"{kind.value.capitalize()} Report"
        try:
            content = render_pdf(title, sections)
        except (OSError, ValueError) as e:
            logger.exception("PDF rendering failed for %s report", kind.value)
            raise ArtifactGenerationError("Failed to render PDF report") from e

        return ExportResult(
            report_type=kind,
            export_format=fmt,
            content=content,
            mimetype="application/pdf",
            filename=f"{kind.value}-report.pdf",
        )
