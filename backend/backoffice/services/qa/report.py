"""QA report rendering for completed test runs.

``generate_report`` is a pure function of the run, its questions and the
tenant name. Callers make sure the run has completed before calling it.
"""

import csv
import io
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from backoffice.models.test_run import TestQuestion, TestRun
from backoffice.services.qa.run_config import QuestionCategory

BRAND_COLOR = colors.HexColor("#1a1a2e")
SUCCESS_COLOR = colors.HexColor("#16a34a")
WARNING_COLOR = colors.HexColor("#d97706")
ERROR_COLOR = colors.HexColor("#dc2626")

CSV_COLUMNS = (
    "number",
    "category",
    "question",
    "expected_answer",
    "actual_answer",
    "score",
    "passed",
    "source_document",
    "source_page",
    "response_time_ms",
    "issues",
    "reasoning",
)


class ExportFormat(str, Enum):
    PDF = "pdf"
    CSV = "csv"


@dataclass(frozen=True, slots=True)
class CategoryStats:
    category: str
    label: str
    total: int
    passed: int
    failed: int
    pass_rate: float
    avg_score: float
    avg_response_ms: float


@dataclass(frozen=True, slots=True)
class ResponseTimes:
    fastest: int
    slowest: int
    average: int
    median: int
    p95: int


def report_filename(tenant_id: str, run_id: uuid.UUID | str, fmt: ExportFormat) -> str:
    """``qa-report-<tenant>-<first 8 chars of run id>.<ext>``"""
    return f"qa-report-{tenant_id}-{str(run_id)[:8]}.{fmt.value}"


def content_type(fmt: ExportFormat) -> str:
    match fmt:
        case ExportFormat.PDF:
            return "application/pdf"
        case ExportFormat.CSV:
            return "text/csv; charset=utf-8"


def readiness(score: float) -> tuple[str, colors.Color]:
    """Production readiness label for an overall score."""
    if score >= 80:
        return "PRODUCTION READY", SUCCESS_COLOR
    if score >= 60:
        return "NEEDS IMPROVEMENT", WARNING_COLOR
    return "NOT READY", ERROR_COLOR


def category_label(category: str) -> str:
    try:
        return QuestionCategory(category).label
    except ValueError:
        return category


def category_stats(questions: Sequence[TestQuestion]) -> list[CategoryStats]:
    """Per-category totals in first-seen order; categories without questions are left out."""
    grouped: dict[str, list[TestQuestion]] = {}
    for question in questions:
        grouped.setdefault(question.category, []).append(question)

    stats = []
    for category, items in grouped.items():
        passed = sum(1 for q in items if q.passed is True)
        failed = sum(1 for q in items if q.passed is False)
        scores = [q.score for q in items if q.score is not None]
        times = [q.response_time_ms for q in items if q.response_time_ms]
        stats.append(
            CategoryStats(
                category=category,
                label=category_label(category),
                total=len(items),
                passed=passed,
                failed=failed,
                pass_rate=passed * 100 / len(items),
                avg_score=sum(scores) / len(scores) if scores else 0.0,
                avg_response_ms=sum(times) / len(times) if times else 0.0,
            )
        )
    return stats


def response_times(questions: Sequence[TestQuestion]) -> ResponseTimes:
    times = sorted(q.response_time_ms for q in questions if q.response_time_ms)
    if not times:
        return ResponseTimes(fastest=0, slowest=0, average=0, median=0, p95=0)
    p95_index = min(int(len(times) * 0.95), len(times) - 1)
    return ResponseTimes(
        fastest=times[0],
        slowest=times[-1],
        average=round(sum(times) / len(times)),
        median=times[len(times) // 2],
        p95=times[p95_index],
    )


def format_cost(cost: float | None) -> str:
    cost = cost or 0.0
    if cost < 0.01:
        return f"${cost:.6f}"
    return f"${cost:.4f}"


def format_duration(seconds: int | None) -> str:
    seconds = seconds or 0
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"


def format_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def truncate(text: str | None, max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _issues(question: TestQuestion) -> list[str]:
    evaluation = question.evaluation or {}
    return [str(issue) for issue in evaluation.get("issues") or []]


def _reasoning(question: TestQuestion) -> str:
    evaluation = question.evaluation or {}
    return str(evaluation.get("reasoning") or "")


# =============================================================================
# CSV
# =============================================================================


def render_csv(run: TestRun, questions: Sequence[TestQuestion], tenant_name: str) -> bytes:
    """Summary lines prefixed with ``#``, a blank line, then one row per question."""
    buf = io.StringIO()
    passed = sum(1 for q in questions if q.passed is True)
    failed = sum(1 for q in questions if q.passed is False)

    summary = [
        f"# QA Test Report - {tenant_name}",
        f"# Test ID: {run.id}",
        f"# Date: {format_date(run.completed_at)}",
        f"# Overall Score: {run.overall_score or 0:.1f}%",
        f"# Total Questions: {run.total_questions}",
        f"# Passed: {passed}",
        f"# Failed: {failed}",
        f"# Cost: {format_cost(run.total_cost)}",
        f"# Duration: {format_duration(run.duration_seconds)}",
    ]
    buf.write("\n".join(summary))
    buf.write("\n\n")

    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for number, q in enumerate(questions, start=1):
        writer.writerow(
            [
                number,
                q.category,
                q.question,
                q.expected_answer or "",
                q.actual_answer or "",
                f"{q.score:.1f}" if q.score is not None else "",
                {True: "yes", False: "no"}.get(q.passed, ""),
                q.source_document or "",
                q.source_page if q.source_page is not None else "",
                q.response_time_ms if q.response_time_ms is not None else "",
                "; ".join(_issues(q)),
                _reasoning(q),
            ]
        )
    return buf.getvalue().encode("utf-8")


# =============================================================================
# PDF
# =============================================================================


def _p(text: str, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text), style)


def _table_style(header_rows: int = 1) -> TableStyle:
    return TableStyle(
        [
            ("BACKGROUND", (0, 0), (-1, header_rows - 1), BRAND_COLOR),
            ("TEXTCOLOR", (0, 0), (-1, header_rows - 1), colors.white),
            ("FONTNAME", (0, 0), (-1, header_rows - 1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("BOTTOMPADDING", (0, 0), (-1, header_rows - 1), 6),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]
    )


def render_pdf(run: TestRun, questions: Sequence[TestQuestion], tenant_name: str) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f"QA Test Report - {tenant_name}",
    )
    styles = getSampleStyleSheet()
    header_style = ParagraphStyle(
        "Header", parent=styles["Heading1"], fontSize=20, textColor=BRAND_COLOR
    )
    meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=9, textColor=colors.grey)
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=8, leading=10)
    footer_style = ParagraphStyle(
        "Footer", parent=styles["Normal"], fontSize=8, textColor=colors.grey
    )

    score = run.overall_score or 0.0
    status_label, status_color = readiness(score)
    passed = sum(1 for q in questions if q.passed is True)
    failed = sum(1 for q in questions if q.passed is False)

    elements: list = []

    # Cover and executive summary
    elements.append(_p("QA Test Report", header_style))
    elements.append(_p(tenant_name, styles["Heading3"]))
    elements.append(_p(f"Test ID: {run.id}", meta_style))
    elements.append(_p(f"Completed: {format_date(run.completed_at)}", meta_style))
    elements.append(Spacer(1, 18))

    status_style = ParagraphStyle(
        "Status", parent=styles["Heading2"], textColor=status_color
    )
    elements.append(_p(f"{score:.1f}% - {status_label}", status_style))
    elements.append(Spacer(1, 12))

    summary_rows = [
        ["Overall score", f"{score:.1f}%"],
        ["Questions", str(run.total_questions)],
        ["Passed", str(passed)],
        ["Failed", str(failed)],
        ["Cost", format_cost(run.total_cost)],
        ["Duration", format_duration(run.duration_seconds)],
    ]
    summary_table = Table(summary_rows, colWidths=[2 * inch, 2.5 * inch])
    summary_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ]
        )
    )
    elements.append(summary_table)
    elements.append(Spacer(1, 24))

    # Category breakdown
    elements.append(_p("Category breakdown", styles["Heading2"]))
    category_rows = [
        ["Category", "Questions", "Passed", "Failed", "Pass rate", "Avg score", "Avg ms"]
    ]
    for stat in category_stats(questions):
        category_rows.append(
            [
                stat.label,
                str(stat.total),
                str(stat.passed),
                str(stat.failed),
                f"{stat.pass_rate:.0f}%",
                f"{stat.avg_score:.1f}",
                f"{stat.avg_response_ms:.0f}",
            ]
        )
    for category, category_score in sorted((run.scores_by_category or {}).items()):
        label = f"{category_label(category)} (run score)"
        category_rows.append([label, "", "", "", "", f"{category_score:.1f}", ""])
    category_table = Table(category_rows, repeatRows=1)
    category_table.setStyle(_table_style())
    elements.append(category_table)
    elements.append(Spacer(1, 18))

    # Response times
    times = response_times(questions)
    elements.append(_p("Response times (ms)", styles["Heading2"]))
    times_table = Table(
        [
            ["Fastest", "Median", "Average", "p95", "Slowest"],
            [
                str(times.fastest),
                str(times.median),
                str(times.average),
                str(times.p95),
                str(times.slowest),
            ],
        ]
    )
    times_table.setStyle(_table_style())
    elements.append(times_table)

    # Findings
    summary = run.summary or {}
    for heading, key in (
        ("Strengths", "strengths"),
        ("Weaknesses", "weaknesses"),
        ("Recommendations", "recommendations"),
    ):
        items = summary.get(key) or []
        if not items:
            continue
        elements.append(Spacer(1, 12))
        elements.append(_p(heading, styles["Heading3"]))
        for item in items:
            elements.append(_p(f"- {item}", styles["Normal"]))

    # All questions
    elements.append(PageBreak())
    elements.append(_p("All questions", styles["Heading2"]))
    question_rows: list[list] = [["#", "Category", "Question", "Score", "Result"]]
    for number, q in enumerate(questions, start=1):
        question_rows.append(
            [
                str(number),
                category_label(q.category),
                _p(truncate(q.question, 300), cell_style),
                f"{q.score:.1f}" if q.score is not None else "-",
                {True: "PASS", False: "FAIL"}.get(q.passed, "-"),
            ]
        )
    question_table = Table(
        question_rows,
        colWidths=[0.4 * inch, 1.1 * inch, 3.8 * inch, 0.6 * inch, 0.6 * inch],
        repeatRows=1,
    )
    question_style = _table_style()
    for row, q in enumerate(questions, start=1):
        if q.passed is False:
            question_style.add("TEXTCOLOR", (4, row), (4, row), ERROR_COLOR)
        elif q.passed is True:
            question_style.add("TEXTCOLOR", (4, row), (4, row), SUCCESS_COLOR)
    question_table.setStyle(question_style)
    elements.append(question_table)

    # Failure details
    failures = [q for q in questions if q.passed is False]
    if failures:
        elements.append(PageBreak())
        elements.append(_p("Failed questions", styles["Heading2"]))
        for q in failures:
            elements.append(_p(f"[{category_label(q.category)}] {q.question}", styles["Heading4"]))
            elements.append(_p(f"Expected: {q.expected_answer or '-'}", cell_style))
            elements.append(_p(f"Answer: {truncate(q.actual_answer, 600) or '-'}", cell_style))
            issues = _issues(q)
            if issues:
                elements.append(_p(f"Issues: {'; '.join(issues)}", cell_style))
            reasoning = _reasoning(q)
            if reasoning:
                elements.append(_p(f"Reasoning: {reasoning}", cell_style))
            if q.source_document:
                page = f", page {q.source_page}" if q.source_page is not None else ""
                elements.append(_p(f"Source: {q.source_document}{page}", meta_style))
            elements.append(Spacer(1, 10))

    elements.append(Spacer(1, 24))
    elements.append(_p(f"Generated {format_date(datetime.now())}", footer_style))

    doc.build(elements)
    return buf.getvalue()


def generate_report(
    run: TestRun,
    questions: Sequence[TestQuestion],
    tenant_name: str,
    fmt: ExportFormat,
) -> bytes:
    """Render ``run`` and its ``questions`` in the requested format."""
    match fmt:
        case ExportFormat.PDF:
            return render_pdf(run, questions, tenant_name)
        case ExportFormat.CSV:
            return render_csv(run, questions, tenant_name)
