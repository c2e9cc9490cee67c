"""PDF progress report generation for a student or a whole record selection.

The export runs in one synchronous pass: aggregate the records, stream the
report blocks through the pagination controller, render the pages with
ReportLab and name the artifact. Instructors download the result from the
dashboard; nothing outside the returned artifact is changed.
"""
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from progress_reports.core.config import settings
from progress_reports.core.errors import InvalidThresholdError
from progress_reports.core.logging import LogTimer, get_logger
from progress_reports.domain.document import (
    A4_PORTRAIT,
    ClosingBlock,
    NoticeBlock,
    Page,
    PageGeometry,
    ReportMode,
    SectionHeading,
    SpacerBlock,
    SummaryCard,
    SummaryRow,
    TableHeader,
    TableRow,
    TitleBlock,
)
from progress_reports.domain.records import ProgressRecord, SummaryStats, parse_records
from progress_reports.infrastructure.record_store import RecordStore
from progress_reports.services.analytics import (
    build_summary_stats,
    topic_averages_for_chart,
    topic_mastery,
)
from progress_reports.services.filters import RecordQuery
from progress_reports.services.layout import DETAIL_COLUMNS, TOPIC_COLUMNS, LayoutEngine
from progress_reports.services.pagination import PaginationController
from progress_reports.services.writer import CanvasDocumentWriter, render_pages
from progress_reports.utils.text import (
    format_change,
    format_percent,
    sanitize_filename_part,
    sanitize_text,
)

logger = get_logger(__name__)

DETAIL_TABLE = "records"
TOPIC_TABLE = "topics"
NO_DATA_TEXT = "No data available for the selected filters."


class ReportOptions(BaseModel):
    """Presentation options; defaults come from the application settings."""
    product_name: str = Field(default_factory=lambda: settings.product_name)
    date_format: str = Field(default_factory=lambda: settings.report_date_format)
    timestamp_format: str = Field(default_factory=lambda: settings.report_timestamp_format)
    include_topic_breakdown: bool = Field(default_factory=lambda: settings.include_topic_breakdown)
    geometry: PageGeometry = A4_PORTRAIT


class ReportArtifact(BaseModel):
    """A generated report: the PDF bytes plus the pages and stats behind it."""
    filename: str
    content: bytes
    mode: ReportMode
    pages: List[Page]
    stats: SummaryStats
    generated_at: datetime
    path: Optional[Path] = None

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def save(self, directory: Union[str, Path]) -> Path:
        """Write the PDF into ``directory`` under its generated filename."""
        target = Path(directory) / self.filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.content)
        self.path = target
        return target


# ----------------
# HELPER FUNCTIONS
# ----------------

def report_title(mode: ReportMode) -> str:
    if mode is ReportMode.OVERVIEW:
        return "Student Progress Overview Report"
    return "Student Progress Report"


def resolve_threshold(threshold) -> int:
    """Use the configured pass threshold when none is given; validate a whole 0-100."""
    if threshold is None:
        threshold = settings.pass_threshold
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise InvalidThresholdError(threshold)
    if not 0 <= threshold <= 100:
        raise InvalidThresholdError(threshold)
    if isinstance(threshold, float) and not threshold.is_integer():
        raise InvalidThresholdError(threshold)
    return int(threshold)


def resolve_identity(record: ProgressRecord, email_map: Optional[Dict[str, str]] = None) -> str:
    """Student column identity: record email, then looked-up email, then the raw id."""
    return record.student_email or (email_map or {}).get(record.student_id) or record.student_id or ""


def report_filename(
    mode: ReportMode,
    records: Sequence[ProgressRecord],
    generated_at: datetime,
    email_map: Optional[Dict[str, str]] = None,
    subject: Optional[str] = None,
) -> str:
    """``progress_report_<subject>_<unix millis>.pdf``."""
    if mode is ReportMode.OVERVIEW:
        name_part = "overview"
    else:
        identity = resolve_identity(records[0], email_map) if records else None
        name_part = sanitize_filename_part(identity or subject, fallback="student")
    millis = int(generated_at.timestamp() * 1000)
    return f"progress_report_{name_part}_{millis}.pdf"


def record_cells(record: ProgressRecord, date_format: str,
                 email_map: Optional[Dict[str, str]] = None) -> List[str]:
    """The six detail-table cells for one record."""
    return [
        record.recorded_at.strftime(date_format),
        sanitize_text(resolve_identity(record, email_map)),
        sanitize_text(record.topic),
        sanitize_text(record.assessment_type),
        format_percent(record.score),
        sanitize_text(record.notes),
    ]


def summary_cards(
    stats: SummaryStats,
    mode: ReportMode,
    subject: Optional[str] = None,
) -> List[SummaryCard]:
    """At-a-glance cards in display order."""
    cards: List[SummaryCard] = []
    if mode is ReportMode.SINGLE_STUDENT and subject:
        cards.append(SummaryCard(label="Student ID/Email", value=subject))
    cards.extend([
        SummaryCard(label="Average Score", value=f"{stats.average_score}%"),
        SummaryCard(label=f"Pass Rate (>={stats.threshold}%)", value=f"{stats.pass_rate}%"),
        SummaryCard(label="Total Records", value=str(stats.total_records)),
        SummaryCard(label="Topics Covered", value=str(stats.topics_covered)),
        SummaryCard(label="At-Risk Students", value=str(stats.at_risk_count)),
    ])
    if mode is ReportMode.SINGLE_STUDENT and stats.student_trend is not None:
        trend = stats.student_trend
        cards.append(SummaryCard(
            label="Trend",
            value=f"{trend.trend.capitalize()} ({format_change(trend.change)})",
        ))
    extremes = stats.topic_extremes
    if extremes.highest is not None:
        cards.append(SummaryCard(
            label="Strongest Topic",
            value=f"{extremes.highest.topic} ({extremes.highest.average}%)",
        ))
    if extremes.lowest is not None:
        cards.append(SummaryCard(
            label="Needs Focus",
            value=f"{extremes.lowest.topic} ({extremes.lowest.average}%)",
        ))
    return cards


def build_blocks(
    records: Sequence[ProgressRecord],
    stats: SummaryStats,
    mode: ReportMode,
    generated_at: datetime,
    options: ReportOptions,
    email_map: Optional[Dict[str, str]] = None,
    subject: Optional[str] = None,
) -> Iterator:
    """Yield the report's blocks in reading order."""
    yield TitleBlock(
        title=report_title(mode),
        subtitle=options.product_name,
        generated_at=generated_at.strftime(options.timestamp_format),
    )

    yield SectionHeading(text="At-a-Glance Summary", space_after=22)
    cards = summary_cards(stats, mode, subject)
    for i in range(0, len(cards), 2):
        yield SummaryRow(cards=cards[i:i + 2])
    yield SpacerBlock(height=25)

    if options.include_topic_breakdown:
        yield SectionHeading(text="Topic Performance", space_after=25, keep_with_next=120)
        yield TableHeader(table_id=TOPIC_TABLE, columns=TOPIC_COLUMNS)
        for topic in topic_averages_for_chart(records):
            mastery = topic_mastery(topic.average) if topic.topic != "No Data" else "-"
            yield TableRow(
                table_id=TOPIC_TABLE,
                cells=[sanitize_text(topic.topic), f"{topic.average}%", mastery],
            )
        yield SpacerBlock(height=25)

    yield SectionHeading(text="Detailed Progress Records", space_after=25, keep_with_next=120)
    if records:
        yield TableHeader(table_id=DETAIL_TABLE, columns=DETAIL_COLUMNS)
        for index, record in enumerate(records):
            yield TableRow(
                table_id=DETAIL_TABLE,
                cells=record_cells(record, options.date_format, email_map),
                record_index=index,
            )
    else:
        yield NoticeBlock(text=f"No data. {NO_DATA_TEXT}")

    yield SpacerBlock(height=35)
    yield ClosingBlock()


# ----------------
# EXPORT ENTRY POINTS
# ----------------

def export_progress_report(
    records: Sequence,
    threshold: Optional[int] = None,
    mode: Union[str, ReportMode] = ReportMode.OVERVIEW,
    *,
    email_map: Optional[Dict[str, str]] = None,
    subject: Optional[str] = None,
    options: Optional[ReportOptions] = None,
    output_dir: Optional[Union[str, Path]] = None,
    now: Optional[datetime] = None,
) -> ReportArtifact:
    """Generate one progress report PDF.

    Args:
        records: ProgressRecords (or raw dicts) in the order they should be listed
        threshold: Pass mark 0-100 (defaults to PASS_THRESHOLD)
        mode: "overview" or "single-student" ("single" is accepted)
        email_map: Optional student id -> email lookup for the Email column
        subject: Student identity hint used when the records carry none
        options: Presentation options (defaults from settings)
        output_dir: When given, the PDF is also written there
        now: Generation time (defaults to the current local time)

    Returns:
        ReportArtifact with filename, PDF bytes, pages and statistics

    Raises:
        InvalidThresholdError: threshold outside 0-100
        InvalidReportModeError: unknown mode
        RecordValidationError: a raw record could not be validated

    Example:
        >>> artifact = export_progress_report(records, threshold=70)
        >>> artifact.filename
        'progress_report_overview_1729330000000.pdf'
    """
    threshold = resolve_threshold(threshold)
    mode = ReportMode.parse(mode)
    options = options or ReportOptions()
    records = parse_records(records)
    generated_at = now or datetime.now().astimezone()

    report_logger = get_logger(__name__, {"report_mode": mode.value, "record_count": len(records)})

    focus_student = records[0].student_id if mode is ReportMode.SINGLE_STUDENT and records else None
    if mode is ReportMode.SINGLE_STUDENT:
        identity = resolve_identity(records[0], email_map) if records else None
        subject = identity or subject

    with LogTimer(logger, "aggregate_records"):
        stats = build_summary_stats(records, threshold, student_id=focus_student)

    engine = LayoutEngine(options.geometry)
    controller = PaginationController(
        engine,
        generated_on=generated_at.strftime(options.date_format),
        product_name=options.product_name,
    )
    with LogTimer(logger, "paginate_report"):
        pages = controller.run(
            build_blocks(records, stats, mode, generated_at, options, email_map, subject)
        )

    with LogTimer(logger, "render_pdf"):
        writer = CanvasDocumentWriter(options.geometry, title=report_title(mode),
                                      author=options.product_name)
        render_pages(pages, writer, options.geometry)
        content = writer.finish()

    artifact = ReportArtifact(
        filename=report_filename(mode, records, generated_at, email_map, subject),
        content=content,
        mode=mode,
        pages=pages,
        stats=stats,
        generated_at=generated_at,
    )
    report_logger.info(
        f"Generated {artifact.filename} ({artifact.page_count} page(s))",
        extra={"page_count": artifact.page_count},
    )

    target_dir = output_dir or settings.report_output_dir
    if target_dir:
        artifact.save(target_dir)
    return artifact


def generate_from_store(
    store: RecordStore,
    query: Optional[RecordQuery] = None,
    threshold: Optional[int] = None,
    mode: Union[str, ReportMode, None] = None,
    **kwargs,
) -> ReportArtifact:
    """Fetch records from an injected store, then export them.

    Without an explicit mode, a query naming one student produces a
    single-student report and anything else an overview.
    """
    records = store.fetch_records(query)
    if mode is None:
        mode = ReportMode.SINGLE_STUDENT if query and query.student_id else ReportMode.OVERVIEW
    if query and query.student_id:
        kwargs.setdefault("subject", query.student_id)
    return export_progress_report(records, threshold, mode, **kwargs)
