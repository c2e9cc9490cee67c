"""FastAPI routes for progress report downloads and report statistics.

The PDF generator is synchronous and CPU bound, so every handler hands it to
the threadpool instead of running it on the event loop.
"""
from io import BytesIO
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from progress_reports.core.config import settings
from progress_reports.core.errors import ReportError
from progress_reports.core.logging import LogTimer, get_logger
from progress_reports.domain.records import ClassComparison, SummaryStats
from progress_reports.infrastructure.record_store import InMemoryRecordStore
from progress_reports.services.analytics import build_summary_stats, class_comparison
from progress_reports.services.filters import RecordQuery
from progress_reports.services.reports import (
    ReportOptions,
    generate_from_store,
    resolve_threshold,
)

logger = get_logger(__name__)
router = APIRouter()


class ProgressReportRequest(BaseModel):
    """Records plus report options posted by the dashboard."""
    records: List[Dict[str, Any]] = Field(default_factory=list)
    threshold: Optional[int] = None
    mode: Optional[str] = None
    email_map: Optional[Dict[str, str]] = Field(default=None, alias="emailMap")
    subject: Optional[str] = None
    filters: Optional[RecordQuery] = None
    include_topic_breakdown: Optional[bool] = Field(default=None, alias="includeTopicBreakdown")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "records": [
                    {
                        "studentId": "stu-001",
                        "studentEmail": "aisha@example.edu",
                        "topic": "HCI",
                        "assessmentType": "exam",
                        "score": 82,
                        "recordedAt": "2024-10-15T09:30:00Z",
                    }
                ],
                "threshold": 70,
                "mode": "overview",
            }
        }


def _build_pdf(req: ProgressReportRequest):
    store = InMemoryRecordStore(req.records)
    options = ReportOptions()
    if req.include_topic_breakdown is not None:
        options = ReportOptions(include_topic_breakdown=req.include_topic_breakdown)
    return generate_from_store(
        store,
        req.filters,
        threshold=req.threshold,
        mode=req.mode,
        email_map=req.email_map,
        subject=req.subject,
        options=options,
    )


def _build_summary(req: ProgressReportRequest) -> SummaryStats:
    threshold = resolve_threshold(req.threshold)
    records = InMemoryRecordStore(req.records).fetch_records(req.filters)
    student_id = req.filters.student_id if req.filters else None
    return build_summary_stats(records, threshold, student_id=student_id)


def _build_comparison(req: ProgressReportRequest) -> List[ClassComparison]:
    threshold = resolve_threshold(req.threshold)
    records = InMemoryRecordStore(req.records).fetch_records(req.filters)
    return class_comparison(records, threshold)


# -----------------
# REPORT ENDPOINTS
# -----------------

@router.post("/reports/progress")
async def download_progress_report(req: ProgressReportRequest):
    """Generate the progress report PDF and stream it as a download.

    Example:
        POST /reports/progress
        {"records": [...], "threshold": 70, "mode": "single-student"}
    """
    with LogTimer(logger, "progress_report_pdf"):
        try:
            artifact = await run_in_threadpool(_build_pdf, req)
        except ReportError as exc:
            logger.warning(f"Rejected report request: {exc}")
            raise HTTPException(status_code=422, detail=str(exc))
        except Exception as exc:
            logger.error(f"Failed to generate progress report: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Failed to generate PDF: {str(exc)}")

    return StreamingResponse(
        BytesIO(artifact.content),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename={artifact.filename}",
            "X-Report-Pages": str(artifact.page_count),
        },
    )


@router.post("/reports/progress/summary", response_model=SummaryStats)
async def progress_summary(req: ProgressReportRequest):
    """Return the statistics the PDF would print, as JSON."""
    try:
        return await run_in_threadpool(_build_summary, req)
    except ReportError as exc:
        logger.warning(f"Rejected summary request: {exc}")
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.error(f"Failed to build summary: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build summary: {str(exc)}")


@router.post("/reports/class-comparison", response_model=List[ClassComparison])
async def class_comparison_report(req: ProgressReportRequest):
    """Per-class averages with at-risk, improving and declining counts."""
    try:
        return await run_in_threadpool(_build_comparison, req)
    except ReportError as exc:
        logger.warning(f"Rejected class comparison request: {exc}")
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.error(f"Failed to compare classes: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to compare classes: {str(exc)}")


@router.get("/reports/config")
async def report_config():
    """Report defaults currently in effect."""
    return {
        "pass_threshold": settings.pass_threshold,
        "product_name": settings.product_name,
        "include_topic_breakdown": settings.include_topic_breakdown,
    }
