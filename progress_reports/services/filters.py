"""Record filtering and ordering ahead of report generation.

Mirrors the dashboard filters: topic, assessment type, class, student and a
relative date window, followed by an optional stable sort. The report itself
never re-sorts; whatever order comes out of here is the table order.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, Field, field_validator

from progress_reports.domain.records import ProgressRecord, normalize_assessment_type


DATE_WINDOWS = {
    "week": pd.DateOffset(days=7),
    "month": pd.DateOffset(months=1),
    "quarter": pd.DateOffset(months=3),
}

# Dashboard sort keys (camelCase) mapped onto record fields
SORT_KEYS = {
    "recordedAt": "recorded_at",
    "studentId": "student_id",
    "studentName": "student_name",
    "studentEmail": "student_email",
    "assessmentType": "assessment_type",
    "className": "class_name",
    "topic": "topic",
    "score": "score",
}


class RecordQuery(BaseModel):
    """Filter and sort options; ``None`` or ``"all"`` leaves a dimension open."""
    student_id: Optional[str] = Field(default=None, alias="studentId")
    class_name: Optional[str] = Field(default=None, alias="className")
    topic: Optional[str] = None
    assessment_type: Optional[str] = Field(default=None, alias="assessmentType")
    date_range: Literal["all", "week", "month", "quarter"] = Field(default="all", alias="dateRange")
    sort_key: Optional[str] = Field(default=None, alias="sortKey")
    sort_dir: Literal["asc", "desc"] = Field(default="asc", alias="sortDir")

    class Config:
        populate_by_name = True

    @field_validator("student_id", "class_name", "topic", "assessment_type", mode="before")
    @classmethod
    def _all_means_unfiltered(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return None if not v or v.lower() == "all" else v

    @field_validator("sort_key")
    @classmethod
    def _known_sort_key(cls, v):
        if v is None:
            return None
        field = SORT_KEYS.get(v, v)
        if field not in SORT_KEYS.values():
            raise ValueError(f"sort_key must be one of: {sorted(SORT_KEYS)}")
        return field


def _window_start(date_range: str, now: datetime) -> Optional[datetime]:
    offset = DATE_WINDOWS.get(date_range)
    if offset is None:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (pd.Timestamp(now) - offset).to_pydatetime()


def filter_records(
    records: Sequence[ProgressRecord],
    query: Optional[RecordQuery] = None,
    now: Optional[datetime] = None,
) -> List[ProgressRecord]:
    """Return a new list of the records matching ``query``.

    Args:
        records: Records to filter (not modified)
        query: Filter and sort options; no query keeps every record in order
        now: Reference time for the date window (defaults to current UTC time)

    Returns:
        Filtered, optionally sorted list
    """
    out = list(records)
    if query is None:
        return out

    if query.student_id:
        out = [r for r in out if r.student_id == query.student_id]
    if query.class_name:
        out = [r for r in out if r.class_name.lower() == query.class_name.lower()]
    if query.topic:
        out = [r for r in out if r.topic == query.topic]
    if query.assessment_type:
        wanted = normalize_assessment_type(query.assessment_type)
        out = [r for r in out if r.assessment_type == wanted]

    start = _window_start(query.date_range, now or datetime.now(timezone.utc))
    if start is not None:
        out = [r for r in out if r.recorded_at >= start]

    if query.sort_key:
        out = sorted(
            out,
            key=lambda r: _sort_value(r, query.sort_key),
            reverse=query.sort_dir == "desc",
        )
    return out


def _sort_value(record: ProgressRecord, field: str):
    # Missing values sort first ascending, last descending
    value = getattr(record, field)
    if value is None:
        return (0, 0)
    if isinstance(value, str):
        return (1, value.lower())
    return (1, value)
