"""Domain models for assessment records and the statistics derived from them."""
import math
from datetime import datetime, timezone
from typing import Any, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from progress_reports.core.errors import RecordValidationError


UNASSIGNED_CLASS = "Unassigned"
DEFAULT_ASSESSMENT_TYPE = "Fundamentals"
CANONICAL_ASSESSMENT_TYPES = ("Fundamentals", "Design Principles", "Usability", "Prototyping")

# Legacy values still stored by older assessments
LEGACY_ASSESSMENT_TYPES = {
    "general": "Fundamentals",
    "exam": "Prototyping",
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (69.5 -> 70, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def normalize_assessment_type(raw: Optional[str]) -> str:
    """Map a stored assessment type onto its canonical display value.

    Legacy aliases are matched case-insensitively; a blank value falls back to
    ``Fundamentals`` and anything unrecognized passes through unchanged.

    Examples:
        >>> normalize_assessment_type("EXAM")
        'Prototyping'
        >>> normalize_assessment_type("Usability")
        'Usability'
    """
    if raw is None:
        return DEFAULT_ASSESSMENT_TYPE
    value = str(raw).strip()
    if not value:
        return DEFAULT_ASSESSMENT_TYPE
    return LEGACY_ASSESSMENT_TYPES.get(value.lower(), value)


def sanitize_score(raw: Any) -> Optional[int]:
    """Return an integer score in [0, 100], or None when the value is unusable.

    Non-numeric, NaN and out-of-range scores become None so that they drop out
    of averages instead of counting as zero.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip().rstrip("%")
        if not raw:
            return None
        try:
            raw = float(raw)
        except ValueError:
            return None
    if not isinstance(raw, (int, float)):
        return None
    if isinstance(raw, float) and (math.isnan(raw) or math.isinf(raw)):
        return None
    if raw < 0 or raw > 100:
        return None
    return round_half_up(raw)


class ProgressRecord(BaseModel):
    """One assessment result for one student.

    Accepts the portal's camelCase payload keys as well as snake_case names.
    """
    id: Optional[str] = None
    student_id: str = Field(alias="studentId")
    student_email: Optional[str] = Field(default=None, alias="studentEmail")
    student_name: Optional[str] = Field(default=None, alias="studentName")
    topic: str
    assessment_type: str = Field(default=DEFAULT_ASSESSMENT_TYPE, alias="assessmentType")
    score: Optional[int] = None
    notes: str = ""
    recorded_at: datetime = Field(alias="recordedAt")
    recorded_by: Optional[str] = Field(default=None, alias="recordedBy")
    class_name: str = Field(default=UNASSIGNED_CLASS, alias="className")

    class Config:
        populate_by_name = True
        frozen = True
        json_schema_extra = {
            "example": {
                "studentId": "stu-001",
                "studentEmail": "aisha@example.edu",
                "topic": "HCI",
                "assessmentType": "exam",
                "score": 82,
                "notes": "Strong prototype walkthrough",
                "recordedAt": "2024-10-15T09:30:00Z",
                "className": "4B",
            }
        }

    @field_validator("id", "student_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v):
        return None if v is None else str(v)

    @field_validator("student_email", "student_name", "recorded_by", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("assessment_type", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return normalize_assessment_type(v)

    @field_validator("score", mode="before")
    @classmethod
    def _sanitize_score(cls, v):
        return sanitize_score(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_default(cls, v):
        return "" if v is None else str(v)

    @field_validator("class_name", mode="before")
    @classmethod
    def _class_default(cls, v):
        if v is None or not str(v).strip():
            return UNASSIGNED_CLASS
        return str(v).strip()

    @field_validator("recorded_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # Naive and aware timestamps must stay comparable when sorting
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def has_score(self) -> bool:
        return self.score is not None


def parse_records(raw_records: Iterable[Any]) -> List[ProgressRecord]:
    """Validate a sequence of dicts (or records) into ProgressRecords.

    Raises:
        RecordValidationError: naming the index of the first invalid row
    """
    records: List[ProgressRecord] = []
    for index, raw in enumerate(raw_records):
        if isinstance(raw, ProgressRecord):
            records.append(raw)
            continue
        try:
            records.append(ProgressRecord.model_validate(raw))
        except ValidationError as exc:
            record_id = raw.get("id") if isinstance(raw, dict) else None
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise RecordValidationError(index, errors, record_id=record_id) from exc
    return records


# ----------------
# DERIVED STATS
# ----------------

class TopicStat(BaseModel):
    """Rounded average score for one topic."""
    topic: str
    average: int


class StudentStat(BaseModel):
    """Aggregated statistics for one student."""
    student_id: str
    name: str
    class_name: str = UNASSIGNED_CLASS
    average: int
    record_count: int


class ClassStat(BaseModel):
    """Aggregated statistics for one class."""
    name: str
    average: int
    record_count: int


class TopicExtremes(BaseModel):
    """Best and worst performing topics; both None when there are no topics."""
    highest: Optional[TopicStat] = None
    lowest: Optional[TopicStat] = None


class StudentTrend(BaseModel):
    """Direction of a student's scores, recent half versus earlier half."""
    trend: Literal["improving", "declining", "stable"] = "stable"
    change: float = 0.0


class TypeCount(BaseModel):
    type: str
    count: int


class TimelinePoint(BaseModel):
    recorded_at: datetime
    score: int


class ClassComparison(BaseModel):
    """Side-by-side class metrics for the class comparison view."""
    class_name: str
    average_score: float
    total_students: int
    at_risk_count: int = 0
    improving_count: int = 0
    declining_count: int = 0
    topic_scores: dict[str, float] = Field(default_factory=dict)


class SummaryStats(BaseModel):
    """Every statistic the progress report prints, computed in one pass."""
    threshold: int
    total_records: int
    scored_records: int
    average_score: int
    pass_rate: int
    topic_averages: List[TopicStat] = Field(default_factory=list)
    student_averages: List[StudentStat] = Field(default_factory=list)
    class_averages: List[ClassStat] = Field(default_factory=list)
    at_risk_students: List[StudentStat] = Field(default_factory=list)
    topic_extremes: TopicExtremes = Field(default_factory=TopicExtremes)
    type_distribution: List[TypeCount] = Field(default_factory=list)
    student_trend: Optional[StudentTrend] = None

    @property
    def topics_covered(self) -> int:
        return len(self.topic_averages)

    @property
    def at_risk_count(self) -> int:
        return len(self.at_risk_students)
