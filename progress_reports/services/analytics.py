"""Analytics helpers for progress reports.

Aggregates assessment records into topic, student and class statistics. Every
function is pure: records are read into a fresh DataFrame and never mutated.
Records without a usable score are excluded from averages and from pass-rate
denominators rather than being counted as zero.
"""
from typing import Dict, List, Optional, Sequence

import pandas as pd

from progress_reports.core.logging import get_logger
from progress_reports.domain.records import (
    UNASSIGNED_CLASS,
    ClassComparison,
    ClassStat,
    ProgressRecord,
    StudentStat,
    StudentTrend,
    SummaryStats,
    TimelinePoint,
    TopicExtremes,
    TopicStat,
    TypeCount,
    round_half_up,
)

logger = get_logger(__name__)

FRAME_COLUMNS = [
    "position", "student_id", "student_name", "class_name",
    "topic", "assessment_type", "score", "recorded_at",
]
NO_DATA_TOPIC = TopicStat(topic="No Data", average=0)
TREND_DELTA = 5


# ----------------
# HELPER FUNCTIONS
# ----------------

def safe_ratio(numerator: float, denominator: float) -> float:
    """Ratio with a divide-by-zero guard; 0 when the denominator is empty."""
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator)


def records_to_frame(records: Sequence[ProgressRecord]) -> pd.DataFrame:
    """Build the analysis DataFrame; the input sequence is left untouched."""
    rows = [
        {
            "position": i,
            "student_id": r.student_id,
            "student_name": r.student_name,
            "class_name": r.class_name or UNASSIGNED_CLASS,
            "topic": r.topic,
            "assessment_type": r.assessment_type,
            "score": r.score,
            "recorded_at": r.recorded_at,
        }
        for i, r in enumerate(records or [])
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["score"] = pd.to_numeric(df["score"], errors="coerce")
    return df


def _scored(df: pd.DataFrame) -> pd.DataFrame:
    return df[df["score"].notna()]


def _ensure_frame(records) -> pd.DataFrame:
    if isinstance(records, pd.DataFrame):
        return records
    return records_to_frame(records)


def _grouped_means(df: pd.DataFrame, key: str) -> pd.DataFrame:
    """Mean score and record count per key, in first-seen order."""
    scored = _scored(df)
    if scored.empty:
        return pd.DataFrame(columns=[key, "avg", "n"])
    return (
        scored.groupby(key, sort=False)["score"]
        .agg(avg="mean", n="count")
        .reset_index()
    )


# ----------------
# STATS AGGREGATION
# ----------------

def average_score(records) -> int:
    """Overall rounded average score; 0 when nothing is scored."""
    scores = _scored(_ensure_frame(records))["score"]
    if scores.empty:
        return 0
    return round_half_up(scores.mean())


def topic_averages(records) -> List[TopicStat]:
    """Rounded average score per topic, in the order topics first appear."""
    df = _ensure_frame(records)
    agg = _grouped_means(df, "topic")
    stats = [
        TopicStat(topic=str(row.topic), average=round_half_up(row.avg))
        for row in agg.itertuples(index=False)
    ]
    dropped = set(df["topic"]) - {s.topic for s in stats}
    if dropped:
        logger.debug(f"Topics without any scored record left out of averages: {sorted(dropped)}")
    return stats


def topic_averages_for_chart(records) -> List[TopicStat]:
    """Topic averages with a single "No Data" row substituted for empty input."""
    return topic_averages(records) or [NO_DATA_TOPIC]


def student_averages(records) -> List[StudentStat]:
    """Average score and record count per student.

    Name and class are the first non-empty values seen for the student id,
    falling back to the id itself and "Unassigned".
    """
    df = _ensure_frame(records)
    agg = _grouped_means(df, "student_id")
    if agg.empty:
        return []
    identity = df.groupby("student_id", sort=False)[["student_name", "class_name"]].first()
    stats = []
    for row in agg.itertuples(index=False):
        name = identity.at[row.student_id, "student_name"]
        class_name = identity.at[row.student_id, "class_name"]
        stats.append(StudentStat(
            student_id=str(row.student_id),
            name=str(name) if pd.notna(name) else str(row.student_id),
            class_name=str(class_name) if pd.notna(class_name) else UNASSIGNED_CLASS,
            average=round_half_up(row.avg),
            record_count=int(row.n),
        ))
    return stats


def class_averages(records) -> List[ClassStat]:
    """Average score and record count per class name."""
    agg = _grouped_means(_ensure_frame(records), "class_name")
    return [
        ClassStat(name=str(row.class_name), average=round_half_up(row.avg), record_count=int(row.n))
        for row in agg.itertuples(index=False)
    ]


def topic_extremes(records) -> TopicExtremes:
    """Strongest and weakest topic by average.

    Ties keep input order: the first topic at the maximum is the highest and
    the last topic at the minimum is the lowest.
    """
    items = topic_averages(records)
    if not items:
        return TopicExtremes()
    ordered = sorted(items, key=lambda t: -t.average)
    return TopicExtremes(highest=ordered[0], lowest=ordered[-1])


def student_trend(student_id: str, records) -> StudentTrend:
    """Compare the mean of a student's later records against the earlier ones.

    Records are sorted chronologically and split at ``n // 2``; a change above
    +5 is improving, below -5 declining, anything else stable.
    """
    df = _scored(_ensure_frame(records))
    sdf = df[df["student_id"] == str(student_id)].sort_values(
        ["recorded_at", "position"], kind="mergesort"
    )
    if len(sdf) < 2:
        return StudentTrend(trend="stable", change=0.0)

    mid = len(sdf) // 2
    earlier = sdf["score"].iloc[:mid].mean()
    recent = sdf["score"].iloc[mid:].mean()
    change = float(recent - earlier)
    if change > TREND_DELTA:
        return StudentTrend(trend="improving", change=change)
    if change < -TREND_DELTA:
        return StudentTrend(trend="declining", change=change)
    return StudentTrend(trend="stable", change=change)


def at_risk_students(records, threshold: int) -> List[StudentStat]:
    """Students whose average is below the threshold, lowest average first."""
    students = [s for s in student_averages(records) if s.average < threshold]
    return sorted(students, key=lambda s: s.average)


def pass_rate_percent(records, threshold: int) -> int:
    """Whole-percent share of scored records at or above the threshold."""
    scores = _scored(_ensure_frame(records))["score"]
    passed = int((scores >= threshold).sum())
    return round_half_up(100 * safe_ratio(passed, len(scores)))


def assessment_type_distribution(records) -> List[TypeCount]:
    """Record count per (already normalized) assessment type."""
    df = _ensure_frame(records)
    if df.empty:
        return []
    counts = df.groupby("assessment_type", sort=False).size()
    return [TypeCount(type=str(t), count=int(c)) for t, c in counts.items() if c > 0]


def topic_mastery(average: float) -> str:
    """Mastery band for a topic average."""
    if average >= 90:
        return "Expert"
    if average >= 75:
        return "Proficient"
    if average >= 60:
        return "Developing"
    return "Needs Support"


def score_timeline(records) -> List[TimelinePoint]:
    """Scored records as chronological (timestamp, score) points."""
    df = _scored(_ensure_frame(records)).sort_values(["recorded_at", "position"], kind="mergesort")
    return [
        TimelinePoint(recorded_at=row.recorded_at, score=int(row.score))
        for row in df.itertuples(index=False)
    ]


def class_comparison(records, threshold: int) -> List[ClassComparison]:
    """Per-class averages with at-risk, improving and declining student counts."""
    df = _ensure_frame(records)
    out: List[ClassComparison] = []
    for class_name, cdf in df.groupby("class_name", sort=False):
        scored = _scored(cdf)
        students = student_averages(cdf)
        trends = [student_trend(s.student_id, cdf).trend for s in students]
        topic_scores: Dict[str, float] = {
            str(topic): round(float(mean), 1)
            for topic, mean in scored.groupby("topic", sort=False)["score"].mean().items()
        }
        out.append(ClassComparison(
            class_name=str(class_name),
            average_score=round(float(scored["score"].mean()), 1) if not scored.empty else 0.0,
            total_students=int(cdf["student_id"].nunique()),
            at_risk_count=sum(1 for s in students if s.average < threshold),
            improving_count=trends.count("improving"),
            declining_count=trends.count("declining"),
            topic_scores=topic_scores,
        ))
    return out


def build_summary_stats(
    records: Sequence[ProgressRecord],
    threshold: int,
    student_id: Optional[str] = None,
) -> SummaryStats:
    """Compute every statistic the report prints from a single DataFrame."""
    df = records_to_frame(records)
    scored = int(df["score"].notna().sum())
    if scored < len(df):
        logger.info(
            f"{len(df) - scored} record(s) without a valid score excluded from averages",
            extra={"record_count": len(df)},
        )
    return SummaryStats(
        threshold=threshold,
        total_records=len(df),
        scored_records=scored,
        average_score=average_score(df),
        pass_rate=pass_rate_percent(df, threshold),
        topic_averages=topic_averages(df),
        student_averages=student_averages(df),
        class_averages=class_averages(df),
        at_risk_students=at_risk_students(df, threshold),
        topic_extremes=topic_extremes(df),
        type_distribution=assessment_type_distribution(df),
        student_trend=student_trend(student_id, df) if student_id is not None else None,
    )
