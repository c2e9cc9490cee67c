"""Unit tests for analytics functions."""
import math

import pytest

from progress_reports.domain.records import (
    ProgressRecord,
    normalize_assessment_type,
    round_half_up,
    sanitize_score,
)
from progress_reports.services.analytics import (
    assessment_type_distribution,
    at_risk_students,
    average_score,
    build_summary_stats,
    class_averages,
    class_comparison,
    pass_rate_percent,
    safe_ratio,
    score_timeline,
    student_averages,
    student_trend,
    topic_averages,
    topic_averages_for_chart,
    topic_extremes,
    topic_mastery,
)


class TestHelperFunctions:
    """Test helper functions."""

    def test_safe_ratio_with_valid_data(self):
        """Test safe_ratio with a non-zero denominator."""
        assert safe_ratio(2, 4) == 0.5

    def test_safe_ratio_with_zero_denominator(self):
        """Test safe_ratio guards against division by zero."""
        assert safe_ratio(3, 0) == 0.0

    def test_round_half_up(self):
        """Test .5 always rounds up."""
        assert round_half_up(69.5) == 70
        assert round_half_up(2.5) == 3
        assert round_half_up(66.666) == 67
        assert round_half_up(0.49) == 0

    def test_topic_mastery_bands(self):
        """Test mastery band boundaries."""
        assert topic_mastery(95) == "Expert"
        assert topic_mastery(90) == "Expert"
        assert topic_mastery(75) == "Proficient"
        assert topic_mastery(60) == "Developing"
        assert topic_mastery(59) == "Needs Support"


class TestRecordNormalization:
    """Test score sanitization and assessment type normalization."""

    def test_legacy_assessment_types(self):
        """Test legacy aliases map to canonical values."""
        assert normalize_assessment_type("general") == "Fundamentals"
        assert normalize_assessment_type("EXAM") == "Prototyping"

    def test_unknown_and_missing_assessment_types(self):
        """Test unknown types pass through and blanks default."""
        assert normalize_assessment_type("Capstone") == "Capstone"
        assert normalize_assessment_type(None) == "Fundamentals"
        assert normalize_assessment_type("  ") == "Fundamentals"

    @pytest.mark.parametrize("raw", [None, "", "abc", float("nan"), math.inf, -1, 101, True])
    def test_unusable_scores_become_none(self, raw):
        """Test invalid scores are excluded rather than zeroed."""
        assert sanitize_score(raw) is None

    def test_numeric_strings_are_accepted(self):
        """Test string and percent scores parse."""
        assert sanitize_score("85") == 85
        assert sanitize_score("85%") == 85
        assert sanitize_score(84.5) == 85

    def test_record_validator_applies_normalization(self, make_record):
        """Test the record model normalizes on ingestion."""
        record = make_record(assessmentType="exam", score="n/a", className="  ")
        assert record.assessment_type == "Prototyping"
        assert record.score is None
        assert record.has_score is False
        assert record.class_name == "Unassigned"

    def test_naive_timestamp_treated_as_utc(self):
        """Test naive timestamps gain a UTC timezone."""
        record = ProgressRecord(student_id="s", topic="t", recorded_at="2024-10-01T09:00:00")
        assert record.recorded_at.tzinfo is not None
        assert record.recorded_at.utcoffset().total_seconds() == 0


class TestTopicAverages:
    """Test per-topic aggregation."""

    def test_single_topic_scenario(self, make_record):
        """Three HCI scores of 90, 50 and 70 average to 70."""
        records = [make_record(i, topic="HCI", score=s) for i, s in enumerate([90, 50, 70])]
        result = topic_averages(records)
        assert [(t.topic, t.average) for t in result] == [("HCI", 70)]

    def test_topics_match_per_topic_means(self, class_records):
        """Test every distinct topic appears with its rounded mean."""
        result = {t.topic: t.average for t in topic_averages(class_records)}
        assert set(result) == {r.topic for r in class_records}
        for topic, avg in result.items():
            scores = [r.score for r in class_records if r.topic == topic]
            assert avg == round_half_up(sum(scores) / len(scores))

    def test_first_appearance_order(self, class_records):
        """Test topics keep the order they first appear in."""
        assert [t.topic for t in topic_averages(class_records)] == ["HCI", "Usability Testing"]

    def test_unscored_records_excluded(self, make_record):
        """Test missing scores do not pull the average towards zero."""
        records = [make_record(0, score=80), make_record(1, score=None)]
        assert topic_averages(records)[0].average == 80
        assert average_score(records) == 80

    def test_empty_input(self):
        """Test empty input returns empty list and the chart placeholder."""
        assert topic_averages([]) == []
        placeholder = topic_averages_for_chart([])
        assert [(t.topic, t.average) for t in placeholder] == [("No Data", 0)]

    def test_input_not_mutated(self, class_records):
        """Test aggregation leaves the records untouched."""
        before = [r.model_dump() for r in class_records]
        build_summary_stats(class_records, 70)
        assert [r.model_dump() for r in class_records] == before


class TestPassRate:
    """Test pass-rate computation."""

    def test_two_of_three_pass(self, make_record):
        """Scores 60, 70, 80 against 70 give 67%."""
        records = [make_record(i, score=s) for i, s in enumerate([60, 70, 80])]
        assert pass_rate_percent(records, 70) == 67

    @pytest.mark.parametrize("threshold", [0, 1, 50, 69, 70, 99, 100])
    def test_bounds(self, class_records, threshold):
        """Test pass rate stays within 0..100."""
        assert 0 <= pass_rate_percent(class_records, threshold) <= 100

    def test_all_pass(self, make_record):
        """Test 100 when every score meets the threshold."""
        records = [make_record(i, score=s) for i, s in enumerate([70, 88, 100])]
        assert pass_rate_percent(records, 70) == 100

    def test_empty_and_unscored(self, make_record):
        """Test 0 with nothing scored."""
        assert pass_rate_percent([], 70) == 0
        assert pass_rate_percent([make_record(0, score=None)], 70) == 0


class TestStudentTrend:
    """Test trend classification."""

    def _records(self, make_record, scores):
        return [make_record(i, score=s) for i, s in enumerate(scores)]

    def test_improving(self, make_record):
        """Test rising scores are improving."""
        trend = student_trend("stu-001", self._records(make_record, [50, 55, 80, 85]))
        assert trend.trend == "improving"
        assert trend.change == pytest.approx(30.0)

    def test_mirrored_sequence_flips(self, make_record):
        """Test reversing the halves flips improving to declining."""
        up = student_trend("stu-001", self._records(make_record, [50, 55, 80, 85]))
        down = student_trend("stu-001", self._records(make_record, [85, 80, 55, 50]))
        assert (up.trend, down.trend) == ("improving", "declining")
        assert down.change == pytest.approx(-up.change)

    def test_flat_is_stable(self, make_record):
        """Test a flat sequence is stable with zero change."""
        trend = student_trend("stu-001", self._records(make_record, [70, 70, 70]))
        assert trend.trend == "stable"
        assert trend.change == 0

    def test_small_change_is_stable(self, make_record):
        """Test changes within 5 points are stable."""
        trend = student_trend("stu-001", self._records(make_record, [70, 74]))
        assert trend.trend == "stable"
        assert trend.change == pytest.approx(4.0)

    def test_single_record(self, make_record):
        """Test fewer than two records is stable with zero change."""
        trend = student_trend("stu-001", self._records(make_record, [90]))
        assert (trend.trend, trend.change) == ("stable", 0.0)

    def test_sorted_chronologically(self, make_record):
        """Test records are ordered by time, not input order."""
        records = [make_record(3, score=90), make_record(0, score=40)]
        assert student_trend("stu-001", records).trend == "improving"


class TestStudentAndClassStats:
    """Test per-student and per-class aggregation."""

    def test_student_averages(self, class_records):
        """Test averages and counts per student id."""
        stats = {s.student_id: s for s in student_averages(class_records)}
        assert stats["stu-001"].average == 88
        assert stats["stu-001"].record_count == 2
        assert stats["stu-002"].average == 53
        assert stats["stu-003"].class_name == "5A"

    def test_first_non_empty_name(self, make_record):
        """Test the first non-empty name seen for a student is kept."""
        records = [
            make_record(0, studentName=None),
            make_record(1, studentName="Aisha B."),
            make_record(2, studentName="Someone Else"),
        ]
        assert student_averages(records)[0].name == "Aisha B."

    def test_name_falls_back_to_id(self, make_record):
        """Test a student without a name is shown by id."""
        assert student_averages([make_record(0, studentName=None)])[0].name == "stu-001"

    def test_class_averages(self, class_records):
        """Test class grouping with record counts."""
        stats = {c.name: c for c in class_averages(class_records)}
        assert stats["4B"].record_count == 4
        assert stats["4B"].average == 70
        assert stats["5A"].average == 40

    def test_unassigned_class(self, make_record):
        """Test records without a class group under Unassigned."""
        assert class_averages([make_record(0, className=None)])[0].name == "Unassigned"

    def test_at_risk_sorted_ascending(self, class_records):
        """Test at-risk students are below threshold, lowest first."""
        at_risk = at_risk_students(class_records, 70)
        assert [s.student_id for s in at_risk] == ["stu-003", "stu-002"]

    def test_topic_extremes(self, class_records):
        """Test strongest and weakest topics."""
        extremes = topic_extremes(class_records)
        assert extremes.highest.topic == "HCI"
        assert extremes.lowest.topic == "Usability Testing"

    def test_topic_extremes_ties(self, make_record):
        """Test ties resolve to first maximum and last minimum."""
        records = [
            make_record(0, topic="A", score=80),
            make_record(1, topic="B", score=60),
            make_record(2, topic="C", score=80),
            make_record(3, topic="D", score=60),
        ]
        extremes = topic_extremes(records)
        assert (extremes.highest.topic, extremes.lowest.topic) == ("A", "D")

    def test_topic_extremes_empty(self):
        """Test no topics gives no extremes."""
        extremes = topic_extremes([])
        assert extremes.highest is None and extremes.lowest is None

    def test_type_distribution(self, class_records):
        """Test counts per normalized assessment type."""
        counts = {t.type: t.count for t in assessment_type_distribution(class_records)}
        assert counts == {"Fundamentals": 4, "Prototyping": 1}


class TestSupplementaryViews:
    """Test timeline and class comparison."""

    def test_score_timeline_is_chronological(self, make_record):
        """Test unscored records are skipped and points are time ordered."""
        records = [make_record(2, score=70), make_record(0, score=50), make_record(1, score=None)]
        assert [p.score for p in score_timeline(records)] == [50, 70]

    def test_class_comparison(self, class_records):
        """Test per-class summary counts."""
        result = {c.class_name: c for c in class_comparison(class_records, 70)}
        assert result["4B"].total_students == 2
        assert result["4B"].at_risk_count == 1
        assert result["4B"].average_score == 70.0
        assert result["5A"].at_risk_count == 1
        assert result["4B"].topic_scores["HCI"] == pytest.approx(65.0)

    def test_class_comparison_empty(self):
        assert class_comparison([], 70) == []


class TestSummaryStats:
    """Test the combined statistics used by the report."""

    def test_empty_input_defaults(self):
        """Test every statistic has a safe default for empty input."""
        stats = build_summary_stats([], 70)
        assert stats.average_score == 0
        assert stats.pass_rate == 0
        assert stats.total_records == 0
        assert stats.topic_averages == []
        assert stats.topics_covered == 0
        assert stats.at_risk_count == 0
        assert stats.topic_extremes.highest is None
        assert stats.student_trend is None

    def test_student_trend_included_for_focus_student(self, class_records):
        """Test the focus student's trend is attached."""
        stats = build_summary_stats(class_records, 70, student_id="stu-002")
        assert stats.student_trend is not None
        assert stats.scored_records == 5
