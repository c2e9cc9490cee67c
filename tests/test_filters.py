"""Unit tests for record filtering and ordering."""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from progress_reports.services.filters import RecordQuery, filter_records

from tests.conftest import FIXED_NOW


class TestRecordQuery:
    """Test query parsing."""

    def test_all_means_unfiltered(self):
        query = RecordQuery(topic="all", className=" ", assessmentType="All")
        assert query.topic is None
        assert query.class_name is None
        assert query.assessment_type is None

    def test_camel_case_payload(self):
        query = RecordQuery.model_validate({"studentId": "stu-001", "sortKey": "recordedAt", "sortDir": "desc"})
        assert query.student_id == "stu-001"
        assert query.sort_key == "recorded_at"

    def test_unknown_sort_key(self):
        with pytest.raises(ValidationError):
            RecordQuery(sort_key="password")


class TestFilterRecords:
    """Test filter_records."""

    def test_no_query_returns_copy(self, class_records):
        result = filter_records(class_records)
        assert result == class_records
        assert result is not class_records

    def test_student_filter(self, class_records):
        result = filter_records(class_records, RecordQuery(student_id="stu-001"))
        assert {r.student_id for r in result} == {"stu-001"}
        assert len(result) == 2

    def test_class_filter_case_insensitive(self, class_records):
        result = filter_records(class_records, RecordQuery(class_name="5a"))
        assert [r.student_id for r in result] == ["stu-003"]

    def test_legacy_type_filter(self, class_records):
        """Test filtering by a legacy alias matches its canonical type."""
        result = filter_records(class_records, RecordQuery(assessment_type="exam"))
        assert [r.score for r in result] == [55]

    def test_date_window(self, make_record):
        records = [
            make_record(0, recordedAt=FIXED_NOW - timedelta(days=2)),
            make_record(1, recordedAt=FIXED_NOW - timedelta(days=20)),
            make_record(2, recordedAt=FIXED_NOW - timedelta(days=80)),
        ]
        week = filter_records(records, RecordQuery(date_range="week"), now=FIXED_NOW)
        month = filter_records(records, RecordQuery(date_range="month"), now=FIXED_NOW)
        quarter = filter_records(records, RecordQuery(date_range="quarter"), now=FIXED_NOW)
        assert [r.id for r in week] == ["rec-000"]
        assert [r.id for r in month] == ["rec-000", "rec-001"]
        assert len(quarter) == 3

    def test_sort_by_score_desc(self, make_record):
        records = [make_record(0, score=60), make_record(1, score=None), make_record(2, score=90)]
        result = filter_records(records, RecordQuery(sort_key="score", sort_dir="desc"))
        assert [r.score for r in result] == [90, 60, None]

    def test_sort_is_stable(self, class_records):
        result = filter_records(class_records, RecordQuery(sort_key="topic"))
        assert [r.id for r in result] == ["rec-000", "rec-001", "rec-004", "rec-002", "rec-003"]

    def test_input_unchanged(self, class_records):
        before = list(class_records)
        filter_records(class_records, RecordQuery(sort_key="score"))
        assert class_records == before
