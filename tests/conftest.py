"""Pytest configuration and shared fixtures."""
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from progress_reports.domain.records import ProgressRecord


BASE_TIME = datetime(2024, 10, 1, 9, 0, tzinfo=timezone.utc)
FIXED_NOW = datetime(2024, 10, 15, 12, 0, tzinfo=timezone.utc)
FIXED_MILLIS = 1728993600000


def build_record(index: int = 0, **overrides) -> ProgressRecord:
    """A valid ProgressRecord, one day later per index, with field overrides."""
    data = {
        "id": f"rec-{index:03d}",
        "studentId": "stu-001",
        "studentEmail": "aisha@example.edu",
        "studentName": "Aisha",
        "topic": "HCI",
        "assessmentType": "Fundamentals",
        "score": 80,
        "notes": "",
        "recordedAt": BASE_TIME + timedelta(days=index),
        "className": "4B",
    }
    data.update(overrides)
    return ProgressRecord.model_validate(data)


@pytest.fixture
def make_record():
    """Factory fixture for ProgressRecords."""
    return build_record


@pytest.fixture
def class_records():
    """Three students in two classes across two topics."""
    return [
        build_record(0, studentId="stu-001", studentName="Aisha", topic="HCI", score=90),
        build_record(1, studentId="stu-002", studentName="Adam", studentEmail="adam@example.edu",
                     topic="HCI", score=50),
        build_record(2, studentId="stu-001", studentName="Aisha", topic="Usability Testing", score=85),
        build_record(3, studentId="stu-003", studentName="Zoe", studentEmail=None,
                     topic="Usability Testing", score=40, className="5A"),
        build_record(4, studentId="stu-002", studentName="Adam", studentEmail="adam@example.edu",
                     topic="HCI", score=55, assessmentType="exam"),
    ]


@pytest.fixture
def raw_payload():
    """Portal-shaped JSON records as posted by the dashboard."""
    return [
        {
            "id": "a1",
            "studentId": "stu-001",
            "studentEmail": "aisha@example.edu",
            "topic": "HCI",
            "assessmentType": "general",
            "score": 82,
            "notes": "Strong prototype walkthrough",
            "recordedAt": "2024-10-01T09:30:00Z",
            "className": "4B",
        },
        {
            "id": "a2",
            "studentId": "stu-001",
            "studentEmail": "aisha@example.edu",
            "topic": "Accessibility",
            "assessmentType": "exam",
            "score": 64,
            "notes": "",
            "recordedAt": "2024-10-08T09:30:00Z",
            "className": "4B",
        },
    ]


class RecordingWriter:
    """DocumentWriter that records primitive calls instead of drawing."""

    def __init__(self):
        self.calls = []
        self.pages = []
        self._current = []

    def _record(self, name, *args, **kwargs):
        call = (name, args, kwargs)
        self.calls.append(call)
        self._current.append(call)

    def set_font(self, name, size):
        self._record("set_font", name, size)

    def set_text_color(self, rgb):
        self._record("set_text_color", rgb)

    def set_fill_color(self, rgb):
        self._record("set_fill_color", rgb)

    def set_draw_color(self, rgb):
        self._record("set_draw_color", rgb)

    def set_line_width(self, width):
        self._record("set_line_width", width)

    def text(self, text, x, y, align="left"):
        self._record("text", text, x, y, align=align)

    def rect(self, x, y, width, height, fill=False, stroke=True):
        self._record("rect", x, y, width, height, fill=fill, stroke=stroke)

    def line(self, x1, y1, x2, y2):
        self._record("line", x1, y1, x2, y2)

    def end_page(self):
        self.pages.append(self._current)
        self._current = []

    def finish(self):
        return b""

    def texts(self, page=None):
        calls = self.calls if page is None else self.pages[page]
        return [args[0] for name, args, _ in calls if name == "text"]


@pytest.fixture
def recording_writer():
    return RecordingWriter()


@pytest.fixture
def test_client():
    """FastAPI test client."""
    # Import after the environment is set up
    from main import app
    return TestClient(app)
