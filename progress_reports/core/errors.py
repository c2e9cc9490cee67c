"""Exceptions raised at the report generation boundaries."""
from typing import Optional


class ReportError(Exception):
    """Base class for caller errors in report generation."""


class InvalidThresholdError(ReportError, ValueError):
    """Pass threshold that is not a whole number in the 0-100 range."""

    def __init__(self, threshold):
        self.threshold = threshold
        super().__init__(f"Threshold must be a whole number between 0 and 100, got {threshold!r}")


class InvalidReportModeError(ReportError, ValueError):
    """Report mode that is neither overview nor single-student."""

    def __init__(self, mode):
        self.mode = mode
        super().__init__(
            f"Unknown report mode {mode!r}. Expected 'overview' or 'single-student'."
        )


class RecordValidationError(ReportError, ValueError):
    """A raw record payload could not be validated into a ProgressRecord."""

    def __init__(self, index: int, detail: str, record_id: Optional[str] = None):
        self.index = index
        self.record_id = record_id
        self.detail = detail
        where = f"record {index}" if record_id is None else f"record {index} ({record_id})"
        super().__init__(f"Invalid {where}: {detail}")
