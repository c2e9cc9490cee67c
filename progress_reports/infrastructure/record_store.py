"""Record stores that feed the report generator.

A store is passed in explicitly by the caller; nothing here is a module-level
client. ``CsvRecordStore`` loads an export of the progress table once and
serves filtered copies of it.
"""
import re
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Union

import pandas as pd

from progress_reports.core.logging import get_logger
from progress_reports.domain.records import ProgressRecord, parse_records
from progress_reports.services.filters import RecordQuery, filter_records

logger = get_logger(__name__)

# Columns of the progress export that map onto ProgressRecord fields
CSV_COLUMNS = frozenset({
    "id", "student_id", "student_email", "student_name", "topic", "assessment_type",
    "score", "notes", "recorded_at", "recorded_by", "class_name",
})


class RecordStore(Protocol):
    """Source of progress records for one report request."""

    def fetch_records(self, query: Optional[RecordQuery] = None) -> List[ProgressRecord]: ...


class InMemoryRecordStore:
    """Serves records already held by the caller (and by tests)."""

    def __init__(self, records: Iterable = ()):
        self._records = parse_records(records)

    def fetch_records(self, query: Optional[RecordQuery] = None) -> List[ProgressRecord]:
        return filter_records(self._records, query)

    def __len__(self) -> int:
        return len(self._records)


class CsvRecordStore:
    """Reads a CSV export of the progress table.

    Column headers may be snake_case or the portal's camelCase; empty cells
    become missing values. The file is read on first use only.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._records: Optional[List[ProgressRecord]] = None

    def _load(self) -> List[ProgressRecord]:
        if self._records is None:
            df = pd.read_csv(self.path, dtype=str, keep_default_na=False)
            df = df.rename(columns=lambda c: _snake_case(str(c)))
            df = df[[c for c in df.columns if c in CSV_COLUMNS]]
            rows = [
                {k: (v if v != "" else None) for k, v in row.items()}
                for row in df.to_dict(orient="records")
            ]
            self._records = parse_records(rows)
            logger.info(f"Loaded {len(self._records)} progress records from {self.path}",
                        extra={"record_count": len(self._records)})
        return self._records

    def fetch_records(self, query: Optional[RecordQuery] = None) -> List[ProgressRecord]:
        return filter_records(self._load(), query)


# Word boundaries inside a header: lower-to-upper ("studentId") and the end of
# a capital run before a capitalised word ("HTMLNotes")
_CASE_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def _snake_case(name: str) -> str:
    """``studentId``, ``studentID`` and ``Student ID`` all become ``student_id``."""
    name = _CASE_BOUNDARY.sub("_", name.strip())
    return re.sub(r"[\s_\-]+", "_", name).lower().strip("_")
