from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Import result models.

ImportResult aggregates one batch import run (one or more workbooks) and
feeds the SUMMARY output line.
"""


@dataclass(frozen=True)
class FileStat:
    """Per-file import statistics."""
    file_name: str
    status: str  # success/failed
    saved_rows: int
    elapsed_seconds: float
    error: str | None = None


@dataclass(frozen=True)
class ImportResult:
    success_files: int
    failed_files: int
    parsed_rows: int
    dropped_rows: int
    saved_rows: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    file_stats: list[FileStat] | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files
