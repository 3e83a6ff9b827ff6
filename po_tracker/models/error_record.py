from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

Boundary failures (unreadable workbook, store error, report failure) are
recorded as ErrorRecords and written as JSON Lines by ErrorLogBuffer. row=-1
is the sentinel for failures that are not tied to a specific sheet row.

The fixed key set is described by po_tracker/contracts/error_log_schema.json.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Workbook name (or order id for store/report failures)
        row: Sheet row number. -1 when not row specific
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Underlying error message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int  # 不明な場合 -1
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, row: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
