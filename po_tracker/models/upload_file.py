from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

"""UploadFile domain model and FileStatus enum.

UploadFile tracks one workbook through a batch import, from discovery to
success or failure. Row counts distinguish parsed rows (after the header
offset), rows dropped as blank and rows actually written to the store.
"""


class FileStatus(Enum):
    """Status enum for UploadFile processing lifecycle.

    State transitions: pending → processing → (success | failed)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadFile:
    path: Path
    name: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: FileStatus = FileStatus.PENDING
    parsed_rows: int = 0   # ヘッダ以降の非空行
    dropped_rows: int = 0  # ORDER NO. / ORDER DATE 共に空で除外
    saved_rows: int = 0    # store へ書き込んだ件数 (mock mode では選択件数)
    error: str | None = None
