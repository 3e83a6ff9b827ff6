from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm

from ..models.upload_file import FileStatus, UploadFile

"""Workbook-level progress bar for batch imports (tqdm, TTY only).

Redirected or captured output gets no bar at all, so the labeled log lines
stay the only thing written to stdout.
"""

__all__ = [
    "ImportProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ImportProgress:
    """One tick per workbook; the postfix carries running ok/failed/saved counts."""

    def __init__(self, total_files: int, *, description: str = "Importing workbooks") -> None:
        self.description = description
        self.ok = 0
        self.failed = 0
        self.saved = 0
        # 非TTY では disable=True で描画を抑止
        self.bar: Any = tqdm(
            total=total_files,
            desc=description,
            unit="wb",
            ncols=80,
            ascii=True,
            disable=not is_tty_enabled(),
        )

    @property
    def enabled(self) -> bool:
        return not self.bar.disable

    def begin(self, path: Path) -> None:
        self.bar.set_description(f"{self.description} ({path.name})", refresh=False)

    def done(self, result: UploadFile) -> None:
        if result.status == FileStatus.SUCCESS:
            self.ok += 1
            self.saved += result.saved_rows
        else:
            self.failed += 1
        self.bar.set_description(self.description, refresh=False)
        self.bar.set_postfix(ok=self.ok, failed=self.failed, saved=self.saved, refresh=False)
        self.bar.update(1)

    def close(self) -> None:
        self.bar.close()

    def __enter__(self) -> ImportProgress:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
