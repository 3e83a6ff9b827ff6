from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.order_store import StoreError
from ..excel.reader import SUPPORTED_SUFFIXES, WorkbookParseError
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import TrackerConfig
from ..models.processing_result import FileStat, ImportResult
from ..models.upload_file import FileStatus, UploadFile
from .progress import ImportProgress
from .upload import UploadSession

"""Batch import of order workbooks.

Each workbook goes through its own UploadSession with every kept row
selected, then one store.save() call. A failure on one workbook is recorded
in the error log and the batch carries on with the next file; there is no
transaction spanning several workbooks.

store=None is "mock mode": rows are parsed and counted but not persisted.
"""

__all__ = [
    "BatchImportError",
    "scan_workbooks",
    "expand_paths",
    "import_workbook",
    "import_workbooks",
]

logger = logging.getLogger(__name__)


class BatchImportError(Exception):
    """Fatal batch import error (bad input path)."""


def scan_workbooks(directory: Path) -> list[Path]:
    """List .xlsx/.xls files in ``directory`` (non-recursive, sorted).

    Raises:
        BatchImportError: directory missing, not a directory or unreadable
    """
    if not directory.exists():
        raise BatchImportError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise BatchImportError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES and not p.name.startswith("~$")
        )
    except OSError as e:
        raise BatchImportError(f"Error reading directory {directory}: {e}") from e


def expand_paths(paths: Iterable[Path]) -> list[Path]:
    """Expand directories into their workbooks; plain files are kept as given.

    A missing workbook path is kept (it fails on its own during import); any
    other missing path is a fatal input error.
    """
    out: list[Path] = []
    for p in paths:
        p = Path(p)
        if p.is_dir():
            out.extend(scan_workbooks(p))
        elif p.exists() or p.suffix.lower() in SUPPORTED_SUFFIXES:
            out.append(p)
        else:
            raise BatchImportError(f"Path not found: {p}")
    return out


def import_workbook(
    path: Path,
    config: TrackerConfig,
    store: Any,
    error_log: ErrorLogBuffer,
    only: Iterable[int] | None = None,
) -> UploadFile:
    """Import one workbook; never raises for parse/store failures."""
    start_time = datetime.now(UTC)
    session = UploadSession(config.columns, config.header_row_offset)

    def _failed(error_type: str, message: str, parsed: int = 0, dropped: int = 0) -> UploadFile:
        error_log.record(file=path.name, row=-1, error_type=error_type, message=message)
        logger.error("%s: %s", path.name, message)
        return UploadFile(
            path=path,
            name=path.name,
            start_time=start_time,
            end_time=datetime.now(UTC),
            status=FileStatus.FAILED,
            parsed_rows=parsed,
            dropped_rows=dropped,
            saved_rows=0,
            error=message,
        )

    try:
        orders = session.load(path)
    except WorkbookParseError as e:
        return _failed("PARSE_ERROR", str(e))

    parsed, dropped = session.parsed_rows, session.dropped_rows
    if only is not None:
        try:
            session.select(list(only))
        except KeyError as e:
            return _failed("SELECTION_ERROR", str(e.args[0]), parsed, dropped)
    else:
        session.select_all()

    selected = len(session.selected)
    if not orders or selected == 0:
        logger.warning("%s: no orders to import (rows=%d dropped=%d)", path.name, parsed, dropped)
        saved = 0
    elif store is None:
        saved = selected
        logger.debug("%s: mock mode selected=%d", path.name, saved)
    else:
        try:
            saved = len(session.import_selected(store))
        except StoreError as e:
            return _failed("STORE_ERROR", str(e), parsed, dropped)

    return UploadFile(
        path=path,
        name=path.name,
        start_time=start_time,
        end_time=datetime.now(UTC),
        status=FileStatus.SUCCESS,
        parsed_rows=parsed,
        dropped_rows=dropped,
        saved_rows=saved,
    )


def import_workbooks(
    paths: Iterable[Path],
    config: TrackerConfig,
    store: Any = None,
    only: Iterable[int] | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> ImportResult:
    """Import every workbook in ``paths`` (directories are expanded).

    Args:
        paths: workbook files and/or directories
        config: tracker configuration
        store: OrderStore (None = mock mode)
        only: temp ids to import instead of every row (applied to each file)
        error_log: buffer for failures; flushed before returning

    Raises:
        BatchImportError: a path in ``paths`` is missing or a directory could
            not be scanned
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    files = expand_paths(paths)

    file_stats: list[FileStat] = []
    parsed = dropped = 0
    with ImportProgress(len(files)) as progress:
        for path in files:
            progress.begin(path)
            result = import_workbook(path, config, store, error_log, only=only)
            progress.done(result)
            parsed += result.parsed_rows
            dropped += result.dropped_rows

            elapsed = 0.0
            if result.start_time and result.end_time:
                elapsed = (result.end_time - result.start_time).total_seconds()
            file_stats.append(
                FileStat(
                    file_name=result.name,
                    status=result.status.value,
                    saved_rows=result.saved_rows,
                    elapsed_seconds=elapsed,
                    error=result.error,
                )
            )

    try:
        log_path = error_log.flush()
    except OSError as e:
        # ログ書き込み失敗で import 結果は捨てない
        logger.warning("could not write error log: %s", e)
    else:
        if progress.failed and log_path is not None:
            logger.info("error details written to %s", log_path)

    end_time = datetime.now(UTC)
    return ImportResult(
        success_files=progress.ok,
        failed_files=progress.failed,
        parsed_rows=parsed,
        dropped_rows=dropped,
        saved_rows=progress.saved,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
    )
