from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Workbook reader for purchase order exports.

Only the first sheet is read. The first ``header_row_offset`` rows are report
titles/letterhead; the row after them is the header row and everything below
is data. Each data row becomes a RawRow (header text -> cell value).

Empty cells are left out of the RawRow entirely (absent, not ""), so the
column normalizer can still fall back to an alias header for that field.
"""

__all__ = [
    "SUPPORTED_SUFFIXES",
    "PARSE_FAILURE_MESSAGE",
    "WorkbookParseError",
    "SheetRows",
    "read_order_sheet",
]

SUPPORTED_SUFFIXES = {".xlsx": "openpyxl", ".xls": "xlrd"}
PARSE_FAILURE_MESSAGE = "Failed to parse Excel file. Please ensure it is a valid .xlsx or .xls file."


class WorkbookParseError(Exception):
    """Raised when a workbook cannot be read; str() is the user-facing message."""

    def __init__(self, path: Path | str, cause: str) -> None:
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{PARSE_FAILURE_MESSAGE} ({self.path.name}: {cause})")


@dataclass
class SheetRows:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]  # RawRow (ヘッダ文字列 -> 値, 空セルは除外)


def _clean_cell(val: Any) -> Any:
    """Convert a pandas cell to a plain Python value, or None when empty."""
    if val is None:
        return None
    if isinstance(val, str):
        return None if val.strip() == "" else val
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):  # pragma: no cover - array-like cell
        return val
    if isinstance(val, pd.Timestamp):
        return val.to_pydatetime()
    if hasattr(val, "item"):
        # numpy scalar -> python
        val = val.item()
    if isinstance(val, float) and val.is_integer():
        # 数値列は NaN 混在で float 化されるため整数へ戻す (ORDER NO. 1234.0 -> 1234)
        return int(val)
    return val


def _header_text(val: Any) -> str | None:
    if val is None:
        return None
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):  # pragma: no cover
        pass
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    text = str(val)
    return text if text.strip() else None


def read_order_sheet(path: Path, header_row_offset: int = 5) -> SheetRows:
    """Read the first sheet of an order workbook.

    Parameters
    ----------
    path: .xlsx / .xls workbook
    header_row_offset: rows skipped before the header row

    Raises
    ------
    WorkbookParseError: unsupported extension, unreadable workbook, or no
        header row after the skipped rows
    """
    path = Path(path)
    engine = SUPPORTED_SUFFIXES.get(path.suffix.lower())
    if engine is None:
        raise WorkbookParseError(path, f"unsupported file type '{path.suffix}'")
    if not path.is_file():
        raise WorkbookParseError(path, "file not found")

    try:
        with pd.ExcelFile(path, engine=engine) as xls:
            if not xls.sheet_names:
                raise WorkbookParseError(path, "workbook has no sheets")
            sheet_name = str(xls.sheet_names[0])
            # ヘッダなしで生読みし、offset 行目をヘッダとして適用
            df = xls.parse(xls.sheet_names[0], header=None)
    except WorkbookParseError:
        raise
    except Exception as e:
        raise WorkbookParseError(path, str(e) or type(e).__name__) from e

    if df.shape[0] <= header_row_offset:
        raise WorkbookParseError(
            path, f"sheet '{sheet_name}' has no header row after {header_row_offset} skipped rows"
        )

    headers = [_header_text(v) for v in df.iloc[header_row_offset].tolist()]
    columns = [h for h in headers if h is not None]

    rows: list[dict[str, Any]] = []
    for _, raw in df.iloc[header_row_offset + 1:].iterrows():
        row: dict[str, Any] = {}
        for header, val in zip(headers, raw.tolist(), strict=False):
            if header is None:
                continue  # 見出しなし列は無視
            cell = _clean_cell(val)
            if cell is None:
                continue
            row[header] = cell
        if row:
            rows.append(row)

    return SheetRows(sheet_name=sheet_name, columns=columns, rows=rows)
