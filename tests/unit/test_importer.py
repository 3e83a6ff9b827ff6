from __future__ import annotations

import json
from pathlib import Path

import pytest

from po_tracker.db.order_store import StoreError
from po_tracker.logging.error_log import ErrorLogBuffer
from po_tracker.models.config_models import TrackerConfig
from po_tracker.models.upload_file import FileStatus
from po_tracker.services.importer import (
    BatchImportError,
    expand_paths,
    import_workbook,
    import_workbooks,
    scan_workbooks,
)

"""Unit tests for batch workbook import."""


class FakeStore:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.saved: list[dict] = []

    def save(self, records):
        records = list(records)
        if self.fail_on and any(r.get("ORDER NO.") == self.fail_on for r in records):
            raise StoreError("save failed: duplicate key")
        self.saved.extend(records)
        return [str(r["ORDER NO."]) for r in records]


def test_scan_workbooks_filters_and_sorts(temp_workdir: Path):
    data = temp_workdir / "data"
    for name in ("b.xlsx", "a.xls", "notes.txt", "~$a.xlsx"):
        (data / name).write_bytes(b"")
    assert [p.name for p in scan_workbooks(data)] == ["a.xls", "b.xlsx"]


def test_scan_workbooks_bad_paths(temp_workdir: Path):
    with pytest.raises(BatchImportError, match="Directory not found"):
        scan_workbooks(temp_workdir / "missing")
    f = temp_workdir / "data" / "x.xlsx"
    f.write_bytes(b"")
    with pytest.raises(BatchImportError, match="Path is not a directory"):
        scan_workbooks(f)


def test_expand_paths_keeps_files(temp_workdir: Path):
    f = temp_workdir / "single.xlsx"
    f.write_bytes(b"")
    (temp_workdir / "data" / "d.xlsx").write_bytes(b"")
    assert [p.name for p in expand_paths([f, temp_workdir / "data"])] == ["single.xlsx", "d.xlsx"]


def test_import_workbook_saves_every_kept_row(po_register: Path):
    store = FakeStore()
    result = import_workbook(po_register, TrackerConfig(), store, ErrorLogBuffer())
    assert result.status == FileStatus.SUCCESS
    assert (result.parsed_rows, result.dropped_rows, result.saved_rows) == (3, 1, 2)
    assert [r["ORDER NO."] for r in store.saved] == ["CPL/2024/101", "CPL/2024/102"]


def test_import_workbook_only_subset(po_register: Path):
    store = FakeStore()
    result = import_workbook(po_register, TrackerConfig(), store, ErrorLogBuffer(), only=[1])
    assert result.saved_rows == 1
    assert store.saved[0]["ORDER NO."] == "CPL/2024/102"


def test_import_workbook_unknown_selection(po_register: Path):
    buf = ErrorLogBuffer()
    result = import_workbook(po_register, TrackerConfig(), FakeStore(), buf, only=[7])
    assert result.status == FileStatus.FAILED
    assert "unknown row id" in result.error
    assert len(buf) == 1


def test_import_workbook_mock_mode(po_register: Path):
    result = import_workbook(po_register, TrackerConfig(), None, ErrorLogBuffer())
    assert result.status == FileStatus.SUCCESS
    assert result.saved_rows == 2


def test_import_workbook_store_failure(po_register: Path):
    buf = ErrorLogBuffer()
    result = import_workbook(po_register, TrackerConfig(), FakeStore(fail_on="CPL/2024/101"), buf)
    assert result.status == FileStatus.FAILED
    assert result.saved_rows == 0
    assert result.error == "save failed: duplicate key"


def test_import_workbook_without_orders(make_workbook):
    path = make_workbook("empty.xlsx", ["ORDER NO.", "SUBJECT"], [[None, "Totals"]])
    result = import_workbook(path, TrackerConfig(), FakeStore(), ErrorLogBuffer())
    assert result.status == FileStatus.SUCCESS
    assert result.saved_rows == 0
    assert result.dropped_rows == 1


def test_import_workbooks_continues_after_failure(po_register: Path, temp_workdir: Path):
    bad = temp_workdir / "data" / "a_broken.xlsx"
    bad.write_bytes(b"not a workbook")
    result = import_workbooks([temp_workdir / "data"], TrackerConfig(), store=FakeStore())
    assert result.success_files == 1
    assert result.failed_files == 1
    assert result.saved_rows == 2
    assert [s.file_name for s in result.file_stats] == ["a_broken.xlsx", "po_register.xlsx"]

    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    rec = json.loads(logs[0].read_text(encoding="utf-8").splitlines()[0])
    assert rec["file"] == "a_broken.xlsx"
    assert rec["error_type"] == "PARSE_ERROR"
    assert rec["row"] == -1


def test_import_workbooks_no_log_when_clean(po_register: Path, temp_workdir: Path):
    result = import_workbooks([po_register], TrackerConfig())
    assert result.failed_files == 0
    assert list((temp_workdir / "logs").glob("errors-*.log")) == []


def test_expand_paths_missing_directory(temp_workdir: Path):
    with pytest.raises(BatchImportError, match="Path not found"):
        expand_paths([temp_workdir / "nowhere"])
    # 存在しない workbook はファイル単位の失敗として残す
    assert expand_paths([temp_workdir / "gone.xlsx"]) == [temp_workdir / "gone.xlsx"]
