# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from po_tracker.logging.init import reset_logging


TITLE_ROWS: list[list[object]] = [
    ["CRESCENT POWER LIMITED"],
    ["PURCHASE ORDER REGISTER"],
    ["Financial Year 2024-25"],
    ["Generated from ERP"],
    ["Page 1"],
]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    # 実 DB / .env の影響を受けない
    for key in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """header_row_offset: 5
timezone: UTC
columns:
  aliases:
    SERIAL NO.: [SERIAL NO, SL NO, S.NO]
    ORDER NO.: [ORDER NO, PO NO, PO NUMBER]
    ORDER DATE: [PO DATE, DATE]
    ISSUED TO: [VENDOR NAME, PARTY NAME, NAME]
    BASIC ORDER VALUE: [BASIC VALUE]
    TOTAL ORDER VALUE: [TOTAL VALUE]
report:
  company_name: CRESCENT POWER LIMITED
  output_directory: ./reports
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "tracker.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def _write_workbook(path: Path, header: list[object], rows: list[list[object]],
                    title_rows: list[list[object]] | None = None) -> Path:
    body = (TITLE_ROWS if title_rows is None else title_rows) + [header] + rows
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(body).to_excel(writer, sheet_name="PO Register", header=False, index=False)
    return path


@pytest.fixture()
def make_workbook(temp_workdir: Path) -> Callable[..., Path]:
    """Create ``data/<name>`` with 5 title rows, a header row and data rows."""
    def _make(name: str, header: list[object], rows: list[list[object]], **kw: Any) -> Path:
        return _write_workbook(temp_workdir / "data" / name, header, rows, **kw)
    return _make


@pytest.fixture()
def po_register(make_workbook) -> Path:
    header = [
        "SERIAL NO.", "PO NO", "PO DATE", "VENDOR NAME", "VENDOR LOCATION", "SUBJECT",
        "BASIC ORDER \nVALUE", "GST", "TOTAL ORDER\nVALUE", "DEALING OFFICER",
    ]
    rows = [
        [1, "CPL/2024/101", "12th December 2024", "Shree Cables", "Pune", "HT cable",
         100000, 18000, 118000, "R. Iyer"],
        [None, None, None, None, None, None, None, None, None, None],
        [2, "CPL/2024/102", 45000, "Bharat Transformers", "Nashik", "Transformer oil",
         50000, 9000, 59000, "S. Rao"],
        [None, None, None, "Totals", None, None, 150000, 27000, 177000, None],
    ]
    return make_workbook("po_register.xlsx", header, rows)


class FakeCursor:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.executed: list[tuple[str, Any]] = []
        self.rowcount = conn.rowcount
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        if self.conn.fail_with is not None:
            raise self.conn.fail_with
        self.executed.append((sql, params))
        self.conn.statements.append((sql, params))

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self.conn.rows)

    def fetchone(self) -> tuple[Any, ...] | None:
        return self.conn.rows[0] if self.conn.rows else None

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """Minimal psycopg2 connection double recording statements and tx calls."""

    def __init__(self, rows: list[tuple[Any, ...]] | None = None, rowcount: int = 1) -> None:
        self.rows = rows or []
        self.rowcount = rowcount
        self.statements: list[tuple[str, Any]] = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_with: Exception | None = None

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


@pytest.fixture()
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture()
def captured_upserts(monkeypatch) -> list[dict[str, Any]]:
    """Replace execute_values so batch upserts are recorded instead of sent."""
    import po_tracker.db.batch_upsert as bu

    calls: list[dict[str, Any]] = []

    def fake_execute_values(cursor, sql, rows, template=None, page_size=100):
        calls.append({"sql": sql, "rows": list(rows), "page_size": page_size})

    monkeypatch.setattr(bu, "execute_values", fake_execute_values)
    return calls
