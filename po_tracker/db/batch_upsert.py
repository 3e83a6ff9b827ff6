from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

"""Batched INSERT ... ON CONFLICT DO UPDATE via psycopg2.extras.execute_values.

Rows whose conflict key already exists are updated in place, so re-running
the same batch is safe. ``merge_columns`` are JSONB columns merged with the
stored document (``col = table.col || EXCLUDED.col``) instead of replaced.
"""

try:  # pragma: no cover - optional until psycopg2 present at runtime
    from psycopg2.extras import execute_values
except ImportError:  # pragma: no cover
    execute_values = None  # type: ignore[assignment]


class BatchUpsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing data for a single batch upsert."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class UpsertResult:
    written_rows: int


def build_upsert_sql(
    table: str,
    columns: Sequence[str],
    conflict_column: str,
    merge_columns: Iterable[str] = (),
) -> str:
    merge = set(merge_columns)
    cols_sql = ",".join(f'"{c}"' for c in columns)
    assignments = []
    for c in columns:
        if c == conflict_column:
            continue
        if c in merge:
            assignments.append(f'"{c}" = COALESCE({table}."{c}", \'{{}}\'::jsonb) || EXCLUDED."{c}"')
        else:
            assignments.append(f'"{c}" = EXCLUDED."{c}"')
    sql = f'INSERT INTO {table} ({cols_sql}) VALUES %s ON CONFLICT ("{conflict_column}") '
    if assignments:
        sql += "DO UPDATE SET " + ", ".join(assignments)
    else:
        sql += "DO NOTHING"
    return sql


def batch_upsert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    conflict_column: str,
    merge_columns: Iterable[str] = (),
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> UpsertResult:
    """Upsert ``rows`` into ``table``.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: 対象テーブル名 (サニタイズ済み想定)
    columns: 書き込み列
    rows: 行シーケンス (columns 順)
    conflict_column: ON CONFLICT 対象の一意列
    merge_columns: JSONB マージする列
    page_size: execute_values の page_size
    metrics_callback: receives BatchMetrics; not called for empty ``rows``
    """
    if execute_values is None:
        raise BatchUpsertError("psycopg2 not available")

    rows_list = list(rows)
    if not rows_list:
        return UpsertResult(written_rows=0)

    sql = build_upsert_sql(table, columns, conflict_column, merge_columns)

    start_time = time.time()
    try:
        execute_values(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchUpsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    return UpsertResult(written_rows=len(rows_list))
