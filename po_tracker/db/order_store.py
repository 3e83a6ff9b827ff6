from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from functools import partial
from typing import Any

from ..models.config_models import CANONICAL_FIELDS
from ..models.order import SYSTEM_FIELDS, OrderStatus, PersistedOrder
from .batch_upsert import BatchMetrics, BatchUpsertError, batch_upsert

"""PostgreSQL-backed order store.

One row per order, keyed by the sanitized order number (``/`` -> ``_``) or a
generated id when the sheet row had no order number. Canonical fields live in
a JSONB document; the fields staff edit after import are plain columns.

Saving an order whose key already exists merges the canonical fields into the
stored document and overwrites the other written columns, so a repeated save
never duplicates an order. Every public operation is its own transaction:
commit on success, rollback and StoreError on failure. Nothing is retried.
"""

try:  # pragma: no cover - optional until psycopg2 present at runtime
    from psycopg2.extras import Json
except ImportError:  # pragma: no cover
    Json = None  # type: ignore[assignment,misc]

__all__ = [
    "StoreError",
    "OrderNotFoundError",
    "OrderStore",
    "derive_order_key",
    "ORDER_COLUMNS",
]

logger = logging.getLogger(__name__)

ORDER_COLUMNS: tuple[str, ...] = (
    "id",
    "fields",
    "created_at",
    "delivery_date",
    "delivery_time",
    "remarks",
    "status",
    "transporter_name",
    "cn_number",
)

_TABLE_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_json_dumps = partial(json.dumps, default=str, ensure_ascii=False)


class StoreError(Exception):
    """Persistence failure; message carries the underlying driver error."""


class OrderNotFoundError(StoreError):
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"order not found: {order_id}")


def derive_order_key(order_no: Any) -> str | None:
    """Identity key for an order number, or None when there is none.

    ``/`` would read as a path separator in ids/URLs, so it becomes ``_``.
    """
    if order_no is None:
        return None
    text = str(order_no).strip()
    if not text:
        return None
    return text.replace("/", "_")


def _jsonb(value: Mapping[str, Any]) -> Any:
    if Json is None:
        raise StoreError("psycopg2 not available")
    return Json(dict(value), dumps=_json_dumps)


def _log_batch_metrics(metrics: BatchMetrics) -> None:
    logger.debug("upsert batch rows=%d elapsed_sec=%.3f", metrics.batch_size, metrics.elapsed_seconds)


class OrderStore:
    """CRUD access to the orders table over a psycopg2 connection."""

    def __init__(
        self,
        conn: Any,
        table: str = "orders",
        page_size: int = 500,
        canonical_fields: Iterable[str] = CANONICAL_FIELDS,
    ) -> None:
        if not _TABLE_NAME_RE.fullmatch(table):
            raise ValueError(f"invalid table name: {table!r}")
        self._conn = conn
        self.table = table
        self.page_size = page_size
        self.canonical_fields = frozenset(canonical_fields)

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Any]:
        cur = self._conn.cursor()
        try:
            yield cur
            self._conn.commit()
        except Exception as e:
            try:
                self._conn.rollback()
            except Exception:  # pragma: no cover - connection already broken
                logger.debug("rollback failed during %s", action, exc_info=True)
            if isinstance(e, StoreError):
                raise
            raise StoreError(f"{action} failed: {e}") from e
        finally:
            cur.close()

    def ensure_schema(self) -> None:
        ddl = f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id TEXT PRIMARY KEY,
                fields JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                created_at TIMESTAMPTZ,
                delivery_date TEXT NOT NULL DEFAULT '',
                delivery_time TEXT NOT NULL DEFAULT '',
                remarks TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL DEFAULT 'Pending',
                transporter_name TEXT NOT NULL DEFAULT '',
                cn_number TEXT NOT NULL DEFAULT ''
            )
        """
        with self._transaction("ensure_schema") as cur:
            cur.execute(ddl)

    def save(
        self,
        records: Iterable[Mapping[str, Any]],
        now: datetime | None = None,
    ) -> list[str]:
        """Upsert canonical records; returns their identity keys in input order.

        All records of one call share a single created_at stamp (one import
        batch). Records repeating a key within the batch are merged, later
        values winning.
        """
        batch_ts = now or datetime.now(UTC)
        keys: list[str] = []
        merged: dict[str, dict[str, Any]] = {}
        for record in records:
            key = derive_order_key(record.get("ORDER NO.")) or uuid.uuid4().hex
            keys.append(key)
            merged.setdefault(key, {}).update(record)

        if not merged:
            return []

        rows = [
            (
                key,
                _jsonb(fields),
                batch_ts,
                "",
                "",
                "",
                OrderStatus.PENDING.value,
                "",
                "",
            )
            for key, fields in merged.items()
        ]
        with self._transaction("save") as cur:
            try:
                result = batch_upsert(
                    cur,
                    self.table,
                    ORDER_COLUMNS,
                    rows,
                    conflict_column="id",
                    merge_columns=("fields",),
                    page_size=self.page_size,
                    metrics_callback=_log_batch_metrics,
                )
            except BatchUpsertError as e:
                raise StoreError(f"save failed: {e}") from e
        logger.debug("saved orders table=%s written=%d keys=%d", self.table, result.written_rows, len(keys))
        return keys

    def list(self) -> list[PersistedOrder]:
        cols = ", ".join(ORDER_COLUMNS)
        with self._transaction("list") as cur:
            cur.execute(f"SELECT {cols} FROM {self.table} ORDER BY created_at DESC NULLS LAST, id")
            rows = cur.fetchall()
        return [PersistedOrder.from_row(r) for r in rows]

    def get(self, order_id: str) -> PersistedOrder | None:
        cols = ", ".join(ORDER_COLUMNS)
        with self._transaction("get") as cur:
            cur.execute(f"SELECT {cols} FROM {self.table} WHERE id = %s", (order_id,))
            row = cur.fetchone()
        return PersistedOrder.from_row(row) if row else None

    def update(self, order_id: str, partial_fields: Mapping[str, Any]) -> None:
        """Apply a partial update.

        Keys may be system fields (``deliveryDate`` or ``delivery_date`` style)
        or canonical fields, which are merged into the stored document.
        """
        assignments: list[str] = []
        params: list[Any] = []
        canonical: dict[str, Any] = {}
        snake_names = set(SYSTEM_FIELDS.values())
        for key, value in partial_fields.items():
            column = SYSTEM_FIELDS.get(key) or (key if key in snake_names else None)
            if column is None:
                if key not in self.canonical_fields:
                    raise ValueError(f"field cannot be updated: {key}")
                canonical[key] = value
                continue
            if column == "status":
                value = OrderStatus.parse(value).value
            assignments.append(f"{column} = %s")
            params.append("" if value is None else str(value))
        if canonical:
            assignments.append("fields = fields || %s")
            params.append(_jsonb(canonical))
        if not assignments:
            return

        sql = f"UPDATE {self.table} SET {', '.join(assignments)} WHERE id = %s"
        with self._transaction("update") as cur:
            cur.execute(sql, (*params, order_id))
            if cur.rowcount == 0:
                raise OrderNotFoundError(order_id)
        logger.debug("updated order id=%s columns=%s", order_id, assignments)

    def delete(self, order_id: str) -> None:
        with self._transaction("delete") as cur:
            cur.execute(f"DELETE FROM {self.table} WHERE id = %s", (order_id,))
            if cur.rowcount == 0:
                raise OrderNotFoundError(order_id)
