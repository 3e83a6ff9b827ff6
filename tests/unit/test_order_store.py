from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest

import po_tracker.db.order_store as order_store
from po_tracker.db.order_store import (
    ORDER_COLUMNS,
    OrderNotFoundError,
    OrderStore,
    StoreError,
    derive_order_key,
)
from po_tracker.logging.init import setup_logging

"""Unit tests for OrderStore against a recording connection double."""


class _Json:
    def __init__(self, adapted, dumps=None):
        self.adapted = adapted


@pytest.fixture(autouse=True)
def _plain_json(monkeypatch):
    monkeypatch.setattr(order_store, "Json", _Json)


def _row(key, fields, **kw):
    values = {
        "created_at": datetime(2024, 12, 1, 10, 0, tzinfo=UTC),
        "delivery_date": "",
        "delivery_time": "",
        "remarks": "",
        "status": "Pending",
        "transporter_name": "",
        "cn_number": "",
    }
    values.update(kw)
    return (key, fields, *(values[c] for c in ORDER_COLUMNS[2:]))


@pytest.mark.parametrize(
    "order_no,expected",
    [("CPL/2024/101", "CPL_2024_101"), (" 42 ", "42"), (1234, "1234"), ("", None), (None, None)],
)
def test_derive_order_key(order_no, expected):
    assert derive_order_key(order_no) == expected


def test_invalid_table_name(fake_conn):
    with pytest.raises(ValueError):
        OrderStore(fake_conn, table="orders; drop table x")


def test_ensure_schema_commits(fake_conn):
    OrderStore(fake_conn).ensure_schema()
    assert "CREATE TABLE IF NOT EXISTS orders" in fake_conn.statements[0][0]
    assert fake_conn.commits == 1


def test_save_upserts_with_sanitized_keys(fake_conn, captured_upserts):
    store = OrderStore(fake_conn)
    now = datetime(2024, 12, 1, 10, 0, tzinfo=UTC)
    keys = store.save([{"ORDER NO.": "CPL/1", "ISSUED TO": "Acme"}, {"ORDER NO.": "CPL/2"}], now=now)
    assert keys == ["CPL_1", "CPL_2"]
    assert fake_conn.commits == 1
    call = captured_upserts[0]
    assert 'ON CONFLICT ("id")' in call["sql"]
    assert "COALESCE(orders.\"fields\"" in call["sql"]
    first = call["rows"][0]
    assert first[0] == "CPL_1"
    assert first[1].adapted == {"ORDER NO.": "CPL/1", "ISSUED TO": "Acme"}
    assert first[2] == now
    assert first[6] == "Pending"
    # 同一バッチは同じ created_at
    assert {r[2] for r in call["rows"]} == {now}


def test_save_is_idempotent_within_batch(fake_conn, captured_upserts):
    store = OrderStore(fake_conn)
    keys = store.save([{"ORDER NO.": "A/1", "GST": 1}, {"ORDER NO.": "A/1", "GST": 2, "SUBJECT": "x"}])
    assert keys == ["A_1", "A_1"]
    rows = captured_upserts[0]["rows"]
    assert len(rows) == 1
    assert rows[0][1].adapted == {"ORDER NO.": "A/1", "GST": 2, "SUBJECT": "x"}


def test_save_without_order_no_generates_id(fake_conn, captured_upserts):
    keys = OrderStore(fake_conn).save([{"ORDER NO.": "", "ORDER DATE": "01/01/2024"}])
    assert len(keys) == 1 and len(keys[0]) == 32


def test_save_logs_batch_metrics_in_debug(fake_conn, captured_upserts, capsys):
    setup_logging(debug=True)
    OrderStore(fake_conn).save([{"ORDER NO.": "A/1"}, {"ORDER NO.": "A/2"}])
    out = capsys.readouterr().out
    assert re.search(r"^DEBUG upsert batch rows=2 elapsed_sec=\d+\.\d{3}$", out, re.MULTILINE)


def test_save_nothing(fake_conn, captured_upserts):
    assert OrderStore(fake_conn).save([]) == []
    assert captured_upserts == []
    assert fake_conn.commits == 0


def test_save_failure_rolls_back(fake_conn, monkeypatch):
    import po_tracker.db.batch_upsert as bu

    def boom(*a, **k):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(bu, "execute_values", boom)
    with pytest.raises(StoreError, match="save failed: connection reset"):
        OrderStore(fake_conn).save([{"ORDER NO.": "A"}])
    assert fake_conn.rollbacks == 1
    assert fake_conn.commits == 0


def test_list_and_get(fake_conn):
    fake_conn.rows = [_row("A_1", {"ORDER NO.": "A/1"}, status="Dispatched")]
    store = OrderStore(fake_conn)
    orders = store.list()
    assert [o.id for o in orders] == ["A_1"]
    assert orders[0].status == "Dispatched"
    assert "ORDER BY created_at DESC" in fake_conn.statements[0][0]

    order = store.get("A_1")
    assert order is not None and order.order_no == "A/1"
    assert fake_conn.statements[-1][1] == ("A_1",)


def test_get_missing_returns_none(fake_conn):
    assert OrderStore(fake_conn).get("nope") is None


def test_update_system_and_canonical_fields(fake_conn):
    store = OrderStore(fake_conn)
    store.update("A_1", {"deliveryDate": "2024-12-20", "status": "dispatched", "SUBJECT": "Cable"})
    sql, params = fake_conn.statements[0]
    assert sql.startswith("UPDATE orders SET delivery_date = %s, status = %s, fields = fields || %s")
    assert params[0] == "2024-12-20"
    assert params[1] == "Dispatched"
    assert params[2].adapted == {"SUBJECT": "Cable"}
    assert params[-1] == "A_1"
    assert fake_conn.commits == 1


def test_update_accepts_column_names(fake_conn):
    OrderStore(fake_conn).update("A_1", {"transporter_name": "VRL", "cn_number": None})
    sql, params = fake_conn.statements[0]
    assert "transporter_name = %s" in sql and "cn_number = %s" in sql
    assert params[:2] == ("VRL", "")


def test_update_rejects_unknown_field(fake_conn):
    with pytest.raises(ValueError, match="field cannot be updated"):
        OrderStore(fake_conn).update("A_1", {"id": "other"})
    assert fake_conn.statements == []


def test_update_rejects_bad_status(fake_conn):
    with pytest.raises(ValueError, match="invalid status"):
        OrderStore(fake_conn).update("A_1", {"status": "lost"})


def test_update_missing_order(fake_conn):
    fake_conn.rowcount = 0
    with pytest.raises(OrderNotFoundError) as ei:
        OrderStore(fake_conn).update("gone", {"remarks": "x"})
    assert ei.value.order_id == "gone"
    assert fake_conn.rollbacks == 1


def test_delete(fake_conn):
    OrderStore(fake_conn).delete("A_1")
    assert fake_conn.statements[0] == ("DELETE FROM orders WHERE id = %s", ("A_1",))
    assert fake_conn.commits == 1


def test_delete_missing_order(fake_conn):
    fake_conn.rowcount = 0
    with pytest.raises(OrderNotFoundError, match="order not found: gone"):
        OrderStore(fake_conn).delete("gone")


def test_driver_error_becomes_store_error(fake_conn):
    fake_conn.fail_with = RuntimeError("server closed the connection")
    with pytest.raises(StoreError, match="list failed: server closed the connection"):
        OrderStore(fake_conn).list()
    assert fake_conn.rollbacks == 1
