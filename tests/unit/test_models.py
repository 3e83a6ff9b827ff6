from __future__ import annotations

from datetime import UTC, datetime

import pytest

from po_tracker.models.config_models import ColumnSchema
from po_tracker.models.order import CanonicalOrder, OrderStatus, PersistedOrder
from po_tracker.models.processing_result import ImportResult

"""Unit tests for domain / config models."""


def test_order_status_parse_is_case_insensitive():
    assert OrderStatus.parse("dispatched") is OrderStatus.DISPATCHED
    assert OrderStatus.parse(" Completed ") is OrderStatus.COMPLETED
    assert OrderStatus.parse(OrderStatus.PENDING) is OrderStatus.PENDING
    with pytest.raises(ValueError, match="invalid status"):
        OrderStatus.parse("lost")


def test_canonical_order_record_has_no_temp_id():
    order = CanonicalOrder(temp_id=4, fields={"ORDER NO.": "A", "ORDER DATE": "01/01/2024"})
    assert order.as_record() == {"ORDER NO.": "A", "ORDER DATE": "01/01/2024"}
    assert order.order_no == "A"


def test_persisted_order_from_row_defaults():
    ts = datetime(2024, 12, 1, 9, 0, tzinfo=UTC)
    order = PersistedOrder.from_row(("CPL_1", {"ISSUED TO": "Acme"}, ts, None, None, None, None, None, None))
    assert order.status == "Pending"
    assert order.delivery_date == ""
    assert order.vendor_name == "Acme"


def test_persisted_order_to_dict_includes_every_field():
    order = PersistedOrder(id="X_1", fields={"ORDER NO.": "X/1", "Next Follow-up": "Call"})
    d = order.to_dict()
    assert d["id"] == "X_1"
    assert d["SUBJECT"] == ""
    assert d["Next Follow-up"] == "Call"
    assert d["createdAt"] == ""
    assert d["status"] == "Pending"
    assert {"deliveryDate", "deliveryTime", "remarks", "transporterName", "cnNumber"} <= set(d)


def test_column_schema_freezes_inputs():
    schema = ColumnSchema(canonical_fields=["A", "B"], aliases={"A": ["x"]}, date_fields=["B"], required_any=["A"])
    assert schema.canonical_fields == ("A", "B")
    assert schema.aliases_for("A") == ("x",)
    assert schema.aliases_for("B") == ()
    with pytest.raises(TypeError):
        schema.aliases["A"] = ("y",)  # type: ignore[index]


def test_import_result_total_files():
    now = datetime.now(UTC)
    r = ImportResult(1, 2, 10, 1, 9, now, now, 0.0)
    assert r.total_files == 3
