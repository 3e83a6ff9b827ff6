from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .config_models import CANONICAL_FIELDS

"""Order domain models.

CanonicalOrder is the transient result of normalizing one uploaded row; it
lives only in the upload session's selection state. PersistedOrder is what
the store hands back: canonical fields plus the system-assigned fields staff
edit later (delivery, remarks, status, dispatch details).
"""

__all__ = [
    "OrderStatus",
    "CanonicalOrder",
    "PersistedOrder",
    "SYSTEM_FIELDS",
]


class OrderStatus(Enum):
    """Delivery status of a persisted order.

    Values are the display strings stored in the database.
    """
    PENDING = "Pending"
    DISPATCHED = "Dispatched"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: str | OrderStatus) -> OrderStatus:
        if isinstance(value, OrderStatus):
            return value
        text = str(value).strip()
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        raise ValueError(
            f"invalid status '{value}' (expected one of: {', '.join(m.value for m in cls)})"
        )


# 外部名 (UI / JSON) -> DB 列名
SYSTEM_FIELDS: dict[str, str] = {
    "deliveryDate": "delivery_date",
    "deliveryTime": "delivery_time",
    "remarks": "remarks",
    "status": "status",
    "transporterName": "transporter_name",
    "cnNumber": "cn_number",
}


@dataclass(frozen=True)
class CanonicalOrder:
    """One normalized upload row.

    temp_id is the row index inside the uploaded sheet and only distinguishes
    rows before anything is persisted.
    """
    temp_id: int
    fields: dict[str, Any]

    @property
    def order_no(self) -> Any:
        return self.fields.get("ORDER NO.", "")

    @property
    def order_date(self) -> str:
        return self.fields.get("ORDER DATE", "")

    def as_record(self) -> dict[str, Any]:
        """Canonical fields only (temp id stripped), ready for the store."""
        return dict(self.fields)


@dataclass
class PersistedOrder:
    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    delivery_date: str = ""
    delivery_time: str = ""
    remarks: str = ""
    status: str = OrderStatus.PENDING.value
    transporter_name: str = ""
    cn_number: str = ""

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> PersistedOrder:
        """Build from a row selected in OrderStore column order."""
        (
            key,
            fields,
            created_at,
            delivery_date,
            delivery_time,
            remarks,
            status,
            transporter_name,
            cn_number,
        ) = row
        return cls(
            id=key,
            fields=dict(fields or {}),
            created_at=created_at,
            delivery_date=delivery_date or "",
            delivery_time=delivery_time or "",
            remarks=remarks or "",
            status=status or OrderStatus.PENDING.value,
            transporter_name=transporter_name or "",
            cn_number=cn_number or "",
        )

    @property
    def order_no(self) -> Any:
        return self.fields.get("ORDER NO.", "")

    @property
    def order_date(self) -> str:
        return self.fields.get("ORDER DATE", "")

    @property
    def vendor_name(self) -> Any:
        return self.fields.get("ISSUED TO", "")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id}
        for name in CANONICAL_FIELDS:
            out[name] = self.fields.get(name, "")
        # 設定で追加された canonical 列も落とさない
        for name, value in self.fields.items():
            out.setdefault(name, value)
        out.update(
            {
                "createdAt": self.created_at.isoformat() if self.created_at else "",
                "status": self.status,
                "deliveryDate": self.delivery_date,
                "deliveryTime": self.delivery_time,
                "remarks": self.remarks,
                "transporterName": self.transporter_name,
                "cnNumber": self.cn_number,
            }
        )
        return out
