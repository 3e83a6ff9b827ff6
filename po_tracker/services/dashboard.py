from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from ..models.order import PersistedOrder

"""Dashboard helpers: free-text search and grouping by import batch."""

__all__ = [
    "UNKNOWN_GROUP",
    "search_orders",
    "group_by_created",
]

UNKNOWN_GROUP = "Unknown Date"


def search_orders(orders: Iterable[PersistedOrder], term: str | None) -> list[PersistedOrder]:
    """Case-insensitive substring match over every value of each order."""
    orders = list(orders)
    needle = (term or "").strip().lower()
    if not needle:
        return orders
    return [
        o for o in orders
        if any(needle in str(v).lower() for v in o.to_dict().values())
    ]


def group_by_created(orders: Iterable[PersistedOrder]) -> list[tuple[str, list[PersistedOrder]]]:
    """Group orders by created_at (one group per import batch), newest first.

    Orders without a timestamp are collected under ``Unknown Date`` at the end.
    """
    groups: dict[datetime | None, list[PersistedOrder]] = {}
    for o in orders:
        groups.setdefault(o.created_at, []).append(o)

    stamped = sorted((k for k in groups if k is not None), reverse=True)
    out: list[tuple[str, list[PersistedOrder]]] = [
        (k.strftime("%d/%m/%Y %H:%M:%S"), groups[k]) for k in stamped
    ]
    if None in groups:
        out.append((UNKNOWN_GROUP, groups[None]))
    return out
