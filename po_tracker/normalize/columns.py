from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from ..models.config_models import DEFAULT_COLUMN_SCHEMA, ColumnSchema
from ..models.order import CanonicalOrder
from .dates import normalize_date

"""Column normalization for uploaded purchase order rows.

Spreadsheet exports name the same column in many ways ("ORDER NO.",
"PO NO", "BASIC ORDER \\r\\nVALUE" ...). Each raw row is mapped onto the fixed
canonical field list of a ColumnSchema:

1. exact match on the folded canonical name (value kept even if "" or 0)
2. otherwise the schema's aliases for that field, in declared order
3. otherwise ""

Date fields are passed through normalize_date, then rows without any of the
schema's ``required_any`` fields are dropped as blank/decorative rows.
"""

__all__ = [
    "fold_key",
    "fold_row",
    "resolve_field",
    "normalize_row",
    "is_blank_order",
    "normalize_rows",
]

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r"\s*[\r\n]\s*")
_MISSING = object()


def fold_key(value: Any) -> str:
    """Collapse CR/LF runs (with the blanks around them) to one space, then trim."""
    return _LINE_BREAKS.sub(" ", str(value)).strip()


def fold_row(raw: Mapping[Any, Any]) -> dict[str, Any]:
    """Re-key a raw row by folded header; later duplicates win."""
    return {fold_key(k): v for k, v in raw.items()}


def resolve_field(folded: Mapping[str, Any], canonical: str, schema: ColumnSchema) -> Any:
    value = folded.get(fold_key(canonical), _MISSING)
    if value is not _MISSING:
        return value
    for alias in schema.aliases_for(canonical):
        value = folded.get(fold_key(alias), _MISSING)
        if value is not _MISSING:
            return value
    return ""


def normalize_row(
    raw: Mapping[Any, Any],
    index: int,
    schema: ColumnSchema = DEFAULT_COLUMN_SCHEMA,
) -> CanonicalOrder:
    """Map one raw row onto every canonical field of ``schema``.

    ``index`` becomes the order's temp_id.
    """
    folded = fold_row(raw)
    fields: dict[str, Any] = {}
    for canonical in schema.canonical_fields:
        value = resolve_field(folded, canonical, schema)
        if canonical in schema.date_fields:
            value = normalize_date(value)
        fields[canonical] = value
    return CanonicalOrder(temp_id=index, fields=fields)


def is_blank_order(order: CanonicalOrder, schema: ColumnSchema = DEFAULT_COLUMN_SCHEMA) -> bool:
    # 0 / "" / None はいずれも空扱い
    return not any(order.fields.get(name) for name in schema.required_any)


def normalize_rows(
    rows: Iterable[Mapping[Any, Any]],
    schema: ColumnSchema = DEFAULT_COLUMN_SCHEMA,
) -> list[CanonicalOrder]:
    """Normalize every row and drop blank ones.

    temp_ids are the positions in ``rows`` so they stay stable whether or not
    neighbouring rows were dropped.
    """
    kept: list[CanonicalOrder] = []
    dropped = 0
    for index, raw in enumerate(rows):
        order = normalize_row(raw, index, schema)
        if is_blank_order(order, schema):
            dropped += 1
            continue
        kept.append(order)
    if dropped:
        logger.debug("dropped %d blank row(s) kept=%d", dropped, len(kept))
    return kept
