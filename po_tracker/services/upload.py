from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..excel.reader import WorkbookParseError, read_order_sheet
from ..models.config_models import DEFAULT_COLUMN_SCHEMA, ColumnSchema
from ..models.order import CanonicalOrder
from ..normalize.columns import normalize_rows

"""Upload session: parse one workbook, pick rows, import the selection.

The session owns the parsed rows and the selection set; nothing here is
shared between sessions. A failed parse leaves the session empty (no
partially parsed rows survive), and a successful import clears it.
"""

__all__ = [
    "NoSelectionError",
    "UploadSession",
]

logger = logging.getLogger(__name__)


class NoSelectionError(Exception):
    def __init__(self) -> None:
        super().__init__("Please select at least one order to import.")


class UploadSession:
    def __init__(
        self,
        schema: ColumnSchema = DEFAULT_COLUMN_SCHEMA,
        header_row_offset: int = 5,
    ) -> None:
        self.schema = schema
        self.header_row_offset = header_row_offset
        self.source: Path | None = None
        self.parsed_rows = 0
        self._orders: list[CanonicalOrder] = []
        self._selected: set[int] = set()

    @property
    def orders(self) -> list[CanonicalOrder]:
        return list(self._orders)

    @property
    def dropped_rows(self) -> int:
        return self.parsed_rows - len(self._orders)

    @property
    def selected(self) -> frozenset[int]:
        return frozenset(self._selected)

    def clear(self) -> None:
        self.source = None
        self.parsed_rows = 0
        self._orders = []
        self._selected = set()

    def load(self, path: Path) -> list[CanonicalOrder]:
        """Parse and normalize ``path``, replacing any previous state.

        Raises:
            WorkbookParseError: the workbook could not be read
        """
        self.clear()
        try:
            sheet = read_order_sheet(Path(path), header_row_offset=self.header_row_offset)
        except WorkbookParseError:
            logger.debug("parse failed path=%s", path, exc_info=True)
            raise
        orders = normalize_rows(sheet.rows, self.schema)
        self.source = Path(path)
        self.parsed_rows = len(sheet.rows)
        self._orders = orders
        logger.debug(
            "loaded path=%s sheet=%s rows=%d kept=%d",
            path,
            sheet.sheet_name,
            self.parsed_rows,
            len(orders),
        )
        return self.orders

    def _known_ids(self) -> set[int]:
        return {o.temp_id for o in self._orders}

    def toggle(self, temp_id: int) -> bool:
        """Flip selection of one row. Returns True if it is now selected."""
        if temp_id not in self._known_ids():
            raise KeyError(f"unknown row id: {temp_id}")
        if temp_id in self._selected:
            self._selected.discard(temp_id)
            return False
        self._selected.add(temp_id)
        return True

    def select(self, temp_ids: list[int]) -> None:
        unknown = sorted(set(temp_ids) - self._known_ids())
        if unknown:
            raise KeyError(f"unknown row id(s): {unknown}")
        self._selected.update(temp_ids)

    def select_all(self) -> None:
        """Select every row, or clear the selection when all are already selected."""
        ids = self._known_ids()
        if ids and self._selected == ids:
            self._selected = set()
        else:
            self._selected = ids

    def selected_orders(self) -> list[CanonicalOrder]:
        return [o for o in self._orders if o.temp_id in self._selected]

    def selected_records(self) -> list[dict[str, Any]]:
        return [o.as_record() for o in self.selected_orders()]

    def import_selected(self, store: Any) -> list[str]:
        """Save the selected rows through ``store``; returns the stored keys.

        Raises:
            NoSelectionError: nothing selected
            StoreError: propagated from the store; the session is kept so the
                user can retry
        """
        if not self._selected:
            raise NoSelectionError()
        keys = store.save(self.selected_records())
        logger.info("imported %d order(s) from %s", len(keys), self.source.name if self.source else "-")
        self.clear()
        return keys
