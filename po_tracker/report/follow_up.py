from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape
from zoneinfo import ZoneInfo

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..models.config_models import ReportConfig
from ..models.order import OrderStatus, PersistedOrder
from ..normalize.dates import normalize_date, parse_display_date

"""Vendor follow-up report (PDF).

Landscape A4, one table row per order:

    PO No. | PO Date | Vendor Name | Expected Delivery Date | Current Status |
    Update On | Despatch Details | Overdue Yes / No | Remarks | Next Follow-up

Current Status, Despatch Details and Overdue are printed in red, and every
page carries a red "Report Run date" footer. The table header repeats on each
page when the order list spills over.
"""

__all__ = [
    "ReportError",
    "REPORT_COLUMNS",
    "RESOLVED_STATUSES",
    "today_in",
    "compute_overdue",
    "dispatch_details",
    "build_report_row",
    "FollowUpReport",
]

logger = logging.getLogger(__name__)

PAGE_SIZE = landscape(A4)
PAGE_WIDTH, PAGE_HEIGHT = PAGE_SIZE
MARGIN = 10 * mm

REPORT_COLUMNS: tuple[str, ...] = (
    "PO No.",
    "PO Date",
    "Vendor Name",
    "Expected\nDelivery\nDate",
    "Current\nStatus",
    "Update On",
    "Despatch\nDetails",
    "Overdue\nYes / No",
    "Remarks",
    "Next\nFollow-up",
)
RED_COLUMNS = frozenset({4, 6, 7})
# 列幅 (mm), 合計は本文幅 277mm
COLUMN_WIDTHS_MM = (26, 22, 40, 24, 22, 22, 34, 20, 45, 22)

# 対応不要とみなすステータス (小文字比較)
RESOLVED_STATUSES = frozenset({"dispatched", "completed", "cancelled", "delivered"})

DISPATCH_PLACEHOLDER = "Transporter\nName & CN\nNo."


class ReportError(Exception):
    pass


def today_in(timezone: str = "UTC") -> date:
    return datetime.now(ZoneInfo(timezone)).date()


def _display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return normalize_date(value)
    return str(value)


def compute_overdue(order: PersistedOrder, today: date) -> str:
    """``YES`` / ``NO`` / ``N/A`` for the Overdue column.

    N/A without a delivery date; NO once the order is dispatched, completed,
    cancelled or delivered; otherwise YES when the delivery date has passed.
    """
    if not order.delivery_date:
        return "N/A"
    status = (order.status or OrderStatus.PENDING.value).strip().lower()
    if status in RESOLVED_STATUSES:
        return "NO"
    due = parse_display_date(order.delivery_date)
    if due is None:
        return "NO"
    return "YES" if today > due else "NO"


def dispatch_details(order: PersistedOrder) -> str:
    if order.transporter_name or order.cn_number:
        cn = f"CN: {order.cn_number}" if order.cn_number else ""
        return f"{order.transporter_name}\n{cn}"
    # 取込元の列に発送情報があればそれを使う
    fallback = order.fields.get("Dispatch") or order.fields.get("Despatch Details")
    return str(fallback) if fallback else DISPATCH_PLACEHOLDER


def build_report_row(order: PersistedOrder, today: date) -> list[str]:
    """Cell texts for one order, in REPORT_COLUMNS order."""
    po_date = normalize_date(order.order_date or order.created_at)
    delivery = normalize_date(order.delivery_date)
    return [
        _display(order.id or order.order_no) or "xx",
        po_date,
        _display(order.vendor_name) or "xx",
        delivery or "xx",
        order.status or OrderStatus.PENDING.value,
        normalize_date(today),
        dispatch_details(order),
        compute_overdue(order, today),
        order.remarks or "Xx",
        _display(order.fields.get("Next Follow-up")) or "xx",
    ]


class FollowUpReport:
    """Renders follow-up reports with reportlab."""

    def __init__(self, config: ReportConfig | None = None, timezone: str = "UTC") -> None:
        self.config = config or ReportConfig()
        self.timezone = timezone
        styles = getSampleStyleSheet()
        base = styles["Normal"]
        self._cell = ParagraphStyle("cell", parent=base, fontName="Helvetica", fontSize=9,
                                    leading=11, alignment=TA_CENTER, textColor=colors.black)
        self._cell_red = ParagraphStyle("cell_red", parent=self._cell, textColor=colors.red)
        self._head = ParagraphStyle("head", parent=self._cell, fontName="Helvetica-Bold")
        self._title = ParagraphStyle("title", parent=base, fontName="Helvetica-Bold",
                                     fontSize=14, leading=18, alignment=TA_CENTER)
        self._subtitle = ParagraphStyle("subtitle", parent=self._title, fontSize=12, leading=16)
        self._period = ParagraphStyle("period", parent=base, fontName="Helvetica",
                                      fontSize=10, leading=14, alignment=TA_CENTER)

    @staticmethod
    def _para(text: str, style: ParagraphStyle) -> Paragraph:
        return Paragraph(escape(text).replace("\n", "<br/>"), style)

    def period_text(self, start: Any = None, end: Any = None) -> str:
        blank = " " * 11
        return f"For the period from [ {_display(start) or blank} ] to [ {_display(end) or blank} ]"

    def _table(self, orders: Sequence[PersistedOrder], today: date) -> Table:
        data: list[list[Paragraph]] = [[self._para(h, self._head) for h in REPORT_COLUMNS]]
        for order in orders:
            row = build_report_row(order, today)
            data.append([
                self._para(text, self._cell_red if idx in RED_COLUMNS else self._cell)
                for idx, text in enumerate(row)
            ])
        table = Table(data, colWidths=[w * mm for w in COLUMN_WIDTHS_MM], repeatRows=1)
        table.setStyle(TableStyle([
            ("GRID", (0, 0), (-1, -1), 0.3, colors.black),
            ("BACKGROUND", (0, 0), (-1, 0), colors.white),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]))
        return table

    def render(
        self,
        orders: Sequence[PersistedOrder],
        start: Any = None,
        end: Any = None,
        today: date | None = None,
    ) -> bytes:
        """Render the report and return the PDF bytes."""
        if not orders:
            raise ReportError("no orders to report")
        today = today or today_in(self.timezone)
        run_date = normalize_date(today)

        def _footer(canvas: Any, doc: Any) -> None:
            canvas.saveState()
            canvas.setFont("Helvetica", 10)
            canvas.setFillColor(colors.red)
            canvas.drawRightString(PAGE_WIDTH - MARGIN, 10 * mm, f"(Report Run date: {run_date})")
            canvas.restoreState()

        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=PAGE_SIZE,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=15 * mm,
            bottomMargin=18 * mm,
            title=f"{self.config.title} {run_date}",
        )
        story = [
            self._para(self.config.company_name, self._title),
            Spacer(1, 3 * mm),
            self._para(self.config.title, self._subtitle),
            Spacer(1, 3 * mm),
            self._para(self.period_text(start, end), self._period),
            Spacer(1, 6 * mm),
            self._table(orders, today),
        ]
        try:
            doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
        except Exception as e:
            logger.exception("report rendering failed orders=%d", len(orders))
            raise ReportError(f"report rendering failed: {e}") from e
        return buffer.getvalue()

    def output_path(self, orders: Sequence[PersistedOrder], today: date | None = None) -> Path:
        out_dir = Path(self.config.output_directory)
        if len(orders) == 1:
            return out_dir / f"Order_Report_{orders[0].id}.pdf"
        stamp = (today or today_in(self.timezone)).strftime("%Y%m%d")
        return out_dir / f"Follow_Up_Report_{stamp}.pdf"

    def write(
        self,
        orders: Sequence[PersistedOrder],
        start: Any = None,
        end: Any = None,
        today: date | None = None,
    ) -> Path:
        pdf = self.render(orders, start, end, today=today)
        path = self.output_path(orders, today)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(pdf)
        except OSError as e:
            raise ReportError(f"could not write report {path}: {e}") from e
        logger.info("report written to %s", path)
        return path
