"""Delivery note (invoice) rendering.

Rendering happens in two passes. ``layout_invoice`` works out every number
and string of the document and where it goes, in millimetres on an A4 page,
including page breaks. ``render_invoice`` then draws that layout into a PDF
with Qt. Only the second pass touches Qt.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from PySide6.QtCore import QBuffer, QIODevice, QMarginsF, QPointF, Qt
from PySide6.QtGui import QFont, QGuiApplication, QPageLayout, QPageSize, QPainter, QPdfWriter, QPen

from ..errors import OrderDeskError
from ..models.order_models import AppSettings, Client, Order, ResolvedLine
from .discount_service import compute_discount, discount_factor

logger = logging.getLogger(__name__)


VAT_RATE = 0.12

DOCUMENT_TITLE = "DODACÍ LIST"

PAGE_HEIGHT_MM = 297.0
LINE_HEIGHT = 8.0
PAGE_BREAK_THRESHOLD = 270.0
PAGE_TOP_MARGIN = 30.0
TABLE_MIN_TOP = 110.0
FIRST_ROW_OFFSET = 15.0
TOTALS_BLOCK_HEIGHT = 35.0
FOOTER_Y = PAGE_HEIGHT_MM - 20

_HEADER_COLUMNS = [
    ("Popis položky", 20.0),
    ("Množství", 85.0),
    ("Cena za MJ", 105.0),
    ("Celkem bez DPH", 125.0),
    ("DPH", 155.0),
    ("Celkem s DPH", 165.0),
]
_ROW_COLUMNS_X = (20.0, 90.0, 110.0, 130.0, 155.0, 170.0)
_TABLE_LEFT = 20.0
_TABLE_RIGHT = 190.0
_CLIENT_BLOCK_X = 120.0
_TOTALS_LABEL_X = 90.0
_TOTALS_VALUE_X = 170.0

_PDF_RESOLUTION = 300
_FONT_FAMILY = "Helvetica"
_WHITESPACE_PATTERN = re.compile(r"\s+")
_PATH_SEPARATOR_PATTERN = re.compile(r"[\\/]")

_APPLICATION: Optional[QGuiApplication] = None


class RenderError(OrderDeskError):
    """The PDF backend could not produce a document."""


@dataclass
class TextOp:
    page: int
    x: float
    y: float
    text: str
    size: float = 12
    style: str = "normal"


@dataclass
class RuleOp:
    page: int
    x1: float
    y1: float
    x2: float
    y2: float


DrawOp = Union[TextOp, RuleOp]


@dataclass
class InvoiceLine:
    name: str
    quantity: int
    unit_price_excl: float
    total_excl: float
    total_incl: float


@dataclass
class InvoiceTotals:
    subtotal: float
    discount_percentage: int
    discount_factor: float
    total_excl: float
    total_tax: float
    total_incl: float


@dataclass
class InvoiceLayout:
    title: str
    lines: List[InvoiceLine]
    totals: InvoiceTotals
    operations: List[DrawOp] = field(default_factory=list)
    row_positions: List[Tuple[int, float]] = field(default_factory=list)
    page_breaks: List[int] = field(default_factory=list)
    totals_on_new_page: bool = False
    page_count: int = 1


@dataclass
class RenderedInvoice:
    content: bytes
    filename: str
    layout: InvoiceLayout


def compute_lines(resolved_lines: Sequence[ResolvedLine]) -> List[InvoiceLine]:
    factor = discount_factor(_subtotal(resolved_lines))
    lines: List[InvoiceLine] = []
    for line in resolved_lines:
        line_total = line.price * line.quantity
        lines.append(
            InvoiceLine(
                name=line.name,
                quantity=int(line.quantity),
                unit_price_excl=line.price * factor * (1 - VAT_RATE),
                total_excl=line_total * factor * (1 - VAT_RATE),
                total_incl=line_total * factor,
            )
        )
    return lines


def compute_totals(resolved_lines: Sequence[ResolvedLine]) -> InvoiceTotals:
    """Footer totals, from the lines being invoiced rather than the cached order total."""
    subtotal = _subtotal(resolved_lines)
    summary = compute_discount(subtotal)
    factor = summary.factor
    return InvoiceTotals(
        subtotal=subtotal,
        discount_percentage=summary.discount_percentage,
        discount_factor=factor,
        total_excl=subtotal * factor * (1 - VAT_RATE),
        total_tax=subtotal * factor * VAT_RATE,
        total_incl=subtotal * factor,
    )


def format_amount(value: float) -> str:
    """Two decimals, ties rounded away from zero on the exact binary value."""
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_document_date(value: date) -> str:
    return f"{value.day}.{value.month}.{value.year}"


def invoice_filename(delivery_date: date, order_id: str, client_name: str) -> str:
    safe_name = _PATH_SEPARATOR_PATTERN.sub("-", _WHITESPACE_PATTERN.sub("_", client_name))
    return f"Dodaci_list-{format_document_date(delivery_date)}-{order_id[-8:]}-{safe_name}.pdf"


def layout_invoice(
    order: Order,
    client: Client,
    resolved_lines: Sequence[ResolvedLine],
    settings: AppSettings,
) -> InvoiceLayout:
    lines = compute_lines(resolved_lines)
    totals = compute_totals(resolved_lines)
    layout = InvoiceLayout(title=DOCUMENT_TITLE, lines=lines, totals=totals)
    ops = layout.operations
    page = 0

    ops.append(TextOp(page, 20, 30, DOCUMENT_TITLE, size=20, style="bold"))

    ops.append(TextOp(page, 20, 50, settings.company_name))
    ops.append(TextOp(page, 20, 60, settings.company_address))
    ops.append(TextOp(page, 20, 70, f"ICO:                       {settings.company_ico}"))
    ops.append(TextOp(page, 20, 80, f"DIC:                      {settings.company_dic}"))

    ops.append(TextOp(page, _CLIENT_BLOCK_X, 50, "Dodací list pro:", style="bold"))
    ops.append(TextOp(page, _CLIENT_BLOCK_X, 60, client.name))
    cursor = 70.0
    for address_line in client.address_lines:
        ops.append(TextOp(page, _CLIENT_BLOCK_X, cursor, address_line))
        cursor += 10
    ops.append(TextOp(page, _CLIENT_BLOCK_X, cursor, f"ICO: {client.vat}"))

    ops.append(
        TextOp(page, 20, cursor + 20, f"Datum vystavení : {format_document_date(order.delivery_date)}")
    )

    table_top = max(cursor + 20, TABLE_MIN_TOP)
    for label, x in _HEADER_COLUMNS:
        ops.append(TextOp(page, x, table_top, label, size=10))
    ops.append(RuleOp(page, _TABLE_LEFT, table_top + 2, _TABLE_RIGHT, table_top + 2))

    cursor = table_top + FIRST_ROW_OFFSET
    for index, line in enumerate(lines):
        values = (
            line.name,
            str(line.quantity),
            format_amount(line.unit_price_excl),
            format_amount(line.total_excl),
            f"{round(VAT_RATE * 100)}%",
            format_amount(line.total_incl),
        )
        for x, text in zip(_ROW_COLUMNS_X, values):
            ops.append(TextOp(page, x, cursor, text))
        layout.row_positions.append((page, cursor))

        cursor += LINE_HEIGHT
        if cursor > PAGE_BREAK_THRESHOLD:
            page += 1
            cursor = PAGE_TOP_MARGIN
            layout.page_breaks.append(index)

    if cursor + TOTALS_BLOCK_HEIGHT > PAGE_BREAK_THRESHOLD:
        page += 1
        cursor = PAGE_TOP_MARGIN
        layout.totals_on_new_page = True

    currency = settings.currency_label
    ops.append(RuleOp(page, _TABLE_LEFT, cursor + 5, _TABLE_RIGHT, cursor + 5))
    for offset, label, value in (
        (15, "Celkem bez DPH:", totals.total_excl),
        (25, "Celkem DPH:", totals.total_tax),
        (35, "Celkem s DPH:", totals.total_incl),
    ):
        ops.append(TextOp(page, _TOTALS_LABEL_X, cursor + offset, label, style="bold"))
        ops.append(
            TextOp(page, _TOTALS_VALUE_X, cursor + offset, f"{format_amount(value)} {currency}", style="bold")
        )

    ops.append(TextOp(page, 20, FOOTER_Y, settings.contact_website, size=10, style="italic"))
    ops.append(TextOp(page, _CLIENT_BLOCK_X, FOOTER_Y, settings.contact_email, size=10, style="italic"))

    layout.page_count = page + 1
    return layout


def render_invoice(
    order: Order,
    client: Client,
    resolved_lines: Sequence[ResolvedLine],
    settings: AppSettings,
) -> RenderedInvoice:
    layout = layout_invoice(order, client, resolved_lines, settings)
    content = _write_pdf(layout)
    filename = invoice_filename(order.delivery_date, order.id, client.name)
    logger.info(
        "Rendered invoice for order %s: %d lines, %d pages",
        order.short_id,
        len(layout.lines),
        layout.page_count,
    )
    return RenderedInvoice(content=content, filename=filename, layout=layout)


def save_document(content: bytes, filename: str, directory: Union[str, Path]) -> Path:
    target_dir = Path(directory).expanduser()
    if not target_dir.exists():
        target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / filename
    path.write_bytes(content)
    return path


def _subtotal(resolved_lines: Sequence[ResolvedLine]) -> float:
    return sum(line.price * line.quantity for line in resolved_lines)


def _ensure_gui_application() -> None:
    global _APPLICATION
    if QGuiApplication.instance() is not None:
        return
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    _APPLICATION = QGuiApplication(sys.argv[:1] or ["orderdesk"])


def _write_pdf(layout: InvoiceLayout) -> bytes:
    _ensure_gui_application()

    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)

    pdf_writer = QPdfWriter(buffer)
    pdf_writer.setPageSize(QPageSize(QPageSize.PageSizeId.A4))
    pdf_writer.setPageMargins(QMarginsF(0, 0, 0, 0), QPageLayout.Unit.Millimeter)
    pdf_writer.setResolution(_PDF_RESOLUTION)
    pdf_writer.setTitle(layout.title)
    scale = pdf_writer.resolution() / 25.4

    painter = QPainter()
    if not painter.begin(pdf_writer):
        raise RenderError("Could not start drawing the PDF document.")
    try:
        pen = QPen(Qt.GlobalColor.black)
        pen.setWidthF(0.2 * scale)
        painter.setPen(pen)
        current_page = 0
        for op in layout.operations:
            while current_page < op.page:
                pdf_writer.newPage()
                current_page += 1
            if isinstance(op, TextOp):
                font = QFont(_FONT_FAMILY)
                font.setPointSizeF(op.size)
                font.setBold(op.style == "bold")
                font.setItalic(op.style == "italic")
                painter.setFont(font)
                painter.drawText(QPointF(op.x * scale, op.y * scale), op.text)
            else:
                painter.drawLine(
                    QPointF(op.x1 * scale, op.y1 * scale),
                    QPointF(op.x2 * scale, op.y2 * scale),
                )
    finally:
        painter.end()

    content = bytes(buffer.data().data())
    buffer.close()
    return content
