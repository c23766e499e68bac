# Overview: Service-layer operations for invoices; builds, renders and stores order invoice PDFs.

"""
Invoice Service

An invoice is derived data: one PDF per committed order at
<INVOICE_DIR>/<order_id>.pdf, rebuilt from the order's line snapshots plus
the customer, the staff member and each product's code.

Rendering is split in two steps:
- build_invoice_layout(order): pure and deterministic, validates that every
  field the layout needs is present
- render_pdf(layout, target): ReportLab platypus output (paginated, the
  table header repeats on every page, long names wrap and grow their row)

generate_invoice writes to a temporary file in the invoice directory and
renames it over the final path, so readers only ever see a complete file
and regeneration overwrites atomically.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from xml.sax.saxutils import escape

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..extensions import db
from ..models import Order, User
from retail_pos.money_utils import format_money
from retail_pos.time_utils import to_store_time


TITLE = "SALES INVOICE"
CLOSING_LINE = "Thank you for shopping with us!"
TABLE_HEADER = ("#", "Code", "Product", "Qty", "Unit price", "Total")
# A4 width (595pt) minus 36pt margins on both sides
COLUMN_WIDTHS = (24, 80, 190, 44, 90, 95)
TIMESTAMP_FORMAT = "%H:%M:%S %d/%m/%Y"
CUSTOM_FONT_NAME = "InvoiceFont"


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class RenderError(InvoiceError):
    """A field the layout needs is missing, or the PDF engine failed."""


class StorageError(InvoiceError):
    """The rendered document could not be written to the invoice directory."""


class OrderNotFound(InvoiceError):
    pass


class InvoiceNotFound(InvoiceError):
    """No document exists for the order (never generated, or generation failed)."""


@dataclass(frozen=True)
class InvoiceLayout:
    order_id: int
    title: str
    store_name: str
    metadata: tuple[tuple[str, str], ...]
    customer: tuple[tuple[str, str], ...]
    employee: tuple[tuple[str, str], ...]
    table_header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    closing: str


def invoice_dir() -> Path:
    return Path(current_app.config["INVOICE_DIR"])


def invoice_path(order_id: int) -> Path:
    return invoice_dir() / f"{int(order_id)}.pdf"


def _required(value, field: str, order_id: int) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RenderError(
            f"Invoice for order {order_id} is missing {field}",
            details={"order_id": order_id, "field": field},
        )
    return str(value)


def build_invoice_layout(order: Order) -> InvoiceLayout:
    """
    Build the fixed invoice structure for a committed order.

    Missing product or customer fields raise RenderError. A staff member that
    cannot be resolved renders as blanks.
    """
    customer = order.customer
    if customer is None:
        raise RenderError(
            f"Invoice for order {order.id} has no customer",
            details={"order_id": order.id, "field": "customer"},
        )

    created = to_store_time(order.created_at)
    metadata = (
        ("Order ID", str(order.id)),
        ("Created at", created.strftime(TIMESTAMP_FORMAT) if created else ""),
        ("Total", format_money(order.total_price)),
        ("Amount paid", format_money(order.amount_paid)),
        ("Change", format_money(order.change)),
    )

    customer_rows = (
        ("Name", _required(customer.name, "customer name", order.id)),
        ("Phone", _required(customer.phone, "customer phone", order.id)),
        ("Address", _required(customer.address, "customer address", order.id)),
    )

    employee = db.session.get(User, order.employee_id) if order.employee_id is not None else None
    employee_rows = (
        ("Employee ID", str(employee.id) if employee else ""),
        ("Name", (employee.fullname or "") if employee else ""),
    )

    rows = []
    for index, line in enumerate(order.lines, start=1):
        product = line.product
        code = _required(product.code if product else None, f"product code on line {index}", order.id)
        rows.append((
            str(index),
            code,
            _required(line.name, f"product name on line {index}", order.id),
            str(line.quantity),
            format_money(line.unit_price),
            format_money(line.total),
        ))

    return InvoiceLayout(
        order_id=order.id,
        title=TITLE,
        store_name=current_app.config.get("STORE_NAME", ""),
        metadata=metadata,
        customer=customer_rows,
        employee=employee_rows,
        table_header=TABLE_HEADER,
        rows=tuple(rows),
        closing=CLOSING_LINE,
    )


def _font_name() -> str:
    font_path = current_app.config.get("INVOICE_FONT_PATH")
    if not font_path:
        return "Helvetica"
    if CUSTOM_FONT_NAME not in pdfmetrics.getRegisteredFontNames():
        try:
            pdfmetrics.registerFont(TTFont(CUSTOM_FONT_NAME, font_path))
        except Exception as exc:
            raise RenderError("Invoice font could not be loaded", details={"font_path": font_path}) from exc
    return CUSTOM_FONT_NAME


def _styles(font_name: str) -> dict:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("InvoiceTitle", parent=base["Title"], fontName=font_name, fontSize=20),
        "store": ParagraphStyle("InvoiceStore", parent=base["Normal"], fontName=font_name, alignment=TA_CENTER),
        "heading": ParagraphStyle("InvoiceHeading", parent=base["Heading3"], fontName=font_name, fontSize=14),
        "body": ParagraphStyle("InvoiceBody", parent=base["Normal"], fontName=font_name, fontSize=12, leading=16),
        "cell": ParagraphStyle("InvoiceCell", parent=base["Normal"], fontName=font_name, fontSize=10, leading=12),
        "closing": ParagraphStyle("InvoiceClosing", parent=base["Normal"], fontName=font_name, fontSize=14, alignment=TA_RIGHT),
    }


def _field_lines(rows, style) -> list:
    return [Paragraph(f"{escape(label)}: {escape(value)}", style) for label, value in rows]


def render_pdf(layout: InvoiceLayout, target) -> None:
    """Render the layout to `target` (a path or binary file object)."""
    font_name = _font_name()
    styles = _styles(font_name)

    def _page_number(canvas, doc):
        canvas.saveState()
        canvas.setFont(font_name, 8)
        canvas.drawRightString(A4[0] - 36, 20, f"Order {layout.order_id} - page {doc.page}")
        canvas.restoreState()

    doc = SimpleDocTemplate(
        target,
        pagesize=A4,
        leftMargin=36,
        rightMargin=36,
        topMargin=36,
        bottomMargin=36,
        title=f"Invoice {layout.order_id}",
        invariant=1,
    )

    story = [Paragraph(escape(layout.title), styles["title"])]
    if layout.store_name:
        story.append(Paragraph(escape(layout.store_name), styles["store"]))
    story.append(Spacer(1, 12))
    story.extend(_field_lines(layout.metadata, styles["body"]))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Customer information", styles["heading"]))
    story.extend(_field_lines(layout.customer, styles["body"]))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Employee information", styles["heading"]))
    story.extend(_field_lines(layout.employee, styles["body"]))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Products", styles["heading"]))
    data = [list(layout.table_header)]
    for row in layout.rows:
        cells = list(row)
        # Wrapped names let the row grow to fit multi-line product names
        cells[2] = Paragraph(escape(cells[2]), styles["cell"])
        data.append(cells)

    table = Table(data, colWidths=COLUMN_WIDTHS, repeatRows=1)
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, -1), font_name),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1F2937")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ALIGN", (3, 0), (3, -1), "CENTER"),
        ("ALIGN", (4, 0), (5, -1), "RIGHT"),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
        ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.grey),
    ]))
    story.append(table)

    story.append(Spacer(1, 24))
    story.append(Paragraph(escape(layout.closing), styles["closing"]))

    doc.build(story, onFirstPage=_page_number, onLaterPages=_page_number)


def generate_invoice(order_id: int) -> Path:
    """
    Render and store the invoice for a committed order. Safe to call again;
    the previous document is replaced.

    Raises:
        OrderNotFound: no such order
        RenderError: layout data missing or rendering failed
        StorageError: the file could not be written
    """
    try:
        order = db.session.get(Order, order_id)
        if order is None:
            raise OrderNotFound("Order not found", details={"order_id": order_id})
        layout = build_invoice_layout(order)
    except InvoiceError:
        raise
    except Exception as exc:
        # Database reads, store time zone, staff lookup
        current_app.logger.exception("Invoice layout failed for order %s", order_id)
        raise RenderError(
            "Invoice data could not be prepared",
            details={"order_id": order_id, "reason": f"{exc.__class__.__name__}: {exc}"},
        ) from exc

    final_path = invoice_path(order.id)

    try:
        final_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=final_path.parent, prefix=f".{order.id}-", suffix=".pdf.tmp")
        os.close(fd)
    except OSError as exc:
        raise StorageError(
            "Invoice directory is not writable",
            details={"order_id": order.id, "reason": exc.strerror or str(exc)},
        ) from exc

    try:
        render_pdf(layout, tmp_name)
        os.replace(tmp_name, final_path)
    except OSError as exc:
        raise StorageError(
            "Invoice could not be written",
            details={"order_id": order.id, "reason": exc.strerror or str(exc)},
        ) from exc
    except RenderError:
        raise
    except Exception as exc:
        raise RenderError("Invoice could not be rendered", details={"order_id": order.id}) from exc
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)

    current_app.logger.info("Invoice written for order %s at %s", order.id, final_path)
    return final_path


def get_invoice_path(order_id: int) -> Path:
    """Path of the stored invoice. No regeneration on read."""
    path = invoice_path(order_id)
    if not path.is_file():
        raise InvoiceNotFound("Invoice not found", details={"order_id": order_id})
    return path


def orders_missing_invoice(limit: int = 100) -> list[int]:
    """Committed order ids that have no stored invoice, oldest first."""
    missing = []
    query = (
        db.session.query(Order.id)
        .filter(Order.status == "Completed")
        .order_by(Order.id.asc())
    )
    for (order_id,) in query.yield_per(500):
        if not invoice_path(order_id).is_file():
            missing.append(order_id)
            if len(missing) >= limit:
                break
    return missing
