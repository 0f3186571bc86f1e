"""Invoice PDF for a purchase.

Prices already include VAT; the invoice breaks the total down into taxable
base and VAT at ``VAT_RATE``.
"""
from __future__ import annotations

import io
import logging
from decimal import ROUND_HALF_UP, Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from . import errors
from .config import APP_NAME, VAT_RATE
from .models import as_utc
from .pricing import format_price

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def vat_breakdown(total) -> tuple[Decimal, Decimal]:
    """Split a VAT-inclusive total into (base, vat)."""
    total = Decimal(str(total)).quantize(CENT, rounding=ROUND_HALF_UP)
    base = (total / (1 + VAT_RATE)).quantize(CENT, rounding=ROUND_HALF_UP)
    return base, total - base


def invoice_filename(purchase_id: int) -> str:
    return f"factura-{purchase_id}.pdf"


def _build(purchase, buffer: io.BytesIO) -> None:
    styles = getSampleStyleSheet()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title=f"Invoice {purchase.id}",
        author=APP_NAME,
    )

    purchased_at = as_utc(purchase.purchased_at)
    buyer = purchase.buyer
    story = [
        Paragraph(APP_NAME, styles["Title"]),
        Paragraph("Second-hand marketplace", styles["Italic"]),
        Spacer(1, 8 * mm),
        Paragraph(f"Invoice no. {purchase.id:06d}", styles["Heading2"]),
        Paragraph(f"Date: {purchased_at:%d/%m/%Y %H:%M} UTC", styles["Normal"]),
        Spacer(1, 6 * mm),
        Paragraph("Customer", styles["Heading3"]),
        Paragraph(escape(buyer.full_name), styles["Normal"]),
        Paragraph(escape(buyer.email), styles["Normal"]),
        Spacer(1, 6 * mm),
    ]

    rows = [["#", "Product", "Category", "Price"]]
    for index, product in enumerate(purchase.products, start=1):
        category = getattr(product.category, "value", product.category)
        rows.append([str(index), Paragraph(escape(product.name), styles["Normal"]), category, format_price(product.price)])

    table = Table(rows, colWidths=[12 * mm, 85 * mm, 35 * mm, 35 * mm], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#13c1ac")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (3, 0), (3, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f4f4f4")]),
            ]
        )
    )
    story.append(table)
    story.append(Spacer(1, 6 * mm))

    base, vat = vat_breakdown(purchase.total)
    vat_percent = (VAT_RATE * 100).normalize()
    totals = Table(
        [
            ["Subtotal (excl. VAT)", format_price(base)],
            [f"VAT {vat_percent}% (included)", format_price(vat)],
            ["Total", format_price(purchase.total)],
        ],
        colWidths=[132 * mm, 35 * mm],
    )
    totals.setStyle(
        TableStyle(
            [
                ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                ("FONTNAME", (0, 2), (-1, 2), "Helvetica-Bold"),
                ("LINEABOVE", (0, 2), (-1, 2), 0.75, colors.black),
            ]
        )
    )
    story.append(totals)
    story.append(Spacer(1, 10 * mm))
    story.append(Paragraph(f"Thank you for shopping at {APP_NAME}.", styles["Normal"]))

    doc.build(story)


def generate_invoice_pdf(purchase) -> bytes:
    buffer = io.BytesIO()
    try:
        _build(purchase, buffer)
    except Exception as exc:
        logger.exception("Failed to render invoice for purchase %s", getattr(purchase, "id", None))
        raise errors.pdf_generation_failed(str(exc))
    return buffer.getvalue()
