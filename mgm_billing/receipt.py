"""Receipts for the 80 mm thermal printer: plain text and PDF."""
import logging
import os
import textwrap
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .history import to_local

log = logging.getLogger(__name__)

RECEIPT_WIDTH = 80 * mm
TEXT_WIDTH = 42
FOOTER = "THANK YOU, VISIT US AGAIN!"
COLUMNS = (("ITEM", 14, "<"), ("WT(g)", 8, ">"), ("GOLD", 10, ">"), ("SEIKULI", 10, ">"))


def amount(value) -> str:
    return f"{Decimal(value):,.2f}"


def percent(value) -> str:
    return format(Decimal(value).normalize(), "f")


def _row(cells, width=TEXT_WIDTH):
    parts = []
    for text, (_, size, align) in zip(cells, COLUMNS):
        parts.append(f"{str(text)[:size]:{align}{size}}")
    return "".join(parts)[:width]


def _pair(left, right, width=TEXT_WIDTH):
    gap = max(1, width - len(left) - len(right))
    return f"{left}{' ' * gap}{right}"


def render_text(bill, shop, tz="Asia/Kolkata", width=TEXT_WIDTH):
    """Fixed-width receipt lines; every line is at most ``width`` characters."""
    local = to_local(bill.bill_date, tz)
    rule = "-" * width
    lines = []
    heading = textwrap.wrap(shop.name or "", width) + textwrap.wrap(shop.address or "", width)
    if shop.gst:
        heading += textwrap.wrap(f"GSTIN: {shop.gst}", width)
    for chunk in heading:
        lines.append(chunk.center(width).rstrip())
    lines.append(rule)
    lines.append(_pair(f"Date: {local:%d/%m/%Y}", f"Time: {local:%I:%M %p}", width))
    if bill.id is not None:
        lines.append(f"Bill No: {bill.id}")
    lines.append(f"Customer: {bill.customer_name}"[:width])
    lines.append(f"Gold Rate: Rs.{amount(bill.gold_rate)}/gram")
    lines.append(rule)
    lines.append(_row([c[0] for c in COLUMNS], width))
    for item in bill.lines:
        lines.append(_row([item.category_name, item.weight,
                           amount(item.gold_amount), amount(item.seikuli_amount)], width))
        lines.append(f"(Rs.{amount(item.seikuli_rate)}/g)".rjust(width))
    lines.append(rule)
    lines.append(_pair("Subtotal:", f"Rs.{amount(bill.subtotal)}", width))
    lines.append(_pair(f"GST ({percent(bill.gst_percentage)}%):", f"Rs.{amount(bill.gst_amount)}", width))
    lines.append("=" * width)
    lines.append(_pair("NET PAYABLE:", f"Rs.{amount(bill.grand_total)}", width))
    lines.append(rule)
    lines.append(FOOTER.center(width).rstrip())
    return lines


def build_pdf(bill, shop, path, tz="Asia/Kolkata"):
    local = to_local(bill.bill_date, tz)
    height = 110 * mm + 9 * mm * len(bill.lines)
    doc = SimpleDocTemplate(path, pagesize=(RECEIPT_WIDTH, height),
                            leftMargin=3 * mm, rightMargin=3 * mm,
                            topMargin=4 * mm, bottomMargin=4 * mm)
    styles = getSampleStyleSheet()
    title = ParagraphStyle("ReceiptTitle", parent=styles["Title"], fontName="Courier-Bold",
                           fontSize=11, leading=13, spaceAfter=2)
    small = ParagraphStyle("ReceiptSmall", parent=styles["Normal"], fontName="Courier",
                           fontSize=7, leading=9, alignment=TA_CENTER)
    body = ParagraphStyle("ReceiptBody", parent=styles["Normal"], fontName="Courier",
                          fontSize=8, leading=10)

    elements = [Paragraph(f"<b>{escape(shop.name)}</b>", title)]
    header = escape(shop.address or "")
    if shop.gst:
        header += f"<br/>GSTIN: {escape(shop.gst)}"
    if shop.mobile:
        header += f" | Mob: {escape(shop.mobile)}"
    elements.append(Paragraph(header, small))
    elements.append(Spacer(1, 4))

    info = [
        [f"Date: {local:%d/%m/%Y}", f"Time: {local:%I:%M %p}"],
        [f"Customer: {bill.customer_name}", f"Bill No: {bill.id}" if bill.id else ""],
        [f"Gold Rate: Rs.{amount(bill.gold_rate)}/gram", ""],
    ]
    t_info = Table(info, colWidths=[44 * mm, 30 * mm])
    t_info.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, -1), "Courier"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("LINEBELOW", (0, -1), (-1, -1), 0.5, colors.black),
    ]))
    elements.append(t_info)
    elements.append(Spacer(1, 4))

    rows = [[c[0] for c in COLUMNS]]
    for item in bill.lines:
        rows.append([
            Paragraph(escape(item.category_name), body),
            str(item.weight),
            amount(item.gold_amount),
            f"{amount(item.seikuli_amount)}\n(Rs.{amount(item.seikuli_rate)}/g)",
        ])
    t_items = Table(rows, colWidths=[24 * mm, 12 * mm, 19 * mm, 19 * mm])
    t_items.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, 0), "Courier-Bold"),
        ("FONTNAME", (0, 1), (-1, -1), "Courier"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.black),
        ("LINEBELOW", (0, -1), (-1, -1), 0.5, colors.black),
    ]))
    elements.append(t_items)
    elements.append(Spacer(1, 4))

    summary = [
        ["Subtotal:", f"Rs.{amount(bill.subtotal)}"],
        [f"GST ({percent(bill.gst_percentage)}%):", f"Rs.{amount(bill.gst_amount)}"],
        ["NET PAYABLE:", f"Rs.{amount(bill.grand_total)}"],
    ]
    t_summary = Table(summary, colWidths=[40 * mm, 34 * mm])
    t_summary.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, 1), "Courier"),
        ("FONTNAME", (0, 2), (-1, 2), "Courier-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("LINEABOVE", (0, 2), (-1, 2), 1, colors.black),
    ]))
    elements.append(t_summary)
    elements.append(Spacer(1, 8))
    elements.append(Paragraph(f"<b>{FOOTER}</b>", small))

    doc.build(elements)
    log.debug("Receipt written to %s", path)
    return path


def receipt_path(folder, bill):
    os.makedirs(folder, exist_ok=True)
    return os.path.join(folder, f"Bill_{bill.id}.pdf")
