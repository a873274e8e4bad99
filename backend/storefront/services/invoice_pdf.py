# Overview: Invoice document rendering; summary numbers, pagination and the A4 PDF layout.

"""
Storefront Invoice Document Invariants (authoritative)

- Rendering is a pure function of the persisted invoice plus the fixed
  constants in storefront.config (company block, TAX_RATE). No database
  writes, no clock reads.
- Stored totals are tax-inclusive. Tax and subtotal are reverse-derived
  from invoice.total, never from the line items:
    tax = round2(total / (1 + r) * r), subtotal = round2(total - tax)
- The printed grand total is invoice.total verbatim.
- A line discount is printed only when (original_price - price) * qty > 0.
- Access checks happen before this module is called; nothing here raises
  NotFound/Forbidden.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from ..config import COMPANY, TAX_RATE
from ..models import Invoice
from .pricing import round2, to_cents


PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_X = 40

# Vertical positions below are measured from the top edge of the page.
FIRST_TABLE_TOP = 250
CONTINUATION_TABLE_TOP = 90
TABLE_HEADER_HEIGHT = 26
ITEMS_BOTTOM = 760
FOOTER_Y = 810

ROW_HEIGHT = 30
DISCOUNT_ROW_HEIGHT = 44
SUMMARY_HEIGHT = 150

COL_QTY = 330
COL_UNIT_PRICE = 460
COL_TOTAL = PAGE_WIDTH - MARGIN_X
DESCRIPTION_WIDTH = 250

BRAND_BLUE = colors.HexColor("#2563eb")
TEXT_DARK = colors.HexColor("#111827")
TEXT_GRAY = colors.HexColor("#4b5563")
TEXT_LIGHT = colors.HexColor("#9ca3af")
BORDER = colors.HexColor("#e5e7eb")
SAVINGS_GREEN = colors.HexColor("#10b981")

STATUS_COLORS = {
    "completed": SAVINGS_GREEN,
    "pending": colors.HexColor("#f59e0b"),
    "cancelled": colors.HexColor("#ef4444"),
}


@dataclass(frozen=True)
class LineSummary:
    name: str
    quantity: int
    unit_price: float
    original_price: float
    line_total: float
    discount: float
    offer_names: tuple[str, ...] = ()

    @property
    def has_discount(self) -> bool:
        return self.discount > 0


@dataclass(frozen=True)
class InvoiceSummary:
    lines: tuple[LineSummary, ...]
    tax_rate: float
    subtotal: float
    tax: float
    savings: float
    total: float
    # Recomputed from the lines; informational, never printed as the total
    items_total: float


def summarize_invoice(invoice: Invoice, tax_rate: float = TAX_RATE) -> InvoiceSummary:
    lines = []
    for item in invoice.items:
        discount = round2((item.original_price - item.price) * item.quantity)
        lines.append(LineSummary(
            name=item.name,
            quantity=item.quantity,
            unit_price=item.price,
            original_price=item.original_price,
            line_total=round2(item.price * item.quantity),
            discount=discount if discount > 0 else 0.0,
            offer_names=tuple(o.name for o in item.applied_offers if o.name),
        ))

    total = invoice.total
    tax = round2(total / (1 + tax_rate) * tax_rate)
    return InvoiceSummary(
        lines=tuple(lines),
        tax_rate=tax_rate,
        subtotal=round2(total - tax),
        tax=tax,
        savings=sum(to_cents(line.discount) for line in lines) / 100,
        total=total,
        items_total=sum(to_cents(line.line_total) for line in lines) / 100,
    )


def row_height(line: LineSummary) -> float:
    return DISCOUNT_ROW_HEIGHT if line.has_discount else ROW_HEIGHT


def paginate_rows(
    rows: list[LineSummary] | tuple[LineSummary, ...],
    first_page_top: float = FIRST_TABLE_TOP + TABLE_HEADER_HEIGHT,
    page_top: float = CONTINUATION_TABLE_TOP + TABLE_HEADER_HEIGHT,
    bottom: float = ITEMS_BOTTOM,
) -> list[list[tuple[LineSummary, float]]]:
    """
    Place item rows on pages.

    Returns one list per page of (row, y) pairs, y being the row's top
    edge. A row that would cross `bottom` starts a new page, unless the
    page is still empty. There is always at least one page.
    """
    pages: list[list[tuple[LineSummary, float]]] = [[]]
    y = first_page_top
    for row in rows:
        height = row_height(row)
        if y + height > bottom and pages[-1]:
            pages.append([])
            y = page_top
        pages[-1].append((row, y))
        y += height
    return pages


def format_money(amount) -> str:
    """Rupee amount with Indian digit grouping: 118000 -> 'Rs. 1,18,000.00'."""
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    value = round2(value)

    whole, fraction = f"{abs(value):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])

    sign = "-" if value < 0 else ""
    return f"{sign}Rs. {whole}.{fraction}"


def _fit(text: str, font: str, size: float, width: float) -> str:
    text = text or ""
    if stringWidth(text, font, size) <= width:
        return text
    while text and stringWidth(text + "...", font, size) > width:
        text = text[:-1]
    return text + "..."


class _InvoiceDocument:
    """Thin wrapper over a reportlab canvas using top-down coordinates."""

    def __init__(self, invoice: Invoice, summary: InvoiceSummary, buffer: io.BytesIO):
        self.invoice = invoice
        self.summary = summary
        self.c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        self.c.setTitle(f"Invoice {invoice.invoice_number}")
        self.c.setAuthor(COMPANY["name"])
        self.c.setSubject("Tax invoice")

    def text(self, x, top, value, *, font="Helvetica", size=10, color=TEXT_DARK, align="left"):
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        y = PAGE_HEIGHT - top
        if align == "right":
            self.c.drawRightString(x, y, value)
        elif align == "center":
            self.c.drawCentredString(x, y, value)
        else:
            self.c.drawString(x, y, value)

    def rule(self, top, *, color=BORDER, x1=MARGIN_X, x2=PAGE_WIDTH - MARGIN_X):
        self.c.setStrokeColor(color)
        self.c.setLineWidth(0.5)
        self.c.line(x1, PAGE_HEIGHT - top, x2, PAGE_HEIGHT - top)

    def header(self):
        c = self.c
        c.setFillColor(BRAND_BLUE)
        c.roundRect(MARGIN_X, PAGE_HEIGHT - 70, 30, 30, 6, stroke=0, fill=1)
        self.text(MARGIN_X + 15, 60, COMPANY["initials"], font="Helvetica-Bold", size=14,
                  color=colors.white, align="center")

        self.text(80, 58, COMPANY["name"], font="Helvetica-Bold", size=16)
        top = 76
        for line in COMPANY["address_lines"]:
            self.text(80, top, line, size=9, color=TEXT_GRAY)
            top += 12
        self.text(80, top, f"GSTIN: {COMPANY['gstin']}", size=9, color=TEXT_GRAY)
        self.text(80, top + 12, COMPANY["email"], size=9, color=TEXT_GRAY)

        self.text(COL_TOTAL, 58, "INVOICE TOTAL", font="Helvetica-Bold", size=9, color=TEXT_LIGHT, align="right")
        self.text(COL_TOTAL, 82, format_money(self.summary.total), font="Helvetica-Bold", size=20, align="right")
        self.rule(140)

    def bill_to(self):
        inv = self.invoice
        self.text(MARGIN_X, 165, "BILLED TO", font="Helvetica-Bold", size=9, color=TEXT_LIGHT)
        self.text(MARGIN_X, 185, _fit(inv.customer_name or "Customer", "Helvetica-Bold", 11, 240),
                  font="Helvetica-Bold", size=11)
        if inv.customer_email:
            self.text(MARGIN_X, 200, _fit(inv.customer_email, "Helvetica", 9, 240), size=9, color=TEXT_GRAY)

        col = 330
        self.text(col, 165, "INVOICE DETAILS", font="Helvetica-Bold", size=9, color=TEXT_LIGHT)
        self.text(col, 185, inv.invoice_number, font="Helvetica-Bold", size=11)
        issued = inv.created_at.strftime("%d %b %Y") if inv.created_at else ""
        self.text(col, 200, f"Date: {issued}", size=9, color=TEXT_GRAY)
        status = (inv.status or "completed").lower()
        self.text(col, 216, status.upper(), font="Helvetica-Bold", size=10,
                  color=STATUS_COLORS.get(status, TEXT_GRAY))

    def table_header(self, top):
        label = dict(font="Helvetica-Bold", size=9, color=TEXT_LIGHT)
        self.text(MARGIN_X, top + 12, "DESCRIPTION", **label)
        self.text(COL_QTY, top + 12, "QTY", align="center", **label)
        self.text(COL_UNIT_PRICE, top + 12, "UNIT PRICE", align="right", **label)
        self.text(COL_TOTAL, top + 12, "TOTAL", align="right", **label)
        self.rule(top + 18)

    def row(self, line: LineSummary, top):
        baseline = top + 12
        self.text(MARGIN_X, baseline, _fit(line.name, "Helvetica-Bold", 10, DESCRIPTION_WIDTH),
                  font="Helvetica-Bold")
        self.text(COL_QTY, baseline, str(line.quantity), align="center")
        self.text(COL_UNIT_PRICE, baseline, format_money(line.unit_price), align="right")
        self.text(COL_TOTAL, baseline, format_money(line.line_total), font="Helvetica-Bold", align="right")

        if line.has_discount:
            note = f"Discount -{format_money(line.discount)}"
            if line.offer_names:
                note += f" ({', '.join(line.offer_names)})"
            self.text(MARGIN_X, baseline + 14, _fit(note, "Helvetica", 8, DESCRIPTION_WIDTH),
                      size=8, color=SAVINGS_GREEN)
            self.text(COL_UNIT_PRICE, baseline + 14, f"MRP {format_money(line.original_price)}",
                      size=8, color=TEXT_LIGHT, align="right")

        self.rule(top + row_height(line) - 4, color=colors.HexColor("#f3f4f6"))

    def summary_block(self, top):
        s = self.summary
        label_x, value_x = 360, COL_TOTAL

        self.text(MARGIN_X, top + 12, "NOTES & TERMS", font="Helvetica-Bold", size=9, color=TEXT_LIGHT)
        self.text(MARGIN_X, top + 28, "Prices are inclusive of GST.", size=9, color=TEXT_GRAY)
        self.text(MARGIN_X, top + 40, "Goods once sold are covered by manufacturer warranty.", size=9, color=TEXT_GRAY)

        y = top + 12
        self.text(label_x, y, "Subtotal")
        self.text(value_x, y, format_money(s.subtotal), align="right")
        y += 18
        self.text(label_x, y, f"GST ({s.tax_rate * 100:g}%)")
        self.text(value_x, y, format_money(s.tax), align="right")
        if s.savings > 0:
            y += 18
            self.text(label_x, y, "You saved", color=SAVINGS_GREEN)
            self.text(value_x, y, f"-{format_money(s.savings)}", color=SAVINGS_GREEN, align="right")
        y += 10
        self.rule(y, x1=label_x)
        y += 20
        self.text(label_x, y, "GRAND TOTAL", font="Helvetica-Bold", size=11)
        self.text(value_x, y, format_money(s.total), font="Helvetica-Bold", size=14, color=BRAND_BLUE, align="right")

        sign_top = y + 50
        self.rule(sign_top, x1=label_x)
        self.text((label_x + value_x) / 2, sign_top + 12, "AUTHORIZED SIGNATORY",
                  font="Helvetica-Bold", size=8, color=TEXT_LIGHT, align="center")

    def footer(self, page_number, page_count):
        self.rule(FOOTER_Y - 14)
        self.text(MARGIN_X, FOOTER_Y, f"Thank you for shopping with {COMPANY['name'].title()}",
                  size=8, color=TEXT_LIGHT)
        self.text(COL_TOTAL, FOOTER_Y, f"Page {page_number} of {page_count}", size=8, color=TEXT_LIGHT, align="right")

    def render(self) -> None:
        pages = paginate_rows(self.summary.lines)

        last_page = pages[-1]
        if last_page:
            last_row, last_top = last_page[-1]
            summary_top = last_top + row_height(last_row) + 10
        else:
            summary_top = FIRST_TABLE_TOP + TABLE_HEADER_HEIGHT + 10
        summary_on_own_page = summary_top + SUMMARY_HEIGHT > ITEMS_BOTTOM
        page_count = len(pages) + (1 if summary_on_own_page else 0)

        for index, rows in enumerate(pages, start=1):
            if index == 1:
                self.header()
                self.bill_to()
                self.table_header(FIRST_TABLE_TOP)
            else:
                self.text(MARGIN_X, 60, f"{self.invoice.invoice_number} (continued)",
                          font="Helvetica-Bold", size=11)
                self.table_header(CONTINUATION_TABLE_TOP)
            for line, top in rows:
                self.row(line, top)

            if index == len(pages) and not summary_on_own_page:
                self.summary_block(summary_top)
            self.footer(index, page_count)
            self.c.showPage()

        if summary_on_own_page:
            self.text(MARGIN_X, 60, f"{self.invoice.invoice_number} (continued)", font="Helvetica-Bold", size=11)
            self.summary_block(CONTINUATION_TABLE_TOP)
            self.footer(page_count, page_count)
            self.c.showPage()

        self.c.save()


def render_invoice_pdf(invoice: Invoice, tax_rate: float = TAX_RATE) -> bytes:
    """Render an already-authorized invoice as A4 PDF bytes."""
    buffer = io.BytesIO()
    _InvoiceDocument(invoice, summarize_invoice(invoice, tax_rate), buffer).render()
    return buffer.getvalue()
