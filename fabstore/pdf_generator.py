"""
PDF documents for storefront orders.

Two documents per order:
1. Shop packet: fabrication instructions: job header, per-line spec tables
   (stud schedule included), piece and weight totals. No prices.
2. Quote: customer-facing pricing: per-line breakdown, subtotal, shipping,
   tax, total, validity date.

Uses fpdf2 (pure Python, no system dependencies).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fpdf import FPDF

from .schemas import Order

SHIPPING_METHOD_NAMES = {
    "standard": "Standard Shipping",
    "expedited": "Expedited Shipping",
    "freight": "Freight Shipping",
    "pickup": "Will Call Pickup",
}


def _fmt(amount) -> str:
    """Format a number as $X,XXX.XX"""
    try:
        return f"${Decimal(amount):,.2f}"
    except (ValueError, TypeError, ArithmeticError):
        return "$0.00"


def _safe(text) -> str:
    """Replace Unicode chars that can't be rendered by built-in PDF fonts (latin-1)."""
    if not text:
        return ""
    return (
        str(text)
        .replace("\u2022", "-")    # bullet
        .replace("\u2014", " - ")  # em dash
        .replace("\u2013", "-")    # en dash
        .replace("\u201c", '"')    # left double quote
        .replace("\u201d", '"')    # right double quote
        .replace("\u2018", "'")    # left single quote
        .replace("\u2019", "'")    # right single quote
        .replace("\u00b1", "+/-")  # plus-minus
        .encode("latin-1", errors="replace")
        .decode("latin-1")
    )


def _date(value: Optional[datetime]) -> str:
    return (value or datetime.utcnow()).strftime("%B %d, %Y")


class OrderPDF(FPDF):
    """Shared layout for order documents."""

    def __init__(self, company: dict, title: str):
        super().__init__()
        self.company = company
        self.doc_title = title
        self.set_auto_page_break(auto=True, margin=20)

    def header(self):
        pass  # drawn once by letterhead()

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(0, 10, f"{self.doc_title} - Page {self.page_no()}/{{nb}}", align="C")

    def letterhead(self):
        name = self.company.get("name") or ""
        info = " | ".join(p for p in (self.company.get("phone"), self.company.get("email")) if p)

        self.set_font("Helvetica", "B", 20)
        self.cell(0, 10, _safe(name), new_x="LMARGIN", new_y="NEXT")
        if info:
            self.set_font("Helvetica", "", 9)
            self.set_text_color(100, 100, 100)
            self.cell(0, 5, _safe(info), new_x="LMARGIN", new_y="NEXT")
            self.set_text_color(0, 0, 0)
        self.ln(4)

    def section_header(self, title):
        """Render a section header bar."""
        self.set_font("Helvetica", "B", 11)
        self.set_fill_color(45, 55, 72)
        self.set_text_color(255, 255, 255)
        self.cell(0, 8, _safe(f"  {title}"), fill=True, new_x="LMARGIN", new_y="NEXT")
        self.set_text_color(0, 0, 0)
        self.ln(2)

    def table_header(self, cols):
        """Render a table header row. cols: [(label, width), ...]"""
        self.set_font("Helvetica", "B", 8)
        self.set_fill_color(240, 240, 240)
        for label, width in cols:
            align = "R" if label in ("Qty", "Unit", "Total", "Amount") else "L"
            self.cell(width, 6, label, border="B", fill=True, align=align)
        self.ln()

    def table_row(self, values, widths, right_cols=0):
        """Render a table data row. The last `right_cols` columns are right-aligned."""
        self.set_font("Helvetica", "", 8)
        for i, (val, width) in enumerate(zip(values, widths)):
            align = "R" if i >= len(widths) - right_cols else "L"
            self.cell(width, 5.5, _safe(val), align=align)
        self.ln()

    def spec_row(self, label, value):
        """Label/value pair; long values wrap."""
        self.set_font("Helvetica", "B", 8)
        self.cell(45, 5, _safe(label))
        self.set_font("Helvetica", "", 8)
        self.multi_cell(0, 5, _safe(value), new_x="LMARGIN", new_y="NEXT")

    def amount_row(self, label, amount, bold=False):
        self.set_font("Helvetica", "B" if bold else "", 10)
        self.cell(130, 6, _safe(label))
        self.cell(60, 6, _fmt(amount), align="R")
        self.ln()

    def job_block(self, order: Order, heading: str):
        self.set_font("Helvetica", "B", 14)
        self.cell(0, 8, _safe(f"{heading} {order.job_id}"), new_x="LMARGIN", new_y="NEXT")
        self.set_font("Helvetica", "", 10)
        self.cell(0, 5, f"Date: {_date(order.created_at)}", new_x="LMARGIN", new_y="NEXT")

        customer = order.customer
        if customer:
            who = customer.name + (f" ({customer.company})" if customer.company else "")
            self.cell(0, 5, _safe(f"Customer: {who}"), new_x="LMARGIN", new_y="NEXT")
            contact = " | ".join(p for p in (customer.email, customer.phone) if p)
            if contact:
                self.cell(0, 5, _safe(f"Contact: {contact}"), new_x="LMARGIN", new_y="NEXT")

        addr = order.shipping_address
        ship_to = ", ".join(p for p in (addr.street, addr.city, addr.state, addr.zip) if p)
        self.cell(0, 5, _safe(f"Ship to: {ship_to}"), new_x="LMARGIN", new_y="NEXT")
        method = SHIPPING_METHOD_NAMES.get(order.shipping_method.value, order.shipping_method.value)
        self.cell(0, 5, _safe(f"Shipping: {method}"), new_x="LMARGIN", new_y="NEXT")
        self.ln(4)


def render_shop_packet(order: Order, company: dict) -> bytes:
    """
    Fabrication packet for the shop floor.

    Args:
        order: the order (at least one line)
        company: {"name", "email", "phone"}

    Returns:
        PDF bytes
    """
    pdf = OrderPDF(company, f"Shop Packet {order.job_id}")
    pdf.alias_nb_pages()
    pdf.add_page()
    pdf.letterhead()
    pdf.job_block(order, "SHOP PACKET")

    total_pieces = 0
    total_weight = Decimal(0)

    for i, line in enumerate(order.lines, start=1):
        pdf.section_header(f"LINE {i}: {line.description}")
        for label, value in line.spec_sheet:
            pdf.spec_row(label, value)
        if line.lead_time_note:
            pdf.spec_row("Lead time note", line.lead_time_note)
        if line.confidence != "high":
            pdf.spec_row("Review", "Flagged for manual review before release")
        pdf.ln(3)

        total_pieces += line.quantity
        total_weight += line.shipping.unit_weight_lbs * line.quantity

    pdf.section_header("TOTALS")
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(130, 6, "Line items")
    pdf.cell(60, 6, str(len(order.lines)), align="R")
    pdf.ln()
    pdf.cell(130, 6, "Total pieces")
    pdf.cell(60, 6, str(total_pieces), align="R")
    pdf.ln()
    pdf.cell(130, 6, "Estimated shipping weight")
    pdf.cell(60, 6, f"{total_weight:,.1f} lbs", align="R")
    pdf.ln(10)

    if order.customer and order.customer.special_instructions:
        pdf.section_header("SPECIAL INSTRUCTIONS")
        pdf.set_font("Helvetica", "", 9)
        pdf.multi_cell(0, 4.5, _safe(order.customer.special_instructions))

    return bytes(pdf.output())


def render_quote(order: Order, company: dict, expires_at: datetime) -> bytes:
    """
    Customer quote with the full price breakdown.

    Args:
        order: the order (at least one line)
        company: {"name", "email", "phone"}
        expires_at: quote validity end

    Returns:
        PDF bytes
    """
    pdf = OrderPDF(company, f"Quote {order.job_id}")
    pdf.alias_nb_pages()
    pdf.add_page()
    pdf.letterhead()
    pdf.job_block(order, "QUOTE")

    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(0, 5, f"Valid until: {_date(expires_at)}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    cols = [("Item", 110), ("Qty", 20), ("Unit", 30), ("Total", 30)]
    widths = [c[1] for c in cols]

    for i, line in enumerate(order.lines, start=1):
        pdf.section_header(f"LINE {i}: {line.description}")
        pdf.table_header([("Item", 160), ("Amount", 30)])
        for entry in line.breakdown:
            label = entry.label if entry.quantity is None else f"{entry.label} x{entry.quantity}"
            pdf.table_row([label, _fmt(entry.amount)], [160, 30], right_cols=1)
        pdf.ln(1)
        pdf.table_header(cols)
        pdf.table_row(
            ["Unit price" + (" (rush included)" if line.lead_time == "rush" else ""),
             str(line.quantity), _fmt(line.unit_price), _fmt(line.price)],
            widths,
            right_cols=3,
        )
        pdf.ln(4)

    pdf.section_header("ORDER TOTAL")
    pdf.amount_row("Subtotal", order.subtotal)
    method = SHIPPING_METHOD_NAMES.get(order.shipping_method.value, order.shipping_method.value)
    pdf.amount_row(f"Shipping ({method})", order.shipping_cost)
    if order.is_tax_exempt:
        pdf.amount_row("Sales tax (exempt)", order.tax_amount)
    else:
        pdf.amount_row(f"Sales tax ({order.tax_rate * 100:.3f}%)", order.tax_amount)

    pdf.ln(1)
    pdf.set_fill_color(45, 55, 72)
    pdf.set_text_color(255, 255, 255)
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(130, 10, "  TOTAL", fill=True)
    pdf.cell(60, 10, f"{_fmt(order.total)}  ", fill=True, align="R")
    pdf.set_text_color(0, 0, 0)
    pdf.ln(14)

    pw = pdf.w - pdf.l_margin - pdf.r_margin
    pdf.set_font("Helvetica", "I", 8)
    pdf.set_text_color(100, 100, 100)
    pdf.set_x(pdf.l_margin)
    pdf.cell(pw, 4, f"This quote is valid until {_date(expires_at)}.", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(pw, 4, "Prices include fabrication only; installation is not included.", new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)

    return bytes(pdf.output())
