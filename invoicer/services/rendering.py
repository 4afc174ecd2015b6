"""HTML and PDF export of an invoice state."""

from __future__ import annotations

import html
import re
from io import BytesIO
from typing import List, Tuple

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from invoicer.schemas.invoice import DiscountType, InvoiceState, StyleSettings
from invoicer.services.exceptions import MissingFieldError
from invoicer.utils.numbers import format_money

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{3,8}$")


def ensure_exportable(state: InvoiceState) -> None:
    """Company and client names are required before a download."""

    if not state.company_name.strip():
        raise MissingFieldError("company_name", "Please fill in company information")
    if not state.client_name.strip():
        raise MissingFieldError("client_name", "Please fill in client information")


def _html_accent(state: InvoiceState) -> str:
    color = state.style.accent_color.strip()
    return color if _HEX_COLOR.match(color) else StyleSettings().accent_color


def _quantity(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _multiline(value: str, br: str = "<br>") -> str:
    return html.escape(value).replace("\n", br)


def totals_rows(state: InvoiceState) -> List[Tuple[str, str]]:
    """Label/value pairs of the totals block, honoring the visibility flags."""

    rates = state.rates
    totals = state.totals
    symbol = state.style.currency_symbol
    rows: List[Tuple[str, str]] = []
    if rates.show_subtotal:
        rows.append(("Subtotal", format_money(totals.subtotal, symbol)))
    if rates.show_discount and totals.discount_amount:
        label = "Discount"
        if rates.discount_type is DiscountType.PERCENTAGE:
            label = f"Discount ({rates.discount_value:g}%)"
        rows.append((label, format_money(-totals.discount_amount, symbol)))
    if rates.show_tax:
        rows.append(
            (f"Tax ({rates.tax_rate_percent:g}%)", format_money(totals.sales_tax, symbol))
        )
    if rates.show_other_tax and totals.other_tax:
        rows.append(("Other tax", format_money(totals.other_tax, symbol)))
    if rates.show_shipping and totals.shipping:
        rows.append(("Shipping", format_money(totals.shipping, symbol)))
    rows.append(("Total", format_money(totals.total, symbol)))
    return rows


def _bank_lines(state: InvoiceState) -> List[Tuple[str, str]]:
    bank = state.bank
    fields = (
        ("Account name", bank.account_name),
        ("Account number", bank.account_number),
        ("Bank", bank.bank_name),
        ("Routing number", bank.routing_number),
        ("SWIFT", bank.swift_code),
        ("IBAN", bank.iban),
    )
    return [(label, value) for label, value in fields if value]


def render_invoice_html(state: InvoiceState) -> str:
    symbol = state.style.currency_symbol
    accent = _html_accent(state)

    logo = ""
    if state.company_logo:
        logo = (
            f'<img src="{html.escape(state.company_logo)}" '
            'alt="Company Logo" class="company-logo">'
        )
    po_line = (
        f"<div>PO #: {html.escape(state.po_number)}</div>" if state.po_number else ""
    )
    due_line = (
        f"<div><strong>Due Date:</strong> {html.escape(state.due_date)}</div>"
        if state.due_date
        else ""
    )
    email_line = (
        f"<div>{html.escape(state.client_email)}</div>" if state.client_email else ""
    )

    item_rows = "".join(
        "<tr>"
        f"<td>{html.escape(item.description)}</td>"
        f'<td class="text-right">{_quantity(item.quantity)}</td>'
        f'<td class="text-right">{html.escape(format_money(item.unit_price, symbol))}</td>'
        f'<td class="text-right">{html.escape(format_money(item.amount, symbol))}</td>'
        "</tr>"
        for item in state.line_items
    )

    total_rows = []
    for label, value in totals_rows(state):
        css = "row total-row" if label == "Total" else "row"
        total_rows.append(
            f'<div class="{css}"><span>{html.escape(label)}:</span>'
            f"<span>{html.escape(value)}</span></div>"
        )

    totals_html = "".join(total_rows)
    notes = (
        f'<div class="notes"><h3>Notes</h3><p>{_multiline(state.notes)}</p></div>'
        if state.notes
        else ""
    )
    bank_lines = _bank_lines(state)
    bank = ""
    if bank_lines:
        entries = "".join(
            f"<div><strong>{html.escape(label)}:</strong> {html.escape(value)}</div>"
            for label, value in bank_lines
        )
        bank = f'<div class="bank"><h3>Payment Details</h3>{entries}</div>'

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Invoice {html.escape(state.invoice_number)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; color: #333; }}
        .invoice-header {{ display: flex; justify-content: space-between; margin-bottom: 40px; }}
        .company-logo {{ max-width: 80px; max-height: 80px; }}
        .company-details h1 {{ margin: 0; font-size: 24px; color: {accent}; }}
        .invoice-title {{ text-align: right; }}
        .invoice-title h2 {{ margin: 0; font-size: 36px; color: #374151; }}
        .billing-info {{ display: flex; justify-content: space-between; margin-bottom: 40px; }}
        .items-table {{ width: 100%; border-collapse: collapse; margin-bottom: 30px; }}
        .items-table th {{ background-color: #f3f4f6; padding: 12px; text-align: left; }}
        .items-table td {{ padding: 12px; border-bottom: 1px solid #e5e7eb; }}
        .text-right {{ text-align: right; }}
        .totals {{ margin-left: auto; width: 300px; }}
        .totals .row {{ display: flex; justify-content: space-between; padding: 8px 0; }}
        .totals .total-row {{ font-weight: bold; font-size: 18px; color: {accent}; }}
        .footer {{ margin-top: 50px; text-align: center; font-size: 14px; color: #6b7280; }}
    </style>
</head>
<body>
    <div class="invoice-header">
        <div class="company-info">
            {logo}
            <div class="company-details">
                <h1>{html.escape(state.company_name or "Your Company")}</h1>
                <div>{_multiline(state.company_address)}</div>
            </div>
        </div>
        <div class="invoice-title">
            <h2>INVOICE</h2>
            <div>Invoice #: {html.escape(state.invoice_number)}</div>
            {po_line}
        </div>
    </div>
    <div class="billing-info">
        <div class="bill-to">
            <h3>Bill To:</h3>
            <div><strong>{html.escape(state.client_name or "Client Name")}</strong></div>
            <div>{_multiline(state.client_address)}</div>
            {email_line}
        </div>
        <div class="invoice-details">
            <div><strong>Invoice Date:</strong> {html.escape(state.invoice_date)}</div>
            {due_line}
        </div>
    </div>
    <table class="items-table">
        <thead>
            <tr>
                <th>Description</th>
                <th class="text-right">Qty</th>
                <th class="text-right">Rate</th>
                <th class="text-right">Amount</th>
            </tr>
        </thead>
        <tbody>{item_rows}</tbody>
    </table>
    <div class="totals">{totals_html}</div>
    {notes}
    {bank}
    <div class="footer"><p>Thank you for your business!</p></div>
</body>
</html>"""


def _pdf_accent(state: InvoiceState):
    try:
        return colors.HexColor(state.style.accent_color)
    except ValueError:
        return colors.HexColor(StyleSettings().accent_color)


def render_invoice_pdf(state: InvoiceState) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f"Invoice {state.invoice_number}",
    )
    symbol = state.style.currency_symbol
    accent = _pdf_accent(state)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "InvoiceTitle",
        parent=styles["Heading1"],
        fontSize=24,
        textColor=accent,
        spaceAfter=12,
        fontName="Helvetica-Bold",
    )
    footer_style = ParagraphStyle(
        "Footer",
        parent=styles["Normal"],
        fontSize=9,
        textColor=colors.HexColor("#6b7280"),
        alignment=TA_CENTER,
    )

    def para(text: str, style=styles["Normal"]) -> Paragraph:
        return Paragraph(_multiline(text, "<br/>"), style)

    elements = [
        Paragraph(html.escape(state.company_name or "Your Company"), title_style)
    ]
    if state.company_address:
        elements.append(para(state.company_address))
    elements.append(Spacer(1, 0.3 * inch))

    meta = [["Invoice #:", state.invoice_number], ["Invoice Date:", state.invoice_date]]
    if state.po_number:
        meta.append(["PO #:", state.po_number])
    if state.due_date:
        meta.append(["Due Date:", state.due_date])
    meta.append(["Bill To:", para(state.client_name or "Client Name")])
    if state.client_address:
        meta.append(["", para(state.client_address)])
    meta_table = Table(meta, colWidths=[1.5 * inch, 4.5 * inch])
    meta_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    elements.append(meta_table)
    elements.append(Spacer(1, 0.3 * inch))

    table_data = [["Description", "Qty", "Rate", "Amount"]]
    for item in state.line_items:
        table_data.append(
            [
                para(item.description),
                _quantity(item.quantity),
                format_money(item.unit_price, symbol),
                format_money(item.amount, symbol),
            ]
        )
    items_table = Table(
        table_data, colWidths=[3.4 * inch, 0.8 * inch, 1.2 * inch, 1.2 * inch]
    )
    items_table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), accent),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
            ]
        )
    )
    elements.append(items_table)
    elements.append(Spacer(1, 0.2 * inch))

    rows = [[f"{label}:", value] for label, value in totals_rows(state)]
    totals_table = Table(rows, colWidths=[5.2 * inch, 1.4 * inch])
    totals_table.setStyle(
        TableStyle(
            [
                ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, -1), (-1, -1), 12),
                ("TEXTCOLOR", (0, -1), (-1, -1), accent),
                ("LINEABOVE", (0, -1), (-1, -1), 1, colors.HexColor("#374151")),
            ]
        )
    )
    elements.append(totals_table)

    if state.notes:
        elements.append(Spacer(1, 0.3 * inch))
        elements.append(Paragraph("<b>Notes</b>", styles["Normal"]))
        elements.append(para(state.notes))

    bank_lines = _bank_lines(state)
    if bank_lines:
        elements.append(Spacer(1, 0.3 * inch))
        elements.append(Paragraph("<b>Payment Details</b>", styles["Normal"]))
        for label, value in bank_lines:
            elements.append(para(f"{label}: {value}"))

    elements.append(Spacer(1, 0.4 * inch))
    elements.append(Paragraph("Thank you for your business!", footer_style))

    doc.build(elements)
    return buffer.getvalue()
