"""Invoice PDF rendering using reportlab."""

from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from core.models import Client, Invoice, LineItem, UserProfile
from core.money import decimals_for_currency, format_money

REVERSE_CHARGE_NOTICE = "VAT reverse charge: tax to be accounted for by the recipient."


def _lines(*parts: str | None) -> str:
    return "<br/>".join(escape(p) for p in parts if p)


def render_invoice_pdf(
    invoice: Invoice,
    line_items: list[LineItem],
    client: Client,
    sender: UserProfile | None,
) -> bytes:
    """Render an invoice to PDF bytes."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title=f"Invoice {invoice.invoice_number}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "InvoiceTitle", parent=styles["Title"], fontSize=24, spaceAfter=6 * mm,
    )
    heading_style = ParagraphStyle(
        "SectionHeading", parent=styles["Heading3"], fontSize=11,
        spaceBefore=4 * mm, spaceAfter=2 * mm,
    )
    normal_style = styles["Normal"]
    small_style = ParagraphStyle(
        "Small", parent=normal_style, fontSize=9, textColor=colors.grey,
    )

    currency = invoice.currency
    qty_places = decimals_for_currency(currency)

    elements = [Paragraph("INVOICE", title_style)]

    meta_data = [
        ["Invoice No:", invoice.invoice_number],
        ["Issue date:", invoice.issue_date.isoformat()],
        ["Due date:", invoice.due_date.isoformat()],
        ["Status:", invoice.status.value],
    ]
    meta_table = Table(meta_data, colWidths=[30 * mm, 60 * mm])
    meta_table.setStyle(TableStyle([
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
        ("TOPPADDING", (0, 0), (-1, -1), 2),
    ]))
    elements.append(meta_table)
    elements.append(Spacer(1, 6 * mm))

    # From / Bill To
    from_block = ""
    if sender is not None:
        from_block = _lines(
            sender.company_name or sender.name,
            sender.company_address,
            f"Tax ID: {sender.tax_id}" if sender.tax_id else None,
            sender.email,
        )
    to_block = _lines(
        client.name,
        client.company_name,
        client.address,
        f"VAT: {client.vat_number}" if client.vat_number else None,
        client.email,
    )

    addr_table = Table(
        [
            [Paragraph("<b>From:</b>", normal_style), Paragraph("<b>Bill To:</b>", normal_style)],
            [Paragraph(from_block, small_style) if from_block else "", Paragraph(to_block, small_style)],
        ],
        colWidths=[85 * mm, 85 * mm],
    )
    addr_table.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
    ]))
    elements.append(addr_table)
    elements.append(Spacer(1, 8 * mm))

    # Items
    elements.append(Paragraph("Items", heading_style))
    table_data = [["Description", "Qty", "Rate", "Amount"]]
    for item in sorted(line_items, key=lambda li: li.sort_order):
        table_data.append([
            Paragraph(escape(item.description), normal_style),
            f"{item.quantity.normalize():f}",
            f"{item.rate:.{qty_places}f}",
            f"{item.amount:.{qty_places}f}",
        ])

    items_table = Table(table_data, colWidths=[90 * mm, 20 * mm, 30 * mm, 30 * mm])
    items_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f3f4f6")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 4 * mm))

    # Totals
    totals_data = [["Subtotal:", format_money(invoice.subtotal, currency)]]
    if invoice.discount_amount > 0:
        totals_data.append(["Discount:", f"-{format_money(invoice.discount_amount, currency)}"])
    if invoice.reverse_charge:
        totals_data.append(["Tax (reverse charge):", format_money(0, currency)])
    elif invoice.tax_rate > 0:
        totals_data.append([
            f"Tax ({invoice.tax_rate.normalize():f}%):",
            format_money(invoice.tax_amount, currency),
        ])
    totals_data.append(["Total:", format_money(invoice.total, currency)])
    if invoice.amount_paid > 0:
        totals_data.append(["Paid:", format_money(invoice.amount_paid, currency)])
        totals_data.append(["Amount due:", format_money(invoice.amount_due, currency)])

    totals_table = Table(totals_data, colWidths=[130 * mm, 40 * mm])
    totals_table.setStyle(TableStyle([
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
    ]))
    elements.append(totals_table)

    if invoice.reverse_charge:
        elements.append(Spacer(1, 4 * mm))
        elements.append(Paragraph(REVERSE_CHARGE_NOTICE, small_style))

    if invoice.payment_terms:
        elements.append(Spacer(1, 6 * mm))
        elements.append(Paragraph("Payment Terms", heading_style))
        elements.append(Paragraph(escape(invoice.payment_terms), normal_style))

    if invoice.notes:
        elements.append(Spacer(1, 6 * mm))
        elements.append(Paragraph("Notes", heading_style))
        elements.append(Paragraph(escape(invoice.notes).replace("\n", "<br/>"), normal_style))

    doc.build(elements)
    return buffer.getvalue()
