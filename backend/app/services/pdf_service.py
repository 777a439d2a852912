"""
PDF Quote Generation Service
Renders a priced quote with product specification and tier pricing
"""
from io import BytesIO
from datetime import datetime

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from app.core.config import settings
from app.schemas.order import OrderData, PricingResult


def _money(value: float) -> str:
    return f"${value:,.0f}"


def generate_quote_pdf(
    order: OrderData,
    pricing: PricingResult,
    quote_number: str,
    phone: str,
    issued_at: datetime,
    valid_until: datetime,
) -> bytes:
    """
    Generate the PDF for a priced quote

    Args:
        order: Order data captured in the conversation
        pricing: Tiers returned by the pricing API
        quote_number: e.g. "Q-20240101-AB12CD"
        phone: Customer WhatsApp number
        issued_at / valid_until: Printed validity window

    Returns:
        PDF bytes
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        title=f"Quote {quote_number}",
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'QuoteTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#1a56db'),
        alignment=TA_CENTER,
        spaceAfter=12
    )
    heading_style = ParagraphStyle(
        'QuoteHeading',
        parent=styles['Heading2'],
        fontSize=14,
        textColor=colors.HexColor('#1f2937'),
        spaceAfter=6
    )
    normal_style = ParagraphStyle(
        'QuoteNormal',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#374151')
    )
    small_style = ParagraphStyle(
        'QuoteSmall',
        parent=normal_style,
        fontSize=8,
        textColor=colors.HexColor('#6b7280')
    )

    elements.append(Paragraph("QUOTATION", title_style))
    elements.append(Spacer(1, 0.2 * inch))

    # Company and quote info
    info_data = [[
        Paragraph(f"<b>{settings.COMPANY_NAME}</b><br/>Custom printed packaging", normal_style),
        Paragraph(
            f"<b>Quote #:</b> {quote_number}<br/>"
            f"<b>Date:</b> {issued_at.strftime('%d %b %Y')}<br/>"
            f"<b>Valid until:</b> {valid_until.strftime('%d %b %Y')}",
            normal_style,
        ),
    ]]
    info_table = Table(info_data, colWidths=[3.5 * inch, 3 * inch])
    info_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.2 * inch))

    elements.append(Paragraph("<b>Prepared For:</b>", heading_style))
    elements.append(Paragraph(f"WhatsApp: +{phone}", normal_style))
    elements.append(Spacer(1, 0.2 * inch))

    # Product specification
    elements.append(Paragraph("<b>Specification</b>", heading_style))
    spec_rows = [
        ("Category", order.selected_category.name if order.selected_category else "-"),
        ("Product", order.selected_product.name if order.selected_product else "-"),
        ("Dimensions", order.describe_dimensions()),
        ("Material", order.selected_material.name if order.selected_material else "-"),
        ("Finishes", ", ".join(f.name for f in order.selected_finish) or "-"),
    ]
    spec_table = Table(
        [[Paragraph(f"<b>{label}</b>", normal_style), Paragraph(value, normal_style)] for label, value in spec_rows],
        colWidths=[1.5 * inch, 5 * inch],
    )
    spec_table.setStyle(TableStyle([
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#f3f4f6')),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(spec_table)
    elements.append(Spacer(1, 0.3 * inch))

    # Pricing tiers: one column per tier
    elements.append(Paragraph("<b>Pricing</b>", heading_style))
    tiers = pricing.tiers
    header = ["Tiers"] + [f"Tier {i + 1}" for i in range(len(tiers))]
    quantities = ["Quantities"] + [f"{t.quantity:,}" for t in tiers]
    unit_costs = ["Unit Cost"] + [f"${t.unit_cost:.3f}" for t in tiers]
    estimates = ["Estimate Price"] + [_money(t.total) for t in tiers]

    tier_width = 5 * inch / max(len(tiers), 1)
    price_table = Table(
        [header, quantities, unit_costs, estimates],
        colWidths=[1.5 * inch] + [tier_width] * len(tiers),
    )
    price_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1a56db')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTNAME', (0, 1), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (1, -1), (-1, -1), 'Helvetica-Bold'),
        ('ALIGN', (1, 0), (-1, -1), 'CENTER'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#fafafa')]),
        ('TOPPADDING', (0, 0), (-1, -1), 8),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
    ]))
    elements.append(price_table)
    elements.append(Spacer(1, 0.4 * inch))

    elements.append(Paragraph(
        f"This estimate is valid for {settings.QUOTE_VALIDITY_DAYS} days from the date above. "
        "Prices exclude shipping and applicable taxes. Final pricing is confirmed after artwork review.",
        small_style,
    ))

    doc.build(elements)
    return buffer.getvalue()
