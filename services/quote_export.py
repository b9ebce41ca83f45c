"""
Quote export: groups a quote's line items into the printed sections and renders
the result to PDF.

Sections, in order:
- EQUIPOS: equipment lines that are not additional materials
- SERVICIOS: service lines
- MATERIALES ADICIONALES: equipment lines whose category (from the line itself,
  else from the linked product) mentions "materiales adicionales"; their
  quantities are approximate and highlighted

Lines with no type, or a type other than equipment or service, are left out.
"""

import logging
from io import BytesIO
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from config.config import ExportConfig
from models.enums import ItemType
from models.export import ExportRow, ExportSection, QuoteExportDocument
from models.inventory import Product
from models.quote import Quote, QuoteLineItem, money

logger = logging.getLogger(__name__)

EQUIPMENT_TITLE = "EQUIPOS"
SERVICES_TITLE = "SERVICIOS"
ADDITIONAL_MATERIALS_TITLE = "MATERIALES ADICIONALES (Cantidades Aproximadas)"
APPROXIMATE_NOTE = (
    "Los materiales adicionales resaltados tienen cantidades aproximadas. "
    "La cantidad final puede variar según las necesidades de la instalación."
)

PRIMARY = colors.Color(41 / 255, 128 / 255, 185 / 255)
SECTION_FILL = colors.Color(240 / 255, 240 / 255, 240 / 255)
HIGHLIGHT_SECTION_FILL = colors.Color(1, 243 / 255, 205 / 255)
HIGHLIGHT_CELL_FILL = colors.Color(1, 1, 153 / 255)


class QuoteExportFormatter:
    """Builds a :class:`QuoteExportDocument` from a stored quote."""

    def __init__(self, config: ExportConfig | None = None):
        self.config = config or ExportConfig()

    def _category(self, item: QuoteLineItem, products: dict[str, Product]) -> str:
        if item.category:
            return item.category
        product = products.get(item.product_id) if item.product_id else None
        return product.category if product else ""

    def is_additional_material(self, item: QuoteLineItem, products: dict[str, Product]) -> bool:
        return self.config.additional_materials_category.lower() in self._category(item, products).lower()

    def build(self, quote: Quote, products: list[Product] | None = None) -> QuoteExportDocument:
        by_id = {p.id: p for p in products or []}
        equipment, services, additional = [], [], []
        for item in quote.line_items:
            if item.type == ItemType.SERVICE.value:
                services.append(item)
            elif item.type == ItemType.EQUIPMENT.value:
                if self.is_additional_material(item, by_id):
                    additional.append(item)
                else:
                    equipment.append(item)
            elif not item.type:
                logger.warning(f"Quote {quote.id}: line '{item.label}' has no type, not exported")
            else:
                logger.warning(f"Quote {quote.id}: line '{item.label}' has unknown type '{item.type}', not exported")

        sections = []
        number = 1
        for title, items, highlighted in (
            (EQUIPMENT_TITLE, equipment, False),
            (SERVICES_TITLE, services, False),
            (ADDITIONAL_MATERIALS_TITLE, additional, True),
        ):
            if not items:
                continue
            rows = []
            for item in items:
                rows.append(
                    ExportRow(
                        number=number,
                        name=item.name,
                        description=item.description,
                        quantity=item.quantity,
                        unit=item.unit,
                        unit_price=money(item.unit_price),
                        subtotal=money(item.subtotal),
                        highlight_quantity=highlighted,
                    )
                )
                number += 1
            sections.append(ExportSection(title=title, rows=rows, highlighted=highlighted))

        return QuoteExportDocument(
            code=quote.code,
            date=quote.date,
            client_name=quote.client_name,
            company_name=self.config.company_name,
            tax_id=self.config.tax_id,
            address=self.config.address,
            currency_symbol=self.config.currency_symbol,
            sections=sections,
            total=money(quote.compute_total()),
            approximate_note=APPROXIMATE_NOTE if additional else None,
            notes=quote.notes or None,
        )


class QuotePdfRenderer:
    """Writes a :class:`QuoteExportDocument` as a single-table PDF."""

    header = ["N°", "Producto", "Descripción", "Cant.", "Unidad", "Precio", "Subtotal"]

    def __init__(self, config: ExportConfig | None = None):
        self.config = config or ExportConfig()

    def _table(self, document: QuoteExportDocument) -> Table:
        data = [self.header]
        style = [
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("BACKGROUND", (0, 0), (-1, 0), PRIMARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (3, 1), (3, -1), "CENTER"),
            ("ALIGN", (5, 1), (6, -1), "RIGHT"),
        ]
        for section in document.sections:
            row_index = len(data)
            data.append([section.title, "", "", "", "", "", ""])
            style += [
                ("SPAN", (0, row_index), (-1, row_index)),
                ("BACKGROUND", (0, row_index), (-1, row_index),
                 HIGHLIGHT_SECTION_FILL if section.highlighted else SECTION_FILL),
                ("FONTNAME", (0, row_index), (-1, row_index), "Helvetica-Bold"),
            ]
            for row in section.rows:
                row_index = len(data)
                data.append(
                    [
                        str(row.number),
                        row.name,
                        row.description,
                        str(row.quantity),
                        row.unit,
                        document.money(row.unit_price),
                        document.money(row.subtotal),
                    ]
                )
                if row.highlight_quantity:
                    style += [
                        ("BACKGROUND", (3, row_index), (3, row_index), HIGHLIGHT_CELL_FILL),
                        ("FONTNAME", (3, row_index), (3, row_index), "Helvetica-Bold"),
                    ]
        total_index = len(data)
        data.append(["TOTAL", "", "", "", "", "", document.money(document.total)])
        style += [
            ("SPAN", (0, total_index), (5, total_index)),
            ("ALIGN", (0, total_index), (5, total_index), "RIGHT"),
            ("FONTNAME", (0, total_index), (-1, total_index), "Helvetica-Bold"),
            ("FONTSIZE", (0, total_index), (-1, total_index), 12),
            ("TEXTCOLOR", (6, total_index), (6, total_index), PRIMARY),
        ]
        table = Table(data, colWidths=[10 * mm, None, None, None, None, None, None], repeatRows=1)
        table.setStyle(TableStyle(style))
        return table

    def render(self, document: QuoteExportDocument) -> bytes:
        buffer = BytesIO()
        styles = getSampleStyleSheet()
        pdf = SimpleDocTemplate(buffer, pagesize=A4, title=f"Cotización {document.code}")
        story = [
            Paragraph("COTIZACIÓN", styles["Title"]),
            Paragraph(escape(document.company_name), styles["Normal"]),
            Paragraph(f"RUC: {document.tax_id}", styles["Normal"]),
            Paragraph(f"Dirección: {escape(document.address)}", styles["Normal"]),
            Spacer(1, 4 * mm),
            Paragraph(f"Código: {escape(document.code)}", styles["Normal"]),
            Paragraph(f"Fecha: {escape(document.date)}", styles["Normal"]),
            Paragraph(f"Cliente: {escape(document.client_name)}", styles["Normal"]),
            Spacer(1, 6 * mm),
            self._table(document),
        ]
        if document.approximate_note:
            story += [Spacer(1, 6 * mm), Paragraph("Nota Importante:", styles["Heading4"]),
                      Paragraph(document.approximate_note, styles["Normal"])]
        if document.notes:
            story += [Spacer(1, 4 * mm), Paragraph("Notas:", styles["Heading4"]),
                      Paragraph(escape(document.notes), styles["Normal"])]
        pdf.build(story)
        return buffer.getvalue()

    def write(self, document: QuoteExportDocument, output_dir: str | Path | None = None) -> Path:
        """Render and save as ``cotizacion-<code>.pdf``; returns the file path."""
        target_dir = Path(output_dir or self.config.output_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / document.filename
        path.write_bytes(self.render(document))
        logger.info(f"Quote {document.code} exported to {path}")
        return path
