"""
Data models for the printable quote document.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class ExportRow(BaseModel):
    """One numbered line of the printed quote."""

    number: int
    name: str
    description: str = ""
    quantity: int
    unit: str = ""
    unit_price: Decimal
    subtotal: Decimal
    highlight_quantity: bool = False  # approximate quantities are highlighted


class ExportSection(BaseModel):
    title: str
    rows: list[ExportRow] = Field(default_factory=list)
    highlighted: bool = False


class QuoteExportDocument(BaseModel):
    """Everything the renderer needs, already grouped and formatted."""

    code: str
    date: str
    client_name: str
    company_name: str
    tax_id: str
    address: str
    currency_symbol: str
    sections: list[ExportSection] = Field(default_factory=list)
    total: Decimal
    approximate_note: str | None = None
    notes: str | None = None

    @property
    def filename(self) -> str:
        return f"cotizacion-{self.code}.pdf"

    def money(self, value: Decimal) -> str:
        return f"{self.currency_symbol} {value:.2f}"
