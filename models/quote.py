"""
Quote aggregate: line items, the derived total and the status lifecycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .enums import ItemType, QuoteStatus, ReconciliationState
from .errors import InvalidArgument, InvalidTransition

CENT = Decimal("0.01")

# Same-state requests are legal no-ops and are handled before this table.
ALLOWED_TRANSITIONS: dict[QuoteStatus, set[QuoteStatus]] = {
    QuoteStatus.DRAFT: {QuoteStatus.IN_PROGRESS, QuoteStatus.APPROVED, QuoteStatus.REJECTED},
    QuoteStatus.IN_PROGRESS: {QuoteStatus.DRAFT, QuoteStatus.APPROVED, QuoteStatus.REJECTED},
    QuoteStatus.APPROVED: {QuoteStatus.COMPLETED},
    QuoteStatus.REJECTED: {QuoteStatus.IN_PROGRESS},
    QuoteStatus.COMPLETED: set(),
}


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def money(value: Decimal) -> Decimal:
    """Round to the two decimals used on screen and in exports."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class QuoteLineItem:
    """One priced, quantified entry of a quote, optionally linked to a product"""

    quantity: int
    unit_price: Decimal
    product_id: str | None = None
    name: str = ""
    description: str = ""
    unit: str = ""
    type: str = ItemType.EQUIPMENT.value
    category: str = ""

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price)
        if isinstance(self.quantity, bool) or int(self.quantity) != self.quantity:
            raise InvalidArgument(f"Quantity must be an integer, got {self.quantity!r}")
        self.quantity = int(self.quantity)
        if self.quantity < 0:
            raise InvalidArgument(f"Quantity cannot be negative: {self.quantity}")
        if self.unit_price < 0:
            raise InvalidArgument(f"Unit price cannot be negative: {self.unit_price}")

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def label(self) -> str:
        return self.name or self.product_id or "item"

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "QuoteLineItem":
        return cls(
            quantity=data.get("qty", data.get("quantityRequested", 0)) or 0,
            unit_price=to_decimal(data.get("price", data.get("unitPrice", 0))),
            product_id=data.get("productId") or None,
            name=data.get("name") or "",
            description=data.get("description") or "",
            unit=data.get("unit") or "",
            # stored lines without a type stay untyped and are left out of exports
            type=data.get("type") or "",
            category=data.get("category") or "",
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "description": self.description,
            "qty": self.quantity,
            "unit": self.unit,
            "price": float(self.unit_price),
            "type": self.type,
            "category": self.category,
        }

    def summary(self) -> dict[str, Any]:
        return {"product_id": self.product_id, "name": self.label, "quantity": self.quantity}


@dataclass
class Quote:
    """A quotation sent to a client."""

    id: str
    line_items: list[QuoteLineItem] = field(default_factory=list)
    status: QuoteStatus = QuoteStatus.IN_PROGRESS
    code: str = ""
    date: str = ""
    client_name: str = ""
    client_id: str | None = None
    notes: str = ""
    stock_deducted: bool = False
    reconciliation: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    history: list[dict[str, Any]] = field(default_factory=list)

    def compute_total(self) -> Decimal:
        """Sum of quantity * unit price over every line item."""
        return sum((item.subtotal for item in self.line_items), Decimal("0"))

    @property
    def total(self) -> Decimal:
        return self.compute_total()

    @property
    def needs_reconciliation(self) -> bool:
        return bool(self.reconciliation) and self.reconciliation.get("state") in {
            ReconciliationState.PENDING.value,
            ReconciliationState.INCONSISTENT.value,
        }

    def can_transition_to(self, new_status: QuoteStatus) -> bool:
        return new_status == self.status or new_status in ALLOWED_TRANSITIONS[self.status]

    def set_status(self, new_status: QuoteStatus | str) -> "Quote":
        """Move to ``new_status`` if the transition table allows it."""
        try:
            target = QuoteStatus.parse(new_status)
        except ValueError:
            raise InvalidTransition(self.status.value, str(new_status)) from None
        if not self.can_transition_to(target):
            raise InvalidTransition(self.status.value, target.value)
        if target != self.status:
            old_status = self.status
            self.status = target
            self.history.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "action": f"status_change_{old_status.value}_to_{target.value}",
                }
            )
        return self

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Quote":
        return cls(
            id=doc_id,
            line_items=[QuoteLineItem.from_document(i) for i in data.get("items") or []],
            status=QuoteStatus.parse(data.get("status")),
            code=data.get("code") or "",
            date=data.get("date") or "",
            client_name=data.get("clientName") or "",
            client_id=data.get("clientId"),
            notes=data.get("notes") or "",
            stock_deducted=bool(data.get("stockDeducted", False)),
            reconciliation=data.get("reconciliation"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "date": self.date,
            "clientName": self.client_name,
            "clientId": self.client_id,
            "notes": self.notes,
            "items": [item.to_document() for item in self.line_items],
            "status": self.status.value,
            "total": float(money(self.compute_total())),
            "stockDeducted": self.stock_deducted,
            "reconciliation": self.reconciliation,
        }
