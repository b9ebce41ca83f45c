"""
Inventory-related data models.
Includes the Product document model and ledger result types.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import InventoryEventType, ItemType


def _number(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def resolve_sale_price(data: dict[str, Any]) -> float:
    """
    Canonical sale price of a stored product.

    ``salePrice`` wins; ``basePrice`` and ``price`` are read-compatibility
    aliases kept by older records.
    """
    for key in ("salePrice", "basePrice", "price"):
        if data.get(key) is not None:
            return _number(data[key])
    return 0.0


class Product(BaseModel):
    """Inventory-bearing catalog entry, as stored in the ``products`` collection."""

    id: str
    name: str = "Sin nombre"
    sku: str = ""
    quantity_available: int = Field(default=0, ge=0)
    active: bool = True
    category: str = ""
    description: str = ""
    type: str = ItemType.EQUIPMENT.value
    unit: str = "unidad"
    image_url: str | None = None
    price_usd: float = 0.0
    exchange_rate: float = 0.0
    purchase_price: float = 0.0
    profit_percentage: float = 0.0
    profit: float = 0.0
    sale_price: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def price(self) -> float:
        return self.sale_price

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Product":
        qty = data.get("qty", data.get("quantityAvailable", 0))
        return cls(
            id=doc_id,
            name=data.get("name") or "Sin nombre",
            sku=data.get("sku") or "",
            quantity_available=max(0, int(qty or 0)),
            active=bool(data["active"]) if data.get("active") is not None else True,
            category=data.get("category") or "",
            description=data.get("description") or "",
            type=data.get("type") or ItemType.EQUIPMENT.value,
            unit=data.get("unit") or "unidad",
            image_url=data.get("imageUrl") or None,
            price_usd=_number(data.get("priceUsd")),
            exchange_rate=_number(data.get("exchangeRate")),
            purchase_price=_number(data.get("purchasePrice")),
            profit_percentage=_number(data.get("profitPercentage")),
            profit=_number(data.get("profit")),
            sale_price=resolve_sale_price(data),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sku": self.sku,
            "priceUsd": self.price_usd,
            "exchangeRate": self.exchange_rate,
            "purchasePrice": self.purchase_price,
            "profitPercentage": self.profit_percentage,
            "profit": self.profit,
            "salePrice": self.sale_price,
            "basePrice": self.sale_price,  # mirrored for older readers
            "qty": self.quantity_available,
            "imageUrl": self.image_url,
            "active": self.active,
            "category": self.category,
            "description": self.description,
            "type": self.type,
            "unit": self.unit,
        }


class Availability(BaseModel):
    """Result of a stock sufficiency check."""

    product_id: str
    requested: int
    available: int
    sufficient: bool


class LedgerResult(BaseModel):
    """Outcome of a ledger mutation."""

    product_id: str
    event_type: InventoryEventType
    quantity: int
    previous_quantity: int
    new_quantity: int
    attempts: int = 1
    timestamp: datetime = Field(default_factory=datetime.now)
