"""
Inventory ledger: per-product available quantity and its mutations.

Every mutation is a single compare-and-set on the stored quantity. When the
write loses to a concurrent writer, the ledger re-reads, re-validates and tries
again a bounded number of times.
"""

import logging

from config.config import LedgerConfig
from models.enums import InventoryEventType
from models.errors import ConcurrentModification, InsufficientStock, InvalidArgument
from models.inventory import Availability, LedgerResult
from services.repositories import ProductRepository

logger_ledger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument(f"Quantity must be an integer, got {quantity!r}")
    if quantity < 0:
        raise InvalidArgument(f"Quantity cannot be negative: {quantity}")
    return quantity


class InventoryLedger:
    """Reserve/release stock against the ``products`` collection."""

    def __init__(
        self,
        products: ProductRepository,
        config: LedgerConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.products = products
        self.config = config or LedgerConfig()
        self.logger = logger or logger_ledger

    async def check_availability(self, product_id: str, requested_qty: int) -> Availability:
        """Pure read: is there enough stock for ``requested_qty``?"""
        requested_qty = _check_quantity(requested_qty)
        product = await self.products.get(product_id)
        return Availability(
            product_id=product_id,
            requested=requested_qty,
            available=product.quantity_available,
            sufficient=product.quantity_available >= requested_qty,
        )

    async def reserve(self, product_id: str, quantity: int) -> LedgerResult:
        """Take ``quantity`` units out of stock. Never lets the stock go negative."""
        quantity = _check_quantity(quantity)

        def apply(current: int) -> int:
            return current - quantity

        return await self._mutate(product_id, quantity, InventoryEventType.RESERVED, apply)

    async def release(self, product_id: str, quantity: int) -> LedgerResult:
        """Put ``quantity`` units back, compensating an earlier reservation."""
        quantity = _check_quantity(quantity)

        def apply(current: int) -> int:
            return current + quantity

        return await self._mutate(product_id, quantity, InventoryEventType.RELEASED, apply)

    async def set_quantity(self, product_id: str, quantity: int) -> LedgerResult:
        """Administrator stock count. Negative input is clamped to zero."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidArgument(f"Quantity must be an integer, got {quantity!r}")
        target = max(0, quantity)

        def apply(current: int) -> int:
            return target

        return await self._mutate(product_id, target, InventoryEventType.ADJUSTED, apply)

    async def _mutate(self, product_id, quantity, event_type, apply) -> LedgerResult:
        attempts = self.config.max_cas_attempts
        for attempt in range(1, attempts + 1):
            product, expected = await self.products.read_quantity(product_id)
            current = product.quantity_available
            new_quantity = apply(current)
            if new_quantity < 0:
                self.logger.warning(
                    f"Insufficient stock for {product_id}: available {current}, requested {quantity}"
                )
                raise InsufficientStock(product_id, current, quantity, name=product.name)

            if await self.products.compare_and_set_quantity(product_id, expected, new_quantity):
                self.logger.info(
                    f"{event_type.value} {quantity} of {product_id}: {current}->{new_quantity}"
                    + (f" (attempt {attempt})" if attempt > 1 else "")
                )
                return LedgerResult(
                    product_id=product_id,
                    event_type=event_type,
                    quantity=quantity,
                    previous_quantity=current,
                    new_quantity=new_quantity,
                    attempts=attempt,
                )
            self.logger.debug(f"Stock of {product_id} changed concurrently, retrying ({attempt}/{attempts})")

        self.logger.error(f"Giving up on {event_type.value} for {product_id} after {attempts} attempts")
        raise ConcurrentModification(self.products.collection, product_id, attempts)
