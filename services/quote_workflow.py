"""
Quote status workflow.

Moving a quote into ``approved`` deducts the stock of every line item linked to
a product. The deduction runs in two phases:

1. validation: every linked product is checked and *all* shortfalls are
   reported together, without touching stock;
2. commit: reservations are issued one by one in line order. The first failure
   stops the phase and every reservation already made is released again.

The approved status and the ``stockDeducted`` flag are then written together in
one conditional write, so approving twice never deducts twice.
"""

import logging
from typing import Any

from models.enums import QuoteStatus, ReconciliationState
from models.errors import (
    ConcurrentModification,
    InsufficientStockBatch,
    InvalidTransition,
    PartialCommitFailure,
    ReconciliationRequired,
)
from models.inventory import LedgerResult
from models.quote import Quote, QuoteLineItem
from services.ledger import InventoryLedger
from services.repositories import QuoteRepository

logger_workflow = logging.getLogger(__name__)


class QuoteStatusWorkflow:
    """Applies caller-driven status changes to stored quotes."""

    def __init__(
        self,
        quotes: QuoteRepository,
        ledger: InventoryLedger,
        logger: logging.Logger | None = None,
        max_attempts: int = 3,
    ):
        self.quotes = quotes
        self.ledger = ledger
        self.max_attempts = max_attempts
        self.logger = logger or logger_workflow

    async def change_status(self, quote_id: str, new_status: QuoteStatus | str) -> Quote:
        """
        Move a stored quote to ``new_status``.

        The status write is conditional on the status and stock flag that were
        read, so a concurrent change is never overwritten: the quote is read
        again and the transition re-checked against what is stored now.
        """
        for attempt in range(1, self.max_attempts + 1):
            quote = await self.quotes.get(quote_id)
            try:
                target = QuoteStatus.parse(new_status)
            except ValueError:
                raise InvalidTransition(quote.status.value, str(new_status)) from None
            if not quote.can_transition_to(target):
                self.logger.warning(f"Rejected transition {quote.status.value}->{target.value} for quote {quote_id}")
                raise InvalidTransition(quote.status.value, target.value)

            if target == quote.status:
                self.logger.info(f"Quote {quote_id} already {target.value}; nothing to do")
                return quote
            if target == QuoteStatus.APPROVED and not quote.stock_deducted:
                if quote.reconciliation and quote.reconciliation.get("state") == ReconciliationState.INCONSISTENT.value:
                    self.logger.error(f"Quote {quote_id} has unreconciled stock from a failed approval")
                    raise ReconciliationRequired(quote_id, quote.reconciliation)
                return await self._approve(quote)

            if await self.quotes.save_status(quote, target):
                if quote.stock_deducted and target == QuoteStatus.APPROVED:
                    # Stock already taken by an earlier approval of this quote
                    self.logger.info(f"Quote {quote_id} already deducted stock; skipping commit phase")
                quote.set_status(target)
                self.logger.info(f"Quote {quote_id} status updated to {target.value}")
                return quote
            self.logger.debug(f"Status write for quote {quote_id} lost on attempt {attempt}; re-reading")

        raise ConcurrentModification(self.quotes.collection, quote_id, self.max_attempts)

    async def approve(self, quote_id: str) -> Quote:
        return await self.change_status(quote_id, QuoteStatus.APPROVED)

    async def _approve(self, quote: Quote) -> Quote:
        linked = [item for item in quote.line_items if item.product_id and item.quantity > 0]

        await self._validate_stock(quote, linked)

        committed: list[tuple[QuoteLineItem, LedgerResult]] = []
        if linked:
            await self.quotes.mark_reconciliation(
                quote.id, ReconciliationState.PENDING, {"items": [i.summary() for i in linked]}
            )
        for item in linked:
            try:
                result = await self.ledger.reserve(item.product_id, item.quantity)
            except Exception as exc:
                self.logger.error(f"Reservation of {item.label} failed for quote {quote.id}: {exc}")
                rolled_back = await self._rollback(quote, committed)
                raise PartialCommitFailure(
                    committed_items=[i.summary() for i, _ in committed],
                    failed_item=item.summary(),
                    error=exc,
                    rolled_back=rolled_back,
                ) from exc
            committed.append((item, result))

        try:
            won = await self.quotes.finalize_approval(quote)
        except Exception as exc:
            self.logger.error(f"Saving approved quote {quote.id} failed: {exc}")
            rolled_back = await self._rollback(quote, committed)
            raise PartialCommitFailure(
                committed_items=[i.summary() for i, _ in committed],
                failed_item=None,
                error=exc,
                rolled_back=rolled_back,
            ) from exc

        if not won:
            self.logger.warning(f"Quote {quote.id} changed during approval; releasing this attempt's stock")
            await self._rollback(quote, committed)
            stored = await self.quotes.get(quote.id)
            if stored.status == QuoteStatus.APPROVED and stored.stock_deducted:
                return stored
            if not stored.can_transition_to(QuoteStatus.APPROVED):
                raise InvalidTransition(stored.status.value, QuoteStatus.APPROVED.value)
            raise ConcurrentModification(self.quotes.collection, quote.id, 1)

        quote.set_status(QuoteStatus.APPROVED)
        quote.stock_deducted = True
        quote.reconciliation = None
        self.logger.info(f"Inventory deducted and quote {quote.id} approved ({len(committed)} reservation(s))")
        return quote

    async def _validate_stock(self, quote: Quote, linked: list[QuoteLineItem]) -> None:
        """Collect every shortfall before any stock is touched."""
        required: dict[str, dict[str, Any]] = {}
        for item in linked:
            entry = required.setdefault(item.product_id, {"item": item.label, "required": 0})
            entry["required"] += item.quantity

        shortfalls = []
        for product_id, entry in required.items():
            availability = await self.ledger.check_availability(product_id, entry["required"])
            if not availability.sufficient:
                shortfalls.append(
                    {
                        "item": entry["item"],
                        "product_id": product_id,
                        "available": availability.available,
                        "required": entry["required"],
                    }
                )
        if shortfalls:
            self.logger.warning(f"Quote {quote.id} cannot be approved: {len(shortfalls)} product(s) short")
            raise InsufficientStockBatch(shortfalls)

    async def _rollback(self, quote: Quote, committed: list[tuple[QuoteLineItem, LedgerResult]]) -> bool:
        """Release committed reservations in reverse order. Returns True if all were released."""
        unreleased = []
        for item, result in reversed(committed):
            try:
                await self.ledger.release(item.product_id, result.quantity)
            except Exception as exc:
                self.logger.error(f"Could not release {result.quantity} of {item.product_id} for quote {quote.id}: {exc}")
                unreleased.append({**item.summary(), "error": str(exc)})

        try:
            if unreleased:
                await self.quotes.mark_reconciliation(
                    quote.id, ReconciliationState.INCONSISTENT, {"unreleased": unreleased}
                )
            else:
                await self.quotes.mark_reconciliation(quote.id, None)
        except Exception as exc:
            # The pending marker left in place still flags the quote for review
            self.logger.error(f"Could not update reconciliation marker of quote {quote.id}: {exc}")
        return not unreleased
