import asyncio
import logging
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from models.enums import QuoteStatus, ReconciliationState
from models.errors import (
    ConcurrentModification,
    InsufficientStock,
    InsufficientStockBatch,
    InvalidTransition,
    NotFound,
    PartialCommitFailure,
    ReconciliationRequired,
)
from services.app_context import AppContext
from tests.mocks import FlakyStore, line, seed_product, seed_quote


async def stock(context, product_id):
    return (await context.products.get(product_id)).quantity_available


# --- Validation phase --- #


@pytest.mark.asyncio
async def test_shortfall_reports_product_and_leaves_others_untouched(context, store):
    await seed_product(store, "P1", 3)
    await seed_product(store, "P2", 5)
    await seed_quote(store, "Q1", [line("P1", 5, 10), line("P2", 2, 20)])

    with pytest.raises(InsufficientStockBatch) as exc_info:
        await context.workflow.approve("Q1")

    assert exc_info.value.shortfalls == [
        {"item": "P1", "product_id": "P1", "available": 3, "required": 5}
    ]
    assert "available 3, required 5" in str(exc_info.value)
    assert await stock(context, "P1") == 3
    assert await stock(context, "P2") == 5
    quote = await context.quotes.get("Q1")
    assert quote.status == QuoteStatus.IN_PROGRESS
    assert quote.stock_deducted is False
    assert quote.reconciliation is None


@pytest.mark.asyncio
async def test_every_shortfall_is_reported_at_once(context, store):
    await seed_product(store, "P1", 1)
    await seed_product(store, "P2", 0)
    await seed_product(store, "P3", 50)
    await seed_quote(
        store, "Q1", [line("P1", 2, 10, name="Camera"), line("P3", 1, 5), line("P2", 4, 1, name="DVR")]
    )

    with pytest.raises(InsufficientStockBatch) as exc_info:
        await context.workflow.approve("Q1")

    items = [s["item"] for s in exc_info.value.shortfalls]
    assert items == ["Camera", "DVR"]
    assert await stock(context, "P3") == 50


@pytest.mark.asyncio
async def test_quantities_for_same_product_are_summed(context, store):
    await seed_product(store, "P1", 5)
    await seed_quote(store, "Q1", [line("P1", 3, 10), line("P1", 3, 10)])

    with pytest.raises(InsufficientStockBatch) as exc_info:
        await context.workflow.approve("Q1")

    assert exc_info.value.shortfalls[0]["required"] == 6
    assert await stock(context, "P1") == 5


@pytest.mark.asyncio
async def test_missing_product_is_not_found_without_mutation(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 2, 10), line("GONE", 1, 10)])

    with pytest.raises(NotFound):
        await context.workflow.approve("Q1")

    assert await stock(context, "P1") == 10


# --- Successful approval --- #


@pytest.mark.asyncio
async def test_approval_deducts_stock_and_sets_status(context, store):
    await seed_product(store, "P1", 10)
    await seed_product(store, "P2", 5)
    await seed_quote(store, "Q1", [line("P1", 5, 10), line("P2", 2, 20)])

    quote = await context.workflow.approve("Q1")

    assert quote.status == QuoteStatus.APPROVED
    assert quote.compute_total() == Decimal("90")
    assert await stock(context, "P1") == 5
    assert await stock(context, "P2") == 3
    stored = await context.quotes.get("Q1")
    assert stored.status == QuoteStatus.APPROVED
    assert stored.stock_deducted is True
    assert stored.reconciliation is None


@pytest.mark.asyncio
async def test_unlinked_and_zero_quantity_items_skip_the_ledger(context, store):
    await seed_product(store, "P1", 4)
    await seed_quote(store, "Q1", [line(None, 3, 50, name="Instalación"), line("P1", 0, 10), line("P1", 4, 10)])
    context.ledger.check_availability = AsyncMock(wraps=context.ledger.check_availability)
    context.ledger.reserve = AsyncMock(wraps=context.ledger.reserve)

    await context.workflow.approve("Q1")

    assert [c.args for c in context.ledger.reserve.await_args_list] == [("P1", 4)]
    assert [c.args for c in context.ledger.check_availability.await_args_list] == [("P1", 4)]
    assert await stock(context, "P1") == 0


@pytest.mark.asyncio
async def test_quote_without_linked_items_is_approved(context, store):
    await seed_quote(store, "Q1", [line(None, 1, 100, name="Mantenimiento")])

    quote = await context.workflow.approve("Q1")

    assert quote.status == QuoteStatus.APPROVED
    assert (await context.quotes.get("Q1")).stock_deducted is True


@pytest.mark.asyncio
async def test_reservations_follow_line_order(context, store):
    for pid in ("P3", "P1", "P2"):
        await seed_product(store, pid, 10)
    await seed_quote(store, "Q1", [line("P3", 1, 1), line("P1", 1, 1), line("P2", 1, 1)])
    context.ledger.reserve = AsyncMock(wraps=context.ledger.reserve)

    await context.workflow.approve("Q1")

    assert [c.args[0] for c in context.ledger.reserve.await_args_list] == ["P3", "P1", "P2"]


# --- Idempotence --- #


@pytest.mark.asyncio
async def test_approving_twice_deducts_once(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])

    await context.workflow.approve("Q1")
    await context.workflow.approve("Q1")

    assert await stock(context, "P1") == 6


@pytest.mark.asyncio
async def test_legacy_approved_quote_is_not_deducted_again(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)], status="aprobado", legacy=True)

    quote = await context.workflow.approve("Q1")

    assert quote.status == QuoteStatus.APPROVED
    assert await stock(context, "P1") == 10


@pytest.mark.asyncio
async def test_legacy_quote_without_stock_flag_can_be_approved(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)], status="en_proceso", legacy=True)

    quote = await context.workflow.approve("Q1")

    assert quote.status == QuoteStatus.APPROVED
    assert await stock(context, "P1") == 6
    doc = await store.get("quotes", "Q1")
    assert doc["status"] == "approved"
    assert doc["stockDeducted"] is True


@pytest.mark.asyncio
async def test_concurrent_approvals_of_same_quote_deduct_once(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])

    results = await asyncio.gather(
        context.workflow.approve("Q1"), context.workflow.approve("Q1"), return_exceptions=True
    )

    assert all(not isinstance(r, Exception) for r in results)
    assert await stock(context, "P1") == 6
    stored = await context.quotes.get("Q1")
    assert stored.status == QuoteStatus.APPROVED
    assert stored.reconciliation is None


# --- Concurrency between quotes --- #


@pytest.mark.asyncio
async def test_two_quotes_competing_for_last_unit(context, store):
    await seed_product(store, "P1", 1)
    await seed_quote(store, "Q1", [line("P1", 1, 10)])
    await seed_quote(store, "Q2", [line("P1", 1, 10)])

    results = await asyncio.gather(
        context.workflow.approve("Q1"), context.workflow.approve("Q2"), return_exceptions=True
    )

    failures = [r for r in results if isinstance(r, Exception)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (InsufficientStockBatch, PartialCommitFailure))
    assert await stock(context, "P1") == 0
    statuses = sorted([(await context.quotes.get(q)).status.value for q in ("Q1", "Q2")])
    assert statuses == ["approved", "in_progress"]


@pytest.mark.asyncio
async def test_race_after_validation_surfaces_partial_commit_and_rolls_back(context, store):
    await seed_product(store, "P1", 10)
    await seed_product(store, "P2", 2)
    await seed_quote(store, "Q1", [line("P1", 3, 10), line("P2", 2, 20)])
    original_reserve = context.ledger.reserve

    async def reserve_after_competitor(product_id, quantity):
        if product_id == "P2":
            # another session takes P2 between validation and commit
            await context.ledger.set_quantity("P2", 1)
        return await original_reserve(product_id, quantity)

    context.ledger.reserve = reserve_after_competitor

    with pytest.raises(PartialCommitFailure) as exc_info:
        await context.workflow.approve("Q1")

    failure = exc_info.value
    assert failure.committed_items == [{"product_id": "P1", "name": "P1", "quantity": 3}]
    assert failure.failed_item["product_id"] == "P2"
    assert isinstance(failure.error, InsufficientStock)
    assert failure.rolled_back is True
    assert await stock(context, "P1") == 10
    assert await stock(context, "P2") == 1
    quote = await context.quotes.get("Q1")
    assert quote.status == QuoteStatus.IN_PROGRESS
    assert quote.reconciliation is None


# --- Failures in the commit phase --- #


@pytest.mark.asyncio
async def test_backend_failure_mid_commit_releases_earlier_reservations():
    store = FlakyStore(fail_on={("products", "P2")})
    context = AppContext.build(store=store)
    await seed_product(store, "P1", 10)
    await seed_product(store, "P2", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10), line("P2", 1, 10)])

    with pytest.raises(PartialCommitFailure) as exc_info:
        await context.workflow.approve("Q1")

    assert isinstance(exc_info.value.error, ConnectionError)
    assert exc_info.value.rolled_back is True
    assert await stock(context, "P1") == 10


@pytest.mark.asyncio
async def test_finalization_failure_releases_reservations():
    store = FlakyStore(fail_finalize=True)
    context = AppContext.build(store=store)
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])

    with pytest.raises(PartialCommitFailure) as exc_info:
        await context.workflow.approve("Q1")

    assert exc_info.value.failed_item is None
    assert exc_info.value.rolled_back is True
    assert await stock(context, "P1") == 10
    quote = await context.quotes.get("Q1")
    assert quote.status == QuoteStatus.IN_PROGRESS
    assert quote.stock_deducted is False


@pytest.mark.asyncio
async def test_failed_release_marks_quote_inconsistent(context, store, caplog):
    await seed_product(store, "P1", 10)
    await seed_product(store, "P2", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10), line("P2", 1, 10)])
    original_reserve = context.ledger.reserve

    async def reserve(product_id, quantity):
        if product_id == "P2":
            raise ConnectionError("timeout")
        return await original_reserve(product_id, quantity)

    context.ledger.reserve = reserve
    context.ledger.release = AsyncMock(side_effect=ConnectionError("still down"))

    with caplog.at_level(logging.ERROR):
        with pytest.raises(PartialCommitFailure) as exc_info:
            await context.workflow.approve("Q1")

    assert exc_info.value.rolled_back is False
    assert "Could not release 4 of P1" in caplog.text
    assert await stock(context, "P1") == 6
    quote = await context.quotes.get("Q1")
    assert quote.reconciliation["state"] == ReconciliationState.INCONSISTENT.value
    assert quote.reconciliation["unreleased"][0]["product_id"] == "P1"
    assert [q.id for q in await context.quotes.list_needing_reconciliation()] == ["Q1"]

    with pytest.raises(ReconciliationRequired):
        await context.workflow.approve("Q1")


@pytest.mark.asyncio
async def test_pending_marker_set_while_committing(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 1, 10)])
    seen = []
    original_reserve = context.ledger.reserve

    async def reserve(product_id, quantity):
        seen.append((await context.quotes.get("Q1")).reconciliation["state"])
        return await original_reserve(product_id, quantity)

    context.ledger.reserve = reserve

    await context.workflow.approve("Q1")

    assert seen == ["pending"]
    assert (await context.quotes.get("Q1")).reconciliation is None


# --- Other transitions --- #


@pytest.mark.asyncio
async def test_non_approval_transition_only_changes_status(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])

    quote = await context.workflow.change_status("Q1", "rejected")

    assert quote.status == QuoteStatus.REJECTED
    assert (await context.quotes.get("Q1")).status == QuoteStatus.REJECTED
    assert await stock(context, "P1") == 10


@pytest.mark.asyncio
async def test_rejected_quote_cannot_be_approved_directly(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)], status="rejected")

    with pytest.raises(InvalidTransition):
        await context.workflow.approve("Q1")
    assert await stock(context, "P1") == 10

    await context.workflow.change_status("Q1", QuoteStatus.IN_PROGRESS)
    quote = await context.workflow.approve("Q1")
    assert quote.status == QuoteStatus.APPROVED


@pytest.mark.asyncio
async def test_unknown_status_is_invalid_transition(context, store):
    await seed_quote(store, "Q1", [])

    with pytest.raises(InvalidTransition):
        await context.workflow.change_status("Q1", "archived")


@pytest.mark.asyncio
async def test_completing_an_approved_quote_keeps_stock(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])

    await context.workflow.approve("Q1")
    quote = await context.workflow.change_status("Q1", "completed")

    assert quote.status == QuoteStatus.COMPLETED
    assert await stock(context, "P1") == 6
    with pytest.raises(InvalidTransition):
        await context.workflow.approve("Q1")


@pytest.mark.asyncio
async def test_unknown_quote_is_not_found(context):
    with pytest.raises(NotFound):
        await context.workflow.approve("NOPE")


# --- Status changes racing each other --- #


@pytest.mark.asyncio
async def test_reject_losing_to_approval_does_not_overwrite_it(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])
    original_save_status = context.quotes.save_status
    interleaved = []

    async def save_status_after_approval(quote, status):
        if not interleaved:
            # an approval lands between the reject's read and its write
            interleaved.append(await context.workflow.approve("Q1"))
        return await original_save_status(quote, status)

    context.quotes.save_status = save_status_after_approval

    with pytest.raises(InvalidTransition):
        await context.workflow.change_status("Q1", "rejected")

    stored = await context.quotes.get("Q1")
    assert stored.status == QuoteStatus.APPROVED
    assert stored.stock_deducted is True
    assert await stock(context, "P1") == 6


@pytest.mark.asyncio
async def test_approval_losing_to_reject_releases_stock(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])
    original_finalize = context.quotes.finalize_approval

    async def finalize_after_reject(quote):
        # the quote is rejected while its stock is being reserved
        await context.workflow.change_status("Q1", "rejected")
        return await original_finalize(quote)

    context.quotes.finalize_approval = finalize_after_reject

    with pytest.raises(InvalidTransition):
        await context.workflow.approve("Q1")

    stored = await context.quotes.get("Q1")
    assert stored.status == QuoteStatus.REJECTED
    assert stored.stock_deducted is False
    assert stored.reconciliation is None
    assert await stock(context, "P1") == 10


@pytest.mark.asyncio
async def test_concurrent_reject_and_approve_stay_consistent(context, store):
    await seed_product(store, "P1", 10)
    await seed_quote(store, "Q1", [line("P1", 4, 10)])

    await asyncio.gather(
        context.workflow.change_status("Q1", "rejected"),
        context.workflow.approve("Q1"),
        return_exceptions=True,
    )

    stored = await context.quotes.get("Q1")
    if stored.status == QuoteStatus.APPROVED:
        assert stored.stock_deducted is True
        assert await stock(context, "P1") == 6
    else:
        assert stored.status == QuoteStatus.REJECTED
        assert stored.stock_deducted is False
        assert await stock(context, "P1") == 10


@pytest.mark.asyncio
async def test_status_write_gives_up_after_max_attempts(context, store):
    await seed_quote(store, "Q1", [])
    context.quotes.save_status = AsyncMock(return_value=False)

    with pytest.raises(ConcurrentModification) as exc_info:
        await context.workflow.change_status("Q1", "rejected")

    assert exc_info.value.attempts == 3
    assert context.quotes.save_status.await_count == 3
    assert (await context.quotes.get("Q1")).status == QuoteStatus.IN_PROGRESS
