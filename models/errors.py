"""
Error taxonomy shared by the ledger, the quote workflow and the account services.

Every error carries structured attributes and a ``to_dict`` so that callers
(the API surface, scripts) can present them without parsing messages.
"""

from typing import Any


class QuoteManagerError(Exception):
    """Base class for all business errors raised by the core."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFound(QuoteManagerError):
    """A referenced product, quote or user does not exist."""

    code = "not_found"

    def __init__(self, kind: str, resource_id: str):
        super().__init__(f"{kind} not found: {resource_id}")
        self.kind = kind
        self.resource_id = resource_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"kind": self.kind, "resource_id": self.resource_id})
        return data


class InvalidArgument(QuoteManagerError):
    """Malformed input, e.g. a credential below the minimum length."""

    code = "invalid_argument"


class PermissionDenied(QuoteManagerError):
    """Role policy violation. Never names the resource that was requested."""

    code = "permission_denied"

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class InvalidTransition(QuoteManagerError):
    """A quote status change that is not in the allowed transition table."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change quote status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"current": self.current, "requested": self.requested})
        return data


class InsufficientStock(QuoteManagerError):
    """A single reservation asked for more than is available."""

    code = "insufficient_stock"

    def __init__(self, product_id: str, available: int, requested: int, name: str | None = None):
        label = name or product_id
        super().__init__(
            f"Insufficient stock for {label}: available {available}, required {requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.name = name

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "product_id": self.product_id,
                "available": self.available,
                "requested": self.requested,
            }
        )
        return data


class InsufficientStockBatch(QuoteManagerError):
    """Every shortfall found during the validation phase of an approval."""

    code = "insufficient_stock_batch"

    def __init__(self, shortfalls: list[dict[str, Any]]):
        lines = [
            f"{s['item']}: available {s['available']}, required {s['required']}"
            for s in shortfalls
        ]
        super().__init__("Insufficient stock for the following products:\n" + "\n".join(lines))
        self.shortfalls = shortfalls

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["shortfalls"] = list(self.shortfalls)
        return data


class ConcurrentModification(QuoteManagerError):
    """A conditional write kept losing to concurrent writers."""

    code = "concurrent_modification"

    def __init__(self, collection: str, doc_id: str, attempts: int):
        super().__init__(
            f"Concurrent updates on {collection}/{doc_id}; gave up after {attempts} attempts"
        )
        self.collection = collection
        self.doc_id = doc_id
        self.attempts = attempts


class PartialCommitFailure(QuoteManagerError):
    """
    The commit phase of an approval failed after validation passed.

    ``failed_item`` is None when the reservations all succeeded but persisting
    the approved quote did not. ``rolled_back`` tells whether every committed
    reservation was released again.
    """

    code = "partial_commit_failure"

    def __init__(
        self,
        committed_items: list[dict[str, Any]],
        failed_item: dict[str, Any] | None,
        error: Exception,
        rolled_back: bool,
    ):
        if failed_item is not None:
            where = f"reserving {failed_item.get('name') or failed_item.get('product_id')}"
        else:
            where = "saving the approved quote"
        state = "rolled back" if rolled_back else "NOT rolled back, reconciliation required"
        super().__init__(
            f"Approval failed while {where}: {error} "
            f"({len(committed_items)} committed reservation(s) {state})"
        )
        self.committed_items = committed_items
        self.failed_item = failed_item
        self.error = error
        self.rolled_back = rolled_back

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "committed_items": list(self.committed_items),
                "failed_item": self.failed_item,
                "error": str(self.error),
                "rolled_back": self.rolled_back,
            }
        )
        return data


class ReconciliationRequired(QuoteManagerError):
    """A quote still holds stock that a failed approval could not release."""

    code = "reconciliation_required"

    def __init__(self, quote_id: str, marker: dict[str, Any]):
        super().__init__(
            f"Quote {quote_id} needs stock reconciliation before it can be approved again"
        )
        self.quote_id = quote_id
        self.marker = marker

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reconciliation"] = self.marker
        return data
