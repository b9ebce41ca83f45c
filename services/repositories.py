"""
Repositories in front of the document store, one per collection.

Repositories translate between stored documents and the domain models and own
the field-level conventions (timestamps, legacy defaults). They are injected
into the services that need them.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from connectors.blob_store import InMemoryBlobStore
from connectors.document_store import InMemoryDocumentStore
from models.enums import QuoteStatus, ReconciliationState
from models.errors import InvalidArgument, NotFound
from models.inventory import Product
from models.quote import Quote
from models.users import UserProfile, parse_role

logger = logging.getLogger(__name__)


class DocumentRepository:
    """Generic CRUD over one collection of plain documents."""

    collection = ""
    kind = "document"
    order_by: str | None = None
    descending = False

    def __init__(self, store: InMemoryDocumentStore, collection: str | None = None):
        self.store = store
        if collection:
            self.collection = collection

    async def get(self, doc_id: str) -> dict[str, Any]:
        data = await self.store.get(self.collection, doc_id)
        if data is None:
            raise NotFound(self.kind, doc_id)
        return {"id": doc_id, **data}

    async def list(self) -> list[dict[str, Any]]:
        docs = await self.store.list(self.collection, order_by=self.order_by, descending=self.descending)
        return [{"id": doc_id, **data} for doc_id, data in docs]

    async def create(self, data: dict[str, Any]) -> str:
        doc_id = await self.store.create(self.collection, data)
        logger.info(f"[{self.collection}] created {doc_id}")
        return doc_id

    async def update(self, doc_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        updated = await self.store.update(self.collection, doc_id, updates)
        logger.info(f"[{self.collection}] updated {doc_id}")
        return {"id": doc_id, **updated}

    async def delete(self, doc_id: str) -> None:
        await self.store.delete(self.collection, doc_id)
        logger.info(f"[{self.collection}] deleted {doc_id}")


class ClientRepository(DocumentRepository):
    collection = "clients"
    kind = "client"


class CategoryRepository(DocumentRepository):
    collection = "categories"
    kind = "category"
    order_by = "name"


class UnitRepository(DocumentRepository):
    collection = "units"
    kind = "unit"
    order_by = "name"


class ServiceRepository(DocumentRepository):
    collection = "services"
    kind = "service"
    order_by = "createdAt"
    descending = True


class ContactMessageRepository(DocumentRepository):
    """Messages left through the public site's contact form."""

    collection = "contactMessages"
    kind = "contact message"
    order_by = "createdAt"
    descending = True

    async def create(self, data: dict[str, Any]) -> str:
        return await super().create({**data, "read": False, "replied": False})

    async def unread(self) -> list[dict[str, Any]]:
        return [m for m in await self.list() if not m.get("read")]

    async def mark_as_read(self, doc_id: str, read: bool = True) -> None:
        await self.update(doc_id, {"read": read})

    async def mark_as_replied(self, doc_id: str, replied: bool = True) -> None:
        await self.update(doc_id, {"replied": replied})


class PublicServiceRepository(DocumentRepository):
    """Services advertised on the public site, shown in ``order``."""

    collection = "public_services"
    kind = "public service"
    order_by = "order"

    async def create(self, data: dict[str, Any]) -> str:
        now = self.store.server_timestamp()
        return await super().create(
            {
                **data,
                "active": True if data.get("active") is None else data["active"],
                "order": 0 if data.get("order") is None else data["order"],
                "created_at": now,
                "updated_at": now,
            }
        )

    async def update(self, doc_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        return await super().update(doc_id, {**updates, "updated_at": self.store.server_timestamp()})

    async def toggle_active(self, doc_id: str, active: bool) -> None:
        await self.update(doc_id, {"active": active})

    async def active(self) -> list[dict[str, Any]]:
        return [s for s in await self.list() if s.get("active")]

    async def by_category(self, category: str) -> list[dict[str, Any]]:
        return [s for s in await self.active() if s.get("category") == category]


DEFAULT_WEBSITE_CONTENT: dict[str, dict[str, Any]] = {
    "home": {
        "hero_title": "Protege lo que más importa",
        "hero_subtitle": "Sistemas de videovigilancia CCTV profesionales con tecnología de última generación",
        "features": [],
    },
    "about": {"mission": "", "vision": "", "description": ""},
    "contact": {"address": "", "phone": "", "email": "", "hours": ""},
    "social": {"facebook": "", "instagram": "", "linkedin": ""},
}


class WebsiteContentRepository:
    """
    Editable texts of the public site, kept in a single document.

    Sections missing from the stored document fall back to
    ``DEFAULT_WEBSITE_CONTENT``; a stored section replaces its default whole.
    """

    collection = "website_content"
    doc_id = "main"

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    async def load(self) -> dict[str, Any]:
        content = copy.deepcopy(DEFAULT_WEBSITE_CONTENT)
        stored = await self.store.get(self.collection, self.doc_id)
        if stored:
            content.update(stored)
        return content

    async def update_content(self, new_content: dict[str, Any]) -> dict[str, Any]:
        """Merge ``new_content`` into the stored document and return the result."""
        await self.store.merge(
            self.collection,
            self.doc_id,
            {**new_content, "updated_at": self.store.server_timestamp()},
        )
        logger.info(f"[{self.collection}] updated sections {sorted(new_content)}")
        return await self.load()

    async def update_section(self, section: str, data: dict[str, Any]) -> dict[str, Any]:
        content = await self.load()
        if not isinstance(content.get(section), dict):
            raise InvalidArgument(f"Unknown website section: {section!r}")
        return await self.update_content({section: {**content[section], **data}})


class ProductRepository:
    """Products and their stored quantity. Quantity writes go through the ledger."""

    collection = "products"

    def __init__(self, store: InMemoryDocumentStore, blob_store: InMemoryBlobStore | None = None):
        self.store = store
        self.blob_store = blob_store

    async def get(self, product_id: str) -> Product:
        data = await self.store.get(self.collection, product_id)
        if data is None:
            raise NotFound("product", product_id)
        return Product.from_document(product_id, data)

    async def list(self) -> list[Product]:
        docs = await self.store.list(self.collection)
        return [Product.from_document(doc_id, data) for doc_id, data in docs]

    async def active_count(self) -> int:
        return sum(1 for p in await self.list() if p.active)

    async def upload_image(self, filename: str, data: bytes) -> str:
        if self.blob_store is None:
            raise InvalidArgument("No blob store configured for product images")
        ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        path = f"products/{int(datetime.now().timestamp() * 1000)}-{filename.rsplit('.', 1)[0]}.{ext}"
        return await self.blob_store.upload(path, data)

    async def create(self, product: Product, image: tuple[str, bytes] | None = None) -> str:
        if image is not None:
            product = product.model_copy(update={"image_url": await self.upload_image(*image)})
        doc_id = await self.store.create(self.collection, product.to_document())
        logger.info(f"[products] created {doc_id}")
        return doc_id

    async def update(
        self,
        product_id: str,
        changes: dict[str, Any],
        image: tuple[str, bytes] | None = None,
        remove_image: bool = False,
    ) -> Product:
        """
        Apply field changes (snake_case model fields) to a stored product.

        Only the fields that actually change are written. The stored quantity
        is never part of the write: stock moves through ``InventoryLedger``.
        """
        unknown = set(changes) - set(Product.model_fields)
        if unknown:
            raise InvalidArgument(f"Unknown product fields: {sorted(unknown)}")
        if "quantity_available" in changes:
            raise InvalidArgument("Stock is adjusted through the inventory ledger, not product updates")
        if "id" in changes:
            raise InvalidArgument("Product id cannot be changed")

        current = await self.get(product_id)
        updated = current.model_copy(update=changes)
        if image is not None:
            updated = updated.model_copy(update={"image_url": await self.upload_image(*image)})
        elif remove_image:
            updated = updated.model_copy(update={"image_url": None})

        before = current.to_document()
        payload = {
            key: value
            for key, value in updated.to_document().items()
            if key != "qty" and before.get(key) != value
        }
        if payload:
            await self.store.update(self.collection, product_id, payload)
            logger.info(f"[products] updated {product_id}: {sorted(payload)}")
        return await self.get(product_id)

    async def toggle_active(self, product_id: str) -> bool:
        current = await self.get(product_id)
        await self.store.update(self.collection, product_id, {"active": not current.active})
        return not current.active

    async def delete(self, product_id: str) -> None:
        await self.store.delete(self.collection, product_id)
        logger.info(f"[products] deleted {product_id}")

    async def read_quantity(self, product_id: str) -> tuple[Product, dict[str, Any]]:
        """
        Current product plus the stored quantity fields exactly as persisted,
        to be passed back as the expectation of ``compare_and_set_quantity``.
        """
        data = await self.store.get(self.collection, product_id)
        if data is None:
            raise NotFound("product", product_id)
        expected = {"qty": data.get("qty")}
        if "qty" not in data:
            # legacy records only carry quantityAvailable
            expected["quantityAvailable"] = data.get("quantityAvailable")
        return Product.from_document(product_id, data), expected

    async def compare_and_set_quantity(
        self, product_id: str, expected: dict[str, Any], new_quantity: int
    ) -> bool:
        if new_quantity < 0:
            raise InvalidArgument(f"Stored quantity cannot become negative: {new_quantity}")
        return await self.store.compare_and_set(
            self.collection, product_id, expected=expected, updates={"qty": new_quantity}
        )


class QuoteRepository:
    """Quotes. Status and the stock flag are only written together."""

    collection = "quotes"

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    async def get(self, quote_id: str) -> Quote:
        data = await self.store.get(self.collection, quote_id)
        if data is None:
            raise NotFound("quote", quote_id)
        return Quote.from_document(quote_id, data)

    async def list(self) -> list[Quote]:
        docs = await self.store.list(self.collection)
        return [Quote.from_document(doc_id, data) for doc_id, data in docs]

    async def create(self, quote: Quote) -> str:
        document = quote.to_document()
        # A new quote has never deducted stock, whatever the caller sent
        document["stockDeducted"] = False
        document["reconciliation"] = None
        doc_id = await self.store.create(self.collection, document)
        logger.info(f"[quotes] created {doc_id}")
        return doc_id

    async def update_content(self, quote: Quote) -> None:
        """Persist everything except the status fields, which the workflow owns."""
        document = quote.to_document()
        for key in ("status", "stockDeducted", "reconciliation"):
            document.pop(key)
        await self.store.update(self.collection, quote.id, document)
        logger.info(f"[quotes] updated {quote.id}")

    async def delete(self, quote_id: str) -> None:
        await self.store.delete(self.collection, quote_id)
        logger.info(f"[quotes] deleted {quote_id}")

    async def _expected_state(self, quote: Quote) -> dict[str, Any] | None:
        """
        Stored status fields exactly as persisted, provided they still match
        what ``quote`` was read with; None when the quote changed meanwhile.

        Legacy documents may lack ``stockDeducted``: the missing field is
        expected as-is and reads as not deducted.
        """
        data = await self.store.get(self.collection, quote.id)
        if data is None:
            raise NotFound("quote", quote.id)
        if QuoteStatus.parse(data.get("status")) != quote.status:
            return None
        if bool(data.get("stockDeducted", False)) != quote.stock_deducted:
            return None
        return {"status": data.get("status"), "stockDeducted": data.get("stockDeducted")}

    async def save_status(self, quote: Quote, status: QuoteStatus) -> bool:
        """
        Conditionally move ``quote`` from the status it was read with to
        ``status``. Returns False when the stored quote changed since the read.
        """
        expected = await self._expected_state(quote)
        if expected is None:
            return False
        return await self.store.compare_and_set(
            self.collection, quote.id, expected=expected, updates={"status": status.value}
        )

    async def mark_reconciliation(
        self, quote_id: str, state: ReconciliationState | None, details: dict[str, Any] | None = None
    ) -> None:
        marker = None
        if state is not None:
            marker = {"state": state.value, "since": datetime.now().isoformat(), **(details or {})}
        await self.store.update(self.collection, quote_id, {"reconciliation": marker})

    async def finalize_approval(self, quote: Quote) -> bool:
        """
        Set ``status=approved`` and ``stockDeducted=True`` in one conditional
        write keyed on the status and stock flag ``quote`` was read with.
        Returns False if another writer changed the quote first.
        """
        if quote.stock_deducted:
            return False
        expected = await self._expected_state(quote)
        if expected is None:
            return False
        return await self.store.compare_and_set(
            self.collection,
            quote.id,
            expected=expected,
            updates={
                "status": QuoteStatus.APPROVED.value,
                "stockDeducted": True,
                "reconciliation": None,
            },
        )

    async def list_needing_reconciliation(self) -> list[Quote]:
        return [q for q in await self.list() if q.needs_reconciliation]

    async def summary(self, recent: int = 5) -> dict[str, Any]:
        """Dashboard figures: count, revenue and the first few quotes."""
        quotes = await self.list()
        revenue = sum((q.compute_total() for q in quotes), Decimal("0"))
        return {
            "total_quotes": len(quotes),
            "total_revenue": revenue,
            "last_quotes": quotes[:recent],
        }


class UserRepository:
    """User profiles keyed by identity uid. Roles are validated on every read."""

    collection = "users"

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store

    async def find(self, uid: str) -> UserProfile | None:
        data = await self.store.get(self.collection, uid)
        if data is None:
            return None
        return UserProfile.from_document(uid, data)

    async def get(self, uid: str) -> UserProfile:
        profile = await self.find(uid)
        if profile is None:
            raise NotFound("user", uid)
        return profile

    async def list(self) -> list[UserProfile]:
        docs = await self.store.list(self.collection)
        return [UserProfile.from_document(doc_id, data) for doc_id, data in docs]

    async def save(self, profile: UserProfile) -> None:
        await self.store.set(
            self.collection,
            profile.id,
            {**profile.to_document(), "createdAt": datetime.now().isoformat()},
        )

    async def update(self, uid: str, updates: dict[str, Any]) -> None:
        # Credentials never travel through the profile document
        safe = {k: v for k, v in updates.items() if k != "password"}
        if "role" in safe:
            safe["role"] = parse_role(safe["role"]).value
        await self.store.update(self.collection, uid, safe)

    async def set_active(self, uid: str, active: bool) -> None:
        await self.update(uid, {"active": active})
