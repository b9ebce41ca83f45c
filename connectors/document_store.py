"""
Module: connectors.document_store

Provides an in-memory async document store standing in for the managed
document database (collections of schemaless documents keyed by id).
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import datetime
from typing import Any

from models.errors import NotFound

logger = logging.getLogger(__name__)


def _merge_into(target: dict[str, Any], updates: dict[str, Any]) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value)
        else:
            target[key] = value


class InMemoryDocumentStore:
    """
    Async document store with server-assigned ids and write timestamps.

    Every call awaits once before touching data, so concurrent callers
    interleave at the same points they would against a remote backend.
    ``compare_and_set`` is the only multi-field atomic primitive.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def server_timestamp() -> datetime:
        return datetime.now()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def _round_trip(self) -> None:
        await asyncio.sleep(self.latency)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read one document by id, or None when absent."""
        await self._round_trip()
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def list(
        self, collection: str, order_by: str | None = None, descending: bool = False
    ) -> list[tuple[str, dict[str, Any]]]:
        """Read every document of a collection as (id, data) pairs."""
        await self._round_trip()
        docs = [(doc_id, copy.deepcopy(data)) for doc_id, data in self._collection(collection).items()]
        if order_by:
            present = [d for d in docs if d[1].get(order_by) is not None]
            missing = [d for d in docs if d[1].get(order_by) is None]
            present.sort(key=lambda d: d[1][order_by], reverse=descending)
            docs = present + missing
        return docs

    async def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        """Insert a new document and return its id."""
        await self._round_trip()
        async with self._lock:
            doc_id = doc_id or uuid.uuid4().hex[:20]
            docs = self._collection(collection)
            if doc_id in docs:
                raise ValueError(f"Document {collection}/{doc_id} already exists")
            payload = copy.deepcopy(data)
            payload["createdAt"] = self.server_timestamp()
            docs[doc_id] = payload
        logger.debug(f"Created {collection}/{doc_id}")
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Write a document under a caller-chosen id, replacing any previous content."""
        await self._round_trip()
        async with self._lock:
            self._collection(collection)[doc_id] = copy.deepcopy(data)

    async def merge(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Write ``data`` into a document, creating it when missing. Nested maps
        are merged key by key instead of being replaced.
        """
        await self._round_trip()
        async with self._lock:
            doc = self._collection(collection).setdefault(doc_id, {})
            _merge_into(doc, copy.deepcopy(data))
            return copy.deepcopy(doc)

    async def update(self, collection: str, doc_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        """Merge ``updates`` into an existing document and stamp ``updatedAt``."""
        await self._round_trip()
        async with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                raise NotFound(collection, doc_id)
            doc.update(copy.deepcopy(updates))
            doc["updatedAt"] = self.server_timestamp()
            return copy.deepcopy(doc)

    async def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document. Returns False when it did not exist."""
        await self._round_trip()
        async with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: dict[str, Any],
        updates: dict[str, Any],
    ) -> bool:
        """
        Apply ``updates`` only if every field in ``expected`` still holds the
        given value. Returns whether the write happened.
        """
        await self._round_trip()
        async with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                raise NotFound(collection, doc_id)
            for field_name, value in expected.items():
                if doc.get(field_name) != value:
                    logger.debug(
                        f"CAS mismatch on {collection}/{doc_id}.{field_name}: "
                        f"expected {value!r}, found {doc.get(field_name)!r}"
                    )
                    return False
            doc.update(copy.deepcopy(updates))
            doc["updatedAt"] = self.server_timestamp()
            return True
