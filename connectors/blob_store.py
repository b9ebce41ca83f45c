"""
Module: connectors.blob_store

Provides an in-memory blob store for product images. Callers only keep the
returned URL.
"""

import asyncio


class InMemoryBlobStore:
    """Dummy blob store keyed by object path."""

    def __init__(self, bucket: str = "products"):
        self.bucket = bucket
        self._objects: dict[str, bytes] = {}

    def url_for(self, path: str) -> str:
        return f"memory://{self.bucket}/{path}"

    async def upload(self, path: str, data: bytes) -> str:
        """Store ``data`` under ``path`` and return its download URL."""
        await asyncio.sleep(0)
        self._objects[path] = bytes(data)
        return self.url_for(path)

    async def download(self, url: str) -> bytes | None:
        await asyncio.sleep(0)
        prefix = f"memory://{self.bucket}/"
        if not url.startswith(prefix):
            return None
        return self._objects.get(url[len(prefix):])
