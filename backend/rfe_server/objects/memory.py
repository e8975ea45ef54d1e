"""
In-memory object store for testing and local development.

Invariants:
    - All data is lost on process exit
    - Same key/reference semantics as the S3 backend
"""

from __future__ import annotations

import asyncio
import hashlib
import logging

from .base import StoredObject, reference_for

logger = logging.getLogger(__name__)


class InMemoryObjectStore:
    """ObjectStore implementation backed by a dict.

    Example:
        >>> store = InMemoryObjectStore()
        >>> await store.connect()
        >>> ref = await store.put("acme/pdfs/q.pdf", b"%PDF", "application/pdf")
        >>> ref
        '/files/acme/pdfs/q.pdf'
    """

    def __init__(self) -> None:
        self._objects: dict[str, StoredObject] = {}
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        logger.debug("InMemoryObjectStore connected")

    async def close(self) -> None:
        self._objects.clear()

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        etag = hashlib.md5(data).hexdigest()
        async with self._lock:
            self._objects[key] = StoredObject(
                key=key, data=bytes(data), content_type=content_type, etag=etag
            )
        return reference_for(key)

    async def get(self, key: str) -> StoredObject | None:
        return self._objects.get(key)

    def keys(self) -> list[str]:
        """All stored keys (test helper)."""
        return sorted(self._objects)
