"""
Base protocol and helpers for object storage.

Photos and PDFs are kept in an object store. The rest of the backend only
ever handles the reference string an upload returns ("/files/<key>"); the
bytes themselves never enter the tenant store.

Invariants:
    - Every key is prefixed with the owning tenant ("<tenant>/...")
    - put() returns only after the object is durably stored
    - References are stable: reference_for(key) is a pure function

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the "/files/" reference prefix; clients persist references
"""

from __future__ import annotations

import base64
import binascii
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..errors import InternalError, InvalidError

if TYPE_CHECKING:
    from ..config import ObjectStoreConfig

FILES_PREFIX = "/files/"


class ObjectStoreError(InternalError):
    """Object storage backend failed."""


@dataclass(frozen=True)
class StoredObject:
    """An object read back from storage.

    Attributes:
        key: Object key
        data: Object bytes
        content_type: MIME type recorded at upload
        etag: Backend entity tag, if any
    """

    key: str
    data: bytes
    content_type: str
    etag: str | None = None


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol all object storage backends implement."""

    async def connect(self) -> None:
        """Open backend connections."""
        ...

    async def close(self) -> None:
        """Release backend connections."""
        ...

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return the object's reference."""
        ...

    async def get(self, key: str) -> StoredObject | None:
        """Read an object, or None if it does not exist."""
        ...


def reference_for(key: str) -> str:
    """Public reference for a stored key."""
    return f"{FILES_PREFIX}{key}"


def is_key_safe_tenant(tenant_id: str) -> bool:
    """True if tenant_id can be used as exactly one key path segment."""
    if not tenant_id or tenant_id in (".", ".."):
        return False
    return "/" not in tenant_id and "\\" not in tenant_id


def tenant_object_key(tenant_id: str, folder: str, file_name: str | None, default_ext: str) -> str:
    """Build a tenant-scoped object key.

    A missing (or empty after cleaning) file name becomes
    <folder-singular>_<unix ms>.<ext>. Path separators in the file name are
    flattened so a caller cannot escape its tenant prefix.

    Raises:
        InvalidError: If the tenant id cannot be used as a key segment
    """
    if not is_key_safe_tenant(tenant_id):
        raise InvalidError("Invalid tenant id for object key", field_name="tenant_id")

    safe_name = (file_name or "").replace("\\", "_").replace("/", "_").lstrip(".")
    if not safe_name:
        safe_name = f"{folder.rstrip('s')}_{int(time.time() * 1000)}.{default_ext}"
    return f"{tenant_id}/{folder}/{safe_name}"


def key_belongs_to(tenant_id: str, key: str) -> bool:
    """True if key lives under tenant_id's own prefix."""
    parts = key.split("/")
    return len(parts) > 1 and parts[0] == tenant_id and ".." not in parts


def decode_base64_payload(payload: str) -> bytes:
    """Decode base64 data, accepting a data-URL prefix ("data:...;base64,").

    Raises:
        InvalidError: If the payload is not valid base64
    """
    if not isinstance(payload, str) or not payload:
        raise InvalidError("base64Data is required", field_name="base64Data")

    encoded = payload.split(",", 1)[1] if "," in payload else payload
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidError("base64Data is not valid base64", field_name="base64Data")


def create_object_store(config: ObjectStoreConfig) -> ObjectStore:
    """Factory function to create an object store from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import ObjectStoreBackend
    from .memory import InMemoryObjectStore
    from .s3 import S3ObjectStore

    if config.backend == ObjectStoreBackend.S3:
        return S3ObjectStore(config)
    elif config.backend == ObjectStoreBackend.MEMORY:
        return InMemoryObjectStore()
    else:
        raise ValueError(f"Unsupported object store backend: {config.backend}")
