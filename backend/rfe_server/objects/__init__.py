"""
Object storage for the RFE backend - photos and PDF documents.

This module provides a pluggable object store supporting:
- S3-compatible buckets (AWS S3, Cloudflare R2, MinIO)
- In-memory (for testing)

Only references ("/files/<key>") flow back into estimates.
"""

from .base import (
    FILES_PREFIX,
    ObjectStore,
    ObjectStoreError,
    StoredObject,
    create_object_store,
    decode_base64_payload,
    is_key_safe_tenant,
    key_belongs_to,
    reference_for,
    tenant_object_key,
)
from .memory import InMemoryObjectStore
from .s3 import S3ObjectStore

__all__ = [
    # Protocol and types
    "ObjectStore",
    "StoredObject",
    "ObjectStoreError",
    "FILES_PREFIX",
    # Helpers
    "create_object_store",
    "decode_base64_payload",
    "is_key_safe_tenant",
    "key_belongs_to",
    "reference_for",
    "tenant_object_key",
    # Implementations
    "InMemoryObjectStore",
    "S3ObjectStore",
]
