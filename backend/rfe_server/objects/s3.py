"""
S3-compatible object store (AWS S3, Cloudflare R2, MinIO).

Uses aiobotocore for async access. One client is opened by connect() and
shared by all requests until close().

Invariants:
    - put() returns only after PutObject succeeds
    - A missing key reads back as None, not as an error
"""

from __future__ import annotations

import logging
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import ObjectStoreConfig
from .base import ObjectStoreError, StoredObject, reference_for

logger = logging.getLogger(__name__)


class S3ObjectStore:
    """ObjectStore implementation on an S3 bucket.

    Example:
        >>> store = S3ObjectStore(config.object_store)
        >>> await store.connect()
        >>> ref = await store.put("acme/photos/a.jpg", data, "image/jpeg")
    """

    def __init__(self, config: ObjectStoreConfig) -> None:
        self.config = config
        self._session: Any = None
        self._client_ctx: Any = None
        self._client: Any = None

    async def connect(self) -> None:
        """Initialize S3 client."""
        if self._client is not None:
            return

        self._session = get_session()

        client_kwargs: dict[str, Any] = {"region_name": self.config.region}
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url
        if self.config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()
        logger.info("S3 object store connected", extra={"bucket": self.config.bucket})

    async def close(self) -> None:
        """Close S3 client."""
        if self._client is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None

    def _require_client(self) -> Any:
        if self._client is None:
            raise ObjectStoreError("S3 object store is not connected")
        return self._client

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        client = self._require_client()
        try:
            await client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise ObjectStoreError(f"Upload failed: {key}") from e

        logger.debug("Stored object", extra={"key": key, "size": len(data)})
        return reference_for(key)

    async def get(self, key: str) -> StoredObject | None:
        client = self._require_client()
        try:
            response = await client.get_object(Bucket=self.config.bucket, Key=key)
            async with response["Body"] as stream:
                data = await stream.read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            logger.error(f"S3 download failed for {key}: {e}")
            raise ObjectStoreError(f"Download failed: {key}") from e
        except BotoCoreError as e:
            logger.error(f"S3 download failed for {key}: {e}")
            raise ObjectStoreError(f"Download failed: {key}") from e

        return StoredObject(
            key=key,
            data=data,
            content_type=response.get("ContentType") or "application/octet-stream",
            etag=response.get("ETag"),
        )
