# src/storage/s3_store.py - v1
"""S3-compatible object store (STORAGE_BACKEND=s3).

Supports AWS S3, Cloudflare R2, MinIO and other S3-compatible storage.
Requires 'boto3' package: pip install boto3.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timezone
from typing import Any

from pdfdigest.core.errors import ObjectNotFoundError, UpstreamError
from pdfdigest.core.models import StoredObject
from pdfdigest.storage.base_object_store import BaseObjectStore

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3ObjectStore(BaseObjectStore):
    """Store staged documents in an S3 bucket.

    boto3 is synchronous, so every call is pushed to a worker thread to
    keep the event loop (and the webhook handler) responsive.
    """

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        """Initialize S3 store.

        Args:
            bucket: Bucket name.
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for R2/MinIO-compatible storage.
            client: Pre-built boto3 S3 client (skips client creation).
        """
        if client is None:
            try:
                import boto3
            except ImportError as e:
                raise ImportError(
                    "boto3 package required for S3 storage: pip install boto3"
                ) from e

            kwargs: dict[str, Any] = {}
            if region:
                kwargs["region_name"] = region
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)

        self._s3 = client
        self._bucket = bucket

    async def put(self, key: str, content: bytes) -> None:
        await self._call("put", key, self._s3.put_object,
                         Bucket=self._bucket, Key=key, Body=content)
        logger.debug("S3 put: s3://%s/%s (%d bytes)", self._bucket, key, len(content))

    async def get(self, key: str) -> bytes:
        response = await self._call("get", key, self._s3.get_object,
                                    Bucket=self._bucket, Key=key)
        return await asyncio.to_thread(response["Body"].read)

    async def list(self, prefix: str) -> list[StoredObject]:
        items: list[StoredObject] = []
        token: str | None = None
        while True:
            kwargs: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix}
            if token:
                kwargs["ContinuationToken"] = token
            response = await self._call("list", prefix, self._s3.list_objects_v2, **kwargs)
            for obj in response.get("Contents", []):
                modified = obj["LastModified"]
                if modified.tzinfo is None:
                    modified = modified.replace(tzinfo=timezone.utc)
                items.append(StoredObject(
                    key=obj["Key"], uploaded_at=modified, size=obj.get("Size", 0),
                ))
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")
        return items

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self._s3.delete_object,
                         Bucket=self._bucket, Key=key)
        logger.debug("S3 delete: s3://%s/%s", self._bucket, key)

    async def _call(self, op: str, key: str, fn: Any, **kwargs: Any) -> Any:
        """Run a boto3 call off-loop and translate its errors."""
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except Exception as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            raise UpstreamError("storage", f"S3 {op} failed for {key}: {e}") from e


def _error_code(error: Exception) -> str | None:
    """Extract the S3 error code from a botocore ClientError, if any."""
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return response.get("Error", {}).get("Code")
    return None
