# src/storage/store_factory.py - v1
"""Factory: instantiate the staging object store from configuration."""

from __future__ import annotations

from pdfdigest.config.settings import Settings
from pdfdigest.storage.base_object_store import BaseObjectStore


def create_object_store(settings: Settings) -> BaseObjectStore:
    """Create the object store selected by STORAGE_BACKEND.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.storage_backend == "local":
        from pdfdigest.storage.local_store import LocalObjectStore
        return LocalObjectStore(settings.storage_local_root)

    if settings.storage_backend == "s3":
        from pdfdigest.storage.s3_store import S3ObjectStore
        return S3ObjectStore(
            bucket=settings.storage_s3_bucket,
            region=settings.storage_s3_region or None,
            endpoint_url=settings.storage_s3_endpoint_url or None,
        )

    raise ValueError(f"Unsupported storage backend: {settings.storage_backend!r}")
