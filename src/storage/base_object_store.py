# src/storage/base_object_store.py - v1
"""Abstract object store interface used for staged documents."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pdfdigest.core.models import StoredObject


class BaseObjectStore(ABC):
    """Flat key/value blob storage with prefix listing."""

    @abstractmethod
    async def put(self, key: str, content: bytes) -> None:
        """Store content under key, replacing any existing object."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the content stored under key.

        Raises:
            ObjectNotFoundError: If the key does not exist.
        """

    @abstractmethod
    async def list(self, prefix: str) -> list[StoredObject]:
        """List every object whose key starts with prefix (recursively)."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key. Deleting a missing key is not an error."""
