# src/storage/local_store.py - v1
"""Local filesystem object store (default backend, for development)."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pdfdigest.core.errors import ObjectNotFoundError, UpstreamError
from pdfdigest.core.models import StoredObject
from pdfdigest.storage.base_object_store import BaseObjectStore


class LocalObjectStore(BaseObjectStore):
    """Map keys to files below a root directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()

    def _resolve(self, key: str) -> Path:
        """Resolve a key to a path, refusing keys that escape the root."""
        path = (self._root / key).resolve()
        root = self._root.resolve()
        if path != root and root not in path.parents:
            raise UpstreamError("storage", f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, content: bytes) -> None:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise UpstreamError("storage", f"Local put failed for {key}: {e}") from e

    async def get(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        return path.read_bytes()

    async def list(self, prefix: str) -> list[StoredObject]:
        root = self._root.resolve()
        # Only walk the directory holding the prefix, not the whole root
        base_dir = prefix.rpartition("/")[0]
        start = self._resolve(base_dir) if base_dir else root
        if not start.is_dir():
            return []
        items: list[StoredObject] = []
        for path in sorted(start.rglob("*")):
            if not path.is_file():
                continue
            key = path.relative_to(root).as_posix()
            if not key.startswith(prefix):
                continue
            stat = path.stat()
            items.append(StoredObject(
                key=key,
                uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                size=stat.st_size,
            ))
        return items

    async def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise UpstreamError("storage", f"Local delete failed for {key}: {e}") from e
