# tests/conftest.py - v1
"""Shared test fixtures for unit and integration tests.

Provides an in-memory object store, mock chat and understanding clients and
settings isolated from any local .env file. No network access.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from pdfdigest.config.settings import Settings
from pdfdigest.core.errors import ObjectNotFoundError, UpstreamError
from pdfdigest.core.models import StoredObject
from pdfdigest.logging.context import clear_context
from pdfdigest.storage.base_object_store import BaseObjectStore

TOKEN = "t-test-token"
DOC_ID = "doxcn123"


class InMemoryObjectStore(BaseObjectStore):
    """Dict-backed object store that records deletions."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, datetime]] = {}
        self.deleted: list[str] = []
        self.fail_put = False

    def seed(self, key: str, content: bytes = b"%PDF-1.4", uploaded_at: datetime | None = None) -> None:
        self.objects[key] = (content, uploaded_at or datetime.now(timezone.utc))

    async def put(self, key: str, content: bytes) -> None:
        if self.fail_put:
            raise UpstreamError("storage", "bucket unavailable")
        self.objects[key] = (content, datetime.now(timezone.utc))

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise ObjectNotFoundError(key)
        return self.objects[key][0]

    async def list(self, prefix: str) -> list[StoredObject]:
        return [
            StoredObject(key=k, uploaded_at=ts, size=len(body))
            for k, (body, ts) in self.objects.items()
            if k.startswith(prefix)
        ]

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)


# === FIXTURES: Settings ===


@pytest.fixture
def settings() -> Settings:
    """Settings with credentials set and no .env lookup."""
    return Settings(
        _env_file=None,
        feishu_app_id="cli_test",
        feishu_app_secret="secret",
        feishu_verification_token="verify-me",
        dashscope_api_key="sk-test",
    )


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


# === FIXTURES: Adapters ===


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def mock_chat() -> MagicMock:
    """Mock BaseChatClient with successful defaults."""
    chat = MagicMock()
    chat.acquire_token = AsyncMock(return_value=TOKEN)
    chat.reply_text = AsyncMock(return_value=True)
    chat.download_attachment = AsyncMock(return_value=b"%PDF-1.4 downloaded")
    chat.create_document = AsyncMock(return_value=DOC_ID)
    chat.append_text = AsyncMock(return_value=None)
    chat.document_url = MagicMock(side_effect=lambda doc_id: f"https://feishu.cn/docx/{doc_id}")
    chat.aclose = AsyncMock(return_value=None)
    return chat


@pytest.fixture
def mock_understanding() -> MagicMock:
    """Mock BaseUnderstandingClient: remote id is derived from the file name."""
    client = MagicMock()
    client.upload = AsyncMock(side_effect=lambda name, content: f"file-{name}")
    client.summarize = AsyncMock(return_value="## Summary\nKey points.")
    client.provider_name = "mock"
    return client


@pytest.fixture
def sent_texts(mock_chat: MagicMock):
    """Callable returning the texts sent through mock_chat.reply_text, in order."""
    return lambda: [c.args[2] for c in mock_chat.reply_text.await_args_list]
