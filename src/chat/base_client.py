# src/chat/base_client.py - v1
"""Abstract chat platform interface: auth, replies, attachments, documents."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseChatClient(ABC):
    """Narrow view of the chat platform needed by the stager and pipeline.

    Every call except acquire_token takes the bearer token explicitly; a
    token is fetched once per background task and never cached across tasks.
    """

    @abstractmethod
    async def acquire_token(self) -> str:
        """Fetch a short-lived bearer token for the app.

        Raises:
            ConfigurationError: If app credentials are not configured.
            UpstreamError: If the platform refuses or the call fails.
        """

    @abstractmethod
    async def reply_text(self, token: str, message_id: str, text: str) -> bool:
        """Reply to a message. Returns False on failure, never raises."""

    @abstractmethod
    async def download_attachment(self, token: str, message_id: str, file_key: str) -> bytes:
        """Download a file attached to a message."""

    @abstractmethod
    async def create_document(self, token: str, title: str) -> str:
        """Create an empty document and return its id."""

    @abstractmethod
    async def append_text(self, token: str, document_id: str, text: str) -> None:
        """Append one text block at the end of a document."""

    @abstractmethod
    def document_url(self, document_id: str) -> str:
        """Shareable URL of a document."""
