# src/understanding/base_client.py - v1
"""Abstract document-understanding service interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseUnderstandingClient(ABC):
    """LLM-backed service that accepts documents and answers about them."""

    @abstractmethod
    async def upload(self, file_name: str, content: bytes) -> str:
        """Upload a document for extraction and return its remote file id."""

    @abstractmethod
    async def summarize(
        self,
        file_ids: list[str],
        system_instruction: str,
        user_instruction: str,
    ) -> str | None:
        """Run one batched request over all file ids, in the given order.

        Returns the generated text, or None when the response carries none.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier."""
