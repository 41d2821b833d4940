# src/pipeline/stager.py - v1
"""File stager: persist uploaded documents until a trigger asks for analysis.

Staging never raises to its caller. Storage failures are reported in the
conversation and returned as a ``failed`` StageResult; they are not retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pdfdigest.chat.base_client import BaseChatClient
from pdfdigest.config import messages
from pdfdigest.core.errors import ConfigurationError, PdfDigestError, UpstreamError
from pdfdigest.core.models import StageResult, StoredObject
from pdfdigest.logging.context import set_run_context
from pdfdigest.storage import layout
from pdfdigest.storage.base_object_store import BaseObjectStore

logger = logging.getLogger(__name__)

UNKNOWN_FILE_NAME = "unknown.pdf"


def _now_ms() -> int:
    return int(time.time() * 1000)


class FileStager:
    """Writes accepted attachments under the conversation's staging prefix.

    Args:
        store: Object store holding staged files.
        chat: Chat platform client used for replies and downloads.
        staging_prefix: Namespace prefix for all staged keys.
        extension: Accepted document extension (case-insensitive).
        trigger_phrase: Phrase quoted back to the user in the acknowledgment.
        clock: Millisecond clock used for the key timestamp.
    """

    def __init__(
        self,
        store: BaseObjectStore,
        chat: BaseChatClient,
        staging_prefix: str = "chat_data",
        extension: str = ".pdf",
        trigger_phrase: str = messages.DEFAULT_TRIGGER_PHRASES[0],
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._chat = chat
        self._prefix = staging_prefix
        self._extension = extension
        self._trigger_phrase = trigger_phrase
        self._clock = clock

    def accepts(self, file_name: str) -> bool:
        """Whether a file with this name is meant for analysis."""
        return layout.has_extension(file_name, self._extension)

    async def stage(
        self,
        conversation_id: str,
        file_bytes: bytes,
        file_name: str,
        reply_to: str,
        token: str,
    ) -> StageResult:
        """Store one file and acknowledge it in the conversation."""
        if not self.accepts(file_name):
            logger.debug("Ignoring non-document attachment %s", file_name)
            return StageResult(status="ignored")

        timestamp_ms = self._clock()
        try:
            key = layout.staged_key(self._prefix, conversation_id, file_name, timestamp_ms)
            await self._store.put(key, file_bytes)
        except (PdfDigestError, ValueError) as e:
            logger.error("Failed to stage %s: %s", file_name, e)
            await self._chat.reply_text(
                token, reply_to, messages.STAGE_FAILED.format(file_name=file_name, error=e),
            )
            return StageResult(status="failed", error=str(e))

        staged = layout.to_staged_file(
            conversation_id,
            StoredObject(key=key, uploaded_at=layout.ms_to_datetime(timestamp_ms)),
        )
        logger.info("Staged %s (%d bytes) as %s", file_name, len(file_bytes), key)
        await self._chat.reply_text(
            token,
            reply_to,
            messages.STAGED_ACK.format(file_name=file_name, trigger=self._trigger_phrase),
        )
        return StageResult(status="staged", staged_file=staged)

    async def stage_from_chat(
        self,
        conversation_id: str,
        message_id: str,
        file_key: str,
        file_name: str | None,
    ) -> StageResult:
        """Download an attachment from the chat platform and stage it.

        Background entry point for file messages; captures everything it
        needs in its arguments.
        """
        set_run_context(conversation_id)
        file_name = file_name or UNKNOWN_FILE_NAME
        if not self.accepts(file_name):
            return StageResult(status="ignored")

        try:
            token = await self._chat.acquire_token()
        except (ConfigurationError, UpstreamError) as e:
            logger.error("Cannot stage %s, no chat token: %s", file_name, e)
            return StageResult(status="failed", error=str(e))

        try:
            content = await self._chat.download_attachment(token, message_id, file_key)
        except UpstreamError as e:
            logger.error("Failed to download %s from chat: %s", file_name, e)
            await self._chat.reply_text(token, message_id, messages.DOWNLOAD_FAILED)
            return StageResult(status="failed", error=str(e))

        return await self.stage(conversation_id, content, file_name, message_id, token)
