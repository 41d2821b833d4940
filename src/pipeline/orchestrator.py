# src/pipeline/orchestrator.py - v1
"""Pipeline orchestrator: staged files in, summary document link out.

Stages run strictly in order for one conversation:

  1. credentials   acquire a chat platform token (failures are log-only)
  2. acknowledge   tell the user the run has started
  3. gather        list staged files, oldest upload first
  4. upload        push each file to the understanding service, in order
  5. summarize     one batched request over all remote file ids
  6. document      create the output document
  7. write         append the summary (best effort)
  8. cleanup       delete the files gathered in stage 3
  9. report        success or failure reply

A failure in stages 3-6 skips straight to the failure report. Staged files
are only deleted once a document exists, so a failed run can be retried by
sending the trigger phrase again.
"""

from __future__ import annotations

import logging
import time

from pdfdigest.chat.base_client import BaseChatClient
from pdfdigest.config import messages
from pdfdigest.core.errors import (
    ConfigurationError,
    EmptyInputError,
    ObjectNotFoundError,
    PartialWriteError,
    PdfDigestError,
    UpstreamError,
)
from pdfdigest.core.models import PipelineRun, RunOutcome, StagedFile
from pdfdigest.logging.context import set_run_context, set_stage
from pdfdigest.pipeline.run_lock import ConversationBusyError, ConversationLocks
from pdfdigest.storage import layout
from pdfdigest.storage.base_object_store import BaseObjectStore
from pdfdigest.understanding.base_client import BaseUnderstandingClient

logger = logging.getLogger(__name__)


def build_document_title(names: list[str], max_chars: int = 50) -> str:
    """Title for the output document: joined file names, length-capped."""
    joined = ", ".join(names)
    suffix = "..." if len(joined) > max_chars else ""
    return f"{messages.DOCUMENT_TITLE_PREFIX}{joined[:max_chars]}{suffix}"


class PipelineOrchestrator:
    """Runs the analysis pipeline for one conversation at a time.

    Args:
        store: Object store holding staged files.
        chat: Chat platform client (token, replies, documents).
        understanding: Document understanding service client.
        staging_prefix: Namespace prefix of staged keys.
        extension: Document extension to pick up (case-insensitive).
        locks: Shared per-conversation run guard.
        title_max_chars: Cap on the file-name part of the document title.
    """

    def __init__(
        self,
        store: BaseObjectStore,
        chat: BaseChatClient,
        understanding: BaseUnderstandingClient,
        staging_prefix: str = "chat_data",
        extension: str = ".pdf",
        locks: ConversationLocks | None = None,
        title_max_chars: int = 50,
    ) -> None:
        self._store = store
        self._chat = chat
        self._understanding = understanding
        self._prefix = staging_prefix
        self._extension = extension
        self._locks = locks or ConversationLocks()
        self._title_max_chars = title_max_chars

    async def run(self, conversation_id: str, reply_to: str) -> RunOutcome:
        """Execute the pipeline and report the result in the conversation.

        Never raises; the returned outcome mirrors what the user was told.
        """
        run = PipelineRun(conversation_id=conversation_id, reply_to=reply_to)
        set_run_context(conversation_id, run.run_id)
        start_time = time.monotonic()

        self._enter(run, "credentials")
        try:
            token = await self._chat.acquire_token()
        except ConfigurationError as e:
            logger.error("Pipeline not started, chat app misconfigured: %s", e)
            return RunOutcome(conversation_id=conversation_id, status="aborted", error=str(e))
        except UpstreamError as e:
            logger.error("Pipeline not started, token request failed: %s", e)
            return RunOutcome(conversation_id=conversation_id, status="aborted", error=str(e))

        try:
            with self._locks.hold(conversation_id):
                outcome = await self._run_locked(run, token)
        except ConversationBusyError:
            logger.warning("Rejected trigger, a run is already in flight")
            await self._chat.reply_text(token, reply_to, messages.RUN_BUSY)
            return RunOutcome(conversation_id=conversation_id, status="busy")

        logger.info(
            "Pipeline finished: status=%s, files=%d in %.1fs",
            outcome.status, outcome.file_count, time.monotonic() - start_time,
        )
        return outcome

    async def _run_locked(self, run: PipelineRun, token: str) -> RunOutcome:
        self._enter(run, "acknowledge")
        await self._chat.reply_text(token, run.reply_to, messages.RUN_STARTED)

        try:
            await self._execute(run, token)
        except EmptyInputError:
            logger.info("Nothing staged, nothing to process")
            self._enter(run, "report")
            await self._chat.reply_text(token, run.reply_to, messages.NOTHING_TO_PROCESS)
            return RunOutcome(conversation_id=run.conversation_id, status="empty")
        except Exception as e:
            if isinstance(e, PdfDigestError):
                logger.error("Pipeline failed at stage %s: %s", run.stage, e)
            else:
                logger.exception("Pipeline crashed at stage %s", run.stage)
            self._enter(run, "report")
            await self._chat.reply_text(
                token, run.reply_to, messages.RUN_FAILED.format(error=e),
            )
            return RunOutcome(
                conversation_id=run.conversation_id, status="failed",
                file_count=len(run.files), error=str(e),
            )

        self._enter(run, "report")
        document_url = self._chat.document_url(run.output_document_id or "")
        await self._chat.reply_text(
            token,
            run.reply_to,
            messages.RUN_SUCCEEDED.format(
                file_count=len(run.remote_file_ids), document_url=document_url,
            ),
        )
        return RunOutcome(
            conversation_id=run.conversation_id,
            status="succeeded",
            file_count=len(run.remote_file_ids),
            document_id=run.output_document_id,
            document_url=document_url,
        )

    async def _execute(self, run: PipelineRun, token: str) -> None:
        """Stages 3 to 8. Raises on any aborting failure."""
        self._enter(run, "gather")
        run.add_files(await self.gather(run.conversation_id))
        if not run.files:
            raise EmptyInputError(run.conversation_id)

        self._enter(run, "upload")
        await self._upload_all(run)
        if not run.remote_file_ids:
            raise EmptyInputError(run.conversation_id)

        self._enter(run, "summarize")
        run.summary_text = await self._summarize(run)

        self._enter(run, "document")
        run.output_document_id = await self._create_document(run, token)

        self._enter(run, "write")
        try:
            await self._write_content(run, token)
        except PartialWriteError as e:
            logger.warning("Document %s left incomplete: %s", e.document_id, e)

        self._enter(run, "cleanup")
        await self._cleanup(run)

    async def gather(self, conversation_id: str) -> list[StagedFile]:
        """Staged documents of a conversation, oldest upload first."""
        prefix = layout.conversation_prefix(self._prefix, conversation_id)
        objects = await self._store.list(prefix)
        files = [
            layout.to_staged_file(conversation_id, obj)
            for obj in objects
            if layout.has_extension(obj.key, self._extension)
        ]
        files.sort(key=lambda f: (f.uploaded_at, f.storage_key))
        logger.info("Gathered %d staged file(s)", len(files))
        return files

    async def _upload_all(self, run: PipelineRun) -> None:
        # Sequential: remote ids must follow upload order
        for staged in run.files:
            try:
                content = await self._store.get(staged.storage_key)
            except ObjectNotFoundError:
                logger.warning("Staged file vanished before upload: %s", staged.storage_key)
                continue

            try:
                remote_id = await self._understanding.upload(staged.original_name, content)
            except ConfigurationError:
                raise
            except Exception as e:
                raise UpstreamError(
                    "understanding", f"Upload failed for {staged.original_name}: {e}"
                ) from e
            run.record_upload(staged, remote_id)
            logger.info("Uploaded %s as %s", staged.original_name, remote_id)

    async def _summarize(self, run: PipelineRun) -> str:
        try:
            summary = await self._understanding.summarize(
                run.remote_file_ids,
                messages.SYSTEM_INSTRUCTION,
                messages.USER_INSTRUCTION,
            )
        except PdfDigestError:
            raise
        except Exception as e:
            raise UpstreamError("understanding", f"LLM generation failed: {e}") from e
        if not summary:
            logger.warning("Understanding service returned no summary text")
            return messages.SUMMARY_UNAVAILABLE
        return summary

    async def _create_document(self, run: PipelineRun, token: str) -> str:
        title = build_document_title(run.uploaded_names, self._title_max_chars)
        try:
            document_id = await self._chat.create_document(token, title)
        except PdfDigestError:
            raise
        except Exception as e:
            raise UpstreamError("document", f"Failed to create document: {e}") from e
        logger.info("Created document %s", document_id)
        return document_id

    async def _write_content(self, run: PipelineRun, token: str) -> None:
        document_id = run.output_document_id or ""
        try:
            await self._chat.append_text(token, document_id, run.summary_text or "")
        except Exception as e:
            raise PartialWriteError(document_id, f"Failed to write document: {e}") from e

    async def _cleanup(self, run: PipelineRun) -> None:
        deleted = 0
        for staged in run.files:
            try:
                await self._store.delete(staged.storage_key)
                deleted += 1
            except Exception as e:
                logger.warning("Failed to delete staged file %s: %s", staged.storage_key, e)
        logger.info("Cleaned up %d/%d staged file(s)", deleted, len(run.files))

    @staticmethod
    def _enter(run: PipelineRun, stage: str) -> None:
        run.stage = stage
        set_stage(stage)
        logger.debug("Entering stage %s", stage)
