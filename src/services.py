# src/services.py - v1
"""Wire adapters, stager, orchestrator and dispatcher from Settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pdfdigest.chat.base_client import BaseChatClient
from pdfdigest.chat.feishu_client import FeishuClient
from pdfdigest.config.settings import Settings
from pdfdigest.pipeline.orchestrator import PipelineOrchestrator
from pdfdigest.pipeline.run_lock import ConversationLocks
from pdfdigest.pipeline.stager import FileStager
from pdfdigest.storage.base_object_store import BaseObjectStore
from pdfdigest.storage.store_factory import create_object_store
from pdfdigest.understanding.base_client import BaseUnderstandingClient
from pdfdigest.understanding.dashscope_client import DashScopeClient
from pdfdigest.webhook.dispatcher import BackgroundDispatcher

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the webhook app and the CLI need, built once per process."""

    settings: Settings
    store: BaseObjectStore
    chat: BaseChatClient
    understanding: BaseUnderstandingClient
    stager: FileStager
    orchestrator: PipelineOrchestrator
    dispatcher: BackgroundDispatcher

    async def aclose(self) -> None:
        """Release network clients."""
        close = getattr(self.chat, "aclose", None)
        if close is not None:
            await close()


def build_services(
    settings: Settings,
    store: BaseObjectStore | None = None,
    chat: BaseChatClient | None = None,
    understanding: BaseUnderstandingClient | None = None,
) -> Services:
    """Build the service graph; any adapter can be injected (tests use fakes)."""
    store = store or create_object_store(settings)
    chat = chat or FeishuClient(
        app_id=settings.feishu_app_id,
        app_secret=settings.feishu_app_secret,
        base_url=settings.feishu_base_url,
        doc_url_base=settings.feishu_doc_url_base,
        timeout=settings.http_timeout_seconds,
    )
    understanding = understanding or DashScopeClient(
        api_key=settings.dashscope_api_key,
        base_url=settings.dashscope_base_url,
        model=settings.dashscope_model,
        timeout=settings.dashscope_timeout_seconds,
    )

    if not settings.has_app_credentials:
        logger.warning("FEISHU_APP_ID / FEISHU_APP_SECRET not set; replies are disabled")

    stager = FileStager(
        store=store,
        chat=chat,
        staging_prefix=settings.staging_prefix,
        extension=settings.document_extension,
        trigger_phrase=settings.trigger_phrases_list[0],
    )
    orchestrator = PipelineOrchestrator(
        store=store,
        chat=chat,
        understanding=understanding,
        staging_prefix=settings.staging_prefix,
        extension=settings.document_extension,
        locks=ConversationLocks(),
        title_max_chars=settings.doc_title_max_chars,
    )
    return Services(
        settings=settings,
        store=store,
        chat=chat,
        understanding=understanding,
        stager=stager,
        orchestrator=orchestrator,
        dispatcher=BackgroundDispatcher(
            stager, orchestrator, seen_limit=settings.event_dedup_size,
        ),
    )
