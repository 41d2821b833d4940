# src/webhook/dispatcher.py - v1
"""Detached execution of staging and pipeline work.

The webhook must answer within the platform's deadline, so actual work runs
in asyncio tasks that outlive the request. Each task receives the
conversation id and reply target as arguments when it is created; nothing
is read from request state afterwards.

Feishu redelivers an event when it does not see a timely 200, so each
delivery is remembered (bounded, least recently seen dropped first) and a
repeat is acknowledged without starting the work again.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from collections import OrderedDict
from collections.abc import Coroutine
from typing import Any

from pdfdigest.pipeline.orchestrator import PipelineOrchestrator
from pdfdigest.pipeline.stager import FileStager
from pdfdigest.webhook.events import FileStagingEvent, TriggerEvent

logger = logging.getLogger(__name__)

DEFAULT_SEEN_LIMIT = 1024


def delivery_key(event: FileStagingEvent | TriggerEvent) -> str:
    """Identity of one delivery: the platform event id, else the message id."""
    return f"{event.kind}:{event.event_id or event.message_id}"


class BackgroundDispatcher:
    """Fire-and-forget task runner that keeps strong references to its tasks."""

    def __init__(
        self,
        stager: FileStager,
        orchestrator: PipelineOrchestrator,
        seen_limit: int = DEFAULT_SEEN_LIMIT,
    ) -> None:
        self._stager = stager
        self._orchestrator = orchestrator
        self._tasks: set[asyncio.Task[Any]] = set()
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._seen_limit = max(1, seen_limit)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, event: FileStagingEvent | TriggerEvent) -> asyncio.Task[Any] | None:
        """Start the background work for an actionable event.

        Returns:
            The spawned task, or None when the delivery was already seen.
        """
        if not self._remember(delivery_key(event)):
            logger.info(
                "Skipping redelivered %s for message %s", event.kind, event.message_id,
            )
            return None

        if isinstance(event, FileStagingEvent):
            coro: Coroutine[Any, Any, Any] = self._stager.stage_from_chat(
                event.conversation_id, event.message_id, event.file_key, event.file_name,
            )
            name = f"stage:{event.conversation_id}:{event.message_id}"
        else:
            coro = self._orchestrator.run(event.conversation_id, event.message_id)
            name = f"run:{event.conversation_id}:{event.message_id}"
        return self._spawn(coro, name)

    def _remember(self, key: str) -> bool:
        """Record a delivery key; False if it was already recorded."""
        if key in self._seen:
            self._seen.move_to_end(key)
            return False
        self._seen[key] = None
        while len(self._seen) > self._seen_limit:
            self._seen.popitem(last=False)
        return True

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        # Fresh context: log context set inside the task stays inside it
        task = asyncio.create_task(coro, name=name, context=contextvars.Context())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Dispatched %s", name)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s crashed", task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks (used at shutdown and in tests)."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("%d background task(s) still running after drain", len(pending))
