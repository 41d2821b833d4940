# src/pipeline/run_lock.py - v1
"""Per-conversation guard against overlapping pipeline runs.

Two runs over the same staging prefix would both upload the same files and
race on cleanup, so a second trigger is rejected while one is in flight.
The guard is in-process; several server replicas need an external lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ConversationBusyError(Exception):
    """A run is already in flight for this conversation."""


class ConversationLocks:
    """Set of conversation ids with a run in flight.

    Acquire and release never await, so the check-and-add is atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._active: set[str] = set()

    def is_locked(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._active)

    @contextmanager
    def hold(self, conversation_id: str) -> Iterator[None]:
        """Hold the conversation for the duration of the block.

        Raises:
            ConversationBusyError: If the conversation is already held.
        """
        if conversation_id in self._active:
            raise ConversationBusyError(conversation_id)
        self._active.add(conversation_id)
        logger.debug("Run lock acquired for %s", conversation_id)
        try:
            yield
        finally:
            self._active.discard(conversation_id)
            logger.debug("Run lock released for %s", conversation_id)
