# src/logging/context.py - v1
"""Contextual logging support: attach conversation_id, run_id, stage to log records.

A detached pipeline task copies the context of the code that created it, so
values set inside a run never leak back into the webhook handler.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_conversation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "conversation_id", default=None
)
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    conversation_id: str | None = None
    run_id: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        conversation_id=_conversation_id.get(),
        run_id=_run_id.get(),
        stage=_stage.get(),
    )


def set_run_context(conversation_id: str, run_id: str | None = None) -> None:
    """Set conversation-level context (called once per background task)."""
    _conversation_id.set(conversation_id)
    _run_id.set(run_id)
    _stage.set(None)


def set_stage(stage: str | None) -> None:
    """Set the pipeline stage currently executing."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _conversation_id.set(None)
    _run_id.set(None)
    _stage.set(None)
