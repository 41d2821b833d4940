# src/core/models.py - v1
"""Shared domain models: StagedFile, PipelineRun, RunOutcome, StageResult.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class StoredObject(BaseModel):
    """One entry returned by an object store listing."""

    model_config = ConfigDict(frozen=True)

    key: str
    uploaded_at: datetime
    size: int = 0


class StagedFile(BaseModel):
    """An uploaded document waiting in storage for the next pipeline run."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    storage_key: str
    uploaded_at: datetime
    original_name: str


class StageResult(BaseModel):
    """What happened to one attachment handed to the file stager."""

    status: Literal["staged", "ignored", "failed"]
    staged_file: StagedFile | None = None
    error: str | None = None


class RunOutcome(BaseModel):
    """Terminal state of one pipeline run, as reported to the conversation."""

    conversation_id: str
    status: Literal["succeeded", "empty", "failed", "busy", "aborted"]
    file_count: int = 0
    document_id: str | None = None
    document_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the run ended normally (success or nothing to do)."""
        return self.status in ("succeeded", "empty")


@dataclass
class PipelineRun:
    """Working state of a single, non-persisted pipeline execution."""

    conversation_id: str
    reply_to: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    files: list[StagedFile] = field(default_factory=list)
    remote_file_ids: list[str] = field(default_factory=list)
    uploaded_names: list[str] = field(default_factory=list)
    summary_text: str | None = None
    output_document_id: str | None = None
    stage: str = "created"

    def add_files(self, files: list[StagedFile]) -> None:
        """Attach gathered files, keeping the run scoped to one conversation."""
        for f in files:
            if f.conversation_id != self.conversation_id:
                raise ValueError(
                    f"File {f.storage_key} belongs to conversation "
                    f"{f.conversation_id}, not {self.conversation_id}"
                )
        self.files.extend(files)

    def record_upload(self, staged: StagedFile, remote_file_id: str) -> None:
        """Remember a remote id together with the name it was uploaded under."""
        self.remote_file_ids.append(remote_file_id)
        self.uploaded_names.append(staged.original_name)
