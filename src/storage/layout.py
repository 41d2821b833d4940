# src/storage/layout.py - v1
"""Staging key layout.

Keys look like ``{prefix}/{conversation_id}/{unix_millis}_{file_name}``.
All key construction and parsing goes through this module so the stager and
the orchestrator can never disagree on the format.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from pdfdigest.core.models import StagedFile, StoredObject

DEFAULT_FILE_NAME = "file.pdf"


def conversation_prefix(prefix: str, conversation_id: str) -> str:
    """Listing prefix for one conversation, always ending with '/'."""
    if not conversation_id or "/" in conversation_id or conversation_id in (".", ".."):
        raise ValueError(f"Invalid conversation id: {conversation_id!r}")
    return f"{prefix}/{conversation_id}/"


def staged_key(
    prefix: str,
    conversation_id: str,
    file_name: str,
    timestamp_ms: int | None = None,
) -> str:
    """Build the storage key for a newly uploaded file."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    # Path separators in the name would escape the conversation prefix
    safe_name = file_name.replace("/", "_")
    return f"{conversation_prefix(prefix, conversation_id)}{timestamp_ms}_{safe_name}"


def split_key_name(key: str) -> tuple[int | None, str]:
    """Split the final key segment into (timestamp_ms, original_name).

    The timestamp is None when the segment does not start with a numeric
    component, in which case the whole segment is the name.
    """
    segment = key.rsplit("/", 1)[-1]
    head, sep, rest = segment.partition("_")
    if sep and head.isdigit():
        return int(head), rest or DEFAULT_FILE_NAME
    return None, segment or DEFAULT_FILE_NAME


def ms_to_datetime(timestamp_ms: int) -> datetime:
    """UTC datetime for a millisecond epoch timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def to_staged_file(conversation_id: str, obj: StoredObject) -> StagedFile:
    """Convert a listed object into a StagedFile.

    The millisecond timestamp embedded in the key is preferred over the
    store's own timestamp, which may have coarser resolution.
    """
    timestamp_ms, name = split_key_name(obj.key)
    uploaded_at = obj.uploaded_at
    if timestamp_ms is not None:
        uploaded_at = ms_to_datetime(timestamp_ms)
    return StagedFile(
        conversation_id=conversation_id,
        storage_key=obj.key,
        uploaded_at=uploaded_at,
        original_name=name,
    )


def has_extension(name: str, extension: str) -> bool:
    """Case-insensitive extension check."""
    return name.lower().endswith(extension.lower())
