# src/webhook/events.py - v1
"""Inbound Feishu webhook payloads as a closed set of event variants.

``classify_event`` is pure: it inspects a decoded JSON payload and returns
exactly one variant. Unknown or malformed shapes become IgnorableEvent so
the platform always gets a 200 and never retries them.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from pdfdigest.core.errors import ValidationError
from pdfdigest.pipeline.trigger import contains_trigger
from pdfdigest.storage import layout

MESSAGE_EVENT_SCHEMA = "2.0"
MESSAGE_RECEIVED = "im.message.receive_v1"
DEFAULT_FILE_NAME = "unknown.pdf"


class UrlChallenge(BaseModel):
    """Endpoint ownership check sent when the webhook URL is configured."""

    kind: Literal["url_challenge"] = "url_challenge"
    challenge: str


class FileStagingEvent(BaseModel):
    """A document was shared in a conversation and should be staged."""

    kind: Literal["stage_file"] = "stage_file"
    conversation_id: str
    message_id: str
    file_key: str
    file_name: str
    event_id: str = ""


class TriggerEvent(BaseModel):
    """A text message asked for the staged documents to be analyzed."""

    kind: Literal["trigger"] = "trigger"
    conversation_id: str
    message_id: str
    text: str
    event_id: str = ""


class IgnorableEvent(BaseModel):
    """Anything the bot does not act on."""

    kind: Literal["ignore"] = "ignore"
    reason: str = ""


WebhookEvent = Annotated[
    Union[UrlChallenge, FileStagingEvent, TriggerEvent, IgnorableEvent],
    Field(discriminator="kind"),
]


def classify_event(
    payload: Any,
    verification_token: str = "",
    trigger_phrases: Sequence[str] = (),
    extension: str = ".pdf",
) -> UrlChallenge | FileStagingEvent | TriggerEvent | IgnorableEvent:
    """Map a decoded webhook payload to its event variant.

    Args:
        payload: Decoded JSON body.
        verification_token: Expected token; empty disables the check.
        trigger_phrases: Phrases that start a pipeline run.
        extension: Attachment extension accepted for staging.

    Raises:
        ValidationError: If a token is configured and the payload's differs.
    """
    if not isinstance(payload, dict):
        return IgnorableEvent(reason="payload is not an object")

    if payload.get("type") == "url_verification":
        _check_token(payload.get("token"), verification_token)
        return UrlChallenge(challenge=str(payload.get("challenge", "")))

    header = payload.get("header")
    if payload.get("schema") != MESSAGE_EVENT_SCHEMA or not isinstance(header, dict):
        return IgnorableEvent(reason="unsupported schema")
    if header.get("event_type") != MESSAGE_RECEIVED:
        return IgnorableEvent(reason=f"event type {header.get('event_type')}")
    _check_token(header.get("token"), verification_token)
    event_id = header.get("event_id")
    event_id = event_id if isinstance(event_id, str) else ""

    event = payload.get("event")
    message = event.get("message") if isinstance(event, dict) else None
    if not isinstance(message, dict):
        return IgnorableEvent(reason="event without message")

    conversation_id = message.get("chat_id")
    message_id = message.get("message_id")
    if not (isinstance(conversation_id, str) and conversation_id
            and isinstance(message_id, str) and message_id):
        return IgnorableEvent(reason="message without chat_id or message_id")

    content = _decode_content(message.get("content"))
    message_type = message.get("message_type")

    if message_type == "text":
        text = content.get("text")
        text = text if isinstance(text, str) else ""
        if contains_trigger(text, trigger_phrases):
            return TriggerEvent(
                conversation_id=conversation_id, message_id=message_id, text=text,
                event_id=event_id,
            )
        return IgnorableEvent(reason="text without trigger phrase")

    if message_type == "file":
        file_name = content.get("file_name") or DEFAULT_FILE_NAME
        file_key = content.get("file_key")
        if not file_key:
            return IgnorableEvent(reason="file message without file_key")
        if not layout.has_extension(str(file_name), extension):
            return IgnorableEvent(reason=f"unsupported attachment {file_name}")
        return FileStagingEvent(
            conversation_id=conversation_id,
            message_id=message_id,
            file_key=str(file_key),
            file_name=str(file_name),
            event_id=event_id,
        )

    return IgnorableEvent(reason=f"message type {message_type}")


def _check_token(received: Any, expected: str) -> None:
    if expected and received != expected:
        raise ValidationError("Invalid verification token")


def _decode_content(raw: Any) -> dict[str, Any]:
    """Message content is itself a JSON-encoded string."""
    if not isinstance(raw, str):
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}
