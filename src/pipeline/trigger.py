# src/pipeline/trigger.py - v1
"""Trigger phrase detection for inbound text messages."""

from __future__ import annotations

from collections.abc import Sequence


def contains_trigger(text: str, phrases: Sequence[str]) -> bool:
    """True if text contains any phrase verbatim (case-sensitive substring)."""
    if not text:
        return False
    return any(phrase and phrase in text for phrase in phrases)
