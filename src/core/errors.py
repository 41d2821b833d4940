# src/core/errors.py - v1
"""Error taxonomy shared by adapters, the stager and the orchestrator.

Every failure a run can hit maps onto one of these types. The orchestrator
decides per type whether a failure aborts the run, is swallowed, or is
reported as a normal outcome.
"""

from __future__ import annotations


class PdfDigestError(Exception):
    """Base class for all pdfdigest errors."""


class ConfigurationError(PdfDigestError):
    """Required credentials or settings are missing or inconsistent."""


class ValidationError(PdfDigestError):
    """Inbound webhook failed verification (token mismatch)."""


class EmptyInputError(PdfDigestError):
    """No staged documents to process for the conversation."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"No staged documents for conversation {conversation_id}")


class UpstreamError(PdfDigestError):
    """A call to storage, the understanding service or the chat platform failed."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(message)


class ObjectNotFoundError(UpstreamError):
    """A storage key does not exist (anymore)."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__("storage", f"Object not found: {key}")


class PartialWriteError(UpstreamError):
    """Document was created but writing its content failed."""

    def __init__(self, document_id: str, message: str) -> None:
        self.document_id = document_id
        super().__init__("document", message)
