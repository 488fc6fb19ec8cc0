"""
Error taxonomy for the intake pipeline.

Parsing failures are recovered locally and never leave the parser.
Credential and transport failures propagate to the caller; transport
failures where no response was received are classified as connectivity
errors and become eligible for the offline queue.
"""

from __future__ import annotations

import asyncio


class IntakeError(RuntimeError):
    """Base class for all intake pipeline errors."""


class CredentialMissing(IntakeError):
    """No API key is configured for the summarizer."""


class TransportError(IntakeError):
    """Network or HTTP failure while talking to the language model."""

    def __init__(self, message: str, *, offline: bool = False) -> None:
        super().__init__(message)
        self.offline = offline


class HttpError(TransportError):
    """The model backend answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"AI API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class InvalidResponse(TransportError):
    """The response envelope could not be decoded."""


class MalformedResponse(IntakeError):
    """Structured decode of a model response failed."""


class NoContentExtracted(IntakeError):
    """The model returned no usable text."""


def is_connectivity_error(exc: BaseException) -> bool:
    """Return True if ``exc`` means the device could not reach the model at all."""
    if isinstance(exc, TransportError):
        return exc.offline
    # A cancelled call is treated like a failed one: only queueable when
    # the cancellation was caused by a connectivity failure.
    if isinstance(exc, asyncio.CancelledError):
        cause = exc.__cause__ or exc.__context__
        return cause is not None and is_connectivity_error(cause)
    return False


class ContactNotFound(IntakeError):
    """The referenced contact is not in the roster."""

    def __init__(self, contact_id: object) -> None:
        super().__init__(f"Contact {contact_id} not found")
        self.contact_id = contact_id
