"""
Error taxonomy for the capture pipeline and the record store.

Extraction failures are not exceptions: the extractor returns
``ExtractionResult.failure(...)`` so callers can fall back to manual entry.
"""
from __future__ import annotations


class ReceiptError(Exception):
    """Base class for all receipt-service errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CaptureError(ReceiptError):
    """The image could not be captured or decoded."""


class DraftValidationError(ReceiptError):
    """One or more draft fields are invalid. ``errors`` maps field → message."""

    def __init__(self, errors: dict[str, str]) -> None:
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid receipt fields: {fields}")
        self.errors = dict(errors)


class UploadError(ReceiptError):
    """Image storage rejected or failed to store an image."""


class PersistenceError(ReceiptError):
    """The record store failed. The message is surfaced to callers verbatim."""


class RecordValidationError(PersistenceError):
    """The record store rejected the payload."""


class NotFoundError(PersistenceError):
    """The referenced receipt does not exist."""


class SubmissionInProgressError(ReceiptError):
    """A submission for this session is already running."""
