"""Error taxonomy for the receipt-to-record pipeline."""

from __future__ import annotations


class ReceiptCalendarError(Exception):
    """Base class for every failure surfaced to the user."""


class ValidationFailure(ReceiptCalendarError):
    """The draft or selected date cannot be saved as-is."""


class ExtractionFailure(ReceiptCalendarError):
    """The extraction service was unreachable, rejected the image, or replied garbage."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RepositoryFailure(ReceiptCalendarError):
    """A list, insert or delete against the expense store failed."""


class IdentityFailure(ReceiptCalendarError):
    """No usable anonymous session could be established."""
