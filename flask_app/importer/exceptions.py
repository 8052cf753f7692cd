"""
Exception taxonomy shared by the import engine, its CLI and its blueprint.
"""

from __future__ import annotations

from http import HTTPStatus


class ImporterError(Exception):
    """Base exception for importer failures."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class NotFound(ImporterError):
    """Raised when a run, attachment or record cannot be located."""

    status_code = HTTPStatus.NOT_FOUND


class PermissionDenied(ImporterError):
    """Raised when the acting principal fails an ACL check."""

    status_code = HTTPStatus.FORBIDDEN


class InvalidRequest(ImporterError):
    """Raised for empty attachments or forbidden status transitions."""

    status_code = HTTPStatus.BAD_REQUEST


class BadJobData(InvalidRequest):
    """Raised when a deferred import job payload is incomplete."""


class TransientRowFailure(ImporterError):
    """A single row could not be written; the run carries on."""

    def __init__(self, message: str, *, row_index: int | None = None) -> None:
        super().__init__(message)
        self.row_index = row_index


class StructuredValueError(ImporterError):
    """
    Raised when a structured (JSON) cell cannot be decoded.

    Unlike other coercion problems this is never defaulted: the row and the
    run are aborted.
    """

    def __init__(self, attribute: str, raw: str, reason: str) -> None:
        super().__init__(f"Attribute '{attribute}' holds malformed structured data: {reason}")
        self.attribute = attribute
        self.raw = raw
