"""Error kinds reported by the gallery and quota operations.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with.  ``NotFoundError`` exists for callers that prefer an
exception; the stores themselves signal absence by returning ``None``.
"""

from __future__ import annotations


class GalleryError(Exception):
    """Base class for errors surfaced to API clients."""

    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidDataError(GalleryError):
    """The creation request is malformed (missing or empty image list)."""

    code = "INVALID_DATA"
    status_code = 400


class QuotaExceededError(GalleryError):
    """The store refused the write because of a platform quota."""

    code = "QUOTA_EXCEEDED"
    status_code = 429


class ServerError(GalleryError):
    """Any other persistence or unexpected failure."""

    code = "SERVER_ERROR"
    status_code = 500


class NotFoundError(GalleryError):
    code = "NOT_FOUND"
    status_code = 404


class UnauthorizedError(GalleryError):
    code = "UNAUTHORIZED"
    status_code = 401
