"""
Application exceptions.

Each carries the HTTP status the web layer should answer with. Anything
that is not an ``AppError`` is an internal fault and becomes a 500.
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for expected, client-visible failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequest(AppError):
    """A required request field is missing or malformed."""

    status_code = 400


class Unauthorized(AppError):
    """The operation needs a caller identity and none was supplied."""

    status_code = 401


class AccessDenied(AppError):
    """The caller does not own the requested conversation."""

    status_code = 403


class NotFound(AppError):
    """An id does not refer to a stored record."""

    status_code = 404
