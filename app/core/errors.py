"""
Error taxonomy.

Every failure a handler can report is raised as a subclass of
:class:`AppError`. The application registers a single exception handler
that turns these into ``{"success": false, "error": "..."}`` responses
using the ``status_code`` carried by the exception.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(AppError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class PayloadTooLarge(AppError):
    status_code = 413


class AuthError(AppError):
    """Missing, invalid or mismatched credentials, or insufficient ownership."""

    status_code = 401


class MissingToken(AuthError):
    status_code = 401


class InvalidToken(AuthError):
    status_code = 401


class InvalidTokenFormat(AuthError):
    status_code = 400


class TokenEmailMismatch(AuthError):
    status_code = 403


class NotAuthorized(AuthError):
    status_code = 403


class UpstreamError(AppError):
    """
    Failure reported by one of the external services.

    ``status_code`` mirrors the upstream response status when there was
    one; network failures use 502.
    """

    status_code = 502


class InternalError(AppError):
    status_code = 500
