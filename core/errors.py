"""
core/errors.py -- Application error kinds.

Every error a route can surface is one of these. Domain services wrap lower
layer failures (SQLAlchemy, requests, authlib) in the matching kind and
re-raise with `raise ... from exc`; api/main.py turns them into the standard
ErrorResponse envelope.

is_trusted marks errors raised deliberately by our own code. Untrusted errors
(5xx kinds) never put their message in the response body -- only a generic
one -- because the message may carry driver or provider internals.

Layer rule: core/ is the kernel. No imports from api/, auth/, or domains/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors with an HTTP mapping."""

    status_code: int = 500
    code: str = "internal_error"
    public_message: str = "An unexpected error occurred."

    def __init__(self, message: str = "", *, code: str | None = None, is_trusted: bool = True) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        if code is not None:
            self.code = code
        self.is_trusted = is_trusted

    @property
    def client_message(self) -> str:
        """Message safe to return in a response body."""
        if self.status_code >= 500:
            return self.public_message
        return self.message


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    public_message = "Invalid request."


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthorized"
    public_message = "Authentication required."


class AuthorizationError(AppError):
    status_code = 403
    code = "forbidden"
    public_message = "You do not have permission to perform this action."


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    public_message = "Resource not found."


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    public_message = "Resource already exists."


class DecryptionError(AppError):
    """Stored token could not be decrypted (bad IV, bad ciphertext, or wrong key)."""

    status_code = 500
    code = "internal_error"


class ProviderError(AppError):
    """An external provider (GitHub) call failed.

    code is an opaque identifier (e.g. "token_exchange_failed") that is safe
    to put in a redirect query string. The message is for logs only.
    """

    status_code = 502
    code = "provider_error"
    public_message = "Upstream provider request failed."


class StoreError(AppError):
    """A persistence operation failed unexpectedly."""

    status_code = 500
    code = "internal_error"
