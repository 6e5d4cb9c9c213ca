"""
Auth error taxonomy.

Every error carries an HTTP status, a stable code and a generic message. The
message never says why a credential or token was rejected.
"""
from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError

STORE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


class AuthError(Exception):
    status = 400
    code = "BAD_REQUEST"
    message = "Bad request"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidCredentials(AuthError):
    """Unknown email or wrong password; deliberately the same error."""

    status = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class InvalidToken(AuthError):
    """Malformed, expired, wrong-class, revoked or unknown token."""

    status = 401
    code = "INVALID_TOKEN"
    message = "Invalid or expired token"


class Unauthenticated(AuthError):
    status = 401
    code = "UNAUTHENTICATED"
    message = "Authentication required"


class Forbidden(AuthError):
    status = 403
    code = "FORBIDDEN"
    message = "You are not permitted to perform this action"


class AccountNotFound(AuthError):
    status = 404
    code = "NOT_FOUND"
    message = "Account not found"


class DuplicateAccount(AuthError):
    status = 409
    code = "CONFLICT"
    message = "An account with this email already exists"


class StoreUnavailable(AuthError):
    """The credential store or ledger could not be reached; retriable."""

    status = 503
    code = "SERVICE_UNAVAILABLE"
    message = "Service temporarily unavailable, please try again"


@contextmanager
def store_errors(session):
    """Roll back and re-raise connectivity failures as StoreUnavailable."""
    try:
        yield
    except STORE_ERRORS as exc:
        session.rollback()
        raise StoreUnavailable() from exc
