"""
auth/errors.py -- Expected, user-facing authentication outcomes.

Every error carries a machine-readable code, the HTTP status the boundary
should answer with, and a message that is safe to show a client. The api/
layer maps AuthError subclasses through a single exception handler; anything
that is not an AuthError is an unclassified failure and becomes a 500.

InvalidCredentials covers both "unknown username" and "wrong password" with
one message so login responses cannot be used to enumerate usernames.

Layer rule: no imports from api/, core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for expected authentication outcomes."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid username or password."


class AccountLocked(AuthError):
    code = "account_locked"
    status_code = 423
    default_message = "Account is locked due to too many failed login attempts."


class DuplicateUsername(AuthError):
    code = "duplicate_username"
    status_code = 400
    default_message = "Username is already taken."


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 400
    default_message = "Email is already in use."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "User not found."


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401
    default_message = "Invalid or expired token."


# ---------------------------------------------------------------------------
# Unclassified failures (not AuthError -- the boundary answers 500)
# ---------------------------------------------------------------------------


class StaleAccountError(Exception):
    """Raised by AccountStore.save when the row changed since it was read."""


class ConcurrentUpdateError(Exception):
    """Raised when a login outcome could not be persisted after all retries."""
