"""
auth/errors.py -- Error taxonomy for the authentication subsystem.

Every error carries a machine-readable ``code`` and the HTTP ``status_code``
the API layer should answer with. The API layer registers one exception
handler for AuthError and renders the shared ErrorResponse envelope; auth/
itself stays transport-agnostic.

Internal-only errors (CorruptCredential, InvalidToken) are raised by the
hasher and token service and never leave AuthService: the orchestrator logs
them and re-raises InvalidCredentials so callers cannot tell which factor
failed.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by auth/."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(AuthError):
    """Malformed input: empty password, unknown role, blank email."""

    code = "invalid_input"
    status_code = 422
    default_message = "Invalid input."


class InvalidCredentials(AuthError):
    """Wrong email/password pair, or an invalid, expired or tampered token."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid credentials."


class Forbidden(AuthError):
    """Token verified but its claims are incomplete, or the role is insufficient."""

    code = "forbidden"
    status_code = 403
    default_message = "Access denied."


class Conflict(AuthError):
    """A user with the given email already exists."""

    code = "conflict"
    status_code = 409
    default_message = "A user with that email already exists."


class NotFound(AuthError):
    """No user with the given id or email."""

    code = "not_found"
    status_code = 404
    default_message = "User not found."


class StorageUnavailable(AuthError):
    """The storage backend failed (connection loss, locked database).

    Distinct from the domain errors above. Retrying is the caller's call.
    """

    code = "storage_unavailable"
    status_code = 503
    default_message = "Storage backend unavailable."


class CorruptCredential(AuthError):
    """A stored password hash is malformed. Internal only."""

    code = "corrupt_credential"
    status_code = 401
    default_message = "Stored credential is malformed."


class InvalidToken(AuthError):
    """Token failed signature, structure, or expiry checks. Internal only.

    ``reason`` records which check failed so it can be logged; it is never
    surfaced to the client.
    """

    code = "invalid_token"
    status_code = 401
    default_message = "Invalid token."

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message)
