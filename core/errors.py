"""
core/errors.py -- Exception taxonomy for Gatehouse components.

Components (ClientDirectory, Credential Verifier, SessionStore,
PermissionStore, UserDirectory) raise these for expected failure modes.
AuthEngine catches AuthServiceError at its public boundary and turns it into
a Result carrying exc.status -- callers of the engine never see them.

InvariantError is NOT an AuthServiceError: it means the
environment is unusable (e.g. a resolved client without an id) and must
abort the call. Backing-store errors (sqlalchemy.exc.SQLAlchemyError) are
likewise left to propagate.
"""

from core.results import Status


class AuthServiceError(Exception):
    """Base class for expected failures. Maps to Status.ERROR unless overridden."""

    status: Status = Status.ERROR

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Supporting diagnostics (e.g. every failed validation rule)
        self.details: list[str] = list(details or [])


class BadRequest(AuthServiceError):
    """Malformed or missing input."""

    status = Status.BAD_REQUEST


class AlreadyRegistered(BadRequest):
    """Username or email is already taken."""


class NotFound(AuthServiceError):
    """Unknown user, client, or session."""

    status = Status.NOT_FOUND


class AuthFailed(AuthServiceError):
    """Credentials did not match."""

    status = Status.AUTH_REQUIRED


class Forbidden(AuthServiceError):
    status = Status.FORBIDDEN


class SessionBusy(Forbidden):
    """Session activity age could not be read after bounded retries."""


class ConfigError(AuthServiceError):
    """Tenant or membership configuration makes the request undecidable."""

    status = Status.CONFIG_ERROR


class InvariantError(RuntimeError):
    """Internal invariant violated; fatal."""
