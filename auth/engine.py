"""
auth/engine.py -- AuthEngine: authenticate, authorize, and user access for one client.

Session token lifecycle:

    Unauthenticated --authenticate()--> Active --idle > timeout--> Expired
                                          |
                                          +------logout()--------> Revoked

Expired and Revoked are terminal and recorded on the session row. Nothing
revives an old token; the caller authenticates again and gets a new one.

Tenancy:
  A session belongs to the client whose engine issued it. Every other
  client treats the token as unknown, so a client with a longer timeout
  can never keep alive a session another client has already expired.

Return convention:
  Every public method returns a Result with a fresh message list. Expected
  failures (wrong password, expired session, no permission, bad input,
  tenant misconfiguration) come back as a non-ok Result. Only fatal
  conditions raise: InvariantError, and backing-store errors from SQLAlchemy.

Concurrency:
  The engine holds no per-request state. The one cache, get_user()'s
  per-token profile memo, is dropped for a user whenever authenticate()
  issues that user a new token. No lock is held across store calls.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.credentials import CredentialVerifier
from auth.permissions import PermissionStore
from auth.sessions import SessionStore
from auth.tokens import is_valid_token, token_prefix
from core.config import Settings, get_settings
from core.db import create_db_engine, init_schema
from core.errors import AuthFailed, AuthServiceError, BadRequest, InvariantError, NotFound
from core.models import FULL_MASK, PERMISSION_MASKS, Client, Session
from core.results import Result, Status
from directory.clients import ClientDirectory
from directory.groups import GroupStore
from directory.users import ProfileExtension, UserDirectory, UserProfile

logger = logging.getLogger("gatehouse.auth")


def resolve_mask(permission: str | None = None, mask: int | str | None = None) -> int:
    """Translate the request into a permission mask.

    An explicit numeric mask wins over a named permission. Raises BadRequest
    if neither yields a mask in 1..15.
    """
    if mask is not None and mask != "":
        try:
            value = int(mask)
        except (TypeError, ValueError):
            value = 0
        if 0 < value <= FULL_MASK:
            return value
        raise BadRequest(f"Permission mask {mask!r} is not valid (1..{FULL_MASK}).")
    if permission and permission.lower() in PERMISSION_MASKS:
        return PERMISSION_MASKS[permission.lower()]
    raise BadRequest(
        "Need to know what permission to compare against. Either permission or mask was missing or invalid."
    )


class AuthEngine:
    """Authentication and authorization for one client (tenant).

    Usage:
        engine = AuthEngine.connect(client_name="Project Foo")
        result = engine.authenticate("alice", "secretpw", ip="10.0.0.5")
        if result.ok:
            token = result.value
            allowed = engine.authorize(token, "doc1", permission="read", ip="10.0.0.5")
    """

    def __init__(
        self,
        client: Client,
        *,
        directory: ClientDirectory,
        users: UserDirectory,
        sessions: SessionStore,
        permissions: PermissionStore,
        verifier: CredentialVerifier | None = None,
    ) -> None:
        if client.id is None:
            raise InvariantError(f"Client {client.name!r} doesn't know its own id")
        self.client = client
        self.directory = directory
        self.users = users
        self.sessions = sessions
        self.permissions = permissions
        self.verifier = verifier or CredentialVerifier(users)
        self._profiles: dict[str, UserProfile] = {}

    @classmethod
    def connect(
        cls,
        client_id: int | None = None,
        client_name: str | None = None,
        client_domain: str | None = None,
        db_url: str | None = None,
        extension: ProfileExtension | None = None,
        settings: Settings | None = None,
    ) -> AuthEngine:
        """Build every store on one shared database engine and resolve the client.

        Raises BadRequest / NotFound from ClientDirectory.resolve(): an engine
        for an unknown client is a startup failure, not a request failure.
        """
        settings = settings or get_settings()
        db_engine = create_db_engine(db_url or settings.database_url)
        init_schema(db_engine)
        directory = ClientDirectory(db_engine)
        client = directory.resolve(client_id=client_id, name=client_name, domain=client_domain)
        groups = GroupStore(db_engine)
        return cls(
            client,
            directory=directory,
            users=UserDirectory(db_engine, groups, extension=extension, settings=settings),
            sessions=SessionStore(db_engine, settings=settings),
            permissions=PermissionStore(db_engine, groups),
        )

    # ------------------------------------------------------------------
    # authenticate
    # ------------------------------------------------------------------

    def authenticate(self, username: str | None, password: str | None, ip: str | None = None) -> Result[str]:
        """Verify credentials and issue a new session token.

        If ip is given, the session is pinned to it: every later authorize()
        must present the same ip.
        """
        messages: list[str] = []
        if not username:
            return Result.failure(Status.BAD_REQUEST, "No username provided.", messages)
        if not password:
            return Result.failure(Status.BAD_REQUEST, "No password provided.", messages)

        try:
            verified = self.verifier.verify(username, password)
        except AuthFailed as exc:
            return Result.failure(Status.AUTH_REQUIRED, exc.message, messages)
        except AuthServiceError as exc:
            return _failure(exc, messages)

        if verified.disabled:
            logger.info("Authentication refused for disabled user %d", verified.user_id)
            return Result.failure(Status.FORBIDDEN, "User has been disabled.", messages)

        token = self.sessions.create(
            self.client.id, verified.user_id, verified.username, verified.password_hash, ip=ip
        )
        self._forget_profiles(verified.user_id)
        logger.info("User %d authenticated for client %d", verified.user_id, self.client.id)
        return Result.success(token, "User authenticated.", messages)

    # ------------------------------------------------------------------
    # authorize
    # ------------------------------------------------------------------

    def authorize(
        self,
        token: str | None,
        resource: str | None,
        permission: str | None = None,
        mask: int | str | None = None,
        match_key: str | None = None,
        ip: str | None = None,
    ) -> Result[bool]:
        """Check that token is live and its user may exercise mask on resource.

        On success the session's activity window slides forward. A session
        found idle past the timeout is marked expired. Any other failure
        leaves the session alone.
        """
        messages: list[str] = []
        if not resource:
            return Result.failure(Status.BAD_REQUEST, "No resource to authorize against provided.", messages)
        if not is_valid_token(token):
            return Result.failure(
                Status.BAD_REQUEST, f"Missing or malformed session token for authorization on {resource}.", messages
            )

        session = self._own_session(token)
        if session is None:
            return Result.failure(Status.ERROR, f"Session {token_prefix(token)} not found.", messages)

        if session.bound_ip and session.bound_ip != ip:
            logger.warning(
                "IP mismatch for session %s: bound %s, presented %s", token_prefix(token), session.bound_ip, ip
            )
            return Result.failure(
                Status.FORBIDDEN,
                f"Current IP ({ip}) does not match the IP used at login ({session.bound_ip}). "
                "This may indicate a session hijack.",
                messages,
            )

        if session.revoked:
            return Result.failure(Status.AUTH_REQUIRED, "Session has been revoked.", messages)
        if session.expired:
            return Result.failure(Status.AUTH_REQUIRED, "Session has timed out.", messages)

        try:
            timeout = self.directory.timeout_for(self.client)
            age = self.sessions.get_activity_age(token)
        except NotFound as exc:
            return Result.failure(Status.ERROR, exc.message, messages)
        except AuthServiceError as exc:
            return _failure(exc, messages)
        messages.append(f"Session idle {age:.0f}s of {timeout}s allowed.")

        if age > timeout:
            self.sessions.expire(token)
            return Result.failure(Status.AUTH_REQUIRED, "Session has timed out.", messages)

        try:
            requested = resolve_mask(permission, mask)
            if mask is not None and mask != "" and permission:
                messages.append("Numeric mask overrides named permission.")
            granted = self.permissions.check(
                self.client.id, session.user_id, resource, match_key, requested
            )
        except AuthServiceError as exc:
            return _failure(exc, messages)

        if not granted:
            return Result.failure(
                Status.FORBIDDEN,
                f"User for session {token_prefix(token)} not authorized to access {resource} ({match_key or ''}).",
                messages,
            )

        self.sessions.touch(token)
        return Result.success(True, "User authorized.", messages)

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------

    def get_user(self, token: str | None) -> Result[UserProfile]:
        """Return the profile of the session's user, memoized per token."""
        messages: list[str] = []
        if not is_valid_token(token):
            return Result.failure(Status.BAD_REQUEST, "Missing or malformed session token.", messages)

        cached = self._profiles.get(token)
        if cached is not None:
            return Result.success(cached, "Cached user object returned.", messages)

        session = self._own_session(token)
        if session is None:
            return Result.failure(Status.NOT_FOUND, f"Session {token_prefix(token)} not found.", messages)
        try:
            profile = self.users.load(user_id=session.user_id, client=self.client)
        except AuthServiceError as exc:
            return _failure(exc, messages)

        self._profiles[token] = profile
        return Result.success(profile, "User object created and returned.", messages)

    def register(
        self,
        username: str,
        password: str,
        email: str,
        group_id: int | None = None,
        **profile: Any,
    ) -> Result[UserProfile]:
        """Register a new user under this client. See UserDirectory.register()."""
        messages: list[str] = []
        try:
            created = self.users.register(
                self.client, username, password, email, group_id=group_id, notes=messages, **profile
            )
        except AuthServiceError as exc:
            return _failure(exc, messages)
        return Result.success(created, "User object created and returned.", messages, created=True)

    def logout(self, token: str | None) -> Result[None]:
        """Revoke a session. The token can never be authorized again."""
        messages: list[str] = []
        if not is_valid_token(token):
            return Result.failure(Status.BAD_REQUEST, "Missing or malformed session token.", messages)
        if self._own_session(token) is None or not self.sessions.revoke(token):
            return Result.failure(Status.NOT_FOUND, f"Session {token_prefix(token)} not found.", messages)
        self._profiles.pop(token, None)
        return Result.success(None, "Session revoked.", messages)

    def admin_contact(self) -> str | None:
        return self.directory.admin_contact(self.client)

    def _own_session(self, token: str) -> Session | None:
        """Return the session if this client issued it, else None."""
        session = self.sessions.get(token)
        if session is None or session.client_id != self.client.id:
            return None
        return session

    def _forget_profiles(self, user_id: int) -> None:
        stale = [t for t, p in self._profiles.items() if p.id == user_id]
        for t in stale:
            del self._profiles[t]


def _failure(exc: AuthServiceError, messages: list[str]) -> Result[Any]:
    messages.extend(exc.details)
    return Result.failure(exc.status, exc.message, messages)
