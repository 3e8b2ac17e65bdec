"""
directory/users.py -- User registration, lookup, and the UserProfile handle.

Pattern: Repository + Data Mapper (UserDirectory / _row_to_user), plus a
handle object (UserProfile) that batches edits until save().

Field access is declared, not discovered: FIELD_ACCESS is the capability
table for the core user columns. A tenant that keeps extra per-user data
plugs in a ProfileExtension; its fields are exposed read-write and passed
through untouched -- the directory never inspects the extension's storage.

Uniqueness:
  username and email are UNIQUE in the schema. register() inserts the user
  and the initial membership in one transaction; a duplicate surfaces as
  IntegrityError and becomes AlreadyRegistered. No SELECT-then-INSERT race.

Users are never hard-deleted here; disable() is the administrative off switch.

Layer rule: no imports from auth/.
"""

from __future__ import annotations

import dataclasses
import logging
from enum import Flag
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core import db
from core.config import Settings, get_settings
from core.errors import AlreadyRegistered, BadRequest, ConfigError, NotFound
from core.models import Client, User
from core.passwords import generate_password, hash_password
from core.validation import VALIDATED_FIELDS, field_problems, validate_field
from directory.groups import GroupStore

logger = logging.getLogger("gatehouse.directory")


class Access(Flag):
    READ = 1
    WRITE = 2
    READ_WRITE = READ | WRITE


FIELD_ACCESS: dict[str, Access] = {
    "id": Access.READ,
    "username": Access.READ,
    "disabled": Access.READ,  # changed only via disable() / enable()
    "registered_at": Access.READ,
    "email": Access.READ_WRITE,
    "first_name": Access.READ_WRITE,
    "last_name": Access.READ_WRITE,
    "phone": Access.READ_WRITE,
    "address1": Access.READ_WRITE,
    "address2": Access.READ_WRITE,
    "city": Access.READ_WRITE,
    "state": Access.READ_WRITE,
    "country": Access.READ_WRITE,
    "zip_code": Access.READ_WRITE,
}

PROFILE_FIELDS = frozenset(name for name, access in FIELD_ACCESS.items() if access & Access.WRITE)


class ProfileExtension(Protocol):
    """Tenant-supplied storage for supplemental user fields."""

    fields: frozenset[str]

    def load(self, user_id: int) -> dict[str, Any]: ...

    def save(self, user_id: int, values: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserDirectory:
    """Repository for User records.

    Usage:
        users = UserDirectory(engine, GroupStore(engine))
        profile = users.register(client, "alice", "secretpw", "a@x.com", first_name="Alice")
        profile.set("city", "Boston")
        profile.save()
    """

    def __init__(
        self,
        engine: Engine,
        groups: GroupStore,
        extension: ProfileExtension | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.engine = engine
        self.groups = groups
        self.extension = extension
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        client: Client,
        username: str,
        password: str,
        email: str,
        group_id: int | None = None,
        notes: list[str] | None = None,
        **profile: Any,
    ) -> UserProfile:
        """Create a user, add them to their initial group, and return a profile.

        Username, password and email must all validate; otherwise BadRequest
        lists every problem. Optional profile fields that fail validation are
        skipped and described in notes instead of failing the registration.

        The initial group is group_id, else the client's default group, else
        settings.default_group_id; with none of those it is a ConfigError.
        """
        notes = notes if notes is not None else []
        problems = (
            field_problems("username", username)
            + field_problems("password", password, strict=self.settings.strict_passwords)
            + field_problems("email", email)
        )
        if problems:
            raise BadRequest("Some required registration fields are missing or invalid.", details=problems)

        extension_fields = self.extension.fields if self.extension else frozenset()
        unknown = set(profile) - PROFILE_FIELDS - extension_fields
        if unknown:
            raise BadRequest(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        initial_group = group_id or client.default_group_id or self.settings.default_group_id
        if initial_group is None:
            raise ConfigError("Could not determine initial group for new user.")
        if self.groups.get(initial_group) is None:
            raise ConfigError(f"Initial group {initial_group} does not exist.")

        columns: dict[str, Any] = {}
        for name, value in profile.items():
            if name in extension_fields or value in (None, ""):
                continue
            issues = field_problems(name, value) if name in VALIDATED_FIELDS else []
            if issues:
                notes.append(f"Value for optional field {name} invalid, skipped: {'; '.join(issues)}")
                continue
            columns[name] = value

        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    db.users.insert().values(
                        username=username,
                        email=email,
                        password_hash=hash_password(password),
                        disabled=0,
                        registered_at=db.now_iso(),
                        **columns,
                    )
                )
                user_id = result.inserted_primary_key[0]
                conn.execute(db.memberships.insert().values(user_id=user_id, group_id=initial_group))
                conn.commit()
        except IntegrityError as exc:
            raise self._duplicate_error(username, email) from exc

        extra = {k: v for k, v in profile.items() if k in extension_fields}
        if extra:
            self.extension.save(user_id, extra)

        logger.info("User registered: %s (%d) in group %d", username, user_id, initial_group)
        notes.append(f"User {username} registered.")
        return self.load(user_id=user_id, client=client)

    def _duplicate_error(self, username: str, email: str) -> AlreadyRegistered:
        if self.get_by_username(username) is not None:
            return AlreadyRegistered(f"Username {username!r} is already used.")
        return AlreadyRegistered(f"Email {email!r} is already registered.")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(select(db.users).where(db.users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(db.users).where(db.users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def load(self, user_id: int | None = None, username: str | None = None, client: Client | None = None) -> UserProfile:
        """Return a UserProfile by id or username.

        Raises BadRequest if neither is supplied, NotFound if no user matches.
        """
        if user_id is not None:
            user = self.get_by_id(user_id)
        elif username:
            user = self.get_by_username(username)
        else:
            raise BadRequest("Either the user id or username is required.")
        if user is None:
            raise NotFound(f"User {user_id if user_id is not None else username!r} not found.")
        extra = self.extension.load(user.id) if self.extension else {}
        return UserProfile(self, user, client=client, extension_values=extra)

    # ------------------------------------------------------------------
    # Writes used by UserProfile
    # ------------------------------------------------------------------

    def update_fields(self, user_id: int, **fields: Any) -> bool:
        """Write column values for one user. Returns False if user_id was not found."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(db.users.update().where(db.users.c.id == user_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise AlreadyRegistered(f"Email {fields.get('email')!r} is already registered.") from exc
        return result.rowcount > 0

    def set_disabled(self, user_id: int, disabled: bool) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                db.users.update().where(db.users.c.id == user_id).values(disabled=1 if disabled else 0)
            )
            conn.commit()
        logger.info("User %d %s", user_id, "disabled" if disabled else "enabled")
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Profile handle
# ---------------------------------------------------------------------------


class UserProfile:
    """A loaded user with batched, validated edits.

    set() and set_password() only stage changes; nothing reaches the store
    until save(). disable() and enable() are administrative actions and apply
    immediately.
    """

    def __init__(
        self,
        directory: UserDirectory,
        user: User,
        client: Client | None = None,
        extension_values: dict[str, Any] | None = None,
    ) -> None:
        self._directory = directory
        self._user = user
        self.client = client
        self._extension_values = dict(extension_values or {})
        self._pending: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"UserProfile(id={self._user.id}, username={self._user.username!r})"

    @property
    def id(self) -> int:
        return self._user.id

    @property
    def username(self) -> str:
        return self._user.username

    @property
    def disabled(self) -> bool:
        return self._user.disabled

    @property
    def user(self) -> User:
        """A copy of the last saved state."""
        return dataclasses.replace(self._user)

    @property
    def changed(self) -> frozenset[str]:
        return frozenset("password" if k == "password_hash" else k for k in self._pending)

    def _access(self, name: str) -> Access:
        if name in FIELD_ACCESS:
            return FIELD_ACCESS[name]
        extension = self._directory.extension
        if extension is not None and name in extension.fields:
            return Access.READ_WRITE
        raise KeyError(f"Unknown user field {name!r}")

    def get(self, name: str) -> Any:
        self._access(name)
        if name in self._pending:
            return self._pending[name]
        if name in FIELD_ACCESS:
            return getattr(self._user, name)
        return self._extension_values.get(name)

    def set(self, name: str, value: Any) -> Any:
        """Stage a new value for a writable field.

        Raises PermissionError for read-only fields (a programming error) and
        BadRequest when the value fails validation; the staged value is left
        unchanged in that case.
        """
        if not self._access(name) & Access.WRITE:
            raise PermissionError(f"User field {name!r} is read-only")
        if name in VALIDATED_FIELDS:
            value = validate_field(name, value)
        self._pending[name] = value
        return value

    def set_password(self, plain: str) -> None:
        validate_field("password", plain, strict=self._directory.settings.strict_passwords)
        self._pending["password_hash"] = hash_password(plain)

    def reset_password(self) -> str:
        """Stage a random password and return its plaintext. Call save() to apply."""
        plain = generate_password()
        self._pending["password_hash"] = hash_password(plain)
        return plain

    def save(self) -> bool:
        """Write staged changes. Returns False when there was nothing to save."""
        if not self._pending:
            return False
        extension = self._directory.extension
        extra = {k: v for k, v in self._pending.items() if k not in FIELD_ACCESS and k != "password_hash"}
        columns = {k: v for k, v in self._pending.items() if k not in extra}
        if columns:
            self._directory.update_fields(self._user.id, **columns)
            self._user = dataclasses.replace(self._user, **columns)
        if extra:
            extension.save(self._user.id, extra)
            self._extension_values.update(extra)
        self._pending.clear()
        return True

    def disable(self) -> None:
        self._directory.set_disabled(self._user.id, True)
        self._user.disabled = True

    def enable(self) -> None:
        self._directory.set_disabled(self._user.id, False)
        self._user.disabled = False


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        disabled=bool(row.disabled),
        first_name=row.first_name,
        last_name=row.last_name,
        phone=row.phone,
        address1=row.address1,
        address2=row.address2,
        city=row.city,
        state=row.state,
        country=row.country,
        zip_code=row.zip_code,
        registered_at=row.registered_at,
    )
