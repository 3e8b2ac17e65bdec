"""
core/models.py -- Domain dataclasses for Gatehouse.

Pattern: Data class (pure data container, zero logic). Repositories in
directory/ and auth/ own all persistence and policy; these dataclasses own
domain shape only.

Layer rule: no imports from directory/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Permission mask bits. Independently combinable: 12 == read + modify.
READ = 8
MODIFY = 4
CREATE = 2
DELETE = 1
FULL_MASK = READ | MODIFY | CREATE | DELETE

PERMISSION_MASKS: dict[str, int] = {
    "read": READ,
    "modify": MODIFY,
    "create": CREATE,
    "delete": DELETE,
}

# Grant match key that matches any requested key.
ANY_MATCH_KEY = "*"

# Session tokens: 32 lowercase hex chars.
TOKEN_LENGTH = 32
TOKEN_PATTERN = r"^[0-9a-f]{32}$"


@dataclass
class Client:
    """A tenant sharing the central user directory.

    timeout_seconds is the inactivity window for every session authorized
    under this client. None or 0 is a configuration error, not "no timeout".
    cookie_name is opaque to the engine; web glue uses it.
    """

    name: str
    id: int | None = None
    domain: str | None = None
    default_group_id: int | None = None
    timeout_seconds: int | None = None
    cookie_name: str | None = None
    description: str | None = None
    admin_user_id: int | None = None


@dataclass
class User:
    """A directory user. password_hash is a bcrypt hash with embedded salt.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    password_hash: str = ""
    id: int | None = None
    disabled: bool = False
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip_code: str | None = None
    registered_at: str | None = None  # ISO 8601, set by store on insert


@dataclass
class Session:
    """A bearer session. Timestamps are epoch seconds from the store's clock.

    last_activity_at is None while another writer is mid-update; readers
    must retry rather than guess (see SessionStore.get_activity_age).
    A session belongs to the client that issued it. expired and revoked are
    terminal.
    """

    token: str
    user_id: int
    client_id: int
    created_at: float
    last_activity_at: float | None = None
    bound_ip: str | None = None
    revoked: bool = False
    expired: bool = False


@dataclass
class Group:
    client_id: int
    name: str
    id: int | None = None
    owner_user_id: int | None = None


@dataclass
class PermissionGrant:
    """A mask of rights on (client, resource, match_key) for a user XOR a group.

    match_key is a glob pattern ("*" = any, "?" = one char) matched against
    the key supplied with an authorization request.
    """

    client_id: int
    resource: str
    mask: int
    user_id: int | None = None
    group_id: int | None = None
    match_key: str = ANY_MATCH_KEY
    id: int | None = None
    modified_at: str | None = None


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a successful password check. Disabled users still verify."""

    user_id: int
    username: str
    disabled: bool
    password_hash: str
