"""
core/db.py -- SQLAlchemy Core schema and engine factory for the backing store.

All Gatehouse repositories share one MetaData and one Engine: the permission
check joins memberships to grants, and the session store needs the same
users table the credential verifier reads. Repositories receive the Engine
from their caller rather than opening their own.

Security:
  All queries elsewhere use bound parameters built from these Table objects.
  No f-strings in SQL.

  UNIQUE constraints on users.username and users.email give registration its
  atomic insert-if-absent semantics: a concurrent duplicate fails with
  IntegrityError instead of racing a SELECT-then-INSERT.

Layer rule: core/ is the kernel. No imports from directory/ or auth/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

clients = Table(
    "clients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("domain", String(255), unique=True),
    Column("default_group_id", Integer),
    Column("timeout_seconds", Integer),
    Column("cookie_name", String(100)),
    Column("description", Text),
    Column("admin_user_id", Integer),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(50), nullable=False, unique=True),
    Column("password_hash", String(60), nullable=False),
    Column("disabled", Integer, nullable=False, server_default="0"),
    Column("first_name", String(20)),
    Column("last_name", String(30)),
    Column("phone", String(20)),
    Column("address1", String(100)),
    Column("address2", String(100)),
    Column("city", String(30)),
    Column("state", String(20)),
    Column("country", String(30)),
    Column("zip_code", String(10)),
    Column("registered_at", String(32), nullable=False),
)

groups = Table(
    "user_groups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("client_id", Integer, ForeignKey("clients.id"), nullable=False),
    Column("name", String(100), nullable=False),
    Column("owner_user_id", Integer),
)

memberships = Table(
    "memberships",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("group_id", Integer, ForeignKey("user_groups.id"), primary_key=True),
)

sessions = Table(
    "sessions",
    metadata,
    Column("token", String(32), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    # The client that issued the session; no other client may use it.
    Column("client_id", Integer, ForeignKey("clients.id"), nullable=False),
    Column("ip", String(45)),  # long enough for IPv6 text form
    Column("created_at", Float, nullable=False),
    Column("last_activity_at", Float),  # NULL while a writer is mid-update
    Column("revoked", Integer, nullable=False, server_default="0"),
    # Set once an authorize() finds the session idle past its timeout.
    Column("expired", Integer, nullable=False, server_default="0"),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("client_id", Integer, ForeignKey("clients.id"), nullable=False, index=True),
    # Exactly one of user_id / group_id is set; enforced by PermissionStore.grant().
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("group_id", Integer, ForeignKey("user_groups.id")),
    Column("resource", String(255), nullable=False),
    Column("match_key", String(255), nullable=False, server_default="*"),
    Column("mask", Integer, nullable=False),
    Column("modified_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str | None = None) -> Engine:
    """Create an Engine for db_url (default: settings.database_url)."""
    db_url = db_url or get_settings().database_url
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Idempotent -- safe to call on every startup."""
    metadata.create_all(engine)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
