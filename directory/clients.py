"""
directory/clients.py -- Tenant ("client") lookup and policy attributes.

Pattern: Repository + Data Mapper. ClientDirectory is the repository;
_row_to_client is the mapper. Read-only apart from register(), which exists
for bootstrap and test seeding.

A client is looked up by exactly one selector. When a caller supplies more
than one, id wins over name, and name wins over domain.

Layer rule: no imports from auth/.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core import db
from core.errors import AlreadyRegistered, BadRequest, ConfigError, NotFound
from core.models import Client

logger = logging.getLogger("gatehouse.directory")

# Columns an administrator may change after registration. id and name are fixed.
ADMIN_FIELDS = frozenset(
    {"domain", "default_group_id", "timeout_seconds", "cookie_name", "description", "admin_user_id"}
)


class ClientDirectory:
    """Repository for Client records.

    Usage:
        directory = ClientDirectory(engine)
        client = directory.resolve(name="Project Foo")
        timeout = directory.timeout_for(client)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def resolve(self, client_id: int | None = None, name: str | None = None, domain: str | None = None) -> Client:
        """Return the client matching the first supplied selector.

        Raises BadRequest if no selector is supplied, NotFound if no client
        matches the chosen selector. The lower-priority selectors are ignored
        once a higher-priority one is present, even if it does not match.
        """
        if client_id is not None:
            where = db.clients.c.id == client_id
            described = f"id {client_id}"
        elif name:
            where = db.clients.c.name == name
            described = f"name {name!r}"
        elif domain:
            where = db.clients.c.domain == domain
            described = f"domain {domain!r}"
        else:
            raise BadRequest("No client identification provided.")

        with self.engine.connect() as conn:
            row = conn.execute(select(db.clients).where(where)).fetchone()
        if row is None:
            raise NotFound(f"No client with {described}.")
        return _row_to_client(row)

    def timeout_for(self, client: Client) -> int:
        """Return the client's session timeout in seconds.

        A missing or non-positive timeout would expire every session the
        moment it is issued, so it is a configuration error rather than a
        default.
        """
        if not client.timeout_seconds or client.timeout_seconds <= 0:
            logger.warning("Client %r has no usable session timeout", client.name)
            raise ConfigError(f"Client {client.name!r} does not have a session timeout configured.")
        return client.timeout_seconds

    def admin_contact(self, client: Client) -> str | None:
        """Return the email address of the client's admin user, if any."""
        if client.admin_user_id is None:
            return None
        with self.engine.connect() as conn:
            return conn.execute(select(db.users.c.email).where(db.users.c.id == client.admin_user_id)).scalar()

    def register(self, client: Client) -> int:
        """Insert a new client and return its assigned id.

        Raises AlreadyRegistered if the name or domain is already used.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    db.clients.insert().values(
                        name=client.name,
                        domain=client.domain,
                        default_group_id=client.default_group_id,
                        timeout_seconds=client.timeout_seconds,
                        cookie_name=client.cookie_name,
                        description=client.description,
                        admin_user_id=client.admin_user_id,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise AlreadyRegistered(f"Client name {client.name!r} or domain is already registered.") from exc
        client.id = result.inserted_primary_key[0]
        logger.info("Client registered: %s (%d)", client.name, client.id)
        return client.id

    def update(self, client_id: int, **fields) -> bool:
        """Update admin-managed fields. Returns False if client_id was not found.

        Raises BadRequest for any field outside ADMIN_FIELDS.
        """
        if not fields:
            raise BadRequest("No client fields to update.")
        locked = set(fields) - ADMIN_FIELDS
        if locked:
            raise BadRequest(f"Client fields cannot be updated: {', '.join(sorted(locked))}")
        with self.engine.connect() as conn:
            result = conn.execute(db.clients.update().where(db.clients.c.id == client_id).values(**fields))
            conn.commit()
        return result.rowcount > 0


def _row_to_client(row) -> Client:
    return Client(
        id=row.id,
        name=row.name,
        domain=row.domain,
        default_group_id=row.default_group_id,
        timeout_seconds=row.timeout_seconds,
        cookie_name=row.cookie_name,
        description=row.description,
        admin_user_id=row.admin_user_id,
    )
