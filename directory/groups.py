"""
directory/groups.py -- Groups and user memberships.

Groups are owned by a client, but membership itself is client-agnostic: a
user's group ids are returned regardless of owner, and it is the grant rows
(scoped by client) that decide what a group may do where.

Layer rule: no imports from auth/.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core import db
from core.models import Group

logger = logging.getLogger("gatehouse.directory")


class GroupStore:
    """Repository for Group records and the memberships many-to-many table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_group(self, client_id: int, name: str, owner_user_id: int | None = None) -> Group:
        with self.engine.connect() as conn:
            result = conn.execute(
                db.groups.insert().values(client_id=client_id, name=name, owner_user_id=owner_user_id)
            )
            conn.commit()
        group = Group(client_id=client_id, name=name, owner_user_id=owner_user_id, id=result.inserted_primary_key[0])
        logger.info("Group created: %s (%d) for client %d", name, group.id, client_id)
        return group

    def get(self, group_id: int) -> Group | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(db.groups).where(db.groups.c.id == group_id)).fetchone()
        if row is None:
            return None
        return Group(id=row.id, client_id=row.client_id, name=row.name, owner_user_id=row.owner_user_id)

    def add_member(self, user_id: int, group_id: int) -> bool:
        """Add user to group. Returns False if already a member (idempotent)."""
        try:
            with self.engine.connect() as conn:
                conn.execute(db.memberships.insert().values(user_id=user_id, group_id=group_id))
                conn.commit()
        except IntegrityError:
            return False
        return True

    def remove_member(self, user_id: int, group_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                db.memberships.delete().where(
                    (db.memberships.c.user_id == user_id) & (db.memberships.c.group_id == group_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def group_ids_for(self, user_id: int) -> list[int]:
        """Return the ids of every group the user belongs to (possibly empty)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(db.memberships.c.group_id)
                .where(db.memberships.c.user_id == user_id)
                .order_by(db.memberships.c.group_id)
            ).fetchall()
        return [r.group_id for r in rows]
