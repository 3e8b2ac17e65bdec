"""
auth/permissions.py -- PermissionStore: grant lookups and the allow/deny decision.

Decision order (short-circuit):
  1. Grants held by the user directly.
  2. Grants held by any of the user's groups -- only consulted when step 1
     found nothing, and group membership is not even loaded until then.
  3. Deny.

A grant row matches when it belongs to the requesting client, names the
resource exactly, its match_key glob matches the requested key, and its
mask contains EVERY requested bit: (stored & requested) == requested.

Match keys: a grant's match_key is a glob ("*" any run, "?" one char,
"[...]" a class) compared case-sensitively against the requested key. A
request without a key is not narrowed by key at all: every grant on the
resource counts, whatever its match_key.
The mask and resource filters run in SQL; the glob test runs on the
candidate rows.

A user with no direct match and no groups at all is a ConfigError: the store
cannot tell "legitimately has no groups" from "membership misconfigured".
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from fnmatch import fnmatchcase

from sqlalchemy import select
from sqlalchemy.engine import Engine

from core import db
from core.errors import BadRequest, ConfigError
from core.models import ANY_MATCH_KEY, FULL_MASK, PermissionGrant
from directory.groups import GroupStore

logger = logging.getLogger("gatehouse.auth.permissions")


class PermissionStore:
    """Read-side permission checks plus grant/revoke seeding helpers.

    Usage:
        perms = PermissionStore(engine, GroupStore(engine))
        perms.grant(PermissionGrant(client_id=1, resource="doc1", mask=READ, user_id=7))
        perms.check(client_id=1, user_id=7, resource="doc1", match_key="", mask=READ)
    """

    def __init__(self, engine: Engine, groups: GroupStore) -> None:
        self.engine = engine
        self.groups = groups

    def check(
        self,
        client_id: int,
        user_id: int,
        resource: str,
        match_key: str | None,
        mask: int,
        group_ids: Iterable[int] | None = None,
    ) -> bool:
        """Return True if the user (or one of their groups) holds mask on resource.

        group_ids may be supplied by a caller that already knows them; when
        None they are loaded lazily, after the user-level check misses.
        """
        if not resource:
            raise BadRequest("Resource to check against is required.")
        if not 0 < mask <= FULL_MASK:
            raise BadRequest(f"Permission mask {mask} is outside 1..{FULL_MASK}.")
        user_keys = self._candidate_keys(client_id, resource, mask, db.permissions.c.user_id == user_id)
        if _any_match(user_keys, match_key):
            logger.debug("Permission granted on user %d for %s", user_id, resource)
            return True

        groups = list(group_ids) if group_ids is not None else self.groups.group_ids_for(user_id)
        if not groups:
            raise ConfigError(f"User {user_id} is not a member of any groups.")

        group_keys = self._candidate_keys(client_id, resource, mask, db.permissions.c.group_id.in_(groups))
        if _any_match(group_keys, match_key):
            logger.debug("Permission granted on group for user %d for %s", user_id, resource)
            return True

        logger.debug("No grant for user %d on %s (%r) mask %d", user_id, resource, match_key, mask)
        return False

    def _candidate_keys(self, client_id: int, resource: str, mask: int, subject) -> list[str]:
        perms = db.permissions
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(perms.c.match_key).where(
                    (perms.c.client_id == client_id)
                    & subject
                    & (perms.c.resource == resource)
                    & (perms.c.mask.op("&")(mask) == mask)
                )
            ).fetchall()
        return [r.match_key for r in rows]

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def grant(self, grant: PermissionGrant) -> int:
        """Insert a grant for exactly one subject (user XOR group); return its id.

        A grant for the same (client, subject, resource, match_key) replaces
        the existing mask.
        """
        if (grant.user_id is None) == (grant.group_id is None):
            raise BadRequest("A grant needs exactly one subject: a user or a group.")
        if not 0 < grant.mask <= FULL_MASK:
            raise BadRequest(f"Permission mask {grant.mask} is outside 1..{FULL_MASK}.")
        match_key = grant.match_key or ANY_MATCH_KEY
        perms = db.permissions
        existing = (
            (perms.c.client_id == grant.client_id)
            & (perms.c.user_id == grant.user_id if grant.user_id is not None else perms.c.user_id.is_(None))
            & (perms.c.group_id == grant.group_id if grant.group_id is not None else perms.c.group_id.is_(None))
            & (perms.c.resource == grant.resource)
            & (perms.c.match_key == match_key)
        )
        modified_at = db.now_iso()
        with self.engine.connect() as conn:
            row = conn.execute(select(perms.c.id).where(existing)).fetchone()
            if row is not None:
                conn.execute(perms.update().where(perms.c.id == row.id).values(mask=grant.mask, modified_at=modified_at))
                grant_id = row.id
            else:
                result = conn.execute(
                    perms.insert().values(
                        client_id=grant.client_id,
                        user_id=grant.user_id,
                        group_id=grant.group_id,
                        resource=grant.resource,
                        match_key=match_key,
                        mask=grant.mask,
                        modified_at=modified_at,
                    )
                )
                grant_id = result.inserted_primary_key[0]
            conn.commit()
        grant.id = grant_id
        grant.match_key = match_key
        grant.modified_at = modified_at
        return grant_id

    def revoke_grant(self, grant_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(db.permissions.delete().where(db.permissions.c.id == grant_id))
            conn.commit()
        return result.rowcount > 0


def _any_match(patterns: list[str], match_key: str | None) -> bool:
    if not match_key:
        return bool(patterns)
    return any(fnmatchcase(match_key, pattern) for pattern in patterns)
