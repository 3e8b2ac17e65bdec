"""
auth/sessions.py -- SessionStore: create, read, touch, and revoke sessions.

Timestamps are epoch seconds taken from the store's own clock (injectable,
defaults to time.time), never from the caller. Expiry is logical: a session
is expired when the age of its last activity exceeds the client timeout.
Once a client finds a session idle past its timeout it calls expire(), and
the session stays expired: touch() never moves a revoked or expired
session. Nothing here deletes sessions on expiry; purge_expired() exists
for out-of-band garbage collection only.

A session is issued by one client and records its id. Deciding whether
another client may use it is the caller's job (AuthEngine refuses).

Age-read race:
  A NULL last_activity_at means another writer is mid-update. The age read
  retries a bounded number of times with a short sleep between attempts
  and, if the timestamp never settles, raises SessionBusy rather than
  guessing either way.

Token collisions:
  The token is the primary key. On the (negligible) chance of a duplicate,
  create() mints a fresh token and retries, up to token_collision_retries.

Layer rule: no imports from directory/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sqlalchemy import case, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.tokens import generate_session_token, token_prefix
from core import db
from core.config import Settings, get_settings
from core.errors import InvariantError, NotFound, SessionBusy
from core.models import Session

logger = logging.getLogger("gatehouse.auth.sessions")


class SessionStore:
    """Repository for Session records.

    Usage:
        sessions = SessionStore(engine)
        token = sessions.create(client_id=1, user_id=7, username="alice", password_hash=h, ip="10.0.0.5")
        age = sessions.get_activity_age(token)
        sessions.touch(token)
    """

    def __init__(
        self,
        engine: Engine,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        settings: Settings | None = None,
    ) -> None:
        self.engine = engine
        self.clock = clock
        self.sleep = sleep
        self.settings = settings or get_settings()

    def create(
        self, client_id: int, user_id: int, username: str, password_hash: str, ip: str | None = None
    ) -> str:
        """Insert a new Active session for client_id and return its token."""
        for attempt in range(1, self.settings.token_collision_retries + 1):
            token = generate_session_token(username, password_hash)
            now = self.clock()
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        db.sessions.insert().values(
                            token=token,
                            user_id=user_id,
                            client_id=client_id,
                            ip=ip or None,
                            created_at=now,
                            last_activity_at=now,
                            revoked=0,
                        )
                    )
                    conn.commit()
            except IntegrityError:
                logger.warning("Session token collision on attempt %d, regenerating", attempt)
                continue
            logger.info("Session %s issued to user %d for client %d", token_prefix(token), user_id, client_id)
            return token
        raise InvariantError("Could not mint a unique session token")

    def get(self, token: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(db.sessions).where(db.sessions.c.token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_bound_ip(self, token: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(select(db.sessions.c.ip).where(db.sessions.c.token == token)).scalar()

    def touch(self, token: str) -> None:
        """Slide the expiry window: set last activity to the store's now.

        The window only moves forward: a touch racing a later one never
        overwrites the newer timestamp. Revoked and expired sessions are
        left alone.
        """
        now = self.clock()
        last = db.sessions.c.last_activity_at
        with self.engine.connect() as conn:
            conn.execute(
                db.sessions.update()
                .where(
                    (db.sessions.c.token == token) & (db.sessions.c.revoked == 0) & (db.sessions.c.expired == 0)
                )
                .values(last_activity_at=case((last > now, last), else_=now))
            )
            conn.commit()

    def get_activity_age(self, token: str) -> float:
        """Return seconds since the session's last activity.

        Raises NotFound if there is no such session, SessionBusy if the
        activity timestamp stays mid-update through every retry.
        """
        retries = self.settings.session_age_retries
        for attempt in range(retries + 1):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(db.sessions.c.last_activity_at).where(db.sessions.c.token == token)
                ).fetchone()
            if row is None:
                raise NotFound(f"Session {token_prefix(token)} not found.")
            if row.last_activity_at is not None:
                return max(0.0, self.clock() - row.last_activity_at)
            if attempt < retries:
                logger.debug("Activity timestamp for %s mid-update, retry %d", token_prefix(token), attempt + 1)
                self.sleep(self.settings.session_age_backoff)
        logger.warning("Gave up resolving activity age for %s after %d retries", token_prefix(token), retries)
        raise SessionBusy(f"Problem resolving timeout for session {token_prefix(token)}; retry the request.")

    def revoke(self, token: str) -> bool:
        """Mark a session Revoked. Returns False if no such session exists."""
        with self.engine.connect() as conn:
            result = conn.execute(db.sessions.update().where(db.sessions.c.token == token).values(revoked=1))
            conn.commit()
        if result.rowcount:
            logger.info("Session %s revoked", token_prefix(token))
        return result.rowcount > 0

    def expire(self, token: str) -> bool:
        """Mark a session Expired for good. Returns False if no such session exists."""
        with self.engine.connect() as conn:
            result = conn.execute(db.sessions.update().where(db.sessions.c.token == token).values(expired=1))
            conn.commit()
        if result.rowcount:
            logger.info("Session %s expired", token_prefix(token))
        return result.rowcount > 0

    def purge_expired(self, timeout_seconds: int) -> int:
        """Delete sessions idle longer than timeout_seconds, plus expired and revoked ones.

        Not called by the engine; run it periodically from the host process.
        Returns the number of rows deleted.
        """
        cutoff = self.clock() - timeout_seconds
        with self.engine.connect() as conn:
            result = conn.execute(
                db.sessions.delete().where(
                    (db.sessions.c.last_activity_at < cutoff)
                    | (db.sessions.c.revoked == 1)
                    | (db.sessions.c.expired == 1)
                )
            )
            conn.commit()
        return result.rowcount


def _row_to_session(row) -> Session:
    return Session(
        token=row.token,
        user_id=row.user_id,
        client_id=row.client_id,
        created_at=row.created_at,
        last_activity_at=row.last_activity_at,
        bound_ip=row.ip,
        revoked=bool(row.revoked),
        expired=bool(row.expired),
    )
