"""
auth/credentials.py -- Credential Verifier: username/password against the stored hash.

verify() does not reject disabled users. It reports disabled
status and lets AuthEngine decide, so "wrong password" (AuthFailed) and
"disabled account" (Forbidden, decided by the engine) stay distinguishable.
"""

from __future__ import annotations

import logging

from core.errors import AuthFailed, BadRequest, NotFound
from core.models import VerifyResult
from core.passwords import verify_password
from directory.users import UserDirectory

logger = logging.getLogger("gatehouse.auth")


class CredentialVerifier:
    def __init__(self, users: UserDirectory) -> None:
        self.users = users

    def verify(self, username: str, password: str) -> VerifyResult:
        """Check password for username.

        Raises BadRequest if either value is empty, NotFound if the username
        does not exist, AuthFailed if the password does not match.
        """
        if not username or not password:
            raise BadRequest("Username and password are both required.")

        user = self.users.get_by_username(username)
        if user is None:
            raise NotFound(f"Invalid account, username {username!r} not found.")

        if not verify_password(password, user.password_hash):
            logger.info("Password mismatch for user %d", user.id)
            raise AuthFailed("Incorrect password.")

        return VerifyResult(
            user_id=user.id,
            username=user.username,
            disabled=user.disabled,
            password_hash=user.password_hash,
        )
