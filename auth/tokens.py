"""
auth/tokens.py -- Session token generation and shape checking.

Session tokens are opaque bearer credentials looked up in the sessions table;
nothing is ever decoded from them. A token is HMAC-SHA256(SECRET_KEY, ...)
over the process id, a 128-bit random nonce, the user's password hash, the
username, and the current time, truncated to 32 lowercase hex characters.
The nonce alone makes tokens unguessable; the other inputs keep two tokens
minted in the same instant for different users distinct even if the nonce
source were weak.

Every token arriving from a caller is shape-checked with is_valid_token()
before it is used in any query.

Layer rule: no imports from directory/.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import re
import secrets
import time

from core.config import get_settings
from core.models import TOKEN_LENGTH, TOKEN_PATTERN

_TOKEN_RE = re.compile(TOKEN_PATTERN)


def generate_session_token(username: str, password_hash: str) -> str:
    material = f"{os.getpid()}:{secrets.token_hex(16)}:{password_hash}:{username}:{time.time_ns()}"
    digest = hmac.new(get_settings().secret_key.encode(), material.encode(), hashlib.sha256).hexdigest()
    return digest[:TOKEN_LENGTH]


def is_valid_token(token: object) -> bool:
    """Return True if token is a str of exactly the session-token shape."""
    return isinstance(token, str) and _TOKEN_RE.fullmatch(token) is not None


def token_prefix(token: str) -> str:
    """Short, log-safe form of a token."""
    return f"{token[:8]}..."
