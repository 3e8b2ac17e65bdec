"""
core/passwords.py -- One-way salted password hashing.

Passwords: bcrypt, used directly (no passlib wrapper). Each hash embeds its
own 22-character salt drawn from bcrypt's alphabet -- lowercase, uppercase,
digits, "/" and "." -- generated once at hash time. Verification re-derives
the hash with the salt stored in the existing hash and compares; it never
generates a new salt.

Passwords longer than 72 bytes are silently truncated by bcrypt. Field
validation caps passwords at 16 characters, well below the threshold.

Layer rule: core/ is the kernel. No imports from directory/ or auth/.
"""

from __future__ import annotations

import secrets
import string

import bcrypt

from core.config import get_settings

# bcrypt's salt alphabet (its custom base64).
SALT_ALPHABET = string.ascii_lowercase + string.digits + "/" + string.ascii_uppercase + "."

# Generated passwords also draw a few symbols the validator allows.
_GENERATED_ALPHABET = SALT_ALPHABET + "*_-#!@"


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the stored bcrypt hash.

    A malformed stored hash (bcrypt raises ValueError) counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def generate_password(length: int | None = None) -> str:
    """Return a random password of 7-8 characters (or exactly length).

    Used for administrative resets; the caller is responsible for getting
    the plaintext to the user.
    """
    if length is None:
        length = 7 + secrets.randbelow(2)
    return "".join(secrets.choice(_GENERATED_ALPHABET) for _ in range(length))
