"""
core/validation.py -- Field-level sanity checks for user directory data.

These are input hygiene rules, not identity proofing: each field has a length
range and a permitted character set, and email gets a minimal shape check.
validate_field() returns the value unchanged when it passes and raises
BadRequest listing every rule it broke when it does not.

Layer rule: core/ is the kernel. No imports from directory/ or auth/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from core.errors import BadRequest


@dataclass(frozen=True)
class FieldRule:
    label: str
    min_length: int
    max_length: int
    # Matches characters that are NOT allowed in the field.
    forbidden: str
    # Fields other than username/password must contain at least one word char.
    needs_word_char: bool = True


# Username allows @ . - ' so an email address can double as a username.
_RULES: dict[str, FieldRule] = {
    "username": FieldRule("Username", 3, 50, r"[^\w'\-.@]+", needs_word_char=False),
    "password": FieldRule("Password", 6, 16, r"[;\s|><]+", needs_word_char=False),
    "first_name": FieldRule("First name", 2, 20, r"[^\w\-' ]+"),
    "last_name": FieldRule("Last name", 2, 30, r"[^\w\-' ]+"),
    "email": FieldRule("Email", 6, 50, r"[^\w\-.@]+"),
    "phone": FieldRule("Phone", 3, 20, r"[^\d\-. )(]+", needs_word_char=False),
    "address1": FieldRule("Address line 1", 6, 100, r"[^\w\-.# ]+"),
    "address2": FieldRule("Address line 2", 6, 100, r"[^\w\-.# ]+"),
    "city": FieldRule("City", 2, 30, r"[^\w\-. ]+"),
    "state": FieldRule("State", 2, 20, r"[^\w\-.]+"),
    "country": FieldRule("Country", 2, 30, r"[^\w\-. ]+"),
    "zip_code": FieldRule("Zip", 5, 10, r"[^0-9\-]+", needs_word_char=False),
}

VALIDATED_FIELDS = frozenset(_RULES)

_EMAIL_SHAPE = re.compile(r"[\w\-.]+@[\w\-.]+\.[\w\-.]{2}")


def field_problems(name: str, value: object, strict: bool = False) -> list[str]:
    """Return human-readable reasons value is invalid for field name ([] if valid).

    strict only affects passwords: require a digit, an upper and lower case
    letter, and a non-alphanumeric character.
    """
    rule = _RULES.get(name)
    if rule is None:
        raise KeyError(f"No validation rule for field {name!r}")
    if value is None or value == "":
        return [f"No {rule.label} provided."]
    if not isinstance(value, str):
        return [f"{rule.label} must be text, not {type(value).__name__}."]

    problems: list[str] = []
    if len(value) < rule.min_length or (rule.needs_word_char and not re.search(r"\w", value)):
        problems.append(f"{rule.label} is missing or too short (minimum {rule.min_length}).")
    elif len(value) > rule.max_length:
        problems.append(f"{rule.label} is too long (maximum {rule.max_length}).")

    bad = re.findall(rule.forbidden, value)
    if bad:
        # Never echo password characters back.
        shown = "" if name == "password" else f" ({' '.join(bad)})"
        problems.append(f"{rule.label} contains illegal characters{shown}.")

    if name == "email" and not _EMAIL_SHAPE.search(value):
        problems.append("Email does not appear to be a valid format.")

    if name == "password" and strict:
        if not (
            re.search(r"\d", value)
            and re.search(r"[A-Z]", value)
            and re.search(r"[a-z]", value)
            and re.search(r"[^\w]", value)
        ):
            problems.append("Password does not meet strict composition rules.")
    return problems


def validate_field(name: str, value: object, strict: bool = False) -> str:
    """Return value if valid for field name, else raise BadRequest."""
    problems = field_problems(name, value, strict=strict)
    if problems:
        label = _RULES[name].label
        raise BadRequest(f"{label} does not appear to be valid.", details=problems)
    return value  # type: ignore[return-value]
