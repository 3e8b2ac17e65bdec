"""
core/results.py -- Status codes and the Result value returned by public calls.

Every public AuthEngine operation returns a Result instead of stashing a
"last result" on the engine object. The caller branches on result.status;
result.messages holds the human-readable diagnostics produced by that call
and only that call.

Status values double as HTTP-style codes (status.code) so a web layer can
translate a Result into a response without a lookup table of its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class Status(str, Enum):
    OK = "OK"
    CREATED = "CREATED"
    BAD_REQUEST = "BAD_REQUEST"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFIG_ERROR = "CONFIG_ERROR"
    ERROR = "ERROR"

    @property
    def code(self) -> int:
        return _HTTP_CODES[self]


_HTTP_CODES = {
    Status.OK: 200,
    Status.CREATED: 201,
    Status.BAD_REQUEST: 400,
    Status.AUTH_REQUIRED: 401,
    Status.FORBIDDEN: 403,
    Status.NOT_FOUND: 404,
    Status.CONFIG_ERROR: 500,
    Status.ERROR: 500,
}


@dataclass
class Result(Generic[T]):
    """Outcome of one public call: a status, an optional payload, and messages.

    value is only meaningful when ok is True. messages is always a fresh list
    owned by this Result; the last entry describes the final outcome.
    """

    status: Status
    value: T | None = None
    messages: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (Status.OK, Status.CREATED)

    @property
    def code(self) -> int:
        return self.status.code

    @property
    def message(self) -> str:
        """The last (most specific) message, or "" if none were recorded."""
        return self.messages[-1] if self.messages else ""

    def is_(self, status: Status) -> bool:
        return self.status is status

    @classmethod
    def success(cls, value: T | None, message: str, messages: list[str] | None = None, *, created: bool = False) -> Result[T]:
        notes = list(messages or [])
        notes.append(message)
        return cls(status=Status.CREATED if created else Status.OK, value=value, messages=notes)

    @classmethod
    def failure(cls, status: Status, message: str, messages: list[str] | None = None) -> Result[T]:
        notes = list(messages or [])
        notes.append(message)
        return cls(status=status, messages=notes)
