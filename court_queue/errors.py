"""Shared error taxonomy and reply envelope.

Core operations raise one of the `CodeError` subclasses below. The request
router is the only place that turns them into wire messages, so every reply
uses the same `{status, message, payload}` shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

STATUS_OK = 0


class CodeError(Exception):
    """Base class for errors that carry a reply status."""

    status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequest(CodeError):
    status = 400


class Unauthorized(CodeError):
    status = 401


class Forbidden(CodeError):
    status = 403


class NotFound(CodeError):
    status = 404


class InternalServerError(CodeError):
    status = 500


class ConsistencyError(InternalServerError):
    """Raised when a mutation would leave the roster, queue and courts out of step."""

    def __init__(self, count: int) -> None:
        super().__init__(f"Rollback on inconsistent data: count: {count}")
        self.count = count


class SchemaTimeout(InternalServerError):
    """A DDL change did not become visible within the retry budget."""


@dataclass(frozen=True)
class ErrorResponse:
    status: int
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorResponse:
        if isinstance(exc, CodeError):
            return cls(exc.status, exc.message)
        return cls(InternalServerError.status, str(exc) or type(exc).__name__)

    def to_message(self) -> dict[str, Any]:
        return {"status": self.status, "message": self.message}


def reply_envelope(payload: Any = None, *, message: str = "ok") -> dict[str, Any]:
    msg: dict[str, Any] = {"status": STATUS_OK, "message": message}
    if payload is not None:
        msg["payload"] = payload
    return msg
