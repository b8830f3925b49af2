"""Who may do what.

Authentication is a callable turning a bearer token into a person id; the
default validates HS256 tokens carrying an `id` claim. Issuing tokens is
someone else's job.

Authorization is a `Policy` keyed on the caller's status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from jose import ExpiredSignatureError, JWTError, jwt

from .errors import Forbidden, Unauthorized
from .models import Person, Status

logger = logging.getLogger(__name__)

Authenticator = Callable[[str], int]

JWT_ALGORITHM = "HS256"


class JwtAuthenticator:
    def __init__(self, secret: str, *, algorithm: str = JWT_ALGORITHM) -> None:
        self._secret = secret
        self._algorithm = algorithm

    def __call__(self, token: str) -> int:
        if not token:
            raise Unauthorized("missing access token")
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            raise Unauthorized("access token has expired") from e
        except JWTError as e:
            logger.debug("token rejected: %s", type(e).__name__)
            raise Unauthorized("invalid access token") from e

        person_id = claims.get("id")
        if not isinstance(person_id, int) or isinstance(person_id, bool):
            raise Unauthorized("access token does not name a person")
        return person_id


@dataclass(frozen=True)
class Policy:
    edit_court: frozenset[str] = field(default_factory=lambda: frozenset({Status.ADMIN.value, Status.PLAYER.value}))
    edit_self: frozenset[str] = field(
        default_factory=lambda: frozenset({Status.ADMIN.value, Status.PLAYER.value, Status.INACTIVE.value})
    )
    edit_others: frozenset[str] = field(
        default_factory=lambda: frozenset({Status.ADMIN.value, Status.PLAYER.value, Status.INACTIVE.value})
    )
    maintain: frozenset[str] = field(default_factory=lambda: frozenset({Status.ADMIN.value}))

    def can_edit_court(self, user: Person) -> bool:
        return user.status in self.edit_court

    def can_edit_self(self, user: Person) -> bool:
        return user.status in self.edit_self

    def can_edit_others(self, user: Person) -> bool:
        return user.status in self.edit_others

    def can_edit_person(self, user: Person, person_id: int) -> bool:
        if user.id == person_id:
            return self.can_edit_self(user)
        return self.can_edit_others(user)

    def can_maintain(self, user: Person) -> bool:
        return user.status in self.maintain


def require(allowed: bool, message: str) -> None:
    if not allowed:
        raise Forbidden(message)
