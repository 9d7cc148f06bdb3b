from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from alert_engine.services.errors import UnauthorizedError, ValidationError


class CallerKind(str, Enum):
    service = "service"
    user = "user"


@dataclass(frozen=True)
class CallerContext:
    kind: CallerKind
    user_id: str | None = None

    @classmethod
    def service(cls) -> CallerContext:
        return cls(kind=CallerKind.service)

    @classmethod
    def for_user(cls, user_id: str) -> CallerContext:
        return cls(kind=CallerKind.user, user_id=user_id)

    @property
    def is_service(self) -> bool:
        return self.kind == CallerKind.service


def authorize_target(caller: CallerContext, user_id: str | None) -> str:
    """Return the user a send may target, or raise before any business logic runs."""
    if caller.kind == CallerKind.service:
        if not user_id:
            raise ValidationError("user_id required for service auth")
        return user_id

    if caller.kind == CallerKind.user and caller.user_id:
        if user_id and user_id != caller.user_id:
            raise UnauthorizedError("Users may only send alerts to themselves")
        return caller.user_id

    raise UnauthorizedError()
