"""
MathMentor Scheduling Backend — Request Actor Dependency
==========================================================

What:  Resolves the acting user from headers set by the upstream auth gateway.
Why:   Authentication is owned by another service. This one trusts the
       gateway-supplied identity and enforces ownership in the services.

Headers:
    X-User-Id:   UUID of the acting user (required on /api routes)
    X-User-Role: student | tutor | admin (optional)
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from app.exceptions import UnauthorizedError, ValidationError
from app.models.enums import UserRole


@dataclass(frozen=True)
class Actor:
    user_id: uuid.UUID
    role: Optional[UserRole] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise ValidationError("X-User-Id must be a UUID", field="X-User-Id")

    role = None
    if x_user_role:
        try:
            role = UserRole(x_user_role.lower())
        except ValueError:
            raise ValidationError(
                f"Unknown role '{x_user_role}'", field="X-User-Role"
            )
    return Actor(user_id=user_id, role=role)


def require_self_or_admin(actor: Actor, user_id: uuid.UUID) -> None:
    """Someone's bookings and booking stats are visible to that person and admins."""
    if actor.user_id != user_id and not actor.is_admin:
        raise UnauthorizedError("You can only view your own bookings")


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise UnauthorizedError("This action requires the admin role")
