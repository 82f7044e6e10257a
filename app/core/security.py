"""Actor resolution from headers set by the upstream identity gateway."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Header

from app.core.enums import RoleEnum
from app.shared.exceptions import UnauthenticatedException

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLES_HEADER = "X-Actor-Roles"


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated caller as asserted by the gateway."""

    id: UUID
    roles: frozenset[RoleEnum]

    @property
    def is_admin(self) -> bool:
        return RoleEnum.ADMIN in self.roles

    def has_role(self, role: RoleEnum) -> bool:
        return role in self.roles


def parse_roles(raw_roles: str) -> frozenset[RoleEnum]:
    """Parse comma-separated role list, rejecting unknown roles."""
    roles: set[RoleEnum] = set()
    for item in raw_roles.split(","):
        token = item.strip().lower()
        if not token:
            continue
        try:
            roles.add(RoleEnum(token))
        except ValueError as exc:
            raise UnauthenticatedException(f"Unknown role: {token}") from exc
    if not roles:
        raise UnauthenticatedException("Actor has no roles")
    return frozenset(roles)


async def get_current_actor(
    actor_id: str | None = Header(default=None, alias=ACTOR_ID_HEADER),
    actor_roles: str | None = Header(default=None, alias=ACTOR_ROLES_HEADER),
) -> Actor:
    """FastAPI dependency returning the trusted actor for the request."""
    if not actor_id or not actor_roles:
        raise UnauthenticatedException("Missing actor identity headers")
    try:
        parsed_id = UUID(actor_id)
    except ValueError as exc:
        raise UnauthenticatedException("Malformed actor id") from exc
    return Actor(id=parsed_id, roles=parse_roles(actor_roles))
