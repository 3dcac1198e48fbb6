"""
Security models - Roles enum and acting identity
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple
from uuid import UUID


class Role(str, enum.Enum):
    """RBAC roles"""
    USER = "USER"
    MEDIATOR = "MEDIATOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    SYSTEM = "SYSTEM"  # Webhooks, sweeps and other non-human actors


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
RESOLVER_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN, Role.MEDIATOR})

# Highest privilege first; used to pick the role recorded in audit logs
_ROLE_PRECEDENCE = (Role.SUPER_ADMIN, Role.ADMIN, Role.MEDIATOR, Role.SYSTEM, Role.USER)


@dataclass(frozen=True)
class Actor:
    """Identity performing a state transition"""
    user_id: Optional[UUID]
    roles: Tuple[Role, ...] = field(default_factory=tuple)

    @classmethod
    def from_role_names(cls, user_id: Optional[UUID], role_names) -> "Actor":
        roles = []
        for name in role_names or ():
            try:
                roles.append(Role(str(name).upper()))
            except ValueError:
                continue
        return cls(user_id=user_id, roles=tuple(roles))

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, roles=(Role.SYSTEM,))

    def has_any_role(self, allowed) -> bool:
        return any(role in allowed for role in self.roles)

    @property
    def primary_role(self) -> Role:
        for role in _ROLE_PRECEDENCE:
            if role in self.roles:
                return role
        return Role.USER
