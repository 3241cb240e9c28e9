"""Actor context forwarded as trusted headers by the upstream auth gateway."""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from cafepos.models import Role

BRANCH_SCOPED_ROLES = frozenset({Role.MANAGER, Role.EMPLOYEE})


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    tenant_id: int
    branch_id: Optional[int] = None

    @property
    def branch_scope(self) -> Optional[int]:
        """Branch the actor is confined to, None for tenant-wide roles."""
        if self.role in BRANCH_SCOPED_ROLES:
            return self.branch_id
        return None


def get_optional_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
    x_tenant_id: Optional[int] = Header(default=None),
    x_branch_id: Optional[int] = Header(default=None),
) -> Optional[Actor]:
    if not x_actor_id:
        return None
    if x_actor_role is None or x_tenant_id is None:
        raise HTTPException(status_code=401, detail="incomplete actor context")
    try:
        role = Role(x_actor_role.upper())
    except ValueError:
        raise HTTPException(status_code=401, detail="unknown actor role")
    if role in BRANCH_SCOPED_ROLES and x_branch_id is None:
        raise HTTPException(status_code=403, detail="branch-scoped actor without a branch")
    return Actor(id=x_actor_id, role=role, tenant_id=x_tenant_id, branch_id=x_branch_id)


def get_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(status_code=401, detail="unauthorized")
    return actor


def require_roles(*roles: Role):
    allowed = frozenset(roles)

    def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=403, detail="forbidden: insufficient permissions")
        return actor

    return dependency
