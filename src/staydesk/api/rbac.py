"""Property-scoped role checks.

Provides:
- Role hierarchy: viewer < staff < manager < owner
- require_property_role(): FastAPI dependency that resolves the caller's
  role on ?property_id= and enforces a minimum
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Query

from staydesk.api.auth import CurrentUser, get_current_user

# Lower index = less privilege
ROLE_HIERARCHY = ["viewer", "staff", "manager", "owner"]


@dataclass
class PropertyRoleContext:
    """Caller identity and role on one property."""

    user: CurrentUser
    property_id: str
    role: str


def _role_level(role: str) -> int:
    try:
        return ROLE_HIERARCHY.index(role)
    except ValueError:
        return -1


def _get_user_role_for_property(user_id: str, property_id: str) -> str | None:
    from staydesk.infra.db import txn

    with txn() as cur:
        cur.execute(
            "SELECT role FROM user_property_roles WHERE user_id = %s AND property_id = %s",
            (user_id, property_id),
        )
        row = cur.fetchone()
        return row[0] if row else None


def require_property_role(min_role: str) -> Callable[..., PropertyRoleContext]:
    """Build a dependency requiring at least `min_role` on the property.

    Usage:
        @router.post("/{folio_id}/charges")
        def add_charge(ctx: PropertyRoleContext = Depends(require_property_role("staff"))):
            ...

    Raises:
        ValueError: min_role is not in ROLE_HIERARCHY.
    """
    min_level = _role_level(min_role)
    if min_level < 0:
        raise ValueError(f"Invalid role: {min_role}")

    def dependency(
        property_id: str = Query(..., description="Property ID"),
        user: CurrentUser = Depends(get_current_user),
    ) -> PropertyRoleContext:
        role = _get_user_role_for_property(user.id, property_id)
        if role is None:
            raise HTTPException(status_code=403, detail="No access to property")
        if _role_level(role) < min_level:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return PropertyRoleContext(user=user, property_id=property_id, role=role)

    return dependency
