"""Night audit endpoints.

business_date defaults to today's UTC date when not given.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from staydesk.api.errors import http_errors
from staydesk.api.rbac import PropertyRoleContext, require_property_role
from staydesk.infra import property_settings
from staydesk.infra.time import business_date as today
from staydesk.services import night_audit_service

router = APIRouter(prefix="/night-audit", tags=["night-audit"])


class CompleteAuditRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notes: str | None = None


@router.get("/stats")
def audit_stats(
    business_date: date | None = Query(None),
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("load audit stats", property_id=ctx.property_id):
        return night_audit_service.get_audit_stats(
            cur, property_id=ctx.property_id, business_date=business_date or today()
        )


@router.post("/start")
def start_audit(
    business_date: date | None = Query(None),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("start night audit", property_id=ctx.property_id):
        return night_audit_service.start_audit(
            cur,
            property_id=ctx.property_id,
            business_date=business_date or today(),
            run_by=ctx.user.id,
        )


@router.post("/post-room-charges")
def post_room_charges(
    business_date: date | None = Query(None),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("post room charges", property_id=ctx.property_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return night_audit_service.post_room_charges(
            cur, policy, business_date=business_date or today()
        )


@router.post("/complete")
def complete_audit(
    body: CompleteAuditRequest,
    business_date: date | None = Query(None),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("complete night audit", property_id=ctx.property_id):
        return night_audit_service.complete_audit(
            cur,
            property_id=ctx.property_id,
            business_date=business_date or today(),
            notes=body.notes,
        )
