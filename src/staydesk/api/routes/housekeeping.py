"""Housekeeping task endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from staydesk.api.errors import http_errors
from staydesk.api.rbac import PropertyRoleContext, require_property_role
from staydesk.services import housekeeping_service

router = APIRouter(prefix="/housekeeping", tags=["housekeeping"])


@router.post("/tasks/{task_id}/start")
def start_task(
    task_id: str = Path(..., description="Task UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("start task", property_id=ctx.property_id, task_id=task_id):
        return housekeeping_service.start_task(cur, property_id=ctx.property_id, task_id=task_id)


@router.post("/tasks/{task_id}/complete")
def complete_task(
    task_id: str = Path(..., description="Task UUID"),
    update_room_status: bool = Query(True, description="Set the room vacant"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("complete task", property_id=ctx.property_id, task_id=task_id):
        return housekeeping_service.complete_task(
            cur,
            property_id=ctx.property_id,
            task_id=task_id,
            update_room_status=update_room_status,
        )
