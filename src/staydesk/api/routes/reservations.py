"""Reservation endpoints - booking and front-desk lifecycle actions.

Actions live under /reservations/{id}/actions/<name>. An action that the
current status does not allow answers 409.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from staydesk.api.errors import http_errors
from staydesk.api.rbac import PropertyRoleContext, require_property_role
from staydesk.domain.reservations import (
    CheckOutRequest,
    ExtendStayRequest,
    MoveRoomRequest,
    ReservationCreate,
    RoomAssignmentsRequest,
)
from staydesk.infra import property_settings
from staydesk.services import reservation_service

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _assignments(body: RoomAssignmentsRequest) -> dict[str, str]:
    return {a.reservation_room_id: a.room_id for a in body.room_assignments}


@router.post("", status_code=201)
def create_reservation(
    body: ReservationCreate,
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("create reservation", property_id=ctx.property_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.create_reservation(
            cur,
            policy,
            guest_id=body.guest_id,
            check_in_date=body.check_in_date,
            check_out_date=body.check_out_date,
            rooms=body.rooms,
            adults=body.adults,
            children=body.children,
            source=body.source,
            special_requests=body.special_requests,
            notes=body.internal_notes,
            discount_cents=body.discount_cents,
            created_by=ctx.user.id,
        )


@router.get("/stats")
def reservation_stats(
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("load reservation stats", property_id=ctx.property_id):
        return reservation_service.get_reservation_stats(cur, property_id=ctx.property_id)


@router.post("/{reservation_id}/actions/check-in")
def check_in(
    body: RoomAssignmentsRequest,
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    """Check in; every reservation room must have a room after merging assignments."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "check in", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.check_in(
            cur,
            policy,
            reservation_id=reservation_id,
            room_assignments=_assignments(body),
            changed_by=ctx.user.id,
        )


@router.post("/{reservation_id}/actions/assign-rooms")
def assign_rooms(
    body: RoomAssignmentsRequest,
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "assign rooms", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.assign_rooms(
            cur, policy, reservation_id=reservation_id, room_assignments=_assignments(body)
        )


@router.post("/{reservation_id}/actions/move-room")
def move_room(
    body: MoveRoomRequest,
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "move room", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.move_room(
            cur,
            policy,
            reservation_id=reservation_id,
            reservation_room_id=body.reservation_room_id,
            new_room_id=body.new_room_id,
        )


@router.post("/{reservation_id}/actions/check-out")
def check_out(
    body: CheckOutRequest,
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    """Check out and return the invoice summary plus assigned housekeepers."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "check out", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.check_out(
            cur,
            policy,
            reservation_id=reservation_id,
            close_folio=body.close_folio,
            changed_by=ctx.user.id,
        )


@router.post("/{reservation_id}/actions/cancel")
def cancel(
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "cancel reservation", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.cancel(
            cur, policy, reservation_id=reservation_id, changed_by=ctx.user.id
        )


@router.post("/{reservation_id}/actions/extend-stay")
def extend_stay(
    body: ExtendStayRequest,
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "extend stay", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.extend_stay(
            cur,
            policy,
            reservation_id=reservation_id,
            new_check_in_date=body.new_check_in_date,
            new_check_out_date=body.new_check_out_date,
        )


@router.delete("/{reservation_id}")
def delete_reservation(
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    """Hard-delete a confirmed or cancelled reservation. Requires manager."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors(
        "delete reservation", property_id=ctx.property_id, reservation_id=reservation_id
    ):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return reservation_service.delete(cur, policy, reservation_id=reservation_id)
