"""Reservation service - lifecycle transitions and their side effects.

Status transitions are checked against domain.reservations.ALLOWED_FROM.
Each operation locks the reservation row first and performs all of its
writes in the caller's transaction, so a failed validation leaves nothing
behind. Secondary effects that must not abort the transition (checkout
cleaning tasks, the availability query of a stay extension) run inside a
savepoint and are logged when they fail.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.ledger import price_charge
from staydesk.domain.reservations import (
    ReservationNotFoundError,
    ReservationRoomCreate,
    ReservationStatus,
    RoomStatus,
    booking_total_cents,
    nights_between,
    reprice_stay,
    require_transition,
)
from staydesk.domain.room_conflict import RoomUnavailableError, find_room_conflicts
from staydesk.infra.db import savepoint
from staydesk.infra.property_settings import PropertyContext
from staydesk.infra.repositories import (
    folio_repository,
    reservations_repository,
    rooms_repository,
)
from staydesk.infra.time import business_date
from staydesk.observability.logging import get_logger
from staydesk.observability.redaction import safe_log_context
from staydesk.services import folio_service, housekeeping_service

logger = get_logger(__name__)


class ReservationValidationError(Exception):
    """Request cannot be applied to this reservation."""


class CheckInValidationError(ReservationValidationError):
    """Check-in refused before any write (e.g. rooms still unassigned)."""


# ── Helpers ──────────────────────────────────────────────


def _lock(cur: PgCursor, ctx: PropertyContext, reservation_id: str, operation: str) -> dict[str, Any]:
    reservation = reservations_repository.lock_reservation(
        cur, property_id=ctx.property_id, reservation_id=reservation_id
    )
    if reservation is None:
        raise ReservationNotFoundError(reservation_id)
    require_transition(operation, reservation["status"])
    return reservation


def _assigned_room_ids(reservation_rooms: list[dict[str, Any]]) -> list[str]:
    return list(dict.fromkeys(rr["room_id"] for rr in reservation_rooms if rr["room_id"]))


def _change_status(
    cur: PgCursor,
    ctx: PropertyContext,
    reservation: dict[str, Any],
    status: ReservationStatus,
    *,
    changed_by: str | None,
    **stamps: bool,
) -> None:
    reservations_repository.set_status(
        cur, reservation_id=reservation["id"], status=status.value, **stamps
    )
    reservations_repository.log_status_change(
        cur,
        property_id=ctx.property_id,
        reservation_id=reservation["id"],
        from_status=reservation["status"],
        to_status=status.value,
        changed_by=changed_by,
    )
    logger.info(
        "reservation status changed",
        extra={
            "extra_fields": safe_log_context(
                property_id=ctx.property_id,
                reservation_id=reservation["id"],
                from_status=reservation["status"],
                to_status=status.value,
            )
        },
    )


def _require_rooms(cur: PgCursor, ctx: PropertyContext, room_ids: list[str]) -> None:
    if room_ids and not rooms_repository.active_rooms_exist(
        cur, property_id=ctx.property_id, room_ids=room_ids
    ):
        raise ReservationValidationError("Unknown or inactive room for this property")


def _raise_on_conflicts(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    room_id: str,
    check_in: date,
    check_out: date,
    exclude_reservation_id: str | None,
) -> None:
    conflicts = find_room_conflicts(
        cur,
        property_id=ctx.property_id,
        room_id=room_id,
        check_in=check_in,
        check_out=check_out,
        exclude_reservation_id=exclude_reservation_id,
    )
    if conflicts:
        raise RoomUnavailableError(room_id, conflicts)


# ── Create ───────────────────────────────────────────────


def create_reservation(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    guest_id: str,
    check_in_date: date,
    check_out_date: date,
    rooms: list[ReservationRoomCreate],
    adults: int = 1,
    children: int = 0,
    source: str = "walk_in",
    special_requests: str | None = None,
    notes: str | None = None,
    discount_cents: int = 0,
    created_by: str | None = None,
) -> dict[str, Any]:
    """Book a confirmed reservation and open its folio.

    Total = nights x rate for every room, minus the discount, never below
    zero. The folio opens with that total as subtotal plus tax and service
    charge at the property's current rates.

    Raises:
        ReservationValidationError: Fewer than one night, or no rooms.
        RoomUnavailableError: A pre-assigned room is held for these dates.
    """
    nights = nights_between(check_in_date, check_out_date)
    if nights < 1:
        raise ReservationValidationError("Check-out must be after check-in")
    if not rooms:
        raise ReservationValidationError("At least one room is required")

    _require_rooms(cur, ctx, list(dict.fromkeys(room.room_id for room in rooms if room.room_id)))
    for room in rooms:
        if room.room_id:
            _raise_on_conflicts(
                cur,
                ctx,
                room_id=room.room_id,
                check_in=check_in_date,
                check_out=check_out_date,
                exclude_reservation_id=None,
            )

    total = booking_total_cents(
        [room.rate_per_night_cents for room in rooms],
        nights=nights,
        discount_cents=discount_cents,
    )
    confirmation_number = reservations_repository.next_confirmation_number(cur)
    reservation_id = reservations_repository.insert_reservation(
        cur,
        property_id=ctx.property_id,
        guest_id=guest_id,
        confirmation_number=confirmation_number,
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        adults=adults,
        children=children,
        source=source,
        special_requests=special_requests,
        notes=notes,
        total_amount_cents=total,
    )
    for room in rooms:
        reservations_repository.insert_reservation_room(
            cur,
            reservation_id=reservation_id,
            room_type_id=room.room_type_id,
            room_id=room.room_id,
            rate_per_night_cents=room.rate_per_night_cents,
            adults=room.adults,
            children=room.children,
        )

    reservations_repository.log_status_change(
        cur,
        property_id=ctx.property_id,
        reservation_id=reservation_id,
        from_status=None,
        to_status=ReservationStatus.CONFIRMED.value,
        changed_by=created_by,
    )

    folio = folio_service.create_folio(
        cur,
        ctx,
        guest_id=guest_id,
        reservation_id=reservation_id,
        opening=price_charge(
            1,
            total,
            tax_rate=ctx.tax_rate,
            service_charge_rate=ctx.service_charge_rate,
        ),
    )

    logger.info(
        "reservation created",
        extra={
            "extra_fields": safe_log_context(
                property_id=ctx.property_id,
                reservation_id=reservation_id,
                nights=nights,
                room_count=len(rooms),
                total_amount_cents=total,
            )
        },
    )
    return {
        "id": reservation_id,
        "confirmation_number": confirmation_number,
        "status": ReservationStatus.CONFIRMED.value,
        "check_in_date": check_in_date.isoformat(),
        "check_out_date": check_out_date.isoformat(),
        "total_amount_cents": total,
        "folio_id": folio["id"],
        "folio_number": folio["folio_number"],
    }


# ── Rooms ────────────────────────────────────────────────


def check_in(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    reservation_id: str,
    room_assignments: dict[str, str] | None = None,
    changed_by: str | None = None,
) -> dict[str, Any]:
    """Check a guest in.

    Supplied {reservation_room_id: room_id} assignments are merged with
    the ones already stored. Every reservation_room must end up with a
    room, otherwise nothing is written.

    Raises:
        ReservationNotFoundError, InvalidTransitionError.
        CheckInValidationError: Unknown reservation_room or unassigned rooms.
        ReservationValidationError: An assigned room is not an active room of the property.
    """
    reservation = _lock(cur, ctx, reservation_id, "check_in")
    room_assignments = room_assignments or {}

    reservation_rooms = reservations_repository.list_reservation_rooms(
        cur, reservation_id=reservation_id
    )
    known = {rr["id"] for rr in reservation_rooms}
    unknown = [rr_id for rr_id in room_assignments if rr_id not in known]
    if unknown:
        raise CheckInValidationError(
            f"Reservation rooms not on this reservation: {', '.join(unknown)}"
        )

    merged = {rr["id"]: room_assignments.get(rr["id"]) or rr["room_id"] for rr in reservation_rooms}
    missing = [rr_id for rr_id, room_id in merged.items() if not room_id]
    if missing:
        raise CheckInValidationError(
            f"{len(missing)} room(s) still need to be assigned before check-in"
        )
    _require_rooms(cur, ctx, list(dict.fromkeys(room_assignments.values())))

    for rr in reservation_rooms:
        if merged[rr["id"]] != rr["room_id"]:
            reservations_repository.set_reservation_room(
                cur,
                reservation_id=reservation_id,
                reservation_room_id=rr["id"],
                room_id=merged[rr["id"]],
            )

    _change_status(
        cur,
        ctx,
        reservation,
        ReservationStatus.CHECKED_IN,
        changed_by=changed_by,
        stamp_actual_check_in=True,
    )

    room_ids = list(dict.fromkeys(merged.values()))
    rooms_repository.set_rooms_status(
        cur, property_id=ctx.property_id, room_ids=room_ids, status=RoomStatus.OCCUPIED.value
    )
    return {
        "id": reservation_id,
        "status": ReservationStatus.CHECKED_IN.value,
        "room_ids": room_ids,
    }


def assign_rooms(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    reservation_id: str,
    room_assignments: dict[str, str],
) -> dict[str, Any]:
    """Attach rooms to reservation_rooms without changing the status."""
    if not room_assignments:
        raise ReservationValidationError("No room assignments given")

    _lock(cur, ctx, reservation_id, "assign_rooms")
    _require_rooms(cur, ctx, list(dict.fromkeys(room_assignments.values())))
    for reservation_room_id, room_id in room_assignments.items():
        updated = reservations_repository.set_reservation_room(
            cur,
            reservation_id=reservation_id,
            reservation_room_id=reservation_room_id,
            room_id=room_id,
        )
        if not updated:
            raise ReservationValidationError(
                f"Reservation room {reservation_room_id} is not on this reservation"
            )

    return {"id": reservation_id, "assigned": len(room_assignments)}


def move_room(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    reservation_id: str,
    reservation_room_id: str,
    new_room_id: str,
) -> dict[str, Any]:
    """Move one reservation_room to another physical room.

    The old room is left dirty. The new room becomes occupied only when
    the guest is already in house.

    Raises:
        RoomUnavailableError: The new room is held for the stay dates.
    """
    reservation = _lock(cur, ctx, reservation_id, "move_room")
    reservation_rooms = reservations_repository.list_reservation_rooms(
        cur, reservation_id=reservation_id
    )
    current = next((rr for rr in reservation_rooms if rr["id"] == reservation_room_id), None)
    if current is None:
        raise ReservationValidationError(
            f"Reservation room {reservation_room_id} is not on this reservation"
        )
    if current["room_id"] == new_room_id:
        raise ReservationValidationError("Guest is already in that room")
    _require_rooms(cur, ctx, [new_room_id])

    _raise_on_conflicts(
        cur,
        ctx,
        room_id=new_room_id,
        check_in=reservation["check_in_date"],
        check_out=reservation["check_out_date"],
        exclude_reservation_id=reservation_id,
    )

    reservations_repository.set_reservation_room(
        cur,
        reservation_id=reservation_id,
        reservation_room_id=reservation_room_id,
        room_id=new_room_id,
    )
    if current["room_id"]:
        rooms_repository.set_rooms_status(
            cur,
            property_id=ctx.property_id,
            room_ids=[current["room_id"]],
            status=RoomStatus.DIRTY.value,
        )
    if reservation["status"] == ReservationStatus.CHECKED_IN.value:
        rooms_repository.set_rooms_status(
            cur,
            property_id=ctx.property_id,
            room_ids=[new_room_id],
            status=RoomStatus.OCCUPIED.value,
        )

    logger.info(
        "room moved",
        extra={
            "extra_fields": safe_log_context(
                property_id=ctx.property_id,
                reservation_id=reservation_id,
                from_room_id=current["room_id"],
                to_room_id=new_room_id,
            )
        },
    )
    return {
        "id": reservation_id,
        "reservation_room_id": reservation_room_id,
        "old_room_id": current["room_id"],
        "new_room_id": new_room_id,
    }


# ── Check-out ────────────────────────────────────────────


_SUMMARY_AMOUNTS = (
    "subtotal_cents",
    "tax_amount_cents",
    "service_charge_cents",
    "total_amount_cents",
    "paid_amount_cents",
    "balance_cents",
)


def _checkout_summary(
    cur: PgCursor,
    reservation: dict[str, Any],
    reservation_rooms: list[dict[str, Any]],
    folios: list[dict[str, Any]],
) -> dict[str, Any]:
    """Invoice summary over every folio of the reservation.

    Amounts are summed across the primary folio and any folios split off
    it. The invoice number is the primary folio's.
    """
    guest = None
    if reservation["guest_id"]:
        guest = reservations_repository.get_guest_contact(cur, guest_id=reservation["guest_id"])

    summary: dict[str, Any] = {
        "reservation_id": reservation["id"],
        "guest_name": f"{guest['first_name']} {guest['last_name']}" if guest else "Guest",
        "guest_phone": guest["phone"] if guest else None,
        "room_numbers": [rr["room_number"] for rr in reservation_rooms if rr["room_number"]],
        "check_in_date": reservation["check_in_date"].isoformat(),
        "check_out_date": reservation["check_out_date"].isoformat(),
    }
    for key in _SUMMARY_AMOUNTS:
        summary[key] = sum(f[key] for f in folios)
    summary["folio_count"] = len(folios)
    summary["invoice_number"] = (
        folios[0]["folio_number"] if folios else f"INV-{reservation['id'][:8]}"
    )
    return summary


def check_out(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    reservation_id: str,
    close_folio: bool = False,
    changed_by: str | None = None,
) -> dict[str, Any]:
    """Check a guest out.

    Rooms become dirty and each gets one pending cleaning task assigned to
    the least-loaded housekeeper. A failure while creating tasks is logged
    and does not undo the checkout.

    The invoice summary covers every folio of the reservation, including
    folios split off the primary one. With close_folio, all of them that
    are still open get closed.

    Returns:
        Dict with "checkout" (invoice summary) and "assigned_staff".
    """
    reservation = _lock(cur, ctx, reservation_id, "check_out")
    reservation_rooms = reservations_repository.list_reservation_rooms(
        cur, reservation_id=reservation_id
    )

    _change_status(
        cur,
        ctx,
        reservation,
        ReservationStatus.CHECKED_OUT,
        changed_by=changed_by,
        stamp_actual_check_out=True,
    )

    room_ids = _assigned_room_ids(reservation_rooms)
    rooms_repository.set_rooms_status(
        cur, property_id=ctx.property_id, room_ids=room_ids, status=RoomStatus.DIRTY.value
    )

    assigned_staff: list[str] = []
    try:
        with savepoint(cur, "checkout_tasks"):
            tasks = housekeeping_service.create_checkout_tasks(
                cur, property_id=ctx.property_id, room_ids=room_ids
            )
        assigned_staff = tasks["assigned_staff"]
    except Exception:
        logger.exception(
            "failed to create checkout housekeeping tasks",
            extra={
                "extra_fields": safe_log_context(
                    property_id=ctx.property_id,
                    reservation_id=reservation_id,
                    room_count=len(room_ids),
                )
            },
        )

    folios = folio_repository.lock_folios_for_reservation(
        cur, property_id=ctx.property_id, reservation_id=reservation_id
    )
    if close_folio:
        folios = [
            folio_service.close_folio(cur, ctx, folio_id=f["id"], closed_by=changed_by)
            if f["status"] == "open"
            else f
            for f in folios
        ]

    return {
        "checkout": _checkout_summary(cur, reservation, reservation_rooms, folios),
        "assigned_staff": assigned_staff,
    }


# ── Cancel / delete ──────────────────────────────────────


def cancel(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    reservation_id: str,
    changed_by: str | None = None,
) -> dict[str, Any]:
    reservation = _lock(cur, ctx, reservation_id, "cancel")
    _change_status(cur, ctx, reservation, ReservationStatus.CANCELLED, changed_by=changed_by)
    return {"id": reservation_id, "status": ReservationStatus.CANCELLED.value}


def delete(cur: PgCursor, ctx: PropertyContext, *, reservation_id: str) -> dict[str, Any]:
    """Hard-delete a reservation with its folios and release its rooms."""
    _lock(cur, ctx, reservation_id, "delete")
    reservation_rooms = reservations_repository.list_reservation_rooms(
        cur, reservation_id=reservation_id
    )
    room_ids = _assigned_room_ids(reservation_rooms)

    folios_deleted = folio_repository.delete_folios_for_reservation(
        cur, property_id=ctx.property_id, reservation_id=reservation_id
    )
    reservations_repository.delete_reservation(cur, reservation_id=reservation_id)
    rooms_repository.set_rooms_status(
        cur, property_id=ctx.property_id, room_ids=room_ids, status=RoomStatus.VACANT.value
    )

    logger.info(
        "reservation deleted",
        extra={
            "extra_fields": safe_log_context(
                property_id=ctx.property_id,
                reservation_id=reservation_id,
                folios_deleted=folios_deleted,
                rooms_released=len(room_ids),
            )
        },
    )
    return {"id": reservation_id, "deleted": True, "rooms_released": room_ids}


# ── Extend stay ──────────────────────────────────────────


def _conflicts_or_empty(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    room_id: str,
    reservation_id: str,
    check_in: date,
    check_out: date,
) -> list[str]:
    """Run the availability query; a failing query counts as no conflict."""
    try:
        with savepoint(cur, "availability_check"):
            return find_room_conflicts(
                cur,
                property_id=ctx.property_id,
                room_id=room_id,
                check_in=check_in,
                check_out=check_out,
                exclude_reservation_id=reservation_id,
            )
    except psycopg2.Error:
        logger.warning(
            "availability check failed, treating room as available",
            exc_info=True,
            extra={
                "extra_fields": safe_log_context(
                    property_id=ctx.property_id,
                    reservation_id=reservation_id,
                    room_id=room_id,
                )
            },
        )
        return []


def extend_stay(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    reservation_id: str,
    new_check_in_date: date,
    new_check_out_date: date,
) -> dict[str, Any]:
    """Change stay dates and reprice at the stay's average nightly rate.

    The primary folio's total is overwritten with the new reservation
    total. Folios split off it are left alone.

    Raises:
        ReservationValidationError: New dates give less than one night.
        RoomUnavailableError: An assigned room is held by another booking.
    """
    reservation = _lock(cur, ctx, reservation_id, "extend_stay")
    if nights_between(new_check_in_date, new_check_out_date) < 1:
        raise ReservationValidationError("Check-out must be after check-in")

    repricing = reprice_stay(
        reservation["total_amount_cents"],
        check_in=reservation["check_in_date"],
        check_out=reservation["check_out_date"],
        new_check_in=new_check_in_date,
        new_check_out=new_check_out_date,
    )

    reservation_rooms = reservations_repository.list_reservation_rooms(
        cur, reservation_id=reservation_id
    )
    for room_id in _assigned_room_ids(reservation_rooms):
        conflicts = _conflicts_or_empty(
            cur,
            ctx,
            room_id=room_id,
            reservation_id=reservation_id,
            check_in=new_check_in_date,
            check_out=new_check_out_date,
        )
        if conflicts:
            raise RoomUnavailableError(room_id, conflicts)

    reservations_repository.update_stay(
        cur,
        reservation_id=reservation_id,
        check_in_date=new_check_in_date,
        check_out_date=new_check_out_date,
        total_amount_cents=repricing.new_total_cents,
    )
    folio_service.overwrite_folio_total(
        cur, ctx, reservation_id=reservation_id, total_amount_cents=repricing.new_total_cents
    )

    logger.info(
        "stay extended",
        extra={
            "extra_fields": safe_log_context(
                property_id=ctx.property_id,
                reservation_id=reservation_id,
                nights_difference=repricing.nights_difference,
                cost_difference_cents=repricing.cost_difference_cents,
            )
        },
    )
    return {
        "id": reservation_id,
        "check_in_date": new_check_in_date.isoformat(),
        "check_out_date": new_check_out_date.isoformat(),
        "original_nights": repricing.original_nights,
        "new_nights": repricing.new_nights,
        "cost_difference_cents": repricing.cost_difference_cents,
        "total_amount_cents": repricing.new_total_cents,
    }


# ── Stats ────────────────────────────────────────────────


def get_reservation_stats(
    cur: PgCursor, *, property_id: str, today: date | None = None
) -> dict[str, int]:
    today = today or business_date()
    rows = reservations_repository.reservation_date_rows(cur, property_id=property_id)

    stats = {
        "total": len(rows),
        "arrivals_today": 0,
        "departures_today": 0,
        "in_house": 0,
        "confirmed": 0,
        "cancelled": 0,
    }
    for status, check_in_date, check_out_date in rows:
        if status == "confirmed":
            stats["confirmed"] += 1
            if check_in_date == today:
                stats["arrivals_today"] += 1
        elif status == "checked_in":
            stats["in_house"] += 1
            if check_out_date == today:
                stats["departures_today"] += 1
        elif status == "cancelled":
            stats["cancelled"] += 1
    return stats
