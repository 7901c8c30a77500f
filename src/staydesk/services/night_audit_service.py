"""Night audit service - close a business date.

Flow: start_audit -> post_room_charges -> complete_audit. Room charges go
through folio_service.add_charge, so they are priced and aggregated like
any other charge.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.folio import FolioItemType
from staydesk.domain.night_audit import (
    AuditAlreadyExistsError,
    AuditNotFoundError,
    audit_figures,
    revenue_by_category,
)
from staydesk.infra.property_settings import PropertyContext
from staydesk.infra.repositories import (
    folio_repository,
    night_audit_repository,
    reservations_repository,
    rooms_repository,
)
from staydesk.observability.logging import get_logger
from staydesk.observability.redaction import safe_log_context
from staydesk.services import folio_service

logger = get_logger(__name__)


def get_audit_stats(cur: PgCursor, *, property_id: str, business_date: date) -> dict[str, Any]:
    """Occupancy, revenue and movement figures for one business date."""
    total_rooms, occupied_rooms = rooms_repository.room_status_counts(
        cur, property_id=property_id
    )

    def count(date_column: str, status: str) -> int:
        return reservations_repository.count_by_date_and_status(
            cur,
            property_id=property_id,
            date_column=date_column,
            on_date=business_date,
            status=status,
        )

    arrivals = count("check_in_date", "checked_in")
    departures = count("check_out_date", "checked_out")
    no_shows = count("check_in_date", "no_show")

    revenue = revenue_by_category(
        night_audit_repository.revenue_lines(
            cur, property_id=property_id, service_date=business_date
        )
    )
    payments = night_audit_repository.payments_total(
        cur, property_id=property_id, on_date=business_date
    )

    return {
        "business_date": business_date.isoformat(),
        **audit_figures(
            total_rooms=total_rooms,
            occupied_rooms=occupied_rooms,
            room_revenue_cents=revenue["room_revenue_cents"],
            arrivals=arrivals,
        ),
        **revenue,
        "total_payments_cents": payments,
        "arrivals_today": arrivals,
        "departures_today": departures,
        "no_shows": no_shows,
    }


def start_audit(
    cur: PgCursor, *, property_id: str, business_date: date, run_by: str | None = None
) -> dict[str, Any]:
    """Open the audit for a business date.

    An audit already in progress for the date is restarted.

    Raises:
        AuditAlreadyExistsError: The date has a completed audit.
    """
    existing = night_audit_repository.lock_audit(
        cur, property_id=property_id, business_date=business_date
    )
    if existing is not None:
        if existing["status"] == "completed":
            raise AuditAlreadyExistsError(business_date.isoformat())
        return night_audit_repository.restart_audit(cur, audit_id=existing["id"], run_by=run_by)

    audit = night_audit_repository.insert_audit(
        cur, property_id=property_id, business_date=business_date, run_by=run_by
    )
    logger.info(
        "night audit started",
        extra={
            "extra_fields": safe_log_context(
                property_id=property_id, business_date=business_date.isoformat()
            )
        },
    )
    return audit


def post_room_charges(
    cur: PgCursor, ctx: PropertyContext, *, business_date: date
) -> dict[str, int]:
    """Post one room charge per reservation_room of every in-house stay.

    A night already charged for a reservation_room is skipped, whichever
    folio the charge sits on now. Reservations with something left to post
    but no open folio get one.

    Returns:
        Dict with "charges_posted" and "total_revenue_cents" (price + tax
        of the posted charges).
    """
    charges_posted = 0
    total_revenue = 0

    for reservation in reservations_repository.list_checked_in_with_rooms(
        cur, property_id=ctx.property_id
    ):
        pending = [
            room
            for room in reservation["rooms"]
            if not folio_repository.room_charge_posted(
                cur,
                property_id=ctx.property_id,
                reference_id=room["reservation_room_id"],
                service_date=business_date,
            )
        ]
        if not pending:
            continue

        folio = folio_repository.lock_folio_for_reservation(
            cur,
            property_id=ctx.property_id,
            reservation_id=reservation["id"],
            open_only=True,
        )
        if folio is None:
            folio = folio_service.create_folio(
                cur,
                ctx,
                guest_id=reservation["guest_id"],
                reservation_id=reservation["id"],
            )

        for room in pending:
            before = folio_repository.totals_of(folio)
            folio = folio_service.add_charge(
                cur,
                ctx,
                folio_id=folio["id"],
                item_type=FolioItemType.ROOM_CHARGE.value,
                description=(
                    f"Room {room['room_number'] or 'Unknown'} - "
                    f"Night of {business_date.isoformat()}"
                ),
                quantity=1,
                unit_price_cents=room["rate_per_night_cents"],
                service_date=business_date,
                reference_id=room["reservation_room_id"],
                reference_type="reservation_room",
            )
            after = folio_repository.totals_of(folio)
            charges_posted += 1
            total_revenue += (after.subtotal - before.subtotal) + (
                after.tax_amount - before.tax_amount
            )

    logger.info(
        "room charges posted",
        extra={
            "extra_fields": safe_log_context(
                property_id=ctx.property_id,
                business_date=business_date.isoformat(),
                charges_posted=charges_posted,
                total_revenue_cents=total_revenue,
            )
        },
    )
    return {"charges_posted": charges_posted, "total_revenue_cents": total_revenue}


def complete_audit(
    cur: PgCursor,
    *,
    property_id: str,
    business_date: date,
    notes: str | None = None,
) -> dict[str, Any]:
    """Snapshot the day's figures onto the in-progress audit and close it.

    Raises:
        AuditNotFoundError: No audit in progress for the date.
    """
    audit = night_audit_repository.lock_audit(
        cur, property_id=property_id, business_date=business_date
    )
    if audit is None or audit["status"] != "in_progress":
        raise AuditNotFoundError(business_date.isoformat())

    stats = get_audit_stats(cur, property_id=property_id, business_date=business_date)
    completed = night_audit_repository.complete_audit(
        cur, audit_id=audit["id"], stats=stats, notes=notes
    )
    logger.info(
        "night audit completed",
        extra={
            "extra_fields": safe_log_context(
                property_id=property_id,
                business_date=business_date.isoformat(),
                occupied_rooms=stats["occupied_rooms"],
                room_revenue_cents=stats["room_revenue_cents"],
            )
        },
    )
    return completed
