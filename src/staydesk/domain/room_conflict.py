"""Room conflict detection for date changes.

Finds other reservations holding the same physical room over a date range.

Overlap formula:  (existing_check_in <= new_check_out) AND (existing_check_out > new_check_in)

The check-in side is inclusive: a reservation arriving on the new
departure day counts as a conflict.

Only room-holding statuses generate conflicts: confirmed, checked_in.
"""

from __future__ import annotations

import logging
from datetime import date

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.reservations import ROOM_HOLDING_STATUSES

logger = logging.getLogger(__name__)


class RoomUnavailableError(Exception):
    """Raised when a room is held by other reservations for the new dates."""

    def __init__(self, room_id: str, conflicts: list[str]):
        self.room_id = room_id
        self.conflicts = conflicts
        super().__init__(
            f"Room not available. Conflicts with: {', '.join(conflicts)}"
        )


def find_room_conflicts(
    cur: PgCursor,
    *,
    property_id: str,
    room_id: str,
    check_in: date,
    check_out: date,
    exclude_reservation_id: str | None = None,
) -> list[str]:
    """Return confirmation numbers of reservations holding room_id in the range.

    Args:
        cur: Database cursor (should be within a transaction).
        property_id: Tenant isolation.
        room_id: Physical room identifier.
        check_in: Desired check-in date.
        check_out: Desired check-out date.
        exclude_reservation_id: Reservation being changed.

    Returns:
        Conflicting confirmation numbers, empty if the room is free.
    """
    conditions = [
        "r.property_id = %s",
        "rr.room_id = %s",
        "r.status = ANY(%s)",
        "r.check_in_date <= %s",
        "r.check_out_date > %s",
    ]
    params: list = [property_id, room_id, list(ROOM_HOLDING_STATUSES), check_out, check_in]

    if exclude_reservation_id is not None:
        conditions.append("r.id != %s")
        params.append(exclude_reservation_id)

    where = " AND ".join(conditions)

    cur.execute(
        f"""
        SELECT DISTINCT r.confirmation_number
        FROM reservations r
        JOIN reservation_rooms rr ON rr.reservation_id = r.id
        WHERE {where}
        ORDER BY r.confirmation_number
        """,
        params,
    )
    conflicts = [row[0] for row in cur.fetchall()]

    if conflicts:
        logger.warning(
            "room conflict detected",
            extra={
                "extra_fields": {
                    "room_id": room_id,
                    "property_id": property_id,
                    "requested_check_in": check_in.isoformat(),
                    "requested_check_out": check_out.isoformat(),
                    "conflict_count": len(conflicts),
                },
            },
        )

    return conflicts
