"""Reservations repository - persistence for reservations and their rooms.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.infra.db import fetchall, for_update

_RESERVATION_COLUMNS = """
    id, confirmation_number, guest_id, status, check_in_date, check_out_date,
    total_amount_cents, actual_check_in, actual_check_out
"""


def _reservation_row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "confirmation_number": row[1],
        "guest_id": str(row[2]) if row[2] else None,
        "status": row[3],
        "check_in_date": row[4],
        "check_out_date": row[5],
        "total_amount_cents": row[6],
        "actual_check_in": row[7],
        "actual_check_out": row[8],
    }


def next_confirmation_number(cur: PgCursor) -> str:
    cur.execute("SELECT nextval('confirmation_number_seq')")
    seq = cur.fetchone()[0]
    return f"RES-{seq:08d}"


def insert_reservation(
    cur: PgCursor,
    *,
    property_id: str,
    guest_id: str,
    confirmation_number: str,
    check_in_date: date,
    check_out_date: date,
    adults: int,
    children: int,
    source: str,
    special_requests: str | None,
    notes: str | None,
    total_amount_cents: int,
) -> str:
    """Insert a confirmed reservation and return its id."""
    cur.execute(
        """
        INSERT INTO reservations (
            property_id, guest_id, confirmation_number, status,
            check_in_date, check_out_date, adults, children, source,
            special_requests, notes, total_amount_cents
        )
        VALUES (%s, %s, %s, 'confirmed', %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            property_id,
            guest_id,
            confirmation_number,
            check_in_date,
            check_out_date,
            adults,
            children,
            source,
            special_requests,
            notes,
            total_amount_cents,
        ),
    )
    return str(cur.fetchone()[0])


def insert_reservation_room(
    cur: PgCursor,
    *,
    reservation_id: str,
    room_type_id: str,
    room_id: str | None,
    rate_per_night_cents: int,
    adults: int,
    children: int,
) -> str:
    cur.execute(
        """
        INSERT INTO reservation_rooms (
            reservation_id, room_type_id, room_id, rate_per_night_cents,
            adults, children
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (reservation_id, room_type_id, room_id, rate_per_night_cents, adults, children),
    )
    return str(cur.fetchone()[0])


def lock_reservation(
    cur: PgCursor, *, property_id: str, reservation_id: str
) -> dict[str, Any] | None:
    """Fetch a reservation and lock it until the transaction ends."""
    row = for_update(
        cur,
        f"""
        SELECT {_RESERVATION_COLUMNS}
        FROM reservations
        WHERE property_id = %s AND id = %s
        """,
        (property_id, reservation_id),
    )
    return _reservation_row_to_dict(row) if row else None


def list_reservation_rooms(cur: PgCursor, *, reservation_id: str) -> list[dict[str, Any]]:
    """Reservation rooms with the assigned room number, if any."""
    rows = fetchall(
        cur,
        """
        SELECT rr.id, rr.room_id, rr.room_type_id, rr.rate_per_night_cents,
               rm.room_number
        FROM reservation_rooms rr
        LEFT JOIN rooms rm ON rm.id = rr.room_id
        WHERE rr.reservation_id = %s
        ORDER BY rr.created_at
        """,
        (reservation_id,),
    )
    return [
        {
            "id": str(r[0]),
            "room_id": str(r[1]) if r[1] else None,
            "room_type_id": str(r[2]) if r[2] else None,
            "rate_per_night_cents": r[3],
            "room_number": r[4],
        }
        for r in rows
    ]


def set_reservation_room(
    cur: PgCursor, *, reservation_id: str, reservation_room_id: str, room_id: str
) -> bool:
    """Attach a room to a reservation_room. False if it is not on this reservation."""
    cur.execute(
        """
        UPDATE reservation_rooms
        SET room_id = %s, updated_at = now()
        WHERE id = %s AND reservation_id = %s
        """,
        (room_id, reservation_room_id, reservation_id),
    )
    return cur.rowcount > 0


def set_status(
    cur: PgCursor,
    *,
    reservation_id: str,
    status: str,
    stamp_actual_check_in: bool = False,
    stamp_actual_check_out: bool = False,
) -> None:
    assignments = ["status = %s", "updated_at = now()"]
    if stamp_actual_check_in:
        assignments.append("actual_check_in = now()")
    if stamp_actual_check_out:
        assignments.append("actual_check_out = now()")

    cur.execute(
        f"UPDATE reservations SET {', '.join(assignments)} WHERE id = %s",
        (status, reservation_id),
    )


def log_status_change(
    cur: PgCursor,
    *,
    property_id: str,
    reservation_id: str,
    from_status: str | None,
    to_status: str,
    changed_by: str | None,
    notes: str | None = None,
) -> None:
    cur.execute(
        """
        INSERT INTO reservation_status_logs
            (reservation_id, property_id, from_status, to_status, changed_by, notes)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (reservation_id, property_id, from_status, to_status, changed_by, notes),
    )


def update_stay(
    cur: PgCursor,
    *,
    reservation_id: str,
    check_in_date: date,
    check_out_date: date,
    total_amount_cents: int,
) -> None:
    cur.execute(
        """
        UPDATE reservations
        SET check_in_date = %s, check_out_date = %s, total_amount_cents = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (check_in_date, check_out_date, total_amount_cents, reservation_id),
    )


def delete_reservation(cur: PgCursor, *, reservation_id: str) -> None:
    """Delete reservation_rooms, status logs and the reservation row."""
    cur.execute("DELETE FROM reservation_rooms WHERE reservation_id = %s", (reservation_id,))
    cur.execute("DELETE FROM reservation_status_logs WHERE reservation_id = %s", (reservation_id,))
    cur.execute("DELETE FROM reservations WHERE id = %s", (reservation_id,))


def get_guest_contact(cur: PgCursor, *, guest_id: str) -> dict[str, Any] | None:
    cur.execute(
        "SELECT first_name, last_name, phone FROM guests WHERE id = %s",
        (guest_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {"first_name": row[0], "last_name": row[1], "phone": row[2]}


def list_checked_in_with_rooms(cur: PgCursor, *, property_id: str) -> list[dict[str, Any]]:
    """Checked-in reservations with their rooms, for the nightly room-charge run."""
    rows = fetchall(
        cur,
        """
        SELECT r.id, r.guest_id, rr.id, rr.rate_per_night_cents, rm.room_number
        FROM reservations r
        JOIN reservation_rooms rr ON rr.reservation_id = r.id
        LEFT JOIN rooms rm ON rm.id = rr.room_id
        WHERE r.property_id = %s AND r.status = 'checked_in'
        ORDER BY r.id, rr.created_at
        """,
        (property_id,),
    )
    grouped: dict[str, dict[str, Any]] = {}
    for res_id, guest_id, rr_id, rate, room_number in rows:
        entry = grouped.setdefault(
            str(res_id),
            {"id": str(res_id), "guest_id": str(guest_id) if guest_id else None, "rooms": []},
        )
        entry["rooms"].append(
            {
                "reservation_room_id": str(rr_id),
                "rate_per_night_cents": rate,
                "room_number": room_number,
            }
        )
    return list(grouped.values())


def reservation_date_rows(cur: PgCursor, *, property_id: str) -> list[tuple]:
    """(status, check_in_date, check_out_date) for every reservation of a property."""
    return fetchall(
        cur,
        """
        SELECT status, check_in_date, check_out_date
        FROM reservations
        WHERE property_id = %s
        """,
        (property_id,),
    )


def count_by_date_and_status(
    cur: PgCursor,
    *,
    property_id: str,
    date_column: str,
    on_date: date,
    status: str,
) -> int:
    if date_column not in ("check_in_date", "check_out_date"):
        raise ValueError(f"Invalid date column: {date_column}")
    cur.execute(
        f"""
        SELECT COUNT(*)
        FROM reservations
        WHERE property_id = %s AND {date_column} = %s AND status = %s
        """,
        (property_id, on_date, status),
    )
    return cur.fetchone()[0]
