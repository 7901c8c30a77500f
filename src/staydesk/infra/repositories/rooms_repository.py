"""Rooms repository - physical room status.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from staydesk.infra.db import fetchall


def set_rooms_status(
    cur: PgCursor, *, property_id: str, room_ids: list[str], status: str
) -> int:
    """Set status on a batch of rooms. Returns rows updated."""
    if not room_ids:
        return 0
    cur.execute(
        """
        UPDATE rooms
        SET status = %s, updated_at = now()
        WHERE property_id = %s AND id = ANY(%s::uuid[])
        """,
        (status, property_id, room_ids),
    )
    return cur.rowcount


def active_rooms_exist(cur: PgCursor, *, property_id: str, room_ids: list[str]) -> bool:
    """True if every id in room_ids is an active room of the property."""
    wanted = set(room_ids)
    rows = fetchall(
        cur,
        """
        SELECT id FROM rooms
        WHERE property_id = %s AND id = ANY(%s::uuid[]) AND is_active = true
        """,
        (property_id, list(wanted)),
    )
    found = {str(r[0]) for r in rows}
    return found == wanted


def room_status_counts(cur: PgCursor, *, property_id: str) -> tuple[int, int]:
    """(total active rooms, occupied active rooms)."""
    cur.execute(
        """
        SELECT COUNT(*), COUNT(*) FILTER (WHERE status = 'occupied')
        FROM rooms
        WHERE property_id = %s AND is_active = true
        """,
        (property_id,),
    )
    total, occupied = cur.fetchone()
    return total, occupied
