"""Night audit repository - audit rows and the figures they snapshot.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.infra.db import fetchall, for_update

_AUDIT_COLUMNS = """
    id, business_date, status, started_at, completed_at, run_by,
    rooms_charged, total_room_revenue_cents, total_fb_revenue_cents,
    total_other_revenue_cents, total_payments_cents, occupancy_rate,
    adr_cents, revpar_cents, report_data, notes
"""


def _audit_row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "business_date": row[1].isoformat(),
        "status": row[2],
        "started_at": row[3].isoformat() if row[3] else None,
        "completed_at": row[4].isoformat() if row[4] else None,
        "run_by": str(row[5]) if row[5] else None,
        "rooms_charged": row[6],
        "total_room_revenue_cents": row[7],
        "total_fb_revenue_cents": row[8],
        "total_other_revenue_cents": row[9],
        "total_payments_cents": row[10],
        "occupancy_rate": str(row[11]) if row[11] is not None else None,
        "adr_cents": row[12],
        "revpar_cents": row[13],
        "report_data": row[14],
        "notes": row[15],
    }


def lock_audit(
    cur: PgCursor, *, property_id: str, business_date: date
) -> dict[str, Any] | None:
    row = for_update(
        cur,
        f"""
        SELECT {_AUDIT_COLUMNS}
        FROM night_audits
        WHERE property_id = %s AND business_date = %s
        """,
        (property_id, business_date),
    )
    return _audit_row_to_dict(row) if row else None


def insert_audit(
    cur: PgCursor, *, property_id: str, business_date: date, run_by: str | None
) -> dict[str, Any]:
    cur.execute(
        f"""
        INSERT INTO night_audits (property_id, business_date, status, started_at, run_by)
        VALUES (%s, %s, 'in_progress', now(), %s)
        RETURNING {_AUDIT_COLUMNS}
        """,
        (property_id, business_date, run_by),
    )
    return _audit_row_to_dict(cur.fetchone())


def restart_audit(cur: PgCursor, *, audit_id: str, run_by: str | None) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE night_audits
        SET status = 'in_progress', started_at = now(), run_by = %s, updated_at = now()
        WHERE id = %s
        RETURNING {_AUDIT_COLUMNS}
        """,
        (run_by, audit_id),
    )
    return _audit_row_to_dict(cur.fetchone())


def complete_audit(
    cur: PgCursor,
    *,
    audit_id: str,
    stats: dict[str, Any],
    notes: str | None,
) -> dict[str, Any]:
    """Write the stats snapshot and mark the audit completed."""
    report_data = {
        "arrivals": stats["arrivals_today"],
        "departures": stats["departures_today"],
        "stayovers": stats["stayovers"],
        "no_shows": stats["no_shows"],
        "total_rooms": stats["total_rooms"],
        "vacant_rooms": stats["vacant_rooms"],
    }
    cur.execute(
        f"""
        UPDATE night_audits
        SET status = 'completed',
            completed_at = now(),
            rooms_charged = %s,
            total_room_revenue_cents = %s,
            total_fb_revenue_cents = %s,
            total_other_revenue_cents = %s,
            total_payments_cents = %s,
            occupancy_rate = %s,
            adr_cents = %s,
            revpar_cents = %s,
            report_data = %s::jsonb,
            notes = %s,
            updated_at = now()
        WHERE id = %s
        RETURNING {_AUDIT_COLUMNS}
        """,
        (
            stats["occupied_rooms"],
            stats["room_revenue_cents"],
            stats["fb_revenue_cents"],
            stats["other_revenue_cents"],
            stats["total_payments_cents"],
            stats["occupancy_rate"],
            stats["adr_cents"],
            stats["revpar_cents"],
            json.dumps(report_data),
            notes,
            audit_id,
        ),
    )
    return _audit_row_to_dict(cur.fetchone())


def revenue_lines(
    cur: PgCursor, *, property_id: str, service_date: date
) -> list[tuple[str, int, int]]:
    """(item_type, total_price_cents, tax_amount_cents) of non-voided items."""
    return fetchall(
        cur,
        """
        SELECT fi.item_type, fi.total_price_cents, fi.tax_amount_cents
        FROM folio_items fi
        JOIN folios f ON f.id = fi.folio_id
        WHERE f.property_id = %s AND fi.service_date = %s AND fi.voided = false
        """,
        (property_id, service_date),
    )


def payments_total(cur: PgCursor, *, property_id: str, on_date: date) -> int:
    cur.execute(
        """
        SELECT COALESCE(SUM(amount_cents), 0)
        FROM payments
        WHERE property_id = %s AND voided = false AND created_at::date = %s
        """,
        (property_id, on_date),
    )
    return cur.fetchone()[0]
