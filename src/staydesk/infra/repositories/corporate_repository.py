"""Corporate accounts repository - balances and outstanding folios.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.infra.db import fetchall, for_update


def lock_corporate_account(
    cur: PgCursor, *, property_id: str, account_id: str
) -> dict[str, Any] | None:
    """Fetch and lock a corporate account row."""
    row = for_update(
        cur,
        """
        SELECT id, name, discount_percentage, credit_limit_cents, current_balance_cents
        FROM corporate_accounts
        WHERE property_id = %s AND id = %s
        """,
        (property_id, account_id),
    )
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "name": row[1],
        "discount_percentage": row[2],
        "credit_limit_cents": row[3],
        "current_balance_cents": row[4],
    }


def set_corporate_balance(cur: PgCursor, *, account_id: str, balance_cents: int) -> None:
    cur.execute(
        """
        UPDATE corporate_accounts
        SET current_balance_cents = %s, updated_at = now()
        WHERE id = %s
        """,
        (balance_cents, account_id),
    )


def list_outstanding_folios(
    cur: PgCursor, *, property_id: str, account_id: str
) -> list[dict[str, Any]]:
    """Open folios with a positive balance for guests linked to the account."""
    rows = fetchall(
        cur,
        """
        SELECT f.id, f.folio_number, f.balance_cents, f.guest_id,
               g.first_name, g.last_name, f.reservation_id,
               r.confirmation_number, r.check_in_date, r.check_out_date
        FROM folios f
        JOIN guests g ON g.id = f.guest_id
        LEFT JOIN reservations r ON r.id = f.reservation_id
        WHERE f.property_id = %s
          AND g.corporate_account_id = %s
          AND f.status = 'open'
          AND f.balance_cents > 0
        ORDER BY f.created_at DESC
        """,
        (property_id, account_id),
    )
    return [
        {
            "id": str(r[0]),
            "folio_number": r[1],
            "balance_cents": r[2],
            "guest_id": str(r[3]),
            "guest_name": f"{r[4]} {r[5]}",
            "reservation_id": str(r[6]) if r[6] else None,
            "confirmation_number": r[7],
            "check_in_date": r[8].isoformat() if r[8] else None,
            "check_out_date": r[9].isoformat() if r[9] else None,
        }
        for r in rows
    ]
