"""Folio repository - persistence for folios, folio items and payments.

Uses raw SQL with psycopg2 (no ORM). Every query is scoped by property_id.
Aggregate columns are written exactly as computed by domain.ledger; this
module never does arithmetic on them.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.ledger import FolioTotals
from staydesk.infra.db import fetchall, for_update

_FOLIO_COLUMNS = """
    id, folio_number, property_id, guest_id, reservation_id, status,
    subtotal_cents, tax_amount_cents, service_charge_cents,
    total_amount_cents, paid_amount_cents, balance_cents,
    closed_at, closed_by, created_at
"""

_ITEM_COLUMNS = """
    id, folio_id, item_type, description, quantity, unit_price_cents,
    total_price_cents, tax_amount_cents, service_date, reference_id,
    reference_type, voided, voided_at, voided_by, void_reason, created_at
"""

_PAYMENT_COLUMNS = """
    id, folio_id, amount_cents, payment_method, reference_number, notes,
    corporate_account_id, voided, voided_at, voided_by, void_reason,
    created_at
"""


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def _opt_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _folio_row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "folio_number": row[1],
        "property_id": row[2],
        "guest_id": _opt_str(row[3]),
        "reservation_id": _opt_str(row[4]),
        "status": row[5],
        "subtotal_cents": row[6],
        "tax_amount_cents": row[7],
        "service_charge_cents": row[8],
        "total_amount_cents": row[9],
        "paid_amount_cents": row[10],
        "balance_cents": row[11],
        "closed_at": _iso(row[12]),
        "closed_by": _opt_str(row[13]),
        "created_at": _iso(row[14]),
    }


def _item_row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "folio_id": str(row[1]),
        "item_type": row[2],
        "description": row[3],
        "quantity": row[4],
        "unit_price_cents": row[5],
        "total_price_cents": row[6],
        "tax_amount_cents": row[7],
        "service_date": _iso(row[8]),
        "reference_id": _opt_str(row[9]),
        "reference_type": row[10],
        "voided": row[11],
        "voided_at": _iso(row[12]),
        "voided_by": _opt_str(row[13]),
        "void_reason": row[14],
        "created_at": _iso(row[15]),
    }


def _payment_row_to_dict(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "folio_id": str(row[1]),
        "amount_cents": row[2],
        "payment_method": row[3],
        "reference_number": row[4],
        "notes": row[5],
        "corporate_account_id": _opt_str(row[6]),
        "voided": row[7],
        "voided_at": _iso(row[8]),
        "voided_by": _opt_str(row[9]),
        "void_reason": row[10],
        "created_at": _iso(row[11]),
    }


def totals_of(folio: dict[str, Any]) -> FolioTotals:
    """Build ledger totals from a folio dict."""
    return FolioTotals(
        subtotal=folio["subtotal_cents"],
        tax_amount=folio["tax_amount_cents"],
        service_charge=folio["service_charge_cents"],
        total_amount=folio["total_amount_cents"],
        paid_amount=folio["paid_amount_cents"],
    )


# ── Folios ───────────────────────────────────────────────


def next_folio_number(cur: PgCursor, *, property_code: str) -> str:
    """Allocate the next human-readable folio number for a property."""
    cur.execute("SELECT nextval('folio_number_seq')")
    seq = cur.fetchone()[0]
    return f"F-{property_code}-{seq:06d}"


def insert_folio(
    cur: PgCursor,
    *,
    property_id: str,
    folio_number: str,
    guest_id: str | None,
    reservation_id: str | None,
    totals: FolioTotals,
) -> dict[str, Any]:
    """Insert an open folio with the given opening totals.

    created_at comes from clock_timestamp() so folios opened in one
    transaction still order by creation.
    """
    cur.execute(
        f"""
        INSERT INTO folios (
            property_id, folio_number, guest_id, reservation_id, status,
            subtotal_cents, tax_amount_cents, service_charge_cents,
            total_amount_cents, paid_amount_cents, balance_cents, created_at
        )
        VALUES (%s, %s, %s, %s, 'open', %s, %s, %s, %s, %s, %s, clock_timestamp())
        RETURNING {_FOLIO_COLUMNS}
        """,
        (
            property_id,
            folio_number,
            guest_id,
            reservation_id,
            totals.subtotal,
            totals.tax_amount,
            totals.service_charge,
            totals.total_amount,
            totals.paid_amount,
            totals.balance,
        ),
    )
    return _folio_row_to_dict(cur.fetchone())


def lock_folio(cur: PgCursor, *, property_id: str, folio_id: str) -> dict[str, Any] | None:
    """Fetch a folio row and lock it until the transaction ends."""
    row = for_update(
        cur,
        f"""
        SELECT {_FOLIO_COLUMNS}
        FROM folios
        WHERE property_id = %s AND id = %s
        """,
        (property_id, folio_id),
    )
    return _folio_row_to_dict(row) if row else None


def lock_folio_for_reservation(
    cur: PgCursor,
    *,
    property_id: str,
    reservation_id: str,
    open_only: bool = False,
) -> dict[str, Any] | None:
    """Fetch and lock the primary folio of a reservation.

    The primary folio is the oldest one, opened when the reservation was
    booked. Folios split off later carry the same reservation_id but are
    newer. With open_only, the oldest open folio is returned instead.
    """
    status_clause = "AND status = 'open'" if open_only else ""
    row = for_update(
        cur,
        f"""
        SELECT {_FOLIO_COLUMNS}
        FROM folios
        WHERE property_id = %s AND reservation_id = %s {status_clause}
        ORDER BY created_at, id
        LIMIT 1
        """,
        (property_id, reservation_id),
    )
    return _folio_row_to_dict(row) if row else None


def lock_folios_for_reservation(
    cur: PgCursor, *, property_id: str, reservation_id: str
) -> list[dict[str, Any]]:
    """Fetch and lock every folio of a reservation, primary folio first."""
    rows = fetchall(
        cur,
        f"""
        SELECT {_FOLIO_COLUMNS}
        FROM folios
        WHERE property_id = %s AND reservation_id = %s
        ORDER BY created_at, id
        FOR UPDATE
        """,
        (property_id, reservation_id),
    )
    return [_folio_row_to_dict(r) for r in rows]


def get_folio(cur: PgCursor, *, property_id: str, folio_id: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_FOLIO_COLUMNS} FROM folios WHERE property_id = %s AND id = %s",
        (property_id, folio_id),
    )
    row = cur.fetchone()
    return _folio_row_to_dict(row) if row else None


def get_folio_by_reservation(
    cur: PgCursor, *, property_id: str, reservation_id: str
) -> dict[str, Any] | None:
    cur.execute(
        f"""
        SELECT {_FOLIO_COLUMNS}
        FROM folios
        WHERE property_id = %s AND reservation_id = %s
        ORDER BY created_at, id
        LIMIT 1
        """,
        (property_id, reservation_id),
    )
    row = cur.fetchone()
    return _folio_row_to_dict(row) if row else None


def list_folios(
    cur: PgCursor, *, property_id: str, status: str | None = None
) -> list[dict[str, Any]]:
    conditions = ["property_id = %s"]
    params: list = [property_id]
    if status:
        conditions.append("status = %s")
        params.append(status)

    rows = fetchall(
        cur,
        f"""
        SELECT {_FOLIO_COLUMNS}
        FROM folios
        WHERE {" AND ".join(conditions)}
        ORDER BY created_at DESC
        LIMIT 200
        """,
        params,
    )
    return [_folio_row_to_dict(r) for r in rows]


def update_folio_totals(cur: PgCursor, *, folio_id: str, totals: FolioTotals) -> None:
    """Persist all cached aggregate columns of a folio."""
    cur.execute(
        """
        UPDATE folios
        SET subtotal_cents = %s,
            tax_amount_cents = %s,
            service_charge_cents = %s,
            total_amount_cents = %s,
            paid_amount_cents = %s,
            balance_cents = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (
            totals.subtotal,
            totals.tax_amount,
            totals.service_charge,
            totals.total_amount,
            totals.paid_amount,
            totals.balance,
            folio_id,
        ),
    )


def set_folio_status(
    cur: PgCursor,
    *,
    folio_id: str,
    status: str,
    changed_by: str | None = None,
) -> None:
    """Close (records who/when) or reopen (clears them) a folio."""
    if status == "closed":
        cur.execute(
            """
            UPDATE folios
            SET status = 'closed', closed_at = now(), closed_by = %s, updated_at = now()
            WHERE id = %s
            """,
            (changed_by, folio_id),
        )
    else:
        cur.execute(
            """
            UPDATE folios
            SET status = 'open', closed_at = NULL, closed_by = NULL, updated_at = now()
            WHERE id = %s
            """,
            (folio_id,),
        )


def delete_folios_for_reservation(cur: PgCursor, *, property_id: str, reservation_id: str) -> int:
    """Hard-delete a reservation's folios with their items and payments.

    Returns:
        Number of folios deleted.
    """
    rows = fetchall(
        cur,
        "SELECT id FROM folios WHERE property_id = %s AND reservation_id = %s",
        (property_id, reservation_id),
    )
    folio_ids = [str(r[0]) for r in rows]
    if not folio_ids:
        return 0

    cur.execute("DELETE FROM folio_items WHERE folio_id = ANY(%s::uuid[])", (folio_ids,))
    cur.execute("DELETE FROM payments WHERE folio_id = ANY(%s::uuid[])", (folio_ids,))
    cur.execute("DELETE FROM folios WHERE id = ANY(%s::uuid[])", (folio_ids,))
    return len(folio_ids)


# ── Folio items ──────────────────────────────────────────


def insert_folio_item(
    cur: PgCursor,
    *,
    property_id: str,
    folio_id: str,
    item_type: str,
    description: str,
    quantity: int,
    unit_price_cents: int,
    total_price_cents: int,
    tax_amount_cents: int,
    service_date: date,
    reference_id: str | None = None,
    reference_type: str | None = None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        INSERT INTO folio_items (
            property_id, folio_id, item_type, description, quantity,
            unit_price_cents, total_price_cents, tax_amount_cents,
            service_date, reference_id, reference_type
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_ITEM_COLUMNS}
        """,
        (
            property_id,
            folio_id,
            item_type,
            description,
            quantity,
            unit_price_cents,
            total_price_cents,
            tax_amount_cents,
            service_date,
            reference_id,
            reference_type,
        ),
    )
    return _item_row_to_dict(cur.fetchone())


def lock_folio_item(cur: PgCursor, *, property_id: str, item_id: str) -> dict[str, Any] | None:
    row = for_update(
        cur,
        f"""
        SELECT {_ITEM_COLUMNS}
        FROM folio_items
        WHERE property_id = %s AND id = %s
        """,
        (property_id, item_id),
    )
    return _item_row_to_dict(row) if row else None


def lock_folio_items(
    cur: PgCursor, *, property_id: str, item_ids: list[str]
) -> list[dict[str, Any]]:
    rows = fetchall(
        cur,
        f"""
        SELECT {_ITEM_COLUMNS}
        FROM folio_items
        WHERE property_id = %s AND id = ANY(%s::uuid[])
        ORDER BY created_at
        FOR UPDATE
        """,
        (property_id, item_ids),
    )
    return [_item_row_to_dict(r) for r in rows]


def list_folio_items(cur: PgCursor, *, folio_id: str) -> list[dict[str, Any]]:
    rows = fetchall(
        cur,
        f"SELECT {_ITEM_COLUMNS} FROM folio_items WHERE folio_id = %s ORDER BY created_at",
        (folio_id,),
    )
    return [_item_row_to_dict(r) for r in rows]


def mark_item_voided(cur: PgCursor, *, item_id: str, voided_by: str | None, reason: str) -> None:
    cur.execute(
        """
        UPDATE folio_items
        SET voided = true, voided_at = now(), voided_by = %s, void_reason = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (voided_by, reason, item_id),
    )


def move_items(cur: PgCursor, *, item_ids: list[str], target_folio_id: str) -> None:
    cur.execute(
        """
        UPDATE folio_items
        SET folio_id = %s, updated_at = now()
        WHERE id = ANY(%s::uuid[])
        """,
        (target_folio_id, item_ids),
    )


def room_charge_posted(
    cur: PgCursor, *, property_id: str, reference_id: str, service_date: date
) -> bool:
    """True if a non-voided room charge for this reservation_room and night exists.

    Looks across every folio of the property: a posted charge may since have
    been transferred or split onto another folio, and the partial unique
    index on (reference_id, service_date) is table-wide.
    """
    cur.execute(
        """
        SELECT 1
        FROM folio_items
        WHERE property_id = %s AND item_type = 'room_charge'
          AND reference_id = %s AND service_date = %s AND voided = false
        LIMIT 1
        """,
        (property_id, reference_id, service_date),
    )
    return cur.fetchone() is not None


# ── Payments ─────────────────────────────────────────────


def insert_payment(
    cur: PgCursor,
    *,
    property_id: str,
    folio_id: str,
    amount_cents: int,
    payment_method: str,
    reference_number: str | None = None,
    notes: str | None = None,
    corporate_account_id: str | None = None,
    recorded_by: str | None = None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        INSERT INTO payments (
            property_id, folio_id, amount_cents, payment_method,
            reference_number, notes, corporate_account_id, recorded_by
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_PAYMENT_COLUMNS}
        """,
        (
            property_id,
            folio_id,
            amount_cents,
            payment_method,
            reference_number,
            notes,
            corporate_account_id,
            recorded_by,
        ),
    )
    return _payment_row_to_dict(cur.fetchone())


def lock_payment(cur: PgCursor, *, property_id: str, payment_id: str) -> dict[str, Any] | None:
    row = for_update(
        cur,
        f"""
        SELECT {_PAYMENT_COLUMNS}
        FROM payments
        WHERE property_id = %s AND id = %s
        """,
        (property_id, payment_id),
    )
    return _payment_row_to_dict(row) if row else None


def list_payments(cur: PgCursor, *, folio_id: str) -> list[dict[str, Any]]:
    rows = fetchall(
        cur,
        f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE folio_id = %s ORDER BY created_at",
        (folio_id,),
    )
    return [_payment_row_to_dict(r) for r in rows]


def mark_payment_voided(
    cur: PgCursor, *, payment_id: str, voided_by: str | None, reason: str
) -> None:
    cur.execute(
        """
        UPDATE payments
        SET voided = true, voided_at = now(), voided_by = %s, void_reason = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (voided_by, reason, payment_id),
    )


# ── Stats ────────────────────────────────────────────────


def folio_stats(cur: PgCursor, *, property_id: str, today: date) -> dict[str, int]:
    """Open/closed counts, open balance and today's non-voided payments."""
    cur.execute(
        """
        SELECT COUNT(*) FILTER (WHERE status = 'open'),
               COUNT(*) FILTER (WHERE status = 'closed'),
               COALESCE(SUM(balance_cents) FILTER (WHERE status = 'open'), 0)
        FROM folios
        WHERE property_id = %s
        """,
        (property_id,),
    )
    total_open, total_closed, open_balance = cur.fetchone()

    cur.execute(
        """
        SELECT COALESCE(SUM(amount_cents), 0)
        FROM payments
        WHERE property_id = %s AND voided = false AND created_at::date = %s
        """,
        (property_id, today),
    )
    today_revenue = cur.fetchone()[0]

    return {
        "total_open": total_open,
        "total_closed": total_closed,
        "total_balance_cents": open_balance,
        "today_revenue_cents": today_revenue,
    }
