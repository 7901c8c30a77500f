"""Folio service - business logic for the guest billing ledger.

Rules:
- All amounts are Integer (cents).
- The caller owns the transaction; every mutation locks the folio row(s)
  it touches with SELECT ... FOR UPDATE before reading the aggregates.
- Aggregates are computed by domain.ledger and written back together with
  the line item in the same transaction.
- Ledger mutations are rejected on closed folios.
- Every query is scoped by property_id (multi-tenancy).
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.folio import FolioItemType, FolioStatus
from staydesk.domain.ledger import (
    ChargeContribution,
    FolioTotals,
    posted_contribution,
    price_charge,
    split_contribution,
)
from staydesk.infra.property_settings import PropertyContext
from staydesk.infra.repositories import corporate_repository, folio_repository
from staydesk.infra.time import business_date
from staydesk.observability.logging import get_logger
from staydesk.observability.redaction import safe_log_context

logger = get_logger(__name__)


# ── Exceptions ───────────────────────────────────────────


class FolioNotFoundError(Exception):
    def __init__(self, folio_id: str):
        self.folio_id = folio_id
        super().__init__(f"Folio {folio_id} not found")


class FolioClosedError(Exception):
    """Folio is closed; reopen it before changing the ledger."""

    def __init__(self, folio_id: str):
        self.folio_id = folio_id
        super().__init__(f"Folio {folio_id} is closed")


class FolioItemNotFoundError(Exception):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Folio item {item_id} not found")


class PaymentNotFoundError(Exception):
    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


class AlreadyVoidedError(Exception):
    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} {entity_id} is already voided")


class LedgerValidationError(Exception):
    """Request is well-formed but not applicable to the ledger."""


class CorporateAccountNotFoundError(Exception):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Corporate account {account_id} not found")


# ── Helpers ──────────────────────────────────────────────


def _with_totals(folio: dict[str, Any], totals: FolioTotals) -> dict[str, Any]:
    return {
        **folio,
        "subtotal_cents": totals.subtotal,
        "tax_amount_cents": totals.tax_amount,
        "service_charge_cents": totals.service_charge,
        "total_amount_cents": totals.total_amount,
        "paid_amount_cents": totals.paid_amount,
        "balance_cents": totals.balance,
    }


def _save_totals(cur: PgCursor, folio: dict[str, Any], totals: FolioTotals) -> dict[str, Any]:
    folio_repository.update_folio_totals(cur, folio_id=folio["id"], totals=totals)
    return _with_totals(folio, totals)


def _lock_folio(cur: PgCursor, ctx: PropertyContext, folio_id: str) -> dict[str, Any]:
    folio = folio_repository.lock_folio(cur, property_id=ctx.property_id, folio_id=folio_id)
    if folio is None:
        raise FolioNotFoundError(folio_id)
    return folio


def _lock_open_folio(cur: PgCursor, ctx: PropertyContext, folio_id: str) -> dict[str, Any]:
    folio = _lock_folio(cur, ctx, folio_id)
    if folio["status"] != FolioStatus.OPEN.value:
        raise FolioClosedError(folio_id)
    return folio


def _lock_corporate_account(
    cur: PgCursor, ctx: PropertyContext, account_id: str
) -> dict[str, Any]:
    account = corporate_repository.lock_corporate_account(
        cur, property_id=ctx.property_id, account_id=account_id
    )
    if account is None:
        raise CorporateAccountNotFoundError(account_id)
    return account


def _log(message: str, ctx: PropertyContext, **fields: Any) -> None:
    logger.info(
        message,
        extra={"extra_fields": safe_log_context(property_id=ctx.property_id, **fields)},
    )


# ── Reads ────────────────────────────────────────────────


def _with_lines(cur: PgCursor, folio: dict[str, Any]) -> dict[str, Any]:
    return {
        **folio,
        "items": folio_repository.list_folio_items(cur, folio_id=folio["id"]),
        "payments": folio_repository.list_payments(cur, folio_id=folio["id"]),
    }


def get_folio(cur: PgCursor, *, property_id: str, folio_id: str) -> dict[str, Any]:
    """Return a folio with its items and payments.

    Raises:
        FolioNotFoundError: Folio does not exist for this property.
    """
    folio = folio_repository.get_folio(cur, property_id=property_id, folio_id=folio_id)
    if folio is None:
        raise FolioNotFoundError(folio_id)
    return _with_lines(cur, folio)


def get_folio_by_reservation(
    cur: PgCursor, *, property_id: str, reservation_id: str
) -> dict[str, Any] | None:
    folio = folio_repository.get_folio_by_reservation(
        cur, property_id=property_id, reservation_id=reservation_id
    )
    return _with_lines(cur, folio) if folio else None


def list_folios(
    cur: PgCursor, *, property_id: str, status: str | None = None
) -> list[dict[str, Any]]:
    return folio_repository.list_folios(cur, property_id=property_id, status=status)


def get_folio_stats(
    cur: PgCursor, *, property_id: str, today: date | None = None
) -> dict[str, int]:
    return folio_repository.folio_stats(
        cur, property_id=property_id, today=today or business_date()
    )


def list_outstanding_corporate_folios(
    cur: PgCursor, *, property_id: str, account_id: str
) -> list[dict[str, Any]]:
    return corporate_repository.list_outstanding_folios(
        cur, property_id=property_id, account_id=account_id
    )


# ── Folio lifecycle ──────────────────────────────────────


def create_folio(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    guest_id: str | None,
    reservation_id: str | None = None,
    opening: ChargeContribution | None = None,
) -> dict[str, Any]:
    """Create an open folio, zeroed or seeded with an opening contribution."""
    totals = FolioTotals.opening(opening) if opening else FolioTotals()
    folio_number = folio_repository.next_folio_number(cur, property_code=ctx.code)
    folio = folio_repository.insert_folio(
        cur,
        property_id=ctx.property_id,
        folio_number=folio_number,
        guest_id=guest_id,
        reservation_id=reservation_id,
        totals=totals,
    )
    _log(
        "folio created",
        ctx,
        folio_id=folio["id"],
        folio_number=folio_number,
        reservation_id=reservation_id,
        total_amount_cents=totals.total_amount,
    )
    return folio


def close_folio(
    cur: PgCursor, ctx: PropertyContext, *, folio_id: str, closed_by: str | None = None
) -> dict[str, Any]:
    folio = _lock_open_folio(cur, ctx, folio_id)
    folio_repository.set_folio_status(
        cur, folio_id=folio_id, status=FolioStatus.CLOSED.value, changed_by=closed_by
    )
    _log("folio closed", ctx, folio_id=folio_id, balance_cents=folio["balance_cents"])
    return {**folio, "status": FolioStatus.CLOSED.value, "closed_by": closed_by}


def reopen_folio(cur: PgCursor, ctx: PropertyContext, *, folio_id: str) -> dict[str, Any]:
    """Reopen a closed folio. Reopening an open folio is a no-op."""
    folio = _lock_folio(cur, ctx, folio_id)
    if folio["status"] == FolioStatus.OPEN.value:
        return folio
    folio_repository.set_folio_status(cur, folio_id=folio_id, status=FolioStatus.OPEN.value)
    _log("folio reopened", ctx, folio_id=folio_id)
    return {**folio, "status": FolioStatus.OPEN.value, "closed_at": None, "closed_by": None}


# ── Charges ──────────────────────────────────────────────


def add_charge(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    item_type: str,
    description: str,
    quantity: int,
    unit_price_cents: int,
    service_date: date | None = None,
    reference_id: str | None = None,
    reference_type: str | None = None,
) -> dict[str, Any]:
    """Post a charge line at the property's current tax and service rates.

    Args:
        cur: Database cursor (caller manages transaction).
        ctx: Property billing policy.
        folio_id: Folio UUID.
        item_type: One of FolioItemType values.
        description: Line description shown on the invoice.
        quantity: Units (must be > 0).
        unit_price_cents: Price per unit in cents.
        service_date: Date of service (defaults to today's business date).
        reference_id: Source record, e.g. the reservation_room of a room charge.
        reference_type: Kind of source record.

    Returns:
        Updated folio dict.

    Raises:
        LedgerValidationError: quantity is not positive.
        FolioNotFoundError: Folio does not exist for this property.
        FolioClosedError: Folio is closed.
    """
    if quantity <= 0:
        raise LedgerValidationError("Quantity must be greater than zero")

    folio = _lock_open_folio(cur, ctx, folio_id)
    contribution = price_charge(
        quantity,
        unit_price_cents,
        tax_rate=ctx.tax_rate,
        service_charge_rate=ctx.service_charge_rate,
    )

    folio_repository.insert_folio_item(
        cur,
        property_id=ctx.property_id,
        folio_id=folio_id,
        item_type=item_type,
        description=description,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=contribution.total_price,
        tax_amount_cents=contribution.tax_amount,
        service_date=service_date or business_date(),
        reference_id=reference_id,
        reference_type=reference_type,
    )
    updated = _save_totals(cur, folio, folio_repository.totals_of(folio).add(contribution))

    _log(
        "charge added",
        ctx,
        folio_id=folio_id,
        item_type=item_type,
        total_price_cents=contribution.total_price,
        tax_amount_cents=contribution.tax_amount,
        service_charge_cents=contribution.service_charge,
    )
    return updated


def add_adjustment(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    amount_cents: int,
    reason: str,
    is_discount: bool = False,
) -> dict[str, Any]:
    """Post a discount or miscellaneous adjustment.

    The amount goes straight to the subtotal (negative for discounts);
    tax and service charge are not touched.
    """
    if amount_cents == 0:
        raise LedgerValidationError("Adjustment amount must not be zero")

    folio = _lock_open_folio(cur, ctx, folio_id)
    item_type = FolioItemType.DISCOUNT if is_discount else FolioItemType.MISCELLANEOUS

    folio_repository.insert_folio_item(
        cur,
        property_id=ctx.property_id,
        folio_id=folio_id,
        item_type=item_type.value,
        description=reason,
        quantity=1,
        unit_price_cents=amount_cents,
        total_price_cents=amount_cents,
        tax_amount_cents=0,
        service_date=business_date(),
    )
    updated = _save_totals(
        cur, folio, folio_repository.totals_of(folio).add_adjustment(amount_cents)
    )
    _log(
        "adjustment added",
        ctx,
        folio_id=folio_id,
        item_type=item_type.value,
        amount_cents=amount_cents,
    )
    return updated


def void_item(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    item_id: str,
    reason: str,
    voided_by: str | None = None,
) -> dict[str, Any]:
    """Void a charge line and reverse its contribution.

    The stored total and tax are reversed as posted; the service charge is
    recomputed at the current rate.

    Raises:
        FolioNotFoundError, FolioClosedError, FolioItemNotFoundError,
        AlreadyVoidedError.
    """
    folio = _lock_open_folio(cur, ctx, folio_id)
    item = folio_repository.lock_folio_item(cur, property_id=ctx.property_id, item_id=item_id)
    if item is None or item["folio_id"] != folio_id:
        raise FolioItemNotFoundError(item_id)
    if item["voided"]:
        raise AlreadyVoidedError("item", item_id)

    contribution = posted_contribution(
        item["total_price_cents"],
        item["tax_amount_cents"],
        service_charge_rate=ctx.service_charge_rate,
    )
    folio_repository.mark_item_voided(cur, item_id=item_id, voided_by=voided_by, reason=reason)
    updated = _save_totals(cur, folio, folio_repository.totals_of(folio).remove(contribution))

    _log("item voided", ctx, folio_id=folio_id, item_id=item_id, gross_cents=contribution.gross)
    return updated


def transfer_charge(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    item_id: str,
    target_folio_id: str,
) -> dict[str, Any]:
    """Move one charge line to another folio of the same property.

    Returns:
        Dict with "source" and "target" folio dicts.
    """
    if folio_id == target_folio_id:
        raise LedgerValidationError("Source and target folio must differ")

    # Lock both folios in a stable order.
    locked = {}
    for fid in sorted((folio_id, target_folio_id)):
        locked[fid] = _lock_open_folio(cur, ctx, fid)
    source, target = locked[folio_id], locked[target_folio_id]

    item = folio_repository.lock_folio_item(cur, property_id=ctx.property_id, item_id=item_id)
    if item is None or item["folio_id"] != folio_id:
        raise FolioItemNotFoundError(item_id)
    if item["voided"]:
        raise AlreadyVoidedError("item", item_id)

    contribution = posted_contribution(
        item["total_price_cents"],
        item["tax_amount_cents"],
        service_charge_rate=ctx.service_charge_rate,
    )
    folio_repository.move_items(cur, item_ids=[item_id], target_folio_id=target_folio_id)
    source = _save_totals(cur, source, folio_repository.totals_of(source).remove(contribution))
    target = _save_totals(cur, target, folio_repository.totals_of(target).add(contribution))

    _log(
        "charge transferred",
        ctx,
        folio_id=folio_id,
        target_folio_id=target_folio_id,
        item_id=item_id,
        gross_cents=contribution.gross,
    )
    return {"source": source, "target": target}


def split_folio(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    item_ids: list[str],
) -> dict[str, Any]:
    """Move selected charge lines onto a new folio for the same guest.

    The new folio's service charge is computed once on the summed subtotal
    of the moved items; the source loses exactly the same three figures.

    Returns:
        Dict with "source" and "new_folio" folio dicts.

    Raises:
        LedgerValidationError: No items, or an item is voided.
        FolioItemNotFoundError: An item does not belong to the source folio.
    """
    unique_ids = list(dict.fromkeys(item_ids))
    if not unique_ids:
        raise LedgerValidationError("Select at least one item to split")

    source = _lock_open_folio(cur, ctx, folio_id)
    items = folio_repository.lock_folio_items(
        cur, property_id=ctx.property_id, item_ids=unique_ids
    )
    on_folio = {item["id"]: item for item in items if item["folio_id"] == folio_id}
    for item_id in unique_ids:
        if item_id not in on_folio:
            raise FolioItemNotFoundError(item_id)
        if on_folio[item_id]["voided"]:
            raise LedgerValidationError(f"Voided item {item_id} cannot be split")

    contribution = split_contribution(
        ((item["total_price_cents"], item["tax_amount_cents"]) for item in on_folio.values()),
        service_charge_rate=ctx.service_charge_rate,
    )

    new_folio = create_folio(
        cur,
        ctx,
        guest_id=source["guest_id"],
        reservation_id=source["reservation_id"],
        opening=contribution,
    )
    folio_repository.move_items(cur, item_ids=unique_ids, target_folio_id=new_folio["id"])
    source = _save_totals(cur, source, folio_repository.totals_of(source).remove(contribution))

    _log(
        "folio split",
        ctx,
        folio_id=folio_id,
        new_folio_id=new_folio["id"],
        item_count=len(unique_ids),
        gross_cents=contribution.gross,
    )
    return {"source": source, "new_folio": new_folio}


# ── Payments ─────────────────────────────────────────────


def record_payment(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    amount_cents: int,
    payment_method: str,
    reference_number: str | None = None,
    notes: str | None = None,
    corporate_account_id: str | None = None,
    recorded_by: str | None = None,
) -> dict[str, Any]:
    """Record a payment against a folio.

    Overpayment is allowed and leaves a negative balance. When the payment
    is attributed to a corporate account, the account's current balance
    grows by the amount.

    Raises:
        LedgerValidationError: amount_cents is not positive.
        CorporateAccountNotFoundError: Unknown corporate account.
        FolioNotFoundError, FolioClosedError.
    """
    if amount_cents <= 0:
        raise LedgerValidationError("Payment amount must be greater than zero")

    account = None
    if corporate_account_id:
        account = _lock_corporate_account(cur, ctx, corporate_account_id)

    folio = _lock_open_folio(cur, ctx, folio_id)
    folio_repository.insert_payment(
        cur,
        property_id=ctx.property_id,
        folio_id=folio_id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        reference_number=reference_number,
        notes=notes,
        corporate_account_id=corporate_account_id,
        recorded_by=recorded_by,
    )
    updated = _save_totals(
        cur, folio, folio_repository.totals_of(folio).apply_payment(amount_cents)
    )

    if account is not None:
        corporate_repository.set_corporate_balance(
            cur,
            account_id=account["id"],
            balance_cents=account["current_balance_cents"] + amount_cents,
        )

    _log(
        "payment recorded",
        ctx,
        folio_id=folio_id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        corporate_account_id=corporate_account_id,
    )
    return updated


def void_payment(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_id: str,
    payment_id: str,
    reason: str,
    voided_by: str | None = None,
) -> dict[str, Any]:
    folio = _lock_open_folio(cur, ctx, folio_id)
    payment = folio_repository.lock_payment(
        cur, property_id=ctx.property_id, payment_id=payment_id
    )
    if payment is None or payment["folio_id"] != folio_id:
        raise PaymentNotFoundError(payment_id)
    if payment["voided"]:
        raise AlreadyVoidedError("payment", payment_id)

    folio_repository.mark_payment_voided(
        cur, payment_id=payment_id, voided_by=voided_by, reason=reason
    )
    updated = _save_totals(
        cur, folio, folio_repository.totals_of(folio).reverse_payment(payment["amount_cents"])
    )
    _log(
        "payment voided",
        ctx,
        folio_id=folio_id,
        payment_id=payment_id,
        amount_cents=payment["amount_cents"],
    )
    return updated


def record_bulk_payment(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    folio_ids: list[str],
    total_amount_cents: int,
    payment_method: str,
    reference_number: str | None = None,
    notes: str | None = None,
    recorded_by: str | None = None,
) -> dict[str, Any]:
    """Spread one payment over several open folios.

    Folios are paid in the given order, each receiving
    min(remaining, balance), until the amount runs out. Folios that are
    closed or have no positive balance are skipped.

    Returns:
        Dict with per-folio "allocations", "applied_cents" and
        "unapplied_cents".

    Raises:
        LedgerValidationError: Non-positive amount or no folio with a balance.
    """
    if total_amount_cents <= 0:
        raise LedgerValidationError("Payment amount must be greater than zero")

    unique_ids = list(dict.fromkeys(folio_ids))
    locked: dict[str, dict[str, Any]] = {}
    for fid in sorted(unique_ids):
        folio = folio_repository.lock_folio(cur, property_id=ctx.property_id, folio_id=fid)
        if folio and folio["status"] == FolioStatus.OPEN.value and folio["balance_cents"] > 0:
            locked[fid] = folio

    if not locked:
        raise LedgerValidationError("No folios with balance found")

    payment_notes = f"{notes} (Bulk payment)" if notes else "Bulk payment"
    remaining = total_amount_cents
    allocations: list[dict[str, Any]] = []

    for fid in unique_ids:
        if remaining <= 0:
            break
        folio = locked.get(fid)
        if folio is None:
            continue

        amount = min(remaining, folio["balance_cents"])
        folio_repository.insert_payment(
            cur,
            property_id=ctx.property_id,
            folio_id=fid,
            amount_cents=amount,
            payment_method=payment_method,
            reference_number=reference_number,
            notes=payment_notes,
            recorded_by=recorded_by,
        )
        _save_totals(cur, folio, folio_repository.totals_of(folio).apply_payment(amount))
        allocations.append({"folio_id": fid, "amount_cents": amount})
        remaining -= amount

    _log(
        "bulk payment recorded",
        ctx,
        folio_count=len(allocations),
        applied_cents=total_amount_cents - remaining,
        unapplied_cents=remaining,
    )
    return {
        "allocations": allocations,
        "applied_cents": total_amount_cents - remaining,
        "unapplied_cents": remaining,
    }


def record_corporate_bulk_payment(
    cur: PgCursor,
    ctx: PropertyContext,
    *,
    corporate_account_id: str,
    folio_payments: list[tuple[str, int]],
    payment_method: str,
    reference_number: str | None = None,
    notes: str | None = None,
    recorded_by: str | None = None,
) -> dict[str, Any]:
    """Settle several folios on behalf of a corporate account.

    One payment per (folio_id, amount_cents) pair, all attributed to the
    account. The account's current balance is reduced by the total.

    Returns:
        Dict with "total_payment_cents", "folio_count" and
        "new_balance_cents" (the account's balance).
    """
    if not folio_payments:
        raise LedgerValidationError("No folio payments given")
    if any(amount <= 0 for _, amount in folio_payments):
        raise LedgerValidationError("Payment amount must be greater than zero")

    account = _lock_corporate_account(cur, ctx, corporate_account_id)

    locked: dict[str, dict[str, Any]] = {}
    for fid in sorted({fid for fid, _ in folio_payments}):
        locked[fid] = _lock_open_folio(cur, ctx, fid)

    payment_notes = f"Bulk corporate payment: {notes}" if notes else "Bulk corporate payment"
    total = 0
    for fid, amount in folio_payments:
        folio = locked[fid]
        folio_repository.insert_payment(
            cur,
            property_id=ctx.property_id,
            folio_id=fid,
            amount_cents=amount,
            payment_method=payment_method,
            reference_number=reference_number,
            notes=payment_notes,
            corporate_account_id=corporate_account_id,
            recorded_by=recorded_by,
        )
        locked[fid] = _save_totals(
            cur, folio, folio_repository.totals_of(folio).apply_payment(amount)
        )
        total += amount

    new_balance = account["current_balance_cents"] - total
    corporate_repository.set_corporate_balance(
        cur, account_id=corporate_account_id, balance_cents=new_balance
    )

    _log(
        "corporate bulk payment recorded",
        ctx,
        corporate_account_id=corporate_account_id,
        folio_count=len(folio_payments),
        total_payment_cents=total,
    )
    return {
        "total_payment_cents": total,
        "folio_count": len(folio_payments),
        "new_balance_cents": new_balance,
    }


# ── Stay extension ───────────────────────────────────────


def overwrite_folio_total(
    cur: PgCursor, ctx: PropertyContext, *, reservation_id: str, total_amount_cents: int
) -> dict[str, Any] | None:
    """Replace the total of a reservation's primary folio (stay extension).

    The primary folio is the oldest one, opened with the booking; folios
    split off it keep their own totals.

    Subtotal, tax and service charge are left as they are; balance is
    re-derived from the new total. Returns None when the reservation has
    no folio.
    """
    folio = folio_repository.lock_folio_for_reservation(
        cur, property_id=ctx.property_id, reservation_id=reservation_id
    )
    if folio is None:
        return None
    return _save_totals(
        cur, folio, folio_repository.totals_of(folio).with_total(total_amount_cents)
    )
