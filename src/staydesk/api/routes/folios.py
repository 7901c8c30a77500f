"""Folio endpoints - charges, payments, voids, transfers and splits.

Every mutation loads the property's billing policy and runs the ledger
operation in one transaction.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from staydesk.api.errors import http_errors
from staydesk.api.rbac import PropertyRoleContext, require_property_role
from staydesk.domain.folio import (
    AdjustmentCreate,
    BulkPaymentRequest,
    ChargeCreate,
    FolioStatus,
    PaymentCreate,
    SplitRequest,
    TransferRequest,
    VoidRequest,
)
from staydesk.infra import property_settings
from staydesk.services import folio_service

router = APIRouter(prefix="/folios", tags=["folios"])


# ── Reads ────────────────────────────────────────────────


@router.get("")
def list_folios(
    status: FolioStatus | None = Query(None),
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
) -> list[dict]:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("list folios", property_id=ctx.property_id):
        return folio_service.list_folios(
            cur, property_id=ctx.property_id, status=status.value if status else None
        )


@router.get("/stats")
def folio_stats(
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
) -> dict:
    """Open/closed counts, open balance and today's payments."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("load folio stats", property_id=ctx.property_id):
        return folio_service.get_folio_stats(cur, property_id=ctx.property_id)


@router.get("/{folio_id}")
def get_folio(
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("load folio", property_id=ctx.property_id):
        return folio_service.get_folio(cur, property_id=ctx.property_id, folio_id=folio_id)


# ── Charges ──────────────────────────────────────────────


@router.post("/{folio_id}/charges")
def add_charge(
    body: ChargeCreate,
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("add charge", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.add_charge(
            cur,
            policy,
            folio_id=folio_id,
            item_type=body.item_type.value,
            description=body.description,
            quantity=body.quantity,
            unit_price_cents=body.unit_price_cents,
            service_date=body.service_date,
        )


@router.post("/{folio_id}/adjustments")
def add_adjustment(
    body: AdjustmentCreate,
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    """Post a discount or miscellaneous adjustment. Requires manager."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("add adjustment", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.add_adjustment(
            cur,
            policy,
            folio_id=folio_id,
            amount_cents=body.amount_cents,
            reason=body.reason,
            is_discount=body.is_discount,
        )


@router.post("/{folio_id}/items/{item_id}/void")
def void_item(
    body: VoidRequest,
    folio_id: str = Path(..., description="Folio UUID"),
    item_id: str = Path(..., description="Folio item UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("void item", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.void_item(
            cur,
            policy,
            folio_id=folio_id,
            item_id=item_id,
            reason=body.reason,
            voided_by=ctx.user.id,
        )


@router.post("/{folio_id}/items/{item_id}/transfer")
def transfer_charge(
    body: TransferRequest,
    folio_id: str = Path(..., description="Source folio UUID"),
    item_id: str = Path(..., description="Folio item UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("transfer charge", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.transfer_charge(
            cur,
            policy,
            folio_id=folio_id,
            item_id=item_id,
            target_folio_id=body.target_folio_id,
        )


@router.post("/{folio_id}/split")
def split_folio(
    body: SplitRequest,
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("split folio", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.split_folio(cur, policy, folio_id=folio_id, item_ids=body.item_ids)


# ── Payments ─────────────────────────────────────────────


@router.post("/bulk-payments")
def record_bulk_payment(
    body: BulkPaymentRequest,
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    """Spread one payment across several folios in request order."""
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("record bulk payment", property_id=ctx.property_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.record_bulk_payment(
            cur,
            policy,
            folio_ids=body.folio_ids,
            total_amount_cents=body.total_amount_cents,
            payment_method=body.payment_method.value,
            reference_number=body.reference_number,
            notes=body.notes,
            recorded_by=ctx.user.id,
        )


@router.post("/{folio_id}/payments")
def record_payment(
    body: PaymentCreate,
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("record payment", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.record_payment(
            cur,
            policy,
            folio_id=folio_id,
            amount_cents=body.amount_cents,
            payment_method=body.payment_method.value,
            reference_number=body.reference_number,
            notes=body.notes,
            corporate_account_id=body.corporate_account_id,
            recorded_by=ctx.user.id,
        )


@router.post("/{folio_id}/payments/{payment_id}/void")
def void_payment(
    body: VoidRequest,
    folio_id: str = Path(..., description="Folio UUID"),
    payment_id: str = Path(..., description="Payment UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("void payment", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.void_payment(
            cur,
            policy,
            folio_id=folio_id,
            payment_id=payment_id,
            reason=body.reason,
            voided_by=ctx.user.id,
        )


# ── Status ───────────────────────────────────────────────


@router.post("/{folio_id}/close")
def close_folio(
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("close folio", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.close_folio(cur, policy, folio_id=folio_id, closed_by=ctx.user.id)


@router.post("/{folio_id}/reopen")
def reopen_folio(
    folio_id: str = Path(..., description="Folio UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("manager")),
) -> dict:
    from staydesk.infra.db import txn

    with txn() as cur, http_errors("reopen folio", property_id=ctx.property_id, folio_id=folio_id):
        policy = property_settings.load_property_context(cur, ctx.property_id)
        return folio_service.reopen_folio(cur, policy, folio_id=folio_id)
